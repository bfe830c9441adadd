from __future__ import annotations

import hashlib
import json
import math
import re
from dataclasses import asdict
from datetime import date, datetime, timedelta
from typing import Any, Mapping

from dateutil import parser as date_parser

from .models import SearchFilters

SAM_DATE_FORMAT = "%m/%d/%Y"

_SAM_DATE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Canonical field -> upstream query parameter.
_PARAM_NAMES = {
    "keyword": "q",
    "start_date": "postedFrom",
    "end_date": "postedTo",
    "naics_code": "naicsCode",
    "state": "state",
    "agency": "agency",
    "notice_type": "noticeType",
    "set_aside": "setAside",
    "active": "active",
    "entity_name": "entityName",
    "contract_vehicle": "contractVehicle",
    "classification_code": "classificationCode",
    "funding_source": "fundingSource",
    "response_deadline_from": "responseDeadlineFrom",
    "response_deadline_to": "responseDeadlineTo",
    "estimated_value_min": "estimatedValueMin",
    "estimated_value_max": "estimatedValueMax",
}


def normalize(
    raw: Mapping[str, Any],
    today: date | None = None,
    default_limit: int = 50,
    max_limit: int = 100,
    posted_days: int = 30,
) -> SearchFilters:
    """Map flat request parameters onto canonical upstream filters.

    Never raises: unparsable values fall back to defaults or are dropped.
    """
    today = today or date.today()

    start_date = normalize_date(raw.get("startDate"))
    end_date = normalize_date(raw.get("endDate"))

    limit = _to_int(raw.get("limit"))
    if limit is None or limit <= 0:
        limit = default_limit
    offset = _to_int(raw.get("offset"))
    if offset is None or offset < 0:
        offset = 0

    return SearchFilters(
        start_date=start_date or format_sam_date(today - timedelta(days=posted_days)),
        end_date=end_date or format_sam_date(today),
        limit=min(limit, max_limit),
        offset=offset,
        keyword=_to_str(raw.get("q")),
        naics_code=_to_str(raw.get("naicsCode")),
        state=_to_str(raw.get("state")),
        agency=_to_str(raw.get("agency")),
        notice_type=_to_str(raw.get("type")),
        set_aside=_to_str(raw.get("setAside")),
        active=_to_tristate(raw.get("active")),
        entity_name=_to_str(raw.get("entityName")),
        contract_vehicle=_to_str(raw.get("contractVehicle")),
        classification_code=_to_str(raw.get("classificationCode")),
        funding_source=_to_str(raw.get("fundingSource")),
        response_deadline_from=normalize_date(raw.get("responseDeadlineFrom")),
        response_deadline_to=normalize_date(raw.get("responseDeadlineTo")),
        estimated_value_min=_to_float(raw.get("estimatedValueMin")),
        estimated_value_max=_to_float(raw.get("estimatedValueMax")),
        has_attachments=_to_tristate(raw.get("hasAttachments")) is True,
    )


def normalize_date(value: Any) -> str | None:
    if isinstance(value, datetime):
        return format_sam_date(value.date())
    if isinstance(value, date):
        return format_sam_date(value)

    text = _to_str(value)
    if not text:
        return None

    try:
        if _SAM_DATE.match(text):
            return format_sam_date(datetime.strptime(text, SAM_DATE_FORMAT).date())
        if _ISO_DATE.match(text):
            return format_sam_date(date.fromisoformat(text))
    except ValueError:
        return None

    try:
        return format_sam_date(date_parser.parse(text).date())
    except (ValueError, OverflowError):
        return None


def format_sam_date(value: date) -> str:
    return value.strftime(SAM_DATE_FORMAT)


def to_params(filters: SearchFilters) -> dict[str, str]:
    params: dict[str, str] = {}
    for field_name, param in _PARAM_NAMES.items():
        value = getattr(filters, field_name)
        if value is None:
            continue
        if isinstance(value, bool):
            params[param] = "true" if value else "false"
        elif isinstance(value, float):
            params[param] = _format_number(value)
        else:
            params[param] = str(value)

    if filters.has_attachments:
        params["hasAttachments"] = "true"
    params["limit"] = str(filters.limit)
    params["offset"] = str(filters.offset)
    return params


def fingerprint(filters: SearchFilters) -> str:
    payload = json.dumps(asdict(filters), sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"sam-search:{digest}"


def _format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _to_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    return str(value).strip() or None


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = _to_str(value)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    text = _to_str(value)
    if text is None:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _to_tristate(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    text = _to_str(value)
    if text is None:
        return None
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None
