from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .config import SamConfig
from .errors import UpstreamFetchError
from .models import Opportunity, SearchFilters
from .query import to_params

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SamPage:
    opportunities: list[Opportunity]
    total_records: int


class SamClient:
    def __init__(
        self,
        config: SamConfig | None = None,
        user_agent: str = "sam-search/0.1",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or SamConfig()
        self.user_agent = user_agent
        self._transport = transport

    async def fetch_page(self, filters: SearchFilters, api_key: str) -> SamPage:
        params: dict[str, Any] = to_params(filters)
        params["includeCount"] = "true"
        params["format"] = "json"
        logger.info("SAM.gov request %s params=%s", self.config.base_url, params)

        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                headers=headers,
                transport=self._transport,
            ) as client:
                resp = await client.get(
                    self.config.base_url, params={**params, "api_key": api_key}
                )
        except httpx.TimeoutException as exc:
            raise UpstreamFetchError("SAM.gov API request timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"SAM.gov API request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise UpstreamFetchError(_error_message(resp), status=resp.status_code)

        try:
            data = resp.json()
        except ValueError:
            raise UpstreamFetchError(
                "SAM.gov API returned a malformed body", status=resp.status_code
            ) from None
        if not isinstance(data, dict):
            raise UpstreamFetchError(
                "SAM.gov API returned a malformed body", status=resp.status_code
            )

        opportunities = [_to_opportunity(record) for record in _extract_records(data)]
        total = data.get("totalRecords")
        if not isinstance(total, int) or isinstance(total, bool):
            total = len(opportunities)
        return SamPage(opportunities=opportunities, total_records=total)


def _error_message(resp: httpx.Response) -> str:
    message = f"SAM.gov API error: {resp.status_code} {resp.reason_phrase}"
    body = resp.text
    try:
        detail = resp.json()
    except ValueError:
        detail = None
    if isinstance(detail, dict) and detail.get("errorMessage"):
        return f"{message} - {detail['errorMessage']}"
    return f"{message} - {body}" if body else message


def _extract_records(data: dict[str, Any]) -> list[dict]:
    value = data.get("opportunitiesData")
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return []


def _to_opportunity(record: dict[str, Any]) -> Opportunity:
    title = _to_str(record.get("title")) or ""
    notice_id = _to_str(record.get("noticeId"))
    solicitation_number = _to_str(record.get("solicitationNumber"))
    posted_date = _to_str(record.get("postedDate"))
    identifier = notice_id or solicitation_number or f"{title}:{posted_date or ''}"

    return Opportunity(
        id=identifier,
        notice_id=notice_id,
        title=title,
        description=_to_str(record.get("description")) or "",
        synopsis=_to_str(record.get("synopsis")) or "",
        solicitation_number=solicitation_number,
        agency=_to_str(record.get("fullParentPathName") or record.get("department")),
        type=_to_str(record.get("type")),
        base_type=_to_str(record.get("baseType")),
        archive_type=_to_str(record.get("archiveType")),
        archive_date=_to_str(record.get("archiveDate")),
        posted_date=posted_date,
        response_deadline=_to_str(
            record.get("responseDeadLine") or record.get("reponseDeadLine")
        ),
        type_of_set_aside=_to_str(record.get("typeOfSetAside")),
        type_of_set_aside_description=_to_str(record.get("typeOfSetAsideDescription")),
        naics_code=_to_str(record.get("naicsCode")),
        naics_description=_to_str(record.get("naicsDescription")),
        classification_code=_to_str(record.get("classificationCode")),
        active=_to_str(record.get("active")),
        award=_as_dict(record.get("award")) or None,
        point_of_contact=_as_list(record.get("pointOfContact")),
        place_of_performance=_as_dict(record.get("placeOfPerformance")),
        organization_type=_to_str(record.get("organizationType")),
        office_address=_as_dict(record.get("officeAddress")),
        links=_as_list(record.get("links")),
        ui_link=_to_str(record.get("uiLink")),
    )


def _to_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    return str(value).strip() or None


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]
