from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class Opportunity:
    id: str
    notice_id: str | None
    title: str
    description: str = ""
    synopsis: str = ""
    solicitation_number: str | None = None
    agency: str | None = None
    type: str | None = None
    base_type: str | None = None
    archive_type: str | None = None
    archive_date: str | None = None
    posted_date: str | None = None
    response_deadline: str | None = None
    type_of_set_aside: str | None = None
    type_of_set_aside_description: str | None = None
    naics_code: str | None = None
    naics_description: str | None = None
    classification_code: str | None = None
    active: str | None = None
    award: dict | None = None
    point_of_contact: list[dict] = field(default_factory=list)
    place_of_performance: dict = field(default_factory=dict)
    organization_type: str | None = None
    office_address: dict = field(default_factory=dict)
    links: list[dict] = field(default_factory=list)
    ui_link: str | None = None
    relevance_score: float = 0.0
    # Caller annotations, carried through untouched.
    is_favorite: bool = False
    tags: list[str] = field(default_factory=list)

    def ranking_text(self) -> str:
        return f"{self.title} {self.description} {self.synopsis}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "noticeId": self.notice_id,
            "title": self.title,
            "description": self.description,
            "synopsis": self.synopsis,
            "solicitationNumber": self.solicitation_number,
            "agency": self.agency,
            "type": self.type,
            "baseType": self.base_type,
            "archiveType": self.archive_type,
            "archiveDate": self.archive_date,
            "postedDate": self.posted_date,
            "responseDeadLine": self.response_deadline,
            "typeOfSetAside": self.type_of_set_aside,
            "typeOfSetAsideDescription": self.type_of_set_aside_description,
            "naicsCode": self.naics_code,
            "naicsDescription": self.naics_description,
            "classificationCode": self.classification_code,
            "active": self.active,
            "award": self.award,
            "pointOfContact": self.point_of_contact,
            "placeOfPerformance": self.place_of_performance,
            "organizationType": self.organization_type,
            "officeAddress": self.office_address,
            "links": self.links,
            "uiLink": self.ui_link,
            "relevanceScore": self.relevance_score,
            "isFavorite": self.is_favorite,
            "tags": self.tags,
        }


@dataclass(frozen=True, slots=True)
class SearchFilters:
    """Canonical filters in the upstream date dialect (MM/DD/YYYY)."""

    start_date: str
    end_date: str
    limit: int
    offset: int = 0
    keyword: str | None = None
    naics_code: str | None = None
    state: str | None = None
    agency: str | None = None
    notice_type: str | None = None
    set_aside: str | None = None
    active: bool | None = None
    entity_name: str | None = None
    contract_vehicle: str | None = None
    classification_code: str | None = None
    funding_source: str | None = None
    response_deadline_from: str | None = None
    response_deadline_to: str | None = None
    estimated_value_min: float | None = None
    estimated_value_max: float | None = None
    has_attachments: bool = False


@dataclass(slots=True)
class ResultPage:
    opportunities: list[Opportunity]
    total_records: int
    limit: int
    offset: int
    cached: bool = False
    facets: dict[str, list] = field(
        default_factory=lambda: {
            "naicsCodes": [],
            "states": [],
            "agencies": [],
            "types": [],
        }
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "opportunities": [opp.to_dict() for opp in self.opportunities],
            "totalRecords": self.total_records,
            "limit": self.limit,
            "offset": self.offset,
            "facets": self.facets,
        }
