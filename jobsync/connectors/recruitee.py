from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from urllib.parse import quote

from jobsync.connectors.base import AtsBoardConnector
from jobsync.http import FetchError
from jobsync.models import RawPosting, SourceType
from jobsync.normalize import (
    canonicalize_url,
    clean_id,
    clean_str,
    html_to_text,
    join_blocks,
    parse_datetime,
    str_list,
)


class RecruiteeCareersConnector(AtsBoardConnector):
    attribution_label = "Recruitee Careers Site API"
    attribution_url = "https://docs.recruitee.com/reference/offers"
    terms_url = "https://recruitee.com/en/terms"

    @property
    def source_type(self) -> SourceType:
        return "recruitee"

    def board_url(self, board_key: str) -> str:
        return f"https://{quote(board_key, safe='')}.recruitee.com/api/offers/"

    def extract_items(self, data: Any, *, url: str, status_code: int) -> List[Any]:
        if isinstance(data, dict) and isinstance(data.get("offers"), list):
            return data["offers"]
        raise FetchError(url, status_code, f"Unexpected recruitee payload shape for {url}")

    def include(self, item: Any) -> bool:
        status = item.get("status")
        return status is None or status == "published"

    def cursor_of(self, item: Any) -> Optional[datetime]:
        return parse_datetime(item.get("updated_at")) or parse_datetime(item.get("published_at"))

    def to_posting(self, board_key: str, item: Any) -> Optional[RawPosting]:
        offer_id = clean_id(item.get("id"))
        title = clean_str(item.get("title"))
        if not offer_id or not title:
            return None

        location_parts: List[str] = [v for v in (clean_str(item.get("city")), clean_str(item.get("country"))) if v]
        if item.get("remote") is True:
            location_parts.append("Remote")
        elif item.get("hybrid") is True:
            location_parts.append("Hybrid")

        labels: List[str] = []
        department = clean_str(item.get("department"))
        if department:
            labels.append(department)
        labels.extend(str_list(item.get("tags")))
        labels.extend(v for v in (clean_str(item.get("employment_type_code")), clean_str(item.get("experience_code"))) if v)

        company = clean_str(item.get("company_name"))
        salary = clean_str(item.get("salary"))
        description = item.get("description")
        requirements = item.get("requirements")

        slug = clean_str(item.get("slug")) or offer_id
        careers_url = clean_str(item.get("careers_url")) or f"https://{board_key}.recruitee.com/o/{slug}"
        created_at = parse_datetime(item.get("published_at")) or parse_datetime(item.get("created_at"))
        updated_at = self.cursor_of(item) or created_at
        number = item.get("id")

        return RawPosting(
            external_job_id=offer_id,
            url=canonicalize_url(careers_url),
            title=title,
            body=join_blocks(
                f"Location: {', '.join(location_parts)}" if location_parts else None,
                f"Company: {company}" if company else None,
                f"Salary: {salary}" if salary else None,
                html_to_text(description) if isinstance(description, str) else None,
                html_to_text(requirements) if isinstance(requirements, str) else None,
            ),
            labels=tuple(labels),
            created_at=created_at,
            updated_at=updated_at,
            poster_username="recruitee",
            issue_number=number if isinstance(number, int) and not isinstance(number, bool) else 0,
            apply_url=clean_str(item.get("careers_apply_url")) or careers_url,
        )
