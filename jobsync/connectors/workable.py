from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from urllib.parse import quote

from jobsync.connectors.base import AtsBoardConnector
from jobsync.models import RawPosting, SourceType
from jobsync.normalize import canonicalize_url, clean_str, join_blocks, parse_datetime


class WorkableWidgetConnector(AtsBoardConnector):
    attribution_label = "Workable Widget API"
    attribution_url = "https://developers.workable.com/"
    terms_url = "https://www.workable.com/terms"

    @property
    def source_type(self) -> SourceType:
        return "workable"

    def board_url(self, board_key: str) -> str:
        return f"https://apply.workable.com/api/v1/widget/accounts/{quote(board_key, safe='')}"

    def cursor_of(self, item: Any) -> Optional[datetime]:
        return parse_datetime(item.get("published_on"))

    def to_posting(self, board_key: str, item: Any) -> Optional[RawPosting]:
        shortcode = clean_str(item.get("shortcode"))
        title = clean_str(item.get("title"))
        if not shortcode or not title:
            return None

        location_parts: List[str] = [
            v for v in (clean_str(item.get("city")), clean_str(item.get("state")), clean_str(item.get("country"))) if v
        ]
        if item.get("telecommuting") is True:
            location_parts.append("Remote")

        department = clean_str(item.get("department"))
        industry = clean_str(item.get("industry"))
        employment = clean_str(item.get("employment_type"))
        url = clean_str(item.get("url")) or clean_str(item.get("shortlink"))
        created_at = parse_datetime(item.get("published_on")) or parse_datetime(item.get("created_at"))

        return RawPosting(
            external_job_id=shortcode,
            url=canonicalize_url(url or f"https://apply.workable.com/j/{shortcode}"),
            title=title,
            body=join_blocks(
                f"Location: {', '.join(location_parts)}" if location_parts else None,
                f"Department: {department}" if department else None,
                f"Industry: {industry}" if industry else None,
                f"Employment: {employment}" if employment else None,
            ),
            labels=tuple(v for v in (department, employment, industry) if v),
            created_at=created_at,
            updated_at=created_at,
            poster_username="workable",
            apply_url=clean_str(item.get("application_url")) or url,
        )
