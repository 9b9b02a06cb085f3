from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from urllib.parse import quote

from jobsync.connectors.base import AtsBoardConnector
from jobsync.models import RawPosting, SourceType
from jobsync.normalize import canonicalize_url, clean_id, clean_str, html_to_text, join_blocks, parse_datetime


def _metadata_labels(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    labels: List[str] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        label = clean_str(entry.get("name")) or clean_str(entry.get("value"))
        if label:
            labels.append(label)
    return labels


class GreenhouseBoardConnector(AtsBoardConnector):
    attribution_label = "Greenhouse Job Board API"
    attribution_url = "https://developers.greenhouse.io/job-board.html"
    terms_url = "https://www.greenhouse.com/uk/legal/master-subscription-agreement"

    @property
    def source_type(self) -> SourceType:
        return "greenhouse"

    def board_url(self, board_key: str) -> str:
        return f"https://boards-api.greenhouse.io/v1/boards/{quote(board_key, safe='')}/jobs?content=true"

    def cursor_of(self, item: Any) -> Optional[datetime]:
        return parse_datetime(item.get("updated_at"))

    def to_posting(self, board_key: str, item: Any) -> Optional[RawPosting]:
        job_id = clean_id(item.get("id"))
        title = clean_str(item.get("title"))
        if not job_id or not title:
            return None

        location = item.get("location")
        location_name = clean_str(location.get("name")) if isinstance(location, dict) else None
        content = item.get("content")
        absolute_url = clean_str(item.get("absolute_url"))
        updated_at = parse_datetime(item.get("updated_at"))
        number = item.get("id")

        return RawPosting(
            external_job_id=job_id,
            url=canonicalize_url(absolute_url or f"https://boards.greenhouse.io/{board_key}/jobs/{job_id}"),
            title=title,
            body=join_blocks(
                f"Location: {location_name}" if location_name else None,
                html_to_text(content) if isinstance(content, str) else None,
            ),
            labels=tuple(_metadata_labels(item.get("metadata"))),
            created_at=updated_at,
            updated_at=updated_at,
            poster_username="greenhouse",
            issue_number=number if isinstance(number, int) and not isinstance(number, bool) else 0,
            apply_url=absolute_url,
        )
