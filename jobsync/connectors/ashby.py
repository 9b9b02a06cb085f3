from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from urllib.parse import quote

from jobsync.connectors.base import AtsBoardConnector
from jobsync.models import RawPosting, SourceType
from jobsync.normalize import canonicalize_url, clean_id, clean_str, html_to_text, join_blocks, parse_datetime


class AshbyBoardConnector(AtsBoardConnector):
    attribution_label = "Ashby Job Board API"
    attribution_url = "https://developers.ashbyhq.com/docs/public-job-posting-api"
    terms_url = "https://www.ashbyhq.com/terms-of-service"

    @property
    def source_type(self) -> SourceType:
        return "ashby"

    def board_url(self, board_key: str) -> str:
        return f"https://api.ashbyhq.com/posting-api/job-board/{quote(board_key, safe='')}?includeCompensation=true"

    def cursor_of(self, item: Any) -> Optional[datetime]:
        return parse_datetime(item.get("publishedAt"))

    def to_posting(self, board_key: str, item: Any) -> Optional[RawPosting]:
        job_id = clean_id(item.get("id"))
        title = clean_str(item.get("title"))
        if not job_id or not title:
            return None

        workplace_type = clean_str(item.get("workplaceType"))
        location_parts: List[str] = []
        location = clean_str(item.get("location"))
        if location:
            location_parts.append(location)
        if item.get("isRemote") is True or workplace_type == "Remote":
            location_parts.append("Remote")

        compensation = item.get("compensation")
        summary = clean_str(compensation.get("compensationTierSummary")) if isinstance(compensation, dict) else None

        description = clean_str(item.get("descriptionPlain"))
        if description is None and isinstance(item.get("descriptionHtml"), str):
            description = html_to_text(item["descriptionHtml"])

        labels = [
            v
            for v in (
                clean_str(item.get("department")),
                clean_str(item.get("team")),
                clean_str(item.get("employmentType")),
                workplace_type,
            )
            if v
        ]
        job_url = clean_str(item.get("jobUrl"))
        published_at = parse_datetime(item.get("publishedAt"))

        return RawPosting(
            external_job_id=job_id,
            url=canonicalize_url(job_url or f"https://jobs.ashbyhq.com/{board_key}/{job_id}"),
            title=title,
            body=join_blocks(
                f"Location: {', '.join(location_parts)}" if location_parts else None,
                f"Compensation: {summary}" if summary else None,
                description,
            ),
            labels=tuple(labels),
            created_at=published_at,
            updated_at=published_at,
            poster_username="ashby",
            apply_url=clean_str(item.get("applyUrl")) or job_url,
        )
