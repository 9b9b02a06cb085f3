from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Tuple
from urllib.parse import quote

from jobsync.connectors.base import AtsBoardConnector
from jobsync.http import FetchError, JsonResponse, PoliteHttpClient
from jobsync.models import RawPosting, SourceType
from jobsync.normalize import canonicalize_url, clean_id, clean_str, html_to_text, join_blocks, parse_datetime


class LeverPostingsConnector(AtsBoardConnector):
    """Lever postings, paged with ``skip``/``limit`` until a short page."""

    attribution_label = "Lever Postings API"
    attribution_url = "https://github.com/lever/postings-api"
    terms_url = "https://www.lever.co/terms"

    def __init__(self, http: PoliteHttpClient, *, page_size: int = 100, max_pages: int = 50) -> None:
        super().__init__(http)
        self._page_size = max(1, int(page_size))
        self._max_pages = max(1, int(max_pages))

    @property
    def source_type(self) -> SourceType:
        return "lever"

    def board_url(self, board_key: str) -> str:
        return f"https://api.lever.co/v0/postings/{quote(board_key, safe='')}"

    def cursor_of(self, item: Any) -> Optional[datetime]:
        # Postings only carry createdAt; the full listing is returned every time.
        return None

    def fetch_items(self, board_key: str) -> Tuple[List[Any], List[JsonResponse]]:
        url = self.board_url(board_key)
        items: List[Any] = []
        responses: List[JsonResponse] = []
        for page in range(self._max_pages):
            resp = self._http.get_json(
                url,
                params={"mode": "json", "skip": page * self._page_size, "limit": self._page_size},
            )
            responses.append(resp)
            if not isinstance(resp.data, list):
                raise FetchError(resp.url, resp.status_code, f"Unexpected lever payload shape for {url}")
            items.extend(resp.data)
            if len(resp.data) < self._page_size:
                break
        return items, responses

    def to_posting(self, board_key: str, item: Any) -> Optional[RawPosting]:
        job_id = clean_id(item.get("id"))
        title = clean_str(item.get("text"))
        if not job_id or not title:
            return None

        categories = item.get("categories") if isinstance(item.get("categories"), dict) else {}
        location = clean_str(categories.get("location"))
        commitment = clean_str(categories.get("commitment"))
        team = clean_str(categories.get("team"))

        hosted_url = clean_str(item.get("hostedUrl"))
        apply_url = clean_str(item.get("applyUrl"))
        description = clean_str(item.get("descriptionPlain"))
        if description is None and isinstance(item.get("description"), str):
            description = html_to_text(item["description"])
        created_at = parse_datetime(item.get("createdAt"))

        return RawPosting(
            external_job_id=job_id,
            url=canonicalize_url(hosted_url or apply_url or f"https://jobs.lever.co/{board_key}/{job_id}"),
            title=title,
            body=join_blocks(description, f"Location: {location}" if location else None),
            labels=tuple(v for v in (location, commitment, team) if v),
            created_at=created_at,
            updated_at=created_at,
            poster_username="lever",
            apply_url=apply_url or hosted_url,
        )
