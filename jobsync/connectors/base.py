from __future__ import annotations

import abc
import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple

from jobsync.http import FetchError, JsonResponse, PoliteHttpClient
from jobsync.logging_utils import log_event
from jobsync.models import FetchResult, RawPosting, Source, SourceType

logger = logging.getLogger("jobsync.connectors")


def summarize_fetch(http: PoliteHttpClient, responses: List[JsonResponse], postings: List[RawPosting]) -> FetchResult:
    remaining_values = [r.rate_limit.remaining for r in responses if r.rate_limit.remaining is not None]
    remaining = min(remaining_values) if remaining_values else None
    return FetchResult(
        postings=postings,
        http_status=responses[-1].status_code if responses else None,
        latency_ms=sum(r.latency_ms for r in responses),
        rate_limit_remaining=remaining,
        rate_limited=remaining is not None and remaining < http.low_quota_threshold,
    )


class BaseConnector(abc.ABC):
    """Connector interface: one source in, normalized postings out."""

    attribution_label: str = ""
    attribution_url: str = ""
    terms_url: str = ""

    def __init__(self, http: PoliteHttpClient) -> None:
        self._http = http

    @property
    @abc.abstractmethod
    def source_type(self) -> SourceType:
        raise NotImplementedError

    @abc.abstractmethod
    def fetch_jobs(self, source: Source, since: Optional[datetime] = None) -> FetchResult:
        """Fetch every current posting of ``source``; raises JobSyncHttpError on whole-source failure."""
        raise NotImplementedError

    def _skip(self, source: Source, reason: str, item: Any) -> None:
        item_id = item.get("id") if isinstance(item, dict) else None
        log_event(
            logger,
            logging.WARNING,
            "posting_skipped_malformed",
            source=source.full_name,
            source_type=self.source_type,
            reason=reason,
            item_id=item_id,
        )


class AtsBoardConnector(BaseConnector):
    """Public, unauthenticated board listing keyed by a company slug."""

    @abc.abstractmethod
    def board_url(self, board_key: str) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def to_posting(self, board_key: str, item: Any) -> Optional[RawPosting]:
        """Map one provider item; ``None`` when the item lacks an id or title."""
        raise NotImplementedError

    @abc.abstractmethod
    def cursor_of(self, item: Any) -> Optional[datetime]:
        """Provider timestamp compared against the incremental cursor."""
        raise NotImplementedError

    def include(self, item: Any) -> bool:
        return True

    def extract_items(self, data: Any, *, url: str, status_code: int) -> List[Any]:
        if isinstance(data, dict) and isinstance(data.get("jobs"), list):
            return data["jobs"]
        raise FetchError(url, status_code, f"Unexpected {self.source_type} payload shape for {url}")

    def fetch_items(self, board_key: str) -> Tuple[List[Any], List[JsonResponse]]:
        url = self.board_url(board_key)
        resp = self._http.get_json(url)
        return self.extract_items(resp.data, url=url, status_code=resp.status_code), [resp]

    def fetch_jobs(self, source: Source, since: Optional[datetime] = None) -> FetchResult:
        board_key = source.board_key
        items, responses = self.fetch_items(board_key)

        postings: List[RawPosting] = []
        for item in items:
            if not isinstance(item, dict):
                self._skip(source, "not_an_object", item)
                continue
            if not self.include(item):
                continue
            if since is not None:
                ts = self.cursor_of(item)
                if ts is not None and ts < since:
                    continue
            posting = self.to_posting(board_key, item)
            if posting is None:
                self._skip(source, "missing_id_or_title", item)
                continue
            postings.append(posting)

        return summarize_fetch(self._http, responses, postings)
