from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from jobsync.connectors.base import BaseConnector, summarize_fetch
from jobsync.http import FetchError, JsonResponse, PoliteHttpClient
from jobsync.models import FetchResult, RawPosting, Source, SourceType
from jobsync.normalize import canonicalize_url, clean_str, parse_datetime


def _cursor_param(since: datetime) -> str:
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _labels(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    out: List[str] = []
    for label in value:
        name = label.get("name") if isinstance(label, dict) else label
        if isinstance(name, str) and name.strip():
            out.append(name.strip())
    return tuple(out)


class GitHubIssuesConnector(BaseConnector):
    attribution_label = "GitHub Issues"
    attribution_url = "https://docs.github.com/en/rest/issues/issues#list-repository-issues"
    terms_url = "https://docs.github.com/en/site-policy/github-terms/github-terms-of-service"

    def __init__(
        self,
        http: PoliteHttpClient,
        *,
        token: Optional[str] = None,
        api_base_url: str = "https://api.github.com",
        per_page: int = 100,
        max_pages: int = 50,
        page_pause_s: float = 0.2,
    ) -> None:
        super().__init__(http)
        self._token = token
        self._api_base_url = api_base_url.rstrip("/")
        self._per_page = max(1, min(100, int(per_page)))
        self._max_pages = max(1, int(max_pages))
        self._page_pause_s = float(page_pause_s)

    @property
    def source_type(self) -> SourceType:
        return "github_issues"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _owner_repo(self, source: Source) -> Tuple[str, str]:
        owner = (source.owner or "").strip()
        repo = (source.repo or "").strip()
        if (not owner or not repo) and "/" in source.full_name:
            owner, repo = source.full_name.split("/", 1)
        return owner, repo

    def _to_posting(self, item: Dict[str, Any]) -> Optional[RawPosting]:
        number = item.get("number")
        title = clean_str(item.get("title"))
        url = clean_str(item.get("html_url"))
        if not isinstance(number, int) or isinstance(number, bool) or not title or not url:
            return None

        user = item.get("user") if isinstance(item.get("user"), dict) else {}
        comments = item.get("comments")
        body = item.get("body")
        return RawPosting(
            external_job_id=str(number),
            url=canonicalize_url(url),
            title=title,
            body=body if isinstance(body, str) else "",
            labels=_labels(item.get("labels")),
            created_at=parse_datetime(item.get("created_at")),
            updated_at=parse_datetime(item.get("updated_at")),
            poster_username=clean_str(user.get("login")),
            poster_avatar_url=clean_str(user.get("avatar_url")),
            comments_count=comments if isinstance(comments, int) else 0,
            issue_number=number,
        )

    def fetch_jobs(self, source: Source, since: Optional[datetime] = None) -> FetchResult:
        owner, repo = self._owner_repo(source)
        if not owner or not repo:
            raise FetchError(source.url, None, f"GitHub source {source.full_name} has no owner/repo")

        url = f"{self._api_base_url}/repos/{owner}/{repo}/issues"
        responses: List[JsonResponse] = []
        postings: List[RawPosting] = []

        for page in range(1, self._max_pages + 1):
            if page > 1:
                self._http.pause(self._page_pause_s)
            params: Dict[str, Any] = {
                "state": "open",
                "per_page": self._per_page,
                "page": page,
                "sort": "created",
                "direction": "desc",
            }
            if since is not None:
                # GitHub's "since" filters on update time, so edited issues come back too.
                params["since"] = _cursor_param(since)

            resp = self._http.get_json(url, params=params, headers=self._headers())
            responses.append(resp)
            if not isinstance(resp.data, list):
                raise FetchError(resp.url, resp.status_code, f"Unexpected GitHub payload for {owner}/{repo}")

            for item in resp.data:
                if not isinstance(item, dict):
                    self._skip(source, "not_an_object", item)
                    continue
                if "pull_request" in item:
                    continue
                posting = self._to_posting(item)
                if posting is None:
                    self._skip(source, "missing_number_or_title", item)
                    continue
                postings.append(posting)

            if len(resp.data) < self._per_page:
                break

        return summarize_fetch(self._http, responses, postings)
