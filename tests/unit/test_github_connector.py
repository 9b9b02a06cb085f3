from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from jobsync.connectors import GitHubIssuesConnector
from jobsync.http import FetchError, PoliteHttpClient
from jobsync.models import Source

ISSUES_URL = "https://api.github.com/repos/backend-br/vagas/issues"


def _make_http(handler):
    return PoliteHttpClient(
        user_agent="TestAgent/1.0",
        rate_limit_per_host_s=0.0,
        max_retries=0,
        transport=httpx.MockTransport(handler),
        sleep=lambda _s: None,
    )


def _source() -> Source:
    return Source(
        id="src-1",
        source_type="github_issues",
        full_name="backend-br/vagas",
        owner="backend-br",
        repo="vagas",
        url="https://github.com/backend-br/vagas",
    )


def _issue(number: int) -> dict:
    return {
        "number": number,
        "title": f"[Remoto] Vaga {number}",
        "html_url": f"https://github.com/backend-br/vagas/issues/{number}",
        "body": "",
        "labels": [],
    }


def test_fetch_maps_issues_and_drops_pull_requests(fixture_json):
    payload = fixture_json("github_issues_page1.json")
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=payload)

    http = _make_http(handler)
    try:
        connector = GitHubIssuesConnector(http, token="t0ken", page_pause_s=0)
        result = connector.fetch_jobs(_source())

        assert [p.external_job_id for p in result.postings] == ["412", "410"]
        first = result.postings[0]
        assert first.url == "https://github.com/backend-br/vagas/issues/412"
        assert first.issue_number == 412
        assert first.labels == ("CLT", "Remoto", "Sênior")
        assert first.poster_username == "acme-rh"
        assert first.comments_count == 3
        assert first.created_at == datetime(2026, 10, 10, 12, 0, tzinfo=timezone.utc)
        # Fragment dropped so the same issue always dedupes to one URL.
        assert result.postings[1].url == "https://github.com/backend-br/vagas/issues/410"

        assert result.http_status == 200
        assert len(seen) == 1
        request = seen[0]
        assert request.headers["Authorization"] == "Bearer t0ken"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert dict(request.url.params) == {
            "state": "open",
            "per_page": "100",
            "page": "1",
            "sort": "created",
            "direction": "desc",
        }
    finally:
        http.close()


def test_pagination_stops_on_short_page_and_sends_since():
    pages = {1: [_issue(5), _issue(4)], 2: [_issue(3), _issue(2)], 3: [_issue(1)]}
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        requested.append((page, request.url.params.get("since")))
        return httpx.Response(200, json=pages.get(page, []))

    http = _make_http(handler)
    try:
        connector = GitHubIssuesConnector(http, per_page=2, page_pause_s=0)
        since = datetime(2026, 10, 1, 9, 30, tzinfo=timezone.utc)
        result = connector.fetch_jobs(_source(), since=since)

        assert [p.external_job_id for p in result.postings] == ["5", "4", "3", "2", "1"]
        assert requested == [
            (1, "2026-10-01T09:30:00Z"),
            (2, "2026-10-01T09:30:00Z"),
            (3, "2026-10-01T09:30:00Z"),
        ]
    finally:
        http.close()


def test_max_pages_bounds_the_walk():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[_issue(1), _issue(2)])

    http = _make_http(handler)
    try:
        connector = GitHubIssuesConnector(http, per_page=2, max_pages=2, page_pause_s=0)
        assert len(connector.fetch_jobs(_source()).postings) == 4
    finally:
        http.close()


def test_low_remaining_quota_is_reported_on_the_fetch_result():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[_issue(1)],
            headers={"X-RateLimit-Remaining": "4", "X-RateLimit-Reset": "1790000000"},
        )

    http = _make_http(handler)
    try:
        result = GitHubIssuesConnector(http, page_pause_s=0).fetch_jobs(_source())

        assert result.rate_limit_remaining == 4
        assert result.rate_limited is True
    finally:
        http.close()


def test_repo_not_found_is_a_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    http = _make_http(handler)
    try:
        with pytest.raises(FetchError) as exc:
            GitHubIssuesConnector(http, page_pause_s=0).fetch_jobs(_source())
        assert exc.value.status_code == 404
    finally:
        http.close()


def test_non_list_payload_is_a_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"message": "weird"})

    http = _make_http(handler)
    try:
        with pytest.raises(FetchError):
            GitHubIssuesConnector(http, page_pause_s=0).fetch_jobs(_source())
    finally:
        http.close()
