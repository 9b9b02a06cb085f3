from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from jobsync.connectors import (
    AshbyBoardConnector,
    GreenhouseBoardConnector,
    LeverPostingsConnector,
    RecruiteeCareersConnector,
    WorkableWidgetConnector,
)
from jobsync.http import FetchError, PoliteHttpClient
from jobsync.models import Source


def _make_http(handler):
    return PoliteHttpClient(
        user_agent="TestAgent/1.0",
        rate_limit_per_host_s=0.0,
        max_retries=0,
        transport=httpx.MockTransport(handler),
        sleep=lambda _s: None,
    )


def _source(source_type: str, key: str) -> Source:
    return Source(
        id=f"{source_type}-{key}",
        source_type=source_type,
        full_name=f"{source_type}/{key}",
        owner=source_type,
        repo=key,
        external_key=key,
        url=f"https://example.invalid/{key}",
    )


def _serve(url: str, payload):
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == url:
            return httpx.Response(200, json=payload)
        return httpx.Response(404, json={"error": "not found"})

    return handler


def test_greenhouse_maps_jobs_and_skips_malformed_items(fixture_json):
    url = "https://boards-api.greenhouse.io/v1/boards/acme/jobs?content=true"
    http = _make_http(_serve(url, fixture_json("greenhouse_jobs.json")))
    try:
        result = GreenhouseBoardConnector(http).fetch_jobs(_source("greenhouse", "acme"))

        assert [p.external_job_id for p in result.postings] == ["4012345", "4012000"]
        posting = result.postings[0]
        assert posting.url == "https://boards.greenhouse.io/acme/jobs/4012345"
        assert posting.apply_url == "https://boards.greenhouse.io/acme/jobs/4012345"
        assert posting.labels == ("Department", "Full-time")
        assert posting.body.startswith("Location: Remote - LATAM\n\n")
        assert "Spark" in posting.body
        assert "joana.lima@acme.io" in posting.body
        assert "<p>" not in posting.body and "&lt;" not in posting.body
        assert posting.poster_username == "greenhouse"
        assert posting.issue_number == 4012345
    finally:
        http.close()


def test_greenhouse_since_filters_on_updated_at(fixture_json):
    url = "https://boards-api.greenhouse.io/v1/boards/acme/jobs?content=true"
    http = _make_http(_serve(url, fixture_json("greenhouse_jobs.json")))
    try:
        since = datetime(2026, 10, 1, tzinfo=timezone.utc)
        result = GreenhouseBoardConnector(http).fetch_jobs(_source("greenhouse", "acme"), since=since)

        assert [p.external_job_id for p in result.postings] == ["4012345"]
    finally:
        http.close()


def test_greenhouse_unexpected_payload_shape_is_a_fetch_error():
    url = "https://boards-api.greenhouse.io/v1/boards/acme/jobs?content=true"
    http = _make_http(_serve(url, ["not", "a", "board"]))
    try:
        with pytest.raises(FetchError):
            GreenhouseBoardConnector(http).fetch_jobs(_source("greenhouse", "acme"))
    finally:
        http.close()


def _lever_item(n: int) -> dict:
    return {
        "id": f"lever-{n}",
        "text": f"Engineer {n}",
        "hostedUrl": f"https://jobs.lever.co/globex/lever-{n}",
        "applyUrl": f"https://jobs.lever.co/globex/lever-{n}/apply",
        "descriptionPlain": "Kotlin and Android.",
        "categories": {"location": "São Paulo", "commitment": "Full-time", "team": "Mobile"},
        "createdAt": 1790000000000 + n,
    }


def test_lever_paginates_with_skip_until_short_page():
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        assert request.url.path == "/v0/postings/globex"
        assert params["mode"] == "json"
        skip, limit = int(params["skip"]), int(params["limit"])
        requested.append(skip)
        items = [_lever_item(n) for n in range(5)][skip : skip + limit]
        return httpx.Response(200, json=items)

    http = _make_http(handler)
    try:
        result = LeverPostingsConnector(http, page_size=2).fetch_jobs(_source("lever", "globex"))

        assert requested == [0, 2, 4]
        assert [p.external_job_id for p in result.postings] == [f"lever-{n}" for n in range(5)]
        posting = result.postings[0]
        assert posting.url == "https://jobs.lever.co/globex/lever-0"
        assert posting.apply_url == "https://jobs.lever.co/globex/lever-0/apply"
        assert posting.labels == ("São Paulo", "Full-time", "Mobile")
        assert posting.body == "Kotlin and Android.\n\nLocation: São Paulo"
        assert posting.created_at is not None and posting.created_at.tzinfo is not None
    finally:
        http.close()


def test_lever_keeps_postings_created_before_the_cursor():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[_lever_item(0), _lever_item(1)])

    http = _make_http(handler)
    try:
        since = datetime(2030, 1, 1, tzinfo=timezone.utc)
        result = LeverPostingsConnector(http).fetch_jobs(_source("lever", "globex"), since=since)

        assert [p.external_job_id for p in result.postings] == ["lever-0", "lever-1"]
    finally:
        http.close()


def test_recruitee_keeps_only_published_offers(fixture_json):
    url = "https://initech.recruitee.com/api/offers/"
    http = _make_http(_serve(url, fixture_json("recruitee_offers.json")))
    try:
        result = RecruiteeCareersConnector(http).fetch_jobs(_source("recruitee", "initech"))

        assert [p.external_job_id for p in result.postings] == ["98001"]
        posting = result.postings[0]
        assert posting.url == "https://initech.recruitee.com/o/backend-engineer"
        assert posting.apply_url == "https://initech.recruitee.com/o/backend-engineer/c/new"
        assert posting.labels == ("Engineering", "Go", "Kafka", "fulltime")
        assert "Location: Lisbon, Portugal, Remote" in posting.body
        assert "Company: Initech" in posting.body
        assert "Salary: EUR 60k-80k" in posting.body
        assert posting.created_at == datetime(2026, 10, 5, 9, 0, tzinfo=timezone.utc)
    finally:
        http.close()


def test_recruitee_since_uses_updated_at(fixture_json):
    url = "https://initech.recruitee.com/api/offers/"
    http = _make_http(_serve(url, fixture_json("recruitee_offers.json")))
    try:
        since = datetime(2026, 10, 7, tzinfo=timezone.utc)
        result = RecruiteeCareersConnector(http).fetch_jobs(_source("recruitee", "initech"), since=since)

        assert result.postings == []
    finally:
        http.close()


def test_ashby_builds_body_from_location_and_compensation(fixture_json):
    url = "https://api.ashbyhq.com/posting-api/job-board/hooli?includeCompensation=true"
    http = _make_http(_serve(url, fixture_json("ashby_board.json")))
    try:
        result = AshbyBoardConnector(http).fetch_jobs(_source("ashby", "hooli"))

        [posting] = result.postings
        assert posting.external_job_id == "8c1f7e0a-1111-4e5b-9a77-000000000001"
        assert posting.body.startswith("Location: Brazil, Remote\n\nCompensation: $120K - $150K\n\n")
        assert posting.labels == ("Engineering", "Payments", "FullTime", "Remote")
        assert posting.apply_url.endswith("/application")
    finally:
        http.close()


def test_workable_uses_shortcode_and_location_lines(fixture_json):
    url = "https://apply.workable.com/api/v1/widget/accounts/umbrella"
    http = _make_http(_serve(url, fixture_json("workable_widget.json")))
    try:
        result = WorkableWidgetConnector(http).fetch_jobs(_source("workable", "umbrella"))

        [posting] = result.postings
        assert posting.external_job_id == "A1B2C3D4E5"
        assert posting.url == "https://apply.workable.com/j/A1B2C3D4E5"
        assert posting.apply_url == "https://apply.workable.com/j/A1B2C3D4E5/apply"
        assert posting.body.splitlines()[0] == "Location: Recife, PE, Brazil, Remote"
        assert "Employment: Full-time" in posting.body
        assert posting.created_at == datetime(2026, 10, 3, tzinfo=timezone.utc)
    finally:
        http.close()


def test_board_key_falls_back_to_repo_when_external_key_missing(fixture_json):
    url = "https://apply.workable.com/api/v1/widget/accounts/umbrella"
    http = _make_http(_serve(url, fixture_json("workable_widget.json")))
    try:
        source = _source("workable", "umbrella")
        source.external_key = None
        assert len(WorkableWidgetConnector(http).fetch_jobs(source).postings) == 1
    finally:
        http.close()
