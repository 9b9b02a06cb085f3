from __future__ import annotations

import httpx
import pytest

from jobsync.http import FetchError, HostNotAllowedError, PoliteHttpClient, parse_rate_limit_headers


def _make_http(handler, **overrides):
    kwargs = dict(
        user_agent="TestAgent/1.0",
        rate_limit_per_host_s=0.0,
        max_retries=0,
        transport=httpx.MockTransport(handler),
        sleep=lambda _s: None,
    )
    kwargs.update(overrides)
    return PoliteHttpClient(**kwargs)


def test_get_json_sends_user_agent_and_params():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["ua"] = request.headers.get("User-Agent")
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"ok": True})

    http = _make_http(handler)
    try:
        resp = http.get_json("https://api.lever.co/v0/postings/acme", params={"mode": "json", "skip": 0, "x": None})
        assert resp.data == {"ok": True}
        assert resp.status_code == 200
        assert seen["ua"] == "TestAgent/1.0"
        assert seen["params"] == {"mode": "json", "skip": "0"}
    finally:
        http.close()


def test_host_outside_allowlist_is_refused_before_any_request():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, json={})

    http = _make_http(handler)
    try:
        with pytest.raises(HostNotAllowedError) as exc:
            http.get_json("https://evil.example.com/jobs")
        assert exc.value.host == "evil.example.com"
        assert calls == []
    finally:
        http.close()


def test_recruitee_subdomains_are_allowed_by_suffix():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"offers": []})

    http = _make_http(handler)
    try:
        assert http.get_json("https://initech.recruitee.com/api/offers/").data == {"offers": []}
    finally:
        http.close()


def test_redirect_to_unlisted_host_is_refused():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"Location": "https://tracker.example.net/jobs"})

    http = _make_http(handler)
    try:
        with pytest.raises(HostNotAllowedError):
            http.get_json("https://api.ashbyhq.com/posting-api/job-board/acme")
    finally:
        http.close()


def test_retries_on_503_then_succeeds():
    attempts = {"n": 0}
    sleeps = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["n"] += 1
        if attempts["n"] < 3:
            return httpx.Response(503, headers={"Retry-After": "2"})
        return httpx.Response(200, json=[])

    http = _make_http(handler, max_retries=2, sleep=sleeps.append)
    try:
        assert http.get_json("https://api.github.com/repos/a/b/issues").data == []
        assert attempts["n"] == 3
        assert sleeps == [2.0, 2.0]
    finally:
        http.close()


def test_non_2xx_raises_fetch_error_with_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    http = _make_http(handler)
    try:
        with pytest.raises(FetchError) as exc:
            http.get_json("https://boards-api.greenhouse.io/v1/boards/missing/jobs")
        assert exc.value.status_code == 404
    finally:
        http.close()


def test_invalid_json_raises_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    http = _make_http(handler)
    try:
        with pytest.raises(FetchError):
            http.get_json("https://apply.workable.com/api/v1/widget/accounts/acme")
    finally:
        http.close()


def test_transport_error_becomes_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    http = _make_http(handler, max_retries=1)
    try:
        with pytest.raises(FetchError) as exc:
            http.get_json("https://api.github.com/repos/a/b/issues")
        assert exc.value.status_code is None
    finally:
        http.close()


def test_low_remaining_quota_widens_host_interval():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[], headers={"X-RateLimit-Remaining": "3", "X-RateLimit-Reset": "0"})

    http = _make_http(handler, low_quota_threshold=10, low_quota_interval_s=2.5)
    try:
        url = "https://api.github.com/repos/a/b/issues"
        assert http.host_interval(url) == 0.0
        resp = http.get_json(url)
        assert resp.rate_limit.remaining == 3
        assert http.host_interval(url) == 2.5
        assert http.host_interval("https://api.lever.co/v0/postings/acme") == 0.0
    finally:
        http.close()


def test_parse_rate_limit_headers_ignores_garbage():
    info = parse_rate_limit_headers({"X-RateLimit-Remaining": "abc"})

    assert info.remaining is None
    assert info.reset_epoch_s is None
