from __future__ import annotations

import httpx
import pytest

from jobsync.config.settings import GitHubSettings
from jobsync.connectors import (
    AshbyBoardConnector,
    GitHubIssuesConnector,
    GreenhouseBoardConnector,
    LeverPostingsConnector,
    RecruiteeCareersConnector,
    WorkableWidgetConnector,
)
from jobsync.http import PoliteHttpClient
from jobsync.models import SOURCE_TYPES, Source
from jobsync.registry import CONNECTOR_FACTORIES, UnknownSourceTypeError, get_connector


@pytest.fixture
def http():
    client = PoliteHttpClient(
        user_agent="TestAgent/1.0",
        rate_limit_per_host_s=0.0,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[])),
        sleep=lambda _s: None,
    )
    try:
        yield client
    finally:
        client.close()


@pytest.mark.parametrize(
    "source_type, expected",
    [
        ("github_issues", GitHubIssuesConnector),
        ("greenhouse", GreenhouseBoardConnector),
        ("lever", LeverPostingsConnector),
        ("ashby", AshbyBoardConnector),
        ("workable", WorkableWidgetConnector),
        ("recruitee", RecruiteeCareersConnector),
    ],
)
def test_get_connector_dispatches_on_source_type(http, source_type, expected):
    connector = get_connector(source_type, http)

    assert isinstance(connector, expected)
    assert connector.source_type == source_type


def test_every_known_source_type_is_registered():
    assert set(CONNECTOR_FACTORIES) == set(SOURCE_TYPES)


def test_unknown_source_type_raises(http):
    with pytest.raises(UnknownSourceTypeError) as exc:
        get_connector("smartrecruiters", http)

    assert exc.value.source_type == "smartrecruiters"
    assert "smartrecruiters" in str(exc.value)


def test_github_connector_uses_token_from_settings():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json=[])

    client = PoliteHttpClient(
        user_agent="TestAgent/1.0",
        rate_limit_per_host_s=0.0,
        transport=httpx.MockTransport(handler),
        sleep=lambda _s: None,
    )
    try:
        connector = get_connector("github_issues", client, GitHubSettings(token="abc", per_page=5))
        connector.fetch_jobs(
            Source(
                id="s",
                source_type="github_issues",
                full_name="backend-br/vagas",
                owner="backend-br",
                repo="vagas",
                url="https://github.com/backend-br/vagas",
            )
        )
        assert seen == ["Bearer abc"]
    finally:
        client.close()
