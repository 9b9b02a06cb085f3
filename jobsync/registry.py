from __future__ import annotations

from typing import Callable, Dict, Optional

from jobsync.config.settings import GitHubSettings
from jobsync.connectors import (
    AshbyBoardConnector,
    BaseConnector,
    GitHubIssuesConnector,
    GreenhouseBoardConnector,
    LeverPostingsConnector,
    RecruiteeCareersConnector,
    WorkableWidgetConnector,
)
from jobsync.http import PoliteHttpClient


class UnknownSourceTypeError(KeyError):
    def __init__(self, source_type: str) -> None:
        super().__init__(source_type)
        self.source_type = source_type

    def __str__(self) -> str:
        return f"No connector registered for source type: {self.source_type}"


ConnectorFactory = Callable[[PoliteHttpClient, GitHubSettings], BaseConnector]


def _github(http: PoliteHttpClient, settings: GitHubSettings) -> BaseConnector:
    return GitHubIssuesConnector(
        http,
        token=settings.token,
        api_base_url=settings.api_base_url,
        per_page=settings.per_page,
        max_pages=settings.max_pages,
    )


CONNECTOR_FACTORIES: Dict[str, ConnectorFactory] = {
    "github_issues": _github,
    "greenhouse": lambda http, _s: GreenhouseBoardConnector(http),
    "lever": lambda http, _s: LeverPostingsConnector(http),
    "ashby": lambda http, _s: AshbyBoardConnector(http),
    "workable": lambda http, _s: WorkableWidgetConnector(http),
    "recruitee": lambda http, _s: RecruiteeCareersConnector(http),
}


def get_connector(
    source_type: str,
    http: PoliteHttpClient,
    github: Optional[GitHubSettings] = None,
) -> BaseConnector:
    factory = CONNECTOR_FACTORIES.get(source_type)
    if factory is None:
        raise UnknownSourceTypeError(source_type)
    return factory(http, github or GitHubSettings())
