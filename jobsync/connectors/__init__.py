from jobsync.connectors.ashby import AshbyBoardConnector
from jobsync.connectors.base import AtsBoardConnector, BaseConnector
from jobsync.connectors.github import GitHubIssuesConnector
from jobsync.connectors.greenhouse import GreenhouseBoardConnector
from jobsync.connectors.lever import LeverPostingsConnector
from jobsync.connectors.recruitee import RecruiteeCareersConnector
from jobsync.connectors.workable import WorkableWidgetConnector

__all__ = [
    "AshbyBoardConnector",
    "AtsBoardConnector",
    "BaseConnector",
    "GitHubIssuesConnector",
    "GreenhouseBoardConnector",
    "LeverPostingsConnector",
    "RecruiteeCareersConnector",
    "WorkableWidgetConnector",
]
