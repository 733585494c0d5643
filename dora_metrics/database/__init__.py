"""Database module for DORA metrics."""

from dora_metrics.database.models import (
    Base,
    DoraScoreRow,
    IssueRow,
    PullRequestRow,
    ReleaseRow,
    RepositoryRow,
)
from dora_metrics.database.repository import ActivityRepository, ScoreRepository
from dora_metrics.database.session import get_database_url, get_session_factory

__all__ = [
    "Base",
    "RepositoryRow",
    "ReleaseRow",
    "PullRequestRow",
    "IssueRow",
    "DoraScoreRow",
    "ActivityRepository",
    "ScoreRepository",
    "get_database_url",
    "get_session_factory",
]
