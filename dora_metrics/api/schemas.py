"""API response schemas."""

from pydantic import BaseModel

from dora_metrics.models import DoraMetrics, OrgMetrics, RepoMetrics, UserMetrics


class UserMetricsEntry(BaseModel):
    """User metrics for one window."""

    key: str
    value: list[UserMetrics]


class RepoMetricsEntry(BaseModel):
    """Repository metrics for one window."""

    key: str
    value: list[RepoMetrics]


class OrgMetricsEntry(BaseModel):
    """Organization metrics for one window."""

    key: str
    value: list[OrgMetrics]


class DoraMetricsData(BaseModel):
    """Per-window metrics for users, repositories and the organization."""

    users: list[UserMetricsEntry]
    repos: list[RepoMetricsEntry]
    orgs: list[OrgMetricsEntry]

    @classmethod
    def from_metrics(cls, metrics: DoraMetrics) -> "DoraMetricsData":
        return cls(
            users=[UserMetricsEntry(key=k, value=v) for k, v in metrics.users.items()],
            repos=[RepoMetricsEntry(key=k, value=v) for k, v in metrics.repos.items()],
            orgs=[OrgMetricsEntry(key=k, value=[v]) for k, v in metrics.orgs.items()],
        )


class DoraMetricsResponse(BaseModel):
    """DORA metrics API response."""

    code: int = 200
    message: str = "Successfully fetched DORA metrics"
    data: DoraMetricsData
