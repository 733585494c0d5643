"""Data models for DORA metrics."""

from datetime import date, datetime, time, timezone
from enum import Enum

from pydantic import BaseModel, Field

UNKNOWN_USER = "unknown"
FAILURE_LABEL = "failure"


class Granularity(str, Enum):
    """Time bucket granularity."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ScoreScope(str, Enum):
    """Subject level a cached score belongs to."""

    ORGANIZATION = "organization"
    REPOSITORY = "repository"
    USER = "user"


class TimeWindow(BaseModel):
    """Closed time window covering whole UTC days from start to end."""

    start: date
    end: date
    granularity: Granularity

    @property
    def key(self) -> str:
        return self.start.isoformat()

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.start, time.min, tzinfo=timezone.utc)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.end, time.max, tzinfo=timezone.utc)


class GitHubRepository(BaseModel):
    """Repository discovered for an organization."""

    owner: str
    name: str
    user: str = UNKNOWN_USER
    created_at: datetime


class ActivityRecord(BaseModel):
    """Raw activity ingested from GitHub."""

    org: str
    repo: str
    user: str = UNKNOWN_USER
    timestamp: datetime
    github_id: int | None = None


class ReleaseRecord(ActivityRecord):
    """A release; timestamp is the release creation time."""

    name: str = ""
    tag_name: str = ""


class PullRequestRecord(ActivityRecord):
    """A pull request; timestamp is the PR creation time."""

    number: int = 0
    title: str = ""
    merged_at: datetime | None = None
    first_commit_at: datetime | None = None  # Earliest commit on the PR


class IssueRecord(ActivityRecord):
    """An issue; timestamp is the issue creation time."""

    number: int = 0
    title: str = ""
    labels: set[str] = Field(default_factory=set)
    closed_at: datetime | None = None

    @property
    def created_at(self) -> datetime:
        return self.timestamp

    @property
    def is_failure(self) -> bool:
        return FAILURE_LABEL in self.labels


class MetricTuple(BaseModel):
    """The four DORA metrics for one subject in one window.

    Lead time and restore time are in hours, change failure rate is a
    percentage between 0 and 100.
    """

    deployment_frequency: float = 0
    lead_time_for_changes: float = 0
    change_failure_rate: float = 0
    time_to_restore_service: float = 0


class UserMetrics(MetricTuple):
    """Metrics attributed to a single contributor."""

    user: str


class RepoMetrics(MetricTuple):
    """Metrics for a single repository."""

    repo: str


class OrgMetrics(MetricTuple):
    """Metrics for the organization as a whole."""

    org: str


class ScoreEntry(BaseModel):
    """A score to be cached, keyed by scope, subject and window."""

    scope: ScoreScope
    org: str
    repo: str | None = None
    user: str | None = None
    window: TimeWindow
    metrics: MetricTuple


class WindowMetrics(BaseModel):
    """All subject levels computed for a single window."""

    window: TimeWindow
    users: list[UserMetrics] = Field(default_factory=list)
    repos: list[RepoMetrics] = Field(default_factory=list)
    org: OrgMetrics


class DoraMetrics(BaseModel):
    """DORA metrics for a date range, keyed by window start (ISO date)."""

    users: dict[str, list[UserMetrics]] = Field(default_factory=dict)
    repos: dict[str, list[RepoMetrics]] = Field(default_factory=dict)
    orgs: dict[str, OrgMetrics] = Field(default_factory=dict)
