"""Storage interfaces the aggregation engine depends on."""

from collections.abc import Iterable, Sequence
from datetime import date
from typing import Protocol

from dora_metrics.models import (
    Granularity,
    IssueRecord,
    MetricTuple,
    PullRequestRecord,
    ReleaseRecord,
    ScoreEntry,
    TimeWindow,
)


class ActivityStore(Protocol):
    """Read-only queries over ingested activity records.

    ``repo=None`` matches every repository of the organization. Timestamps
    are matched against ``window.starts_at <= t <= window.ends_at``.
    """

    async def list_repositories(self, owner: str) -> set[str]: ...

    async def find_releases(
        self, owner: str, repo: str | None, window: TimeWindow
    ) -> list[ReleaseRecord]: ...

    async def find_pull_requests(
        self, owner: str, repo: str | None, window: TimeWindow
    ) -> list[PullRequestRecord]: ...

    async def find_issues(
        self, owner: str, repo: str | None, window: TimeWindow
    ) -> list[IssueRecord]: ...


class ScoreCache(Protocol):
    """Persisted per-window scores.

    ``repo`` in lookups is the repository filter of the original request
    (``None`` for the whole organization). A cached score only matches a
    window with the same start and end, so a clamped window never stands
    in for a full one.
    """

    async def lookup(
        self,
        owner: str,
        repo: str | None,
        windows: Sequence[TimeWindow],
        granularity: Granularity,
    ) -> dict[date, MetricTuple]: ...

    async def load_breakdown(
        self,
        owner: str,
        repo: str | None,
        windows: Sequence[TimeWindow],
        granularity: Granularity,
    ) -> list[ScoreEntry]: ...

    async def upsert(self, entry: ScoreEntry) -> None: ...

    async def upsert_many(self, entries: Iterable[ScoreEntry]) -> int: ...
