"""Shared fixtures and in-memory storage fakes."""

from collections.abc import Iterable, Sequence
from datetime import date, datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from dora_metrics.database.models import Base
from dora_metrics.models import (
    Granularity,
    IssueRecord,
    MetricTuple,
    PullRequestRecord,
    ReleaseRecord,
    ScoreEntry,
    ScoreScope,
    TimeWindow,
)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeActivityStore:
    """Activity store over in-memory lists, counting queries."""

    def __init__(
        self,
        repos: Iterable[str] = (),
        releases: Iterable[ReleaseRecord] = (),
        pull_requests: Iterable[PullRequestRecord] = (),
        issues: Iterable[IssueRecord] = (),
    ):
        self.repos = set(repos)
        self.releases = list(releases)
        self.pull_requests = list(pull_requests)
        self.issues = list(issues)
        self.queries = 0

    @staticmethod
    def _matches(record, owner: str, repo: str | None, window: TimeWindow) -> bool:
        return (
            record.org == owner
            and (repo is None or record.repo == repo)
            and window.starts_at <= record.timestamp <= window.ends_at
        )

    async def list_repositories(self, owner: str) -> set[str]:
        self.queries += 1
        return set(self.repos)

    async def find_releases(self, owner, repo, window):
        self.queries += 1
        return [r for r in self.releases if self._matches(r, owner, repo, window)]

    async def find_pull_requests(self, owner, repo, window):
        self.queries += 1
        return [r for r in self.pull_requests if self._matches(r, owner, repo, window)]

    async def find_issues(self, owner, repo, window):
        self.queries += 1
        return [r for r in self.issues if self._matches(r, owner, repo, window)]


class FakeScoreCache:
    """Score cache over a dict keyed like the dora_scores unique constraint."""

    def __init__(self):
        self.rows: dict[tuple, ScoreEntry] = {}
        self.lookups = 0
        self.writes = 0

    @staticmethod
    def key(entry: ScoreEntry) -> tuple:
        return (
            entry.scope,
            entry.org,
            entry.repo or "",
            entry.user or "",
            entry.window.start,
            entry.window.granularity,
        )

    async def lookup(
        self, owner: str, repo: str | None, windows: Sequence[TimeWindow], granularity: Granularity
    ) -> dict[date, MetricTuple]:
        self.lookups += 1
        bounds = {(w.start, w.end) for w in windows}
        return {
            start: entry.metrics
            for (scope, org, r, user, start, g), entry in self.rows.items()
            if scope == ScoreScope.ORGANIZATION
            and org == owner
            and r == (repo or "")
            and g == granularity
            and (entry.window.start, entry.window.end) in bounds
        }

    async def load_breakdown(self, owner, repo, windows, granularity) -> list[ScoreEntry]:
        bounds = {(w.start, w.end) for w in windows}
        entries = []
        for (scope, org, r, user, start, g), entry in self.rows.items():
            bounded = (entry.window.start, entry.window.end) in bounds
            if org != owner or g != granularity or not bounded:
                continue
            if scope == ScoreScope.REPOSITORY and (repo is None or r == repo):
                entries.append(entry)
            elif scope == ScoreScope.USER and r == (repo or ""):
                entries.append(entry)
        return entries

    async def upsert(self, entry: ScoreEntry) -> None:
        await self.upsert_many([entry])

    async def upsert_many(self, entries: Iterable[ScoreEntry]) -> int:
        entries = list(entries)
        for entry in entries:
            self.rows[self.key(entry)] = entry
        self.writes += len(entries)
        return len(entries)


@pytest.fixture
def make_store():
    return FakeActivityStore


@pytest.fixture
def acme_week_store() -> FakeActivityStore:
    """One release, one merged PR and one closed failure issue by bob in acme/svc."""
    return FakeActivityStore(
        repos=["svc"],
        releases=[
            ReleaseRecord(org="acme", repo="svc", user="bob", timestamp=utc(2024, 1, 2, 12), name="v1.0.0"),
        ],
        pull_requests=[
            PullRequestRecord(
                org="acme",
                repo="svc",
                user="bob",
                timestamp=utc(2024, 1, 2, 8),
                number=7,
                first_commit_at=utc(2024, 1, 2, 9),
                merged_at=utc(2024, 1, 2, 11),
            ),
        ],
        issues=[
            IssueRecord(
                org="acme",
                repo="svc",
                user="bob",
                timestamp=utc(2024, 1, 3, 10),
                number=12,
                labels={"failure"},
                closed_at=utc(2024, 1, 3, 14),
            ),
        ],
    )


@pytest.fixture
def score_cache() -> FakeScoreCache:
    return FakeScoreCache()


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory over a fresh SQLite database with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dora.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, expire_on_commit=False)

    await engine.dispose()
