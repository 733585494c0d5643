"""Repository layer for database operations."""

from collections.abc import Iterable, Sequence
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dora_metrics.database.models import (
    DoraScoreRow,
    IssueRow,
    PullRequestRow,
    ReleaseRow,
    RepositoryRow,
)
from dora_metrics.errors import StorageError
from dora_metrics.logging_config import get_logger
from dora_metrics.models import (
    GitHubRepository,
    Granularity,
    IssueRecord,
    MetricTuple,
    PullRequestRecord,
    ReleaseRecord,
    ScoreEntry,
    ScoreScope,
    TimeWindow,
)

logger = get_logger("database.repository")

METRIC_FIELDS = (
    "deployment_frequency",
    "lead_time_for_changes",
    "change_failure_rate",
    "time_to_restore_service",
)


def _as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _insert(session: AsyncSession, model: type) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT DO UPDATE."""
    if session.bind is not None and session.bind.dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


def _matching_windows(windows: Sequence[TimeWindow]) -> Any:
    """Filter score rows to the exact bounds of the given windows."""
    return or_(
        *[
            and_(DoraScoreRow.window_start == w.start, DoraScoreRow.window_end == w.end)
            for w in windows
        ]
    )


class _SessionRepository:
    """Opens a short-lived session per operation so callers may run
    operations concurrently."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _fetch(self, query: Any, action: str) -> list:
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}")
            raise StorageError(f"Failed to {action}") from e

    async def _execute_all(self, build_statements: Any, action: str) -> None:
        try:
            async with self.session_factory() as session:
                for stmt in build_statements(session):
                    await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}")
            raise StorageError(f"Failed to {action}") from e


class ActivityRepository(_SessionRepository):
    """Ingested releases, pull requests and issues."""

    async def list_repositories(self, owner: str) -> set[str]:
        """Get the names of all repositories ingested for an organization."""
        query = select(RepositoryRow.repo).where(RepositoryRow.owner == owner)
        return set(await self._fetch(query, f"list repositories for {owner}"))

    def _window_query(self, model: type, owner: str, repo: str | None, window: TimeWindow) -> Any:
        query = select(model).where(
            model.org == owner,
            model.timestamp >= window.starts_at,
            model.timestamp <= window.ends_at,
        )
        if repo is not None:
            query = query.where(model.repo == repo)
        return query.order_by(model.timestamp.asc())

    async def find_releases(
        self, owner: str, repo: str | None, window: TimeWindow
    ) -> list[ReleaseRecord]:
        """Get releases created within the window."""
        rows = await self._fetch(
            self._window_query(ReleaseRow, owner, repo, window),
            f"fetch releases for {owner}",
        )
        return [
            ReleaseRecord(
                org=r.org,
                repo=r.repo,
                user=r.user,
                timestamp=_as_utc(r.timestamp),
                github_id=r.github_release_id,
                name=r.name,
                tag_name=r.tag_name,
            )
            for r in rows
        ]

    async def find_pull_requests(
        self, owner: str, repo: str | None, window: TimeWindow
    ) -> list[PullRequestRecord]:
        """Get pull requests created within the window."""
        rows = await self._fetch(
            self._window_query(PullRequestRow, owner, repo, window),
            f"fetch pull requests for {owner}",
        )
        return [
            PullRequestRecord(
                org=r.org,
                repo=r.repo,
                user=r.user,
                timestamp=_as_utc(r.timestamp),
                github_id=r.github_pr_id,
                number=r.number,
                title=r.title,
                merged_at=_as_utc(r.merged_at),
                first_commit_at=_as_utc(r.first_commit_at),
            )
            for r in rows
        ]

    async def find_issues(
        self, owner: str, repo: str | None, window: TimeWindow
    ) -> list[IssueRecord]:
        """Get issues created within the window."""
        rows = await self._fetch(
            self._window_query(IssueRow, owner, repo, window),
            f"fetch issues for {owner}",
        )
        return [
            IssueRecord(
                org=r.org,
                repo=r.repo,
                user=r.user,
                timestamp=_as_utc(r.timestamp),
                github_id=r.github_issue_id,
                number=r.number,
                title=r.title,
                labels=set(r.labels or []),
                closed_at=_as_utc(r.closed_at),
            )
            for r in rows
        ]

    async def upsert_repositories(self, repositories: list[GitHubRepository]) -> int:
        """Upsert repository records.

        Returns the number of records processed.
        """
        if not repositories:
            return 0

        def statements(session: AsyncSession):
            for repo in repositories:
                stmt = _insert(session, RepositoryRow).values(
                    owner=repo.owner,
                    repo=repo.name,
                    user=repo.user,
                    timestamp=repo.created_at,
                    fetched_at=datetime.now(timezone.utc),
                )
                yield stmt.on_conflict_do_update(
                    index_elements=["owner", "repo"],
                    set_={
                        "user": stmt.excluded.user,
                        "fetched_at": stmt.excluded.fetched_at,
                    },
                )

        await self._execute_all(statements, "store repositories")
        return len(repositories)

    async def upsert_releases(self, releases: list[ReleaseRecord]) -> int:
        """Upsert release records.

        Returns the number of records processed.
        """
        if not releases:
            return 0

        def statements(session: AsyncSession):
            for release in releases:
                stmt = _insert(session, ReleaseRow).values(
                    github_release_id=release.github_id,
                    org=release.org,
                    repo=release.repo,
                    user=release.user,
                    name=release.name,
                    tag_name=release.tag_name,
                    timestamp=release.timestamp,
                    fetched_at=datetime.now(timezone.utc),
                )
                yield stmt.on_conflict_do_update(
                    index_elements=["github_release_id"],
                    set_={
                        "name": stmt.excluded.name,
                        "tag_name": stmt.excluded.tag_name,
                        "fetched_at": stmt.excluded.fetched_at,
                    },
                )

        await self._execute_all(statements, "store releases")
        return len(releases)

    async def upsert_pull_requests(self, pull_requests: list[PullRequestRecord]) -> int:
        """Upsert pull request records.

        Returns the number of records processed.
        """
        if not pull_requests:
            return 0

        def statements(session: AsyncSession):
            for pr in pull_requests:
                stmt = _insert(session, PullRequestRow).values(
                    github_pr_id=pr.github_id,
                    org=pr.org,
                    repo=pr.repo,
                    user=pr.user,
                    number=pr.number,
                    title=pr.title,
                    timestamp=pr.timestamp,
                    merged_at=pr.merged_at,
                    first_commit_at=pr.first_commit_at,
                    fetched_at=datetime.now(timezone.utc),
                )
                yield stmt.on_conflict_do_update(
                    index_elements=["github_pr_id"],
                    set_={
                        "title": stmt.excluded.title,
                        "merged_at": stmt.excluded.merged_at,
                        "first_commit_at": stmt.excluded.first_commit_at,
                        "fetched_at": stmt.excluded.fetched_at,
                    },
                )

        await self._execute_all(statements, "store pull requests")
        return len(pull_requests)

    async def upsert_issues(self, issues: list[IssueRecord]) -> int:
        """Upsert issue records.

        Returns the number of records processed.
        """
        if not issues:
            return 0

        def statements(session: AsyncSession):
            for issue in issues:
                stmt = _insert(session, IssueRow).values(
                    github_issue_id=issue.github_id,
                    org=issue.org,
                    repo=issue.repo,
                    user=issue.user,
                    number=issue.number,
                    title=issue.title,
                    labels=sorted(issue.labels),
                    timestamp=issue.timestamp,
                    closed_at=issue.closed_at,
                    fetched_at=datetime.now(timezone.utc),
                )
                yield stmt.on_conflict_do_update(
                    index_elements=["github_issue_id"],
                    set_={
                        "title": stmt.excluded.title,
                        "labels": stmt.excluded.labels,
                        "closed_at": stmt.excluded.closed_at,
                        "fetched_at": stmt.excluded.fetched_at,
                    },
                )

        await self._execute_all(statements, "store issues")
        return len(issues)


class ScoreRepository(_SessionRepository):
    """Cached per-window DORA scores."""

    @staticmethod
    def _to_entry(row: DoraScoreRow) -> ScoreEntry:
        return ScoreEntry(
            scope=ScoreScope(row.scope),
            org=row.org,
            repo=row.repo or None,
            user=row.user or None,
            window=TimeWindow(
                start=row.window_start,
                end=row.window_end,
                granularity=Granularity(row.granularity),
            ),
            metrics=MetricTuple(**{field: getattr(row, field) for field in METRIC_FIELDS}),
        )

    async def lookup(
        self,
        owner: str,
        repo: str | None,
        windows: Sequence[TimeWindow],
        granularity: Granularity,
    ) -> dict[date, MetricTuple]:
        """Get organization-level scores for windows cached with the same bounds.

        Returns scores keyed by window start.
        """
        if not windows:
            return {}

        query = select(DoraScoreRow).where(
            DoraScoreRow.scope == ScoreScope.ORGANIZATION.value,
            DoraScoreRow.org == owner,
            DoraScoreRow.repo == (repo or ""),
            DoraScoreRow.user == "",
            DoraScoreRow.granularity == granularity.value,
            _matching_windows(windows),
        )
        rows = await self._fetch(query, f"look up cached scores for {owner}")
        return {row.window_start: self._to_entry(row).metrics for row in rows}

    async def load_breakdown(
        self,
        owner: str,
        repo: str | None,
        windows: Sequence[TimeWindow],
        granularity: Granularity,
    ) -> list[ScoreEntry]:
        """Get repository- and user-level scores for windows cached with the same bounds."""
        if not windows:
            return []

        repo_scope = DoraScoreRow.scope == ScoreScope.REPOSITORY.value
        if repo is not None:
            repo_scope = and_(repo_scope, DoraScoreRow.repo == repo)
        user_scope = and_(
            DoraScoreRow.scope == ScoreScope.USER.value,
            DoraScoreRow.repo == (repo or ""),
        )

        query = (
            select(DoraScoreRow)
            .where(
                DoraScoreRow.org == owner,
                DoraScoreRow.granularity == granularity.value,
                _matching_windows(windows),
                or_(repo_scope, user_scope),
            )
            .order_by(DoraScoreRow.window_start.asc())
        )
        rows = await self._fetch(query, f"load cached breakdown for {owner}")
        return [self._to_entry(row) for row in rows]

    async def upsert(self, entry: ScoreEntry) -> None:
        """Insert or update a single cached score."""
        await self.upsert_many([entry])

    async def upsert_many(self, entries: Iterable[ScoreEntry]) -> int:
        """Insert or update cached scores in one transaction.

        Returns the number of entries processed.
        """
        entries = list(entries)
        if not entries:
            return 0

        def statements(session: AsyncSession):
            for entry in entries:
                stmt = _insert(session, DoraScoreRow).values(
                    scope=entry.scope.value,
                    org=entry.org,
                    repo=entry.repo or "",
                    user=entry.user or "",
                    granularity=entry.window.granularity.value,
                    window_start=entry.window.start,
                    window_end=entry.window.end,
                    computed_at=datetime.now(timezone.utc),
                    **entry.metrics.model_dump(include=set(METRIC_FIELDS)),
                )
                yield stmt.on_conflict_do_update(
                    index_elements=["scope", "org", "repo", "user", "window_start", "granularity"],
                    set_={
                        "window_end": stmt.excluded.window_end,
                        "deployment_frequency": stmt.excluded.deployment_frequency,
                        "lead_time_for_changes": stmt.excluded.lead_time_for_changes,
                        "change_failure_rate": stmt.excluded.change_failure_rate,
                        "time_to_restore_service": stmt.excluded.time_to_restore_service,
                        "computed_at": stmt.excluded.computed_at,
                    },
                )

        await self._execute_all(statements, f"store {len(entries)} cached scores")
        return len(entries)
