"""Aggregation orchestrator for DORA metrics.

Drives a single ``compute_metrics`` call:
1. Validates parameters and resolves the repositories to report on
2. Splits the date range into windows
3. Serves windows already in the score cache
4. Computes the remaining windows IN PARALLEL using asyncio.gather()
5. Caches and merges everything into a DoraMetrics result
"""

import asyncio
import warnings
from collections.abc import Callable, Sequence
from datetime import date, datetime, timezone

from dora_metrics import reducers
from dora_metrics.errors import EmptyResultWarning, MissingParameter
from dora_metrics.logging_config import get_logger
from dora_metrics.models import (
    DoraMetrics,
    Granularity,
    MetricTuple,
    OrgMetrics,
    RepoMetrics,
    ScoreEntry,
    ScoreScope,
    TimeWindow,
    UserMetrics,
    WindowMetrics,
)
from dora_metrics.store import ActivityStore, ScoreCache
from dora_metrics.windows import bucketize, parse_date, parse_granularity

logger = get_logger("aggregator")

METRIC_FIELDS = set(MetricTuple.model_fields)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _warn_if_empty(records: list, kind: str, owner: str, repo: str | None, window: TimeWindow) -> None:
    if not records:
        warnings.warn(
            f"No {kind} found for {owner}/{repo or '*'} in {window.start} to {window.end}",
            EmptyResultWarning,
            stacklevel=3,
        )


class DoraAggregator:
    """Computes per-user, per-repository and per-organization DORA metrics."""

    def __init__(
        self,
        activity_store: ActivityStore,
        score_cache: ScoreCache,
        today: Callable[[], date] = _utc_today,
    ):
        self.activity_store = activity_store
        self.score_cache = score_cache
        self.today = today

    async def compute_metrics(
        self,
        owner: str,
        start_date: str | date | None,
        end_date: str | date | None,
        granularity: str | Granularity | None,
        repo: str | None = None,
    ) -> DoraMetrics:
        """Compute DORA metrics for ``owner`` between two dates.

        Args:
            owner: GitHub organization.
            start_date: First day of the range (ISO 8601).
            end_date: Last day of the range, inclusive (ISO 8601).
            granularity: One of "day", "week" or "month".
            repo: Restrict the computation to a single repository.

        Returns:
            Metrics keyed by window start date (ISO 8601).

        Raises:
            MissingParameter: If a required argument is absent.
            InvalidGranularity: If ``granularity`` is not supported.
            InvalidParameter: If a date cannot be parsed.
            StorageError: If any read or write against the datastore fails.
        """
        missing = [
            name
            for name, value in (
                ("owner", owner),
                ("startDate", start_date),
                ("endDate", end_date),
                ("granularity", granularity),
            )
            if not value
        ]
        if missing:
            raise MissingParameter(*missing)

        granularity = parse_granularity(granularity)
        start = parse_date(start_date)
        end = parse_date(end_date)

        logger.info(
            f"Computing DORA metrics for {owner}/{repo or '*'}: "
            f"{start} to {end} by {granularity.value}"
        )

        if repo:
            repos = [repo]
        else:
            repos = sorted(await self.activity_store.list_repositories(owner))

        windows = bucketize(start, end, granularity)
        if not windows:
            return DoraMetrics()

        cached = await self._cached_windows(owner, repo, windows, granularity)
        uncached = [w for w in windows if w.start not in cached]
        logger.info(f"{len(cached)} cached, {len(uncached)} to compute")

        fresh = await self._compute_windows(owner, repo, repos, uncached)

        # Downstream consumers read the persisted scores after every call
        fresh_entries = [entry for wm in fresh for entry in self._score_entries(owner, repo, wm)]
        stored = await self.score_cache.upsert_many(fresh_entries)
        logger.debug(f"Persisted {stored} scores for {owner}")

        return self._merge(windows, cached, fresh)

    async def _cached_windows(
        self,
        owner: str,
        repo: str | None,
        windows: Sequence[TimeWindow],
        granularity: Granularity,
    ) -> dict[date, WindowMetrics]:
        """Rebuild cached windows, skipping windows that have not closed yet."""
        today = self.today()
        closed = {w.start: w for w in windows if w.end < today}

        org_scores = await self.score_cache.lookup(owner, repo, list(closed.values()), granularity)
        if not org_scores:
            return {}

        rebuilt = {
            start: WindowMetrics(
                window=closed[start],
                org=OrgMetrics(org=owner, **metrics.model_dump(include=METRIC_FIELDS)),
            )
            for start, metrics in org_scores.items()
            if start in closed
        }

        breakdown = await self.score_cache.load_breakdown(
            owner, repo, [wm.window for wm in rebuilt.values()], granularity
        )
        for entry in breakdown:
            wm = rebuilt.get(entry.window.start)
            if wm is None:
                continue
            values = entry.metrics.model_dump(include=METRIC_FIELDS)
            if entry.scope == ScoreScope.REPOSITORY and entry.repo:
                wm.repos.append(RepoMetrics(repo=entry.repo, **values))
            elif entry.scope == ScoreScope.USER and entry.user:
                wm.users.append(UserMetrics(user=entry.user, **values))

        for wm in rebuilt.values():
            wm.repos.sort(key=lambda m: m.repo)
            wm.users.sort(key=lambda m: m.user)
        return rebuilt

    async def _compute_windows(
        self,
        owner: str,
        repo: str | None,
        repos: list[str],
        windows: Sequence[TimeWindow],
    ) -> list[WindowMetrics]:
        """Compute windows IN PARALLEL; the first failure cancels the rest."""
        tasks = [
            asyncio.create_task(self._compute_window(owner, repo, repos, w)) for w in windows
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _compute_window(
        self,
        owner: str,
        repo: str | None,
        repos: list[str],
        window: TimeWindow,
    ) -> WindowMetrics:
        """Fetch one window's activity and run the four reducers over it."""
        releases, pull_requests, issues = await asyncio.gather(
            self.activity_store.find_releases(owner, repo, window),
            self.activity_store.find_pull_requests(owner, repo, window),
            self.activity_store.find_issues(owner, repo, window),
        )
        _warn_if_empty(releases, "releases", owner, repo, window)
        _warn_if_empty(pull_requests, "pull requests", owner, repo, window)
        _warn_if_empty(issues, "issues", owner, repo, window)

        logger.debug(
            f"[{window.key}] {len(releases)} releases, {len(pull_requests)} PRs, "
            f"{len(issues)} issues"
        )

        wm = reducers.combine(
            owner,
            repos,
            window,
            deployments=reducers.deployment_frequency(releases),
            lead_time=reducers.lead_time_for_changes(pull_requests),
            failure_rate=reducers.change_failure_rate(issues),
            restore_time=reducers.time_to_restore_service(issues),
        )

        await self.score_cache.upsert_many(self._score_entries(owner, repo, wm))
        return wm

    @staticmethod
    def _score_entries(owner: str, repo: str | None, wm: WindowMetrics) -> list[ScoreEntry]:
        """Cache entries for a computed window at all three subject levels."""
        entries = [
            ScoreEntry(
                scope=ScoreScope.ORGANIZATION,
                org=owner,
                repo=repo,
                window=wm.window,
                metrics=MetricTuple(**wm.org.model_dump(include=METRIC_FIELDS)),
            )
        ]
        entries.extend(
            ScoreEntry(
                scope=ScoreScope.REPOSITORY,
                org=owner,
                repo=m.repo,
                window=wm.window,
                metrics=MetricTuple(**m.model_dump(include=METRIC_FIELDS)),
            )
            for m in wm.repos
        )
        entries.extend(
            ScoreEntry(
                scope=ScoreScope.USER,
                org=owner,
                repo=repo,
                user=m.user,
                window=wm.window,
                metrics=MetricTuple(**m.model_dump(include=METRIC_FIELDS)),
            )
            for m in wm.users
        )
        return entries

    @staticmethod
    def _merge(
        windows: Sequence[TimeWindow],
        cached: dict[date, WindowMetrics],
        fresh: Sequence[WindowMetrics],
    ) -> DoraMetrics:
        by_start = dict(cached)
        by_start.update((wm.window.start, wm) for wm in fresh)

        result = DoraMetrics()
        for window in windows:
            wm = by_start[window.start]
            result.users[window.key] = wm.users
            result.repos[window.key] = wm.repos
            result.orgs[window.key] = wm.org
        return result
