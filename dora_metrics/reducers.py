"""DORA metric reducers.

Each reducer is a pure function over the activity records of one window and
produces the metric at three levels: per user, per repository, and for the
organization as a whole.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, Field

from dora_metrics.models import (
    IssueRecord,
    OrgMetrics,
    PullRequestRecord,
    ReleaseRecord,
    RepoMetrics,
    TimeWindow,
    UserMetrics,
    WindowMetrics,
)

PRECISION = 2


class ReducerResult(BaseModel):
    """One metric aggregated per user, per repository and organization-wide."""

    users: dict[str, float] = Field(default_factory=dict)
    repos: dict[str, float] = Field(default_factory=dict)
    org: float = 0


class _Tally:
    """Running sums and counts for users, repos and the org."""

    def __init__(self) -> None:
        self.user_sum: dict[str, float] = defaultdict(float)
        self.user_count: dict[str, int] = defaultdict(int)
        self.repo_sum: dict[str, float] = defaultdict(float)
        self.repo_count: dict[str, int] = defaultdict(int)
        self.org_sum = 0.0
        self.org_count = 0

    def add(self, user: str, repo: str, value: float = 1.0) -> None:
        self.user_sum[user] += value
        self.user_count[user] += 1
        self.repo_sum[repo] += value
        self.repo_count[repo] += 1
        self.org_sum += value
        self.org_count += 1

    def totals(self) -> ReducerResult:
        return ReducerResult(
            users=dict(self.user_sum),
            repos=dict(self.repo_sum),
            org=self.org_sum,
        )

    def averages(self) -> ReducerResult:
        # Subjects without samples never appear; the org falls back to 0
        return ReducerResult(
            users={u: s / self.user_count[u] for u, s in self.user_sum.items()},
            repos={r: s / self.repo_count[r] for r, s in self.repo_sum.items()},
            org=self.org_sum / self.org_count if self.org_count else 0,
        )


def _hours(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def deployment_frequency(releases: Iterable[ReleaseRecord]) -> ReducerResult:
    """Count releases per user, per repository and for the organization."""
    tally = _Tally()
    for release in releases:
        tally.add(release.user, release.repo)
    return tally.totals()


def lead_time_for_changes(pull_requests: Iterable[PullRequestRecord]) -> ReducerResult:
    """Average hours from first commit to merge over merged pull requests.

    Unmerged pull requests are ignored. When the first commit is unknown the
    PR creation time is used as the start.
    """
    tally = _Tally()
    for pr in pull_requests:
        if not pr.merged_at:
            continue

        start_time = pr.first_commit_at or pr.timestamp
        tally.add(pr.user, pr.repo, _hours(start_time, pr.merged_at))
    return tally.averages()


def change_failure_rate(issues: Iterable[IssueRecord]) -> ReducerResult:
    """Percentage of issues labelled ``failure``.

    A subject with no issues has a rate of 0.
    """
    total = _Tally()
    failures = _Tally()
    for issue in issues:
        total.add(issue.user, issue.repo)
        if issue.is_failure:
            failures.add(issue.user, issue.repo)

    def rate(failed: float, count: int) -> float:
        return failed / count * 100 if count else 0

    return ReducerResult(
        users={u: rate(failures.user_sum.get(u, 0), n) for u, n in total.user_count.items()},
        repos={r: rate(failures.repo_sum.get(r, 0), n) for r, n in total.repo_count.items()},
        org=rate(failures.org_sum, total.org_count),
    )


def time_to_restore_service(issues: Iterable[IssueRecord]) -> ReducerResult:
    """Average hours from creation to close over closed failure issues."""
    tally = _Tally()
    for issue in issues:
        if not issue.is_failure or issue.closed_at is None:
            continue

        tally.add(issue.user, issue.repo, _hours(issue.created_at, issue.closed_at))
    return tally.averages()


def _metric_fields(
    subject: str,
    side: str,
    deployments: ReducerResult,
    lead_time: ReducerResult,
    failure_rate: ReducerResult,
    restore_time: ReducerResult,
) -> dict[str, float]:
    def value(result: ReducerResult) -> float:
        return round(getattr(result, side).get(subject, 0), PRECISION)

    return {
        "deployment_frequency": value(deployments),
        "lead_time_for_changes": value(lead_time),
        "change_failure_rate": value(failure_rate),
        "time_to_restore_service": value(restore_time),
    }


def combine(
    owner: str,
    repos: Iterable[str],
    window: TimeWindow,
    deployments: ReducerResult,
    lead_time: ReducerResult,
    failure_rate: ReducerResult,
    restore_time: ReducerResult,
) -> WindowMetrics:
    """Merge the four reducer results into per-subject metric tuples.

    Users are the union of every user seen by any reducer. Repositories are
    the requested ones plus any seen in the records. Missing values are 0.
    """
    results = (deployments, lead_time, failure_rate, restore_time)

    users: set[str] = set()
    repo_names: set[str] = set(repos)
    for result in results:
        users.update(result.users)
        repo_names.update(result.repos)

    return WindowMetrics(
        window=window,
        users=[
            UserMetrics(user=user, **_metric_fields(user, "users", *results))
            for user in sorted(users)
        ],
        repos=[
            RepoMetrics(repo=repo, **_metric_fields(repo, "repos", *results))
            for repo in sorted(repo_names)
        ],
        org=OrgMetrics(
            org=owner,
            deployment_frequency=round(deployments.org, PRECISION),
            lead_time_for_changes=round(lead_time.org, PRECISION),
            change_failure_rate=round(failure_rate.org, PRECISION),
            time_to_restore_service=round(restore_time.org, PRECISION),
        ),
    )
