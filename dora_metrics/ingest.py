"""Ingest GitHub activity into the activity store."""

import asyncio
from datetime import datetime

from dora_metrics.clients import GitHubClient
from dora_metrics.database.repository import ActivityRepository
from dora_metrics.logging_config import get_logger

logger = get_logger("ingest")


async def ingest_repository(
    owner: str,
    repo: str,
    since: datetime,
    github: GitHubClient,
    activity: ActivityRepository,
) -> dict:
    """Fetch and store releases, pull requests and issues for one repository.

    Returns counts of stored records.
    """
    releases, pull_requests, issues = await asyncio.gather(
        github.get_releases(owner, repo, since),
        github.get_pull_requests(owner, repo, since),
        github.get_issues(owner, repo, since),
    )

    release_count = await activity.upsert_releases(releases)
    pr_count = await activity.upsert_pull_requests(pull_requests)
    issue_count = await activity.upsert_issues(issues)

    logger.info(
        f"[Ingest] {owner}/{repo}: {release_count} releases, {pr_count} PRs, {issue_count} issues"
    )
    return {
        "repo": repo,
        "releases": release_count,
        "pull_requests": pr_count,
        "issues": issue_count,
    }


async def ingest_organization(
    owner: str,
    since: datetime,
    github: GitHubClient,
    activity: ActivityRepository,
) -> dict:
    """Ingest every repository of an organization.

    A repository that fails is logged and reported; the others still run.
    """
    logger.info(f"[Ingest] Fetching repositories for {owner} since {since.date()}")

    repos = await github.get_repos(owner)
    await activity.upsert_repositories(repos)

    async def ingest_one(name: str) -> dict:
        try:
            return await ingest_repository(owner, name, since, github, activity)
        except Exception as e:
            logger.warning(f"[Ingest] Warning: {owner}/{name} failed: {e}")
            return {"repo": name, "error": str(e)}

    results = await asyncio.gather(*[ingest_one(r.name) for r in repos])

    failed = [r for r in results if "error" in r]
    logger.info(f"[Ingest] Complete: {len(results) - len(failed)} repos ingested, {len(failed)} failed")
    return {
        "owner": owner,
        "repositories": len(repos),
        "failed": len(failed),
        "results": list(results),
    }
