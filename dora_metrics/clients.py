"""GitHub API client for activity ingestion."""

import os
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

import httpx

from dora_metrics.errors import GitHubAPIError
from dora_metrics.logging_config import get_logger
from dora_metrics.models import (
    UNKNOWN_USER,
    GitHubRepository,
    IssueRecord,
    PullRequestRecord,
    ReleaseRecord,
)

logger = get_logger("clients")

GITHUB_API_BASE = "https://api.github.com"


def _parse_datetime(value: str | None) -> datetime | None:
    """Parse GitHub ISO timestamps (e.g., '2024-01-08T19:08:28Z')."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _login(payload: dict | None) -> str:
    return (payload or {}).get("login") or UNKNOWN_USER


class GitHubClient:
    """Client for the GitHub REST API."""

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token
        self.base_url = base_url
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=30.0,
            transport=self.transport,
        )

    async def _get(self, client: httpx.AsyncClient, path: str, params: dict[str, Any]) -> httpx.Response:
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"GET {path} failed: {e}") from e
        return response

    async def _paginate(
        self, client: httpx.AsyncClient, path: str, params: dict[str, Any] | None = None
    ) -> AsyncIterator[list[dict]]:
        """Yield pages until the Link header has no next page."""
        page = 1
        while True:
            response = await self._get(client, path, {**(params or {}), "per_page": 100, "page": page})
            items = response.json()

            if not items:
                break

            yield items

            if 'rel="next"' not in response.headers.get("Link", ""):
                break
            page += 1

    async def get_repos(self, owner: str) -> list[GitHubRepository]:
        """Get all non-archived repos in the organization."""
        repos: list[GitHubRepository] = []

        async with self._client() as client:
            async for page in self._paginate(client, f"/orgs/{owner}/repos", {"type": "all"}):
                repos.extend(
                    GitHubRepository(
                        owner=owner,
                        name=r["name"],
                        user=_login(r.get("owner")),
                        created_at=_parse_datetime(r.get("created_at")) or datetime.now(timezone.utc),
                    )
                    for r in page
                    if not r.get("archived", False)
                )

        logger.info(f"[GitHub] Found {len(repos)} repos in {owner}")
        return repos

    async def get_releases(self, owner: str, repo: str, since: datetime) -> list[ReleaseRecord]:
        """Get releases created at or after ``since``."""
        releases: list[ReleaseRecord] = []

        async with self._client() as client:
            async for page in self._paginate(client, f"/repos/{owner}/{repo}/releases"):
                for release in page:
                    created_at = _parse_datetime(release["created_at"])
                    if created_at < since:
                        continue

                    releases.append(
                        ReleaseRecord(
                            org=owner,
                            repo=repo,
                            user=_login(release.get("author")),
                            timestamp=created_at,
                            github_id=release["id"],
                            name=release.get("name") or "",
                            tag_name=release.get("tag_name") or "",
                        )
                    )

        return releases

    async def get_pull_requests(self, owner: str, repo: str, since: datetime) -> list[PullRequestRecord]:
        """Get pull requests created at or after ``since``.

        Merged pull requests also carry the date of their first commit.
        """
        pull_requests: list[PullRequestRecord] = []

        async with self._client() as client:
            pages = self._paginate(
                client,
                f"/repos/{owner}/{repo}/pulls",
                {"state": "all", "sort": "created", "direction": "desc"},
            )
            async for page in pages:
                found_in_period = False
                for pr in page:
                    created_at = _parse_datetime(pr["created_at"])
                    if created_at < since:
                        continue

                    found_in_period = True
                    merged_at = _parse_datetime(pr.get("merged_at"))
                    first_commit_at = None
                    if merged_at:
                        first_commit_at = await self._first_commit_at(client, owner, repo, pr["number"])

                    pull_requests.append(
                        PullRequestRecord(
                            org=owner,
                            repo=repo,
                            user=_login(pr.get("user")),
                            timestamp=created_at,
                            github_id=pr["id"],
                            number=pr["number"],
                            title=pr.get("title") or "",
                            merged_at=merged_at,
                            first_commit_at=first_commit_at,
                        )
                    )

                # Sorted newest first, so stop once a page is entirely too old
                if not found_in_period:
                    break

        return pull_requests

    async def _first_commit_at(
        self, client: httpx.AsyncClient, owner: str, repo: str, number: int
    ) -> datetime | None:
        response = await self._get(
            client, f"/repos/{owner}/{repo}/pulls/{number}/commits", {"per_page": 1}
        )
        commits = response.json()
        if not commits:
            logger.warning(f"[GitHub] No commits found for PR #{number} in {owner}/{repo}")
            return None
        return _parse_datetime(commits[0].get("commit", {}).get("committer", {}).get("date"))

    async def get_issues(self, owner: str, repo: str, since: datetime) -> list[IssueRecord]:
        """Get issues (not pull requests) created at or after ``since``."""
        issues: list[IssueRecord] = []

        async with self._client() as client:
            pages = self._paginate(
                client,
                f"/repos/{owner}/{repo}/issues",
                {"state": "all", "since": since.isoformat()},
            )
            async for page in pages:
                for issue in page:
                    # The issues endpoint also returns pull requests
                    if "pull_request" in issue:
                        continue

                    created_at = _parse_datetime(issue["created_at"])
                    if created_at < since:
                        continue

                    issues.append(
                        IssueRecord(
                            org=owner,
                            repo=repo,
                            user=_login(issue.get("user")),
                            timestamp=created_at,
                            github_id=issue["id"],
                            number=issue["number"],
                            title=issue.get("title") or "",
                            labels={label["name"] for label in issue.get("labels", [])},
                            closed_at=_parse_datetime(issue.get("closed_at")),
                        )
                    )

        return issues


def create_github_client() -> GitHubClient:
    """Create GitHub client from environment variables."""
    token = os.environ.get("GITHUB_TOKEN")

    if not token:
        raise ValueError("GITHUB_TOKEN environment variable is required")

    return GitHubClient(token, base_url=os.environ.get("GITHUB_API_URL", GITHUB_API_BASE))
