"""Tests for the GitHub client against a mocked transport."""

from datetime import datetime, timezone

import httpx
import pytest

from dora_metrics.clients import GitHubClient
from dora_metrics.errors import GitHubAPIError

SINCE = datetime(2024, 1, 1, tzinfo=timezone.utc)
NEXT = '<https://api.github.com/next>; rel="next"'


def make_client(handler) -> GitHubClient:
    return GitHubClient("test-token", transport=httpx.MockTransport(handler))


async def test_get_repos_follows_pagination_and_skips_archived():
    pages = {
        "1": ([{"name": "svc", "owner": {"login": "acme"}, "created_at": "2020-01-01T00:00:00Z"},
               {"name": "old", "archived": True, "created_at": "2015-01-01T00:00:00Z"}], NEXT),
        "2": ([{"name": "web", "owner": {"login": "acme"}, "created_at": "2021-06-01T00:00:00Z"}], ""),
    }
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/orgs/acme/repos"
        assert request.headers["Authorization"] == "Bearer test-token"
        page = request.url.params["page"]
        seen.append(page)
        items, link = pages[page]
        return httpx.Response(200, json=items, headers={"Link": link})

    repos = await make_client(handler).get_repos("acme")

    assert [r.name for r in repos] == ["svc", "web"]
    assert repos[0].created_at == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert seen == ["1", "2"]


async def test_get_releases_filters_by_since():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[
                {"id": 2, "name": "v2", "tag_name": "v2.0.0", "author": {"login": "bob"},
                 "created_at": "2024-01-02T12:00:00Z"},
                {"id": 1, "name": "v1", "tag_name": "v1.0.0", "author": None,
                 "created_at": "2023-06-01T12:00:00Z"},
            ],
        )

    [release] = await make_client(handler).get_releases("acme", "svc", SINCE)

    assert release.github_id == 2
    assert release.user == "bob"
    assert release.tag_name == "v2.0.0"
    assert release.timestamp == datetime(2024, 1, 2, 12, tzinfo=timezone.utc)


async def test_get_pull_requests_stops_at_old_pages_and_fetches_first_commit():
    pages = {
        "1": [
            {"id": 30, "number": 3, "title": "Fix", "user": {"login": "bob"},
             "created_at": "2024-01-05T08:00:00Z", "merged_at": "2024-01-05T11:00:00Z"},
            {"id": 20, "number": 2, "title": "WIP", "user": None,
             "created_at": "2024-01-03T08:00:00Z", "merged_at": None},
            {"id": 10, "number": 1, "created_at": "2023-12-01T08:00:00Z"},
        ],
        "2": [{"id": 5, "number": 0, "created_at": "2023-11-01T08:00:00Z"}],
    }
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/repos/acme/svc/pulls/3/commits":
            return httpx.Response(200, json=[{"commit": {"committer": {"date": "2024-01-04T10:00:00Z"}}}])
        assert path == "/repos/acme/svc/pulls"
        assert request.url.params["state"] == "all"
        page = request.url.params["page"]
        requested.append(page)
        return httpx.Response(200, json=pages[page], headers={"Link": NEXT})

    prs = await make_client(handler).get_pull_requests("acme", "svc", SINCE)

    assert requested == ["1", "2"]
    assert [pr.number for pr in prs] == [3, 2]
    merged, open_pr = prs
    assert merged.first_commit_at == datetime(2024, 1, 4, 10, tzinfo=timezone.utc)
    assert merged.merged_at == datetime(2024, 1, 5, 11, tzinfo=timezone.utc)
    assert open_pr.merged_at is None
    assert open_pr.first_commit_at is None
    assert open_pr.user == "unknown"


async def test_get_issues_skips_pull_requests():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/svc/issues"
        return httpx.Response(
            200,
            json=[
                {"id": 1, "number": 1, "created_at": "2024-01-02T00:00:00Z", "pull_request": {}},
                {"id": 2, "number": 2, "title": "Outage", "user": {"login": "bob"},
                 "labels": [{"name": "failure"}, {"name": "p1"}],
                 "created_at": "2024-01-03T10:00:00Z", "closed_at": "2024-01-03T14:00:00Z"},
            ],
        )

    [issue] = await make_client(handler).get_issues("acme", "svc", SINCE)

    assert issue.number == 2
    assert issue.labels == {"failure", "p1"}
    assert issue.is_failure
    assert issue.closed_at == datetime(2024, 1, 3, 14, tzinfo=timezone.utc)


async def test_http_errors_raise_github_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, json={"message": "Bad Gateway"})

    with pytest.raises(GitHubAPIError):
        await make_client(handler).get_repos("acme")
