"""Tests for the command-line entry point."""

import asyncio
import json
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import main
from dora_metrics.database.models import Base
from dora_metrics.database.repository import ActivityRepository
from dora_metrics.models import GitHubRepository, ReleaseRecord


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class StubGitHub:
    """One repository with a single release by bob."""

    async def get_repos(self, owner):
        return [GitHubRepository(owner=owner, name="svc", created_at=_utc(2020, 1, 1))]

    async def get_releases(self, owner, repo, since):
        return [
            ReleaseRecord(org=owner, repo=repo, user="bob", timestamp=_utc(2024, 1, 2), github_id=1)
        ]

    async def get_pull_requests(self, owner, repo, since):
        return []

    async def get_issues(self, owner, repo, since):
        return []


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Point DATABASE_URL at a fresh SQLite file with the schema created."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"

    async def create_schema():
        engine = create_async_engine(url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(create_schema())
    monkeypatch.setenv("DATABASE_URL", url)
    return url


async def _seed(url: str) -> None:
    engine = create_async_engine(url)
    activity = ActivityRepository(async_sessionmaker(bind=engine, expire_on_commit=False))
    await activity.upsert_repositories(
        [GitHubRepository(owner="acme", name="svc", created_at=_utc(2020, 1, 1))]
    )
    await activity.upsert_releases(
        [ReleaseRecord(org="acme", repo="svc", user="bob", timestamp=_utc(2024, 1, 2), github_id=1)]
    )
    await engine.dispose()


def test_parse_args_for_compute():
    """Verify compute arguments, including the optional repository filter."""
    args = main.parse_args(["compute", "acme", "2024-01-01", "2024-01-31", "week", "--repo", "svc"])

    assert args.command == "compute"
    assert args.owner == "acme"
    assert args.start_date == "2024-01-01"
    assert args.end_date == "2024-01-31"
    assert args.granularity == "week"
    assert args.repo == "svc"


def test_parse_args_for_ingest_defaults_since():
    """Verify ingest falls back to the default start date when --since is omitted."""
    args = main.parse_args(["ingest", "acme"])

    assert args.command == "ingest"
    assert args.since == "2008-02-01"


def test_parse_args_rejects_unknown_granularity():
    """Verify argparse refuses granularities outside day/week/month."""
    with pytest.raises(SystemExit):
        main.parse_args(["compute", "acme", "2024-01-01", "2024-01-31", "year"])


def test_compute_prints_metrics_as_json(database, capsys):
    """Verify compute reads the database and prints per-window metrics."""
    asyncio.run(_seed(database))

    exit_code = main.main(["compute", "acme", "2024-01-01", "2024-01-07", "week"])

    assert exit_code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["orgs"]["2024-01-01"]["org"] == "acme"
    assert output["orgs"]["2024-01-01"]["deployment_frequency"] == 1
    assert [u["user"] for u in output["users"]["2024-01-01"]] == ["bob"]
    assert [r["repo"] for r in output["repos"]["2024-01-01"]] == ["svc"]


def test_compute_with_invalid_date_returns_error(database, capsys):
    """Verify compute exits with status 1 and prints nothing for a malformed date."""
    exit_code = main.main(["compute", "acme", "2024-13-01", "2024-01-07", "week"])

    assert exit_code == 1
    assert capsys.readouterr().out == ""


def test_ingest_then_compute(database, monkeypatch, capsys):
    """Verify ingested activity is stored and visible to a later compute."""
    monkeypatch.setenv("GITHUB_TOKEN", "test-token")
    monkeypatch.setattr("dora_metrics.clients.create_github_client", lambda: StubGitHub())

    assert main.main(["ingest", "acme", "--since", "2024-01-01"]) == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["owner"] == "acme"
    assert summary["repositories"] == 1
    assert summary["failed"] == 0
    assert summary["results"][0]["releases"] == 1

    assert main.main(["compute", "acme", "2024-01-01", "2024-01-07", "week", "--repo", "svc"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["users"]["2024-01-01"][0]["deployment_frequency"] == 1
