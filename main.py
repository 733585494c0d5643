"""Command-line entry point for ingestion and metric computation.

Usage:
    python main.py ingest acme --since 2024-01-01
    python main.py compute acme 2024-01-01 2024-03-31 week [--repo svc]
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)
logging.captureWarnings(True)
logger = logging.getLogger(__name__)


def validate_environment(command: str) -> list[str]:
    """Validate required environment variables and return list of issues."""
    issues = []

    required_vars = {"DATABASE_URL": "PostgreSQL connection string"}
    if command == "ingest":
        required_vars["GITHUB_TOKEN"] = "GitHub personal access token"

    for var, description in required_vars.items():
        if not os.environ.get(var):
            issues.append(f"  - {var}: {description}")
        else:
            value = os.environ[var]
            masked = value[:8] + "..." if len(value) > 8 else "***"
            logger.info(f"  ✓ {var}={masked}")

    return issues


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="DORA metrics for GitHub organizations")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Fetch GitHub activity into the database")
    ingest.add_argument("owner", help="GitHub organization")
    ingest.add_argument("--since", default="2008-02-01", help="Earliest activity date (ISO 8601)")

    compute = subparsers.add_parser("compute", help="Compute DORA metrics and print them as JSON")
    compute.add_argument("owner", help="GitHub organization")
    compute.add_argument("start_date", help="Start date (ISO 8601)")
    compute.add_argument("end_date", help="End date, inclusive (ISO 8601)")
    compute.add_argument("granularity", choices=["day", "week", "month"])
    compute.add_argument("--repo", default=None, help="Restrict to a single repository")

    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> dict:
    from dora_metrics.aggregator import DoraAggregator
    from dora_metrics.clients import create_github_client
    from dora_metrics.database.repository import ActivityRepository, ScoreRepository
    from dora_metrics.database.session import dispose_engine, get_session_factory
    from dora_metrics.ingest import ingest_organization

    session_factory = get_session_factory()
    activity = ActivityRepository(session_factory)

    try:
        if args.command == "ingest":
            since = datetime.fromisoformat(args.since).replace(tzinfo=timezone.utc)
            return await ingest_organization(args.owner, since, create_github_client(), activity)

        aggregator = DoraAggregator(activity, ScoreRepository(session_factory))
        metrics = await aggregator.compute_metrics(
            args.owner, args.start_date, args.end_date, args.granularity, args.repo
        )
        return metrics.model_dump(mode="json")
    finally:
        await dispose_engine()


def main(argv: list[str] | None = None) -> int:
    from dora_metrics.errors import DoraMetricsError

    args = parse_args(argv)

    issues = validate_environment(args.command)
    if issues:
        logger.warning("Missing required environment variables:")
        for issue in issues:
            logger.warning(issue)

    try:
        result = asyncio.run(run(args))
    except DoraMetricsError as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
