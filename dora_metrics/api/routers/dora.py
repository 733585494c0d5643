"""DORA metrics API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query

from dora_metrics.aggregator import DoraAggregator
from dora_metrics.api.schemas import DoraMetricsData, DoraMetricsResponse
from dora_metrics.database.repository import ActivityRepository, ScoreRepository
from dora_metrics.database.session import get_session_factory
from dora_metrics.errors import InvalidParameter, StorageError
from dora_metrics.logging_config import get_logger

router = APIRouter()
logger = get_logger("api.dora")


def get_aggregator() -> DoraAggregator:
    """FastAPI dependency building an aggregator over the configured database."""
    session_factory = get_session_factory()
    return DoraAggregator(
        activity_store=ActivityRepository(session_factory),
        score_cache=ScoreRepository(session_factory),
    )


@router.get("", response_model=DoraMetricsResponse)
async def get_dora_metrics(
    owner: str | None = Query(None, description="GitHub organization"),
    start_date: str | None = Query(None, description="Start date (ISO 8601)"),
    end_date: str | None = Query(None, description="End date, inclusive (ISO 8601)"),
    granularity: str | None = Query(None, description="Window size (day/week/month)"),
    repo: str | None = Query(None, description="Restrict to a single repository"),
    aggregator: DoraAggregator = Depends(get_aggregator),
) -> DoraMetricsResponse:
    """Get DORA metrics per window for users, repositories and the organization."""
    try:
        metrics = await aggregator.compute_metrics(owner, start_date, end_date, granularity, repo)
    except InvalidParameter as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StorageError as e:
        logger.error(f"Error calculating DORA metrics for {owner}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to calculate DORA metrics") from e

    return DoraMetricsResponse(data=DoraMetricsData.from_metrics(metrics))
