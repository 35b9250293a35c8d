"""Dashboard statistics API endpoints."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, Response

from formdesk_stats.aggregators import StatsAggregator, get_aggregator
from formdesk_stats.schemas import StatsReport, TrendingQuestion

logger = structlog.get_logger()

router = APIRouter(prefix="/users/stats", tags=["stats"])


@router.get("", response_model=StatsReport)
async def get_user_stats(
    response: Response,
    aggregator: Annotated[StatsAggregator, Depends(get_aggregator)],
    template_id: Annotated[
        str | None,
        Query(alias="templateId", description="Restrict submission figures to one template"),
    ] = None,
) -> StatsReport:
    """Get the activity snapshot for the admin dashboard.

    Returns one rollup per user, global metrics, and dense per-day series
    over the rolling window.
    """
    report = await aggregator.generate_stats(template_id=template_id)

    # The dashboard always wants a fresh snapshot
    response.headers["Cache-Control"] = "no-store"

    logger.debug(
        "User stats served",
        template_id=template_id,
        users=len(report.users),
    )
    return report


@router.get("/trending", response_model=list[TrendingQuestion])
async def get_trending_questions(
    aggregator: Annotated[StatsAggregator, Depends(get_aggregator)],
    days: Annotated[
        int | None,
        Query(ge=1, le=365, description="Lookback window in days (default: 30)"),
    ] = None,
) -> list[TrendingQuestion]:
    """Get the questions most referenced by submissions in the lookback window."""
    return await aggregator.get_trending(days=days)
