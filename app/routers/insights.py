"""
Insights Router
Serves the ranked spending insights for the current period.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from app.core.config import settings
from app.db import dynamo
from app.models.insight import InsightPublic, InsightsResponse, SeverityCounts
from app.utils.insight_engine import InsightEngine, InsightRun

router = APIRouter()
logger = logging.getLogger(__name__)

insight_engine = InsightEngine(dynamo.FEED_QUERIES, limit=settings.INSIGHTS_MAX_RESULTS)


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """The auth gateway in front of this service forwards the caller's id."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User id required")
    return x_user_id.strip()


def get_insight_engine() -> InsightEngine:
    return insight_engine


def build_response(run: InsightRun) -> InsightsResponse:
    insights = [InsightPublic(**item.to_dict()) for item in run.insights]
    counts = SeverityCounts(
        high=len([i for i in insights if i.severity == "high"]),
        med=len([i for i in insights if i.severity == "med"]),
        low=len([i for i in insights if i.severity == "low"]),
    )
    return InsightsResponse(
        status=run.status,
        insights=insights,
        count=len(insights),
        severity_counts=counts,
        had_partial_failure=run.had_partial_failure,
        error=str(run.first_error) if run.first_error is not None else None,
        failed_feeds=run.failed_feeds,
        generated_at=run.generated_at,
    )


@router.get("/", response_model=InsightsResponse)
async def get_insights(
    at: Optional[datetime] = Query(None, description="Evaluate as of this instant (ISO-8601)"),
    user_id: str = Depends(get_current_user_id),
    engine: InsightEngine = Depends(get_insight_engine),
) -> InsightsResponse:
    """
    Ranked insights for the current period (top 5).
    Feed failures degrade the result to status "partial" instead of failing the request.
    """
    run = await engine.run(user_id, now=at)
    if run.first_error is not None:
        logger.warning(f"Insights for user {user_id} built from partial data: {run.first_error}")
    return build_response(run)
