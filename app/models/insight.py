from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime


class InsightPublic(BaseModel):
    id: str
    type: Literal["trend", "budget", "good", "warn", "subs", "goal"]
    severity: Literal["low", "med", "high"]
    message: str
    meta: Dict[str, Any] = Field(default_factory=dict)


class SeverityCounts(BaseModel):
    high: int = 0
    med: int = 0
    low: int = 0


class InsightsResponse(BaseModel):
    status: Literal["ready", "partial"]
    insights: List[InsightPublic]
    count: int
    severity_counts: SeverityCounts
    had_partial_failure: bool = False
    error: Optional[str] = None
    failed_feeds: List[str] = Field(default_factory=list)
    generated_at: datetime
