from __future__ import annotations

from typing import Iterable, List

from app.utils.analyzer import Insight
from app.utils.civil_time import to_timestamp

SEVERITY_RANK = {"high": 2, "med": 1, "low": 0}
DEFAULT_LIMIT = 5


def rank_insights(candidates: Iterable[Insight], limit: int = DEFAULT_LIMIT) -> List[Insight]:
    """
    Order candidates by severity, then by ``meta["timestamp"]`` (newest first),
    and keep the top ``limit``. Python's sort is stable, so candidates that tie
    on both keys keep their generation order. The ranking timestamp is removed
    from the returned insights.
    """
    ordered = sorted(
        candidates,
        key=lambda item: (
            -SEVERITY_RANK.get(item.severity, -1),
            -to_timestamp(item.meta.get("timestamp")),
        ),
    )
    return [
        item.with_meta({k: v for k, v in item.meta.items() if k != "timestamp"})
        for item in ordered[: max(limit, 0)]
    ]
