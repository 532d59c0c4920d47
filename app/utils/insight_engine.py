"""
Insight Engine
Fans out the feed queries for one user, isolates feed failures, runs the
candidate generators over whatever arrived and ranks the result.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from app.utils import civil_time
from app.utils.analyzer import Insight, InsightAnalyzer
from app.utils.normalizers import build_weekly_category_rows, build_weekly_merchant_rows
from app.utils.ranker import DEFAULT_LIMIT, rank_insights

logger = logging.getLogger(__name__)

WEEKLY_MERCHANT = "weekly_merchant"
MONTHLY_CASHFLOW = "monthly_cashflow"
WEEKLY_TOP_CATEGORY = "weekly_top_category"
BUDGETS = "budgets"
RECENT_EXPENSES = "recent_expenses"
UPCOMING_SUBSCRIPTIONS = "upcoming_subscriptions"
ACTIVE_GOALS = "active_goals"

FEED_NAMES = (
    WEEKLY_MERCHANT,
    MONTHLY_CASHFLOW,
    WEEKLY_TOP_CATEGORY,
    BUDGETS,
    RECENT_EXPENSES,
    UPCOMING_SUBSCRIPTIONS,
    ACTIVE_GOALS,
)

LOOKBACK_DAYS = 14
LOOKAHEAD_DAYS = 3


@dataclass(frozen=True)
class QueryWindow:
    """Time boundaries shared by every feed request of a single run."""

    now: datetime
    today: datetime
    lookback_start: datetime
    lookahead_end: datetime
    week_start: datetime
    previous_week_start: datetime
    month_start: datetime

    @property
    def today_key(self) -> str:
        return civil_time.day_key(self.today)

    @property
    def lookback_key(self) -> str:
        return civil_time.day_key(self.lookback_start)

    @property
    def lookahead_key(self) -> str:
        return civil_time.day_key(self.lookahead_end)

    @property
    def week_key(self) -> str:
        return civil_time.day_key(self.week_start)

    @property
    def previous_week_key(self) -> str:
        return civil_time.day_key(self.previous_week_start)

    @property
    def month_key(self) -> str:
        return civil_time.month_key(self.month_start)

    @property
    def next_month_key(self) -> str:
        next_month = civil_time.add_days(self.month_start, civil_time.days_in_month(self.month_start))
        return civil_time.month_key(next_month)


def build_query_window(now: datetime) -> QueryWindow:
    today = civil_time.start_of_day(now)
    week_start = civil_time.start_of_week(today)
    return QueryWindow(
        now=civil_time.to_civil(now),
        today=today,
        # 14 days ending today, inclusive
        lookback_start=civil_time.add_days(today, -(LOOKBACK_DAYS - 1)),
        lookahead_end=civil_time.add_days(today, LOOKAHEAD_DAYS),
        week_start=week_start,
        previous_week_start=civil_time.add_days(week_start, -7),
        month_start=civil_time.start_of_month(today),
    )


@dataclass
class FeedResult:
    name: str
    rows: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle_all(tasks: Mapping[str, Awaitable[Any]]) -> List[FeedResult]:
    """
    Await every task concurrently and report each outcome, in declaration
    order. A failing task never cancels or hides the others, and a payload
    that is not a collection of rows counts as that task's failure.
    """
    names = list(tasks.keys())
    outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)

    results = []
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, BaseException):
            results.append(FeedResult(name=name, error=outcome))
            continue
        try:
            results.append(FeedResult(name=name, rows=_as_rows(outcome)))
        except TypeError as exc:
            results.append(FeedResult(name=name, error=exc))
    return results


def _as_rows(outcome: Any) -> List[Dict[str, Any]]:
    if outcome is None:
        return []
    if isinstance(outcome, Mapping):
        return [dict(outcome)]
    if isinstance(outcome, (str, bytes)) or not isinstance(outcome, Iterable):
        raise TypeError(f"Expected rows, got {type(outcome).__name__}")
    return [row for row in outcome if isinstance(row, Mapping)]


FeedFetcher = Callable[[str, QueryWindow], Any]


@dataclass
class InsightRun:
    insights: List[Insight]
    generated_at: datetime
    first_error: Optional[BaseException] = None
    failed_feeds: List[str] = field(default_factory=list)

    @property
    def had_partial_failure(self) -> bool:
        return bool(self.failed_feeds)

    @property
    def status(self) -> str:
        return "partial" if self.had_partial_failure else "ready"


class InsightEngine:
    """
    Runs one insight evaluation per call. Holds configuration only; every run
    builds its own window, feed results and candidates.
    """

    def __init__(
        self,
        feeds: Mapping[str, FeedFetcher],
        analyzer: Optional[InsightAnalyzer] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._feeds = dict(feeds)
        self._analyzer = analyzer or InsightAnalyzer()
        self._limit = limit

    async def fetch_feeds(self, user_id: str, window: QueryWindow) -> List[FeedResult]:
        tasks = {name: self._call_feed(fetcher, user_id, window) for name, fetcher in self._feeds.items()}
        return await settle_all(tasks)

    @staticmethod
    async def _call_feed(fetcher: FeedFetcher, user_id: str, window: QueryWindow) -> Any:
        if inspect.iscoroutinefunction(fetcher):
            return await fetcher(user_id, window)
        # boto3 is blocking; keep the event loop free while feeds are in flight
        outcome = await asyncio.to_thread(fetcher, user_id, window)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    async def run(self, user_id: str, now: Optional[datetime] = None) -> InsightRun:
        now = now or datetime.now(timezone.utc)
        window = build_query_window(now)
        logger.info(f"Evaluating insights for user {user_id} as of {window.now.isoformat()}")

        results = await self.fetch_feeds(user_id, window)

        data: Dict[str, List[Dict[str, Any]]] = {name: [] for name in FEED_NAMES}
        first_error = None
        failed_feeds = []
        for result in results:
            data[result.name] = result.rows
            if not result.ok:
                failed_feeds.append(result.name)
                logger.warning(f"Feed '{result.name}' failed for user {user_id}: {result.error!r}")
                if first_error is None:
                    first_error = result.error

        candidates = self.generate_candidates(data, window.now)
        insights = rank_insights(candidates, self._limit)
        logger.info(
            f"Generated {len(candidates)} candidates, returning {len(insights)} insights for user {user_id}"
            + (f" (failed feeds: {', '.join(failed_feeds)})" if failed_feeds else "")
        )
        return InsightRun(
            insights=insights,
            generated_at=window.now,
            first_error=first_error,
            failed_feeds=failed_feeds,
        )

    def generate_candidates(self, data: Mapping[str, Sequence[Dict[str, Any]]], now: datetime) -> List[Insight]:
        analyzer = self._analyzer
        expenses = data.get(RECENT_EXPENSES) or []
        merchant_rows = data.get(WEEKLY_MERCHANT) or build_weekly_merchant_rows(expenses)
        category_rows = data.get(WEEKLY_TOP_CATEGORY) or build_weekly_category_rows(expenses)

        generators = (
            ("merchant_trend", lambda: analyzer.merchant_trend(merchant_rows, now, category_rows)),
            (
                "burn_rate",
                lambda: analyzer.burn_rate(data.get(BUDGETS), data.get(MONTHLY_CASHFLOW), expenses, now),
            ),
            ("good_day", lambda: analyzer.good_day(expenses, now)),
            ("subscription_due", lambda: analyzer.subscription_due(data.get(UPCOMING_SUBSCRIPTIONS), now)),
            ("goal_milestones", lambda: analyzer.goal_milestones(data.get(ACTIVE_GOALS), now)),
            ("top_category", lambda: analyzer.top_category(category_rows, now)),
            ("cashflow_sign", lambda: analyzer.cashflow_sign(data.get(MONTHLY_CASHFLOW), now)),
        )

        candidates: List[Insight] = []
        for name, generate in generators:
            try:
                candidates.extend(generate())
            except Exception:
                logger.exception(f"Insight generator '{name}' failed; skipping it")
        return candidates
