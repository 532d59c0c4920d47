from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from app.utils import civil_time
from app.utils.normalizers import (
    budget_facts,
    cashflow_facts,
    category_week_facts,
    expense_facts,
    goal_facts,
    merchant_week_facts,
    subscription_facts,
)

GOAL_MILESTONES = (1.0, 0.75, 0.5, 0.25)

Rows = Optional[Iterable[Dict[str, Any]]]


@dataclass(frozen=True)
class Insight:
    """A single ranked observation about the user's spending."""

    id: str
    type: str
    severity: str
    message: str
    meta: Dict[str, Any] = field(default_factory=dict)

    def with_meta(self, meta: Dict[str, Any]) -> "Insight":
        return replace(self, meta=meta)

    def to_dict(self) -> Dict[str, Any]:
        # Drop None meta values for cleaner JSON responses
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "meta": {k: v for k, v in self.meta.items() if v is not None},
        }


def make_insight_id(prefix: str, *parts: Any) -> str:
    # Parts are the exact grouping keys, so distinct merchants never share an id.
    return "-".join([prefix] + [str(part) for part in parts if str(part)])


def format_idr(amount: float) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}Rp{abs(amount):,.0f}".replace(",", ".")


class InsightAnalyzer:
    """
    Candidate generators for the insight engine.

    Every generator takes raw feed rows plus ``now`` and returns a list of
    candidates; none of them reads the clock or another generator's output.
    Each candidate's ``meta["timestamp"]`` (POSIX seconds) is for ranking only.
    """

    def __init__(
        self,
        trend_min_increase_pct: float = 50.0,
        trend_high_increase_pct: float = 100.0,
        trend_high_spend: float = 750_000.0,
        trend_min_current_count: int = 2,
        max_trend_insights: int = 2,
        burn_high_overage_ratio: float = 0.2,
        good_day_window_days: int = 14,
        subscription_lookahead_days: int = 3,
    ) -> None:
        self._trend_min_increase_pct = trend_min_increase_pct
        self._trend_high_increase_pct = trend_high_increase_pct
        self._trend_high_spend = trend_high_spend
        self._trend_min_current_count = trend_min_current_count
        self._max_trend_insights = max_trend_insights
        self._burn_high_overage_ratio = burn_high_overage_ratio
        self._good_day_window_days = good_day_window_days
        self._subscription_lookahead_days = subscription_lookahead_days

    def merchant_trend(self, rows: Rows, now: datetime, weekly_top: Rows = None) -> List[Insight]:
        """
        Flag merchants visited at least 50% more often this week than last.
        """
        current_week = civil_time.start_of_week(now)
        current_key = civil_time.day_key(current_week)
        previous_key = civil_time.day_key(civil_time.add_days(current_week, -7))

        weeks: "OrderedDict[str, Dict[str, List[float]]]" = OrderedDict()
        for fact in merchant_week_facts(rows):
            if fact.week_key not in (current_key, previous_key):
                continue
            per_week = weeks.setdefault(fact.merchant, {})
            bucket = per_week.setdefault(fact.week_key, [0.0, 0.0])
            bucket[0] += fact.count
            bucket[1] += fact.total

        hint = self._top_category_hint(weekly_top, current_key)

        found = []
        for merchant, per_week in weeks.items():
            if current_key not in per_week or previous_key not in per_week:
                continue
            current_count, current_total = per_week[current_key]
            previous_count, _ = per_week[previous_key]
            if current_count < self._trend_min_current_count or previous_count <= 0:
                continue

            increase_pct = (current_count - previous_count) / previous_count * 100
            if increase_pct < self._trend_min_increase_pct:
                continue

            high = increase_pct >= self._trend_high_increase_pct or current_total >= self._trend_high_spend
            found.append(
                Insight(
                    id=make_insight_id("trend", merchant),
                    type="trend",
                    severity="high" if high else "med",
                    message=(
                        f"Merchant {merchant} lagi hits! Frekuensi naik {increase_pct:.0f}% "
                        f"dibanding minggu lalu. Dompet siap-siap?"
                    ),
                    meta={
                        "merchant": merchant,
                        "current_count": current_count,
                        "previous_count": previous_count,
                        "increase_pct": round(increase_pct, 2),
                        "current_total": current_total,
                        "week_start": current_key,
                        "hint": hint,
                        "timestamp": current_week.timestamp(),
                    },
                )
            )

        found.sort(key=lambda item: (-item.meta["increase_pct"], item.meta["merchant"]))
        return found[: self._max_trend_insights]

    @staticmethod
    def _top_category_hint(weekly_top: Rows, current_key: str) -> Optional[str]:
        best = None
        for fact in category_week_facts(weekly_top):
            if fact.week_key == current_key and fact.total > 0 and (best is None or fact.total > best.total):
                best = fact
        return f"Kategori teratas minggu ini: {best.category}" if best else None

    def burn_rate(self, budget_rows: Rows, cashflow_rows: Rows, expense_rows: Rows, now: datetime) -> List[Insight]:
        """
        Project month-end spend from the month-to-date burn rate and compare
        it with the planned budget (base + rollover in - rollover out).
        """
        today = civil_time.start_of_day(now)
        month_start = civil_time.start_of_month(today)
        current_month = civil_time.month_key(month_start)

        planned = sum(
            fact.planned for fact in budget_facts(budget_rows) if fact.month_key in (None, current_month)
        )
        if planned <= 0:
            return []

        spent = sum(fact.expense for fact in cashflow_facts(cashflow_rows) if fact.month_key == current_month)
        if spent <= 0:
            spent = sum(fact.amount for fact in expense_facts(expense_rows) if fact.day_key.startswith(current_month))
        if spent <= 0:
            return []

        elapsed_days = civil_time.days_between(today, month_start) + 1
        total_days = civil_time.days_in_month(month_start)
        actual_rate = spent / elapsed_days
        planned_rate = planned / total_days
        if actual_rate <= planned_rate:
            return []

        projected = actual_rate * total_days
        overage = projected - planned
        severity = "high" if overage >= planned * self._burn_high_overage_ratio else "med"
        ratio_pct = actual_rate / planned_rate * 100

        return [
            Insight(
                id=make_insight_id("burn-rate", current_month),
                type="budget",
                severity=severity,
                message=(
                    f"Burn rate {ratio_pct:.0f}% dari target. Proyeksi akhir bulan {format_idr(projected)}, "
                    f"lewat {format_idr(overage)} dari anggaran. Saatnya tarik rem belanja!"
                ),
                meta={
                    "spent": spent,
                    "planned": planned,
                    "projected": round(projected, 2),
                    "overage": round(overage, 2),
                    "elapsed_days": elapsed_days,
                    "days_in_month": total_days,
                    "hint": f"{format_idr(spent)} dipakai dari {format_idr(planned)}",
                    "timestamp": today.timestamp(),
                },
            )
        ]

    def good_day(self, expense_rows: Rows, now: datetime) -> List[Insight]:
        """Celebrate a day whose spend sits below the trailing 14-day average."""
        today = civil_time.start_of_day(now)
        today_key = civil_time.day_key(today)
        window_keys = {
            civil_time.day_key(civil_time.add_days(today, -offset)) for offset in range(self._good_day_window_days)
        }

        window_total = 0.0
        today_total = 0.0
        for fact in expense_facts(expense_rows):
            if fact.day_key not in window_keys:
                continue
            window_total += fact.amount
            if fact.day_key == today_key:
                today_total += fact.amount

        if window_total <= 0:
            return []
        average = window_total / self._good_day_window_days
        if today_total >= average:
            return []

        return [
            Insight(
                id=make_insight_id("good-day", today_key),
                type="good",
                severity="low",
                message=(
                    f"Dompet senyum: belanja hari ini cuma {format_idr(today_total)}, "
                    f"di bawah rata-rata {format_idr(average)}."
                ),
                meta={
                    "today_total": today_total,
                    "average": round(average, 2),
                    "window_days": self._good_day_window_days,
                    "timestamp": today.timestamp(),
                },
            )
        ]

    def subscription_due(self, subscription_rows: Rows, now: datetime) -> List[Insight]:
        today = civil_time.start_of_day(now)
        limit = civil_time.add_days(today, self._subscription_lookahead_days)

        nearest = None
        for fact in subscription_facts(subscription_rows):
            if fact.status != "active" or fact.due_day > limit:
                continue
            if nearest is None or fact.due_day < nearest.due_day:
                nearest = fact
        if nearest is None:
            return []

        diff = civil_time.days_between(nearest.due_day, today)
        if diff < 0:
            label = f"telat {abs(diff)} hari"
        elif diff == 0:
            label = "hari ini"
        elif diff == 1:
            label = "besok"
        else:
            label = f"dalam {diff} hari"

        return [
            Insight(
                id=make_insight_id("subs", nearest.name),
                type="subs",
                severity="high" if diff <= 0 else "med",
                message=f"Langganan {nearest.name} jatuh tempo {label}. Siapkan {format_idr(nearest.amount)}.",
                meta={
                    "name": nearest.name,
                    "amount": nearest.amount,
                    "due_date": civil_time.day_key(nearest.due_day),
                    "days_left": diff,
                    "timestamp": nearest.due_day.timestamp(),
                },
            )
        ]

    def goal_milestones(self, goal_rows: Rows, now: datetime) -> List[Insight]:
        found = []
        for fact in goal_facts(goal_rows):
            if fact.status in ("archived", "paused") or fact.target <= 0:
                continue
            progress = fact.saved / fact.target
            milestone = next((step for step in GOAL_MILESTONES if progress >= step), None)
            if milestone is None:
                continue

            pct = int(round(milestone * 100))
            if milestone >= 1:
                message = f"Goal {fact.title} tuntas! Saatnya rayakan tanpa bikin saldo stres."
            else:
                message = f"Goal {fact.title} sudah tembus {min(progress, 1.0) * 100:.0f}%. Gas terus!"

            found.append(
                Insight(
                    id=make_insight_id("goal", fact.goal_id or fact.title, pct),
                    type="goal",
                    severity="med" if milestone >= 0.75 else "low",
                    message=message,
                    meta={
                        "goal_id": fact.goal_id,
                        "title": fact.title,
                        "milestone": pct,
                        "progress": round(progress, 4),
                        "hint": f"{format_idr(fact.saved)} dari {format_idr(fact.target)}",
                        "timestamp": fact.updated_at.timestamp() if fact.updated_at else None,
                    },
                )
            )
        return found

    def top_category(self, category_rows: Rows, now: datetime) -> List[Insight]:
        current_week = civil_time.start_of_week(now)
        current_key = civil_time.day_key(current_week)

        totals: "OrderedDict[str, float]" = OrderedDict()
        for fact in category_week_facts(category_rows):
            if fact.week_key == current_key:
                totals[fact.category] = totals.get(fact.category, 0.0) + fact.total

        best_category, best_total = None, 0.0
        for category, total in totals.items():
            if total > best_total:
                best_category, best_total = category, total
        if best_category is None:
            return []

        return [
            Insight(
                id=make_insight_id("top-category", best_category),
                type="trend",
                severity="low",
                message=f"Minggu ini pengeluaran terbesar ada di {best_category}: {format_idr(best_total)}.",
                meta={
                    "category": best_category,
                    "total": best_total,
                    "week_start": current_key,
                    "timestamp": current_week.timestamp(),
                },
            )
        ]

    def cashflow_sign(self, cashflow_rows: Rows, now: datetime) -> List[Insight]:
        current_month = civil_time.month_key(now)
        facts = [fact for fact in cashflow_facts(cashflow_rows) if fact.month_key == current_month]
        if not facts:
            return []

        income = sum(fact.income for fact in facts)
        expense = sum(fact.expense for fact in facts)
        net = sum(fact.net for fact in facts)
        if net == 0:
            return []

        timestamp = civil_time.start_of_month(now).timestamp()
        meta = {"month": current_month, "income": income, "expense": expense, "net": net, "timestamp": timestamp}
        if net > 0:
            return [
                Insight(
                    id=make_insight_id("cashflow", current_month),
                    type="good",
                    severity="low",
                    message=f"Cashflow bulan ini surplus {format_idr(net)}. Pertahankan ritmenya!",
                    meta=meta,
                )
            ]
        return [
            Insight(
                id=make_insight_id("cashflow", current_month),
                type="warn",
                severity="med",
                message=f"Cashflow bulan ini defisit {format_idr(abs(net))}. Rem dulu belanja yang belum penting.",
                meta=dict(meta, deficit=abs(net)),
            )
        ]
