"""
Defensive field extraction for schema-unstable feed rows.

Upstream feeds name the same concept differently (``total`` vs ``total_amount``
vs ``sum``), so every fact is read through an ordered tuple of accepted
synonyms. Nothing in this module raises on malformed rows: absent or garbage
fields collapse to documented defaults.
"""
from __future__ import annotations

import math
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from app.utils import civil_time

# Bump when a synonym list changes so feed owners can tell which names are honoured.
FIELD_SYNONYMS_VERSION = 3

MERCHANT_KEYS = ("merchant", "merchant_name", "name", "title")
TX_MERCHANT_KEYS = ("merchant", "merchant_name", "title", "note", "description")
WEEK_KEYS = ("week_start", "week", "period", "date")
COUNT_KEYS = ("count", "tx_count", "transaction_count", "frequency", "freq")
TOTAL_KEYS = ("total", "total_amount", "amount", "sum")

MONTH_KEYS = ("month", "period_month", "month_start", "period", "date")
INCOME_KEYS = ("income", "inflow", "total_income")
EXPENSE_KEYS = ("expense", "outflow", "spent", "total_expense")
NET_KEYS = ("net", "net_amount", "balance")

CATEGORY_KEYS = ("category", "category_name", "name", "label")

PLANNED_KEYS = ("planned", "planned_amount", "amount_planned", "limit", "cap")
ROLLOVER_IN_KEYS = ("rollover_in", "carry_in")
ROLLOVER_OUT_KEYS = ("rollover_out", "carry_out")
BUDGET_MONTH_KEYS = ("period_month", "month", "month_start")

AMOUNT_KEYS = ("amount", "value")
DATE_KEYS = ("date", "timestamp", "occurred_at", "created_at")

SUBSCRIPTION_NAME_KEYS = ("name", "title", "vendor")
SUBSCRIPTION_AMOUNT_KEYS = ("amount", "due_amount", "value")
SUBSCRIPTION_DUE_KEYS = ("next_due_date", "due_date")

GOAL_ID_KEYS = ("id", "goal_id")
GOAL_TITLE_KEYS = ("title", "name")
GOAL_TARGET_KEYS = ("target_amount", "target")
GOAL_SAVED_KEYS = ("saved_amount", "saved")
GOAL_RECENCY_KEYS = ("updated_at", "created_at")

STATUS_KEYS = ("status",)
TYPE_KEYS = ("type", "kind")

DEFAULT_CATEGORY = "Lainnya"
DEFAULT_SUBSCRIPTION = "langganan misterius"
DEFAULT_GOAL = "tabungan"


def pick_number(row: Any, keys: Sequence[str]) -> float:
    """Return the first finite numeric value under ``keys``, else 0.0."""
    if not isinstance(row, Mapping):
        return 0.0
    for key in keys:
        value = row.get(key)
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, (int, float, Decimal)):
            try:
                number = float(value)
            except (InvalidOperation, ValueError):
                continue
        elif isinstance(value, str) and value.strip():
            try:
                number = float(value.strip())
            except ValueError:
                continue
        else:
            continue
        if math.isfinite(number):
            return number
    return 0.0


def pick_string(row: Any, keys: Sequence[str]) -> Optional[str]:
    """Return the first non-empty trimmed string under ``keys``."""
    if not isinstance(row, Mapping):
        return None
    for key in keys:
        value = row.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def pick_date(row: Any, keys: Sequence[str]) -> Optional[datetime]:
    """Return the first value under ``keys`` that parses as an instant."""
    if not isinstance(row, Mapping):
        return None
    for key in keys:
        parsed = civil_time.to_civil(row.get(key))
        if parsed is not None:
            return parsed
    return None


def pick_month(row: Any, keys: Sequence[str]) -> Optional[datetime]:
    parsed = pick_date(row, keys)
    return civil_time.start_of_month(parsed) if parsed is not None else None


def is_deleted(row: Mapping[str, Any]) -> bool:
    return bool(row.get("deleted_at"))


def row_type(row: Mapping[str, Any]) -> Optional[str]:
    value = pick_string(row, TYPE_KEYS)
    return value.lower() if value else None


@dataclass(frozen=True)
class MerchantWeekFact:
    merchant: str
    week_key: str
    count: float
    total: float


@dataclass(frozen=True)
class CashflowFact:
    month_key: str
    income: float
    expense: float
    net: float


@dataclass(frozen=True)
class CategoryWeekFact:
    category: str
    week_key: str
    total: float


@dataclass(frozen=True)
class BudgetFact:
    month_key: Optional[str]
    planned: float


@dataclass(frozen=True)
class ExpenseFact:
    day_key: str
    amount: float


@dataclass(frozen=True)
class SubscriptionFact:
    name: str
    due_day: datetime
    amount: float
    status: str


@dataclass(frozen=True)
class GoalFact:
    goal_id: Optional[str]
    title: str
    target: float
    saved: float
    status: Optional[str]
    updated_at: Optional[datetime]


def _rows(rows: Optional[Iterable[Any]]) -> Iterable[Mapping[str, Any]]:
    for row in rows or ():
        if isinstance(row, Mapping):
            yield row


def week_key_of(when: datetime) -> Optional[str]:
    """Monday key of the civil week holding ``when``; None at the edge of the calendar."""
    try:
        return civil_time.day_key(civil_time.start_of_week(when))
    except (OverflowError, ValueError):
        return None


def merchant_week_facts(rows: Optional[Iterable[Any]]) -> List[MerchantWeekFact]:
    facts = []
    for row in _rows(rows):
        merchant = pick_string(row, MERCHANT_KEYS)
        week = pick_date(row, WEEK_KEYS)
        week_key = week_key_of(week) if week is not None else None
        if not merchant or week_key is None:
            continue
        facts.append(
            MerchantWeekFact(
                merchant=merchant,
                week_key=week_key,
                count=max(pick_number(row, COUNT_KEYS), 0.0),
                total=abs(pick_number(row, TOTAL_KEYS)),
            )
        )
    return facts


def cashflow_facts(rows: Optional[Iterable[Any]]) -> List[CashflowFact]:
    facts = []
    for row in _rows(rows):
        month = pick_month(row, MONTH_KEYS)
        if month is None:
            continue
        income = abs(pick_number(row, INCOME_KEYS))
        expense = abs(pick_number(row, EXPENSE_KEYS))
        if income or expense:
            net = income - expense
        else:
            net = pick_number(row, NET_KEYS)
        facts.append(
            CashflowFact(
                month_key=civil_time.month_key(month),
                income=income,
                expense=expense,
                net=net,
            )
        )
    return facts


def category_week_facts(rows: Optional[Iterable[Any]]) -> List[CategoryWeekFact]:
    facts = []
    for row in _rows(rows):
        week = pick_date(row, WEEK_KEYS)
        week_key = week_key_of(week) if week is not None else None
        if week_key is None:
            continue
        facts.append(
            CategoryWeekFact(
                category=pick_string(row, CATEGORY_KEYS) or DEFAULT_CATEGORY,
                week_key=week_key,
                total=abs(pick_number(row, TOTAL_KEYS)),
            )
        )
    return facts


def budget_facts(rows: Optional[Iterable[Any]]) -> List[BudgetFact]:
    facts = []
    for row in _rows(rows):
        month = pick_month(row, BUDGET_MONTH_KEYS)
        planned = (
            abs(pick_number(row, PLANNED_KEYS))
            + pick_number(row, ROLLOVER_IN_KEYS)
            - pick_number(row, ROLLOVER_OUT_KEYS)
        )
        facts.append(
            BudgetFact(
                month_key=civil_time.month_key(month) if month is not None else None,
                planned=planned,
            )
        )
    return facts


def expense_facts(rows: Optional[Iterable[Any]]) -> List[ExpenseFact]:
    facts = []
    for row in _rows(rows):
        if is_deleted(row):
            continue
        kind = row_type(row)
        if kind is not None and kind != "expense":
            continue
        when = pick_date(row, DATE_KEYS)
        if when is None:
            continue
        facts.append(ExpenseFact(day_key=civil_time.day_key(when), amount=abs(pick_number(row, AMOUNT_KEYS))))
    return facts


def subscription_facts(rows: Optional[Iterable[Any]]) -> List[SubscriptionFact]:
    facts = []
    for row in _rows(rows):
        status = (pick_string(row, STATUS_KEYS) or "active").lower()
        due = pick_date(row, SUBSCRIPTION_DUE_KEYS)
        if due is None:
            continue
        facts.append(
            SubscriptionFact(
                name=pick_string(row, SUBSCRIPTION_NAME_KEYS) or DEFAULT_SUBSCRIPTION,
                due_day=civil_time.start_of_day(due),
                amount=abs(pick_number(row, SUBSCRIPTION_AMOUNT_KEYS)),
                status=status,
            )
        )
    return facts


def goal_facts(rows: Optional[Iterable[Any]]) -> List[GoalFact]:
    facts = []
    for row in _rows(rows):
        raw_id = next((row.get(key) for key in GOAL_ID_KEYS if row.get(key) not in (None, "")), None)
        status = pick_string(row, STATUS_KEYS)
        facts.append(
            GoalFact(
                goal_id=str(raw_id) if raw_id is not None else None,
                title=pick_string(row, GOAL_TITLE_KEYS) or DEFAULT_GOAL,
                target=abs(pick_number(row, GOAL_TARGET_KEYS)),
                saved=abs(pick_number(row, GOAL_SAVED_KEYS)),
                status=status.lower() if status else None,
                updated_at=pick_date(row, GOAL_RECENCY_KEYS),
            )
        )
    return facts


# Transaction-derived fallbacks: rebuild aggregated feed rows from raw transactions.

def _live_transactions(transactions: Optional[Iterable[Any]], kind: Optional[str] = None):
    for tx in _rows(transactions):
        if is_deleted(tx):
            continue
        # untyped rows come from expense-only feeds
        if kind is not None and (row_type(tx) or "expense") != kind:
            continue
        when = pick_date(tx, DATE_KEYS)
        if when is None:
            continue
        yield tx, when


def build_weekly_merchant_rows(transactions: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    buckets: "OrderedDict[tuple, Dict[str, Any]]" = OrderedDict()
    for tx, when in _live_transactions(transactions, kind="expense"):
        merchant = pick_string(tx, TX_MERCHANT_KEYS)
        week_key = week_key_of(when)
        if not merchant or week_key is None:
            continue
        entry = buckets.setdefault(
            (merchant, week_key), {"merchant": merchant, "week_start": week_key, "count": 0, "total": 0.0}
        )
        entry["count"] += 1
        entry["total"] += abs(pick_number(tx, AMOUNT_KEYS))
    return list(buckets.values())


def build_weekly_category_rows(transactions: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    buckets: "OrderedDict[tuple, Dict[str, Any]]" = OrderedDict()
    for tx, when in _live_transactions(transactions, kind="expense"):
        category = pick_string(tx, ("category", "category_name")) or DEFAULT_CATEGORY
        week_key = week_key_of(when)
        if week_key is None:
            continue
        entry = buckets.setdefault(
            (category, week_key), {"category": category, "week_start": week_key, "total": 0.0}
        )
        entry["total"] += abs(pick_number(tx, AMOUNT_KEYS))
    return list(buckets.values())
