from decimal import Decimal

from app.utils import normalizers
from app.utils.normalizers import pick_date, pick_month, pick_number, pick_string


def test_pick_number_uses_first_finite_synonym():
    row = {"total": "abc", "total_amount": float("nan"), "amount": "125000.5", "sum": 9}
    assert pick_number(row, normalizers.TOTAL_KEYS) == 125000.5


def test_pick_number_accepts_decimals_and_ignores_booleans():
    assert pick_number({"count": True, "tx_count": Decimal("3")}, normalizers.COUNT_KEYS) == 3.0


def test_pick_number_defaults_to_zero():
    assert pick_number({}, normalizers.TOTAL_KEYS) == 0.0
    assert pick_number(None, normalizers.TOTAL_KEYS) == 0.0
    assert pick_number({"total": float("inf")}, ("total",)) == 0.0


def test_pick_string_trims_and_skips_blanks():
    row = {"merchant": "   ", "merchant_name": 42, "name": "  Kopi Kenangan "}
    assert pick_string(row, normalizers.MERCHANT_KEYS) == "Kopi Kenangan"
    assert pick_string({}, normalizers.MERCHANT_KEYS) is None
    assert pick_string(["not", "a", "row"], normalizers.MERCHANT_KEYS) is None


def test_pick_date_and_month():
    row = {"week_start": "soon", "period": "2024-06-18"}
    assert normalizers.civil_time.day_key(pick_date(row, normalizers.WEEK_KEYS)) == "2024-06-18"
    assert normalizers.civil_time.day_key(pick_month({"period_month": "2024-06-18"}, ("period_month",))) == "2024-06-01"
    assert pick_date({"date": None}, ("date",)) is None


def test_merchant_week_facts_skip_rows_without_merchant_or_date():
    rows = [
        {"merchant": "GoFood", "week_start": "2024-06-19", "count": "3", "total": -90000},
        {"merchant": "", "week_start": "2024-06-17", "count": 1},
        {"merchant": "Grab", "count": 4},
        "garbage",
    ]
    facts = normalizers.merchant_week_facts(rows)
    assert len(facts) == 1
    assert facts[0].week_key == "2024-06-17"
    assert facts[0].count == 3.0
    assert facts[0].total == 90000.0


def test_cashflow_facts_prefer_income_minus_expense():
    facts = normalizers.cashflow_facts(
        [
            {"month": "2024-06", "inflow": 500, "outflow": 800, "net": 999},
            {"period_month": "2024-05-01", "balance": -40},
            {"income": 10},
        ]
    )
    assert [(f.month_key, f.net) for f in facts] == [("2024-06", -300.0), ("2024-05", -40.0)]


def test_budget_facts_apply_rollovers():
    facts = normalizers.budget_facts(
        [
            {"planned": 1_000_000, "rollover_in": 200_000, "rollover_out": 50_000, "period_month": "2024-06-01"},
            {"planned": "oops"},
        ]
    )
    assert facts[0].planned == 1_150_000.0
    assert facts[0].month_key == "2024-06"
    assert facts[1].planned == 0.0
    assert facts[1].month_key is None


def test_expense_facts_filter_deleted_and_non_expense_rows():
    facts = normalizers.expense_facts(
        [
            {"amount": 10, "date": "2024-06-19", "type": "expense"},
            {"amount": 20, "timestamp": "2024-06-18T23:30:00Z"},
            {"amount": 30, "date": "2024-06-19", "type": "income"},
            {"amount": 40, "date": "2024-06-19", "deleted_at": "2024-06-19T01:00:00Z"},
            {"amount": 50},
        ]
    )
    assert [(f.day_key, f.amount) for f in facts] == [("2024-06-19", 10.0), ("2024-06-19", 20.0)]


def test_fallback_labels():
    subs = normalizers.subscription_facts([{"next_due_date": "2024-06-20", "amount": 54000}])
    goals = normalizers.goal_facts([{"target_amount": 100}])
    categories = normalizers.category_week_facts([{"week_start": "2024-06-17", "total": 1}])
    assert subs[0].name == "langganan misterius"
    assert subs[0].status == "active"
    assert goals[0].title == "tabungan"
    assert goals[0].goal_id is None
    assert categories[0].category == "Lainnya"


def test_rows_at_the_edge_of_the_calendar_are_skipped():
    # 20:00 UTC on the last representable day is already past datetime.max at UTC+7
    rows = [
        {"week_start": "9999-12-31T20:00:00Z", "merchant": "A", "count": 1},
        {"week_start": "2024-06-19", "merchant": "B", "count": 1},
    ]
    assert [fact.merchant for fact in normalizers.merchant_week_facts(rows)] == ["B"]
    assert normalizers.category_week_facts([{"week_start": "9999-12-31T20:00:00Z", "category": "Food"}]) == []
    assert normalizers.build_weekly_merchant_rows(
        [{"merchant": "A", "date": "9999-12-31T20:00:00Z", "amount": 10}]
    ) == []


def test_build_weekly_category_rows(transactions):
    rows = normalizers.build_weekly_category_rows(transactions + [{"date": "2024-06-19", "type": "expense", "amount": 5}])
    totals = {row["category"]: row["total"] for row in rows}
    assert totals == {"Food": 600_000.0, "Transport": 300_000.0, "Lainnya": 5.0}
    assert {row["week_start"] for row in rows} == {"2024-06-17"}


def test_build_weekly_merchant_rows_counts_expenses_per_week():
    rows = normalizers.build_weekly_merchant_rows(
        [
            {"merchant": "Indomaret", "date": "2024-06-17", "type": "expense", "amount": 10},
            {"merchant_name": "Indomaret", "date": "2024-06-19", "type": "expense", "amount": -15},
            {"merchant": "Indomaret", "date": "2024-06-12", "type": "expense", "amount": 5},
            {"merchant": "Indomaret", "date": "2024-06-19", "type": "income", "amount": 100},
        ]
    )
    assert rows == [
        {"merchant": "Indomaret", "week_start": "2024-06-17", "count": 2, "total": 25.0},
        {"merchant": "Indomaret", "week_start": "2024-06-10", "count": 1, "total": 5.0},
    ]
