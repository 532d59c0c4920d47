import logging
from datetime import timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from app.core.config import settings
from app.utils.insight_engine import (
    ACTIVE_GOALS,
    BUDGETS,
    MONTHLY_CASHFLOW,
    RECENT_EXPENSES,
    UPCOMING_SUBSCRIPTIONS,
    WEEKLY_MERCHANT,
    WEEKLY_TOP_CATEGORY,
    QueryWindow,
)

logger = logging.getLogger(__name__)

# Initialize DynamoDB resource
dynamodb = boto3.resource("dynamodb", region_name=settings.DYNAMO_REGION)

# Get table references (all read-only from this service)
expenses_table = dynamodb.Table(settings.DYNAMO_EXPENSES_TABLE)
weekly_merchant_table = dynamodb.Table(settings.DYNAMO_WEEKLY_MERCHANT_TABLE)
monthly_cashflow_table = dynamodb.Table(settings.DYNAMO_MONTHLY_CASHFLOW_TABLE)
weekly_category_table = dynamodb.Table(settings.DYNAMO_WEEKLY_CATEGORY_TABLE)
budgets_table = dynamodb.Table(settings.DYNAMO_BUDGETS_TABLE)
subscriptions_table = dynamodb.Table(settings.DYNAMO_SUBSCRIPTIONS_TABLE)
goals_table = dynamodb.Table(settings.DYNAMO_GOALS_TABLE)

FEED_TABLES = {
    WEEKLY_MERCHANT: weekly_merchant_table,
    MONTHLY_CASHFLOW: monthly_cashflow_table,
    WEEKLY_TOP_CATEGORY: weekly_category_table,
    BUDGETS: budgets_table,
    RECENT_EXPENSES: expenses_table,
    UPCOMING_SUBSCRIPTIONS: subscriptions_table,
    ACTIVE_GOALS: goals_table,
}


def _query_user_rows(table, user_id: str, feed: str, limit: Optional[int] = None, **kwargs) -> List[Dict[str, Any]]:
    """
    Query one user's partition and return plain Python rows.
    Errors are logged and re-raised so the insight engine can isolate the feed.
    """
    condition = Key("user_id").eq(user_id)
    sort_condition = kwargs.pop("sort_condition", None)
    if sort_condition is not None:
        condition = condition & sort_condition

    params = {"KeyConditionExpression": condition, **kwargs}
    if limit:
        params["Limit"] = limit

    try:
        response = table.query(**params)
    except ClientError as e:
        logger.error(f"{feed} query failed: {e.response['Error']['Message']}")
        raise
    return [_from_dynamo(item) for item in response.get("Items", [])]


def get_weekly_merchant_rows(user_id: str, window: QueryWindow) -> List[Dict[str, Any]]:
    """Per-merchant weekly counts for the previous and current week (SK: week_start)."""
    return _query_user_rows(
        weekly_merchant_table,
        user_id,
        WEEKLY_MERCHANT,
        limit=40,
        sort_condition=Key("week_start").gte(window.previous_week_key),
    )


def get_monthly_cashflow_rows(user_id: str, window: QueryWindow) -> List[Dict[str, Any]]:
    """Monthly income/expense rows up to the current month (SK: month), newest first."""
    return _query_user_rows(
        monthly_cashflow_table,
        user_id,
        MONTHLY_CASHFLOW,
        limit=12,
        # "2024-06-01" sorts after "2024-06", so bound by the next month instead
        sort_condition=Key("month").lt(window.next_month_key),
        ScanIndexForward=False,
    )


def get_weekly_top_category_rows(user_id: str, window: QueryWindow) -> List[Dict[str, Any]]:
    """Category totals for the current week (SK: week_start)."""
    return _query_user_rows(
        weekly_category_table,
        user_id,
        WEEKLY_TOP_CATEGORY,
        limit=20,
        sort_condition=Key("week_start").gte(window.week_key),
    )


def get_budget_rows(user_id: str, window: QueryWindow) -> List[Dict[str, Any]]:
    """Budget rows of the current month."""
    return _query_user_rows(
        budgets_table,
        user_id,
        BUDGETS,
        FilterExpression=Attr("period_month").begins_with(window.month_key),
    )


def get_recent_expense_rows(user_id: str, window: QueryWindow) -> List[Dict[str, Any]]:
    """
    Expenses from the lookback start through the end of today, soft-deleted
    rows excluded. The expenses SK is a UTC ISO timestamp, so the civil
    boundaries are converted to UTC before building the key range.
    """
    start_iso = window.lookback_start.astimezone(timezone.utc).replace(tzinfo=None).isoformat()
    end = window.today + timedelta(days=1)
    end_iso = end.astimezone(timezone.utc).replace(tzinfo=None).isoformat()
    return _query_user_rows(
        expenses_table,
        user_id,
        RECENT_EXPENSES,
        limit=500,
        sort_condition=Key("expense_id").between(start_iso, end_iso),
        # newest first so the limit drops the oldest rows
        ScanIndexForward=False,
        FilterExpression=Attr("deleted_at").not_exists()
        & (Attr("type").not_exists() | Attr("type").eq("expense")),
    )


def get_upcoming_subscription_rows(user_id: str, window: QueryWindow) -> List[Dict[str, Any]]:
    """Active subscriptions due between today and the lookahead end."""
    return _query_user_rows(
        subscriptions_table,
        user_id,
        UPCOMING_SUBSCRIPTIONS,
        FilterExpression=Attr("status").eq("active")
        & Attr("next_due_date").between(window.today_key, window.lookahead_key),
    )


def get_active_goal_rows(user_id: str, window: QueryWindow) -> List[Dict[str, Any]]:
    return _query_user_rows(
        goals_table,
        user_id,
        ACTIVE_GOALS,
        FilterExpression=Attr("status").not_exists() | Attr("status").eq("active"),
    )


# Declaration order decides which failure is reported as the run's first error
FEED_QUERIES = {
    WEEKLY_MERCHANT: get_weekly_merchant_rows,
    MONTHLY_CASHFLOW: get_monthly_cashflow_rows,
    WEEKLY_TOP_CATEGORY: get_weekly_top_category_rows,
    BUDGETS: get_budget_rows,
    RECENT_EXPENSES: get_recent_expense_rows,
    UPCOMING_SUBSCRIPTIONS: get_upcoming_subscription_rows,
    ACTIVE_GOALS: get_active_goal_rows,
}


def _from_dynamo(obj: Any):
    """
    Recursively convert Decimal instances back to native Python numeric types.
    """
    if isinstance(obj, list):
        return [_from_dynamo(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    return obj
