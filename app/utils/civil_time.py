"""
Civil calendar helpers pinned to a fixed UTC+7 offset.

Financial "today", "this week" and "this month" follow the user-facing locale
(Western Indonesia Time) no matter where the code runs, so every boundary here
is computed against ``CIVIL_TZ`` instead of the process timezone or UTC.
"""
from __future__ import annotations

import calendar
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

CIVIL_TZ = timezone(timedelta(hours=7), name="UTC+07:00")

_MONTH_ONLY = re.compile(r"^(\d{4})-(\d{2})$")
_DATE_ONLY = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def to_civil(value: Any) -> Optional[datetime]:
    """
    Coerce ``value`` into an aware datetime expressed in ``CIVIL_TZ``.

    Naive datetimes are read as UTC. Date-only inputs (``date`` objects,
    ``YYYY-MM-DD`` and ``YYYY-MM`` strings) denote the civil day itself.
    Numbers are POSIX seconds. Anything unparseable yields ``None``.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        try:
            return value.astimezone(CIVIL_TZ)
        except (OverflowError, ValueError):
            # shifting to UTC+7 can step past datetime.min/max
            return None

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=CIVIL_TZ)

    if isinstance(value, (int, float, Decimal)):
        seconds = float(value)
        if not math.isfinite(seconds):
            return None
        try:
            return datetime.fromtimestamp(seconds, tz=CIVIL_TZ)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        return _parse_string(value.strip())

    return None


def _parse_string(text: str) -> Optional[datetime]:
    if not text:
        return None

    try:
        match = _MONTH_ONLY.match(text)
        if match:
            return datetime(int(match.group(1)), int(match.group(2)), 1, tzinfo=CIVIL_TZ)

        match = _DATE_ONLY.match(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return datetime(year, month, day, tzinfo=CIVIL_TZ)

        # fromisoformat only learned the "Z" suffix in 3.11
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    return to_civil(parsed)


def _require(value: Any) -> datetime:
    civil = to_civil(value)
    if civil is None:
        raise ValueError(f"Cannot interpret {value!r} as an instant")
    return civil


def start_of_day(value: Any) -> datetime:
    civil = _require(value)
    return civil.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: Any) -> datetime:
    return start_of_day(value) + timedelta(days=1, microseconds=-1)


def start_of_week(value: Any) -> datetime:
    """Monday 00:00 of the civil week containing ``value``."""
    day_start = start_of_day(value)
    return day_start - timedelta(days=day_start.weekday())


def start_of_month(value: Any) -> datetime:
    return start_of_day(value).replace(day=1)


def add_days(value: Any, days: int) -> datetime:
    # Fixed offset, no DST: a civil day is always 24 hours.
    return _require(value) + timedelta(days=days)


def days_between(later: Any, earlier: Any) -> int:
    """Whole civil days from ``earlier``'s day to ``later``'s day."""
    return (start_of_day(later).date() - start_of_day(earlier).date()).days


def days_in_month(value: Any) -> int:
    civil = _require(value)
    return calendar.monthrange(civil.year, civil.month)[1]


def day_key(value: Any) -> str:
    return _require(value).strftime("%Y-%m-%d")


def month_key(value: Any) -> str:
    return _require(value).strftime("%Y-%m")


def to_timestamp(value: Any) -> float:
    """POSIX seconds for ``value``; 0.0 when it cannot be read as an instant."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        seconds = float(value)
        return seconds if math.isfinite(seconds) else 0.0
    civil = to_civil(value)
    return civil.timestamp() if civil is not None else 0.0
