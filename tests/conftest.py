from datetime import datetime

import pytest

from app.utils.civil_time import CIVIL_TZ


@pytest.fixture()
def now():
    # Wednesday; the civil week starts Monday 2024-06-17
    return datetime(2024, 6, 19, 10, 0, tzinfo=CIVIL_TZ)


@pytest.fixture()
def transactions():
    return [
        {"id": 1, "date": "2024-06-17", "type": "income", "amount": 1_000_000},
        {"id": 2, "date": "2024-06-17", "type": "expense", "amount": 200_000, "category": "Food"},
        {"id": 3, "date": "2024-06-18", "type": "expense", "amount": 300_000, "category": "Transport"},
        {"id": 4, "date": "2024-06-19", "type": "expense", "amount": 400_000, "category": "Food"},
    ]
