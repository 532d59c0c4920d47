from datetime import datetime, timezone
from itertools import permutations

import pytest

from app.utils.analyzer import Insight
from app.utils.ranker import rank_insights


def candidate(name, severity, timestamp=None, **meta):
    if timestamp is not None:
        meta["timestamp"] = timestamp
    return Insight(id=name, type="trend", severity=severity, message=name, meta=meta)


@pytest.mark.parametrize(
    "ordering",
    list(permutations([candidate("low", "low", 100), candidate("high", "high", 1), candidate("med", "med", 50)])),
)
def test_severity_dominates_recency(ordering):
    assert [item.severity for item in rank_insights(list(ordering))] == ["high", "med", "low"]


def test_recency_breaks_severity_ties():
    ranked = rank_insights(
        [
            candidate("old", "med", 10),
            candidate("undated", "med"),
            candidate("new", "med", datetime(2024, 6, 19, tzinfo=timezone.utc)),
            candidate("garbage", "med", "not-a-time"),
        ]
    )
    assert [item.id for item in ranked] == ["new", "old", "undated", "garbage"]


def test_equal_keys_keep_generation_order():
    ranked = rank_insights([candidate(str(i), "low") for i in range(4)])
    assert [item.id for item in ranked] == ["0", "1", "2", "3"]


def test_caps_output_at_five():
    candidates = [candidate(f"c{i}", ("low", "med", "high")[i % 3], i) for i in range(20)]
    ranked = rank_insights(candidates)
    assert len(ranked) == 5
    assert all(item.severity == "high" for item in ranked)
    assert [item.id for item in ranked] == ["c17", "c14", "c11", "c8", "c5"]


def test_strips_ranking_timestamp_only():
    original = candidate("a", "high", 5, merchant="Grab")
    ranked = rank_insights([original])
    assert ranked[0].meta == {"merchant": "Grab"}
    # input candidates are left untouched
    assert original.meta == {"merchant": "Grab", "timestamp": 5}


def test_empty_input():
    assert rank_insights([]) == []
