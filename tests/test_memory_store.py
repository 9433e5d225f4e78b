#!/usr/bin/env python3
"""Memory log recency/persistence and the performance history store."""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from memory_store import KEY_CYCLE, MemoryStore, outcome_key, recommendation_key
from performance_history import HistoryStore


def test_query_recent_is_newest_first_and_limited() -> None:
    store = MemoryStore()
    for i in range(5):
        store.append({"key": KEY_CYCLE, "n": i, "created_at": 1000.0 + i})
    store.append({"key": "other", "n": 99})

    recent = store.query_recent(KEY_CYCLE, 3)
    assert [r["n"] for r in recent] == [4, 3, 2]
    assert all("_seq" not in r for r in recent)
    assert store.query_recent(KEY_CYCLE, 0) == []
    assert store.query_recent("missing", 5) == []


def test_same_timestamp_resolves_by_append_order() -> None:
    store = MemoryStore()
    store.append({"key": "k", "n": 1, "created_at": 5.0})
    store.append({"key": "k", "n": 2, "created_at": 5.0})
    assert [r["n"] for r in store.query_recent("k", 2)] == [2, 1]


def test_append_requires_key() -> None:
    store = MemoryStore()
    with pytest.raises(ValueError):
        store.append({"value": 1})


def test_append_stamps_created_at() -> None:
    stored = MemoryStore().append({"key": "k"})
    assert stored["created_at"] > 0


def test_file_backed_store_persists_and_reloads(tmp_path) -> None:
    path = tmp_path / "state" / "memory.jsonl"
    store = MemoryStore(str(path))
    store.append({"key": recommendation_key("ZKLEND", "ETH"), "amount": 800.0, "created_at": 1.0})
    store.set_risk_profile("aggressive trader")

    lines = path.read_text().splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["key"] == "recommendation:zkLend:ETH"
    assert "_seq" not in json.loads(lines[0])

    reloaded = MemoryStore(str(path))
    assert len(reloaded) == 2
    assert reloaded.latest_risk_profile() == "aggressive trader"
    assert reloaded.query_recent("recommendation:zkLend:ETH", 1)[0]["amount"] == 800.0


def test_malformed_lines_are_skipped(tmp_path) -> None:
    path = tmp_path / "memory.jsonl"
    path.write_text('{"key": "k", "n": 1}\nnot json\n[1, 2]\n{"n": 3}\n')
    store = MemoryStore(str(path))
    assert len(store) == 1


def test_history_accuracy_none_without_samples() -> None:
    history = HistoryStore()
    assert history.accuracy("zkLend", "ETH") is None


def test_history_accuracy_from_relative_error() -> None:
    history = HistoryStore()
    history.record_outcome("zkLend", "ETH", predicted=10.0, actual=8.0)
    history.record_outcome("zklend", "eth", predicted=10.0, actual=10.0)
    # Mean relative error (0.2 + 0.0) / 2.
    assert history.accuracy("ZKLEND", "ETH") == pytest.approx(0.9)
    assert history.samples("zkLend", "ETH") == 2


def test_history_error_is_capped() -> None:
    history = HistoryStore()
    history.record_outcome("ekubo", "ETH", predicted=1.0, actual=50.0)
    assert history.accuracy("ekubo", "ETH") == 0.0


def test_history_hydrates_from_memory_outcomes_and_resets() -> None:
    store = MemoryStore()
    store.record_outcome("zkLend", "USDC", predicted_return=4.0, actual_return=3.0)
    store.append({"key": outcome_key("zkLend", "USDC"), "protocol": "zkLend"})

    history = HistoryStore()
    loaded = history.hydrate(store.query_prefix("outcome:"))
    assert loaded == 1
    assert history.accuracy("zkLend", "USDC") == pytest.approx(0.75)

    history.reset()
    assert history.accuracy("zkLend", "USDC") is None
    assert len(history) == 0
