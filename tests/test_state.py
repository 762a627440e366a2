from __future__ import annotations

from pathlib import Path

import pytest

from catalog_enrichment_pipeline.schemas import BatchResult, RunState, RunStatus
from catalog_enrichment_pipeline.state import RunStateStore


def test_load_returns_none_when_no_state(tmp_path: Path) -> None:
    assert RunStateStore(tmp_path / "missing.json").load() is None


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    store = RunStateStore(tmp_path / "nested" / "state.json")
    state = RunState(
        run_id="abc",
        offset=40,
        total_candidates=100,
        cumulative=BatchResult(attempted=40, merged=31, failed=1, bytes_added=4_096),
        field_counts={"quantity": 20, "stores": 11},
        status=RunStatus.ABORTED_STORAGE_LIMIT,
        approaching_limit=True,
        batches_completed=4,
    )

    store.save(state)

    assert store.load() == state
    assert not list(store.path.parent.glob(".*.tmp"))


def test_unreadable_state_raises(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError, match="unreadable"):
        RunStateStore(path).load()


def test_clear_removes_state(tmp_path: Path) -> None:
    store = RunStateStore(tmp_path / "state.json")
    store.save(RunState(run_id="abc"))

    store.clear()
    store.clear()

    assert store.load() is None
