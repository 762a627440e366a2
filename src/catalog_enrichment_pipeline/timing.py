"""Stage timers and the operator-facing progress summary."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from time import perf_counter

from .schemas import OperatorSummary, RunState, StorageSnapshot
from .storage import classify, usage_pct


class TimingTracker:
    """Accumulates elapsed milliseconds per named stage across repeated entries."""

    def __init__(self) -> None:
        self._durations: defaultdict[str, float] = defaultdict(float)

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        start = perf_counter()
        try:
            yield
        finally:
            self._durations[name] += (perf_counter() - start) * 1000

    def as_dict(self) -> dict[str, float]:
        return {name: round(value, 3) for name, value in self._durations.items()}


def build_summary(
    *,
    processed: int,
    total: int,
    handled: int,
    elapsed_s: float,
    snapshot: StorageSnapshot,
    ceiling: int,
    warning: int,
) -> OperatorSummary:
    """Progress, throughput and storage usage; ``handled`` is the work done in ``elapsed_s``."""

    rate = handled / elapsed_s if elapsed_s > 0 else 0.0
    remaining = max(total - processed, 0)
    if remaining == 0:
        eta: float | None = 0.0
    elif rate > 0:
        eta = round(remaining / rate, 2)
    else:
        eta = None

    return OperatorSummary(
        progress_pct=round(min(processed / total, 1.0) * 100, 2) if total else 100.0,
        processed=processed,
        total=total,
        rate_per_s=round(rate, 2),
        elapsed_s=round(elapsed_s, 3),
        eta_s=eta,
        usage_bytes=snapshot.total_bytes,
        ceiling_bytes=ceiling,
        usage_pct=usage_pct(snapshot, ceiling),
        status=classify(snapshot, ceiling, warning),
    )


class ProgressClock:
    """Measures throughput for the records handled since the clock started.

    Resumed runs pass the already-committed offset so the rate reflects only
    work done in this process.
    """

    def __init__(self, starting_offset: int = 0) -> None:
        self._started = perf_counter()
        self._starting_offset = starting_offset

    def summary(
        self,
        processed: int,
        total: int,
        snapshot: StorageSnapshot,
        *,
        ceiling: int,
        warning: int,
    ) -> OperatorSummary:
        return build_summary(
            processed=processed,
            total=total,
            handled=max(processed - self._starting_offset, 0),
            elapsed_s=perf_counter() - self._started,
            snapshot=snapshot,
            ceiling=ceiling,
            warning=warning,
        )


def summarize_state(state: RunState, snapshot: StorageSnapshot, *, ceiling: int, warning: int) -> OperatorSummary:
    """Summary for a persisted run, timed from its start to its last update."""

    return build_summary(
        processed=state.offset,
        total=state.total_candidates,
        handled=state.offset,
        elapsed_s=max((state.updated_at - state.started_at).total_seconds(), 0.0),
        snapshot=snapshot,
        ceiling=ceiling,
        warning=warning,
    )
