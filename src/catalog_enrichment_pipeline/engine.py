"""Storage-ceiling-aware batch enrichment with resumable run state."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from threading import Event

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import AppConfig
from .config import config as default_config
from .extract import sort_by_priority
from .merge import PlannedCandidate, PlanOutcome, build_operation, plan_candidate
from .schemas import (
    BatchResult,
    BulkUpdateOperation,
    BulkWriteResult,
    EnrichmentCandidate,
    RunReport,
    RunState,
    RunStatus,
    StorageSnapshot,
    utc_now,
)
from .state import RunStateStore
from .storage import StorageMonitor
from .store_seams import CatalogStore, TransportError
from .timing import ProgressClock, TimingTracker

logger = logging.getLogger("catalog_enrichment_pipeline.engine")


class BatchEnrichmentEngine:
    """Applies fill-empty merges to the live catalog, one bounded batch at a time.

    Batches run strictly in sequence; within a batch the catalog lookups and
    merge planning fan out over a small thread pool and are joined before the
    single bulk write. After each write the storage total is re-read and the
    run stops once it reaches the ceiling.
    """

    def __init__(
        self,
        store: CatalogStore,
        cfg: AppConfig = default_config,
        *,
        state_store: RunStateStore | None = None,
        monitor: StorageMonitor | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._cfg = cfg
        self._state_store = state_store
        self._monitor = monitor or StorageMonitor(store)
        self._sleep = sleep

    def run(
        self,
        candidates: Sequence[EnrichmentCandidate],
        state: RunState | None = None,
        cancel_event: Event | None = None,
    ) -> RunReport:
        """Process candidates from ``state.offset`` onwards and return the run report."""

        cfg = self._cfg
        timings = TimingTracker()
        ordered = sort_by_priority(candidates)
        total = len(ordered)

        if state is not None and state.status is RunStatus.COMPLETED:
            logger.info("run_id=%s already completed; nothing to do", state.run_id)
            return self._report(state, None, None, ProgressClock(state.offset), timings)

        state = self._start(state, total)
        clock = ProgressClock(state.offset)

        with timings.stage("snapshot"):
            initial = self._monitor.snapshot()
        if initial.total_bytes >= cfg.storage_ceiling_bytes:
            logger.warning(
                "run_id=%s catalog already at ceiling total_bytes=%d ceiling_bytes=%d",
                state.run_id,
                initial.total_bytes,
                cfg.storage_ceiling_bytes,
            )
            state = _transition(state, RunStatus.ABORTED_STORAGE_LIMIT)
            self._persist(state)
            return self._report(state, initial, initial, clock, timings)

        current = initial
        with ThreadPoolExecutor(max_workers=cfg.worker_count, thread_name_prefix="enrich") as executor:
            while state.offset < total:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("run_id=%s cancelled at offset=%d", state.run_id, state.offset)
                    state = _transition(state, RunStatus.CANCELLED)
                    break

                batch = ordered[state.offset : state.offset + cfg.batch_size]
                state, current = self.run_batch(batch, state, current, executor, timings)
                self._persist(state)
                if state.status is not RunStatus.RUNNING:
                    break

                if state.batches_completed % cfg.progress_every == 0:
                    self._log_progress(state, current, clock)
                if state.offset < total and cfg.inter_batch_pause_s > 0:
                    self._sleep(cfg.inter_batch_pause_s)

        if state.status is RunStatus.RUNNING:
            state = _transition(state, RunStatus.COMPLETED)
        self._persist(state)

        logger.info(
            "run_id=%s status=%s offset=%d/%d merged=%d failed=%d",
            state.run_id,
            state.status.value,
            state.offset,
            total,
            state.cumulative.merged,
            state.cumulative.failed,
        )
        return self._report(state, initial, current, clock, timings)

    def run_batch(
        self,
        batch: Sequence[EnrichmentCandidate],
        state: RunState,
        before: StorageSnapshot,
        executor: ThreadPoolExecutor,
        timings: TimingTracker | None = None,
    ) -> tuple[RunState, StorageSnapshot]:
        """Run one batch and return the next state plus the post-write snapshot.

        The returned state has its offset advanced past the batch unless the
        bulk write exhausted its transport retries.
        """

        cfg = self._cfg
        timings = timings or TimingTracker()

        with timings.stage("plan"):
            planned: list[PlannedCandidate] = list(executor.map(partial(plan_candidate, self._store), batch))

        no_match = sum(1 for item in planned if item.outcome is PlanOutcome.NO_MATCH)
        no_new = sum(1 for item in planned if item.outcome is PlanOutcome.NO_NEW_FIELDS)
        lookup_failed = sum(1 for item in planned if item.outcome is PlanOutcome.LOOKUP_FAILED)
        merges = [item for item in planned if item.outcome is PlanOutcome.PLANNED and item.plan is not None]

        enriched_at = utc_now()
        operations = [build_operation(item.plan, enriched_at) for item in merges if item.plan is not None]

        try:
            with timings.stage("write"):
                result = self._bulk_write(operations) if operations else BulkWriteResult()
        except TransportError as exc:
            logger.error(
                "run_id=%s bulk write failed after retries offset=%d operations=%d error=%s",
                state.run_id,
                state.offset,
                len(operations),
                exc,
            )
            failed = BatchResult(failed=len(operations))
            aborted = state.model_copy(
                update={
                    "cumulative": state.cumulative.combine(failed),
                    "status": RunStatus.ABORTED_ERROR,
                    "last_error": str(exc),
                    "updated_at": utc_now(),
                }
            )
            return aborted, before

        failed_keys = {error.key for error in result.errors}
        for error in result.errors:
            logger.warning("run_id=%s key=%s operation failed: %s", state.run_id, error.key, error.message)

        field_counts = dict(state.field_counts)
        merged = 0
        for item in merges:
            if item.candidate.key in failed_keys or item.plan is None:
                continue
            merged += 1
            for field in item.plan.fields:
                field_counts[field.value] = field_counts.get(field.value, 0) + 1

        with timings.stage("snapshot"):
            after = self._monitor.snapshot()

        batch_result = BatchResult(
            attempted=len(batch),
            merged=merged,
            skipped_no_match=no_match,
            skipped_no_new_fields=no_new,
            failed=lookup_failed + len(failed_keys),
            bytes_added=after.total_bytes - before.total_bytes,
        )

        status = RunStatus.RUNNING
        if after.total_bytes >= cfg.storage_ceiling_bytes:
            logger.warning(
                "run_id=%s storage ceiling reached total_bytes=%d ceiling_bytes=%d",
                state.run_id,
                after.total_bytes,
                cfg.storage_ceiling_bytes,
            )
            status = RunStatus.ABORTED_STORAGE_LIMIT

        next_state = state.model_copy(
            update={
                "offset": state.offset + len(batch),
                "cumulative": state.cumulative.combine(batch_result),
                "field_counts": field_counts,
                "status": status,
                "approaching_limit": state.approaching_limit or after.total_bytes > cfg.storage_warning_bytes,
                "batches_completed": state.batches_completed + 1,
                "updated_at": utc_now(),
            }
        )
        logger.debug(
            "run_id=%s batch=%d attempted=%d merged=%d no_match=%d no_new_fields=%d failed=%d bytes_added=%d",
            state.run_id,
            next_state.batches_completed,
            batch_result.attempted,
            batch_result.merged,
            batch_result.skipped_no_match,
            batch_result.skipped_no_new_fields,
            batch_result.failed,
            batch_result.bytes_added,
        )
        return next_state, after

    def _bulk_write(self, operations: list[BulkUpdateOperation]) -> BulkWriteResult:
        retrying = Retrying(
            stop=stop_after_attempt(self._cfg.max_transport_retries + 1),
            wait=wait_exponential(multiplier=self._cfg.retry_backoff_s, max=30),
            retry=retry_if_exception_type(TransportError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(self._store.bulk_partial_update, operations)

    def _start(self, state: RunState | None, total: int) -> RunState:
        if state is None:
            state = RunState(run_id=uuid.uuid4().hex)
        elif state.offset:
            logger.info("run_id=%s resuming at offset=%d status=%s", state.run_id, state.offset, state.status.value)
        return state.model_copy(
            update={
                "total_candidates": total,
                "status": RunStatus.RUNNING,
                "last_error": None,
                "updated_at": utc_now(),
            }
        )

    def _persist(self, state: RunState) -> None:
        if self._state_store is not None:
            self._state_store.save(state)

    def _log_progress(self, state: RunState, snapshot: StorageSnapshot, clock: ProgressClock) -> None:
        summary = clock.summary(
            state.offset,
            state.total_candidates,
            snapshot,
            ceiling=self._cfg.storage_ceiling_bytes,
            warning=self._cfg.storage_warning_bytes,
        )
        logger.info(
            "run_id=%s progress=%.2f%% processed=%d/%d rate=%.1f/s eta_s=%s usage=%.2f%% status=%s",
            state.run_id,
            summary.progress_pct,
            summary.processed,
            summary.total,
            summary.rate_per_s,
            summary.eta_s,
            summary.usage_pct,
            summary.status.value,
        )

    def _report(
        self,
        state: RunState,
        initial: StorageSnapshot | None,
        final: StorageSnapshot | None,
        clock: ProgressClock,
        timings: TimingTracker,
    ) -> RunReport:
        summary = None
        if final is not None:
            summary = clock.summary(
                state.offset,
                state.total_candidates,
                final,
                ceiling=self._cfg.storage_ceiling_bytes,
                warning=self._cfg.storage_warning_bytes,
            )
        return RunReport(
            state=state,
            totals=state.cumulative,
            field_counts=dict(state.field_counts),
            initial_snapshot=initial,
            final_snapshot=final,
            summary=summary,
            timings_ms=timings.as_dict(),
        )


def _transition(state: RunState, status: RunStatus) -> RunState:
    return state.model_copy(update={"status": status, "updated_at": utc_now()})
