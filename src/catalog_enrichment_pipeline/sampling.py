"""Sample validation and capacity projection ahead of a live enrichment run."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .config import AppConfig
from .config import config as default_config
from .extract import sort_by_priority
from .extractors import STRING_CAPS
from .merge import PlanOutcome, build_operation, is_empty_value, plan_candidate
from .schemas import (
    ARRAY_FIELDS,
    QUANTITY_UNIT_PAIRS,
    CapacityProjection,
    CatalogEntry,
    EnrichmentCandidate,
    GateDecision,
    MergePlan,
    SampleValidationReport,
    ValidationViolation,
    utc_now,
)
from .storage import StorageMonitor
from .store_seams import CatalogStore
from .timing import TimingTracker

logger = logging.getLogger("catalog_enrichment_pipeline.sampling")

ESTIMATOR_NOTE = (
    "Sample is the highest-quality slice of the candidate list; merge rate and bytes per entry "
    "are likely higher than for the full population, so projected growth is an upper estimate."
)


class SampleValidationError(Exception):
    """Base class for gate failures; carries the partially filled report."""

    def __init__(self, message: str, report: SampleValidationReport) -> None:
        super().__init__(message)
        self.report = report


class InsufficientSample(SampleValidationError):
    """No sampled candidate produced a merge, so no storage cost can be measured."""


class DataQualityThresholdExceeded(SampleValidationError):
    """Post-merge violations exceeded the configured tolerance."""


def project_capacity(
    *,
    current_catalog_bytes: int,
    bytes_per_merged_entry: float,
    merged: int,
    attempted: int,
    total_candidates: int,
    ceiling_bytes: int,
) -> CapacityProjection:
    """Extrapolate sampled storage cost to the full candidate list.

    ``projected_final = current + bytes_per_merged * total_candidates * (merged / attempted)``;
    PROCEED only when the projection stays strictly below the ceiling.
    """

    merge_rate = merged / attempted if attempted else 0.0
    projected_added = int(round(bytes_per_merged_entry * total_candidates * merge_rate))
    projected_final = current_catalog_bytes + projected_added
    decision = GateDecision.PROCEED if projected_final < ceiling_bytes else GateDecision.REDUCE_SCOPE
    return CapacityProjection(
        current_catalog_bytes=current_catalog_bytes,
        bytes_per_merged_entry=bytes_per_merged_entry,
        sample_merge_rate=merge_rate,
        total_candidates=total_candidates,
        projected_added_bytes=projected_added,
        projected_final_bytes=projected_final,
        ceiling_bytes=ceiling_bytes,
        overshoot_bytes=max(projected_final - ceiling_bytes, 0),
        decision=decision,
    )


def check_merged_entry(before: CatalogEntry, plan: MergePlan, after: CatalogEntry) -> list[ValidationViolation]:
    """Re-validate one merged entry against the fill-empty and shape rules."""

    violations: list[ValidationViolation] = []

    def flag(rule: str, message: str) -> None:
        violations.append(ValidationViolation(key=before.key, rule=rule, message=message))

    for field, value in plan.fields.items():
        if not is_empty_value(before.attributes.get(field.value)):
            flag("overwrote_existing", f"{field.value} already held a value before the merge")
        if after.attributes.get(field.value) != value:
            flag("value_mismatch", f"{field.value} does not equal the planned value after the merge")

    for amount, unit in QUANTITY_UNIT_PAIRS:
        if amount not in plan.fields and unit not in plan.fields:
            continue
        has_amount = not is_empty_value(after.attributes.get(amount.value))
        has_unit = not is_empty_value(after.attributes.get(unit.value))
        if has_amount != has_unit:
            flag("unpaired_quantity", f"{amount.value} and {unit.value} must be present together")

    for field in plan.fields:
        value: Any = after.attributes.get(field.value)
        if field in ARRAY_FIELDS and not isinstance(value, list):
            flag("not_array", f"{field.value} should be a list, got {type(value).__name__}")
        cap = STRING_CAPS.get(field)
        if cap is not None and isinstance(value, str) and len(value) > cap:
            flag("string_too_long", f"{field.value} exceeds {cap} characters ({len(value)})")

    return violations


class SampleValidator:
    """Runs the merge path on disposable catalog copies and gates the full run."""

    def __init__(self, store: CatalogStore, cfg: AppConfig = default_config) -> None:
        self._store = store
        self._cfg = cfg

    def validate(
        self,
        candidates: Sequence[EnrichmentCandidate],
        *,
        total_candidates: int | None = None,
        current_catalog_bytes: int | None = None,
    ) -> SampleValidationReport:
        """Measure per-entry growth on the top candidates and project a full run.

        Raises ``InsufficientSample`` when nothing merges and
        ``DataQualityThresholdExceeded`` when too many merged entries break a rule.
        """

        cfg = self._cfg
        timings = TimingTracker()
        sample = sort_by_priority(candidates)[: cfg.sample_size]
        total = len(candidates) if total_candidates is None else total_candidates
        if current_catalog_bytes is None:
            current_catalog_bytes = StorageMonitor(self._store).snapshot().total_bytes

        with timings.stage("clone"):
            scratch = self._store.clone_subset(candidate.key for candidate in sample)
        try:
            report = self._measure(scratch, sample, timings)
        finally:
            with timings.stage("drop"):
                scratch.drop()

        report.timings_ms = timings.as_dict()
        if report.merged == 0:
            logger.warning("sample_size=%d entries_found=%d merged=0", len(sample), report.entries_found)
            raise InsufficientSample("No sampled candidate produced a merge.", report)

        report.projection = project_capacity(
            current_catalog_bytes=current_catalog_bytes,
            bytes_per_merged_entry=report.bytes_per_merged_entry,
            merged=report.merged,
            attempted=report.attempted,
            total_candidates=total,
            ceiling_bytes=cfg.storage_ceiling_bytes,
        )
        report.decision = report.projection.decision

        logger.info(
            "sample_size=%d merged=%d bytes_per_entry=%.1f violation_rate=%.3f projected_final=%d decision=%s",
            report.sample_size,
            report.merged,
            report.bytes_per_merged_entry,
            report.violation_rate,
            report.projection.projected_final_bytes,
            report.decision.value,
        )
        if report.violation_rate > cfg.violation_threshold:
            raise DataQualityThresholdExceeded(
                f"Violation rate {report.violation_rate:.3f} exceeds threshold {cfg.violation_threshold:.3f}.",
                report,
            )
        return report

    def _measure(
        self,
        scratch: CatalogStore,
        sample: list[EnrichmentCandidate],
        timings: TimingTracker,
    ) -> SampleValidationReport:
        monitor = StorageMonitor(scratch)
        before = monitor.snapshot()

        with timings.stage("plan"):
            planned = [plan_candidate(scratch, candidate) for candidate in sample]
        merges = [item for item in planned if item.outcome is PlanOutcome.PLANNED]
        found = sum(1 for item in planned if item.entry is not None)

        enriched_at = utc_now()
        operations = [build_operation(item.plan, enriched_at) for item in merges if item.plan is not None]
        with timings.stage("write"):
            result = scratch.bulk_partial_update(operations) if operations else None
        failed_keys = {error.key for error in result.errors} if result else set()

        after = monitor.snapshot()
        committed = [item for item in merges if item.candidate.key not in failed_keys]
        merged = len(committed)
        added = after.total_bytes - before.total_bytes

        violations: list[ValidationViolation] = []
        flagged_entries = 0
        field_counts: dict[str, int] = {}
        with timings.stage("validate"):
            for item in committed:
                if item.entry is None or item.plan is None:
                    continue
                post = scratch.find_by_key(item.candidate.key)
                if post is None:
                    found_violations = [
                        ValidationViolation(key=item.candidate.key, rule="missing_after_merge", message="entry vanished")
                    ]
                else:
                    found_violations = check_merged_entry(item.entry, item.plan, post)
                if found_violations:
                    flagged_entries += 1
                    violations.extend(found_violations)
                for field in item.plan.fields:
                    field_counts[field.value] = field_counts.get(field.value, 0) + 1

        return SampleValidationReport(
            sample_size=len(sample),
            entries_found=found,
            attempted=len(sample),
            merged=merged,
            storage_before_bytes=before.total_bytes,
            storage_after_bytes=after.total_bytes,
            bytes_per_merged_entry=added / merged if merged else 0.0,
            field_counts=field_counts,
            violations=violations,
            violation_rate=flagged_entries / merged if merged else 0.0,
            violation_threshold=self._cfg.violation_threshold,
            estimator_note=ESTIMATOR_NOTE,
        )
