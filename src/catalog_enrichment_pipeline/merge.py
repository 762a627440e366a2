"""Fill-empty-only merge planning."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from .schemas import (
    LAST_ENRICHED_FIELD,
    BulkUpdateOperation,
    CatalogEntry,
    EnrichmentCandidate,
    MergePlan,
)
from .store_seams import CatalogStore, TransportError, is_empty_value


def compute_merge_plan(entry: CatalogEntry, candidate: EnrichmentCandidate) -> MergePlan:
    """Keep the candidate fields whose catalog value is currently empty."""

    planned = {
        field: value
        for field, value in candidate.fields.items()
        if value is not None and is_empty_value(entry.attributes.get(field.value))
    }
    return MergePlan(key=candidate.key, fields=planned)


def build_operation(plan: MergePlan, enriched_at: datetime) -> BulkUpdateOperation:
    """Turn a non-empty plan into a partial update stamped with the enrichment marker."""

    if plan.is_empty:
        raise ValueError(f"Refusing to build an update for an empty merge plan ({plan.key}).")
    fields: dict[str, Any] = {field.value: value for field, value in plan.fields.items()}
    fields[LAST_ENRICHED_FIELD] = enriched_at.isoformat()
    return BulkUpdateOperation(key=plan.key, fields=fields)


class PlanOutcome(StrEnum):
    PLANNED = "planned"
    NO_MATCH = "no_match"
    NO_NEW_FIELDS = "no_new_fields"
    LOOKUP_FAILED = "lookup_failed"


@dataclass(frozen=True)
class PlannedCandidate:
    """Result of matching one candidate against the catalog and planning its merge."""

    candidate: EnrichmentCandidate
    outcome: PlanOutcome
    entry: CatalogEntry | None = None
    plan: MergePlan | None = None
    error: str | None = None


def plan_candidate(store: CatalogStore, candidate: EnrichmentCandidate) -> PlannedCandidate:
    """Look the candidate up and plan its merge; lookup failures are captured, not raised."""

    try:
        entry = store.find_by_key(candidate.key)
    except TransportError as exc:
        return PlannedCandidate(candidate=candidate, outcome=PlanOutcome.LOOKUP_FAILED, error=str(exc))
    if entry is None:
        return PlannedCandidate(candidate=candidate, outcome=PlanOutcome.NO_MATCH)

    plan = compute_merge_plan(entry, candidate)
    outcome = PlanOutcome.NO_NEW_FIELDS if plan.is_empty else PlanOutcome.PLANNED
    return PlannedCandidate(candidate=candidate, outcome=outcome, entry=entry, plan=plan)
