from __future__ import annotations

from datetime import UTC, datetime

import pytest

from catalog_enrichment_pipeline.extractors import optimize_record
from catalog_enrichment_pipeline.merge import (
    PlanOutcome,
    build_operation,
    compute_merge_plan,
    is_empty_value,
    plan_candidate,
)
from catalog_enrichment_pipeline.schemas import CatalogEntry, EnrichmentCandidate, FieldName, MergePlan
from catalog_enrichment_pipeline.store_seams import InMemoryCatalogStore


def _candidate_from_raw(key: str, raw: dict) -> EnrichmentCandidate:
    fields = optimize_record(raw)
    return EnrichmentCandidate(key=key, fields=fields, quality_score=len(fields))


def test_null_quantity_is_filled_with_optimized_value() -> None:
    entry = CatalogEntry(key="123", attributes={"quantity": None})
    candidate = _candidate_from_raw("123", {"quantity": "500 grammes"})

    plan = compute_merge_plan(entry, candidate)
    assert set(plan.fields) == {FieldName.QUANTITY}

    store = InMemoryCatalogStore([entry])
    store.bulk_partial_update([build_operation(plan, datetime.now(UTC))])
    merged = store.find_by_key("123")
    assert merged is not None
    assert merged.attributes["quantity"] == "500g"


def test_existing_quantity_is_never_overwritten() -> None:
    entry = CatalogEntry(key="123", attributes={"quantity": "1kg"})
    candidate = _candidate_from_raw("123", {"quantity": "500g", "origins": "France"})

    plan = compute_merge_plan(entry, candidate)

    assert set(plan.fields) == {FieldName.ORIGINS}
    operation = build_operation(plan, datetime.now(UTC))
    assert "quantity" not in operation.fields


@pytest.mark.parametrize("value", [None, "", "  ", [], {}, ()])
def test_empty_values(value) -> None:
    assert is_empty_value(value)


@pytest.mark.parametrize("value", ["x", ["a"], 0, 0.0, False])
def test_non_empty_values(value) -> None:
    assert not is_empty_value(value)


def test_build_operation_adds_marker_and_rejects_empty_plan() -> None:
    enriched_at = datetime(2025, 1, 1, tzinfo=UTC)
    plan = MergePlan(key="1", fields={FieldName.STORES: ["lidl"]})

    operation = build_operation(plan, enriched_at)

    assert operation.fields == {"stores": ["lidl"], "last_enriched": "2025-01-01T00:00:00+00:00"}
    with pytest.raises(ValueError):
        build_operation(MergePlan(key="1"), enriched_at)


def test_plan_candidate_outcomes(make_candidate) -> None:
    store = InMemoryCatalogStore(
        [
            CatalogEntry(key="full", attributes={"quantity": "1kg", "stores": ["lidl"]}),
            CatalogEntry(key="open", attributes={}),
        ],
        fail_lookup_keys={"broken"},
    )

    assert plan_candidate(store, make_candidate("missing", quantity="1kg")).outcome is PlanOutcome.NO_MATCH
    assert plan_candidate(store, make_candidate("full", quantity="2kg", stores=["aldi"])).outcome is (
        PlanOutcome.NO_NEW_FIELDS
    )
    assert plan_candidate(store, make_candidate("open", quantity="2kg")).outcome is PlanOutcome.PLANNED
    failed = plan_candidate(store, make_candidate("broken", quantity="2kg"))
    assert failed.outcome is PlanOutcome.LOOKUP_FAILED
    assert failed.error
