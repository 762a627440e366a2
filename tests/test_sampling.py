from __future__ import annotations

import pytest

from catalog_enrichment_pipeline.sampling import (
    DataQualityThresholdExceeded,
    InsufficientSample,
    SampleValidator,
    check_merged_entry,
    project_capacity,
)
from catalog_enrichment_pipeline.schemas import CatalogEntry, FieldName, GateDecision, MergePlan
from catalog_enrichment_pipeline.store_seams import InMemoryCatalogStore


class TrackingStore(InMemoryCatalogStore):
    """Records the scratch copies it hands out so tests can check they were dropped."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.clones: list[InMemoryCatalogStore] = []

    def clone_subset(self, keys):
        clone = super().clone_subset(keys)
        self.clones.append(clone)
        return clone


def test_projection_proceeds_just_under_ceiling() -> None:
    projection = project_capacity(
        current_catalog_bytes=4_800_000_000,
        bytes_per_merged_entry=150.0,
        merged=80,
        attempted=100,
        total_candidates=1_500_000,
        ceiling_bytes=5_000_000_000,
    )

    assert projection.sample_merge_rate == pytest.approx(0.8)
    assert projection.projected_added_bytes == 180_000_000
    assert projection.projected_final_bytes == 4_980_000_000
    assert projection.decision is GateDecision.PROCEED
    assert projection.overshoot_bytes == 0


def test_projection_reduces_scope_with_overshoot() -> None:
    projection = project_capacity(
        current_catalog_bytes=4_900_000_000,
        bytes_per_merged_entry=150.0,
        merged=80,
        attempted=100,
        total_candidates=1_500_000,
        ceiling_bytes=5_000_000_000,
    )

    assert projection.decision is GateDecision.REDUCE_SCOPE
    assert projection.overshoot_bytes == 80_000_000


def test_projection_at_exact_ceiling_is_not_safe() -> None:
    projection = project_capacity(
        current_catalog_bytes=900,
        bytes_per_merged_entry=100.0,
        merged=1,
        attempted=1,
        total_candidates=1,
        ceiling_bytes=1000,
    )
    assert projection.decision is GateDecision.REDUCE_SCOPE


def test_validator_measures_growth_without_touching_production(
    app_config, catalog_entries, candidates
) -> None:
    store = TrackingStore(catalog_entries)
    production_before = store.storage_stats()

    report = SampleValidator(store, app_config).validate(candidates)

    assert store.storage_stats() == production_before
    assert store.find_by_key("1001").attributes["quantity"] is None
    assert report.attempted == len(candidates)
    assert report.entries_found == 4
    assert report.merged == 4
    assert report.bytes_per_merged_entry == pytest.approx(
        (report.storage_after_bytes - report.storage_before_bytes) / report.merged
    )
    assert report.field_counts["origins"] == 2
    assert "quantity" in report.field_counts
    assert report.violations == []
    assert report.projection is not None
    assert report.decision is GateDecision.PROCEED
    assert report.estimator_note
    assert all(clone.dropped for clone in store.clones)


def test_validator_samples_top_candidates_only(config_factory, catalog_entries, candidates) -> None:
    cfg = config_factory(sample_size=2)
    report = SampleValidator(InMemoryCatalogStore(catalog_entries), cfg).validate(candidates)

    assert report.sample_size == 2
    assert report.projection is not None
    assert report.projection.total_candidates == len(candidates)


def test_insufficient_sample_still_drops_scratch(app_config, make_candidate) -> None:
    store = TrackingStore([CatalogEntry(key="1", attributes={"quantity": "1kg", "stores": ["lidl"]})])

    with pytest.raises(InsufficientSample) as excinfo:
        SampleValidator(store, app_config).validate([make_candidate("1", quantity="2kg", stores=["aldi"])])

    assert excinfo.value.report.merged == 0
    assert store.clones and all(clone.dropped for clone in store.clones)


def test_quality_threshold_exceeded(config_factory, make_candidate) -> None:
    store = TrackingStore([CatalogEntry(key="1", attributes={}), CatalogEntry(key="2", attributes={})])
    cfg = config_factory(violation_threshold=0.1)
    candidates = [
        make_candidate("1", product_quantity=500.0, stores=["lidl"]),
        make_candidate("2", product_quantity=250.0, product_quantity_unit="g"),
    ]

    with pytest.raises(DataQualityThresholdExceeded) as excinfo:
        SampleValidator(store, cfg).validate(candidates)

    report = excinfo.value.report
    assert report.violation_rate == pytest.approx(0.5)
    assert [violation.rule for violation in report.violations] == ["unpaired_quantity"]
    assert all(clone.dropped for clone in store.clones)


def test_check_merged_entry_flags_shape_problems() -> None:
    before = CatalogEntry(key="k", attributes={"quantity": "1kg"})
    plan = MergePlan(key="k", fields={FieldName.QUANTITY: "2kg", FieldName.ORIGINS: ["France"]})
    after = CatalogEntry(key="k", attributes={"quantity": "2kg", "origins": "France"})

    rules = {violation.rule for violation in check_merged_entry(before, plan, after)}

    assert rules == {"overwrote_existing", "value_mismatch", "not_array"}
