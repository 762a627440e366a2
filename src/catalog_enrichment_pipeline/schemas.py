"""Pydantic data models shared across the extractor, engine, CLI, and API."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

FieldValue = str | float | list[str]
"""Optimized value of a single target field."""

LAST_ENRICHED_FIELD = "last_enriched"


class FieldName(StrEnum):
    """Closed set of catalog attributes this pipeline is allowed to fill."""

    QUANTITY = "quantity"
    PRODUCT_QUANTITY = "product_quantity"
    PRODUCT_QUANTITY_UNIT = "product_quantity_unit"
    NET_WEIGHT = "net_weight"
    NET_WEIGHT_UNIT = "net_weight_unit"
    PACKAGING = "packaging"
    PACKAGING_TEXT = "packaging_text"
    ORIGINS = "origins"
    MANUFACTURING_PLACES = "manufacturing_places"
    LABELS = "labels"
    STORES = "stores"
    COUNTRIES = "countries"


ARRAY_FIELDS: frozenset[FieldName] = frozenset(
    {
        FieldName.ORIGINS,
        FieldName.MANUFACTURING_PLACES,
        FieldName.LABELS,
        FieldName.STORES,
        FieldName.COUNTRIES,
    }
)

QUANTITY_UNIT_PAIRS: tuple[tuple[FieldName, FieldName], ...] = (
    (FieldName.PRODUCT_QUANTITY, FieldName.PRODUCT_QUANTITY_UNIT),
    (FieldName.NET_WEIGHT, FieldName.NET_WEIGHT_UNIT),
)


def utc_now() -> datetime:
    return datetime.now(UTC)


class CatalogEntry(BaseModel):
    """Existing catalog row; attributes are owned by the catalog store."""

    key: str = Field(..., description="Natural key (barcode) of the catalog entry.")
    attributes: dict[str, Any] = Field(default_factory=dict)


class CatalogKeyEntry(BaseModel):
    """Row of the externally produced catalog-key index."""

    key: str
    existing: dict[str, bool] = Field(
        default_factory=dict,
        description="Which target attributes the catalog entry already holds.",
    )


class EnrichmentCandidate(BaseModel):
    """External record matched to a catalog key and proposed for enrichment."""

    model_config = ConfigDict(frozen=True)

    key: str
    fields: dict[FieldName, FieldValue]
    quality_score: int = Field(..., ge=0, description="Count of populated optimized fields.")


class MergePlan(BaseModel):
    """Subset of a candidate's fields that are empty in the catalog entry."""

    key: str
    fields: dict[FieldName, FieldValue] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.fields


class BulkUpdateOperation(BaseModel):
    """Targeted partial update of one catalog entry."""

    key: str
    fields: dict[str, Any]


class OperationError(BaseModel):
    """Failure of a single operation inside an unordered bulk write."""

    key: str
    message: str


class BulkWriteResult(BaseModel):
    modified_count: int = 0
    errors: list[OperationError] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Counters for one batch, or the running total of a whole run."""

    model_config = ConfigDict(frozen=True)

    attempted: int = 0
    merged: int = 0
    skipped_no_match: int = 0
    skipped_no_new_fields: int = 0
    failed: int = 0
    bytes_added: int = 0

    def combine(self, other: BatchResult) -> BatchResult:
        """Return a new result holding the field-wise sum of both results."""

        return BatchResult(
            attempted=self.attempted + other.attempted,
            merged=self.merged + other.merged,
            skipped_no_match=self.skipped_no_match + other.skipped_no_match,
            skipped_no_new_fields=self.skipped_no_new_fields + other.skipped_no_new_fields,
            failed=self.failed + other.failed,
            bytes_added=self.bytes_added + other.bytes_added,
        )


class StorageStats(BaseModel):
    """Size metadata reported by the catalog store."""

    data_bytes: int = Field(..., ge=0)
    index_bytes: int = Field(..., ge=0)
    document_count: int = Field(..., ge=0)
    avg_document_size_bytes: float = Field(..., ge=0)


class EnrichmentCoverage(BaseModel):
    """Catalog-wide count of entries carrying each enrichment field."""

    total_entries: int = Field(..., ge=0)
    enriched_entries: int = Field(..., ge=0, description="Entries carrying the last_enriched marker.")
    unenriched_entries: int = Field(..., ge=0)
    enrichment_rate_pct: float = Field(..., ge=0, le=100)
    field_counts: dict[str, int] = Field(default_factory=dict, description="Populated entries per target field.")


class StorageSnapshot(BaseModel):
    """Immutable point-in-time read of backing-store size."""

    model_config = ConfigDict(frozen=True)

    data_bytes: int
    index_bytes: int
    total_bytes: int
    timestamp: datetime


class StorageStatus(StrEnum):
    OK = "OK"
    WARNING = "WARNING"
    OVER = "OVER"


class RunStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED_STORAGE_LIMIT = "aborted:storage-limit"
    ABORTED_ERROR = "aborted:error"
    CANCELLED = "cancelled"


class RunState(BaseModel):
    """Resumable progress of an enrichment run, persisted after every batch."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    offset: int = Field(default=0, ge=0, description="Number of sorted candidates already committed.")
    total_candidates: int = Field(default=0, ge=0)
    cumulative: BatchResult = Field(default_factory=BatchResult)
    field_counts: dict[str, int] = Field(default_factory=dict)
    status: RunStatus = RunStatus.IDLE
    approaching_limit: bool = False
    batches_completed: int = 0
    last_error: str | None = None
    started_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ValidationViolation(BaseModel):
    """Post-merge data-quality rule broken by a sample entry."""

    key: str
    rule: str
    message: str


class GateDecision(StrEnum):
    PROCEED = "PROCEED"
    REDUCE_SCOPE = "REDUCE_SCOPE"


class CapacityProjection(BaseModel):
    """Extrapolation of sampled storage cost to a full run."""

    current_catalog_bytes: int
    bytes_per_merged_entry: float
    sample_merge_rate: float = Field(..., ge=0.0, le=1.0)
    total_candidates: int
    projected_added_bytes: int
    projected_final_bytes: int
    ceiling_bytes: int
    overshoot_bytes: int = Field(default=0, ge=0)
    decision: GateDecision


class SampleValidationReport(BaseModel):
    """Outcome of merging the top-N candidates into disposable catalog copies."""

    sample_size: int
    entries_found: int
    attempted: int
    merged: int
    storage_before_bytes: int
    storage_after_bytes: int
    bytes_per_merged_entry: float
    field_counts: dict[str, int] = Field(default_factory=dict)
    violations: list[ValidationViolation] = Field(default_factory=list)
    violation_rate: float = 0.0
    violation_threshold: float
    projection: CapacityProjection | None = None
    decision: GateDecision | None = None
    estimator_note: str = ""
    timings_ms: dict[str, float] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=utc_now)


class ExtractionStats(BaseModel):
    """Counters describing one pass over the external dataset."""

    lines_read: int = 0
    malformed_lines: int = 0
    missing_key: int = 0
    not_in_catalog: int = 0
    language_filtered: int = 0
    below_min_fields: int = 0
    already_complete: int = 0
    duplicates_replaced: int = 0
    candidates: int = 0
    field_coverage: dict[str, int] = Field(default_factory=dict)
    raw_field_bytes: int = Field(0, description="Compact JSON size of the raw target fields of kept candidates.")
    optimized_field_bytes: int = Field(0, description="Compact JSON size of the same fields after optimization.")
    saved_field_bytes: int = 0


class OperatorSummary(BaseModel):
    """Progress view consumed by operators and the status endpoint."""

    progress_pct: float
    processed: int
    total: int
    rate_per_s: float
    elapsed_s: float
    eta_s: float | None
    usage_bytes: int
    ceiling_bytes: int
    usage_pct: float
    status: StorageStatus


class RunReport(BaseModel):
    """Final artifact describing a finished, aborted, or cancelled run."""

    state: RunState
    totals: BatchResult
    field_counts: dict[str, int]
    initial_snapshot: StorageSnapshot | None = None
    final_snapshot: StorageSnapshot | None = None
    summary: OperatorSummary | None = None
    timings_ms: dict[str, float] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=utc_now)
