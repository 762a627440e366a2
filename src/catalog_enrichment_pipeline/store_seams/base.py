"""Catalog store interface consumed by the sampler, engine, and monitor."""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

from ..schemas import (
    LAST_ENRICHED_FIELD,
    BulkUpdateOperation,
    BulkWriteResult,
    CatalogEntry,
    EnrichmentCoverage,
    FieldName,
    StorageStats,
)

COVERAGE_FIELDS: tuple[str, ...] = (*(field.value for field in FieldName), LAST_ENRICHED_FIELD)


class TransportError(Exception):
    """Raised when the store cannot be reached or rejects a request as a whole."""


class CatalogStore(Protocol):
    """Minimal interface required by the enrichment pipeline."""

    def find_by_key(self, key: str) -> CatalogEntry | None:  # pragma: no cover - Protocol
        """Return the entry for ``key`` or None when the catalog has no such entry."""

    def bulk_partial_update(self, operations: Sequence[BulkUpdateOperation]) -> BulkWriteResult:  # pragma: no cover
        """Apply independent field-level updates; one failure never aborts the rest."""

    def storage_stats(self) -> StorageStats:  # pragma: no cover - Protocol
        """Return store-maintained size metadata without scanning entries."""

    def enrichment_coverage(self) -> EnrichmentCoverage:  # pragma: no cover - Protocol
        """Return store-maintained per-field population counts without scanning entries."""

    def clone_subset(self, keys: Iterable[str]) -> CatalogStore:  # pragma: no cover - Protocol
        """Return a disposable store holding copies of the given entries."""

    def drop(self) -> None:  # pragma: no cover - Protocol
        """Discard a disposable store created by clone_subset()."""

    def find_enriched(self, limit: int) -> list[CatalogEntry]:  # pragma: no cover - Protocol
        """Return up to ``limit`` entries carrying the enrichment marker."""


def is_empty_value(value: Any) -> bool:
    """Return True for missing, null, blank-string, or empty-collection values."""

    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def document_size(key: str, attributes: dict[str, Any]) -> tuple[int, int]:
    """Return (data_bytes, index_bytes) accounted for one stored entry."""

    key_bytes = len(key.encode("utf-8"))
    payload = json.dumps(attributes, sort_keys=True, separators=(",", ":"))
    return key_bytes + len(payload.encode("utf-8")), key_bytes


def populated_fields(attributes: Mapping[str, Any]) -> set[str]:
    """Return the coverage fields that hold a non-empty value."""

    return {name for name in COVERAGE_FIELDS if not is_empty_value(attributes.get(name))}


def coverage_delta(before: Mapping[str, Any] | None, after: Mapping[str, Any] | None) -> Counter[str]:
    """Per-field change in populated entries when ``before`` is replaced by ``after``."""

    delta: Counter[str] = Counter()
    for name in populated_fields(after or {}):
        delta[name] += 1
    for name in populated_fields(before or {}):
        delta[name] -= 1
    return delta


def build_stats(data_bytes: int, index_bytes: int, document_count: int) -> StorageStats:
    average = data_bytes / document_count if document_count else 0.0
    return StorageStats(
        data_bytes=data_bytes,
        index_bytes=index_bytes,
        document_count=document_count,
        avg_document_size_bytes=average,
    )


def build_coverage(document_count: int, counts: Mapping[str, int]) -> EnrichmentCoverage:
    enriched = counts.get(LAST_ENRICHED_FIELD, 0)
    rate = round(enriched / document_count * 100, 2) if document_count else 0.0
    return EnrichmentCoverage(
        total_entries=document_count,
        enriched_entries=enriched,
        unenriched_entries=document_count - enriched,
        enrichment_rate_pct=rate,
        field_counts={field.value: counts.get(field.value, 0) for field in FieldName},
    )
