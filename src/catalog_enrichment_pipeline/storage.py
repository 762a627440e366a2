"""On-demand visibility into catalog storage size."""

from __future__ import annotations

import logging

from .schemas import EnrichmentCoverage, StorageSnapshot, StorageStatus, utc_now
from .store_seams import CatalogStore

logger = logging.getLogger("catalog_enrichment_pipeline.storage")

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


class StorageMonitor:
    """Reads store-reported size metadata; every call hits the store."""

    def __init__(self, store: CatalogStore) -> None:
        self._store = store

    def snapshot(self) -> StorageSnapshot:
        stats = self._store.storage_stats()
        return StorageSnapshot(
            data_bytes=stats.data_bytes,
            index_bytes=stats.index_bytes,
            total_bytes=stats.data_bytes + stats.index_bytes,
            timestamp=utc_now(),
        )

    def average_entry_bytes(self) -> float:
        return self._store.storage_stats().avg_document_size_bytes

    def coverage(self) -> EnrichmentCoverage:
        coverage = self._store.enrichment_coverage()
        logger.debug(
            "enriched_entries=%d total_entries=%d rate_pct=%.2f",
            coverage.enriched_entries,
            coverage.total_entries,
            coverage.enrichment_rate_pct,
        )
        return coverage

    def status(self, snapshot: StorageSnapshot, ceiling: int, warning: int) -> StorageStatus:
        return classify(snapshot, ceiling, warning)

    def estimate_remaining_capacity(self, snapshot: StorageSnapshot, ceiling: int, avg_entry_bytes: float) -> int:
        return estimate_remaining_capacity(snapshot, ceiling, avg_entry_bytes)


def classify(snapshot: StorageSnapshot, ceiling: int, warning: int) -> StorageStatus:
    """Return OVER at or past the ceiling, WARNING past the warning threshold, else OK."""

    if snapshot.total_bytes >= ceiling:
        return StorageStatus.OVER
    if snapshot.total_bytes > warning:
        return StorageStatus.WARNING
    return StorageStatus.OK


def estimate_remaining_capacity(snapshot: StorageSnapshot, ceiling: int, avg_entry_bytes: float) -> int:
    """Approximate number of further entries of average size that fit under the ceiling.

    Reporting only: control flow always compares absolute byte totals.
    """

    if avg_entry_bytes <= 0:
        return 0
    headroom = ceiling - snapshot.total_bytes
    if headroom <= 0:
        return 0
    return int(headroom // avg_entry_bytes)


def usage_pct(snapshot: StorageSnapshot, ceiling: int) -> float:
    if ceiling <= 0:
        return 100.0
    return round(snapshot.total_bytes / ceiling * 100, 2)


def format_bytes(num_bytes: float) -> str:
    """Human readable size using 1024-based units, e.g. ``4.50 GB``."""

    if num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    for unit in _BYTE_UNITS:
        if value < 1024 or unit == _BYTE_UNITS[-1]:
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} {_BYTE_UNITS[-1]}"  # pragma: no cover - loop always returns


def describe(snapshot: StorageSnapshot, ceiling: int, warning: int) -> dict[str, object]:
    """Operator-facing storage report used by the CLI and API."""

    status = classify(snapshot, ceiling, warning)
    if status is not StorageStatus.OK:
        logger.warning(
            "storage_status=%s total_bytes=%d ceiling_bytes=%d", status.value, snapshot.total_bytes, ceiling
        )
    return {
        "status": status.value,
        "data_bytes": snapshot.data_bytes,
        "index_bytes": snapshot.index_bytes,
        "total_bytes": snapshot.total_bytes,
        "total_human": format_bytes(snapshot.total_bytes),
        "ceiling_bytes": ceiling,
        "ceiling_human": format_bytes(ceiling),
        "warning_bytes": warning,
        "usage_pct": usage_pct(snapshot, ceiling),
        "headroom_bytes": max(ceiling - snapshot.total_bytes, 0),
        "timestamp": snapshot.timestamp.isoformat(),
    }
