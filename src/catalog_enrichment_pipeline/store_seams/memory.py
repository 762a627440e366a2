"""Dict-backed catalog store for tests, demos, and dry runs."""

from __future__ import annotations

import copy
from collections import Counter
from collections.abc import Iterable, Sequence
from threading import Lock
from typing import Any

from ..schemas import (
    LAST_ENRICHED_FIELD,
    BulkUpdateOperation,
    BulkWriteResult,
    CatalogEntry,
    EnrichmentCoverage,
    OperationError,
    StorageStats,
)
from .base import TransportError, build_coverage, build_stats, document_size, populated_fields


class InMemoryCatalogStore:
    """Keeps entries in a dict and maintains size counters on every write.

    ``fail_keys`` makes individual update operations fail, ``fail_lookup_keys``
    makes lookups raise, and ``transport_failures`` makes the next N bulk writes
    fail as a whole; all three exist to exercise partial-failure handling.
    """

    def __init__(
        self,
        entries: Iterable[CatalogEntry] = (),
        *,
        fail_keys: Iterable[str] = (),
        fail_lookup_keys: Iterable[str] = (),
        transport_failures: int = 0,
        is_scratch: bool = False,
    ) -> None:
        self._entries: dict[str, dict[str, Any]] = {}
        self._data_bytes = 0
        self._index_bytes = 0
        self._coverage: Counter[str] = Counter()
        self._lock = Lock()
        self._dropped = False
        self.fail_keys = set(fail_keys)
        self.fail_lookup_keys = set(fail_lookup_keys)
        self.transport_failures = transport_failures
        self.bulk_calls = 0
        self.is_scratch = is_scratch
        self.insert_entries(entries)

    def insert_entries(self, entries: Iterable[CatalogEntry]) -> int:
        inserted = 0
        with self._lock:
            for entry in entries:
                if entry.key in self._entries:
                    self._forget(entry.key)
                self._remember(entry.key, copy.deepcopy(entry.attributes))
                inserted += 1
        return inserted

    def find_by_key(self, key: str) -> CatalogEntry | None:
        if key in self.fail_lookup_keys:
            raise TransportError(f"Lookup failed for {key}")
        with self._lock:
            attributes = self._entries.get(key)
            if attributes is None:
                return None
            return CatalogEntry(key=key, attributes=copy.deepcopy(attributes))

    def bulk_partial_update(self, operations: Sequence[BulkUpdateOperation]) -> BulkWriteResult:
        self.bulk_calls += 1
        if self.transport_failures > 0:
            self.transport_failures -= 1
            raise TransportError("Simulated bulk write transport failure")

        result = BulkWriteResult()
        with self._lock:
            for operation in operations:
                if operation.key in self.fail_keys:
                    result.errors.append(OperationError(key=operation.key, message="Simulated write failure"))
                    continue
                current = self._entries.get(operation.key)
                if current is None:
                    result.errors.append(OperationError(key=operation.key, message="No catalog entry for key"))
                    continue
                updated = {**current, **copy.deepcopy(operation.fields)}
                if updated == current:
                    continue
                self._forget(operation.key)
                self._remember(operation.key, updated)
                result.modified_count += 1
        return result

    def storage_stats(self) -> StorageStats:
        with self._lock:
            return build_stats(self._data_bytes, self._index_bytes, len(self._entries))

    def enrichment_coverage(self) -> EnrichmentCoverage:
        with self._lock:
            return build_coverage(len(self._entries), self._coverage)

    def clone_subset(self, keys: Iterable[str]) -> InMemoryCatalogStore:
        with self._lock:
            entries = [
                CatalogEntry(key=key, attributes=copy.deepcopy(self._entries[key]))
                for key in dict.fromkeys(keys)
                if key in self._entries
            ]
        return InMemoryCatalogStore(entries, is_scratch=True)

    def drop(self) -> None:
        if not self.is_scratch:
            raise ValueError("Only disposable copies can be dropped.")
        with self._lock:
            self._entries.clear()
            self._data_bytes = 0
            self._index_bytes = 0
            self._coverage.clear()
            self._dropped = True

    @property
    def dropped(self) -> bool:
        return self._dropped

    def find_enriched(self, limit: int) -> list[CatalogEntry]:
        with self._lock:
            matches = [
                CatalogEntry(key=key, attributes=copy.deepcopy(attributes))
                for key, attributes in self._entries.items()
                if attributes.get(LAST_ENRICHED_FIELD)
            ]
        return matches[:limit]

    def _remember(self, key: str, attributes: dict[str, Any]) -> None:
        data_bytes, index_bytes = document_size(key, attributes)
        self._entries[key] = attributes
        self._data_bytes += data_bytes
        self._index_bytes += index_bytes
        self._coverage.update(populated_fields(attributes))

    def _forget(self, key: str) -> None:
        attributes = self._entries.pop(key)
        data_bytes, index_bytes = document_size(key, attributes)
        self._data_bytes -= data_bytes
        self._index_bytes -= index_bytes
        self._coverage.subtract(populated_fields(attributes))
