"""DuckDB-backed catalog store used for local runs and the CLI."""

from __future__ import annotations

import contextlib
import json
from collections import Counter
import shutil
import tempfile
from collections.abc import Iterable, Sequence
from pathlib import Path
from threading import Lock
from typing import Any

import duckdb

from ..schemas import (
    LAST_ENRICHED_FIELD,
    BulkUpdateOperation,
    BulkWriteResult,
    CatalogEntry,
    EnrichmentCoverage,
    OperationError,
    StorageStats,
)
from .base import COVERAGE_FIELDS, TransportError, build_coverage, build_stats, coverage_delta, document_size

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS entries (key VARCHAR PRIMARY KEY, attributes VARCHAR NOT NULL, last_enriched VARCHAR)",
    "CREATE TABLE IF NOT EXISTS catalog_stats ("
    "id INTEGER PRIMARY KEY, data_bytes BIGINT NOT NULL, index_bytes BIGINT NOT NULL, document_count BIGINT NOT NULL)",
    "INSERT INTO catalog_stats SELECT 1, 0, 0, 0 WHERE NOT EXISTS (SELECT 1 FROM catalog_stats)",
    "CREATE TABLE IF NOT EXISTS field_coverage (field VARCHAR PRIMARY KEY, populated BIGINT NOT NULL)",
)


class LocalDuckDBCatalogStore:
    """Stores catalog entries as JSON attribute blobs inside a DuckDB file.

    Size counters live in ``catalog_stats`` and per-field population counts in
    ``field_coverage``. Both are updated in the same transaction as the entry
    writes, so neither ``storage_stats()`` nor ``enrichment_coverage()`` scans.
    """

    def __init__(self, db_path: Path, *, is_scratch: bool = False) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self.is_scratch = is_scratch
        try:
            self._conn: duckdb.DuckDBPyConnection | None = duckdb.connect(str(self._db_path))
            for statement in _SCHEMA:
                self._conn.execute(statement)
            for field in COVERAGE_FIELDS:
                self._conn.execute(
                    "INSERT INTO field_coverage SELECT ?, 0 "
                    "WHERE NOT EXISTS (SELECT 1 FROM field_coverage WHERE field = ?)",
                    [field, field],
                )
        except duckdb.Error as exc:
            raise TransportError(f"Cannot open catalog at {self._db_path}: {exc}") from exc

    @property
    def db_path(self) -> Path:
        return self._db_path

    def __enter__(self) -> LocalDuckDBCatalogStore:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def insert_entries(self, entries: Iterable[CatalogEntry]) -> int:
        """Insert or replace entries, keeping the size counters consistent."""

        inserted = 0
        with self._lock:
            conn = self._connection()
            try:
                conn.execute("BEGIN TRANSACTION")
                data_delta = index_delta = count_delta = 0
                populated: Counter[str] = Counter()
                for entry in entries:
                    previous = self._fetch_attributes(conn, entry.key)
                    values = [_dump(entry.attributes), entry.attributes.get(LAST_ENRICHED_FIELD), entry.key]
                    data_bytes, index_bytes = document_size(entry.key, entry.attributes)
                    if previous is None:
                        conn.execute("INSERT INTO entries (attributes, last_enriched, key) VALUES (?, ?, ?)", values)
                        index_delta += index_bytes
                        count_delta += 1
                    else:
                        conn.execute("UPDATE entries SET attributes = ?, last_enriched = ? WHERE key = ?", values)
                        data_bytes -= document_size(entry.key, previous)[0]
                    populated.update(coverage_delta(previous, entry.attributes))
                    data_delta += data_bytes
                    inserted += 1
                self._bump_stats(conn, data_delta, index_delta, count_delta)
                self._bump_coverage(conn, populated)
                conn.execute("COMMIT")
            except duckdb.Error as exc:
                _rollback(conn)
                raise TransportError(f"Insert failed: {exc}") from exc
        return inserted

    def find_by_key(self, key: str) -> CatalogEntry | None:
        with self._lock:
            conn = self._connection()
            try:
                attributes = self._fetch_attributes(conn, key)
            except duckdb.Error as exc:
                raise TransportError(f"Lookup failed for {key}: {exc}") from exc
        if attributes is None:
            return None
        return CatalogEntry(key=key, attributes=attributes)

    def bulk_partial_update(self, operations: Sequence[BulkUpdateOperation]) -> BulkWriteResult:
        result = BulkWriteResult()
        if not operations:
            return result

        with self._lock:
            conn = self._connection()
            try:
                conn.execute("BEGIN TRANSACTION")
                data_delta = 0
                populated: Counter[str] = Counter()
                for operation in operations:
                    current = self._fetch_attributes(conn, operation.key)
                    if current is None:
                        result.errors.append(OperationError(key=operation.key, message="No catalog entry for key"))
                        continue
                    try:
                        updated = {**current, **operation.fields}
                        payload = _dump(updated)
                    except (TypeError, ValueError) as exc:
                        result.errors.append(OperationError(key=operation.key, message=str(exc)))
                        continue
                    if updated == current:
                        continue
                    conn.execute(
                        "UPDATE entries SET attributes = ?, last_enriched = ? WHERE key = ?",
                        [payload, updated.get(LAST_ENRICHED_FIELD), operation.key],
                    )
                    data_delta += document_size(operation.key, updated)[0] - document_size(operation.key, current)[0]
                    populated.update(coverage_delta(current, updated))
                    result.modified_count += 1
                self._bump_stats(conn, data_delta, 0, 0)
                self._bump_coverage(conn, populated)
                conn.execute("COMMIT")
            except duckdb.Error as exc:
                _rollback(conn)
                raise TransportError(f"Bulk write failed: {exc}") from exc
        return result

    def storage_stats(self) -> StorageStats:
        with self._lock:
            conn = self._connection()
            try:
                row = conn.execute(
                    "SELECT data_bytes, index_bytes, document_count FROM catalog_stats WHERE id = 1"
                ).fetchone()
            except duckdb.Error as exc:
                raise TransportError(f"Cannot read storage stats: {exc}") from exc
        data_bytes, index_bytes, document_count = row if row else (0, 0, 0)
        return build_stats(int(data_bytes), int(index_bytes), int(document_count))

    def enrichment_coverage(self) -> EnrichmentCoverage:
        with self._lock:
            conn = self._connection()
            try:
                row = conn.execute("SELECT document_count FROM catalog_stats WHERE id = 1").fetchone()
                counts = conn.execute("SELECT field, populated FROM field_coverage").fetchall()
            except duckdb.Error as exc:
                raise TransportError(f"Cannot read enrichment coverage: {exc}") from exc
        document_count = int(row[0]) if row else 0
        return build_coverage(document_count, {field: int(populated) for field, populated in counts})

    def clone_subset(self, keys: Iterable[str]) -> LocalDuckDBCatalogStore:
        entries = [entry for entry in (self.find_by_key(key) for key in dict.fromkeys(keys)) if entry is not None]
        scratch_dir = Path(tempfile.mkdtemp(prefix="catalog-scratch-"))
        scratch = LocalDuckDBCatalogStore(scratch_dir / "scratch.duckdb", is_scratch=True)
        scratch.insert_entries(entries)
        return scratch

    def drop(self) -> None:
        if not self.is_scratch:
            raise ValueError("Only disposable copies can be dropped.")
        self.close()
        shutil.rmtree(self._db_path.parent, ignore_errors=True)

    def find_enriched(self, limit: int) -> list[CatalogEntry]:
        with self._lock:
            conn = self._connection()
            try:
                rows = conn.execute(
                    "SELECT key, attributes FROM entries WHERE last_enriched IS NOT NULL ORDER BY last_enriched DESC LIMIT ?",
                    [limit],
                ).fetchall()
            except duckdb.Error as exc:
                raise TransportError(f"Cannot list enriched entries: {exc}") from exc
        return [CatalogEntry(key=key, attributes=json.loads(attributes)) for key, attributes in rows]

    def _connection(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise TransportError(f"Catalog store at {self._db_path} is closed.")
        return self._conn

    @staticmethod
    def _fetch_attributes(conn: duckdb.DuckDBPyConnection, key: str) -> dict[str, Any] | None:
        row = conn.execute("SELECT attributes FROM entries WHERE key = ?", [key]).fetchone()
        return json.loads(row[0]) if row else None

    @staticmethod
    def _bump_stats(conn: duckdb.DuckDBPyConnection, data_delta: int, index_delta: int, count_delta: int) -> None:
        conn.execute(
            "UPDATE catalog_stats SET data_bytes = data_bytes + ?, index_bytes = index_bytes + ?, "
            "document_count = document_count + ? WHERE id = 1",
            [data_delta, index_delta, count_delta],
        )

    @staticmethod
    def _bump_coverage(conn: duckdb.DuckDBPyConnection, populated: Counter[str]) -> None:
        for field, change in populated.items():
            if change:
                conn.execute("UPDATE field_coverage SET populated = populated + ? WHERE field = ?", [change, field])


def _dump(attributes: dict[str, Any]) -> str:
    return json.dumps(attributes, sort_keys=True, separators=(",", ":"))


def _rollback(conn: duckdb.DuckDBPyConnection) -> None:
    with contextlib.suppress(duckdb.Error):
        conn.execute("ROLLBACK")
