"""Catalog store seams: the protocol plus in-memory and DuckDB implementations."""

from .base import CatalogStore, TransportError, document_size, is_empty_value
from .duckdb_store import LocalDuckDBCatalogStore
from .memory import InMemoryCatalogStore

__all__ = [
    "CatalogStore",
    "InMemoryCatalogStore",
    "LocalDuckDBCatalogStore",
    "TransportError",
    "document_size",
    "is_empty_value",
]
