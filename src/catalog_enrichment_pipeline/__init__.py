"""Catalog Enrichment Pipeline package."""

from .engine import BatchEnrichmentEngine
from .extract import extract_candidates
from .sampling import SampleValidator, project_capacity
from .storage import StorageMonitor

__all__ = ["BatchEnrichmentEngine", "SampleValidator", "StorageMonitor", "extract_candidates", "project_capacity"]
