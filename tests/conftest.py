from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from catalog_enrichment_pipeline.config import AppConfig
from catalog_enrichment_pipeline.schemas import CatalogEntry, EnrichmentCandidate, FieldName


def _build_config(tmp_path: Path, **overrides) -> AppConfig:
    artifacts_dir = tmp_path / "artifacts"
    artifacts_dir.mkdir(parents=True, exist_ok=True)
    values = {
        "catalog_path": tmp_path / "catalog.duckdb",
        "artifacts_dir": artifacts_dir,
        "storage_ceiling_bytes": 10_000_000,
        "storage_warning_bytes": 9_000_000,
        "batch_size": 2,
        "min_fields": 2,
        "sample_size": 100,
        "violation_threshold": 0.05,
        "inter_batch_pause_s": 0.0,
        "max_transport_retries": 3,
        "retry_backoff_s": 0.0,
        "worker_count": 2,
        "progress_every": 1,
        "validate_reports": True,
        "languages": frozenset(),
    }
    values.update(overrides)
    return AppConfig(**values)


def _make_candidate(key: str, **fields) -> EnrichmentCandidate:
    typed = {FieldName(name): value for name, value in fields.items()}
    return EnrichmentCandidate(key=key, fields=typed, quality_score=len(typed))


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    return _build_config(tmp_path)


@pytest.fixture()
def catalog_entries() -> list[CatalogEntry]:
    return [
        CatalogEntry(key="1001", attributes={"product_name": "Oat Biscuits", "quantity": None}),
        CatalogEntry(key="1002", attributes={"product_name": "Tomato Soup", "quantity": "1kg"}),
        CatalogEntry(key="1003", attributes={"product_name": "Muesli", "origins": []}),
        CatalogEntry(key="1004", attributes={"product_name": "Dark Chocolate"}),
    ]


@pytest.fixture()
def candidates() -> list[EnrichmentCandidate]:
    return [
        _make_candidate("1001", quantity="500g", packaging="btl,plas"),
        _make_candidate("1002", quantity="500g", origins=["France"], countries=["FR", "BE"]),
        _make_candidate("1003", origins=["Spain"], labels=["org"]),
        _make_candidate("1004", stores=["carrefour"], countries=["FR"]),
        _make_candidate("9999", quantity="1L", stores=["lidl"]),
    ]


@pytest.fixture()
def config_factory(tmp_path: Path) -> Callable[..., AppConfig]:
    def _factory(**overrides) -> AppConfig:
        return _build_config(tmp_path, **overrides)

    return _factory


@pytest.fixture()
def make_candidate() -> Callable[..., EnrichmentCandidate]:
    return _make_candidate
