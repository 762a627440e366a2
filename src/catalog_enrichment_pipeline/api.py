"""FastAPI application exposing catalog storage and enrichment progress."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, status

from .config import config
from .service_layer import enrichment_status, load_sample_report, open_store, storage_overview
from .store_seams import LocalDuckDBCatalogStore, TransportError

logger = logging.getLogger("catalog_enrichment_pipeline.api")

app = FastAPI(
    title="Catalog Enrichment Pipeline API",
    version="0.1.0",
    description="Read-only view of catalog storage, enrichment run state, and enriched samples.",
)


@app.get("/health")
def health() -> dict[str, str]:
    """Lightweight health probe for orchestration/monitoring."""

    return {"status": "ok"}


@app.get("/v1/storage")
def storage_v1() -> dict[str, Any]:
    with _store() as store:
        overview = storage_overview(store, config)
    logger.info("route=GET /v1/storage status=%s total_bytes=%d", overview["status"], overview["total_bytes"])
    return overview


@app.get("/v1/enrichment/status")
def enrichment_status_v1() -> dict[str, Any]:
    with _store() as store:
        payload = enrichment_status(store, config)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No enrichment run has been recorded.")

    sample = load_sample_report(config)
    if sample is not None:
        payload["sample_decision"] = sample.get("decision")
    logger.info("route=GET /v1/enrichment/status run_id=%s status=%s", payload["state"]["run_id"], payload["state"]["status"])
    return payload


@app.get("/v1/enrichment/coverage")
def enrichment_coverage_v1() -> dict[str, Any]:
    """Catalog-wide count of enriched entries and populated fields."""

    with _store() as store:
        coverage = store.enrichment_coverage()
    logger.info(
        "route=GET /v1/enrichment/coverage enriched=%d total=%d", coverage.enriched_entries, coverage.total_entries
    )
    return coverage.model_dump(mode="json")


@app.get("/v1/enrichment/sample")
def enrichment_sample_v1(limit: int = Query(10, ge=1, le=100)) -> dict[str, Any]:
    """Most recently enriched entries, for spot-checking merged values."""

    with _store() as store:
        entries = store.find_enriched(limit)
    logger.info("route=GET /v1/enrichment/sample limit=%d returned=%d", limit, len(entries))
    return {"count": len(entries), "items": [entry.model_dump(mode="json") for entry in entries]}


@contextmanager
def _store() -> Iterator[LocalDuckDBCatalogStore]:
    try:
        store = open_store(config)
    except TransportError as exc:
        logger.error("catalog unavailable: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    try:
        yield store
    except TransportError as exc:
        logger.error("catalog request failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    finally:
        store.close()
