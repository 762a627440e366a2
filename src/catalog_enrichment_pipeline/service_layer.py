"""Service-layer helpers that wire config, store, and stages for the CLI and API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from threading import Event
from time import perf_counter
from typing import Any

from .config import AppConfig
from .config import config as default_config
from .contracts import validate_run_report, validate_sample_report
from .engine import BatchEnrichmentEngine
from .extract import extract_candidates
from .ingest import iter_external_records, read_candidates, read_catalog_index, write_json, write_jsonl
from .sampling import SampleValidationError, SampleValidator
from .schemas import EnrichmentCandidate, ExtractionStats, RunReport, RunState, SampleValidationReport
from .state import RunStateStore
from .storage import StorageMonitor, describe
from .store_seams import CatalogStore, LocalDuckDBCatalogStore
from .timing import summarize_state

logger = logging.getLogger("catalog_enrichment_pipeline.service")


@dataclass
class StageTimings:
    """Tracks elapsed time (ms) spent in each pipeline stage."""

    extract_ms: float = 0.0
    sample_ms: float = 0.0
    enrich_ms: float = 0.0

    @property
    def total_ms(self) -> float:
        return self.extract_ms + self.sample_ms + self.enrich_ms


def open_store(cfg: AppConfig = default_config) -> LocalDuckDBCatalogStore:
    return LocalDuckDBCatalogStore(cfg.catalog_path)


def run_extraction(
    external_path: Path,
    catalog_index_path: Path,
    cfg: AppConfig = default_config,
    *,
    timings: StageTimings | None = None,
) -> tuple[list[EnrichmentCandidate], ExtractionStats]:
    """Extract candidates from the external dump and persist them as JSONL."""

    timings = timings or StageTimings()
    started = perf_counter()
    try:
        index = read_catalog_index(catalog_index_path)
        candidates, stats = extract_candidates(
            iter_external_records(external_path),
            {row.key for row in index},
            min_fields=cfg.min_fields,
            languages=cfg.languages,
            existing={row.key: row.existing for row in index},
        )
        write_jsonl(cfg.candidates_path, candidates)
    finally:
        timings.extract_ms += (perf_counter() - started) * 1000
    return candidates, stats


def load_candidates(cfg: AppConfig = default_config, path: Path | None = None) -> list[EnrichmentCandidate]:
    return read_candidates(path or cfg.candidates_path)


def run_sample_validation(
    store: CatalogStore,
    candidates: list[EnrichmentCandidate],
    cfg: AppConfig = default_config,
    *,
    timings: StageTimings | None = None,
) -> SampleValidationReport:
    """Run the sample gate and persist its report, including when the gate fails."""

    timings = timings or StageTimings()
    started = perf_counter()
    try:
        report = SampleValidator(store, cfg).validate(candidates)
    except SampleValidationError as exc:
        _persist_sample_report(exc.report, cfg)
        raise
    finally:
        timings.sample_ms += (perf_counter() - started) * 1000
    _persist_sample_report(report, cfg)
    return report


def run_enrichment(
    store: CatalogStore,
    candidates: list[EnrichmentCandidate],
    cfg: AppConfig = default_config,
    *,
    resume: bool = False,
    cancel_event: Event | None = None,
    timings: StageTimings | None = None,
) -> RunReport:
    """Run (or resume) the batch engine and persist the final report."""

    timings = timings or StageTimings()
    state_store = RunStateStore(cfg.run_state_path)
    previous: RunState | None = state_store.load() if resume else None
    if resume and previous is None:
        logger.info("resume requested but no run state at %s; starting fresh", state_store.path)

    engine = BatchEnrichmentEngine(store, cfg, state_store=state_store)
    started = perf_counter()
    try:
        report = engine.run(candidates, state=previous, cancel_event=cancel_event)
    finally:
        timings.enrich_ms += (perf_counter() - started) * 1000

    if cfg.validate_reports:
        validate_run_report(report)
    write_json(cfg.run_report_path, report)
    return report


def storage_overview(store: CatalogStore, cfg: AppConfig = default_config) -> dict[str, Any]:
    monitor = StorageMonitor(store)
    snapshot = monitor.snapshot()
    overview = describe(snapshot, cfg.storage_ceiling_bytes, cfg.storage_warning_bytes)
    avg_entry = monitor.average_entry_bytes()
    overview["avg_entry_bytes"] = round(avg_entry, 2)
    overview["estimated_remaining_entries"] = monitor.estimate_remaining_capacity(
        snapshot, cfg.storage_ceiling_bytes, avg_entry
    )
    overview["coverage"] = monitor.coverage().model_dump(mode="json")
    return overview


def enrichment_status(store: CatalogStore, cfg: AppConfig = default_config) -> dict[str, Any] | None:
    """Latest persisted run state with a fresh operator summary, or None when no run exists."""

    state = RunStateStore(cfg.run_state_path).load()
    if state is None:
        return None
    monitor = StorageMonitor(store)
    snapshot = monitor.snapshot()
    summary = summarize_state(
        state,
        snapshot,
        ceiling=cfg.storage_ceiling_bytes,
        warning=cfg.storage_warning_bytes,
    )
    return {
        "state": state.model_dump(mode="json"),
        "summary": summary.model_dump(mode="json"),
        "coverage": monitor.coverage().model_dump(mode="json"),
    }


def load_sample_report(cfg: AppConfig = default_config) -> dict[str, Any] | None:
    path = cfg.sample_report_path
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def _persist_sample_report(report: SampleValidationReport, cfg: AppConfig) -> None:
    if cfg.validate_reports:
        validate_sample_report(report)
    write_json(cfg.sample_report_path, report)
