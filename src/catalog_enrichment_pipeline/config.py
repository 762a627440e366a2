"""Runtime configuration and environment helpers for the enrichment pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_GIB = 1024**3

_DEFAULT_CATALOG_PATH = Path("outputs") / "catalog.duckdb"
_DEFAULT_ARTIFACTS_DIR = Path("outputs") / "enrichment"
_DEFAULT_CEILING_BYTES = 5 * _GIB
_DEFAULT_WARNING_BYTES = int(4.5 * _GIB)
_DEFAULT_BATCH_SIZE = 1_000
_DEFAULT_MIN_FIELDS = 2
_DEFAULT_SAMPLE_SIZE = 100
_DEFAULT_VIOLATION_THRESHOLD = 0.05
_DEFAULT_PAUSE_S = 0.1
_DEFAULT_MAX_RETRIES = 3
_DEFAULT_RETRY_BACKOFF_S = 0.5
_DEFAULT_WORKERS = 4
_DEFAULT_PROGRESS_EVERY = 5


@dataclass(frozen=True)
class AppConfig:
    """Immutable application configuration."""

    catalog_path: Path
    artifacts_dir: Path
    storage_ceiling_bytes: int
    storage_warning_bytes: int
    batch_size: int
    min_fields: int
    sample_size: int
    violation_threshold: float
    inter_batch_pause_s: float
    max_transport_retries: int
    retry_backoff_s: float
    worker_count: int
    progress_every: int
    validate_reports: bool
    languages: frozenset[str]

    @property
    def candidates_path(self) -> Path:
        return self.artifacts_dir / "candidates.jsonl"

    @property
    def sample_report_path(self) -> Path:
        return self.artifacts_dir / "sample_validation_report.json"

    @property
    def run_state_path(self) -> Path:
        return self.artifacts_dir / "run_state.json"

    @property
    def run_report_path(self) -> Path:
        return self.artifacts_dir / "run_report.json"


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    return value.lower() in {"1", "true", "yes", "on"}


def _parse_int(value: str | None, fallback: int, *, minimum: int = 1) -> int:
    if value is None:
        return fallback
    try:
        parsed = int(value)
    except ValueError:
        return fallback
    return fallback if parsed < minimum else parsed


def _parse_float(value: str | None, fallback: float, *, minimum: float | None = None) -> float:
    if value is None:
        return fallback
    try:
        parsed = float(value)
    except ValueError:
        return fallback
    if minimum is not None and parsed < minimum:
        return fallback
    return parsed


def _parse_languages(value: str | None) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(part.strip().lower() for part in value.split(",") if part.strip())


def load_config() -> AppConfig:
    """Load configuration from environment variables, applying defaults."""

    catalog_path = Path(os.getenv("CEP_CATALOG_PATH", str(_DEFAULT_CATALOG_PATH)))
    catalog_path.parent.mkdir(parents=True, exist_ok=True)

    artifacts_dir = Path(os.getenv("CEP_ARTIFACTS_DIR", str(_DEFAULT_ARTIFACTS_DIR)))
    artifacts_dir.mkdir(parents=True, exist_ok=True)

    ceiling = _parse_int(os.getenv("CEP_STORAGE_CEILING_BYTES"), _DEFAULT_CEILING_BYTES)
    warning = _parse_int(os.getenv("CEP_STORAGE_WARNING_BYTES"), _DEFAULT_WARNING_BYTES)
    if warning > ceiling:
        warning = ceiling

    return AppConfig(
        catalog_path=catalog_path,
        artifacts_dir=artifacts_dir,
        storage_ceiling_bytes=ceiling,
        storage_warning_bytes=warning,
        batch_size=_parse_int(os.getenv("CEP_BATCH_SIZE"), _DEFAULT_BATCH_SIZE),
        min_fields=_parse_int(os.getenv("CEP_MIN_FIELDS"), _DEFAULT_MIN_FIELDS),
        sample_size=_parse_int(os.getenv("CEP_SAMPLE_SIZE"), _DEFAULT_SAMPLE_SIZE),
        violation_threshold=_parse_float(
            os.getenv("CEP_VIOLATION_THRESHOLD"),
            _DEFAULT_VIOLATION_THRESHOLD,
            minimum=0.0,
        ),
        inter_batch_pause_s=_parse_float(os.getenv("CEP_INTER_BATCH_PAUSE_S"), _DEFAULT_PAUSE_S, minimum=0.0),
        max_transport_retries=_parse_int(os.getenv("CEP_MAX_TRANSPORT_RETRIES"), _DEFAULT_MAX_RETRIES),
        retry_backoff_s=_parse_float(os.getenv("CEP_RETRY_BACKOFF_S"), _DEFAULT_RETRY_BACKOFF_S, minimum=0.0),
        worker_count=_parse_int(os.getenv("CEP_WORKER_COUNT"), _DEFAULT_WORKERS),
        progress_every=_parse_int(os.getenv("CEP_PROGRESS_EVERY"), _DEFAULT_PROGRESS_EVERY),
        validate_reports=_parse_bool(os.getenv("CEP_VALIDATE_REPORTS"), True),
        languages=_parse_languages(os.getenv("CEP_LANGUAGES")),
    )


config = load_config()
"""Singleton config loaded at import time for convenience."""
