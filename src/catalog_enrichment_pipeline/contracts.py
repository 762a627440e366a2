"""JSON schema helpers for validating persisted run artifacts."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema

from .schemas import RunReport, SampleValidationReport

RUN_REPORT_SCHEMA = "enrichment_run_report.schema.json"
SAMPLE_REPORT_SCHEMA = "sample_validation_report.schema.json"


def validate_run_report(report: RunReport | dict[str, Any]) -> None:
    """Validate a run report payload against the published JSON schema."""

    _validate(_as_payload(report), RUN_REPORT_SCHEMA, "Run report")


def validate_sample_report(report: SampleValidationReport | dict[str, Any]) -> None:
    """Validate a sample-validation report payload against the published JSON schema."""

    _validate(_as_payload(report), SAMPLE_REPORT_SCHEMA, "Sample report")


def _validate(payload: dict[str, Any], schema_name: str, label: str) -> None:
    try:
        jsonschema.validate(instance=payload, schema=_load_schema(schema_name))
    except jsonschema.ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
        raise ValueError(f"{label} failed validation at {location}: {exc.message}") from exc


def _as_payload(report: RunReport | SampleValidationReport | dict[str, Any]) -> dict[str, Any]:
    if isinstance(report, dict):
        return report
    return report.model_dump(mode="json")


@lru_cache(maxsize=4)
def _load_schema(schema_name: str) -> dict[str, Any]:
    repo_root = Path(__file__).resolve().parents[2]
    schema_path = repo_root / "contracts" / schema_name
    if not schema_path.exists():  # pragma: no cover - defensive
        raise FileNotFoundError(f"Contract schema not found at {schema_path}")
    return json.loads(schema_path.read_text(encoding="utf-8"))
