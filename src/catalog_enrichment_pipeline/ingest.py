"""Reading raw inputs and persisting pipeline artifacts."""

from __future__ import annotations

import gzip
import json
import os
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import IO, Any, Protocol, runtime_checkable

from .schemas import CatalogKeyEntry, EnrichmentCandidate

_JSON_SUFFIXES = {".json", ".jsonl", ".ndjson"}


@runtime_checkable
class SupportsModelDump(Protocol):
    """Subset of Pydantic models that expose model_dump()."""

    def model_dump(self, *args: Any, **kwargs: Any) -> Any: ...


def read_json_payload(path: Path | str) -> list[dict[str, Any]]:
    """Load structured data from either JSON or JSONL inputs."""

    source = Path(path)
    suffix = source.suffix.lower()
    if suffix not in _JSON_SUFFIXES:
        raise ValueError(f"Unsupported file format for {source}. Use .json or .jsonl inputs.")

    if suffix == ".json":
        payload = json.loads(source.read_text(encoding="utf-8"))
        if not isinstance(payload, list):
            raise ValueError("JSON file must contain a list of records.")
        return payload

    items: list[dict[str, Any]] = []
    with source.open("r", encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped:
                continue
            record = json.loads(stripped)
            if not isinstance(record, dict):
                raise ValueError("Each JSONL line must decode to an object.")
            items.append(record)
    return items


def read_catalog_index(path: Path | str) -> list[CatalogKeyEntry]:
    """Parse the exported catalog-key index into validated rows."""

    rows = read_json_payload(path)
    return [CatalogKeyEntry.model_validate(row) for row in rows]


def iter_external_records(path: Path | str) -> Iterator[dict[str, Any] | None]:
    """Lazily yield decoded records from an NDJSON dump, gzip-compressed or not.

    Lines that are not valid JSON objects are yielded as ``None`` so callers can
    count them without the stream failing.
    """

    with _open_text(Path(path)) as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped:
                continue
            yield parse_record_line(stripped)


def parse_record_line(line: str) -> dict[str, Any] | None:
    try:
        record = json.loads(line)
    except (ValueError, RecursionError):
        return None
    return record if isinstance(record, dict) else None


def read_candidates(path: Path | str) -> list[EnrichmentCandidate]:
    """Load a persisted candidate list, keeping its on-disk order."""

    return [EnrichmentCandidate.model_validate(row) for row in read_json_payload(path)]


def write_jsonl(path: Path | str, items: Iterable[Any]) -> None:
    """Persist an iterable of items to JSONL format."""

    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)

    with destination.open("w", encoding="utf-8") as handle:
        for item in items:
            handle.write(json.dumps(_to_payload(item)))
            handle.write("\n")


def write_json(path: Path | str, item: Any, *, pretty: bool = True) -> None:
    """Atomically write one JSON document (temp file, then rename)."""

    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    staging = destination.with_name(f".{destination.name}.tmp")
    staging.write_text(json.dumps(_to_payload(item), indent=2 if pretty else None), encoding="utf-8")
    os.replace(staging, destination)


def _to_payload(item: Any) -> Any:
    if isinstance(item, SupportsModelDump):
        return item.model_dump(mode="json")
    return item


def _open_text(path: Path) -> IO[str]:
    if path.suffix.lower() == ".gz":
        return gzip.open(path, "rt", encoding="utf-8", errors="replace")
    return path.open("r", encoding="utf-8", errors="replace")
