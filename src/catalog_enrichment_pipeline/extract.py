"""Match external records to catalog keys and emit prioritized candidates."""

from __future__ import annotations

import json
import logging
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .extractors import optimize_record
from .schemas import EnrichmentCandidate, ExtractionStats

logger = logging.getLogger("catalog_enrichment_pipeline.extract")

DEFAULT_MIN_FIELDS = 2
_KEY_FIELDS = ("code", "barcode")


@dataclass
class _Ranked:
    candidate: EnrichmentCandidate
    sequence: int
    raw_bytes: int
    optimized_bytes: int


def extract_candidates(
    records: Iterable[Mapping[str, Any] | None],
    catalog_keys: Collection[str],
    *,
    min_fields: int = DEFAULT_MIN_FIELDS,
    languages: Collection[str] = frozenset(),
    existing: Mapping[str, Mapping[str, bool]] | None = None,
) -> tuple[list[EnrichmentCandidate], ExtractionStats]:
    """Return candidates ordered by quality score (desc), ties by extraction order.

    When the stream holds the same key more than once, the record with the
    highest quality score wins and the earliest of equally scored records is kept.

    ``existing`` maps catalog keys to the fields the catalog already holds; a
    record offering nothing beyond those fields is counted as already complete.
    """

    stats = ExtractionStats()
    best: dict[str, _Ranked] = {}
    sequence = 0

    for raw in records:
        stats.lines_read += 1
        if raw is None:
            stats.malformed_lines += 1
            continue

        key = record_key(raw)
        if key is None:
            stats.missing_key += 1
            continue
        if key not in catalog_keys:
            stats.not_in_catalog += 1
            continue
        if languages and str(raw.get("lang", "")).lower() not in languages:
            stats.language_filtered += 1
            continue

        fields = optimize_record(raw)
        if len(fields) < min_fields:
            stats.below_min_fields += 1
            continue
        present = existing.get(key) if existing else None
        if present and all(present.get(field.value) for field in fields):
            stats.already_complete += 1
            continue

        candidate = EnrichmentCandidate(key=key, fields=fields, quality_score=len(fields))
        incumbent = best.get(key)
        if incumbent is not None:
            if candidate.quality_score <= incumbent.candidate.quality_score:
                continue
            stats.duplicates_replaced += 1
        best[key] = _Ranked(
            candidate=candidate,
            sequence=sequence,
            raw_bytes=_payload_bytes({field.value: raw[field.value] for field in fields}),
            optimized_bytes=_payload_bytes({field.value: value for field, value in fields.items()}),
        )
        sequence += 1

    ranked = sorted(best.values(), key=lambda item: (-item.candidate.quality_score, item.sequence))
    candidates = [item.candidate for item in ranked]

    stats.candidates = len(candidates)
    stats.raw_field_bytes = sum(item.raw_bytes for item in ranked)
    stats.optimized_field_bytes = sum(item.optimized_bytes for item in ranked)
    stats.saved_field_bytes = stats.raw_field_bytes - stats.optimized_field_bytes
    for candidate in candidates:
        for field in candidate.fields:
            stats.field_coverage[field.value] = stats.field_coverage.get(field.value, 0) + 1

    logger.info(
        "lines=%d malformed=%d not_in_catalog=%d below_min_fields=%d already_complete=%d "
        "duplicates_replaced=%d candidates=%d saved_field_bytes=%d",
        stats.lines_read,
        stats.malformed_lines,
        stats.not_in_catalog,
        stats.below_min_fields,
        stats.already_complete,
        stats.duplicates_replaced,
        stats.candidates,
        stats.saved_field_bytes,
    )
    return candidates, stats


def record_key(raw: Mapping[str, Any]) -> str | None:
    """Return the record's barcode, preferring ``code`` over ``barcode``."""

    for field in _KEY_FIELDS:
        value = raw.get(field)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            value = str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def sort_by_priority(candidates: Iterable[EnrichmentCandidate]) -> list[EnrichmentCandidate]:
    """Stable sort by quality score descending; equal scores keep their order."""

    return sorted(candidates, key=lambda candidate: -candidate.quality_score)


def _payload_bytes(fields: Mapping[str, Any]) -> int:
    # Raw values come straight from json.loads, so only plain JSON types reach here.
    return len(json.dumps(fields, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))
