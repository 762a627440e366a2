"""Packaging code compression and free-text capping."""

from __future__ import annotations

import re
from typing import Any

PACKAGING_TEXT_MAX_CHARS = 200
PACKAGING_MAX_CHARS = 50

PACKAGING_ABBREVIATIONS: dict[str, str] = {
    "bottles": "btl",
    "bottle": "btl",
    "cans": "can",
    "can": "can",
    "packages": "pkg",
    "package": "pkg",
    "boxes": "box",
    "box": "box",
    "jars": "jar",
    "jar": "jar",
    "tubes": "tube",
    "tube": "tube",
    "plastic": "plas",
    "cardboard": "card",
    "glass": "glas",
    "aluminium": "alum",
    "aluminum": "alum",
    "paper": "papr",
    "metal": "metl",
}

_ABBREVIATION_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(PACKAGING_ABBREVIATIONS, key=len, reverse=True)) + r")\b"
)
_WHITESPACE = re.compile(r"\s+")


def compress_packaging(value: Any) -> str | None:
    """Lower-case, abbreviate known materials/containers, and cap the length."""

    if isinstance(value, (list, tuple)):
        value = ",".join(item for item in value if isinstance(item, str))
    if not isinstance(value, str):
        return None

    lowered = _WHITESPACE.sub(" ", value.strip().lower())
    compressed = _ABBREVIATION_PATTERN.sub(lambda match: PACKAGING_ABBREVIATIONS[match.group(1)], lowered)
    compressed = compressed[:PACKAGING_MAX_CHARS].strip()
    return compressed or None


def cap_text(value: Any, limit: int = PACKAGING_TEXT_MAX_CHARS) -> str | None:
    if not isinstance(value, str):
        return None
    capped = value.strip()[:limit]
    return capped or None
