"""Quantity and unit normalization for measurement fields."""

from __future__ import annotations

import math
import re
from typing import Any

_MAX_QUANTITY_CHARS = 20
_MAX_UNKNOWN_UNIT_CHARS = 10

UNIT_SYNONYMS: dict[str, str] = {
    "g": "g",
    "gr": "g",
    "gram": "g",
    "grams": "g",
    "gramme": "g",
    "grammes": "g",
    "kg": "kg",
    "kilo": "kg",
    "kilos": "kg",
    "kilogram": "kg",
    "kilograms": "kg",
    "kilogramme": "kg",
    "kilogrammes": "kg",
    "mg": "mg",
    "milligram": "mg",
    "milligrams": "mg",
    "l": "L",
    "liter": "L",
    "liters": "L",
    "litre": "L",
    "litres": "L",
    "ml": "ml",
    "milliliter": "ml",
    "milliliters": "ml",
    "millilitre": "ml",
    "millilitres": "ml",
    "cl": "cl",
    "centilitre": "cl",
    "centilitres": "cl",
    "oz": "oz",
    "ounce": "oz",
    "ounces": "oz",
    "fl oz": "fl oz",
    "lb": "lb",
    "lbs": "lb",
    "pound": "lb",
    "pounds": "lb",
}

# Longest words first so "millilitres" is not rewritten as "milliL".
_QUANTITY_WORDS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, flags=re.IGNORECASE), replacement)
    for pattern, replacement in [
        (r"kilogrammes?|kilograms?", "kg"),
        (r"milligrammes?|milligrams?", "mg"),
        (r"millilitres?|milliliters?", "ml"),
        (r"centilitres?|centiliters?", "cl"),
        (r"grammes?|grams?", "g"),
        (r"litres?|liters?", "L"),
        (r"ounces?", "oz"),
        (r"pounds?", "lb"),
    ]
)
_WHITESPACE = re.compile(r"\s+")


def compress_quantity(value: Any) -> str | None:
    """Collapse a free-text quantity such as "500 grammes" into "500g"."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = _finite_float(value)
        if number is None:
            return None
        value = _format_number(number)
    if not isinstance(value, str):
        return None

    compact = _WHITESPACE.sub("", value.strip())
    for pattern, replacement in _QUANTITY_WORDS:
        compact = pattern.sub(replacement, compact)
    compact = compact[:_MAX_QUANTITY_CHARS]
    return compact or None


def standardize_unit(value: Any) -> str | None:
    """Map a unit string to its canonical short code; unknown units are truncated."""

    if not isinstance(value, str):
        return None
    cleaned = _WHITESPACE.sub(" ", value.strip())
    if not cleaned:
        return None
    canonical = UNIT_SYNONYMS.get(cleaned.lower())
    if canonical:
        return canonical
    return cleaned[:_MAX_UNKNOWN_UNIT_CHARS]


def parse_amount(value: Any) -> float | None:
    """Return a finite, non-negative numeric amount or None."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        amount = _finite_float(value)
    elif isinstance(value, str):
        try:
            amount = _finite_float(float(value.strip().replace(",", ".")))
        except ValueError:
            return None
    else:
        return None
    if amount is None or amount < 0:
        return None
    return amount


def _finite_float(value: int | float) -> float | None:
    # JSON integers are unbounded; anything past float range is rejected.
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")
