"""Pairing of every target field with its optimizer."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from ..schemas import FieldName, FieldValue
from .lists import (
    optimize_countries,
    optimize_labels,
    optimize_manufacturing_places,
    optimize_origins,
    optimize_stores,
)
from .packaging import PACKAGING_MAX_CHARS, PACKAGING_TEXT_MAX_CHARS, cap_text, compress_packaging
from .units import compress_quantity, parse_amount, standardize_unit

Optimizer = Callable[[Any], FieldValue | None]

OPTIMIZERS: dict[FieldName, Optimizer] = {
    FieldName.QUANTITY: compress_quantity,
    FieldName.PRODUCT_QUANTITY: parse_amount,
    FieldName.PRODUCT_QUANTITY_UNIT: standardize_unit,
    FieldName.NET_WEIGHT: compress_quantity,
    FieldName.NET_WEIGHT_UNIT: standardize_unit,
    FieldName.PACKAGING: compress_packaging,
    FieldName.PACKAGING_TEXT: cap_text,
    FieldName.ORIGINS: optimize_origins,
    FieldName.MANUFACTURING_PLACES: optimize_manufacturing_places,
    FieldName.LABELS: optimize_labels,
    FieldName.STORES: optimize_stores,
    FieldName.COUNTRIES: optimize_countries,
}

STRING_CAPS: dict[FieldName, int] = {
    FieldName.QUANTITY: 20,
    FieldName.NET_WEIGHT: 20,
    FieldName.PRODUCT_QUANTITY_UNIT: 10,
    FieldName.NET_WEIGHT_UNIT: 10,
    FieldName.PACKAGING: PACKAGING_MAX_CHARS,
    FieldName.PACKAGING_TEXT: PACKAGING_TEXT_MAX_CHARS,
}

ARRAY_CAPS: dict[FieldName, int] = {
    FieldName.ORIGINS: 5,
    FieldName.MANUFACTURING_PLACES: 3,
    FieldName.LABELS: 5,
    FieldName.STORES: 5,
    FieldName.COUNTRIES: 5,
}


def optimize(field: FieldName, value: Any) -> FieldValue | None:
    """Optimize one raw value; malformed input yields None instead of raising."""

    if value is None:
        return None
    try:
        return OPTIMIZERS[field](value)
    except (TypeError, ValueError, ArithmeticError, AttributeError, KeyError):
        return None


def optimize_record(raw: Mapping[str, Any]) -> dict[FieldName, FieldValue]:
    """Return the non-null optimized target fields of a raw external record."""

    optimized: dict[FieldName, FieldValue] = {}
    for field in FieldName:
        value = optimize(field, raw.get(field.value))
        if value is not None:
            optimized[field] = value
    return optimized
