"""Array-valued field optimizers: split, trim, abbreviate, de-duplicate, cap."""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

_DELIMITER = ","
_LANG_PREFIX = re.compile(r"^[a-z]{2}:")

COUNTRY_CODES: dict[str, str] = {
    "united states": "US",
    "france": "FR",
    "germany": "DE",
    "united kingdom": "GB",
    "spain": "ES",
    "italy": "IT",
    "canada": "CA",
    "australia": "AU",
    "japan": "JP",
    "netherlands": "NL",
    "belgium": "BE",
    "switzerland": "CH",
    "austria": "AT",
    "sweden": "SE",
    "norway": "NO",
    "denmark": "DK",
    "finland": "FI",
    "poland": "PL",
    "czech republic": "CZ",
    "hungary": "HU",
    "portugal": "PT",
    "greece": "GR",
    "ireland": "IE",
    "luxembourg": "LU",
    "slovenia": "SI",
    "slovakia": "SK",
    "estonia": "EE",
    "latvia": "LV",
    "lithuania": "LT",
    "malta": "MT",
    "cyprus": "CY",
}

LABEL_SYNONYMS: dict[str, str] = {
    "organic": "org",
    "bio": "org",
    "biological": "org",
    "fair trade": "fair",
    "fairtrade": "fair",
    "gluten free": "gf",
    "gluten-free": "gf",
    "sans gluten": "gf",
    "vegan": "vegan",
    "vegetarian": "veg",
    "non-gmo": "ngmo",
    "without gmo": "ngmo",
}

STORE_ABBREVIATIONS: dict[str, str] = {
    "walmart": "wmt",
    "target": "tgt",
    "kroger": "krog",
    "safeway": "safe",
    "whole foods": "whol",
    "trader joes": "tj",
    "costco": "cost",
    "carrefour": "carr",
    "tesco": "tesc",
    "aldi": "aldi",
    "lidl": "lidl",
    "intermarche": "inte",
    "leclerc": "lecl",
    "casino": "casi",
    "monoprix": "mono",
    "franprix": "fran",
    "super u": "spu",
}


def split_items(value: Any) -> list[str]:
    """Turn a delimited string or a list of strings into trimmed, non-empty items."""

    if isinstance(value, str):
        raw_items: list[Any] = value.split(_DELIMITER)
    elif isinstance(value, (list, tuple)):
        raw_items = list(value)
    else:
        return []

    items: list[str] = []
    for item in raw_items:
        if not isinstance(item, str):
            continue
        stripped = _LANG_PREFIX.sub("", item.strip())
        if stripped:
            items.append(stripped)
    return items


def build_list_optimizer(
    max_items: int,
    transform: Callable[[str], str],
) -> Callable[[Any], list[str] | None]:
    """Return an optimizer that maps, de-duplicates (order kept), and caps items."""

    def _optimize(value: Any) -> list[str] | None:
        seen: set[str] = set()
        result: list[str] = []
        for item in split_items(value):
            mapped = transform(item)
            if not mapped or mapped in seen:
                continue
            seen.add(mapped)
            result.append(mapped)
            if len(result) >= max_items:
                break
        return result or None

    return _optimize


def truncate(limit: int) -> Callable[[str], str]:
    def _truncate(item: str) -> str:
        return item[:limit]

    return _truncate


def country_code(item: str) -> str:
    return COUNTRY_CODES.get(item.lower()) or item[:10]


def label_code(item: str) -> str:
    lowered = item.lower()
    return LABEL_SYNONYMS.get(lowered) or lowered[:15]


def store_code(item: str) -> str:
    lowered = item.lower()
    return STORE_ABBREVIATIONS.get(lowered) or lowered[:15]


optimize_origins = build_list_optimizer(5, truncate(30))
optimize_manufacturing_places = build_list_optimizer(3, truncate(30))
optimize_countries = build_list_optimizer(5, country_code)
optimize_labels = build_list_optimizer(5, label_code)
optimize_stores = build_list_optimizer(5, store_code)
