"""Helpers for generating deterministic demo catalogs and external dumps."""

from __future__ import annotations

import json
from pathlib import Path
from random import Random
from typing import Any

from .ingest import write_jsonl
from .schemas import CatalogEntry, CatalogKeyEntry, FieldName

_NAMES = ["Oat Biscuits", "Tomato Soup", "Dark Chocolate", "Sparkling Water", "Muesli", "Peanut Butter"]
_QUANTITIES = ["500 grammes", "1 kilogram", "330 millilitres", "1.5 litres", "12 ounces", "250 g"]
_UNITS = ["grams", "kilogrammes", "millilitre", "litres", "oz"]
_PACKAGING = ["Plastic bottle", "Cardboard box", "Glass jar", "Metal can", "Plastic bag, cardboard"]
_ORIGINS = ["France", "Spain", "Italy", "Germany", "Belgium", "en:morocco"]
_LABELS = ["Organic", "Fair trade", "Vegan", "Gluten-free", "en:no-palm-oil"]
_STORES = ["Carrefour", "Lidl", "Aldi", "Tesco", "Auchan"]
_COUNTRIES = ["France", "Belgium", "Spain", "United Kingdom", "Germany"]


def generate_demo_catalog(count: int, *, seed: int = 7) -> list[CatalogEntry]:
    """Return catalog entries where roughly half the target attributes are missing."""

    rng = Random(seed)
    entries: list[CatalogEntry] = []
    for idx in range(count):
        attributes: dict[str, Any] = {"product_name": _pick(rng, _NAMES)}
        if rng.random() < 0.4:
            attributes[FieldName.QUANTITY.value] = "1kg"
        if rng.random() < 0.3:
            attributes[FieldName.PACKAGING.value] = "box"
        if rng.random() < 0.2:
            attributes[FieldName.COUNTRIES.value] = ["FR"]
        entries.append(CatalogEntry(key=_barcode(idx), attributes=attributes))
    return entries


def generate_external_records(count: int, catalog_size: int, *, seed: int = 11) -> list[dict[str, Any]]:
    """Return loosely-typed external records; some miss the catalog and some are sparse."""

    rng = Random(seed)
    records: list[dict[str, Any]] = []
    for idx in range(count):
        in_catalog = rng.random() < 0.8
        key = _barcode(rng.randrange(catalog_size)) if in_catalog else f"99{idx:011d}"
        record: dict[str, Any] = {"code": key, "lang": rng.choice(["en", "fr"])}
        if rng.random() < 0.7:
            record["quantity"] = _pick(rng, _QUANTITIES)
        if rng.random() < 0.5:
            record["product_quantity"] = str(rng.choice([250, 330, 500, 1000]))
            record["product_quantity_unit"] = _pick(rng, _UNITS)
        if rng.random() < 0.5:
            record["packaging"] = _pick(rng, _PACKAGING)
        if rng.random() < 0.3:
            record["packaging_text"] = f"Recycle the {_pick(rng, _PACKAGING).lower()} after use."
        if rng.random() < 0.6:
            record["origins"] = ", ".join(rng.sample(_ORIGINS, k=rng.randint(1, 3)))
        if rng.random() < 0.5:
            record["labels"] = rng.sample(_LABELS, k=rng.randint(1, 3))
        if rng.random() < 0.5:
            record["stores"] = ",".join(rng.sample(_STORES, k=rng.randint(1, 2)))
        if rng.random() < 0.6:
            record["countries"] = ", ".join(rng.sample(_COUNTRIES, k=rng.randint(1, 2)))
        records.append(record)
    return records


def write_demo_inputs(
    output_dir: Path,
    catalog: list[CatalogEntry],
    records: list[dict[str, Any]],
    *,
    malformed_lines: int = 2,
) -> tuple[Path, Path]:
    """Write the catalog-key index and an NDJSON dump (with a few broken lines)."""

    output_dir.mkdir(parents=True, exist_ok=True)
    index_path = output_dir / "catalog_index.jsonl"
    dump_path = output_dir / "external.ndjson"

    index_rows = [
        CatalogKeyEntry(
            key=entry.key,
            existing={field.value: field.value in entry.attributes for field in FieldName},
        )
        for entry in catalog
    ]
    write_jsonl(index_path, index_rows)

    with dump_path.open("w", encoding="utf-8") as handle:
        for idx, record in enumerate(records):
            handle.write(json.dumps(record))
            handle.write("\n")
            if idx < malformed_lines:
                handle.write('{"code": "broken",\n')
    return index_path, dump_path


def _barcode(idx: int) -> str:
    return f"30{idx:011d}"


def _pick(rng: Random, items: list[str]) -> str:
    return rng.choice(items)
