from __future__ import annotations

from catalog_enrichment_pipeline.extract import extract_candidates, record_key, sort_by_priority
from catalog_enrichment_pipeline.ingest import parse_record_line
from catalog_enrichment_pipeline.schemas import FieldName


def test_extract_filters_by_catalog_and_min_fields() -> None:
    records = [
        {"code": "1", "quantity": "500 grammes", "origins": "France"},
        {"code": "2", "quantity": "1 kg"},
        {"code": "3", "quantity": "1 kg", "stores": "Lidl", "labels": "Organic"},
        {"code": "404", "quantity": "1 kg", "stores": "Lidl"},
        {"quantity": "1 kg", "stores": "Lidl"},
        None,
    ]

    candidates, stats = extract_candidates(records, {"1", "2", "3"})

    assert [candidate.key for candidate in candidates] == ["3", "1"]
    assert candidates[0].quality_score == 3
    assert candidates[1].fields[FieldName.QUANTITY] == "500g"
    assert stats.lines_read == 6
    assert stats.malformed_lines == 1
    assert stats.missing_key == 1
    assert stats.not_in_catalog == 1
    assert stats.below_min_fields == 1
    assert stats.candidates == 2
    assert stats.field_coverage["quantity"] == 2


def test_extract_min_fields_is_configurable() -> None:
    candidates, _ = extract_candidates([{"code": "2", "quantity": "1 kg"}], {"2"}, min_fields=1)
    assert len(candidates) == 1


def test_duplicate_keys_keep_highest_score_then_first_seen() -> None:
    records = [
        {"code": "1", "quantity": "1 kg", "stores": "Lidl"},
        {"code": "1", "quantity": "2 kg", "stores": "Aldi", "labels": "Organic"},
        {"code": "1", "quantity": "3 kg", "stores": "Tesco", "labels": "Vegan"},
    ]

    candidates, stats = extract_candidates(records, {"1"})

    assert len(candidates) == 1
    assert candidates[0].fields[FieldName.QUANTITY] == "2kg"
    assert stats.duplicates_replaced == 1


def test_ties_keep_extraction_order() -> None:
    records = [
        {"code": "b", "quantity": "1 kg", "stores": "Lidl"},
        {"code": "a", "quantity": "1 kg", "stores": "Aldi"},
        {"code": "c", "quantity": "1 kg", "stores": "Tesco", "labels": "bio"},
    ]

    candidates, _ = extract_candidates(records, {"a", "b", "c"})

    assert [candidate.key for candidate in candidates] == ["c", "b", "a"]


def test_language_filter() -> None:
    records = [
        {"code": "1", "lang": "fr", "quantity": "1 kg", "stores": "Lidl"},
        {"code": "2", "lang": "en", "quantity": "1 kg", "stores": "Lidl"},
    ]

    candidates, stats = extract_candidates(records, {"1", "2"}, languages=frozenset({"en"}))

    assert [candidate.key for candidate in candidates] == ["2"]
    assert stats.language_filtered == 1


def test_huge_integer_values_do_not_abort_extraction() -> None:
    huge = "9" * 400
    line = f'{{"code": "1", "net_weight": {huge}, "product_quantity": {huge}, "stores": "Lidl", "quantity": "1 kg"}}'
    records = [
        parse_record_line(line),
        {"code": "2", "quantity": "2 kg", "stores": "Aldi"},
    ]

    candidates, stats = extract_candidates(records, {"1", "2"})

    assert [candidate.key for candidate in candidates] == ["1", "2"]
    assert FieldName.NET_WEIGHT not in candidates[0].fields
    assert FieldName.PRODUCT_QUANTITY not in candidates[0].fields
    assert stats.malformed_lines == 0


def test_record_key_prefers_code_and_accepts_integers() -> None:
    assert record_key({"code": " 123 ", "barcode": "456"}) == "123"
    assert record_key({"barcode": 456}) == "456"
    assert record_key({"code": True}) is None
    assert record_key({}) is None


def test_sort_by_priority_is_stable(make_candidate) -> None:
    first = make_candidate("x", quantity="1kg")
    second = make_candidate("y", quantity="2kg")
    best = make_candidate("z", quantity="3kg", stores=["lidl"])

    assert [c.key for c in sort_by_priority([first, second, best])] == ["z", "x", "y"]


def test_byte_totals_compare_raw_and_optimized_fields() -> None:
    records = [
        {"code": "1", "quantity": "500 grammes", "countries": "France, Belgium", "product_name": "ignored"},
        {"code": "2", "quantity": "1 kg"},
    ]

    candidates, stats = extract_candidates(records, {"1", "2"})

    assert len(candidates) == 1
    raw = '{"countries":"France, Belgium","quantity":"500 grammes"}'
    optimized = '{"countries":["FR","BE"],"quantity":"500g"}'
    assert stats.raw_field_bytes == len(raw)
    assert stats.optimized_field_bytes == len(optimized)
    assert stats.saved_field_bytes == len(raw) - len(optimized)


def test_byte_totals_count_only_the_winning_duplicate() -> None:
    records = [
        {"code": "1", "quantity": "1 kg", "stores": "Lidl"},
        {"code": "1", "quantity": "2 kg", "stores": "Aldi", "labels": "Organic"},
    ]

    _, stats = extract_candidates(records, {"1"})

    assert stats.raw_field_bytes == len('{"labels":"Organic","quantity":"2 kg","stores":"Aldi"}')


def test_records_adding_nothing_new_are_already_complete() -> None:
    records = [
        {"code": "1", "quantity": "1 kg", "countries": "France"},
        {"code": "2", "quantity": "1 kg", "countries": "France"},
        {"code": "3", "quantity": "1 kg", "countries": "France"},
    ]
    existing = {
        "1": {"quantity": True, "countries": True},
        "2": {"quantity": True, "countries": False},
    }

    candidates, stats = extract_candidates(records, {"1", "2", "3"}, existing=existing)

    assert [candidate.key for candidate in candidates] == ["2", "3"]
    assert stats.already_complete == 1
