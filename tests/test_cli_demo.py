from __future__ import annotations

import importlib
import json

import pytest
from typer.testing import CliRunner

import catalog_enrichment_pipeline.cli as cli_module
import catalog_enrichment_pipeline.config as config_module
from catalog_enrichment_pipeline.demo_utils import (
    generate_demo_catalog,
    generate_external_records,
    write_demo_inputs,
)
from catalog_enrichment_pipeline.store_seams import LocalDuckDBCatalogStore


@pytest.fixture()
def cli(tmp_path, monkeypatch):
    monkeypatch.setenv("CEP_CATALOG_PATH", str(tmp_path / "catalog.duckdb"))
    monkeypatch.setenv("CEP_ARTIFACTS_DIR", str(tmp_path / "artifacts"))
    monkeypatch.setenv("CEP_INTER_BATCH_PAUSE_S", "0")
    monkeypatch.setenv("CEP_RETRY_BACKOFF_S", "0")
    importlib.reload(config_module)
    return importlib.reload(cli_module)


def test_demo_command_runs(tmp_path, cli) -> None:
    runner = CliRunner()
    output_dir = tmp_path / "demo"
    result = runner.invoke(
        cli.app,
        ["demo", "--n", "40", "--output-dir", str(output_dir), "--batch-size", "10"],
    )

    assert result.exit_code == 0, result.output
    assert (output_dir / "catalog.duckdb").exists()
    assert (output_dir / "artifacts" / "candidates.jsonl").exists()
    assert (output_dir / "artifacts" / "sample_validation_report.json").exists()
    report = json.loads((output_dir / "artifacts" / "run_report.json").read_text(encoding="utf-8"))
    assert report["state"]["status"] == "completed"
    assert report["totals"]["merged"] > 0


def test_stage_commands_share_artifacts(tmp_path, cli) -> None:
    catalog = generate_demo_catalog(30)
    index_path, dump_path = write_demo_inputs(tmp_path / "inputs", catalog, generate_external_records(60, 30))
    with LocalDuckDBCatalogStore(tmp_path / "catalog.duckdb") as store:
        store.insert_entries(catalog)

    runner = CliRunner()
    extracted = runner.invoke(cli.app, ["extract", str(dump_path), str(index_path), "--min-fields", "2"])
    assert extracted.exit_code == 0, extracted.output
    assert "2 malformed" in extracted.output
    assert "already complete" in extracted.output
    assert "saved" in extracted.output

    sampled = runner.invoke(cli.app, ["validate-sample", "--sample-size", "5"])
    assert sampled.exit_code == 0, sampled.output
    assert "PROCEED" in sampled.output

    enriched = runner.invoke(cli.app, ["enrich", "--batch-size", "7"])
    assert enriched.exit_code == 0, enriched.output
    assert "completed" in enriched.output

    resumed = runner.invoke(cli.app, ["enrich", "--resume"])
    assert resumed.exit_code == 0, resumed.output
    assert "completed" in resumed.output

    status = runner.invoke(cli.app, ["storage-status"])
    assert status.exit_code == 0, status.output
    assert "Storage OK" in status.output
    assert "/30 entries" in status.output


def test_validate_sample_reports_reduce_scope(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("CEP_CATALOG_PATH", str(tmp_path / "catalog.duckdb"))
    monkeypatch.setenv("CEP_ARTIFACTS_DIR", str(tmp_path / "artifacts"))
    catalog = generate_demo_catalog(20)
    with LocalDuckDBCatalogStore(tmp_path / "catalog.duckdb") as store:
        store.insert_entries(catalog)
        baseline = store.storage_stats()
    monkeypatch.setenv("CEP_STORAGE_CEILING_BYTES", str(baseline.data_bytes + baseline.index_bytes + 10))
    importlib.reload(config_module)
    cli = importlib.reload(cli_module)

    index_path, dump_path = write_demo_inputs(tmp_path / "inputs", catalog, generate_external_records(40, 20))
    runner = CliRunner()
    assert runner.invoke(cli.app, ["extract", str(dump_path), str(index_path)]).exit_code == 0

    result = runner.invoke(cli.app, ["validate-sample"])

    assert result.exit_code == 2, result.output
    assert "REDUCE_SCOPE" in result.output
