"""Typer CLI for running the catalog enrichment pipeline locally."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

import typer

from .config import AppConfig, config
from .demo_utils import generate_demo_catalog, generate_external_records, write_demo_inputs
from .sampling import DataQualityThresholdExceeded, InsufficientSample
from .schemas import EnrichmentCandidate, GateDecision, RunStatus
from .service_layer import (
    StageTimings,
    load_candidates,
    open_store,
    run_enrichment,
    run_extraction,
    run_sample_validation,
    storage_overview,
)
from .storage import format_bytes
from .store_seams import CatalogStore, LocalDuckDBCatalogStore

app = typer.Typer(help="Enrich a storage-capped catalog from an external product dump.")

_EXIT_GATE_FAILED = 1
_EXIT_REDUCE_SCOPE = 2


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline progress to stderr.")) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def extract(
    external_path: Path = typer.Argument(..., help="External NDJSON dump (.ndjson/.jsonl, optionally .gz)."),
    catalog_index: Path = typer.Argument(..., help="Catalog-key index exported from the catalog (.json/.jsonl)."),
    min_fields: int = typer.Option(config.min_fields, "--min-fields", min=1, help="Minimum optimized fields."),
) -> None:
    """Match external records to catalog keys and write the prioritized candidate list."""

    cfg = replace(config, min_fields=min_fields)
    candidates, stats = run_extraction(external_path, catalog_index, cfg)
    typer.echo(
        f"Read {stats.lines_read} line(s): {stats.candidates} candidate(s), "
        f"{stats.malformed_lines} malformed, {stats.not_in_catalog} not in catalog, "
        f"{stats.below_min_fields} below {min_fields} field(s), {stats.already_complete} already complete."
    )
    typer.echo(
        f"Optimized fields take {format_bytes(stats.optimized_field_bytes)} "
        f"(raw {format_bytes(stats.raw_field_bytes)}, saved {format_bytes(stats.saved_field_bytes)})."
    )
    typer.echo(f"Candidates → {cfg.candidates_path}")


@app.command("validate-sample")
def validate_sample(
    sample_size: int = typer.Option(config.sample_size, "--sample-size", min=1, help="Top-N candidates to sample."),
) -> None:
    """Measure storage cost on disposable copies and report PROCEED or REDUCE_SCOPE."""

    cfg = replace(config, sample_size=sample_size)
    candidates = load_candidates(cfg)
    with open_store(cfg) as store:
        code = _validate_sample(store, candidates, cfg)
    if code:
        raise typer.Exit(code=code)


@app.command()
def enrich(
    resume: bool = typer.Option(False, "--resume", help="Continue from the persisted run state.", is_flag=True),
    batch_size: int = typer.Option(config.batch_size, "--batch-size", min=1, help="Candidates per bulk write."),
) -> None:
    """Apply fill-empty merges to the catalog in storage-ceiling-aware batches."""

    cfg = replace(config, batch_size=batch_size)
    candidates = load_candidates(cfg)
    with open_store(cfg) as store:
        code = _enrich(store, candidates, cfg, resume=resume)
    if code:
        raise typer.Exit(code=code)


@app.command("storage-status")
def storage_status() -> None:
    """Print current catalog size against the configured ceiling."""

    with open_store(config) as store:
        overview = storage_overview(store, config)
    typer.echo(
        f"Storage {overview['status']}: {overview['total_human']} of {overview['ceiling_human']} "
        f"({overview['usage_pct']:.2f}%), ~{overview['estimated_remaining_entries']} more entries fit."
    )
    coverage = overview["coverage"]
    typer.echo(
        f"Enriched {coverage['enriched_entries']}/{coverage['total_entries']} entries "
        f"({coverage['enrichment_rate_pct']:.2f}%)."
    )


@app.command()
def demo(
    n: int = typer.Option(200, "--n", min=1, help="Number of synthetic catalog entries."),
    output_dir: Path = typer.Option(
        Path("outputs/demo"),
        "--output-dir",
        help="Directory where demo artifacts will be written.",
    ),
    batch_size: int = typer.Option(50, "--batch-size", min=1, help="Candidates per bulk write."),
) -> None:
    """Run extract, sample validation and enrichment end to end on synthetic data."""

    output_dir.mkdir(parents=True, exist_ok=True)
    demo_cfg = replace(
        config,
        catalog_path=output_dir / "catalog.duckdb",
        artifacts_dir=output_dir / "artifacts",
        batch_size=batch_size,
        sample_size=min(config.sample_size, max(n // 4, 1)),
        inter_batch_pause_s=0.0,
    )
    demo_cfg.artifacts_dir.mkdir(parents=True, exist_ok=True)
    demo_cfg.catalog_path.unlink(missing_ok=True)

    catalog = generate_demo_catalog(n)
    index_path, dump_path = write_demo_inputs(output_dir, catalog, generate_external_records(n * 2, n))

    timings = StageTimings()
    with LocalDuckDBCatalogStore(demo_cfg.catalog_path) as store:
        store.insert_entries(catalog)
        candidates, stats = run_extraction(dump_path, index_path, demo_cfg, timings=timings)
        typer.echo(f"Extracted {stats.candidates} candidate(s) from {stats.lines_read} line(s).")
        if not candidates:
            typer.echo("Demo aborted: no candidates extracted.", err=True)
            raise typer.Exit(code=_EXIT_GATE_FAILED)

        code = _validate_sample(store, candidates, demo_cfg, timings=timings)
        if code == _EXIT_GATE_FAILED:
            raise typer.Exit(code=code)
        code = _enrich(store, candidates, demo_cfg, resume=False, timings=timings)

    summary = [f"Demo finished in {timings.total_ms:.0f} ms."]
    summary.append(f"Catalog → {demo_cfg.catalog_path}")
    summary.append(f"Sample report → {demo_cfg.sample_report_path}")
    summary.append(f"Run report → {demo_cfg.run_report_path}")
    typer.echo("\n".join(summary))
    if code:
        raise typer.Exit(code=code)


def _validate_sample(
    store: CatalogStore,
    candidates: list[EnrichmentCandidate],
    cfg: AppConfig,
    *,
    timings: StageTimings | None = None,
) -> int:
    try:
        report = run_sample_validation(store, candidates, cfg, timings=timings)
    except InsufficientSample:
        typer.echo("Sample produced no merges; storage cost cannot be measured.", err=True)
        return _EXIT_GATE_FAILED
    except DataQualityThresholdExceeded as exc:
        typer.echo(f"Data quality gate failed: {exc}", err=True)
        return _EXIT_GATE_FAILED

    projection = report.projection
    if projection is None:  # pragma: no cover - set whenever validation succeeds
        return _EXIT_GATE_FAILED
    typer.echo(
        f"Sample merged {report.merged}/{report.attempted} at {report.bytes_per_merged_entry:.1f} B/entry; "
        f"projected {format_bytes(projection.projected_final_bytes)} of {format_bytes(projection.ceiling_bytes)} "
        f"→ {projection.decision.value}"
    )
    if projection.decision is GateDecision.REDUCE_SCOPE:
        typer.echo(f"Projected overshoot: {format_bytes(projection.overshoot_bytes)}", err=True)
        return _EXIT_REDUCE_SCOPE
    return 0


def _enrich(
    store: CatalogStore,
    candidates: list[EnrichmentCandidate],
    cfg: AppConfig,
    *,
    resume: bool,
    timings: StageTimings | None = None,
) -> int:
    report = run_enrichment(store, candidates, cfg, resume=resume, timings=timings)
    state = report.state
    totals = report.totals
    typer.echo(
        f"Run {state.run_id} {state.status.value}: {state.offset}/{state.total_candidates} processed, "
        f"{totals.merged} merged, {totals.skipped_no_new_fields} already complete, "
        f"{totals.skipped_no_match} unmatched, {totals.failed} failed."
    )
    if state.approaching_limit:
        typer.echo("Warning: catalog storage is approaching the ceiling.", err=True)
    if state.status is RunStatus.ABORTED_ERROR:
        typer.echo(f"Run aborted: {state.last_error}", err=True)
        return _EXIT_GATE_FAILED
    return 0


if __name__ == "__main__":
    app()
