"""Command-line interface for benchtrend.

Subcommands:
    benchtrend collate    Show the exe/suite/benchmark hierarchy of a row file
    benchtrend compare    Change statistics between two commits
    benchtrend timeline   Ingest payloads and compute timeline statistics
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import click

from benchtrend import __version__
from benchtrend.config import EngineConfig
from benchtrend.logging import setup_logging

log = logging.getLogger("benchtrend")


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Also write a DEBUG log to this file.",
)
def main(verbose: bool, quiet: bool, log_file: Path | None) -> None:
    """benchtrend — Collate benchmark measurements and track their trends."""
    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)


def _resolve_config(config_path: Path | None, cli_overrides: dict[str, Any]) -> EngineConfig:
    """Load, merge and validate the engine configuration, exiting on errors."""
    from benchtrend.config import config_from_dict, load_config, validate_config

    try:
        data = load_config(config_path) if config_path is not None else {}
        config = config_from_dict(data, cli_overrides=cli_overrides)
    except (FileNotFoundError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    problems = validate_config(config)
    for problem in problems:
        if problem.severity == "warning":
            log.warning("%s: %s", problem.field, problem.message)
    errors = [p for p in problems if p.severity == "error"]
    if errors:
        for err in errors:
            click.echo(f"Error: {err.field}: {err.message}", err=True)
        raise SystemExit(1)
    return config


def _load_rows(rows_path: Path) -> list:
    from benchtrend.results import load_rows

    try:
        return load_rows(rows_path)
    except (OSError, ValueError, TypeError) as exc:
        click.echo(f"Error: cannot read {rows_path}: {exc}", err=True)
        raise SystemExit(1) from exc


# ---------------------------------------------------------------------------
# collate
# ---------------------------------------------------------------------------


@main.command()
@click.argument("rows_path", metavar="ROWS", type=click.Path(exists=True, path_type=Path))
def collate(rows_path: Path) -> None:
    """Show the exe/suite/benchmark hierarchy of a JSONL row file."""
    from benchtrend.collate import collate_measurements
    from benchtrend.display import format_collated

    rows = _load_rows(rows_path)
    try:
        results = collate_measurements(rows)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    click.echo(format_collated(results))


# ---------------------------------------------------------------------------
# compare
# ---------------------------------------------------------------------------


@main.command()
@click.argument("rows_path", metavar="ROWS", type=click.Path(exists=True, path_type=Path))
@click.option("--baseline", required=True, help="Commit id of the baseline.")
@click.option("--change", required=True, help="Commit id of the change.")
@click.option(
    "--threshold",
    type=float,
    default=None,
    help="Minimum absolute percentage change to count as significant.",
)
@click.option(
    "--policy",
    type=click.Choice(["flag", "suppress"]),
    default=None,
    help="What to do with insignificant changes (default: flag).",
)
@click.option("--criterion", default=None, help="Only show this criterion, with an overview.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="YAML engine configuration.",
)
def compare(
    rows_path: Path,
    baseline: str,
    change: str,
    threshold: float | None,
    policy: str | None,
    criterion: str | None,
    config_path: Path | None,
) -> None:
    """Compare two commits of a JSONL row file.

    \b
    Examples:
        benchtrend compare rows.jsonl --baseline abc123 --change def456
        benchtrend compare rows.jsonl --baseline abc123 --change def456 \\
            --threshold 5 --policy suppress --criterion total
    """
    from benchtrend.change import (
        calculate_all_change_statistics,
        calculate_data_for_overview_plot,
        revision_offsets,
    )
    from benchtrend.collate import collate_measurements
    from benchtrend.display import format_comparison, format_overview

    if baseline == change:
        raise click.UsageError("--baseline and --change must be different commits.")

    config = _resolve_config(
        config_path,
        {"significance_threshold": threshold, "significance_policy": policy},
    )
    base_index, change_index = revision_offsets(baseline, change)

    rows = [r for r in _load_rows(rows_path) if r.commit_id in (baseline, change)]
    if not rows:
        click.echo(f"Error: no measurements for commits {baseline} or {change}.", err=True)
        raise SystemExit(1)

    try:
        results = collate_measurements(rows)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    summary = calculate_all_change_statistics(
        results,
        base_index,
        change_index,
        config.significance_threshold,
        policy=config.significance_policy,
    )

    click.echo(format_comparison(results, summary, criterion=criterion))
    if criterion is not None:
        click.echo()
        click.echo(format_overview(calculate_data_for_overview_plot(results, criterion), criterion))


# ---------------------------------------------------------------------------
# timeline
# ---------------------------------------------------------------------------


@main.command()
@click.argument(
    "payloads",
    metavar="PAYLOAD...",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Export the timeline to this JSONL file.",
)
@click.option(
    "--rows",
    "rows_output",
    type=click.Path(path_type=Path),
    default=None,
    help="Also write the stored measurements as a JSONL row file.",
)
@click.option("--bootstrap-samples", type=int, default=None, help="Bootstrap resamples (default: 1000).")
@click.option("--seed", type=int, default=None, help="Seed for reproducible bootstrap intervals.")
@click.option("--timeout", type=float, default=None, help="Seconds to wait for the statistics.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="YAML engine configuration.",
)
def timeline(
    payloads: tuple[Path, ...],
    output: Path | None,
    rows_output: Path | None,
    bootstrap_samples: int | None,
    seed: int | None,
    timeout: float | None,
    config_path: Path | None,
) -> None:
    """Ingest result payloads and compute their timeline statistics.

    Each PAYLOAD is a JSON file as uploaded by a benchmark harness.
    """
    from concurrent.futures import TimeoutError as FutureTimeoutError

    from benchtrend.display import format_perf, format_timeline
    from benchtrend.ingest import MeasurementRecorder, PayloadError
    from benchtrend.results import save_rows

    config = _resolve_config(
        config_path,
        {
            "num_bootstrap_samples": bootstrap_samples,
            "bootstrap_seed": seed,
            "quiescence_timeout": timeout,
        },
    )
    config.timeline_enabled = True

    with MeasurementRecorder(config=config) as recorder:
        for path in payloads:
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
                recorded = recorder.record_payload(payload)
            except (json.JSONDecodeError, PayloadError) as exc:
                click.echo(f"Error: {path}: {exc}", err=True)
                raise SystemExit(1) from exc
            click.echo(
                f"{path.name}: {recorded.num_measurements} measurements "
                f"from {recorded.num_runs} runs"
            )
            # One wave in flight at a time.
            try:
                recorder.await_quiescent_timeline_updater()
            except FutureTimeoutError as exc:
                click.echo("Error: timed out waiting for timeline statistics.", err=True)
                raise SystemExit(1) from exc

        click.echo()
        click.echo(format_timeline(recorder.db))
        click.echo()
        click.echo(format_perf(recorder.updater.perf))

        if output is not None:
            count = recorder.db.export_timeline(output)
            click.echo(f"\nTimeline ({count} entries) written to: {output}")
        if rows_output is not None:
            count = save_rows(rows_output, recorder.db.measurement_rows())
            click.echo(f"Measurements ({count} rows) written to: {rows_output}")
