"""Command line entry point for the ig-timeseries application."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
import structlog

from ig_timeseries.analysis import aggregation, trends
from ig_timeseries.data import (
    AccountSeries,
    BatchResult,
    Dataset,
    Period,
    PostgresRecordStore,
    find_missing_periods,
    ingest_files,
)
from ig_timeseries.data.files import MAX_FILE_BYTES
from ig_timeseries.data.periods import format_period_for_display
from ig_timeseries.data.schema import ValidationConfig
from ig_timeseries.errors import IgTimeseriesError
from ig_timeseries.logging import configure_logging
from ig_timeseries.metrics import registry

DSN_HELP = "PostgreSQL connection string. May also be set via the IG_TS_DSN env var."
SCHEMA_HELP = "Target database schema. May also be set via the IG_TS_SCHEMA env var."
FILES_HELP = "Monthly export files named IG_YYYY_MM.csv."

LOG_FORMAT_CHOICES = ("console", "json")
LOG_LEVEL_CHOICES = ("critical", "error", "warning", "info", "debug")
METRIC_CHOICES = click.Choice(registry.METRIC_KEYS, case_sensitive=False)

logger = structlog.get_logger(__name__)

files_argument = click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)


def _parse_period(
    ctx: click.Context, param: click.Parameter, value: str | Sequence[str] | None
) -> Period | list[Period] | None:
    """Click callback turning ``YYYY-MM`` strings into :class:`Period` objects."""
    if value is None:
        return None
    try:
        if isinstance(value, str):
            return Period.parse_label(value)
        return [Period.parse_label(item) for item in value]
    except ValueError as exc:
        raise click.BadParameter(str(exc), ctx=ctx, param=param) from exc


@contextmanager
def _user_errors() -> Iterator[None]:
    """Show domain errors as clean CLI messages instead of tracebacks."""
    try:
        yield
    except IgTimeseriesError as exc:
        logger.debug("cli.domain_error", error=str(exc), kind=type(exc).__name__)
        raise click.ClickException(str(exc)) from exc


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _ingest(ctx: click.Context, files: Sequence[Path]) -> BatchResult:
    """Read export files from disk and ingest them as one batch."""
    ctx.ensure_object(dict)
    build_log = logger.bind(scope="dataset-build", files=len(files))
    build_log.debug("dataset.build_start", strict=ctx.obj["strict"])
    exports = [(path.name, path.read_text(encoding="utf-8-sig")) for path in files]
    result = ingest_files(
        exports,
        strict=ctx.obj["strict"],
        config=ValidationConfig(max_rows=ctx.obj["max_rows"], max_bytes=ctx.obj["max_bytes"]),
        max_workers=ctx.obj["workers"],
    )
    for issue in result.errors:
        click.echo(f"error: {issue.details.get('filename', '')}: {issue.message}", err=True)
    if not result.dataset.record_count():
        build_log.warning("dataset.build_empty", reason="no valid records")
    return result


def _load(ctx: click.Context, files: Sequence[Path]) -> Dataset:
    return _ingest(ctx, files).dataset


def _require_series(dataset: Dataset, account_id: str) -> AccountSeries:
    series = dataset.get_series(account_id)
    if series is None:
        raise click.ClickException(f"No data for account {account_id!r}.")
    return series


def _require_dsn(ctx: click.Context, override: str | None) -> str:
    """Return the resolved DSN, raising when none is provided."""
    ctx.ensure_object(dict)
    dsn = override or ctx.obj.get("dsn")
    if not dsn:
        raise click.UsageError("A PostgreSQL DSN is required; pass --dsn or set IG_TS_DSN.")
    return dsn


@click.group()
@click.option("--dsn", envvar="IG_TS_DSN", help=DSN_HELP, default=None)
@click.option(
    "--schema",
    envvar="IG_TS_SCHEMA",
    default="public",
    show_default=True,
    help=SCHEMA_HELP,
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False),
    envvar="IG_TS_LOG_LEVEL",
    default="warning",
    show_default=True,
    help="Verbosity for structured logs.",
)
@click.option(
    "--log-format",
    type=click.Choice(LOG_FORMAT_CHOICES, case_sensitive=False),
    envvar="IG_TS_LOG_FORMAT",
    default="console",
    show_default=True,
    help="Render logs as console-friendly text or JSON.",
)
@click.option(
    "--strict/--lenient",
    envvar="IG_TS_STRICT",
    default=True,
    show_default=True,
    help="Require the IG_ filename prefix.",
)
@click.option(
    "--max-rows",
    type=click.IntRange(min=1),
    envvar="IG_TS_MAX_ROWS",
    default=200,
    show_default=True,
    help="Row count above which a file is flagged with a warning.",
)
@click.option(
    "--max-bytes",
    type=click.IntRange(min=1),
    envvar="IG_TS_MAX_BYTES",
    default=MAX_FILE_BYTES,
    show_default=True,
    help="Largest export accepted, in bytes.",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    envvar="IG_TS_WORKERS",
    default=4,
    show_default=True,
    help="Threads used to parse files in parallel.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    dsn: str | None,
    schema: str,
    log_level: str,
    log_format: str,
    strict: bool,
    max_rows: int,
    max_bytes: int,
    workers: int,
) -> None:
    """Validate, ingest and analyze monthly social account exports."""
    configure_logging(level=log_level, json_output=log_format.lower() == "json")
    ctx.ensure_object(dict)
    ctx.obj.update(
        {
            "dsn": dsn,
            "schema": schema,
            "strict": strict,
            "max_rows": max_rows,
            "max_bytes": max_bytes,
            "workers": workers,
        }
    )
    logger.bind(command_group="ig-timeseries").debug(
        "cli.initialized",
        dsn=bool(dsn),
        schema=schema,
        strict=strict,
        log_level=log_level.lower(),
        log_format=log_format.lower(),
    )


@cli.command("validate")
@files_argument
@click.pass_context
def validate(ctx: click.Context, files: tuple[Path, ...]) -> None:
    """Validate export files and print a report; exit 1 when any file is invalid."""
    result = _ingest(ctx, files)
    _echo_json(result.to_dict())
    if not result.is_valid:
        ctx.exit(1)


@cli.command("ingest")
@files_argument
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Optional path to save the assembled dataset as JSON.",
)
@click.pass_context
def ingest(ctx: click.Context, files: tuple[Path, ...], output_path: Path | None) -> None:
    """Ingest export files and report dataset volume."""
    cmd_log = logger.bind(command="ingest")
    cmd_log.info("command.start", files=[path.name for path in files])
    result = _ingest(ctx, files)
    summary = result.summary()
    click.echo(
        f"Ingested {summary['valid_files']}/{summary['total_files']} files: "
        f"{summary['total_records']} records for {summary['total_accounts']} accounts "
        f"across {summary['total_periods']} periods."
    )
    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(result.dataset.to_dict(), indent=2))
        click.echo(f"Wrote dataset snapshot to {output_path}")
        cmd_log.info("dataset.written", output=str(output_path))


@cli.command("summary")
@files_argument
@click.option("--period", required=True, callback=_parse_period, help="Month as YYYY-MM.")
@click.pass_context
def summary(ctx: click.Context, files: tuple[Path, ...], period: Period) -> None:
    """Aggregate every metric across accounts for one month."""
    dataset = _load(ctx, files)
    with _user_errors():
        result = aggregation.aggregate_period(dataset, period.year, period.month)
    click.echo(format_period_for_display(period))
    _echo_json(result.to_dict())


@cli.command("compare")
@files_argument
@click.option(
    "--period",
    "periods",
    multiple=True,
    required=True,
    callback=_parse_period,
    help="Month as YYYY-MM; repeat at least twice.",
)
@click.pass_context
def compare(ctx: click.Context, files: tuple[Path, ...], periods: list[Period]) -> None:
    """Compare consecutive period summaries."""
    if len(periods) < 2:
        raise click.UsageError("compare needs at least two --period options.")
    dataset = _load(ctx, files)
    with _user_errors():
        comparisons = aggregation.compare_dataset_periods(dataset, periods)
    _echo_json([item.to_dict() for item in comparisons])


@cli.command("top")
@files_argument
@click.option("--period", required=True, callback=_parse_period, help="Month as YYYY-MM.")
@click.option("--metric", required=True, type=METRIC_CHOICES)
@click.option("--count", type=click.IntRange(min=1), default=5, show_default=True)
@click.pass_context
def top(ctx: click.Context, files: tuple[Path, ...], period: Period, metric: str, count: int) -> None:
    """Rank accounts by a metric for one month."""
    dataset = _load(ctx, files)
    with _user_errors():
        ranking = aggregation.top_performers(dataset, period.year, period.month, metric, count)
    _echo_json([item.to_dict() for item in ranking])


@cli.command("share")
@files_argument
@click.option("--period", required=True, callback=_parse_period, help="Month as YYYY-MM.")
@click.option("--metric", required=True, type=METRIC_CHOICES)
@click.pass_context
def share(ctx: click.Context, files: tuple[Path, ...], period: Period, metric: str) -> None:
    """Show each account's share of a summable metric for one month."""
    dataset = _load(ctx, files)
    with _user_errors():
        shares = aggregation.market_share(dataset, period.year, period.month, metric)
    _echo_json([item.to_dict() for item in shares])


@cli.command("trend")
@files_argument
@click.option("--account", "account_id", required=True, help="Account id (IG ID).")
@click.option("--metric", required=True, type=METRIC_CHOICES)
@click.pass_context
def trend(ctx: click.Context, files: tuple[Path, ...], account_id: str, metric: str) -> None:
    """Month-to-month trend, summary and extremes for one account."""
    series = _require_series(_load(ctx, files), account_id)
    points = trends.month_to_month_trend(series, metric)
    _echo_json(
        {
            "points": [point.to_dict() for point in points],
            "summary": trends.average_trend(points).to_dict(),
            "extremes": trends.performance_extremes(series, metric).to_dict(),
        }
    )


@cli.command("anomalies")
@files_argument
@click.option("--account", "account_id", required=True, help="Account id (IG ID).")
@click.option("--metric", required=True, type=METRIC_CHOICES)
@click.option("--threshold", type=click.FloatRange(min=0, min_open=True), default=2.0)
@click.pass_context
def anomalies(
    ctx: click.Context, files: tuple[Path, ...], account_id: str, metric: str, threshold: float
) -> None:
    """Flag months that deviate strongly from an account's mean."""
    series = _require_series(_load(ctx, files), account_id)
    _echo_json(trends.find_anomalies(series, metric, threshold).to_dict())


@cli.command("correlate")
@files_argument
@click.option("--account", "account_id", required=True, help="Account id (IG ID).")
@click.option("--metric-a", required=True, type=METRIC_CHOICES)
@click.option("--metric-b", required=True, type=METRIC_CHOICES)
@click.pass_context
def correlate(
    ctx: click.Context, files: tuple[Path, ...], account_id: str, metric_a: str, metric_b: str
) -> None:
    """Correlate two metrics of one account."""
    series = _require_series(_load(ctx, files), account_id)
    _echo_json(trends.correlation(series, metric_a, metric_b).to_dict())


@cli.command("missing")
@files_argument
@click.pass_context
def missing(ctx: click.Context, files: tuple[Path, ...]) -> None:
    """List months absent between the earliest and latest ingested period."""
    dataset = _load(ctx, files)
    gaps = find_missing_periods(dataset.periods())
    if not gaps:
        click.echo("No missing periods.")
        return
    for period in gaps:
        click.echo(period.label)


@cli.command("metrics")
def metrics() -> None:
    """Describe the known metrics and how they may be aggregated."""
    _echo_json(registry.documentation())


@cli.command("store-load")
@files_argument
@click.option("--dsn", envvar="IG_TS_DSN", help=DSN_HELP, default=None)
@click.option("--schema", envvar="IG_TS_SCHEMA", default=None, help=SCHEMA_HELP)
@click.pass_context
def store_load(
    ctx: click.Context, files: tuple[Path, ...], dsn: str | None, schema: str | None
) -> None:
    """Persist ingested records into PostgreSQL."""
    resolved_dsn = _require_dsn(ctx, dsn)
    resolved_schema = schema or ctx.obj.get("schema") or "public"
    cmd_log = logger.bind(command="store-load", schema=resolved_schema)
    cmd_log.info("command.start", files=len(files))
    dataset = _load(ctx, files)

    async def _run() -> int:
        store = PostgresRecordStore(dsn=resolved_dsn, schema=resolved_schema)
        try:
            await store.ensure_schema()
            return await store.put_many(dataset.records())
        finally:
            await store.close()

    count = asyncio.run(_run())
    click.echo(f"Stored {count} records in {resolved_schema}.")
    cmd_log.info("command.completed", records=count)


if __name__ == "__main__":
    cli()
