"""CLI entry point for Trade Spine."""

import json
import sys
import threading
from pathlib import Path

import click

from trade_spine import __version__
from trade_spine.config import Settings, get_settings
from trade_spine.db import create_gateway
from trade_spine.domains.trades.rejects import FileRejectSink
from trade_spine.domains.trades.service import TradeService, run_ingestion
from trade_spine.errors import TradeSpineError
from trade_spine.ingestion.cancellation import CancelToken
from trade_spine.ingestion.progress import ProgressTracker
from trade_spine.logging import configure_logging, get_logger

PROGRESS_INTERVAL_SECONDS = 2.0

logger = get_logger(__name__)


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ValueError as e:
        click.echo(f"Error: invalid configuration: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="trade-spine")
def cli():
    """Trade Spine - B3 trade file ingestion and aggregation."""
    settings = _load_settings()
    configure_logging(level=settings.log_level, format=settings.log_format)


# -------------------------------------------------------------------------
# Database Commands
# -------------------------------------------------------------------------


@cli.group()
def db():
    """Database management commands."""
    pass


@db.command("init")
def db_init():
    """Create the trades table and index if missing."""
    settings = _load_settings()
    click.echo("Initializing database...")
    try:
        gateway = create_gateway(settings.database_url, init_schema=True)
    except TradeSpineError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    gateway.close()
    click.echo("Database initialized successfully.")


# -------------------------------------------------------------------------
# Ingestion
# -------------------------------------------------------------------------


@cli.command("ingest")
@click.argument(
    "file",
    envvar="FILE_PATH",
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.option("--workers", "-w", type=click.IntRange(min=1), help="Concurrent writer threads")
@click.option("--batch-size", "-b", type=click.IntRange(min=1), help="Records per committed batch")
@click.option("--timeout", "-t", type=click.FloatRange(min=0, min_open=True), help="Deadline in seconds")
@click.option(
    "--error-log",
    "-e",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Where rejected lines are appended",
)
def ingest(
    file: Path,
    workers: int | None,
    batch_size: int | None,
    timeout: float | None,
    error_log: Path | None,
):
    """
    Ingest a NEGOCIOSAVISTA trade file.

    FILE may also be given through the FILE_PATH environment variable.

    Examples:
        trade-spine ingest data/24-05-2024_NEGOCIOSAVISTA.txt
        trade-spine ingest data/trades.txt --workers 8 --batch-size 5000
    """
    settings = _load_settings()
    overrides = {
        "num_workers": workers,
        "batch_size": batch_size,
        "ingest_timeout_seconds": timeout,
        "error_log_path": error_log,
    }
    settings = settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})

    try:
        gateway = create_gateway(settings.database_url, init_schema=True)
    except TradeSpineError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    click.echo(
        f"Ingesting {file} ({settings.num_workers} workers, batch size {settings.batch_size})"
    )

    progress = ProgressTracker()
    cancel = CancelToken()
    outcome: dict = {}

    def _run() -> None:
        try:
            with FileRejectSink(settings.error_log_path) as sink:
                outcome["report"] = run_ingestion(
                    file,
                    gateway=gateway,
                    sink=sink,
                    settings=settings,
                    cancel=cancel,
                    progress=progress,
                )
        except Exception as e:
            outcome["error"] = e

    runner = threading.Thread(target=_run, name="ingest-run")
    runner.start()
    try:
        while runner.is_alive():
            runner.join(PROGRESS_INTERVAL_SECONDS)
            if runner.is_alive():
                snap = progress.snapshot()
                click.echo(
                    f"Processed {snap.records:,} records | "
                    f"{snap.rate:,.0f} records/s | elapsed {snap.elapsed_seconds:.1f}s"
                )
    except KeyboardInterrupt:
        click.echo("\nInterrupted, stopping workers...", err=True)
        cancel.cancel("interrupted")
        runner.join()
    finally:
        gateway.close()

    error = outcome.get("error")
    if error is not None:
        processed = progress.count
        if isinstance(error, TradeSpineError):
            processed = error.context.get("records_processed", processed)
        click.echo(
            f"\nIngestion failed ({type(error).__name__}): {error}\n"
            f"Records processed before failure: {processed:,}",
            err=True,
        )
        sys.exit(1)

    report = outcome["report"]
    click.echo("\nIngestion complete")
    click.echo("-" * 40)
    click.echo(f"  Lines read:        {report.lines_read:,}")
    click.echo(f"  Records committed: {report.records_committed:,}")
    click.echo(f"  Records rejected:  {report.records_rejected:,}")
    click.echo(f"  Batches:           {report.batches_committed:,}")
    click.echo(f"  Elapsed:           {report.elapsed_seconds:.2f}s")
    click.echo(f"  Rate:              {report.rate:,.0f} records/s")
    if report.records_rejected:
        click.echo(f"  Rejected lines in: {settings.error_log_path}")


# -------------------------------------------------------------------------
# Query
# -------------------------------------------------------------------------


@cli.command("query")
@click.argument("ticker")
@click.option("--start", "-s", "start", help="Start date YYYY-MM-DD (default: last 7 business days)")
def query(ticker: str, start: str | None):
    """
    Print max price and max daily volume for TICKER as JSON.

    Examples:
        trade-spine query PETR4
        trade-spine query VALE3 --start 2024-05-01
    """
    settings = _load_settings()
    try:
        gateway = create_gateway(settings.database_url, init_schema=True)
    except TradeSpineError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    try:
        result = TradeService(gateway).retrieve_aggregated(ticker, start)
    except TradeSpineError as e:
        click.echo(f"Error ({e.category.value}): {e.message}", err=True)
        sys.exit(1)
    finally:
        gateway.close()

    click.echo(json.dumps(result.to_dict(), indent=2))


# -------------------------------------------------------------------------
# API Server
# -------------------------------------------------------------------------


@cli.command("serve")
@click.option("--host", "-h", default=None, help="Host to bind to")
@click.option("--port", "-p", type=int, default=None, help="Port to bind to")
def serve(host: str | None, port: int | None):
    """Start the API server."""
    import uvicorn

    from trade_spine.api.main import create_app

    settings = _load_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    click.echo(f"Starting API server on {host}:{port}")
    logger.info("api_serving", host=host, port=port)
    uvicorn.run(create_app(settings=settings), host=host, port=port)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
