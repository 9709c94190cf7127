# src/trade_spine/domains/trades/service.py

"""
Trade use cases: ingest a file, query aggregated statistics.

This is the seam the CLI and the API call into. It turns bootstrap
configuration into explicit constructor arguments, so the ingestion
pipeline itself never reads global settings.
"""

import re
from datetime import date, timedelta
from pathlib import Path

from trade_spine.config import Settings
from trade_spine.domains.trades.models import AggregatedData, IngestionReport
from trade_spine.domains.trades.rejects import FileRejectSink, MalformedRecordSink
from trade_spine.domains.trades.repository import TradeGateway
from trade_spine.errors import InvalidInputError
from trade_spine.ingestion.cancellation import CancelToken
from trade_spine.ingestion.orchestrator import IngestionOrchestrator
from trade_spine.ingestion.progress import ProgressTracker
from trade_spine.logging import get_logger

DEFAULT_WINDOW_BUSINESS_DAYS = 7

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")

logger = get_logger(__name__)


def default_start_date(today: date | None = None, business_days: int = DEFAULT_WINDOW_BUSINESS_DAYS) -> date:
    """
    Start of the default query window.

    The window is the last ``business_days`` weekdays ending the day before
    ``today``. No holiday calendar is applied.

    >>> default_start_date(date(2024, 5, 10))  # a Friday
    datetime.date(2024, 5, 1)
    """
    day = (today or date.today()) - timedelta(days=1)
    counted = 0
    while True:
        if day.weekday() < 5:
            counted += 1
            if counted == business_days:
                return day
        day -= timedelta(days=1)


def parse_start_date(value: str) -> date:
    """Parse a user-supplied ``YYYY-MM-DD`` start date."""
    value = value.strip()
    if not _DATE_RE.fullmatch(value):
        raise InvalidInputError(
            f"Invalid start date {value!r}, expected YYYY-MM-DD"
        ).with_context(data_inicio=value)
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidInputError(
            f"Invalid start date {value!r}: {e}", cause=e
        ).with_context(data_inicio=value)


def normalize_ticker(value: str | None) -> str:
    """Strip and upper-case a ticker, rejecting empty input."""
    ticker = (value or "").strip().upper()
    if not ticker:
        raise InvalidInputError("ticker is required")
    return ticker


class TradeService:
    """Query-side operations over a TradeGateway."""

    def __init__(self, gateway: TradeGateway):
        self.gateway = gateway

    def retrieve_aggregated(
        self,
        instrument_code: str | None,
        start_date_str: str | None = None,
        today: date | None = None,
    ) -> AggregatedData:
        """
        Max price and max daily volume for one ticker since a start date.

        Args:
            instrument_code: Ticker, e.g. "PETR4" (case-insensitive)
            start_date_str: ``YYYY-MM-DD``; defaults to the business-day window
            today: Reference day for the default window (tests)

        Raises:
            InvalidInputError: missing ticker or malformed date
            NotFoundError: no trades in the window
            QueryError: the store failed
        """
        ticker = normalize_ticker(instrument_code)
        if start_date_str:
            start = parse_start_date(start_date_str)
        else:
            start = default_start_date(today)

        logger.debug("aggregate_requested", ticker=ticker, start_date=start.isoformat())
        return self.gateway.aggregate(ticker, start)


def run_ingestion(
    path: Path | str,
    *,
    gateway: TradeGateway,
    sink: MalformedRecordSink | None = None,
    settings: Settings | None = None,
    timeout: float | None = None,
    cancel: CancelToken | None = None,
    progress: ProgressTracker | None = None,
    log=None,
) -> IngestionReport:
    """
    Ingest one file into ``gateway``.

    Settings supply the worker count, batch size, encoding and default
    deadline; an explicit ``timeout`` overrides the deadline. When no sink is
    given, rejects go to ``settings.error_log_path``.

    Raises:
        SourceIOError, PersistenceError, DeadlineExceededError,
        IngestionCancelledError
    """
    settings = settings or Settings()
    owns_sink = sink is None
    if sink is None:
        sink = FileRejectSink(settings.error_log_path)

    orchestrator = IngestionOrchestrator(
        gateway,
        sink,
        num_workers=settings.num_workers,
        batch_size=settings.batch_size,
        encoding=settings.file_encoding,
        skip_header=settings.skip_header,
        progress=progress,
        logger=log or logger,
    )
    try:
        return orchestrator.run(
            path,
            timeout=timeout if timeout is not None else settings.ingest_timeout_seconds,
            cancel=cancel,
        )
    finally:
        if owns_sink:
            sink.close()
