# src/trade_spine/domains/trades/models.py

"""
B3 cash-market trades - data models.

TradeRecord is the only thing that crosses from the decoder into a batch;
ParseFailure is the only thing that crosses into the reject sink.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal


# =============================================================================
# REJECT REASON CODES (frozen values - never change these strings)
# =============================================================================

INSUFFICIENT_COLUMNS = "INSUFFICIENT_COLUMNS"
EMPTY_INSTRUMENT = "EMPTY_INSTRUMENT"
INVALID_TRADE_DATE = "INVALID_TRADE_DATE"
INVALID_PRICE = "INVALID_PRICE"
INVALID_QUANTITY = "INVALID_QUANTITY"


# =============================================================================
# PARSED DATA
# =============================================================================


@dataclass(frozen=True)
class TradeRecord:
    """
    One trade from a NEGOCIOSAVISTA file.

    Values are exactly what the file carried, with only the documented
    conversions (ISO date, comma-decimal price to Decimal, integer quantity).
    """

    trade_date: date
    instrument_code: str  # Ticker, e.g. "PETR4"
    negotiated_price: Decimal
    negotiated_quantity: int
    closing_time: str  # "HHMMSSmmm", stored verbatim

    def as_row(self) -> tuple:
        """Column-ordered tuple for bulk writers."""
        return (
            self.trade_date,
            self.instrument_code,
            self.negotiated_price,
            self.negotiated_quantity,
            self.closing_time,
        )


@dataclass(frozen=True)
class ParseFailure:
    """
    A line that could not be decoded.

    Written once to the reject sink, never retried.
    """

    line_number: int  # 1-based physical line in the source file
    raw_line: str
    message: str
    reason_code: str
    cause: BaseException | None = field(default=None, compare=False)

    def describe(self) -> str:
        """Single-line diagnostic for error logs."""
        return f"line {self.line_number}: {self.reason_code}: {self.message} | {self.raw_line}"


# =============================================================================
# AGGREGATED DATA (query output)
# =============================================================================


@dataclass(frozen=True)
class AggregatedData:
    """
    Statistics for one instrument over a window.

    Answers: "What was the highest price and the busiest day for PETR4
    since a given date?"
    """

    instrument_code: str
    max_range_value: Decimal  # Highest single price in the window
    max_daily_volume: int  # Largest per-day summed quantity in the window

    def to_dict(self) -> dict:
        return {
            "ticker": self.instrument_code,
            "max_range_value": float(self.max_range_value),
            "max_daily_volume": self.max_daily_volume,
        }


# =============================================================================
# RUN SUMMARY
# =============================================================================


@dataclass(frozen=True)
class IngestionReport:
    """Outcome of a successful ingestion run."""

    path: str
    lines_read: int
    records_committed: int
    records_rejected: int
    batches_committed: int
    elapsed_seconds: float

    @property
    def rate(self) -> float:
        """Committed records per second."""
        if self.elapsed_seconds > 0:
            return self.records_committed / self.elapsed_seconds
        return 0.0
