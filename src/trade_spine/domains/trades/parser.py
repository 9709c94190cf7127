# src/trade_spine/domains/trades/parser.py

"""
B3 NEGOCIOSAVISTA file decoding.

Files are semicolon-delimited text with a header line:

    DataReferencia;CodigoInstrumento;AcaoAtualizacao;PrecoNegocio;QuantidadeNegociada;
    HoraFechamento;CodigoIdentificadorNegocio;TipoSessaoPregao;DataNegocio;...

Columns used (0-based):
    1 instrument code, 3 price ("19,50"), 4 quantity, 5 closing time,
    8 trade date ("2024-05-02")

Decoding is skip-and-continue: a bad line becomes a ParseFailure, goes to the
reject sink, and the stream moves on. Only failing to open or read the file
stops a decode, as a SourceIOError.
"""

import re
from collections.abc import Iterator
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import TextIO

from trade_spine.domains.trades.models import (
    EMPTY_INSTRUMENT,
    INSUFFICIENT_COLUMNS,
    INVALID_PRICE,
    INVALID_QUANTITY,
    INVALID_TRADE_DATE,
    ParseFailure,
    TradeRecord,
)
from trade_spine.domains.trades.rejects import MalformedRecordSink
from trade_spine.errors import RecordParseError, SourceIOError
from trade_spine.ingestion.cancellation import CancelToken
from trade_spine.logging import get_logger

DELIMITER = ";"
MIN_FIELDS = 9

COL_INSTRUMENT = 1
COL_PRICE = 3
COL_QUANTITY = 4
COL_CLOSING_TIME = 5
COL_TRADE_DATE = 8

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_INT_RE = re.compile(r"[+-]?\d+")
_DECIMAL_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")

MAX_QUANTITY = 2**63 - 1
# NUMERIC(18,6) holds up to 12 integer digits
MAX_PRICE = Decimal(10) ** 12

logger = get_logger(__name__)


# =============================================================================
# FIELD PARSERS
# =============================================================================


def parse_trade_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` date."""
    value = value.strip()
    if not _DATE_RE.fullmatch(value):
        raise ValueError(f"expected YYYY-MM-DD, got {value!r}")
    return date.fromisoformat(value)


def parse_price(value: str) -> Decimal:
    """Parse a comma-decimal price ("19,50") without going through float."""
    normalized = value.strip().replace(",", ".", 1)
    if not _DECIMAL_RE.fullmatch(normalized):
        raise ValueError(f"not a decimal number: {value!r}")
    try:
        price = Decimal(normalized)
    except InvalidOperation as e:
        raise ValueError(f"not a decimal number: {value!r}") from e
    if not price.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    if price.copy_abs() >= MAX_PRICE:
        raise ValueError(f"price out of range: {value!r}")
    return price


def parse_quantity(value: str) -> int:
    """Parse a non-negative integer quantity that fits a signed 64-bit column."""
    value = value.strip()
    if not _INT_RE.fullmatch(value):
        raise ValueError(f"not an integer: {value!r}")
    quantity = int(value)
    if quantity < 0:
        raise ValueError(f"negative quantity: {quantity}")
    if quantity > MAX_QUANTITY:
        raise ValueError(f"quantity out of range: {quantity}")
    return quantity


def parse_trade_fields(line: str) -> TradeRecord:
    """
    Convert one raw line into a TradeRecord.

    Fields are checked in a fixed order and the first failure wins.

    Raises:
        RecordParseError: with a reason code and the underlying cause
    """
    parts = line.split(DELIMITER)

    if len(parts) < MIN_FIELDS:
        raise RecordParseError(
            f"expected at least {MIN_FIELDS} columns, found {len(parts)}",
            reason_code=INSUFFICIENT_COLUMNS,
        )

    instrument_code = parts[COL_INSTRUMENT]
    if not instrument_code.strip():
        raise RecordParseError("empty instrument code", reason_code=EMPTY_INSTRUMENT)

    try:
        trade_date = parse_trade_date(parts[COL_TRADE_DATE])
    except ValueError as e:
        raise RecordParseError(
            f"bad TradeDate {parts[COL_TRADE_DATE]!r}: {e}",
            reason_code=INVALID_TRADE_DATE,
            cause=e,
        )

    try:
        price = parse_price(parts[COL_PRICE])
    except ValueError as e:
        raise RecordParseError(
            f"bad NegotiatedPrice {parts[COL_PRICE]!r}: {e}",
            reason_code=INVALID_PRICE,
            cause=e,
        )

    try:
        quantity = parse_quantity(parts[COL_QUANTITY])
    except ValueError as e:
        raise RecordParseError(
            f"bad NegotiatedQuantity {parts[COL_QUANTITY]!r}: {e}",
            reason_code=INVALID_QUANTITY,
            cause=e,
        )

    return TradeRecord(
        trade_date=trade_date,
        instrument_code=instrument_code,
        negotiated_price=price,
        negotiated_quantity=quantity,
        closing_time=parts[COL_CLOSING_TIME],
    )


def parse_trade_line(line: str, line_number: int) -> TradeRecord | ParseFailure:
    """Decode one line, folding any field error into a ParseFailure."""
    try:
        return parse_trade_fields(line)
    except RecordParseError as e:
        return ParseFailure(
            line_number=line_number,
            raw_line=line,
            message=e.message,
            reason_code=e.reason_code,
            cause=e.cause,
        )


def is_header_line(line: str) -> bool:
    """Header lines start with a column name, data lines with a date."""
    stripped = line.lstrip("\ufeff").lstrip()
    return bool(stripped) and not stripped[0].isdigit()


# =============================================================================
# STREAMING DECODER
# =============================================================================


class TradeDecoder:
    """
    Streaming decoder over one file.

    Each call to ``decode()`` opens the file afresh and returns a lazy
    iterator, so the same decoder can be run more than once. Counters
    reflect the most recent ``decode()``.

    Example:
        decoder = TradeDecoder(path, sink)
        for item in decoder.decode(cancel):
            if isinstance(item, TradeRecord):
                ...
    """

    def __init__(
        self,
        path: Path | str,
        sink: MalformedRecordSink,
        *,
        encoding: str = "latin-1",
        skip_header: bool = True,
        log=None,
    ):
        self.path = Path(path)
        self.sink = sink
        self.encoding = encoding
        self.skip_header = skip_header
        self._log = log or logger
        self.lines_read = 0
        self.records_emitted = 0
        self.failures = 0

    def decode(self, cancel: CancelToken | None = None) -> Iterator[TradeRecord | ParseFailure]:
        """
        Open the source and return an iterator of records and failures.

        The file is opened eagerly so a missing or unreadable source fails
        here, before any consumer is started.

        Raises:
            SourceIOError: file cannot be opened (here) or read (while iterating)
        """
        self.lines_read = 0
        self.records_emitted = 0
        self.failures = 0
        handle = self._open()
        return self._iterate(handle, cancel)

    def _open(self) -> TextIO:
        try:
            return open(self.path, encoding=self.encoding, newline=None)
        except OSError as e:
            raise SourceIOError(f"Cannot open source file {self.path}: {e}", cause=e).with_context(
                path=str(self.path)
            )

    def _iterate(
        self, handle: TextIO, cancel: CancelToken | None
    ) -> Iterator[TradeRecord | ParseFailure]:
        with handle:
            line_number = 0
            try:
                for raw in handle:
                    line_number += 1
                    if cancel is not None and cancel.cancelled:
                        self._log.info("decode_cancelled", path=str(self.path), line=line_number)
                        return

                    line = raw.rstrip("\r\n")
                    if line_number == 1 and self.skip_header and is_header_line(line):
                        continue
                    self.lines_read += 1
                    item = parse_trade_line(line, line_number)
                    if isinstance(item, ParseFailure):
                        self.failures += 1
                        self._send_to_sink(item)
                    else:
                        self.records_emitted += 1
                    yield item
            except (OSError, UnicodeDecodeError) as e:
                raise SourceIOError(
                    f"Failed reading {self.path} after line {line_number}: {e}", cause=e
                ).with_context(path=str(self.path), line_number=line_number)

    def _send_to_sink(self, failure: ParseFailure) -> None:
        try:
            self.sink.record(failure)
        except Exception as e:
            self._log.error(
                "reject_sink_failed",
                line_number=failure.line_number,
                error=str(e),
            )


def decode_trades(
    path: Path | str,
    sink: MalformedRecordSink,
    cancel: CancelToken | None = None,
    *,
    encoding: str = "latin-1",
    skip_header: bool = True,
) -> Iterator[TradeRecord | ParseFailure]:
    """Decode a file into records and failures (see TradeDecoder)."""
    return TradeDecoder(path, sink, encoding=encoding, skip_header=skip_header).decode(cancel)


def iter_trades(
    path: Path | str,
    sink: MalformedRecordSink,
    cancel: CancelToken | None = None,
    *,
    encoding: str = "latin-1",
    skip_header: bool = True,
) -> Iterator[TradeRecord]:
    """Like decode_trades, but yield only the valid records."""
    for item in decode_trades(path, sink, cancel, encoding=encoding, skip_header=skip_header):
        if isinstance(item, TradeRecord):
            yield item
