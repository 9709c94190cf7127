# src/trade_spine/domains/trades/repository.py

"""
Persistence gateways for trades.

Two implementations of the same contract:

    PostgresTradeRepository  production store, bulk COPY per batch (psycopg 3 pool)
    SQLiteTradeRepository    single-file store for local runs and tests

Contract:
    save_batch(batch)            all records become visible, or none do
    aggregate(code, start_date)  max price / max daily volume, NotFoundError if empty
"""

import sqlite3
import threading
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from trade_spine.domains.trades.models import AggregatedData, TradeRecord
from trade_spine.errors import NotFoundError, PersistenceError, QueryError
from trade_spine.logging import get_logger

logger = get_logger(__name__)

TRADE_COLUMNS = (
    "trade_date",
    "instrument_code",
    "negotiated_price",
    "negotiated_quantity",
    "closing_time",
)


@runtime_checkable
class TradeGateway(Protocol):
    """What the ingestion pipeline and the query service need from a store."""

    def init_schema(self) -> None: ...

    def save_batch(self, batch: Sequence[TradeRecord]) -> None: ...

    def aggregate(self, instrument_code: str, start_date: date) -> AggregatedData: ...

    def ping(self) -> None: ...

    def close(self) -> None: ...


# =============================================================================
# SQLITE
# =============================================================================

SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS trades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trade_date TEXT NOT NULL,
    instrument_code TEXT NOT NULL,
    negotiated_price TEXT NOT NULL,
    negotiated_quantity INTEGER NOT NULL,
    closing_time TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_trades_instrument_date
    ON trades (instrument_code, trade_date);
"""


class SQLiteTradeRepository:
    """
    SQLite-backed gateway.

    One connection shared by all workers; writes are serialized by a lock
    and each batch is one BEGIN/COMMIT. Prices are stored as TEXT so the
    Decimal read back is exactly the Decimal written.
    """

    def __init__(self, database_path: Path | str):
        self.database_path = str(database_path)
        if self.database_path != ":memory:":
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            self.database_path,
            check_same_thread=False,
            isolation_level=None,  # autocommit mode, we manage transactions explicitly
        )
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, database_url: str) -> "SQLiteTradeRepository":
        """Build from ``sqlite:///path/to.db`` (or ``sqlite:///:memory:``)."""
        path = database_url.split("sqlite:///", 1)[-1] if "sqlite:///" in database_url else ""
        if not path:
            raise ValueError(f"Not a SQLite URL: {database_url!r}")
        return cls(path)

    def init_schema(self) -> None:
        with self._lock:
            self._conn.executescript(SQLITE_SCHEMA)
        logger.debug("schema_ready", store="sqlite", path=self.database_path)

    def save_batch(self, batch: Sequence[TradeRecord]) -> None:
        if not batch:
            return

        rows = [
            (
                r.trade_date.isoformat(),
                r.instrument_code,
                str(r.negotiated_price),
                r.negotiated_quantity,
                r.closing_time,
            )
            for r in batch
        ]
        with self._lock:
            try:
                self._conn.execute("BEGIN")
                self._conn.executemany(
                    f"INSERT INTO trades ({', '.join(TRADE_COLUMNS)}) VALUES (?, ?, ?, ?, ?)",
                    rows,
                )
                self._conn.execute("COMMIT")
            except Exception as e:
                # OverflowError and friends are not sqlite3.Error but still leave BEGIN open
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise PersistenceError(
                    f"Failed to save batch of {len(rows)} trades", cause=e
                ).with_context(store="sqlite", batch_size=len(rows))

    def aggregate(self, instrument_code: str, start_date: date) -> AggregatedData:
        params = {"code": instrument_code, "start": start_date.isoformat()}
        with self._lock:
            try:
                price_row = self._conn.execute(
                    """
                    SELECT negotiated_price FROM trades
                    WHERE instrument_code = :code AND trade_date >= :start
                    ORDER BY CAST(negotiated_price AS REAL) DESC
                    LIMIT 1
                    """,
                    params,
                ).fetchone()
                volume_row = self._conn.execute(
                    """
                    SELECT MAX(total_volume) AS max_daily_volume FROM (
                        SELECT SUM(negotiated_quantity) AS total_volume
                        FROM trades
                        WHERE instrument_code = :code AND trade_date >= :start
                        GROUP BY trade_date
                    )
                    """,
                    params,
                ).fetchone()
            except sqlite3.Error as e:
                raise QueryError(
                    f"Failed to aggregate trades for {instrument_code}", cause=e
                ).with_context(store="sqlite", instrument_code=instrument_code)

        if price_row is None:
            raise NotFoundError(
                f"No trades for {instrument_code} since {start_date.isoformat()}"
            ).with_context(instrument_code=instrument_code, start_date=start_date.isoformat())

        return AggregatedData(
            instrument_code=instrument_code,
            max_range_value=Decimal(price_row["negotiated_price"]),
            max_daily_volume=int(volume_row["max_daily_volume"]),
        )

    def count_trades(self, instrument_code: str | None = None) -> int:
        """Number of stored trades, optionally for one instrument."""
        with self._lock:
            if instrument_code is None:
                row = self._conn.execute("SELECT COUNT(*) AS n FROM trades").fetchone()
            else:
                row = self._conn.execute(
                    "SELECT COUNT(*) AS n FROM trades WHERE instrument_code = ?",
                    (instrument_code,),
                ).fetchone()
        return int(row["n"])

    def ping(self) -> None:
        with self._lock:
            self._conn.execute("SELECT 1")

    def close(self) -> None:
        with self._lock:
            self._conn.close()


# =============================================================================
# POSTGRESQL
# =============================================================================

POSTGRES_SCHEMA = """
CREATE TABLE IF NOT EXISTS trades (
    id BIGSERIAL PRIMARY KEY,
    trade_date DATE NOT NULL,
    instrument_code TEXT NOT NULL,
    negotiated_price NUMERIC(18, 6) NOT NULL,
    negotiated_quantity BIGINT NOT NULL,
    closing_time TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_trades_instrument_date
    ON trades (instrument_code, trade_date);
"""

POSTGRES_AGGREGATE_SQL = """
WITH window_trades AS (
    SELECT trade_date, negotiated_price, negotiated_quantity
    FROM trades
    WHERE instrument_code = %(code)s AND trade_date >= %(start)s
)
SELECT
    (SELECT MAX(negotiated_price) FROM window_trades) AS max_range_value,
    (
        SELECT MAX(total_volume) FROM (
            SELECT SUM(negotiated_quantity) AS total_volume
            FROM window_trades
            GROUP BY trade_date
        ) AS daily_volume
    ) AS max_daily_volume
"""


class PostgresTradeRepository:
    """
    PostgreSQL-backed gateway.

    Each batch is streamed with ``COPY ... FROM STDIN`` inside one
    transaction; the copied row count is checked before committing.
    """

    def __init__(self, pool: Any):
        self._pool = pool

    @classmethod
    def from_url(
        cls, database_url: str, min_size: int = 2, max_size: int = 10
    ) -> "PostgresTradeRepository":
        """Open a connection pool for ``postgresql://...``."""
        pool = ConnectionPool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row},
            open=True,
        )
        return cls(pool)

    def init_schema(self) -> None:
        try:
            with self._pool.connection() as conn:
                conn.execute(POSTGRES_SCHEMA)
        except psycopg.Error as e:
            raise PersistenceError("Failed to create trades schema", cause=e)
        logger.debug("schema_ready", store="postgres")

    def save_batch(self, batch: Sequence[TradeRecord]) -> None:
        if not batch:
            return

        copy_sql = f"COPY trades ({', '.join(TRADE_COLUMNS)}) FROM STDIN"
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        with cur.copy(copy_sql) as copy:
                            for record in batch:
                                copy.write_row(record.as_row())
                        copied = cur.rowcount
                        if copied >= 0 and copied != len(batch):
                            raise PersistenceError(
                                f"COPY wrote {copied} rows, expected {len(batch)}"
                            ).with_context(store="postgres", batch_size=len(batch))
        except psycopg.Error as e:
            raise PersistenceError(
                f"Failed to save batch of {len(batch)} trades", cause=e
            ).with_context(store="postgres", batch_size=len(batch))

    def aggregate(self, instrument_code: str, start_date: date) -> AggregatedData:
        try:
            with self._pool.connection() as conn:
                row = conn.execute(
                    POSTGRES_AGGREGATE_SQL,
                    {"code": instrument_code, "start": start_date},
                ).fetchone()
        except psycopg.Error as e:
            raise QueryError(
                f"Failed to aggregate trades for {instrument_code}", cause=e
            ).with_context(store="postgres", instrument_code=instrument_code)

        if row is None or row["max_range_value"] is None:
            raise NotFoundError(
                f"No trades for {instrument_code} since {start_date.isoformat()}"
            ).with_context(instrument_code=instrument_code, start_date=start_date.isoformat())

        return AggregatedData(
            instrument_code=instrument_code,
            max_range_value=Decimal(row["max_range_value"]),
            max_daily_volume=int(row["max_daily_volume"]),
        )

    def ping(self) -> None:
        with self._pool.connection() as conn:
            conn.execute("SELECT 1")

    def close(self) -> None:
        self._pool.close()
