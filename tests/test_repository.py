"""Tests for the SQLite and PostgreSQL trade gateways."""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import psycopg
import pytest

from trade_spine.domains.trades.models import TradeRecord
from trade_spine.domains.trades.repository import (
    PostgresTradeRepository,
    SQLiteTradeRepository,
    TradeGateway,
)
from trade_spine.errors import NotFoundError, PersistenceError, QueryError


def _trade(price: str, quantity: int, day: date, code: str = "PETR4") -> TradeRecord:
    return TradeRecord(
        trade_date=day,
        instrument_code=code,
        negotiated_price=Decimal(price),
        negotiated_quantity=quantity,
        closing_time="103000123",
    )


MAY_2 = date(2024, 5, 2)
MAY_3 = date(2024, 5, 3)

TWO_DAYS = (
    _trade("19.50", 100, MAY_2),
    _trade("20.10", 300, MAY_2),
    _trade("21.00", 50, MAY_3),
    _trade("20.00", 100, MAY_3),
    _trade("60.00", 999, MAY_3, code="VALE3"),
)


class TestSQLiteTradeRepository:
    """Tests against a real SQLite file."""

    def test_is_a_gateway(self, sqlite_gateway):
        assert isinstance(sqlite_gateway, TradeGateway)

    def test_save_and_count(self, sqlite_gateway):
        sqlite_gateway.save_batch(TWO_DAYS)

        assert sqlite_gateway.count_trades() == 5
        assert sqlite_gateway.count_trades("PETR4") == 4

    def test_aggregate_two_days(self, sqlite_gateway):
        sqlite_gateway.save_batch(TWO_DAYS)

        result = sqlite_gateway.aggregate("PETR4", date(2024, 5, 1))

        assert result.instrument_code == "PETR4"
        assert result.max_range_value == Decimal("21.00")
        assert result.max_daily_volume == 400

    def test_aggregate_respects_start_date(self, sqlite_gateway):
        sqlite_gateway.save_batch(TWO_DAYS)

        result = sqlite_gateway.aggregate("PETR4", MAY_3)

        assert result.max_range_value == Decimal("21.00")
        assert result.max_daily_volume == 150

    def test_price_ordering_is_numeric(self, sqlite_gateway):
        """'9.90' sorts above '10.00' as text; the max must still be 10.00."""
        sqlite_gateway.save_batch((_trade("9.90", 1, MAY_2), _trade("10.00", 1, MAY_2)))

        assert sqlite_gateway.aggregate("PETR4", MAY_2).max_range_value == Decimal("10.00")

    def test_price_precision_survives(self, sqlite_gateway):
        sqlite_gateway.save_batch((_trade("0.000001", 1, MAY_2),))

        assert sqlite_gateway.aggregate("PETR4", MAY_2).max_range_value == Decimal("0.000001")

    def test_not_found(self, sqlite_gateway):
        sqlite_gateway.save_batch(TWO_DAYS)

        with pytest.raises(NotFoundError) as exc_info:
            sqlite_gateway.aggregate("ITUB4", MAY_2)

        assert exc_info.value.context["instrument_code"] == "ITUB4"

    def test_not_found_after_window(self, sqlite_gateway):
        sqlite_gateway.save_batch(TWO_DAYS)

        with pytest.raises(NotFoundError):
            sqlite_gateway.aggregate("PETR4", date(2024, 6, 1))

    def test_failed_batch_leaves_nothing(self, sqlite_gateway):
        """A NOT NULL violation on the second row rolls back the first."""
        bad = TradeRecord(
            trade_date=MAY_2,
            instrument_code=None,
            negotiated_price=Decimal("1"),
            negotiated_quantity=1,
            closing_time="x",
        )

        with pytest.raises(PersistenceError):
            sqlite_gateway.save_batch((_trade("50.00", 10, MAY_2), bad))

        assert sqlite_gateway.count_trades() == 0
        with pytest.raises(NotFoundError):
            sqlite_gateway.aggregate("PETR4", MAY_2)

        # still usable afterwards
        sqlite_gateway.save_batch(TWO_DAYS)
        assert sqlite_gateway.count_trades() == 5

    def test_non_sqlite_error_still_rolls_back(self, sqlite_gateway):
        """An OverflowError from binding is not a sqlite3.Error but must still roll back."""
        huge = _trade("1.00", 2**70, MAY_2)

        with pytest.raises(PersistenceError) as exc_info:
            sqlite_gateway.save_batch((_trade("50.00", 10, MAY_2), huge))

        assert isinstance(exc_info.value.cause, OverflowError)
        assert not sqlite_gateway._conn.in_transaction
        assert sqlite_gateway.count_trades() == 0
        with pytest.raises(NotFoundError):
            sqlite_gateway.aggregate("PETR4", MAY_2)

    def test_empty_batch_is_noop(self, sqlite_gateway):
        sqlite_gateway.save_batch(())
        assert sqlite_gateway.count_trades() == 0

    def test_query_without_schema(self, tmp_path):
        gateway = SQLiteTradeRepository(tmp_path / "empty.db")
        try:
            with pytest.raises(QueryError):
                gateway.aggregate("PETR4", MAY_2)
        finally:
            gateway.close()

    def test_init_schema_is_idempotent(self, sqlite_gateway):
        sqlite_gateway.init_schema()
        sqlite_gateway.ping()

    def test_from_url(self, tmp_path):
        gateway = SQLiteTradeRepository.from_url(f"sqlite:///{tmp_path}/nested/t.db")
        gateway.init_schema()
        gateway.close()
        assert (tmp_path / "nested" / "t.db").exists()

    def test_from_url_rejects_other_schemes(self):
        with pytest.raises(ValueError):
            SQLiteTradeRepository.from_url("postgresql://localhost/db")


# =============================================================================
# PostgreSQL (mocked pool)
# =============================================================================


@pytest.fixture
def pg():
    """A PostgresTradeRepository over a MagicMock pool, plus its inner mocks."""
    pool = MagicMock()
    conn = MagicMock()
    cur = MagicMock()
    copy = MagicMock()
    pool.connection.return_value.__enter__.return_value = conn
    conn.cursor.return_value.__enter__.return_value = cur
    cur.copy.return_value.__enter__.return_value = copy

    repo = PostgresTradeRepository(pool)
    return repo, pool, conn, cur, copy


class TestPostgresTradeRepository:
    """COPY path and aggregate mapping without a server."""

    def test_save_batch_copies_rows_in_transaction(self, pg):
        repo, _, conn, cur, copy = pg
        batch = TWO_DAYS[:2]
        cur.rowcount = 2

        repo.save_batch(batch)

        conn.transaction.assert_called_once()
        sql = cur.copy.call_args[0][0]
        assert sql.startswith("COPY trades (trade_date, instrument_code")
        assert [c.args[0] for c in copy.write_row.call_args_list] == [r.as_row() for r in batch]

    def test_row_count_mismatch(self, pg):
        repo, _, _, cur, _ = pg
        cur.rowcount = 1

        with pytest.raises(PersistenceError) as exc_info:
            repo.save_batch(TWO_DAYS[:2])

        assert "expected 2" in str(exc_info.value)

    def test_psycopg_error_is_wrapped(self, pg):
        repo, _, _, cur, _ = pg
        cur.copy.side_effect = psycopg.OperationalError("server closed the connection")

        with pytest.raises(PersistenceError) as exc_info:
            repo.save_batch(TWO_DAYS[:1])

        assert isinstance(exc_info.value.cause, psycopg.OperationalError)
        assert exc_info.value.context["store"] == "postgres"

    def test_aggregate(self, pg):
        repo, _, conn, _, _ = pg
        conn.execute.return_value.fetchone.return_value = {
            "max_range_value": Decimal("21.00"),
            "max_daily_volume": 400,
        }

        result = repo.aggregate("PETR4", date(2024, 5, 1))

        assert result.max_range_value == Decimal("21.00")
        assert result.max_daily_volume == 400
        params = conn.execute.call_args[0][1]
        assert params == {"code": "PETR4", "start": date(2024, 5, 1)}

    def test_aggregate_not_found(self, pg):
        repo, _, conn, _, _ = pg
        conn.execute.return_value.fetchone.return_value = {
            "max_range_value": None,
            "max_daily_volume": None,
        }

        with pytest.raises(NotFoundError):
            repo.aggregate("PETR4", date(2024, 5, 1))

    def test_aggregate_query_error(self, pg):
        repo, _, conn, _, _ = pg
        conn.execute.side_effect = psycopg.ProgrammingError("relation does not exist")

        with pytest.raises(QueryError):
            repo.aggregate("PETR4", date(2024, 5, 1))

    def test_close_closes_pool(self, pg):
        repo, pool, _, _, _ = pg
        repo.close()
        pool.close.assert_called_once()
