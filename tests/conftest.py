"""
Shared pytest fixtures for trade-spine tests.

This module provides:
- Logging configured once, quietly, for the whole session
- Settings cache isolation
- B3 line / file builders
- A SQLite gateway in tmp_path and fake gateways for the orchestrator
"""

from collections.abc import Sequence

import pytest

from tests._support import HEADER, build_line
from tests._support.gateways import RecordingGateway
from trade_spine.config import reset_settings
from trade_spine.domains.trades.rejects import MemoryRejectSink
from trade_spine.domains.trades.repository import SQLiteTradeRepository
from trade_spine.logging import configure_logging


# =============================================================================
# Session / isolation
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_logging():
    """Configure structlog once so CLI and API factories do not reconfigure it."""
    configure_logging(level="WARNING", format="console", force=True)
    yield


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Fresh settings per test, never reading a developer's .env or environment."""
    for name in (
        "DATABASE_URL",
        "NUM_WORKERS",
        "BATCH_SIZE",
        "INGEST_TIMEOUT_SECONDS",
        "ERROR_LOG_PATH",
        "FILE_ENCODING",
        "SKIP_HEADER",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        monkeypatch.delenv(f"TRADE_SPINE_{name}", raising=False)
    monkeypatch.delenv("FILE_PATH", raising=False)
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield
    reset_settings()


# =============================================================================
# Input files
# =============================================================================


@pytest.fixture
def make_line():
    """Factory for single B3 lines."""
    return build_line


@pytest.fixture
def write_trades(tmp_path):
    """Write lines (header first by default) to a latin-1 file and return its path."""

    def _write(lines: Sequence[str], name: str = "NEGOCIOSAVISTA.txt", header: bool = True):
        path = tmp_path / name
        body = ([HEADER] if header else []) + list(lines)
        path.write_text("\n".join(body) + "\n", encoding="latin-1")
        return path

    return _write


@pytest.fixture
def two_day_file(write_trades):
    """Two days of PETR4 plus one VALE3 trade and one malformed line."""
    return write_trades(
        [
            build_line(price="19,50", quantity="100", trade_date="2024-05-02"),
            build_line(price="20,10", quantity="300", trade_date="2024-05-02"),
            build_line(price="21,00", quantity="50", trade_date="2024-05-03"),
            build_line(price="20,00", quantity="100", trade_date="2024-05-03"),
            build_line(code="VALE3", price="60,00", quantity="999", trade_date="2024-05-03"),
            "2024-05-02;BROKEN;0;1,00",
        ]
    )


# =============================================================================
# Sinks / gateways
# =============================================================================


@pytest.fixture
def memory_sink():
    return MemoryRejectSink()


@pytest.fixture
def sqlite_gateway(tmp_path):
    """SQLite gateway with the schema created."""
    gateway = SQLiteTradeRepository(tmp_path / "trades.db")
    gateway.init_schema()
    yield gateway
    gateway.close()


@pytest.fixture
def recording_gateway():
    return RecordingGateway()
