"""
In-process TradeGateway doubles for orchestrator tests.

Usage::

    from tests._support.gateways import FailingGateway

    gateway = FailingGateway(fail_on=2)
    with pytest.raises(PersistenceError):
        IngestionOrchestrator(gateway, sink).run(path)
"""

import threading
import time

from trade_spine.errors import PersistenceError


class RecordingGateway:
    """Keeps every saved batch; optionally sleeps per save."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.batches: list[tuple] = []
        self.sizes_by_thread: dict[str, list[int]] = {}
        self._lock = threading.Lock()

    def init_schema(self) -> None:
        pass

    def save_batch(self, batch) -> None:
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.batches.append(tuple(batch))
            name = threading.current_thread().name
            self.sizes_by_thread.setdefault(name, []).append(len(batch))

    def aggregate(self, instrument_code, start_date):
        raise NotImplementedError

    def ping(self) -> None:
        pass

    def close(self) -> None:
        pass

    @property
    def records(self) -> list:
        with self._lock:
            return [r for batch in self.batches for r in batch]


class FailingGateway(RecordingGateway):
    """Rejects the ``fail_on``-th save (1-based) and accepts the others."""

    def __init__(self, fail_on: int = 1, error: Exception | None = None):
        super().__init__()
        self.fail_on = fail_on
        self.error = error
        self.calls = 0

    def save_batch(self, batch) -> None:
        with self._lock:
            self.calls += 1
            call = self.calls
        if call == self.fail_on:
            raise self.error or PersistenceError("disk full")
        super().save_batch(batch)


class CancellingGateway(RecordingGateway):
    """Trips ``token`` from inside the first save, like an operator pressing Ctrl-C."""

    def __init__(self, token, delay: float = 0.01):
        super().__init__(delay=delay)
        self.token = token

    def save_batch(self, batch) -> None:
        self.token.cancel("interrupted")
        super().save_batch(batch)
