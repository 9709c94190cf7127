"""Processed-record counters for progress reporting."""

import threading
import time
from dataclasses import dataclass


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of a ProgressTracker."""

    records: int
    batches: int
    elapsed_seconds: float

    @property
    def rate(self) -> float:
        """Records per second."""
        if self.elapsed_seconds > 0:
            return self.records / self.elapsed_seconds
        return 0.0


class ProgressTracker:
    """
    Monotonic committed-record counter.

    Written by ingestion workers after each committed batch, read from any
    thread (CLI progress line, API, tests). Never needed for correctness.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._records = 0
        self._batches = 0
        self._started_at = clock()

    def restart(self) -> None:
        """Reset counters and the clock for a new run."""
        with self._lock:
            self._records = 0
            self._batches = 0
            self._started_at = self._clock()

    def increment(self, n: int = 1) -> None:
        """Count ``n`` committed records outside of batch accounting."""
        if n < 0:
            raise ValueError("increment cannot be negative")
        with self._lock:
            self._records += n

    def record_batch(self, size: int) -> None:
        """Count one committed batch of ``size`` records."""
        if size < 0:
            raise ValueError("batch size cannot be negative")
        with self._lock:
            self._records += size
            self._batches += 1

    @property
    def count(self) -> int:
        with self._lock:
            return self._records

    @property
    def batches(self) -> int:
        with self._lock:
            return self._batches

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started_at

    @property
    def rate(self) -> float:
        return self.snapshot().rate

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                records=self._records,
                batches=self._batches,
                elapsed_seconds=self._clock() - self._started_at,
            )
