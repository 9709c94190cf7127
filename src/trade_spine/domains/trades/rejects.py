"""
Malformed-record sinks.

A sink receives every ParseFailure the decoder produces, with the offending
raw line, so bad input can be inspected offline. Sinks are append-only and
best-effort: the decoder logs and ignores a sink that raises.

Implementations:
    - FileRejectSink: one line per failure appended to an error log file
    - MemoryRejectSink: keeps failures in a list (tests, dry runs)
    - LoggingRejectSink: emits a structured warning per failure

All sinks are safe to call from several threads and expose ``count``.
"""

import threading
from pathlib import Path
from typing import Protocol, TextIO, runtime_checkable

from trade_spine.domains.trades.models import ParseFailure
from trade_spine.errors import SourceIOError
from trade_spine.logging import get_logger


@runtime_checkable
class MalformedRecordSink(Protocol):
    """Anything that can durably note a rejected line."""

    def record(self, failure: ParseFailure) -> None: ...

    @property
    def count(self) -> int: ...


class MemoryRejectSink:
    """Collect rejects in memory."""

    def __init__(self) -> None:
        self._failures: list[ParseFailure] = []
        self._lock = threading.Lock()

    def record(self, failure: ParseFailure) -> None:
        with self._lock:
            self._failures.append(failure)

    @property
    def failures(self) -> list[ParseFailure]:
        """Snapshot of recorded failures, in arrival order."""
        with self._lock:
            return list(self._failures)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._failures)


class FileRejectSink:
    """
    Append rejects to a text file.

    Format, one line per failure:
        ``erro: <reason_code>: <message> | linha <n>: <raw line>``

    The file is opened lazily on the first failure, so a clean run never
    creates it. Use as a context manager or call ``close()``.
    """

    def __init__(self, path: Path | str, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self.encoding = encoding
        self._handle: TextIO | None = None
        self._lock = threading.Lock()
        self._count = 0

    def _open(self) -> TextIO:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return open(self.path, "a", encoding=self.encoding)
        except OSError as e:
            raise SourceIOError(f"Cannot open reject log {self.path}", cause=e)

    def record(self, failure: ParseFailure) -> None:
        line = (
            f"erro: {failure.reason_code}: {failure.message} "
            f"| linha {failure.line_number}: {failure.raw_line}\n"
        )
        with self._lock:
            if self._handle is None:
                self._handle = self._open()
            self._handle.write(line)
            self._count += 1

    def flush(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.flush()

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None

    @property
    def count(self) -> int:
        return self._count

    def __enter__(self) -> "FileRejectSink":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class LoggingRejectSink:
    """Emit each reject as a structured warning."""

    def __init__(self, logger=None) -> None:
        self._logger = logger or get_logger(__name__)
        self._lock = threading.Lock()
        self._count = 0

    def record(self, failure: ParseFailure) -> None:
        self._logger.warning(
            "record_rejected",
            line_number=failure.line_number,
            reason_code=failure.reason_code,
            detail=failure.message,
            raw_line=failure.raw_line,
        )
        with self._lock:
            self._count += 1

    @property
    def count(self) -> int:
        return self._count
