"""
Bounded-concurrency ingestion of one trade file.

Topology:

    decoder thread ──put──▶ Queue(maxsize=1) ──get──▶ worker 0 ─┐
                                              ├──get──▶ worker 1 ─┼─▶ gateway.save_batch
                                              └──get──▶ worker N ─┘

- One producer thread runs the decoder and hands records over a one-slot
  queue, so it blocks whenever no worker is ready (back-pressure).
- N workers pull from the same queue (work stealing), each filling its own
  BatchAccumulator and saving synchronously when it is full.
- End of stream is one sentinel per worker; each worker flushes its trailing
  partial batch exactly once when it sees its sentinel.
- One run token, a child of any caller token, is shared by the producer,
  the workers and the deadline timer. Once tripped, nobody starts a new
  batch; a save already in progress is left to finish.
- The first failure (source I/O, save, deadline) is kept in a write-once
  slot and raised after every thread has stopped.
"""

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from trade_spine.domains.trades.models import IngestionReport, ParseFailure
from trade_spine.domains.trades.parser import TradeDecoder
from trade_spine.domains.trades.rejects import MalformedRecordSink
from trade_spine.domains.trades.repository import TradeGateway
from trade_spine.errors import (
    DeadlineExceededError,
    IngestionCancelledError,
    PersistenceError,
    SourceIOError,
    TradeSpineError,
)
from trade_spine.ingestion.batch import Batch, BatchAccumulator, compute_batch_key
from trade_spine.ingestion.cancellation import CancelToken
from trade_spine.ingestion.progress import ProgressTracker
from trade_spine.logging import get_logger

DEFAULT_NUM_WORKERS = 4
DEFAULT_BATCH_SIZE = 1000

# Cancel reasons set by the orchestrator itself
REASON_DEADLINE = "deadline"
REASON_WORKER_FAILED = "worker_failed"
REASON_SOURCE_FAILED = "source_failed"

_END_OF_STREAM = object()


class _FirstError:
    """Write-once holder for the run's terminal error."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._error: BaseException | None = None

    def set(self, error: BaseException) -> bool:
        with self._lock:
            if self._error is not None:
                return False
            self._error = error
            return True

    def get(self) -> BaseException | None:
        with self._lock:
            return self._error


class IngestionOrchestrator:
    """
    Run the decode → batch → save pipeline for one file at a time.

    Configuration and the logger are passed in; nothing is looked up from
    process-wide state.

    Example:
        orchestrator = IngestionOrchestrator(gateway, sink, num_workers=4, batch_size=1000)
        report = orchestrator.run("NEGOCIOSAVISTA.txt", timeout=840)
    """

    def __init__(
        self,
        gateway: TradeGateway,
        sink: MalformedRecordSink,
        *,
        num_workers: int = DEFAULT_NUM_WORKERS,
        batch_size: int = DEFAULT_BATCH_SIZE,
        encoding: str = "latin-1",
        skip_header: bool = True,
        progress: ProgressTracker | None = None,
        logger=None,
        poll_interval: float = 0.05,
    ):
        if num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {num_workers}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        self.gateway = gateway
        self.sink = sink
        self.num_workers = num_workers
        self.batch_size = batch_size
        self.encoding = encoding
        self.skip_header = skip_header
        self.progress = progress or ProgressTracker()
        self.poll_interval = poll_interval
        self._log = logger or get_logger(__name__)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def run(
        self,
        path: Path | str,
        *,
        timeout: float | None = None,
        cancel: CancelToken | None = None,
    ) -> IngestionReport:
        """
        Ingest one file.

        Args:
            path: Source file
            timeout: Deadline for the whole run in seconds (None = no deadline)
            cancel: Caller-owned token; tripping it stops the run

        Returns:
            IngestionReport on full success

        Raises:
            SourceIOError: the file could not be opened or read
            PersistenceError: a batch save was rejected
            DeadlineExceededError: the run did not finish within ``timeout``
            IngestionCancelledError: the caller tripped ``cancel``
        """
        path = Path(path)
        token = cancel.child() if cancel is not None else CancelToken()
        first_error = _FirstError()
        log = self._log.bind(path=str(path))

        self.progress.restart()
        started = time.monotonic()

        decoder = TradeDecoder(
            path,
            self.sink,
            encoding=self.encoding,
            skip_header=self.skip_header,
            log=log,
        )
        try:
            items = decoder.decode(token)
        except SourceIOError as e:
            log.error("ingestion_failed", **e.to_dict())
            raise e.with_context(records_processed=0)

        log.info(
            "ingestion_started",
            workers=self.num_workers,
            batch_size=self.batch_size,
            timeout=timeout,
        )

        handoff: queue.Queue = queue.Queue(maxsize=1)

        timer: threading.Timer | None = None
        if timeout is not None:
            timer = threading.Timer(
                timeout, self._on_deadline, args=(token, first_error, timeout, log)
            )
            timer.daemon = True
            timer.start()

        producer = threading.Thread(
            target=self._produce,
            args=(items, handoff, token, first_error, log),
            name="ingest-decoder",
            daemon=True,
        )
        producer.start()

        try:
            with ThreadPoolExecutor(
                max_workers=self.num_workers, thread_name_prefix="ingest-worker"
            ) as pool:
                futures = [
                    pool.submit(self._consume, worker_id, handoff, token, first_error, log)
                    for worker_id in range(self.num_workers)
                ]
                finished = [future.result() for future in futures]
        finally:
            if timer is not None:
                timer.cancel()
        producer.join()
        completed = all(finished)

        elapsed = time.monotonic() - started
        snapshot = self.progress.snapshot()

        error = first_error.get()
        if completed and isinstance(error, DeadlineExceededError):
            # every worker flushed its last batch before the timer fired
            log.info("deadline_after_completion", reason=token.reason)
            error = None
        if error is None and token.cancelled and not completed:
            error = IngestionCancelledError(
                f"Ingestion of {path} cancelled: {token.reason}"
            )
        if error is not None:
            if isinstance(error, TradeSpineError):
                error.with_context(
                    records_processed=snapshot.records,
                    batches_committed=snapshot.batches,
                )
            log.error(
                "ingestion_failed",
                error_type=type(error).__name__,
                error=str(error),
                records_processed=snapshot.records,
                elapsed_seconds=round(elapsed, 3),
            )
            raise error

        report = IngestionReport(
            path=str(path),
            lines_read=decoder.lines_read,
            records_committed=snapshot.records,
            records_rejected=decoder.failures,
            batches_committed=snapshot.batches,
            elapsed_seconds=elapsed,
        )
        log.info(
            "ingestion_completed",
            lines_read=report.lines_read,
            records_committed=report.records_committed,
            records_rejected=report.records_rejected,
            batches_committed=report.batches_committed,
            elapsed_seconds=round(elapsed, 3),
        )
        return report

    # ------------------------------------------------------------------ #
    # Producer
    # ------------------------------------------------------------------ #

    def _produce(self, items, handoff, token, first_error, log) -> None:
        try:
            for item in items:
                if isinstance(item, ParseFailure):
                    continue  # already in the reject sink
                if not self._put(handoff, item, token):
                    return
            for _ in range(self.num_workers):
                if not self._put(handoff, _END_OF_STREAM, token):
                    return
        except Exception as e:
            first_error.set(e)
            token.cancel(REASON_SOURCE_FAILED)
            log.error("decode_failed", error_type=type(e).__name__, error=str(e))
        finally:
            items.close()

    def _put(self, handoff: queue.Queue, item, token: CancelToken) -> bool:
        """Block until a worker takes ``item``; give up if the run is cancelled."""
        while not token.cancelled:
            try:
                handoff.put(item, timeout=self.poll_interval)
                return True
            except queue.Full:
                continue
        return False

    # ------------------------------------------------------------------ #
    # Workers
    # ------------------------------------------------------------------ #

    def _consume(self, worker_id, handoff, token, first_error, log) -> bool:
        """Returns True only when the worker saw end of stream and saved everything it held."""
        log = log.bind(worker=worker_id)
        accumulator = BatchAccumulator(self.batch_size)

        while not token.cancelled:
            try:
                item = handoff.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            if item is _END_OF_STREAM:
                saved = accumulator.is_empty() or self._commit(
                    accumulator.drain(), token, first_error, log
                )
                log.debug("worker_finished", saved=saved)
                return saved

            accumulator.append(item)
            if accumulator.is_full():
                if not self._commit(accumulator.drain(), token, first_error, log):
                    return False

        log.debug("worker_stopped", reason=token.reason, discarded=len(accumulator))
        return False

    def _commit(self, batch: Batch, token, first_error, log) -> bool:
        """Save one batch. Returns False when the worker must stop."""
        if token.cancelled:
            return False

        try:
            self.gateway.save_batch(batch)
        except Exception as e:
            if isinstance(e, PersistenceError):
                error = e
            else:
                error = PersistenceError(f"Batch save failed: {e}", cause=e)
            error.with_context(batch_key=compute_batch_key(batch), batch_size=len(batch))
            first_error.set(error)
            token.cancel(REASON_WORKER_FAILED)
            log.error("worker_failed", **error.to_dict())
            return False

        self.progress.record_batch(len(batch))
        log.debug("batch_committed", records=len(batch), total=self.progress.count)
        return True

    # ------------------------------------------------------------------ #
    # Deadline
    # ------------------------------------------------------------------ #

    def _on_deadline(self, token, first_error, timeout, log) -> None:
        if token.cancelled:
            return
        first_error.set(DeadlineExceededError(f"Ingestion exceeded its {timeout}s deadline"))
        token.cancel(REASON_DEADLINE)
        log.warning("deadline_exceeded", timeout=timeout)
