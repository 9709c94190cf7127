"""Per-worker batching of decoded trade records."""

import hashlib

from trade_spine.domains.trades.models import TradeRecord

Batch = tuple[TradeRecord, ...]


class BatchAccumulator:
    """
    Fixed-capacity buffer owned by exactly one worker.

    Not thread-safe and not meant to be: each worker keeps its own. There is
    no persistence or retry logic here.

    Example:
        acc = BatchAccumulator(batch_size=2)
        acc.append(a); acc.append(b)
        if acc.is_full():
            gateway.save_batch(acc.drain())
    """

    def __init__(self, batch_size: int):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.batch_size = batch_size
        self._records: list[TradeRecord] = []

    def append(self, record: TradeRecord) -> None:
        """Add a record. Appending to a full buffer is a caller bug."""
        if len(self._records) >= self.batch_size:
            raise OverflowError(
                f"batch already holds {self.batch_size} records; drain() before appending"
            )
        self._records.append(record)

    def is_full(self) -> bool:
        return len(self._records) >= self.batch_size

    def is_empty(self) -> bool:
        return not self._records

    def drain(self) -> Batch:
        """Hand over the buffered records and start a fresh, empty buffer."""
        batch = tuple(self._records)
        self._records = []
        return batch

    def __len__(self) -> int:
        return len(self._records)


def compute_batch_key(batch: Batch, length: int = 32) -> str:
    """
    Deterministic content key for a batch.

    Same records in the same order give the same key, so an operator can
    match a failed batch in the logs against what is already stored.
    """
    digest = hashlib.sha256()
    for record in batch:
        digest.update(
            "|".join(
                (
                    record.trade_date.isoformat(),
                    record.instrument_code,
                    str(record.negotiated_price),
                    str(record.negotiated_quantity),
                    record.closing_time,
                )
            ).encode()
        )
        digest.update(b"\n")
    return digest.hexdigest()[:length]
