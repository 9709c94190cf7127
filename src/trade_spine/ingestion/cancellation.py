"""Cooperative cancellation shared by the decoder, the workers and the deadline timer."""

import threading


class CancelToken:
    """
    Write-once cancellation signal.

    The first ``cancel()`` wins: its reason is kept, later calls are no-ops.
    Readers poll ``cancelled`` (cheap) or block on ``wait()``.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._children: list["CancelToken"] = []

    def cancel(self, reason: str = "cancelled") -> bool:
        """Trip the token and its children. Returns True only for the call that tripped it."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel(reason)
        return True

    def child(self) -> "CancelToken":
        """
        A token that trips when this one does, but not the other way round.

        Lets a run cancel its own work without tripping a caller-owned token.
        """
        token = CancelToken()
        with self._lock:
            if not self._event.is_set():
                self._children.append(token)
                return token
            reason = self._reason
        token.cancel(reason)
        return token

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout; returns whether cancelled."""
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        state = f"cancelled={self._reason!r}" if self.cancelled else "active"
        return f"CancelToken({state})"
