"""Cooperative cancellation for long resolution runs."""

import threading

from lockwright.errors import OperationCancelledError


class CancellationToken:
    """A flag checked between phases, solver steps and operations.

    ``cancel()`` may be called from any thread (a signal handler, a UI);
    the run notices at its next check and raises ``OperationCancelledError``
    before anything is persisted.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            message = "Operation cancelled"
            if where:
                message += f" during {where}"
            if self.reason:
                message += f": {self.reason}"
            raise OperationCancelledError(message)


__all__ = ["CancellationToken"]
