"""Cooperative cancellation for long-running validation loops."""

from threading import Event

from .exceptions import OperationCancelledError


class CancellationToken:
    """
    Thread-safe cancellation flag.

    The validator checks the token between folds; the async service sets it
    when the awaiting task is cancelled.
    """

    def __init__(self):
        self._event = Event()
        self.reason: str = ""

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(f"Operation cancelled: {self.reason}")
