"""Cooperative cancellation for long permutation runs."""

from __future__ import annotations

import threading

from modpres.core.errors import PreservationCancelled

__all__ = ['CancellationToken']


class CancellationToken:
    """
    Thread-safe flag checked between permutation batches.

    A statistic in progress is never interrupted; workers observe the flag
    before starting their next batch.

    Examples:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, context: str = "") -> None:
        if self._event.is_set():
            suffix = f" ({context})" if context else ""
            raise PreservationCancelled(f"Preservation run cancelled{suffix}")
