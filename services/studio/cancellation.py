"""Cooperative cancellation for long-running studio operations."""

from __future__ import annotations

import asyncio

from shared.enums import STOPPED_BY_USER


class OperationCancelledError(Exception):
    """Raised by ``CancellationToken.raise_if_cancelled``."""


class CancellationToken:
    """
    Shared flag checked at loop boundaries and inside waits.

    ``sleep`` wakes up as soon as ``cancel`` is called, so a backoff wait never
    outlives a stop request.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = STOPPED_BY_USER) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds; return True if cancelled before or during the wait."""
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(0.0, delay))
        except asyncio.TimeoutError:
            return False
        return True

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelledError(self.reason or STOPPED_BY_USER)
