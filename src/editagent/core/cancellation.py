"""Cooperative cancellation for a single session turn."""

from __future__ import annotations

import asyncio


class CancelledByUser(Exception):
    """Raised by ``CancellationToken.raise_if_cancelled`` once cancelled."""


class CancellationToken:
    """A one-shot cancellation signal passed explicitly through a turn.

    Cancellation is observed, never enforced: code checks ``cancelled`` at
    its own boundaries. A fresh token is created for every turn.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "aborted") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledByUser(self.reason or "aborted")

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        state = f"cancelled ({self.reason})" if self.cancelled else "active"
        return f"<CancellationToken {state}>"
