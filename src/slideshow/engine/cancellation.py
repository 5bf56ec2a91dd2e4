"""Cooperative cancellation shared by the session's async tasks."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """One-shot flag checked at tick entry and after every await.

    The token never raises on its own; continuations call :attr:`cancelled`
    before mutating shared state and drop their result when it is set.
    """

    __slots__ = ("_event", "reason")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for cancellation; return ``True`` if it happened within ``timeout``."""

        if timeout is None:
            await self._event.wait()
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


__all__ = ["CancellationToken"]
