"""Timer driven display loop of a playback session."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from enum import Enum
from typing import Any

from ..domain.models import NextItem, PlaybackEventType, PlaybackSession
from ..exceptions import FetchError, SourceUnavailableError
from ..sources.base import MediaSource
from .cancellation import CancellationToken
from .events import PlaybackEventBus
from .prefetch import PrefetchCache

logger = logging.getLogger(__name__)


class TickOutcome(str, Enum):
    """Result of a single :meth:`MediaSequencer.tick`."""

    DISPLAYED = "displayed"
    SKIPPED = "skipped"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class MediaSequencer:
    """Advance the display pointer once per cadence interval.

    The sequencer is the only writer of the display pointer. Every await is
    followed by a cancellation check so a completion that arrives after
    :meth:`cancel` never publishes an event.
    """

    def __init__(
        self,
        *,
        session: PlaybackSession,
        source: MediaSource,
        cache: PrefetchCache,
        bus: PlaybackEventBus,
        token: CancellationToken,
        on_exhausted: Callable[[], Any] | None = None,
        sleep: Callable[[float], Any] | None = None,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        self._session = session
        self._source = source
        self._cache = cache
        self._bus = bus
        self._token = token
        self._on_exhausted = on_exhausted
        self._sleep = self._wrap_sleep(sleep)
        self._retry_attempts = max(1, retry_attempts)
        self._retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self._sequence = 0
        self._task: asyncio.Task[None] | None = None
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._tick_lock = asyncio.Lock()
        self._cancelled = False

    @staticmethod
    def _wrap_sleep(
        sleep: Callable[[float], Any] | None,
    ) -> Callable[[float], Awaitable[None]]:
        if sleep is None:
            return asyncio.sleep

        async def _async_sleep(seconds: float) -> None:
            result = sleep(seconds)
            if inspect.isawaitable(result):
                await result

        return _async_sleep

    @property
    def cadence_seconds(self) -> float:
        return self._session.config.cadence_seconds

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _stopped(self) -> bool:
        return self._cancelled or self._token.cancelled

    # ------------------------------------------------------------------
    # Timer control
    # ------------------------------------------------------------------
    def start(self) -> asyncio.Task[None]:
        if self._task is not None:
            raise RuntimeError("sequencer already started")
        self._task = asyncio.create_task(self._run(), name=f"sequencer-{self._session.id}")
        return self._task

    def pause(self) -> None:
        self._resumed.clear()

    def resume(self) -> None:
        self._resumed.set()

    async def cancel(self) -> None:
        """Stop ticking; no tick fires after this coroutine returns."""

        self._cancelled = True
        self._resumed.set()
        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def step(self) -> TickOutcome:
        """Advance right away and restart the cadence timer from this item."""

        if self._stopped():
            return TickOutcome.CANCELLED
        async with self._tick_lock:
            timer_running = await self._stop_timer()
            outcome = await self.tick()
        if self._continue_after(outcome) and timer_running:
            self._restart_timer()
        return outcome

    async def set_cadence(self, cadence_ms: int) -> None:
        """Switch to a new cadence; a running timer restarts with it."""

        self._session.config = replace(self._session.config, cadence_ms=cadence_ms)
        if self._stopped():
            return
        async with self._tick_lock:
            if await self._stop_timer():
                self._restart_timer()
        logger.info(
            "sequencer.cadence.changed",
            extra={"session_id": str(self._session.id), "cadence_ms": cadence_ms},
        )

    async def _stop_timer(self) -> bool:
        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return False
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return True

    def _restart_timer(self) -> None:
        if self._stopped():
            return
        self._task = asyncio.create_task(
            self._run(wait_first=True), name=f"sequencer-{self._session.id}"
        )

    def _continue_after(self, outcome: TickOutcome) -> bool:
        if outcome is TickOutcome.CANCELLED:
            return False
        if outcome is TickOutcome.EXHAUSTED:
            logger.info(
                "sequencer.exhausted",
                extra={"session_id": str(self._session.id), "sequence": self._sequence},
            )
            if self._on_exhausted is not None and not self._stopped():
                self._on_exhausted()
            return False
        return True

    async def _run(self, *, wait_first: bool = False) -> None:
        try:
            if wait_first and not await self._wait_cadence():
                return
            while not self._stopped():
                async with self._tick_lock:
                    outcome = await self.tick()
                if not self._continue_after(outcome):
                    return
                if not await self._wait_cadence():
                    return
        except asyncio.CancelledError:
            logger.debug("sequencer.cancelled", extra={"session_id": str(self._session.id)})
            raise

    async def _wait_cadence(self) -> bool:
        await self._sleep(self.cadence_seconds)
        while not self._stopped() and not self._resumed.is_set():
            await self._resumed.wait()
            if self._stopped():
                return False
            await self._sleep(self.cadence_seconds)
        return not self._stopped()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    async def tick(self) -> TickOutcome:
        """Advance once: ask the source, resolve bytes, publish, replenish."""

        if self._stopped():
            return TickOutcome.CANCELLED

        self._sequence += 1
        sequence = self._sequence
        try:
            next_item = await self._advance_pointer(sequence)
        except Exception as exc:
            if self._stopped():
                return TickOutcome.CANCELLED
            await self._report_failure(exc, identifier=None, sequence=sequence)
            return TickOutcome.SKIPPED
        if self._stopped():
            return TickOutcome.CANCELLED

        if next_item.identifier is None:
            return TickOutcome.EXHAUSTED
        if next_item.cycle_complete:
            if not self._session.config.loop_playback:
                return TickOutcome.EXHAUSTED
            logger.info("sequencer.cycle_restarted", extra={"sequence": sequence})
            self._cache.rewind()

        identifier = next_item.identifier
        try:
            item = await self._cache.take(identifier)
        except Exception as exc:
            if self._stopped():
                return TickOutcome.CANCELLED
            await self._report_failure(exc, identifier=identifier, sequence=sequence)
            self._cache.replenish()
            return TickOutcome.SKIPPED
        if self._stopped():
            return TickOutcome.CANCELLED

        self._cache.advance(item)
        self._session.displayed_count += 1
        resource = item.resource
        await self._bus.emit(
            PlaybackEventType.ITEM_DISPLAYED,
            session_id=self._session.id,
            payload={
                "identifier": identifier,
                "kind": item.kind.value,
                "content_type": resource.content_type if resource else None,
                "size_bytes": len(resource.payload) if resource else 0,
                "sequence": sequence,
                "total_shown": next_item.total_shown,
                "total": next_item.total,
                "remaining": next_item.remaining,
            },
        )
        if self._stopped():
            return TickOutcome.CANCELLED
        self._cache.replenish()
        return TickOutcome.DISPLAYED

    async def _advance_pointer(self, sequence: int) -> NextItem:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._source.next(self._session.config, sequence=sequence)
            except SourceUnavailableError as exc:
                if attempt >= self._retry_attempts or self._stopped():
                    raise
                logger.warning(
                    "sequencer.next.retry",
                    extra={"sequence": sequence, "attempt": attempt, "error": str(exc)},
                )
                await self._sleep(self._retry_backoff_seconds * attempt)

    async def _report_failure(
        self, exc: Exception, *, identifier: str | None, sequence: int
    ) -> None:
        extra = {
            "session_id": str(self._session.id),
            "identifier": identifier,
            "sequence": sequence,
            "error": str(exc),
        }
        if isinstance(exc, FetchError):
            logger.warning("sequencer.tick.skipped", extra=extra)
        else:
            logger.exception("sequencer.tick.failed", extra=extra)
        await self._bus.emit(
            PlaybackEventType.ERROR,
            session_id=self._session.id,
            payload={
                "error": "FetchError" if isinstance(exc, FetchError) else "UnexpectedError",
                "exception": exc.__class__.__name__,
                "message": str(exc),
                "identifier": identifier or getattr(exc, "identifier", None),
                "sequence": sequence,
            },
        )


__all__ = ["MediaSequencer", "TickOutcome"]
