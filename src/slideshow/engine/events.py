"""Notification channel between the engine and its presenters."""

from __future__ import annotations

import inspect
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Deque, Mapping
from uuid import UUID

from ..domain.models import PlaybackEvent, PlaybackEventType

logger = logging.getLogger(__name__)

Subscriber = Callable[[PlaybackEvent], Awaitable[None] | None]


class PlaybackEventBus:
    """Fan out :class:`PlaybackEvent` objects to subscribers in order.

    Subscribers may be plain callables or coroutines. A failing subscriber is
    logged and skipped so a broken renderer never stalls the sequencer.
    """

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._subscribers: list[Subscriber] = []
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    async def publish(self, event: PlaybackEvent) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "playback.events.subscriber_failed",
                    extra={"event": event.event.value},
                )

    async def emit(
        self,
        event: PlaybackEventType,
        *,
        session_id: UUID,
        payload: Mapping[str, Any] | None = None,
    ) -> PlaybackEvent:
        record = PlaybackEvent(
            event=event,
            session_id=session_id,
            occurred_at=self._clock(),
            payload=dict(payload or {}),
        )
        await self.publish(record)
        return record


class EventHistory:
    """Bounded subscriber keeping the most recent events for inspection."""

    def __init__(self, limit: int = 200) -> None:
        self._events: Deque[PlaybackEvent] = deque(maxlen=max(1, limit))

    def __call__(self, event: PlaybackEvent) -> None:
        self._events.append(event)

    def recent(self, limit: int | None = None) -> list[PlaybackEvent]:
        events = list(self._events)
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def clear(self) -> None:
        self._events.clear()


__all__ = ["EventHistory", "PlaybackEventBus", "Subscriber"]
