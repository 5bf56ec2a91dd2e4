"""Bounded lookahead window of already fetched media."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict, deque
from typing import Any, Deque, Sequence

from ..domain.models import FetchedMedia, FetchStatus, MediaItem
from ..exceptions import TerminalError
from ..sources.base import MediaSource

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 20


class PrefetchCache:
    """Stage up to ``capacity`` upcoming items ahead of the displayed one.

    The window is an insertion-ordered mapping that follows the order of the
    initial identifier list. Every fetch goes through a single in-flight task
    per identifier, so the initial fill, a replenishment and a cache miss for
    the same item share one download.
    """

    def __init__(
        self,
        source: MediaSource,
        *,
        capacity: int = DEFAULT_WINDOW_SIZE,
        log: logging.Logger | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._source = source
        self.capacity = capacity
        self._log = log or logger
        self._window: OrderedDict[str, MediaItem] = OrderedDict()
        self._consumed: set[str] = set()
        self._inflight: dict[str, asyncio.Task[FetchedMedia]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._order: list[str] = []
        self._upcoming: Deque[str] = deque()
        self._current: MediaItem | None = None
        self._closed = False
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._window)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._window

    @property
    def current(self) -> MediaItem | None:
        return self._current

    def window(self) -> list[MediaItem]:
        return list(self._window.values())

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------
    async def fill(self, identifiers: Sequence[str]) -> int:
        """Fetch the first window and return how many items loaded.

        Raises :class:`TerminalError` when none of the staged items could be
        fetched; individual failures are logged and left out of the window.
        """

        self._order = list(identifiers)
        self._upcoming = deque(self._order)
        batch: list[str] = []
        while self._upcoming and len(batch) < self.capacity:
            identifier = self._upcoming.popleft()
            if identifier in batch:
                continue
            batch.append(identifier)
            self._window[identifier] = MediaItem(identifier)

        results = await asyncio.gather(*(self._load(identifier) for identifier in batch))
        if self._closed:
            return 0
        loaded = sum(1 for item in results if item.status is FetchStatus.LOADED)
        self._log.info(
            "prefetch.fill.completed",
            extra={"requested": len(batch), "loaded": loaded, "total": len(self._order)},
        )
        if batch and loaded == 0:
            raise TerminalError("none of the initial media items could be fetched")
        return loaded

    # ------------------------------------------------------------------
    # Steady state
    # ------------------------------------------------------------------
    async def take(self, identifier: str) -> MediaItem:
        """Return a loaded item for ``identifier``, fetching directly on a miss."""

        item = self._window.get(identifier)
        if item is not None and item.status is FetchStatus.LOADED:
            self.hits += 1
            return item

        if item is not None:
            self.hits += 1
            media = await self._fetch_shared(identifier)
            if not self._closed and self._window.get(identifier) is item:
                item.status = FetchStatus.LOADED
                item.resource = media
                return item
            return MediaItem(identifier, status=FetchStatus.LOADED, resource=media)

        self.misses += 1
        self._log.info("prefetch.miss", extra={"identifier": identifier})
        media = await self._fetch_shared(identifier)
        return MediaItem(identifier, status=FetchStatus.LOADED, resource=media)

    def advance(self, item: MediaItem) -> None:
        """Move the display pointer to ``item`` and evict consumed entries."""

        if self._closed:
            return
        identifier = item.identifier
        if identifier in self._window:
            for key in list(self._window):
                if key == identifier:
                    break
                self._evict(key)
        for key in [key for key in self._consumed if key != identifier]:
            self._evict(key)
        self._consumed.add(identifier)
        self._current = item

    def replenish(self) -> asyncio.Task[Any] | None:
        """Schedule the fetch of exactly one replacement item."""

        if self._closed or len(self._window) >= self.capacity:
            return None
        while self._upcoming:
            identifier = self._upcoming.popleft()
            if identifier in self._window:
                continue
            self._window[identifier] = MediaItem(identifier)
            task = asyncio.create_task(self._load(identifier))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return task
        return None

    def rewind(self) -> None:
        """Restart the upcoming queue for a new playback cycle."""

        self._upcoming = deque(self._order)

    async def close(self) -> None:
        """Cancel outstanding fetches and drop the window."""

        self._closed = True
        pending = [*self._inflight.values(), *self._background]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._inflight.clear()
        self._window.clear()
        self._consumed.clear()
        self._current = None

    def stats(self) -> dict[str, int]:
        return {
            "window_size": len(self._window),
            "capacity": self.capacity,
            "in_flight": len(self._inflight),
            "upcoming": len(self._upcoming),
            "hits": self.hits,
            "misses": self.misses,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _load(self, identifier: str) -> MediaItem:
        item = self._window.get(identifier) or MediaItem(identifier)
        if self._closed:
            return item
        try:
            media = await self._fetch_shared(identifier)
        except asyncio.CancelledError:
            if self._closed:
                return item
            raise
        except Exception as exc:
            self._log.warning(
                "prefetch.fetch.failed",
                extra={"identifier": identifier, "error": str(exc) or exc.__class__.__name__},
            )
            item.status = FetchStatus.FAILED
            item.error = exc
            if self._window.get(identifier) is item:
                del self._window[identifier]
            return item
        if self._closed or self._window.get(identifier) is not item:
            return item
        item.status = FetchStatus.LOADED
        item.resource = media
        return item

    async def _fetch_shared(self, identifier: str) -> FetchedMedia:
        task = self._inflight.get(identifier)
        if task is None:
            task = asyncio.create_task(self._source.fetch(identifier))
            self._inflight[identifier] = task
            task.add_done_callback(
                lambda done, key=identifier: self._forget_inflight(key, done)
            )
        return await asyncio.shield(task)

    def _forget_inflight(self, identifier: str, task: asyncio.Task[FetchedMedia]) -> None:
        if self._inflight.get(identifier) is task:
            del self._inflight[identifier]
        if not task.cancelled():
            task.exception()

    def _evict(self, identifier: str) -> None:
        self._window.pop(identifier, None)
        self._consumed.discard(identifier)


__all__ = ["DEFAULT_WINDOW_SIZE", "PrefetchCache"]
