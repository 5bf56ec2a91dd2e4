"""Headless backends used when no display or sound device is attached.

Both backends only log what a real device would do. Audio tracks are still
downloaded from the media source so broken tracks are detected and skipped
exactly as with real output.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ..exceptions import ResourceAcquisitionError
from ..sources.base import MediaSource
from .base import AudioBackend, AudioHandle, PresentationBackend

logger = logging.getLogger(__name__)


class HeadlessAudioBackend(AudioBackend):
    """Simulate playback of fixed-length tracks."""

    def __init__(
        self,
        source: MediaSource,
        *,
        track_seconds: float = 180.0,
        clock: Callable[[], float] | None = None,
        poll_interval: float = 0.25,
    ) -> None:
        self._source = source
        self._track_seconds = track_seconds
        self._clock = clock or time.monotonic
        self._poll_interval = poll_interval
        self._current: AudioHandle | None = None
        self._remaining = 0.0
        self._resumed_at = 0.0
        self._playing = False
        self._wakeup = asyncio.Event()
        self.muted = False

    async def load(self, track: str) -> AudioHandle:
        media = await self._source.fetch_track(track)
        return AudioHandle(
            track=track,
            duration_seconds=self._track_seconds,
            size_bytes=len(media.payload),
        )

    async def play(self, handle: AudioHandle) -> None:
        if handle is not self._current:
            self._current = handle
            self._remaining = handle.duration_seconds or self._track_seconds
        self._resumed_at = self._clock()
        self._playing = True
        self._wakeup.set()
        logger.info("audio.headless.play", extra={"track": handle.track})

    async def pause(self) -> None:
        if self._playing:
            self._remaining -= self._clock() - self._resumed_at
            self._playing = False
            self._wakeup.clear()

    async def stop(self) -> None:
        self._current = None
        self._playing = False
        self._wakeup.set()

    async def set_muted(self, muted: bool) -> None:
        self.muted = muted
        logger.info("audio.headless.muted", extra={"muted": muted})

    async def wait_finished(self, handle: AudioHandle) -> None:
        while self._current is handle:
            if not self._playing:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            left = self._remaining - (self._clock() - self._resumed_at)
            if left <= 0:
                return
            await asyncio.sleep(min(left, self._poll_interval))


@dataclass(slots=True)
class HeadlessLease:
    name: str
    released: bool = False

    async def release(self) -> None:
        self.released = True
        logger.info("presentation.headless.released", extra={"resource": self.name})


@dataclass(slots=True)
class HeadlessPresentationBackend(PresentationBackend):
    """Grant or deny each capability according to its flags."""

    allow_exclusive_display: bool = True
    allow_wake_lock: bool = True
    granted: list[HeadlessLease] = field(default_factory=list)

    async def request_exclusive_display(self) -> HeadlessLease:
        return self._grant("exclusive_display", self.allow_exclusive_display)

    async def request_wake_lock(self) -> HeadlessLease:
        return self._grant("wake_lock", self.allow_wake_lock)

    def _grant(self, name: str, allowed: bool) -> HeadlessLease:
        if not allowed:
            raise ResourceAcquisitionError(f"{name} is not supported in headless mode")
        lease = HeadlessLease(name=name)
        self.granted.append(lease)
        logger.info("presentation.headless.granted", extra={"resource": name})
        return lease


__all__ = ["HeadlessAudioBackend", "HeadlessLease", "HeadlessPresentationBackend"]
