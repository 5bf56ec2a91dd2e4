"""Background music playback running beside the image cadence."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from typing import Sequence

from ..backends.base import AudioBackend, AudioHandle
from ..domain.models import (
    AudioPlaylist,
    AudioState,
    PlaybackEvent,
    PlaybackEventType,
    normalize_tracks,
)
from ..exceptions import FetchError
from .cancellation import CancellationToken

logger = logging.getLogger(__name__)


def shuffled(tracks: Sequence[str], rng: random.Random | None = None) -> list[str]:
    """Return a uniform random permutation of ``tracks``."""

    result = list(tracks)
    (rng or random.Random()).shuffle(result)
    return result


class AudioSynchronizer:
    """Play the session playlist in a loop, independent of display ticks.

    The only link to the display side is the muting policy: while a video
    item is on screen and ``mute_during_video`` is set, output is muted.
    """

    def __init__(
        self,
        backend: AudioBackend,
        *,
        tracks: Sequence[str],
        shuffle: bool = False,
        mute_during_video: bool = True,
        token: CancellationToken | None = None,
        rng: random.Random | None = None,
    ) -> None:
        ordered = normalize_tracks(tracks)
        if shuffle:
            ordered = shuffled(ordered, rng)
        self.playlist = AudioPlaylist(tracks=ordered, shuffle=shuffle)
        self.mute_during_video = mute_during_video
        self._backend = backend
        self._token = token
        self._task: asyncio.Task[None] | None = None
        self._handle: AudioHandle | None = None
        self._unpaused = asyncio.Event()
        self._unpaused.set()
        self._stopped = False

    @property
    def state(self) -> AudioState:
        return self.playlist.state

    def _cancelled(self) -> bool:
        return self._stopped or (self._token is not None and self._token.cancelled)

    def start(self) -> asyncio.Task[None] | None:
        if not self.playlist.tracks:
            logger.debug("audio.playlist.empty")
            return None
        if self._task is not None or self._cancelled():
            return self._task
        self.playlist.state = AudioState.PLAYING
        self._task = asyncio.create_task(self._run(), name="audio-synchronizer")
        logger.info(
            "audio.started",
            extra={"tracks": len(self.playlist.tracks), "shuffle": self.playlist.shuffle},
        )
        return self._task

    async def pause(self) -> bool:
        if self.playlist.state is not AudioState.PLAYING:
            return False
        self.playlist.state = AudioState.PAUSED
        self._unpaused.clear()
        if self._handle is not None:
            await self._backend.pause()
        return True

    async def resume(self) -> bool:
        if self.playlist.state is not AudioState.PAUSED or self._cancelled():
            return False
        self.playlist.state = AudioState.PLAYING
        self._unpaused.set()
        if self._handle is not None:
            await self._backend.play(self._handle)
        return True

    async def skip(self, offset: int = 1) -> bool:
        """Jump ``offset`` tracks forward (negative: back) and play from there."""

        if not self.playlist.tracks or self._task is None or self._cancelled():
            return False
        task = self._task
        if not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._cancelled():
            return False
        self._handle = None
        track = self.playlist.advance(offset)
        if self.playlist.state is AudioState.STOPPED:
            self.playlist.state = AudioState.PLAYING
        self._task = asyncio.create_task(self._run(), name="audio-synchronizer")
        logger.info("audio.track.jumped", extra={"track": track, "offset": offset})
        return True

    async def stop(self) -> None:
        """Stop playback and wait for the playlist task to finish."""

        if self._stopped:
            return
        self._stopped = True
        self._unpaused.set()
        task = self._task
        try:
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            if task is not None:
                await self._backend.stop()
        finally:
            self._handle = None
            self.playlist.state = AudioState.STOPPED
        logger.info("audio.stopped")

    async def on_event(self, event: PlaybackEvent) -> None:
        """Bus subscriber applying the muting policy to displayed items."""

        if event.event is not PlaybackEventType.ITEM_DISPLAYED:
            return
        await self.apply_mute(event.payload.get("kind") == "video")

    async def apply_mute(self, showing_video: bool) -> None:
        should_mute = self.mute_during_video and showing_video
        if should_mute == self.playlist.muted or self._cancelled() or self._task is None:
            return
        self.playlist.muted = should_mute
        await self._backend.set_muted(should_mute)

    async def _run(self) -> None:
        failures = 0
        while not self._cancelled():
            track = self.playlist.current
            if track is None:
                return
            try:
                await self._play(track)
            except FetchError as exc:
                self._handle = None
                failures += 1
                logger.warning("audio.track.skipped", extra={"track": track, "error": str(exc)})
                if failures >= len(self.playlist.tracks):
                    logger.error("audio.playlist.unplayable", extra={"tracks": len(self.playlist.tracks)})
                    self.playlist.state = AudioState.STOPPED
                    return
                self.playlist.advance()
                continue
            except Exception:
                self._handle = None
                logger.exception("audio.playback.failed", extra={"track": track})
                self.playlist.state = AudioState.STOPPED
                return
            if self._cancelled():
                return
            failures = 0
            self.playlist.advance()

    async def _play(self, track: str) -> None:
        handle = await self._backend.load(track)
        await self._unpaused.wait()
        if self._cancelled():
            return
        self._handle = handle
        await self._backend.play(handle)
        await self._backend.wait_finished(handle)
        self._handle = None


__all__ = ["AudioSynchronizer", "shuffled"]
