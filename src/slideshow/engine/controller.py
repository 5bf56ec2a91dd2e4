"""Session controller: the single entry point of the playback engine."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from ..backends.base import AudioBackend, PresentationBackend
from ..domain.models import (
    EndReason,
    PlaybackEventType,
    PlaybackSession,
    ResourceKind,
    SelectionConfig,
    SessionStatus,
)
from ..exceptions import ConfigurationError, FetchError, TerminalError
from ..logging import bind_session, unbind_session
from ..sources.base import MediaSource
from .audio import AudioSynchronizer
from .cancellation import CancellationToken
from .events import PlaybackEventBus
from .prefetch import DEFAULT_WINDOW_SIZE, PrefetchCache
from .resources import ResourceGuard
from .sequencer import MediaSequencer, TickOutcome

logger = structlog.get_logger(__name__)


def validate_selection(config: SelectionConfig) -> None:
    """Raise :class:`ConfigurationError` for selections that cannot start."""

    if not [folder for folder in config.selected_folders if folder and folder.strip()]:
        raise ConfigurationError("at least one folder must be selected")
    if config.cadence_ms <= 0:
        raise ConfigurationError("cadence must be a positive number of milliseconds")


class SessionController:
    """Own the :class:`PlaybackSession` and compose the engine components.

    Only one session is active at a time. ``stop`` tears the components down
    in a fixed order (timer, audio, leases, cache) and only then reports
    ``terminated``; concurrent callers wait for the same teardown.
    """

    def __init__(
        self,
        *,
        source: MediaSource,
        presentation: PresentationBackend,
        audio_backend: AudioBackend,
        bus: PlaybackEventBus | None = None,
        window_size: int = DEFAULT_WINDOW_SIZE,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.5,
        sleep: Callable[[float], Any] | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._source = source
        self._presentation = presentation
        self._audio_backend = audio_backend
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.bus = bus or PlaybackEventBus(clock=self._clock)
        self._window_size = window_size
        self._retry_attempts = retry_attempts
        self._retry_backoff_seconds = retry_backoff_seconds
        self._sleep = sleep
        self._rng = rng

        self._session: PlaybackSession | None = None
        self._token = CancellationToken()
        self._cache: PrefetchCache | None = None
        self._sequencer: MediaSequencer | None = None
        self._audio: AudioSynchronizer | None = None
        self._guard: ResourceGuard | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._stopping: asyncio.Future[None] | None = None
        self._terminated = asyncio.Event()
        self._terminated.set()
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def session(self) -> PlaybackSession | None:
        return self._session

    @property
    def state(self) -> SessionStatus:
        return self._session.status if self._session else SessionStatus.IDLE

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self, config: SelectionConfig) -> PlaybackSession:
        """Start a new session and return it once it is playing.

        Raises :class:`ConfigurationError` before anything is acquired and
        :class:`TerminalError` after the partial session was torn down.
        """

        validate_selection(config)
        if self._session is not None and self._session.status.is_active:
            logger.info("playback.session.replacing", previous=str(self._session.id))
            await self.stop()

        session = PlaybackSession(config=config, created_at=self._clock())
        token = CancellationToken()
        self._wire(session, token)
        bind_session(str(session.id))
        session.status = SessionStatus.INITIALIZING
        logger.info(
            "playback.session.initializing",
            folders=list(config.selected_folders),
            cadence_ms=config.cadence_ms,
            tracks=len(config.selected_music),
        )

        assert self._guard is not None and self._cache is not None
        try:
            held = await self._guard.acquire_all()
            logger.info("playback.resources.held", resources=[kind.value for kind in held])
            if token.cancelled:
                return session
            try:
                await self._source.reset_session()
            except FetchError as exc:
                logger.warning("playback.source.reset_failed", error=str(exc))
            identifiers = await self._source.list(config)
            if token.cancelled:
                return session
            if not identifiers:
                raise TerminalError("no media items found for the selected folders")
            await self._cache.fill(identifiers)
        except TerminalError as exc:
            await self._abort(session, exc)
            raise
        except FetchError as exc:
            if token.cancelled:
                logger.info("playback.source.failed_after_stop", error=str(exc))
                return session
            terminal = TerminalError(f"media source unavailable: {exc}")
            await self._abort(session, terminal)
            raise terminal from exc
        except asyncio.CancelledError:
            await self.stop()
            raise

        if token.cancelled or session.status is not SessionStatus.INITIALIZING:
            return session

        session.status = SessionStatus.PLAYING
        assert self._sequencer is not None and self._audio is not None
        self._sequencer.start()
        self._audio.start()
        logger.info("playback.session.playing", window=len(self._cache))
        return session

    async def pause(self) -> bool:
        session = self._session
        if session is None or session.status is not SessionStatus.PLAYING:
            logger.info("playback.pause.ignored", state=self.state.value)
            return False
        session.status = SessionStatus.PAUSED
        assert self._sequencer is not None and self._audio is not None
        self._sequencer.pause()
        await self._audio.pause()
        logger.info("playback.session.paused")
        return True

    async def resume(self) -> bool:
        session = self._session
        if session is None or session.status is not SessionStatus.PAUSED:
            logger.info("playback.resume.ignored", state=self.state.value)
            return False
        session.status = SessionStatus.PLAYING
        assert self._sequencer is not None and self._audio is not None
        self._sequencer.resume()
        await self._audio.resume()
        logger.info("playback.session.resumed")
        return True

    async def stop(self, reason: EndReason = EndReason.STOPPED) -> PlaybackSession | None:
        """Tear the session down; repeated calls wait for the first one."""

        session = self._session
        if session is None or session.status is SessionStatus.TERMINATED:
            return session
        if self._stopping is not None:
            await asyncio.shield(self._stopping)
            return session
        self._stopping = asyncio.get_running_loop().create_future()
        try:
            await self._shutdown(session, reason)
        finally:
            self._stopping.set_result(None)
        return session

    async def advance(self) -> TickOutcome:
        """Show the next item now; the cadence timer restarts from it."""

        if self.state not in (SessionStatus.PLAYING, SessionStatus.PAUSED):
            logger.info("playback.advance.ignored", state=self.state.value)
            return TickOutcome.CANCELLED
        assert self._sequencer is not None
        outcome = await self._sequencer.step()
        logger.info("playback.session.advanced", outcome=outcome.value)
        return outcome

    async def set_cadence(self, cadence_ms: int) -> bool:
        """Change the display interval of the running session."""

        if cadence_ms <= 0:
            raise ConfigurationError("cadence must be a positive number of milliseconds")
        if self.state not in (SessionStatus.PLAYING, SessionStatus.PAUSED):
            return False
        assert self._sequencer is not None
        await self._sequencer.set_cadence(cadence_ms)
        return True

    async def next_track(self) -> bool:
        return await self._skip_track(1)

    async def previous_track(self) -> bool:
        return await self._skip_track(-1)

    async def _skip_track(self, offset: int) -> bool:
        if self.state not in (SessionStatus.PLAYING, SessionStatus.PAUSED):
            return False
        assert self._audio is not None
        return await self._audio.skip(offset)

    async def restore_wake_lock(self) -> bool:
        """Re-request the wake lock after the platform dropped it."""

        if self.state not in (SessionStatus.PLAYING, SessionStatus.PAUSED):
            return False
        assert self._guard is not None
        return await self._guard.refresh(ResourceKind.WAKE_LOCK)

    async def wait_terminated(self) -> None:
        await self._terminated.wait()

    async def aclose(self) -> None:
        await self.stop()
        for task in list(self._background):
            await task
        await self._source.aclose()

    def status(self) -> dict[str, Any]:
        session = self._session
        snapshot: dict[str, Any] = {
            "state": self.state.value,
            "session_id": str(session.id) if session else None,
            "created_at": session.created_at.isoformat() if session else None,
            "ended_at": session.ended_at.isoformat() if session and session.ended_at else None,
            "end_reason": session.end_reason.value if session and session.end_reason else None,
            "displayed_count": session.displayed_count if session else 0,
            "cadence_ms": session.config.cadence_ms if session else None,
            "cache": self._cache.stats() if self._cache else None,
            "audio": None,
            "leases": {},
        }
        if self._audio is not None:
            playlist = self._audio.playlist
            snapshot["audio"] = {
                "state": playlist.state.value,
                "track": playlist.current,
                "index": playlist.index,
                "tracks": len(playlist.tracks),
                "muted": playlist.muted,
            }
        if self._guard is not None:
            snapshot["leases"] = {
                kind.value: {"acquired": lease.acquired, "released": lease.released}
                for kind, lease in self._guard.leases.items()
            }
        return snapshot

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _wire(self, session: PlaybackSession, token: CancellationToken) -> None:
        config = session.config
        self._session = session
        self._token = token
        self._stopping = None
        self._terminated = asyncio.Event()
        self._guard = ResourceGuard(self._presentation, token=token)
        self._cache = PrefetchCache(self._source, capacity=self._window_size)
        self._audio = AudioSynchronizer(
            self._audio_backend,
            tracks=config.selected_music,
            shuffle=config.randomize_music,
            mute_during_video=config.mute_music_during_video,
            token=token,
            rng=self._rng,
        )
        self._sequencer = MediaSequencer(
            session=session,
            source=self._source,
            cache=self._cache,
            bus=self.bus,
            token=token,
            on_exhausted=self._handle_exhausted,
            sleep=self._sleep,
            retry_attempts=self._retry_attempts,
            retry_backoff_seconds=self._retry_backoff_seconds,
        )
        self._unsubscribe = self.bus.subscribe(self._audio.on_event)

    def _handle_exhausted(self) -> None:
        task = asyncio.create_task(self.stop(EndReason.EXHAUSTED))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _abort(self, session: PlaybackSession, error: TerminalError) -> None:
        logger.error("playback.session.aborted", error=str(error))
        if self._stopping is not None:
            await asyncio.shield(self._stopping)
            return
        self._stopping = asyncio.get_running_loop().create_future()
        try:
            await self._shutdown(session, EndReason.TERMINAL_ERROR, error=error)
        finally:
            self._stopping.set_result(None)

    async def _shutdown(
        self,
        session: PlaybackSession,
        reason: EndReason,
        *,
        error: Exception | None = None,
    ) -> None:
        session.status = SessionStatus.TERMINATING
        self._token.cancel(reason.value)
        assert self._sequencer is not None and self._audio is not None
        assert self._guard is not None and self._cache is not None
        try:
            await self._teardown_step("sequencer", self._sequencer.cancel)
            await self._teardown_step("audio", self._audio.stop)
        finally:
            released = await self._guard.release_all()
            await self._teardown_step("cache", self._cache.close)
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            session.ended_at = self._clock()
            session.end_reason = reason
            session.status = SessionStatus.TERMINATED

        try:
            if error is not None:
                await self.bus.emit(
                    PlaybackEventType.ERROR,
                    session_id=session.id,
                    payload={"error": error.__class__.__name__, "message": str(error)},
                )
            await self.bus.emit(
                PlaybackEventType.SESSION_ENDED,
                session_id=session.id,
                payload={
                    "reason": reason.value,
                    "displayed_count": session.displayed_count,
                    "released": [kind.value for kind in released],
                },
            )
        finally:
            self._terminated.set()
            logger.info(
                "playback.session.terminated",
                reason=reason.value,
                displayed=session.displayed_count,
            )
            unbind_session()

    async def _teardown_step(self, name: str, step: Callable[[], Awaitable[Any]]) -> None:
        try:
            await step()
        except Exception:
            logger.exception("playback.teardown.failed", component=name)


__all__ = ["SessionController", "validate_selection"]
