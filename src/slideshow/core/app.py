"""FastAPI application factory wiring the playback engine.

The controller, the event history and the settings are stored on the
application state; routers resolve them from ``request.app.state``. The
lifespan stops a running session and closes the media source on shutdown.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, AsyncIterator

from fastapi import FastAPI

from ..api.errors import ApiError, api_error_handler
from ..api.routes import router as playback_router
from ..backends.base import AudioBackend, PresentationBackend
from ..backends.headless import HeadlessAudioBackend, HeadlessPresentationBackend
from ..engine.controller import SessionController
from ..engine.events import EventHistory, PlaybackEventBus
from ..logging import configure_logging
from ..sources.base import MediaSource
from ..sources.folder_source import FolderMediaSource
from ..sources.http_source import HttpMediaSource
from .config import EngineSettings

logger = logging.getLogger(__name__)


def build_source(settings: EngineSettings) -> MediaSource:
    """Instantiate the media source selected by ``source_kind``."""

    if settings.source_kind == "folder":
        return FolderMediaSource(settings.media_root, music_root=settings.music_root)
    return HttpMediaSource(
        base_url=settings.media_base_url,
        timeout_seconds=settings.request_timeout_seconds,
    )


def build_controller(
    settings: EngineSettings,
    *,
    source: MediaSource | None = None,
    presentation: PresentationBackend | None = None,
    audio_backend: AudioBackend | None = None,
    bus: PlaybackEventBus | None = None,
) -> SessionController:
    media_source = source or build_source(settings)
    return SessionController(
        source=media_source,
        presentation=presentation or HeadlessPresentationBackend(),
        audio_backend=audio_backend
        or HeadlessAudioBackend(media_source, track_seconds=settings.headless_track_seconds),
        bus=bus,
        window_size=settings.prefetch_window_size,
        retry_attempts=settings.next_retry_attempts,
        retry_backoff_seconds=settings.next_retry_backoff_seconds,
    )


def create_app(extra_state: dict[str, Any] | None = None) -> FastAPI:
    """Initialise the FastAPI application.

    ``extra_state`` may carry ``settings``, ``source``, ``presentation`` and
    ``audio_backend`` overrides; remaining keys are copied onto ``app.state``.
    """

    extra_state = dict(extra_state or {})
    settings: EngineSettings = extra_state.pop("settings", None) or EngineSettings.build_default()
    configure_logging(settings.log_level)

    bus = PlaybackEventBus()
    history = EventHistory(settings.event_history_size)
    bus.subscribe(history)
    controller = build_controller(
        settings,
        source=extra_state.pop("source", None),
        presentation=extra_state.pop("presentation", None),
        audio_backend=extra_state.pop("audio_backend", None),
        bus=bus,
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("playback.app.started", extra={"source_kind": settings.source_kind})
        try:
            yield
        finally:
            await app.state.playback_controller.aclose()
            logger.info("playback.app.stopped")

    app = FastAPI(title="Slideshow Playback", lifespan=lifespan)
    app.state.settings = settings
    app.state.playback_controller = controller
    app.state.event_history = history
    for key, value in extra_state.items():
        setattr(app.state, key, value)

    app.add_exception_handler(ApiError, api_error_handler)  # type: ignore[arg-type]
    app.include_router(playback_router)
    return app


__all__ = ["build_controller", "build_source", "create_app"]
