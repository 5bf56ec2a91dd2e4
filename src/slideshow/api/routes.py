"""Routes controlling the playback session."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status

from ..core.config import EngineSettings
from ..engine.controller import SessionController
from ..engine.events import EventHistory
from ..exceptions import PlaybackError
from .errors import ApiError, playback_error
from .schemas import StartPlaybackRequest, UpdateCadenceRequest

router = APIRouter(prefix="/api/playback", tags=["playback"])


def get_controller(request: Request) -> SessionController:
    try:
        return request.app.state.playback_controller  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("SessionController is not configured") from exc


def get_settings(request: Request) -> EngineSettings:
    return getattr(request.app.state, "settings", None) or EngineSettings.build_default()


def get_history(request: Request) -> EventHistory:
    history = getattr(request.app.state, "event_history", None)
    if history is None:
        raise ApiError(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "events_unavailable",
            "Event history is not enabled.",
        )
    return history


@router.post("/start", status_code=status.HTTP_201_CREATED)
async def start_playback(
    payload: StartPlaybackRequest,
    controller: SessionController = Depends(get_controller),
    settings: EngineSettings = Depends(get_settings),
) -> dict[str, Any]:
    """Start a new session, replacing the active one."""

    try:
        await controller.start(payload.to_selection(settings))
    except PlaybackError as exc:
        raise playback_error(exc) from exc
    return controller.status()


@router.post("/pause")
async def pause_playback(
    controller: SessionController = Depends(get_controller),
) -> dict[str, Any]:
    changed = await controller.pause()
    return {"changed": changed, **controller.status()}


@router.post("/resume")
async def resume_playback(
    controller: SessionController = Depends(get_controller),
) -> dict[str, Any]:
    changed = await controller.resume()
    return {"changed": changed, **controller.status()}


@router.post("/stop")
async def stop_playback(
    controller: SessionController = Depends(get_controller),
) -> dict[str, Any]:
    """Stop the session; stopping twice is harmless."""

    await controller.stop()
    return controller.status()


@router.post("/advance")
async def advance_playback(
    controller: SessionController = Depends(get_controller),
) -> dict[str, Any]:
    """Show the next item now instead of waiting for the timer."""

    outcome = await controller.advance()
    return {"outcome": outcome.value, **controller.status()}


@router.post("/cadence")
async def update_cadence(
    payload: UpdateCadenceRequest,
    controller: SessionController = Depends(get_controller),
) -> dict[str, Any]:
    try:
        changed = await controller.set_cadence(payload.cadence_ms)
    except PlaybackError as exc:
        raise playback_error(exc) from exc
    return {"changed": changed, **controller.status()}


@router.post("/audio/next")
async def next_track(
    controller: SessionController = Depends(get_controller),
) -> dict[str, Any]:
    changed = await controller.next_track()
    return {"changed": changed, **controller.status()}


@router.post("/audio/previous")
async def previous_track(
    controller: SessionController = Depends(get_controller),
) -> dict[str, Any]:
    changed = await controller.previous_track()
    return {"changed": changed, **controller.status()}


@router.post("/wake-lock")
async def restore_wake_lock(
    controller: SessionController = Depends(get_controller),
) -> dict[str, Any]:
    """Re-request the wake lock after the display was hidden and shown again."""

    held = await controller.restore_wake_lock()
    return {"held": held, **controller.status()}


@router.get("/status")
def playback_status(
    controller: SessionController = Depends(get_controller),
) -> dict[str, Any]:
    return controller.status()


@router.get("/events")
def playback_events(
    limit: int = Query(50, ge=1, le=1000),
    history: EventHistory = Depends(get_history),
) -> dict[str, Any]:
    """Return the most recent playback events, oldest first."""

    return {"events": [event.as_dict() for event in history.recent(limit)]}


__all__ = ["router"]
