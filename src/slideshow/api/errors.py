"""Reusable error primitives for API exception handling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ..exceptions import ConfigurationError, PlaybackError, TerminalError


@dataclass(slots=True)
class ApiError(Exception):
    """Structured application-level error for HTTP handlers."""

    status_code: int
    code: str
    message: str
    headers: Mapping[str, str] | None = None

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content={"error": {"code": self.code, "message": self.message}},
            headers=dict(self.headers or {}),
        )


async def api_error_handler(_: Request, exc: ApiError) -> JSONResponse:
    """Convert :class:`ApiError` exceptions into JSON payloads."""

    return exc.to_response()


def playback_error(exc: PlaybackError) -> ApiError:
    """Map an engine error raised by ``start`` onto an HTTP error."""

    if isinstance(exc, ConfigurationError):
        return ApiError(status.HTTP_400_BAD_REQUEST, "invalid_selection", str(exc))
    if isinstance(exc, TerminalError):
        return ApiError(status.HTTP_502_BAD_GATEWAY, "source_unavailable", str(exc))
    return ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "playback_failed", str(exc))


__all__ = ["ApiError", "api_error_handler", "playback_error"]
