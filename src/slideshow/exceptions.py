"""Domain level exceptions for the playback engine."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import httpx

__all__ = [
    "PlaybackError",
    "ConfigurationError",
    "FetchError",
    "SourceUnavailableError",
    "ResourceAcquisitionError",
    "TerminalError",
    "handle_http_errors",
]


class PlaybackError(Exception):
    """Base class for playback engine errors."""


class ConfigurationError(PlaybackError):
    """Raised before start when the selection cannot produce a session."""


class FetchError(PlaybackError):
    """Raised when a single media item or track could not be retrieved."""

    def __init__(self, message: str, *, identifier: str | None = None) -> None:
        super().__init__(message)
        self.identifier = identifier


class SourceUnavailableError(FetchError):
    """Raised when the media source cannot be reached at all."""


class ResourceAcquisitionError(PlaybackError):
    """Raised when a device resource is denied or unsupported."""


class TerminalError(PlaybackError):
    """Raised when a session has to abort during initialization."""


@contextmanager
def handle_http_errors(*, identifier: str | None = None, action: str) -> Iterator[None]:
    """Translate ``httpx`` failures into :class:`FetchError` subclasses."""

    try:
        yield
    except httpx.HTTPStatusError as exc:
        raise FetchError(
            f"{action} failed with status {exc.response.status_code}",
            identifier=identifier,
        ) from exc
    except httpx.TransportError as exc:
        raise SourceUnavailableError(
            f"{action} failed: {exc.__class__.__name__}",
            identifier=identifier,
        ) from exc
