"""Device backends driven by the audio synchronizer and the resource guard."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True)
class AudioHandle:
    """Playable track returned by :meth:`AudioBackend.load`."""

    track: str
    duration_seconds: float | None = None
    size_bytes: int = 0


class AudioBackend(ABC):
    """Audio output used by :class:`~src.slideshow.engine.audio.AudioSynchronizer`."""

    @abstractmethod
    async def load(self, track: str) -> AudioHandle:
        """Load ``track``; raise :class:`FetchError` when it is unplayable."""

    @abstractmethod
    async def play(self, handle: AudioHandle) -> None:
        """Start ``handle`` or resume it when it is the paused track."""

    @abstractmethod
    async def pause(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def set_muted(self, muted: bool) -> None:
        ...

    @abstractmethod
    async def wait_finished(self, handle: AudioHandle) -> None:
        """Return once ``handle`` played to its end or was stopped."""


class ResourceHandle(Protocol):
    async def release(self) -> None:
        ...


class PresentationBackend(ABC):
    """Exclusive display capabilities; each request may be denied."""

    @abstractmethod
    async def request_exclusive_display(self) -> ResourceHandle:
        """Enter full-screen presentation or raise :class:`ResourceAcquisitionError`."""

    @abstractmethod
    async def request_wake_lock(self) -> ResourceHandle:
        """Keep the display awake or raise :class:`ResourceAcquisitionError`."""


__all__ = ["AudioBackend", "AudioHandle", "PresentationBackend", "ResourceHandle"]
