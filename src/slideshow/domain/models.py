"""Domain models for the slideshow playback engine.

The module exposes lightweight dataclasses and string enums describing one
playback session: the selection it was started with, the media items staged
in the lookahead window, the audio playlist and the device resource leases.
Only structural fields and trivial helpers live here; the state machines are
implemented by the engine components that own each object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Mapping, Sequence
from uuid import UUID, uuid4

from ..exceptions import FetchError

VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v", ".wmv"})


class SessionStatus(str, Enum):
    """Lifecycle states of a :class:`PlaybackSession`.

    ``idle`` → ``initializing`` → ``playing`` ⇄ ``paused`` → ``terminating``
    → ``terminated``. ``terminated`` is final; a new session object is created
    for every ``start`` call.
    """

    IDLE = "idle"
    INITIALIZING = "initializing"
    PLAYING = "playing"
    PAUSED = "paused"
    TERMINATING = "terminating"
    TERMINATED = "terminated"

    @property
    def is_active(self) -> bool:
        return self not in (SessionStatus.IDLE, SessionStatus.TERMINATED)


class FetchStatus(str, Enum):
    PENDING = "pending"
    LOADED = "loaded"
    FAILED = "failed"


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class AudioState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


class ResourceKind(str, Enum):
    """Exclusive device capabilities a session may hold."""

    PRESENTATION = "presentation"
    WAKE_LOCK = "wake_lock"


class EndReason(str, Enum):
    STOPPED = "stopped"
    EXHAUSTED = "exhausted"
    TERMINAL_ERROR = "terminal_error"


class PlaybackEventType(str, Enum):
    ITEM_DISPLAYED = "item_displayed"
    SESSION_ENDED = "session_ended"
    ERROR = "error"


def media_kind_for(identifier: str) -> MediaKind:
    """Classify ``identifier`` by its file extension."""

    suffix = PurePosixPath(identifier).suffix.lower()
    return MediaKind.VIDEO if suffix in VIDEO_EXTENSIONS else MediaKind.IMAGE


@dataclass(frozen=True, slots=True)
class SelectionConfig:
    """Immutable selection the session was started with.

    Mirrors the slideshow configuration stored with calendar events:
    folders, optional start folder, ordering flags, cadence and music.
    """

    selected_folders: tuple[str, ...]
    start_folder: str | None = None
    randomize_images: bool = True
    shuffle_all: bool = False
    cadence_ms: int = 5_000
    selected_music: tuple[str, ...] = ()
    randomize_music: bool = False
    mute_music_during_video: bool = True
    loop_playback: bool = False

    @property
    def cadence_seconds(self) -> float:
        return self.cadence_ms / 1000.0

    def request_params(self) -> dict[str, Any]:
        """Return the body understood by the gallery ``/api/images/*`` endpoints."""

        return {
            "selectedFolders": list(self.selected_folders),
            "startFolder": self.start_folder or "",
            "randomize": self.randomize_images,
            "shuffleAll": self.shuffle_all,
        }


@dataclass(slots=True)
class FetchedMedia:
    """Raw bytes returned by a media source."""

    payload: bytes
    content_type: str


@dataclass(slots=True)
class MediaItem:
    """One media entry tracked by the prefetch cache or a direct fetch."""

    identifier: str
    status: FetchStatus = FetchStatus.PENDING
    resource: FetchedMedia | None = None
    error: Exception | None = None

    @property
    def kind(self) -> MediaKind:
        return media_kind_for(self.identifier)

    @property
    def is_video(self) -> bool:
        return self.kind is MediaKind.VIDEO


@dataclass(slots=True)
class NextItem:
    """Pointer advance result in the shape of ``/api/images/next``."""

    identifier: str | None
    has_more: bool = False
    remaining: int = 0
    total_shown: int = 0
    total: int = 0
    cycle_complete: bool = False

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "NextItem":
        """Parse a ``/api/images/next`` body; malformed counters raise :class:`FetchError`."""

        image = data.get("image")
        try:
            return cls(
                identifier=str(image) if image else None,
                has_more=bool(data.get("hasMore", False)),
                remaining=int(data.get("remaining") or 0),
                total_shown=int(data.get("totalShown") or 0),
                total=int(data.get("totalImages") or 0),
                cycle_complete=bool(data.get("cycleComplete", False)),
            )
        except (TypeError, ValueError) as exc:
            raise FetchError(
                f"advance pointer returned a malformed payload: {exc}",
                identifier=str(image) if image else None,
            ) from exc


@dataclass(slots=True)
class AudioPlaylist:
    tracks: list[str]
    shuffle: bool = False
    index: int = 0
    state: AudioState = AudioState.STOPPED
    muted: bool = False

    @property
    def current(self) -> str | None:
        if not self.tracks:
            return None
        return self.tracks[self.index]

    def advance(self, offset: int = 1) -> str | None:
        """Move ``offset`` tracks forward (or back), wrapping around the playlist."""

        if not self.tracks:
            return None
        self.index = (self.index + offset) % len(self.tracks)
        return self.tracks[self.index]


@dataclass(slots=True)
class ResourceLease:
    """Exclusive resource record; ``handle`` is only set while acquired."""

    kind: ResourceKind
    acquired: bool = False
    handle: Any = None
    released: bool = False

    @property
    def held(self) -> bool:
        return self.acquired and not self.released


@dataclass(slots=True)
class PlaybackSession:
    """Context object for one run of the engine, owned by the controller."""

    config: SelectionConfig
    created_at: datetime
    id: UUID = field(default_factory=uuid4)
    status: SessionStatus = SessionStatus.IDLE
    ended_at: datetime | None = None
    end_reason: EndReason | None = None
    displayed_count: int = 0


@dataclass(slots=True)
class PlaybackEvent:
    event: PlaybackEventType
    session_id: UUID
    occurred_at: datetime
    payload: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "event": self.event.value,
            "session_id": str(self.session_id),
            "occurred_at": self.occurred_at.isoformat(),
            "payload": dict(self.payload),
        }


def normalize_tracks(tracks: Sequence[str]) -> list[str]:
    return [str(track) for track in tracks if str(track).strip()]


__all__ = [
    "AudioPlaylist",
    "AudioState",
    "EndReason",
    "FetchStatus",
    "FetchedMedia",
    "MediaItem",
    "MediaKind",
    "NextItem",
    "PlaybackEvent",
    "PlaybackEventType",
    "PlaybackSession",
    "ResourceKind",
    "ResourceLease",
    "SelectionConfig",
    "SessionStatus",
    "VIDEO_EXTENSIONS",
    "media_kind_for",
    "normalize_tracks",
]
