"""Domain models of the slideshow playback engine."""

from .models import (
    AudioPlaylist,
    AudioState,
    EndReason,
    FetchedMedia,
    FetchStatus,
    MediaItem,
    MediaKind,
    NextItem,
    PlaybackEvent,
    PlaybackEventType,
    PlaybackSession,
    ResourceKind,
    ResourceLease,
    SelectionConfig,
    SessionStatus,
    media_kind_for,
)

__all__ = [
    "AudioPlaylist",
    "AudioState",
    "EndReason",
    "FetchedMedia",
    "FetchStatus",
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
    "media_kind_for",
]
