"""Playback engine components composed by :class:`SessionController`."""

from .audio import AudioSynchronizer
from .cancellation import CancellationToken
from .controller import SessionController, validate_selection
from .events import EventHistory, PlaybackEventBus
from .prefetch import DEFAULT_WINDOW_SIZE, PrefetchCache
from .resources import ResourceGuard
from .sequencer import MediaSequencer, TickOutcome

__all__ = [
    "AudioSynchronizer",
    "CancellationToken",
    "DEFAULT_WINDOW_SIZE",
    "EventHistory",
    "MediaSequencer",
    "PlaybackEventBus",
    "PrefetchCache",
    "ResourceGuard",
    "SessionController",
    "TickOutcome",
    "validate_selection",
]
