"""Slideshow playback engine.

The engine drives a timed presentation of remote media: it prefetches a
bounded lookahead window, plays an independent music playlist and holds the
exclusive display resources for the lifetime of a session.
"""

from .engine import SessionController

__all__ = ["SessionController"]
