"""Media sources consumed by the playback engine."""

from .base import MediaSource
from .folder_source import FolderMediaSource
from .http_source import HttpMediaSource

__all__ = ["FolderMediaSource", "HttpMediaSource", "MediaSource"]
