"""Abstract media source definition."""

from abc import ABC, abstractmethod
from typing import Sequence

from ..domain.models import FetchedMedia, NextItem, SelectionConfig


class MediaSource(ABC):
    """Contract of the remote gallery consumed by the playback engine.

    ``next`` is an idempotent pointer advance: calling it again with the same
    ``sequence`` returns the same item instead of skipping one.
    """

    @abstractmethod
    async def reset_session(self) -> None:
        """Forget any previous playback pointer."""

    @abstractmethod
    async def list(self, selection: SelectionConfig) -> Sequence[str]:
        """Return the ordered identifiers for ``selection``."""

    @abstractmethod
    async def next(self, selection: SelectionConfig, *, sequence: int) -> NextItem:
        """Advance the pointer to position ``sequence`` and return that item."""

    @abstractmethod
    async def fetch(self, identifier: str) -> FetchedMedia:
        """Return the bytes of one media item."""

    @abstractmethod
    async def fetch_track(self, track: str) -> FetchedMedia:
        """Return the bytes of one music track."""

    async def aclose(self) -> None:
        """Release network resources held by the source."""
