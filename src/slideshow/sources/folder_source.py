"""Local filesystem media source.

Reproduces the gallery server's playback queue so the engine can run without
a remote gallery: images are grouped by their parent folder, folders follow
the selection order with the start folder first, images inside a folder are
sorted or shuffled, and ``shuffle_all`` shuffles everything at once. Once
every image was shown the queue restarts and ``cycle_complete`` is reported.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import random
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from ..domain.models import VIDEO_EXTENSIONS, FetchedMedia, NextItem, SelectionConfig
from ..exceptions import FetchError, SourceUnavailableError
from .base import MediaSource

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".webp"})
MEDIA_EXTENSIONS = IMAGE_EXTENSIONS | VIDEO_EXTENSIONS


@dataclass(slots=True)
class _QueueState:
    params: dict | None = None
    queue: list[str] | None = None
    shown: set[str] = field(default_factory=set)
    all_items: list[str] | None = None
    last_next: tuple[int, NextItem] | None = None


@dataclass(slots=True)
class FolderMediaSource(MediaSource):
    """Serve media and music from directories on the local disk."""

    root: Path
    music_root: Path | None = None
    rng: random.Random = field(default_factory=random.Random)
    log: logging.Logger = field(default_factory=lambda: logger)
    _state: _QueueState = field(default_factory=_QueueState, init=False)

    async def reset_session(self) -> None:
        self._state = _QueueState()
        self.log.info("source.folder.reset", extra={"root": str(self.root)})

    async def list(self, selection: SelectionConfig) -> Sequence[str]:
        state = self._state
        params = selection.request_params()
        if state.params != params:
            self._state = state = _QueueState(params=params)
        if not state.queue:
            generated = await asyncio.to_thread(self.generate_order, selection)
            state.queue = list(generated)
            state.all_items = list(generated)
            state.shown = set()
        return list(state.queue)

    async def next(self, selection: SelectionConfig, *, sequence: int) -> NextItem:
        state = self._state
        if state.last_next is not None and state.last_next[0] == sequence:
            return state.last_next[1]

        cycle_complete = False
        if not state.queue and state.shown:
            if state.all_items is None:
                state.all_items = await asyncio.to_thread(self.generate_order, selection)
            state.queue = [item for item in state.all_items if item not in state.shown]
            if not state.queue:
                self.log.info(
                    "source.folder.cycle_complete",
                    extra={"shown": len(state.shown)},
                )
                state.shown.clear()
                state.queue = list(state.all_items)
                cycle_complete = True

        if not state.queue:
            item = NextItem(identifier=None, has_more=False, cycle_complete=True)
            state.last_next = (sequence, item)
            return item

        identifier = state.queue.pop(0)
        state.shown.add(identifier)
        total = len(state.all_items or ())
        item = NextItem(
            identifier=identifier,
            has_more=bool(state.queue),
            remaining=len(state.queue),
            total_shown=len(state.shown),
            total=total,
            cycle_complete=cycle_complete,
        )
        state.last_next = (sequence, item)
        return item

    async def fetch(self, identifier: str) -> FetchedMedia:
        return await self._read(self.root, identifier)

    async def fetch_track(self, track: str) -> FetchedMedia:
        return await self._read(self.music_root or self.root / "music", track)

    def generate_order(self, selection: SelectionConfig) -> list[str]:
        """Build the display order for ``selection`` from the files on disk."""

        if not self.root.is_dir():
            raise SourceUnavailableError(f"media root {self.root} is not a directory")

        files = [
            path
            for path in self.root.rglob("*")
            if path.is_file()
            and not path.name.startswith("._")
            and path.suffix.lower() in MEDIA_EXTENSIONS
        ]
        selected = list(selection.selected_folders)
        if selected:
            wanted = {self.root / folder for folder in selected}
            files = [path for path in files if path.parent in wanted]

        if selection.shuffle_all:
            result = [self._relative(path) for path in files]
            self.rng.shuffle(result)
            return result

        by_folder: dict[Path, list[Path]] = defaultdict(list)
        for path in files:
            by_folder[path.parent].append(path)

        if selected:
            folders = [self.root / folder for folder in selected if self.root / folder in by_folder]
        else:
            folders = sorted(by_folder, key=str)

        if selection.start_folder:
            start = self.root / selection.start_folder
            folders = [folder for folder in folders if folder != start]
            if not selected:
                self.rng.shuffle(folders)
            if start in by_folder:
                folders.insert(0, start)
        elif not selected:
            self.rng.shuffle(folders)

        result: list[str] = []
        for folder in folders:
            names = [self._relative(path) for path in by_folder[folder]]
            if selection.randomize_images:
                self.rng.shuffle(names)
            else:
                names.sort()
            result.extend(names)
        return result

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    async def _read(self, base: Path, identifier: str) -> FetchedMedia:
        target = (base / identifier).resolve()
        if not target.is_relative_to(base.resolve()):
            raise FetchError(f"{identifier} escapes the media root", identifier=identifier)
        try:
            payload = await asyncio.to_thread(target.read_bytes)
        except OSError as exc:
            raise FetchError(f"cannot read {identifier}: {exc}", identifier=identifier) from exc
        content_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
        return FetchedMedia(payload=payload, content_type=content_type)


__all__ = ["FolderMediaSource", "IMAGE_EXTENSIONS", "MEDIA_EXTENSIONS"]
