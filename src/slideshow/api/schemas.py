"""Request models of the playback control API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.config import EngineSettings
from ..domain.models import SelectionConfig


class StartPlaybackRequest(BaseModel):
    """Slideshow selection as stored with a calendar event."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    selected_folders: List[str] = Field(
        default_factory=list, alias="selectedFolders", description="Folders to show."
    )
    start_folder: Optional[str] = Field(
        default=None, alias="startFolder", description="Folder shown first."
    )
    randomize_images: bool = Field(default=True, alias="randomizeImages")
    shuffle_all: bool = Field(
        default=False,
        alias="shuffleAll",
        description="Shuffle across folders instead of folder by folder.",
    )
    cadence_ms: Optional[int] = Field(
        default=None,
        alias="cadenceMs",
        description="Display interval per item; server default when omitted.",
    )
    selected_music: List[str] = Field(default_factory=list, alias="selectedMusic")
    randomize_music: bool = Field(default=False, alias="randomizeMusic")
    mute_music_during_video: bool = Field(default=True, alias="muteMusicDuringVideo")
    loop_playback: bool = Field(default=False, alias="loopPlayback")

    def to_selection(self, settings: EngineSettings) -> SelectionConfig:
        # Duplicates are dropped while keeping the first occurrence.
        folders = tuple(dict.fromkeys(folder.strip() for folder in self.selected_folders))
        return SelectionConfig(
            selected_folders=tuple(folder for folder in folders if folder),
            start_folder=self.start_folder or None,
            randomize_images=self.randomize_images,
            shuffle_all=self.shuffle_all,
            cadence_ms=(
                self.cadence_ms if self.cadence_ms is not None else settings.default_cadence_ms
            ),
            selected_music=tuple(self.selected_music),
            randomize_music=self.randomize_music,
            mute_music_during_video=self.mute_music_during_video,
            loop_playback=self.loop_playback,
        )


class UpdateCadenceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    cadence_ms: int = Field(alias="cadenceMs", description="New display interval per item.")


__all__ = ["StartPlaybackRequest", "UpdateCadenceRequest"]
