"""Engine configuration for the slideshow service.

Defaults mirror the gallery front-end: a lookahead window of 20 items, a 5
second cadence and media served by the gallery REST API. Values are read
from ``SLIDESHOW_*`` environment variables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_media_root() -> Path:
    return Path("./var/media")


class EngineSettings(BaseSettings):
    """Pydantic settings container for the playback engine."""

    model_config = SettingsConfigDict(
        env_prefix="SLIDESHOW_",
        env_file=(".env", ".env.local"),
        extra="ignore",
    )

    source_kind: Literal["http", "folder"] = Field(
        default="http",
        description="Media source implementation used by the session controller.",
    )
    media_base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the gallery server exposing /api/images and /music.",
    )
    media_root: Path = Field(
        default_factory=_default_media_root,
        description="Image root scanned by the folder source.",
    )
    music_root: Path | None = Field(
        default=None,
        description="Music root for the folder source; defaults to <media_root>/music.",
    )
    prefetch_window_size: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Capacity N of the lookahead window.",
    )
    default_cadence_ms: int = Field(
        default=5_000,
        ge=1,
        description="Cadence used when a start request omits cadenceMs.",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        ge=0.1,
        description="Timeout applied to media source HTTP requests in seconds.",
    )
    next_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts for the idempotent pointer advance before a tick is skipped.",
    )
    next_retry_backoff_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Base delay between pointer advance attempts in seconds.",
    )
    event_history_size: int = Field(
        default=200,
        ge=1,
        description="Number of playback events kept for GET /api/playback/events.",
    )
    headless_track_seconds: float = Field(
        default=180.0,
        gt=0.0,
        description="Simulated track length used by the headless audio backend.",
    )
    log_level: str = Field(default="INFO")

    @classmethod
    def build_default(cls) -> "EngineSettings":
        return cls()


__all__ = ["EngineSettings"]
