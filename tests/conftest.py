from __future__ import annotations

from typing import Any, Callable

import pytest

from src.slideshow.domain.models import PlaybackEvent
from src.slideshow.engine.controller import SessionController
from src.slideshow.engine.events import PlaybackEventBus
from tests.mocks.playback import (
    FakeClock,
    FakeSleep,
    InMemorySource,
    RecordingAudioBackend,
    RecordingPresentation,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> InMemorySource:
    return InMemorySource(["A/a1.jpg", "A/a2.jpg", "A/a3.jpg"])


@pytest.fixture
def presentation() -> RecordingPresentation:
    return RecordingPresentation()


@pytest.fixture
def audio_backend() -> RecordingAudioBackend:
    return RecordingAudioBackend()


@pytest.fixture
def events() -> list[PlaybackEvent]:
    return []


@pytest.fixture
def bus(clock: FakeClock, events: list[PlaybackEvent]) -> PlaybackEventBus:
    event_bus = PlaybackEventBus(clock=clock)
    event_bus.subscribe(events.append)
    return event_bus


@pytest.fixture
def make_controller(
    source: InMemorySource,
    presentation: RecordingPresentation,
    audio_backend: RecordingAudioBackend,
    bus: PlaybackEventBus,
    clock: FakeClock,
) -> Callable[..., SessionController]:
    def _factory(**overrides: Any) -> SessionController:
        options: dict[str, Any] = {
            "source": source,
            "presentation": presentation,
            "audio_backend": audio_backend,
            "bus": bus,
            "clock": clock,
            "sleep": FakeSleep(clock),
            "retry_backoff_seconds": 0.0,
        }
        options.update(overrides)
        return SessionController(**options)

    return _factory
