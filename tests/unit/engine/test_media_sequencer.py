from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from src.slideshow.domain.models import (
    PlaybackEvent,
    PlaybackEventType,
    PlaybackSession,
    SessionStatus,
)
from src.slideshow.engine.cancellation import CancellationToken
from src.slideshow.engine.events import PlaybackEventBus
from src.slideshow.engine.prefetch import PrefetchCache
from src.slideshow.engine.sequencer import MediaSequencer, TickOutcome
from tests.helpers.playback import displayed, of_type, selection, wait_until
from tests.mocks.playback import FakeClock, FakeSleep, InMemorySource, SteppedSleep

IDS = ["A/a1.jpg", "A/a2.mp4", "A/a3.jpg"]


def build(
    source: InMemorySource,
    *,
    sleep=None,
    loop_playback: bool = False,
    retry_attempts: int = 3,
    on_exhausted=None,
):
    clock = FakeClock()
    session = PlaybackSession(
        config=selection("A", cadence_ms=5000, loop_playback=loop_playback),
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        status=SessionStatus.PLAYING,
    )
    events: list[PlaybackEvent] = []
    bus = PlaybackEventBus(clock=clock)
    bus.subscribe(events.append)
    token = CancellationToken()
    cache = PrefetchCache(source, capacity=2)
    sequencer = MediaSequencer(
        session=session,
        source=source,
        cache=cache,
        bus=bus,
        token=token,
        on_exhausted=on_exhausted,
        sleep=sleep or FakeSleep(clock),
        retry_attempts=retry_attempts,
        retry_backoff_seconds=0.25,
    )
    return sequencer, cache, token, events, session


@pytest.mark.unit
@pytest.mark.asyncio
async def test_tick_publishes_item_with_metadata() -> None:
    source = InMemorySource(IDS)
    sequencer, cache, _, events, session = build(source)
    await cache.fill(IDS)

    assert await sequencer.tick() is TickOutcome.DISPLAYED
    assert await sequencer.tick() is TickOutcome.DISPLAYED

    assert displayed(events) == IDS[:2]
    first, second = events
    assert first.payload["kind"] == "image"
    assert second.payload["kind"] == "video"
    assert second.payload["content_type"] == "video/mp4"
    assert second.payload["sequence"] == 2
    assert second.payload["total"] == 3
    assert session.displayed_count == 2
    assert cache.current is not None and cache.current.identifier == IDS[1]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_item_is_reported_and_skipped() -> None:
    source = InMemorySource(IDS, failing={IDS[1]})
    sequencer, cache, _, events, _ = build(source)
    await cache.fill(IDS)

    outcomes = [await sequencer.tick() for _ in IDS]

    assert outcomes == [TickOutcome.DISPLAYED, TickOutcome.SKIPPED, TickOutcome.DISPLAYED]
    errors = of_type(events, PlaybackEventType.ERROR)
    assert len(errors) == 1
    assert errors[0].payload["error"] == "FetchError"
    assert errors[0].payload["identifier"] == IDS[1]
    assert displayed(events) == [IDS[0], IDS[2]]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pointer_advance_is_retried_with_the_same_sequence() -> None:
    source = InMemorySource(IDS, next_unavailable=2)
    sleep = FakeSleep()
    sequencer, cache, _, events, _ = build(source, sleep=sleep)
    await cache.fill(IDS)

    assert await sequencer.tick() is TickOutcome.DISPLAYED

    assert source.next_calls == [1, 1, 1]
    assert sleep.calls == [0.25, 0.5]
    assert displayed(events) == [IDS[0]]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unreachable_pointer_advance_skips_the_tick() -> None:
    source = InMemorySource(IDS, next_unavailable=5)
    sequencer, cache, _, events, _ = build(source, retry_attempts=2)
    await cache.fill(IDS)

    assert await sequencer.tick() is TickOutcome.SKIPPED

    errors = of_type(events, PlaybackEventType.ERROR)
    assert [event.payload["exception"] for event in errors] == ["SourceUnavailableError"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cycle_complete_exhausts_without_loop() -> None:
    source = InMemorySource(IDS)
    sequencer, cache, _, events, _ = build(source)
    await cache.fill(IDS)

    outcomes = [await sequencer.tick() for _ in range(4)]

    assert outcomes[-1] is TickOutcome.EXHAUSTED
    assert displayed(events) == IDS


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cycle_complete_restarts_with_loop_playback() -> None:
    source = InMemorySource(IDS)
    sequencer, cache, _, events, _ = build(source, loop_playback=True)
    await cache.fill(IDS)

    outcomes = [await sequencer.tick() for _ in range(5)]

    assert TickOutcome.EXHAUSTED not in outcomes
    assert displayed(events) == IDS + IDS[:2]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancelled_token_prevents_tick() -> None:
    source = InMemorySource(IDS)
    sequencer, cache, token, events, _ = build(source)
    await cache.fill(IDS)
    token.cancel()

    assert await sequencer.tick() is TickOutcome.CANCELLED
    assert events == []
    assert source.next_calls == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_completion_after_cancel_is_dropped() -> None:
    source = InMemorySource(IDS)
    source.fetch_gate = asyncio.Event()
    sequencer, _, token, events, session = build(source)

    tick = asyncio.create_task(sequencer.tick())
    await wait_until(lambda: source.fetch_calls[IDS[0]] == 1)
    token.cancel()
    source.fetch_gate.set()

    assert await tick is TickOutcome.CANCELLED
    assert events == []
    assert session.displayed_count == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_waits_one_cadence_between_ticks_and_stops_on_exhaustion() -> None:
    source = InMemorySource(IDS)
    exhausted: list[bool] = []
    sleep = FakeSleep()
    sequencer, cache, _, events, _ = build(
        source, sleep=sleep, on_exhausted=lambda: exhausted.append(True)
    )
    await cache.fill(IDS)

    task = sequencer.start()
    await asyncio.wait_for(task, timeout=1)

    assert displayed(events) == IDS
    assert sleep.calls == [5.0, 5.0, 5.0]
    assert exhausted == [True]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pause_holds_the_timer_until_resume() -> None:
    source = InMemorySource(IDS)
    sleep = SteppedSleep()
    sequencer, cache, _, events, _ = build(source, sleep=sleep)
    await cache.fill(IDS)

    sequencer.start()
    await wait_until(lambda: sleep.pending == 1)
    sequencer.pause()
    sleep.release()
    await asyncio.sleep(0.01)
    assert displayed(events) == [IDS[0]]

    sequencer.resume()
    await wait_until(lambda: sleep.pending == 1)
    assert displayed(events) == [IDS[0]]
    sleep.release()
    await wait_until(lambda: len(displayed(events)) == 2)

    await sequencer.cancel()
    assert not sequencer.running


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_stops_the_timer_task() -> None:
    source = InMemorySource(IDS)
    sleep = SteppedSleep()
    sequencer, cache, _, events, _ = build(source, sleep=sleep)
    await cache.fill(IDS)

    sequencer.start()
    await wait_until(lambda: sleep.pending == 1)
    await sequencer.cancel()
    sleep.release()
    await asyncio.sleep(0.01)

    assert displayed(events) == [IDS[0]]
    assert not sequencer.running


class GarbledPointerSource(InMemorySource):
    """Source whose pointer advance blows up for the listed sequence numbers."""

    def __init__(self, identifiers, *, garbled=()) -> None:
        super().__init__(identifiers)
        self.garbled = set(garbled)

    async def next(self, selection, *, sequence: int):
        if sequence in self.garbled:
            self.next_calls.append(sequence)
            raise ValueError("invalid literal for int() with base 10: 'n/a'")
        return await super().next(selection, sequence=sequence)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unexpected_tick_failure_is_reported_and_skipped() -> None:
    source = GarbledPointerSource(IDS, garbled={1})
    sequencer, cache, _, events, _ = build(source)
    await cache.fill(IDS)

    assert await sequencer.tick() is TickOutcome.SKIPPED
    assert await sequencer.tick() is TickOutcome.DISPLAYED

    errors = of_type(events, PlaybackEventType.ERROR)
    assert len(errors) == 1
    assert errors[0].payload["error"] == "UnexpectedError"
    assert errors[0].payload["exception"] == "ValueError"
    assert errors[0].payload["sequence"] == 1
    assert displayed(events) == [IDS[0]]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_keeps_ticking_after_an_unexpected_failure() -> None:
    source = GarbledPointerSource(IDS, garbled={2})
    sequencer, cache, _, events, _ = build(source)
    await cache.fill(IDS)

    task = sequencer.start()
    await asyncio.wait_for(task, timeout=1)

    assert task.exception() is None
    assert displayed(events) == IDS
    assert len(of_type(events, PlaybackEventType.ERROR)) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_step_displays_now_and_restarts_the_timer() -> None:
    source = InMemorySource(IDS)
    sleep = SteppedSleep()
    sequencer, cache, _, events, _ = build(source, sleep=sleep)
    await cache.fill(IDS)
    sequencer.start()
    await wait_until(lambda: sleep.pending == 1)

    assert await sequencer.step() is TickOutcome.DISPLAYED
    assert displayed(events) == IDS[:2]
    await wait_until(lambda: sleep.pending == 1)
    assert len(sleep.calls) == 2

    sleep.release()
    await wait_until(lambda: len(displayed(events)) == 3)
    assert displayed(events) == IDS
    assert [event.payload["sequence"] for event in events] == [1, 2, 3]

    await sequencer.cancel()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_step_without_a_running_timer_only_ticks() -> None:
    source = InMemorySource(IDS)
    sequencer, cache, _, events, _ = build(source)
    await cache.fill(IDS)

    assert await sequencer.step() is TickOutcome.DISPLAYED

    assert displayed(events) == [IDS[0]]
    assert not sequencer.running


@pytest.mark.unit
@pytest.mark.asyncio
async def test_set_cadence_restarts_the_timer_with_the_new_interval() -> None:
    source = InMemorySource(IDS)
    sleep = SteppedSleep()
    sequencer, cache, _, events, session = build(source, sleep=sleep)
    await cache.fill(IDS)
    sequencer.start()
    await wait_until(lambda: sleep.pending == 1)

    await sequencer.set_cadence(1000)
    await wait_until(lambda: sleep.pending == 1)

    assert session.config.cadence_ms == 1000
    assert sleep.calls == [5.0, 1.0]
    assert displayed(events) == [IDS[0]]
    sleep.release()
    await wait_until(lambda: len(displayed(events)) == 2)

    await sequencer.cancel()
