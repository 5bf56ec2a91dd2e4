from __future__ import annotations

import time
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from src.slideshow.core.app import create_app
from src.slideshow.core.config import EngineSettings
from tests.mocks.playback import InMemorySource, RecordingAudioBackend, RecordingPresentation

pytestmark = pytest.mark.contract


def build_client(source: InMemorySource | None = None, **state: Any) -> TestClient:
    app = create_app(
        extra_state={
            "settings": EngineSettings(default_cadence_ms=60_000, event_history_size=50),
            "source": source or InMemorySource(["A/a1.jpg", "A/a2.jpg"]),
            "presentation": RecordingPresentation(),
            "audio_backend": RecordingAudioBackend(),
            **state,
        }
    )
    return TestClient(app)


def poll(client: TestClient, predicate: Callable[[list[dict[str, Any]]], bool]) -> list[dict[str, Any]]:
    deadline = time.monotonic() + 2.0
    while True:
        events = client.get("/api/playback/events").json()["events"]
        if predicate(events) or time.monotonic() > deadline:
            return events
        time.sleep(0.01)


def test_status_is_idle_before_start() -> None:
    with build_client() as client:
        response = client.get("/api/playback/status")

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "idle"
    assert body["session_id"] is None


def test_start_returns_playing_session_and_emits_first_item() -> None:
    with build_client() as client:
        response = client.post(
            "/api/playback/start",
            json={"selectedFolders": ["A"], "randomizeImages": False},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["state"] == "playing"
        assert body["session_id"]

        events = poll(client, lambda items: any(e["event"] == "item_displayed" for e in items))
        shown = [e["payload"]["identifier"] for e in events if e["event"] == "item_displayed"]
        assert shown == ["A/a1.jpg"]

        stopped = client.post("/api/playback/stop")
        assert stopped.status_code == 200
        assert stopped.json()["state"] == "terminated"
        assert stopped.json()["end_reason"] == "stopped"

        events = client.get("/api/playback/events").json()["events"]
        assert events[-1]["event"] == "session_ended"
        assert events[-1]["payload"]["reason"] == "stopped"


def test_pause_resume_report_whether_state_changed() -> None:
    with build_client() as client:
        assert client.post("/api/playback/pause").json()["changed"] is False
        client.post("/api/playback/start", json={"selected_folders": ["A"]})

        paused = client.post("/api/playback/pause").json()
        assert paused["changed"] is True
        assert paused["state"] == "paused"

        resumed = client.post("/api/playback/resume").json()
        assert resumed["changed"] is True
        assert resumed["state"] == "playing"

        client.post("/api/playback/stop")


def test_empty_selection_is_a_bad_request() -> None:
    with build_client() as client:
        response = client.post("/api/playback/start", json={"selectedFolders": []})

        assert response.status_code == 400
        assert response.json() == {
            "error": {"code": "invalid_selection", "message": "at least one folder must be selected"}
        }
        assert client.get("/api/playback/status").json()["state"] == "idle"


def test_non_positive_cadence_is_a_bad_request() -> None:
    with build_client() as client:
        response = client.post(
            "/api/playback/start", json={"selectedFolders": ["A"], "cadenceMs": 0}
        )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_selection"


def test_unknown_fields_are_rejected() -> None:
    with build_client() as client:
        response = client.post(
            "/api/playback/start", json={"selectedFolders": ["A"], "speed": "fast"}
        )

    assert response.status_code == 422


def test_empty_listing_is_a_bad_gateway() -> None:
    with build_client(source=InMemorySource([])) as client:
        response = client.post("/api/playback/start", json={"selectedFolders": ["A"]})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "source_unavailable"
        status = client.get("/api/playback/status").json()
        assert status["state"] == "terminated"
        assert status["end_reason"] == "terminal_error"

        events = client.get("/api/playback/events").json()["events"]
        assert [event["event"] for event in events] == ["error", "session_ended"]


def test_stop_twice_is_harmless() -> None:
    with build_client() as client:
        client.post("/api/playback/start", json={"selectedFolders": ["A"]})
        first = client.post("/api/playback/stop")
        second = client.post("/api/playback/stop")

        assert first.status_code == second.status_code == 200
        assert second.json()["state"] == "terminated"
        events = client.get("/api/playback/events").json()["events"]
        assert sum(1 for event in events if event["event"] == "session_ended") == 1


def test_wake_lock_can_be_restored_while_playing() -> None:
    with build_client() as client:
        assert client.post("/api/playback/wake-lock").json()["held"] is False
        client.post("/api/playback/start", json={"selectedFolders": ["A"]})

        body = client.post("/api/playback/wake-lock").json()

        assert body["held"] is True
        assert body["leases"]["wake_lock"] == {"acquired": True, "released": False}
        client.post("/api/playback/stop")


def test_events_limit_is_validated() -> None:
    with build_client() as client:
        assert client.get("/api/playback/events", params={"limit": 0}).status_code == 422
        assert client.get("/api/playback/events", params={"limit": 5}).json() == {"events": []}


def test_shutdown_stops_the_running_session() -> None:
    source = InMemorySource(["A/a1.jpg"])
    client = build_client(source=source)
    with client:
        client.post("/api/playback/start", json={"selectedFolders": ["A"]})
        controller = client.app.state.playback_controller

    assert controller.state.value == "terminated"
    assert source.closed is True


def test_manual_controls_drive_the_running_session() -> None:
    source = InMemorySource(["A/a1.jpg", "A/a2.jpg", "A/a3.jpg"])
    with build_client(source=source) as client:
        assert client.post("/api/playback/advance").json()["outcome"] == "cancelled"
        client.post(
            "/api/playback/start",
            json={"selectedFolders": ["A"], "selectedMusic": ["one.mp3", "two.mp3"]},
        )
        poll(client, lambda items: any(e["event"] == "item_displayed" for e in items))

        advanced = client.post("/api/playback/advance").json()
        assert advanced["outcome"] == "displayed"
        assert advanced["displayed_count"] == 2

        cadence = client.post("/api/playback/cadence", json={"cadenceMs": 30_000}).json()
        assert cadence["changed"] is True
        assert cadence["cadence_ms"] == 30_000
        rejected = client.post("/api/playback/cadence", json={"cadenceMs": 0})
        assert rejected.status_code == 400
        assert rejected.json()["error"]["code"] == "invalid_selection"

        forward = client.post("/api/playback/audio/next").json()
        assert forward["changed"] is True
        assert forward["audio"]["track"] == "two.mp3"
        back = client.post("/api/playback/audio/previous").json()
        assert back["audio"]["track"] == "one.mp3"

        client.post("/api/playback/stop")
        assert client.post("/api/playback/audio/next").json()["changed"] is False
