from __future__ import annotations

from datetime import datetime, timezone

import pytest

from learnsync.telemetry import SYNC_EVENTS, EventRecorder, TelemetryEvent, emit_event, register_listener


def test_emit_event_invokes_listeners() -> None:
    captured: list[TelemetryEvent] = []
    register_listener(captured.append)

    emit_event("sync_completed", changed={"modules", "events"}, at=datetime(2026, 1, 1, tzinfo=timezone.utc))

    assert len(captured) == 1
    assert captured[0].name == "sync_completed"
    assert captured[0].payload["changed"] == ["events", "modules"]
    assert captured[0].payload["at"] == "2026-01-01T00:00:00+00:00"


def test_removed_listener_is_not_called() -> None:
    captured: list[TelemetryEvent] = []
    remove = register_listener(captured.append)
    remove()

    emit_event("sync_skipped", reason="in_flight")

    assert captured == []


def test_listener_errors_are_logged(caplog) -> None:
    captured: list[TelemetryEvent] = []

    def _broken(event: TelemetryEvent) -> None:
        raise RuntimeError("boom")

    register_listener(_broken)
    register_listener(captured.append)

    with caplog.at_level("INFO", logger="learnsync.telemetry"):
        emit_event("sync_paused", consecutive_errors=3)

    assert len(captured) == 1
    assert "Telemetry listener failed" in caplog.text
    assert 'TELEMETRY {"event": "sync_paused", "consecutive_errors": 3}' in caplog.text


def test_listener_can_subscribe_to_selected_events() -> None:
    recorder = EventRecorder()
    register_listener(recorder, events={"collection_fallback", "collection_push_failed"})

    emit_event("sync_skipped", reason="in_flight")
    emit_event("collection_fallback", collection="modules", error="timeout")
    emit_event("collection_push_failed", collection="events", error="offline")

    assert recorder.names() == ["collection_fallback", "collection_push_failed"]
    assert [event.collection for event in recorder.for_collection("modules")] == ["modules"]
    assert recorder.of("sync_skipped") == []


def test_unknown_event_names_are_rejected() -> None:
    with pytest.raises(ValueError, match="sync_exploded"):
        emit_event("sync_exploded")  # type: ignore[arg-type]

    with pytest.raises(ValueError, match="made_up"):
        register_listener(EventRecorder(), events=["sync_paused", "made_up"])


def test_every_sync_event_name_is_known() -> None:
    assert SYNC_EVENTS == {
        "sync_skipped",
        "sync_completed",
        "sync_paused",
        "collection_fallback",
        "collection_push_failed",
        "user_push_completed",
    }


def test_events_carry_a_timestamp_and_no_collection_for_whole_sync_events() -> None:
    event = emit_event("sync_completed", changed=[], failed=[])

    assert event.emitted_at.tzinfo is not None
    assert event.collection is None
