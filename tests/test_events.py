"""Tests for parsing event stream payloads into typed events."""

import json

import pytest

from curabot.automation.events import (
    AutomationCompletedEvent,
    ConnectedEvent,
    EventParseError,
    StatusEvent,
    StepCompletedEvent,
    parse_event,
)


class TestParseEvent:
    def test_connected(self):
        event = parse_event('{"type": "connected", "projectId": "p1", "timestamp": "2026-03-01T10:00:00Z"}')
        assert isinstance(event, ConnectedEvent)
        assert event.project_id == "p1"
        assert event.timestamp.year == 2026

    def test_status_carries_status(self):
        event = parse_event({"type": "status", "projectId": "p1", "status": "running"})
        assert isinstance(event, StatusEvent)
        assert event.status == "running"

    def test_step_completed_carries_partial_step(self):
        raw = json.dumps({
            "type": "step_completed",
            "projectId": "p1",
            "step": {"id": "s1", "analysisId": "a1", "stepStatus": "completed"},
        })
        event = parse_event(raw)
        assert isinstance(event, StepCompletedEvent)
        assert event.step.id == "s1"
        assert event.step.model_fields_set == {"id", "analysis_id", "step_status"}

    def test_automation_completed_with_message(self):
        event = parse_event(
            b'{"type": "automation_completed", "projectId": "p1", "analysisId": "a1", "message": "done"}'
        )
        assert isinstance(event, AutomationCompletedEvent)
        assert event.analysis_id == "a1"
        assert event.message == "done"

    def test_extra_fields_are_tolerated(self):
        event = parse_event({"type": "connected", "projectId": "p1", "serverVersion": "2"})
        assert isinstance(event, ConnectedEvent)

    def test_events_are_frozen(self):
        event = parse_event({"type": "connected", "projectId": "p1"})
        with pytest.raises(Exception):
            event.project_id = "other"


class TestRejectedPayloads:
    def test_invalid_json(self):
        with pytest.raises(EventParseError, match="not valid JSON"):
            parse_event("{not json")

    def test_non_object(self):
        with pytest.raises(EventParseError, match="JSON object"):
            parse_event("[1, 2]")

    def test_unknown_type(self):
        with pytest.raises(EventParseError, match="Unknown event type"):
            parse_event({"type": "heartbeat"})

    def test_missing_type(self):
        with pytest.raises(EventParseError):
            parse_event({"projectId": "p1"})

    def test_malformed_known_type(self):
        with pytest.raises(EventParseError, match="Malformed step_completed"):
            parse_event({"type": "step_completed", "step": {"stepNumber": "not-a-number"}})
