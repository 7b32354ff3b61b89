"""Typed events published by the automation service's event stream.

Raw frames are validated here, at the boundary, into a tagged union keyed on
``type``. Anything that does not fit one of the known shapes is rejected with
EventParseError before it reaches the dispatcher.
"""

import json
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from curabot.projects.schemas import CamelModel, StepPayload


class EventParseError(ValueError):
    """A frame was not valid JSON or not a known event shape."""


class _Event(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    project_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    message: Optional[str] = None


class ConnectedEvent(_Event):
    type: Literal["connected"]


class StatusEvent(_Event):
    type: Literal["status"]
    status: Optional[str] = None


class StepStartedEvent(_Event):
    type: Literal["step_started"]
    step: Optional[StepPayload] = None


class StepCompletedEvent(_Event):
    type: Literal["step_completed"]
    step: Optional[StepPayload] = None


class AnalysisStartedEvent(_Event):
    type: Literal["analysis_started"]
    analysis_id: Optional[str] = None


class AutomationCompletedEvent(_Event):
    type: Literal["automation_completed"]
    analysis_id: Optional[str] = None


ProjectEvent = Annotated[
    Union[
        ConnectedEvent,
        StatusEvent,
        StepStartedEvent,
        StepCompletedEvent,
        AnalysisStartedEvent,
        AutomationCompletedEvent,
    ],
    Field(discriminator="type"),
]

EVENT_TYPES = (
    "connected",
    "status",
    "step_started",
    "step_completed",
    "analysis_started",
    "automation_completed",
)

_adapter: TypeAdapter[ProjectEvent] = TypeAdapter(ProjectEvent)


def parse_event(raw: Union[str, bytes, dict]) -> ProjectEvent:
    """Parse one ``data:`` payload into a typed event."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise EventParseError(f"Event is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise EventParseError(f"Event must be a JSON object, got {type(raw).__name__}")

    kind = raw.get("type")
    if kind not in EVENT_TYPES:
        raise EventParseError(f"Unknown event type: {kind!r}")
    try:
        return _adapter.validate_python(raw)
    except ValidationError as e:
        raise EventParseError(f"Malformed {kind} event: {e.error_count()} error(s)") from e
