"""Live project view state and the pure reducer that evolves it.

``reduce`` and ``actions_for`` never perform I/O. The driver in
``curabot.automation.dispatcher`` feeds them events, runs the returned
actions, and feeds the outcomes back in as local signals.
"""

import enum
from dataclasses import dataclass, replace
from typing import Any, Optional, Union

from curabot.automation.events import (
    AnalysisStartedEvent,
    AutomationCompletedEvent,
    ConnectedEvent,
    ProjectEvent,
    StatusEvent,
    StepCompletedEvent,
    StepStartedEvent,
)


class Action(str, enum.Enum):
    FETCH_SNAPSHOT = "fetch_snapshot"
    PERSIST_STEP = "persist_step"
    MARK_COMPLETED = "mark_completed"
    SAVE_SUMMARY = "save_summary"
    CLOSE = "close"


# --- Local signals produced by the driver ---


@dataclass(frozen=True)
class SnapshotLoaded:
    project: dict[str, Any]


@dataclass(frozen=True)
class ActionFailed:
    message: str


@dataclass(frozen=True)
class ConnectionChanged:
    connected: bool


@dataclass(frozen=True)
class ChannelClosed:
    pass


Signal = Union[SnapshotLoaded, ActionFailed, ConnectionChanged, ChannelClosed]


@dataclass(frozen=True)
class ViewState:
    project: Optional[dict[str, Any]] = None
    is_connected: bool = False
    last_event: Optional[ProjectEvent] = None
    loading: bool = True
    error: Optional[str] = None
    closed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "isConnected": self.is_connected,
            "lastEvent": self.last_event.model_dump(by_alias=True, mode="json") if self.last_event else None,
            "loading": self.loading,
            "error": self.error,
            "closed": self.closed,
        }


def reduce(state: ViewState, event: Union[ProjectEvent, Signal]) -> ViewState:
    """Return the state after ``event``; ``state`` itself is never mutated."""
    if isinstance(event, SnapshotLoaded):
        return replace(state, project=event.project, loading=False, error=None)
    if isinstance(event, ActionFailed):
        return replace(state, error=event.message)
    if isinstance(event, ConnectionChanged):
        return replace(state, is_connected=event.connected)
    if isinstance(event, ChannelClosed):
        return replace(state, is_connected=False, closed=True)

    if isinstance(event, StatusEvent) and event.project_id:
        # Non-destructive merge: only the id is overwritten
        merged = {**(state.project or {}), "id": event.project_id}
        return replace(state, project=merged, last_event=event)
    return replace(state, last_event=event)


def actions_for(event: ProjectEvent) -> tuple[Action, ...]:
    """Side effects the driver must run, in order, for one event."""
    if isinstance(event, ConnectedEvent):
        return (Action.FETCH_SNAPSHOT,)
    if isinstance(event, StatusEvent):
        return ()
    if isinstance(event, StepStartedEvent):
        return (Action.FETCH_SNAPSHOT,)
    if isinstance(event, StepCompletedEvent):
        if event.step is None:
            return (Action.FETCH_SNAPSHOT,)
        return (Action.PERSIST_STEP, Action.FETCH_SNAPSHOT)
    if isinstance(event, AnalysisStartedEvent):
        return (Action.FETCH_SNAPSHOT,)
    if isinstance(event, AutomationCompletedEvent):
        actions = [Action.MARK_COMPLETED]
        if event.message:
            actions.append(Action.SAVE_SUMMARY)
        actions += [Action.FETCH_SNAPSHOT, Action.CLOSE]
        return tuple(actions)
    return ()
