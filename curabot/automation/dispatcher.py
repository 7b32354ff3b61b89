"""Event dispatcher: drives the live project view from the event stream.

The driver reads one event at a time, folds it into the view state with the
pure reducer, then awaits every side effect the event calls for before it
reads the next one. Events on one channel are therefore never handled
concurrently.
"""

import asyncio
import logging
from dataclasses import replace
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from curabot.automation.events import ProjectEvent
from curabot.automation.receiver import ChannelLost, EventReceiver
from curabot.automation.state import (
    Action,
    ActionFailed,
    ChannelClosed,
    ConnectionChanged,
    SnapshotLoaded,
    ViewState,
    actions_for,
    reduce,
)
from curabot.config import AutomationSettings, get_settings
from curabot.projects.gateway import save_step
from curabot.projects.schemas import StepPayload, UpdateResultRequest
from curabot.projects.service import update_project_result, update_status
from curabot.projects.snapshot import fetch_project_snapshot
from curabot.storage.db import get_session
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("pending", "running")

_FAILURE_MESSAGES = {
    Action.FETCH_SNAPSHOT: "Failed to update project data",
    Action.PERSIST_STEP: "Failed to save step",
    Action.MARK_COMPLETED: "Failed to update project status",
    Action.SAVE_SUMMARY: "Failed to save summary",
    Action.CLOSE: "Failed to close event channel",
}


class ReconcileBackend(Protocol):
    """Where the driver's side effects land."""

    async def fetch_snapshot(self, project_id: str) -> dict: ...

    async def persist_step(self, project_id: str, step: StepPayload) -> None: ...

    async def mark_completed(self, project_id: str) -> None: ...

    async def save_summary(self, project_id: str, summary: str, analysis_id: Optional[str]) -> None: ...


class LocalBackend:
    """ReconcileBackend backed directly by the database, scoped to one owner.

    Each call runs in its own session and commits on return, so the next
    snapshot fetch reads the write that preceded it.
    """

    def __init__(self, owner_id: str, session_factory=get_session):
        self.owner_id = owner_id
        self._session = session_factory

    async def fetch_snapshot(self, project_id: str) -> dict:
        async with self._session() as session:
            return await fetch_project_snapshot(OwnerScope(session, self.owner_id), project_id)

    async def persist_step(self, project_id: str, step: StepPayload) -> None:
        async with self._session() as session:
            project = await OwnerScope(session, self.owner_id).projects.require(project_id)
            await save_step(session, project, step)

    async def mark_completed(self, project_id: str) -> None:
        async with self._session() as session:
            await update_status(OwnerScope(session, self.owner_id), project_id, "completed")

    async def save_summary(self, project_id: str, summary: str, analysis_id: Optional[str]) -> None:
        async with self._session() as session:
            project = await OwnerScope(session, self.owner_id).projects.require(project_id)
            await update_project_result(
                session,
                project,
                UpdateResultRequest(
                    summary=summary,
                    project_status="completed",
                    analysis_status="completed",
                    analysis_id=analysis_id,
                ),
            )


class ProjectEventDriver:
    """Reconciles one project's view from its event channel.

    ``states()`` yields the view state after every event and after every
    connection change. When the channel drops, the driver waits, re-checks
    the project, and reconnects only while the project is still pending or
    running, backing off exponentially up to a fixed number of attempts.
    """

    def __init__(
        self,
        project_id: str,
        backend: ReconcileBackend,
        receiver_factory: Callable[[str], EventReceiver] = EventReceiver,
        settings: Optional[AutomationSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.project_id = project_id
        self.backend = backend
        self.receiver_factory = receiver_factory
        self.settings = settings or get_settings().automation
        self._sleep = sleep
        self.state = ViewState()

    async def _run_actions(self, state: ViewState, event: ProjectEvent, receiver: EventReceiver) -> ViewState:
        for action in actions_for(event):
            try:
                if action is Action.FETCH_SNAPSHOT:
                    snapshot = await self.backend.fetch_snapshot(self.project_id)
                    state = reduce(state, SnapshotLoaded(snapshot))
                    if snapshot.get("status") == "completed" and not state.closed:
                        logger.info("Project %s completed, closing event channel", self.project_id)
                        await receiver.close()
                        state = reduce(state, ChannelClosed())
                elif action is Action.PERSIST_STEP:
                    await self.backend.persist_step(self.project_id, event.step)
                elif action is Action.MARK_COMPLETED:
                    await self.backend.mark_completed(self.project_id)
                elif action is Action.SAVE_SUMMARY:
                    await self.backend.save_summary(self.project_id, event.message, event.analysis_id)
                elif action is Action.CLOSE:
                    await receiver.close()
                    state = reduce(state, ChannelClosed())
            except Exception as e:
                logger.error("%s failed for project %s: %s", action.value, self.project_id, e)
                state = reduce(state, ActionFailed(_FAILURE_MESSAGES[action]))
        return state

    async def _check_still_active(self, state: ViewState) -> tuple[ViewState, bool]:
        try:
            snapshot = await self.backend.fetch_snapshot(self.project_id)
        except Exception as e:
            logger.error("Failed to check project %s status for reconnection: %s", self.project_id, e)
            return reduce(state, ActionFailed("Failed to check project status")), True
        state = reduce(state, SnapshotLoaded(snapshot))
        return state, snapshot.get("status") in ACTIVE_STATUSES

    async def states(self) -> AsyncIterator[ViewState]:
        if not self.project_id:
            logger.warning("Invalid project id, not connecting")
            self.state = replace(self.state, loading=False, error="Invalid project ID", closed=True)
            yield self.state
            return

        attempts = 0
        delay = self.settings.reconnect_delay_seconds
        while True:
            receiver = self.receiver_factory(self.project_id)
            stream = receiver.events()
            try:
                async for event in stream:
                    if not self.state.is_connected:
                        self.state = reduce(self.state, ConnectionChanged(True))
                    attempts = 0
                    delay = self.settings.reconnect_delay_seconds

                    self.state = reduce(self.state, event)
                    self.state = await self._run_actions(self.state, event, receiver)
                    yield self.state
                    if self.state.closed:
                        return
                # Stream ended without an error: closed on our side
                self.state = reduce(self.state, ChannelClosed())
                yield self.state
                return
            except ChannelLost as e:
                logger.error("Event channel lost for project %s: %s", self.project_id, e)
                self.state = reduce(self.state, ConnectionChanged(False))
                yield self.state
            finally:
                await stream.aclose()
                await receiver.close()

            if attempts >= self.settings.max_reconnect_attempts:
                logger.warning(
                    "Giving up on project %s events after %d reconnect attempts", self.project_id, attempts
                )
                self.state = reduce(self.state, ChannelClosed())
                yield self.state
                return

            await self._sleep(delay)
            self.state, active = await self._check_still_active(self.state)
            if not active:
                logger.info("Not reconnecting to project %s: project is %s",
                            self.project_id, (self.state.project or {}).get("status"))
                self.state = reduce(self.state, ChannelClosed())
                yield self.state
                return

            attempts += 1
            delay = min(delay * 2, self.settings.reconnect_backoff_max_seconds)
            logger.info(
                "Reconnecting to project %s events (attempt %d/%d)",
                self.project_id,
                attempts,
                self.settings.max_reconnect_attempts,
            )
