"""Project routes: CRUD, automation trigger, step ingest and the live relay."""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from curabot.api.deps import (
    get_app_settings,
    get_automation_client,
    get_current_user,
    get_db,
    get_ingest_caller,
    get_scope,
)
from curabot.automation.client import AutomationClient
from curabot.automation.dispatcher import LocalBackend, ProjectEventDriver
from curabot.automation.receiver import EventReceiver
from curabot.config import Settings
from curabot.errors import ValidationFailed
from curabot.projects.gateway import save_step
from curabot.projects.schemas import (
    CreateProjectRequest,
    DeleteProjectRequest,
    SaveStepRequest,
    UpdateResultRequest,
    UpdateStatusRequest,
)
from curabot.projects.service import (
    create_project,
    delete_project,
    load_project_for_ingest,
    trigger_automation,
    update_project_result,
    update_status,
)
from curabot.projects.snapshot import fetch_project_snapshot, list_project_snapshots
from curabot.storage.db import get_session
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["projects"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/projects")
async def list_projects(scope: OwnerScope = Depends(get_scope)):
    return {"projects": await list_project_snapshots(scope)}


@router.post("/projects")
@router.post("/projects/new")
async def new_project(body: CreateProjectRequest, scope: OwnerScope = Depends(get_scope)):
    project = await create_project(scope, body.name, body.url, body.objective)
    return {"success": True, "project": project, "message": "Project created successfully"}


@router.delete("/projects")
async def delete_project_by_body(
    body: Optional[DeleteProjectRequest] = None, scope: OwnerScope = Depends(get_scope)
):
    await delete_project(scope, body.project_id if body else None)
    return {"success": True, "message": "Project deleted successfully"}


@router.post("/projects/saveStep")
async def save_step_route(body: SaveStepRequest, scope: OwnerScope = Depends(get_scope)):
    if not body.project_id:
        raise ValidationFailed("projectId is required")
    if body.step is None:
        raise ValidationFailed("step object is required")
    project = await scope.projects.require(body.project_id)
    await save_step(scope.session, project, body.step)
    return {"success": True}


@router.post("/projects/updateResult")
async def update_result(
    body: UpdateResultRequest,
    caller: Optional[str] = Depends(get_ingest_caller),
    session: AsyncSession = Depends(get_db),
):
    project = await load_project_for_ingest(session, body.project_id, caller)
    await update_project_result(session, project, body)
    return {"success": True}


@router.post("/projects/updateStatus")
async def update_status_route(body: UpdateStatusRequest, scope: OwnerScope = Depends(get_scope)):
    await update_status(scope, body.project_id, body.status)
    return {"success": True}


@router.get("/projects/{project_id}")
async def get_project(project_id: str, scope: OwnerScope = Depends(get_scope)):
    return {"project": await fetch_project_snapshot(scope, project_id)}


@router.delete("/projects/{project_id}")
async def delete_project_by_path(project_id: str, scope: OwnerScope = Depends(get_scope)):
    await delete_project(scope, project_id)
    return {"success": True, "message": "Project deleted successfully"}


@router.post("/projects/{project_id}")
async def run_project(
    project_id: str,
    scope: OwnerScope = Depends(get_scope),
    client: AutomationClient = Depends(get_automation_client),
):
    project = await scope.projects.require(project_id)
    await trigger_automation(scope.session, project, client)
    return {"success": True, "message": "Automation started"}


@router.get("/projects/{project_id}/live")
async def live_project(
    project_id: str,
    request: Request,
    owner_id: str = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
    client: AutomationClient = Depends(get_automation_client),
):
    """Relay the reconciled view state as server-sent events."""
    # Ownership check only; the driver opens its own sessions
    async with get_session() as session:
        await OwnerScope(session, owner_id).projects.require(project_id)

    driver = ProjectEventDriver(
        project_id,
        LocalBackend(owner_id),
        receiver_factory=lambda pid: EventReceiver(pid, automation=client),
        settings=settings.automation,
    )

    async def event_stream():
        states = driver.states()
        try:
            async for state in states:
                yield f"data: {json.dumps(state.to_dict())}\n\n"
                if await request.is_disconnected():
                    logger.info("Live view for project %s disconnected", project_id)
                    break
        finally:
            await states.aclose()

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)
