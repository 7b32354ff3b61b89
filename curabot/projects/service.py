"""Project lifecycle: create, delete, status changes and automation results."""

import json
import logging
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from curabot.automation.client import AutomationClient, AutomationRejected, AutomationUnreachable
from curabot.errors import CurabotError, NotFoundError, ValidationFailed
from curabot.projects.gateway import save_step
from curabot.projects.schemas import UpdateResultRequest
from curabot.projects.snapshot import serialize_project
from curabot.storage.models import PROJECT_STATUSES, Analysis, Project, _utcnow
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)


def extract_summary(summary: str) -> str:
    """Return ``completionSummary`` from a JSON-encoded summary, else the raw text."""
    try:
        parsed = json.loads(summary)
    except (TypeError, ValueError):
        return summary
    if isinstance(parsed, dict) and parsed.get("completionSummary"):
        return str(parsed["completionSummary"])
    return summary


async def create_project(scope: OwnerScope, name: str, url: str, objective: str) -> dict[str, Any]:
    if not (name and name.strip()) or not (url and url.strip()) or not (objective and objective.strip()):
        raise ValidationFailed("Name, URL, and objective are required")

    project = Project(
        owner_id=scope.owner_id,
        name=name.strip(),
        url=url.strip(),
        objective=objective.strip(),
        status="pending",
        created_at=_utcnow(),
        analyses=[],
    )
    scope.session.add(project)
    await scope.session.flush()
    logger.info("Created project %s for owner %s", project.id, scope.owner_id)
    return serialize_project(project)


async def delete_project(scope: OwnerScope, project_id: Optional[str]) -> None:
    if not project_id:
        raise ValidationFailed("Project ID is required")
    if not await scope.projects.delete(project_id):
        raise NotFoundError("Project not found or failed to delete")


async def update_status(scope: OwnerScope, project_id: Optional[str], status: Optional[str]) -> None:
    if not project_id:
        raise ValidationFailed("projectId is required")
    if status not in PROJECT_STATUSES:
        raise ValidationFailed(f"status must be one of {', '.join(PROJECT_STATUSES)}")
    if not await scope.projects.update(project_id, {"status": status}):
        raise NotFoundError("Project not found")
    logger.info("Project %s status -> %s", project_id, status)


async def load_project_for_ingest(
    session: AsyncSession, project_id: Optional[str], owner_id: Optional[str] = None
) -> Project:
    """Resolve the target project of an ingest call.

    Service callers (authenticated by API key) see every project; a signed-in
    user only sees their own.
    """
    if not project_id:
        raise ValidationFailed("projectId is required")
    if owner_id is not None:
        return await OwnerScope(session, owner_id).projects.require(project_id)
    project = await session.scalar(select(Project).where(Project.id == project_id))
    if project is None:
        raise NotFoundError("Project not found")
    return project


async def update_project_result(session: AsyncSession, project: Project, update: UpdateResultRequest) -> None:
    """Apply an automation result to a project, its analysis and its steps.

    Only the keys present in ``update`` are applied. The analysis is touched
    only when ``analysisId`` names an existing analysis of this project.
    """
    sent = update.model_fields_set

    if update.project_status:
        project.status = update.project_status

    if "analysis_status" in sent:
        project.latest_analysis_status = update.analysis_status
    if update.summary is not None:
        project.latest_analysis_summary = extract_summary(update.summary)

    # Steps first, so an analysis they create can take the status below
    for step in update.steps or []:
        if not step.id:
            raise ValidationFailed("Step ID is required")
        if not step.analysis_id:
            raise ValidationFailed(f"Step {step.id} is missing analysisId")
        await save_step(session, project, step)

    if update.analysis_id:
        analysis = await session.scalar(
            select(Analysis).where(Analysis.id == update.analysis_id, Analysis.project_id == project.id)
        )
        if analysis is None:
            logger.warning(
                "Analysis %s not found for project %s; skipping analysis update",
                update.analysis_id,
                project.id,
            )
        else:
            if update.summary is not None:
                analysis.summary = extract_summary(update.summary)
            if update.analysis_status:
                analysis.status = update.analysis_status
                if update.analysis_status in ("completed", "failed"):
                    analysis.completed_at = _utcnow()

    await session.flush()
    logger.info(
        "Updated project %s (status=%s, analysis=%s, steps=%d)",
        project.id,
        update.project_status,
        update.analysis_status,
        len(update.steps or []),
    )


def _result_from_response(body: Any) -> UpdateResultRequest:
    if not isinstance(body, dict):
        raise ValidationFailed("invalid response from automation service")
    data = dict(body)
    # The service reports the analysis status under an irregular key
    if "latestanalysisStatus" in data and "analysisStatus" not in data:
        data["analysisStatus"] = data.pop("latestanalysisStatus")
    data.pop("projectId", None)
    return UpdateResultRequest.model_validate(data)


async def trigger_automation(
    session: AsyncSession, project: Project, client: Optional[AutomationClient] = None
) -> None:
    """Mark the project running and hand it to the automation service.

    Upstream failures never escape: the project is marked failed and the
    failure text becomes the summary.
    """
    client = client or AutomationClient()
    await update_project_result(
        session,
        project,
        UpdateResultRequest(project_status="running", analysis_status="pending"),
    )

    try:
        body = await client.trigger_run(project.id, project.name, project.url, project.objective)
    except AutomationRejected as e:
        failure = f"Automation failed: {e.detail}"
    except AutomationUnreachable as e:
        failure = f"Connection failed: {e.message}"
    else:
        try:
            await update_project_result(session, project, _result_from_response(body))
            return
        except ValidationError as e:
            logger.error("Unusable automation response for project %s: %s", project.id, e)
            failure = "Automation failed: invalid response from automation service"
        except CurabotError as e:
            logger.error("Could not apply automation result for project %s: %s", project.id, e.message)
            failure = f"Automation failed: {e.message}"

    await update_project_result(
        session,
        project,
        UpdateResultRequest(summary=failure, project_status="failed", analysis_status="failed"),
    )
