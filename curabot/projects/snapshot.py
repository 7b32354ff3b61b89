"""Project snapshot: the full project, analyses and steps tree for one owner."""

import logging
from typing import Any

from sqlalchemy.orm import selectinload

from curabot.errors import DataIntegrityError
from curabot.projects.schemas import AnalysisOut, ProjectOut, StepAnalysis, StepOut
from curabot.storage.models import Analysis, Project, Step
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)

SNAPSHOT_OPTIONS = (selectinload(Project.analyses).selectinload(Analysis.steps),)


def _require(row, kind: str, fields: tuple[str, ...]) -> None:
    for field in fields:
        value = getattr(row, field, None)
        if value is None or value == "":
            logger.error("Corrupt %s row %s: missing %s", kind, getattr(row, "id", "?"), field)
            raise DataIntegrityError(f"{kind} record is missing required field '{field}'")


def _serialize_step(step: Step) -> StepOut:
    _require(step, "Step", ("id", "step_number", "timestamp"))
    sub = {field: getattr(step, field) for field in StepAnalysis.model_fields}
    return StepOut(
        id=step.id,
        analysis_id=step.analysis_id,
        step_number=step.step_number,
        action=step.action,
        step_status=step.step_status,
        args=step.args,
        result=step.result,
        screenshot_path=step.screenshot_path,
        analysis=StepAnalysis(**sub) if any(v is not None for v in sub.values()) else None,
        error=step.error,
        timestamp=step.timestamp,
        completed_at=step.completed_at,
    )


def _serialize_analysis(analysis: Analysis) -> AnalysisOut:
    _require(analysis, "Analysis", ("id", "project_id", "started_at"))
    steps = sorted((_serialize_step(s) for s in analysis.steps), key=lambda s: s.step_number)
    return AnalysisOut(
        id=analysis.id,
        project_id=analysis.project_id,
        url=analysis.url,
        objective=analysis.objective,
        status=analysis.status,
        timestamp=analysis.started_at,
        completed_at=analysis.completed_at,
        summary=analysis.summary,
        steps=steps,
    )


def serialize_project(project: Project) -> dict[str, Any]:
    """Convert a loaded Project tree to its camelCase wire form.

    Raises DataIntegrityError instead of inventing placeholder values for
    fields every stored project must have.
    """
    _require(project, "Project", ("id", "name", "url", "objective", "created_at"))
    analyses = [_serialize_analysis(a) for a in project.analyses]
    latest = analyses[0] if analyses else None
    out = ProjectOut(
        id=project.id,
        name=project.name,
        url=project.url,
        objective=project.objective,
        status=project.status,
        created_at=project.created_at,
        user_id=project.owner_id,
        analyses=analyses,
        latest_analysis_status=latest.status if latest else project.latest_analysis_status,
        latest_analysis_summary=latest.summary if latest else project.latest_analysis_summary,
    )
    return out.model_dump(by_alias=True, mode="json")


async def fetch_project_snapshot(scope: OwnerScope, project_id: str) -> dict[str, Any]:
    """Load and serialize one project.

    Absent rows and rows of another owner both raise NotFoundError.
    """
    project = await scope.projects.require(project_id, options=SNAPSHOT_OPTIONS)
    return serialize_project(project)


async def list_project_snapshots(scope: OwnerScope) -> list[dict[str, Any]]:
    projects = await scope.projects.find(
        order_by=Project.created_at.desc(), options=SNAPSHOT_OPTIONS
    )
    return [serialize_project(p) for p in projects]
