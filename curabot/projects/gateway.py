"""Step persistence: idempotent analysis creation and partial step upserts.

Steps arrive from more than one channel (the live event stream, the ingest
endpoint, a second open dashboard) with no ordering between them. Every write
here is therefore a single conflict-tolerant statement, and an update only
touches the columns the caller actually sent.
"""

import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from curabot.errors import NotFoundError, ValidationFailed
from curabot.projects.schemas import StepPayload
from curabot.storage.db import dialect_insert
from curabot.storage.models import Analysis, Project, Step, _utcnow

logger = logging.getLogger(__name__)

# Payload fields that map one-to-one onto Step columns
_PLAIN_FIELDS = (
    "analysis_id",
    "step_number",
    "action",
    "step_status",
    "args",
    "result",
    "screenshot_path",
    "error",
    "timestamp",
    "completed_at",
)
_ANALYSIS_FIELDS = ("step_description", "page_description", "action_intent", "action_reasoning")


def step_values(payload: StepPayload) -> dict[str, Any]:
    """Column values for the fields present in ``payload``.

    A field sent as null maps to None (clears the column). A field that was
    never sent is left out entirely.
    """
    sent = payload.model_fields_set
    values: dict[str, Any] = {}
    for field in _PLAIN_FIELDS:
        if field in sent:
            values[field] = getattr(payload, field)

    if "analysis" in sent:
        if payload.analysis is None:
            for field in _ANALYSIS_FIELDS:
                values[field] = None
        else:
            for field in _ANALYSIS_FIELDS:
                if field in payload.analysis.model_fields_set:
                    values[field] = getattr(payload.analysis, field)

    # Required columns cannot be cleared
    for field in ("analysis_id", "step_number", "step_status", "timestamp"):
        if field in values and values[field] is None:
            del values[field]
    return values


async def ensure_analysis(session: AsyncSession, project: Project, analysis_id: str) -> None:
    """Create the analysis if it is absent, then check it belongs to ``project``."""
    if project.url and project.objective:
        stmt = (
            dialect_insert(session, Analysis)
            .values(
                id=analysis_id,
                project_id=project.id,
                url=project.url,
                objective=project.objective,
                status="pending",
                started_at=_utcnow(),
            )
            .on_conflict_do_nothing(index_elements=[Analysis.id])
        )
        await session.execute(stmt)

    owner_project = await session.scalar(
        select(Analysis.project_id).where(Analysis.id == analysis_id)
    )
    if owner_project is None:
        raise ValidationFailed(
            f"Analysis {analysis_id} does not exist and project {project.id} "
            "has no url/objective to create it from"
        )
    if owner_project != project.id:
        raise ValidationFailed(f"Analysis {analysis_id} belongs to a different project")


def _in_project(project: Project):
    return Step.analysis_id.in_(select(Analysis.id).where(Analysis.project_id == project.id))


async def _raise_missing(session: AsyncSession, step_id: str) -> None:
    if await session.scalar(select(Step.id).where(Step.id == step_id)) is not None:
        logger.warning("Rejected write to step %s from outside its project", step_id)
        raise NotFoundError("Step not found")
    raise ValidationFailed(f"Step {step_id} does not exist and stepNumber is required to create it")


async def upsert_step(session: AsyncSession, project: Project, payload: StepPayload) -> None:
    """Insert the step or merge the sent fields into the existing row.

    An existing row is only touched when it already belongs to one of
    ``project``'s analyses; a step id owned elsewhere raises NotFoundError.
    """
    values = step_values(payload)

    # First report of completion stamps completed_at; replays keep the first stamp
    stamp_completion = values.get("step_status") == "completed" and "completed_at" not in values

    if payload.step_number is None:
        await _update_existing(session, project, payload.id, values, stamp_completion)
        return

    insert_values = {
        "step_status": "pending",
        "timestamp": _utcnow(),
        **values,
        "id": payload.id,
    }
    update_set: dict[str, Any] = dict(values)
    if stamp_completion:
        now = _utcnow()
        insert_values["completed_at"] = now
        update_set["completed_at"] = func.coalesce(Step.__table__.c.completed_at, now)

    stmt = dialect_insert(session, Step).values(**insert_values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Step.id],
        set_=update_set,
        where=Step.__table__.c.analysis_id.in_(
            select(Analysis.id).where(Analysis.project_id == project.id)
        ),
    )
    result = await session.execute(stmt)
    if result.rowcount == 0:
        logger.warning("Rejected write to step %s from outside its project", payload.id)
        raise NotFoundError("Step not found")
    logger.debug("Upserted step %s (%d fields)", payload.id, len(values))


async def _update_existing(
    session: AsyncSession, project: Project, step_id: str, values: dict, stamp_completion: bool
):
    if stamp_completion:
        values["completed_at"] = func.coalesce(Step.completed_at, _utcnow())
    if not values:
        found = await session.scalar(select(Step.id).where(Step.id == step_id, _in_project(project)))
        if found is None:
            await _raise_missing(session, step_id)
        return

    result = await session.execute(
        update(Step)
        .where(Step.id == step_id, _in_project(project))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await _raise_missing(session, step_id)
    logger.debug("Updated step %s (%d fields)", step_id, len(values))


async def save_step(session: AsyncSession, project: Project, payload: StepPayload) -> None:
    """Persist one step for an already owner-checked project."""
    if not payload.id:
        raise ValidationFailed("Step ID is required")
    if not payload.analysis_id:
        raise ValidationFailed("Analysis ID is required")

    await ensure_analysis(session, project, payload.analysis_id)
    await upsert_step(session, project, payload)
    logger.info("Saved step %s (#%s) for project %s", payload.id, payload.step_number, project.id)
