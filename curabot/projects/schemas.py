"""Pydantic models for projects, analyses and steps.

Wire format is camelCase to match what the dashboard and the automation
service exchange; Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

ProjectStatus = Literal["pending", "running", "completed", "failed"]
AnalysisStatus = Literal["pending", "completed", "failed"]
StepStatus = Literal["pending", "completed", "failed", "needs_retry"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- Inbound ---


class StepAnalysis(CamelModel):
    """Structured reasoning the automation service attaches to a step."""

    step_description: Optional[str] = None
    page_description: Optional[str] = None
    action_intent: Optional[str] = None
    action_reasoning: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_description(cls, data: Any) -> Any:
        # Older payloads used "description" for the step description
        if isinstance(data, dict) and "description" in data:
            if "stepDescription" not in data and "step_description" not in data:
                data = {**data, "stepDescription": data["description"]}
        return data


class StepPayload(CamelModel):
    """A step as reported by the automation service.

    Every field is optional at the model level: the persistence gateway uses
    ``model_fields_set`` to tell fields that were sent (possibly as null)
    apart from fields that were omitted.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True, extra="ignore"
    )

    id: Optional[str] = None
    analysis_id: Optional[str] = None
    step_number: Optional[int] = None
    action: Optional[str] = None
    step_status: Optional[StepStatus] = None
    args: Optional[Any] = None
    result: Optional[Any] = None
    screenshot_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("screenshotPath", "screenshot_path"),
    )
    analysis: Optional[StepAnalysis] = None
    error: Optional[str] = None
    timestamp: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class CreateProjectRequest(CamelModel):
    name: Optional[str] = None
    url: Optional[str] = None
    objective: Optional[str] = None


class DeleteProjectRequest(CamelModel):
    project_id: Optional[str] = None


class SaveStepRequest(CamelModel):
    project_id: Optional[str] = None
    step: Optional[StepPayload] = None


class UpdateStatusRequest(CamelModel):
    project_id: Optional[str] = None
    status: Optional[ProjectStatus] = None


class UpdateResultRequest(CamelModel):
    project_id: Optional[str] = None
    summary: Optional[str] = None
    project_status: Optional[ProjectStatus] = None
    analysis_status: Optional[AnalysisStatus] = None
    steps: Optional[list[StepPayload]] = None
    analysis_id: Optional[str] = None


# --- Outbound ---


class StepOut(CamelModel):
    id: str
    analysis_id: str
    step_number: int
    action: Optional[str] = None
    step_status: Optional[StepStatus] = None
    args: Optional[Any] = None
    result: Optional[Any] = None
    screenshot_path: Optional[str] = None
    analysis: Optional[StepAnalysis] = None
    error: Optional[str] = None
    timestamp: datetime
    completed_at: Optional[datetime] = None


class AnalysisOut(CamelModel):
    id: str
    project_id: str
    url: str
    objective: str
    status: AnalysisStatus
    timestamp: datetime
    completed_at: Optional[datetime] = None
    summary: Optional[str] = None
    steps: list[StepOut] = []


class ProjectOut(CamelModel):
    id: str
    name: str
    url: str
    objective: str
    status: ProjectStatus
    created_at: datetime
    user_id: str
    analyses: list[AnalysisOut] = []
    latest_analysis_status: Optional[AnalysisStatus] = None
    latest_analysis_summary: Optional[str] = None
