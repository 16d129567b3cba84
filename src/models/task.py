from datetime import datetime

from pydantic import BaseModel, ConfigDict

from src.models.enums import ReportType, SubtaskStatus, TaskStatus, WorkflowRole


class Task(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    name: str
    status: TaskStatus = TaskStatus.NOT_STARTED
    owner: WorkflowRole | None = None
    priority: str = "medium"
    git_branch: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TaskDescription(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    task_id: int
    description: str
    business_requirements: str | None = None
    technical_requirements: str | None = None
    acceptance_criteria: list[str] = []


class ImplementationPlan(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    task_id: int
    overview: str
    approach: str | None = None
    technical_decisions: str | None = None
    created_by: WorkflowRole = WorkflowRole.ARCHITECT
    created_at: datetime | None = None


class Subtask(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    task_id: int
    plan_id: int | None = None
    batch_id: str
    sequence_number: int = 1
    name: str
    description: str | None = None
    status: SubtaskStatus = SubtaskStatus.NOT_STARTED
    completed_at: datetime | None = None


class WorkflowTransition(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    task_id: int
    from_status: TaskStatus | None = None
    to_status: TaskStatus
    role: WorkflowRole | None = None
    reason: str | None = None
    transitioned_at: datetime | None = None


class Report(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    task_id: int
    report_type: ReportType
    summary: str
    findings: list[str] = []
    created_at: datetime | None = None
