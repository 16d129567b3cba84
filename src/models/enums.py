from enum import StrEnum


class TaskStatus(StrEnum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    NEEDS_REVIEW = "needs-review"
    COMPLETED = "completed"
    NEEDS_CHANGES = "needs-changes"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class SubtaskStatus(StrEnum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class WorkflowRole(StrEnum):
    BOOMERANG = "boomerang"
    RESEARCHER = "researcher"
    ARCHITECT = "architect"
    SENIOR_DEVELOPER = "senior-developer"
    CODE_REVIEW = "code-review"


class ReportType(StrEnum):
    RESEARCH = "research"
    CODE_REVIEW = "code_review"
    COMPLETION = "completion"


class ContextLevel(StrEnum):
    BASIC = "basic"
    FULL = "full"
    COMPREHENSIVE = "comprehensive"
