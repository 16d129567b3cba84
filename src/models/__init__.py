from src.models.cache import (
    CacheConfig,
    CacheEntry,
    CacheStats,
    MetricsSummary,
    OperationMetrics,
)
from src.models.enums import (
    ContextLevel,
    ReportType,
    SubtaskStatus,
    TaskStatus,
    WorkflowRole,
)
from src.models.task import (
    ImplementationPlan,
    Report,
    Subtask,
    Task,
    TaskDescription,
    WorkflowTransition,
)

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CacheStats",
    "ContextLevel",
    "ImplementationPlan",
    "MetricsSummary",
    "OperationMetrics",
    "Report",
    "ReportType",
    "Subtask",
    "SubtaskStatus",
    "Task",
    "TaskDescription",
    "TaskStatus",
    "WorkflowRole",
    "WorkflowTransition",
]
