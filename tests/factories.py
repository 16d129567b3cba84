from uuid import uuid4

from src.models.enums import ReportType, WorkflowRole
from src.models.task import ImplementationPlan, Report, Subtask, Task, TaskDescription


def make_task(**overrides: object) -> Task:
    defaults: dict = {
        "name": f"Task {uuid4().hex[:6]}",
        "owner": WorkflowRole.BOOMERANG,
        "priority": "medium",
    }
    defaults.update(overrides)
    return Task(**defaults)


def make_description(**overrides: object) -> TaskDescription:
    defaults: dict = {
        "task_id": 1,
        "description": "Add response caching to the task context query",
        "acceptance_criteria": ["Repeated reads hit the cache"],
    }
    defaults.update(overrides)
    return TaskDescription(**defaults)


def make_plan(**overrides: object) -> ImplementationPlan:
    defaults: dict = {
        "task_id": 1,
        "overview": "Introduce a TTL cache in front of the context query",
    }
    defaults.update(overrides)
    return ImplementationPlan(**defaults)


def make_subtask(**overrides: object) -> Subtask:
    defaults: dict = {
        "task_id": 1,
        "batch_id": "B001",
        "sequence_number": 1,
        "name": "Write cache engine",
    }
    defaults.update(overrides)
    return Subtask(**defaults)


def make_report(**overrides: object) -> Report:
    defaults: dict = {
        "task_id": 1,
        "report_type": ReportType.RESEARCH,
        "summary": "Existing queries issue five round-trips per context read",
        "findings": ["Context reads dominate traffic"],
    }
    defaults.update(overrides)
    return Report(**defaults)


class FakeClock:
    """Manually advanced monotonic clock for deterministic TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
