from datetime import datetime

from src.models.enums import SubtaskStatus, TaskStatus, WorkflowRole
from src.models.task import Subtask, Task, TaskDescription, WorkflowTransition


class TestTask:
    def test_defaults(self):
        task = Task(name="Add cache")
        assert task.status is TaskStatus.NOT_STARTED
        assert task.priority == "medium"
        assert task.owner is None

    def test_parses_sqlite_timestamps(self):
        task = Task(name="Add cache", created_at="2026-01-05 10:30:00")
        assert task.created_at == datetime(2026, 1, 5, 10, 30)

    def test_json_dump_uses_enum_values(self):
        task = Task(name="Add cache", owner=WorkflowRole.ARCHITECT)
        dumped = task.model_dump(mode="json")
        assert dumped["status"] == "not-started"
        assert dumped["owner"] == "architect"


class TestSubtask:
    def test_defaults(self):
        subtask = Subtask(task_id=1, batch_id="B001", name="Engine")
        assert subtask.status is SubtaskStatus.NOT_STARTED
        assert subtask.sequence_number == 1


class TestTaskDescription:
    def test_acceptance_criteria_default(self):
        assert TaskDescription(task_id=1, description="d").acceptance_criteria == []


class TestWorkflowTransition:
    def test_from_status_optional(self):
        transition = WorkflowTransition(task_id=1, to_status="in-progress")
        assert transition.from_status is None
        assert transition.to_status is TaskStatus.IN_PROGRESS
