"""Exception hierarchy for the workflow layer.

Cache misses are not errors and have no exception type here. The cache only
surfaces exceptions raised by a caller-supplied loader.
"""


class WorkflowError(Exception):
    """Base class for all workflow errors."""


class TaskNotFoundError(WorkflowError):
    """No task exists with the requested id."""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class InvalidTransitionError(WorkflowError):
    """A status change that the workflow does not allow."""


class ValidationFailedError(WorkflowError):
    """Tool input that passed schema validation but is semantically invalid."""


class SubtaskNotFoundError(WorkflowError):
    """No subtask exists with the requested id."""

    def __init__(self, subtask_id: int) -> None:
        super().__init__(f"Subtask {subtask_id} not found")
        self.subtask_id = subtask_id
