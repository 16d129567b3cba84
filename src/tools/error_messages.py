"""User-friendly error messages and safe tool wrapper."""

import logging
import sqlite3
from collections.abc import Awaitable, Callable

from src.errors import (
    InvalidTransitionError,
    SubtaskNotFoundError,
    TaskNotFoundError,
    ValidationFailedError,
    WorkflowError,
)

logger = logging.getLogger(__name__)


def get_user_message(error: Exception) -> str:
    """Map an exception to a user-friendly message.

    Args:
        error: The exception to translate.

    Returns:
        A human-readable error message.
    """
    if isinstance(error, TaskNotFoundError):
        return f"Task {error.task_id} does not exist. Use list_tasks to find valid ids."
    if isinstance(error, SubtaskNotFoundError):
        return f"Subtask {error.subtask_id} does not exist."
    if isinstance(error, InvalidTransitionError):
        return f"Status change rejected: {error}"
    if isinstance(error, (ValidationFailedError, ValueError)):
        return f"Invalid input: {error}"
    if isinstance(error, WorkflowError):
        return f"Could not complete the request. {error}"
    if isinstance(error, sqlite3.Error):
        return "The workflow database is unavailable right now. Please try again shortly."
    return "Something went wrong. Please try again or contact support."


async def safe_tool_wrapper(
    func: Callable[..., Awaitable[str]],
    *args: object,
    **kwargs: object,
) -> str:
    """Call an async function, catching errors and returning friendly messages.

    Args:
        func: Async callable to invoke.
        *args: Positional arguments for *func*.
        **kwargs: Keyword arguments for *func*.

    Returns:
        The function's return value on success, or a user-friendly error string.
    """
    try:
        return await func(*args, **kwargs)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Tool error in %s", func.__name__)
        return get_user_message(exc)
