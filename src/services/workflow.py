"""Cache-aware task workflow operations.

Reads go through the cache with per-operation TTLs. Every write invalidates
the cache entries of the task it touched. Task-scoped keys therefore carry
the task id as a ``:``-delimited segment.
"""

import logging
from datetime import UTC, datetime

from src.cache.agent_context import AgentContextCache, ContextLoaders
from src.cache.decorators import cached_operation
from src.cache.engine import AdaptiveCache
from src.cache.keys import generate_db_key
from src.errors import InvalidTransitionError
from src.models.enums import ContextLevel, SubtaskStatus, TaskStatus, WorkflowRole
from src.models.task import (
    ImplementationPlan,
    Report,
    Subtask,
    Task,
    TaskDescription,
    WorkflowTransition,
)
from src.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})
TASK_LIST_PATTERN = "mcp:task_list:*"


def _task_context_key(
    task_id: int, include_level: ContextLevel = ContextLevel.FULL, **_: object
) -> str:
    return f"task_context:{task_id}:{ContextLevel(include_level).value}"


def _workflow_status_key(task_id: int, **_: object) -> str:
    return f"workflow_status:{task_id}:latest"


def _reports_key(task_id: int, **_: object) -> str:
    return f"reports:{task_id}:all"


def _subtask_batch_key(
    task_id: int,
    batch_id: str | None = None,
    status: SubtaskStatus | None = None,
    **_: object,
) -> str:
    query = generate_db_key(
        "subtasks", {"batch_id": batch_id, "status": status.value if status else None}
    )
    return f"subtask_batch:{task_id}:{query}"


class TaskWorkflowService:
    """Task, plan, subtask and report operations backed by DB and cache.

    Args:
        db: Initialized database manager.
        cache: Shared cache instance.
    """

    def __init__(self, db: DatabaseManager, cache: AdaptiveCache) -> None:
        self.db = db
        self.cache = cache
        self.agent_context = AgentContextCache(cache)

    # ── Cached reads ──────────────────────────────────────────────────────

    @cached_operation("task_list")
    async def list_tasks(
        self, *, status: TaskStatus | None = None, limit: int = 50
    ) -> list[dict]:
        tasks = await self.db.list_tasks(status=status, limit=limit)
        return [t.model_dump(mode="json") for t in tasks]

    @cached_operation("workflow_status", key_builder=_workflow_status_key)
    async def get_workflow_status(self, *, task_id: int) -> dict:
        task = await self.db.get_task(task_id)
        transitions = await self.db.get_transitions(task_id)
        return {
            "task_id": task_id,
            "status": task.status.value,
            "owner": task.owner.value if task.owner else None,
            "transitions": [t.model_dump(mode="json") for t in transitions],
        }

    @cached_operation("reports", key_builder=_reports_key)
    async def get_reports(self, *, task_id: int) -> dict:
        grouped = await self.db.get_reports(task_id)
        return {
            report_type: [r.model_dump(mode="json") for r in reports]
            for report_type, reports in grouped.items()
        }

    @cached_operation("subtask_batch", key_builder=_subtask_batch_key)
    async def get_subtasks(
        self,
        *,
        task_id: int,
        batch_id: str | None = None,
        status: SubtaskStatus | None = None,
    ) -> list[dict]:
        await self.db.get_task(task_id)
        subtasks = await self.db.get_subtasks(task_id, status=status, batch_id=batch_id)
        return [s.model_dump(mode="json") for s in subtasks]

    async def get_plans(self, *, task_id: int) -> list[dict]:
        plans = await self.db.get_plans(task_id)
        subtasks = await self.db.get_subtasks(task_id)
        result = []
        for plan in plans:
            data = plan.model_dump(mode="json")
            data["subtasks"] = [
                s.model_dump(mode="json") for s in subtasks if s.plan_id == plan.id
            ]
            result.append(data)
        return result

    @cached_operation("task_context", key_builder=_task_context_key)
    async def get_task_context(
        self,
        *,
        task_id: int,
        include_level: ContextLevel = ContextLevel.FULL,
    ) -> dict:
        """Task with description, plus plans and subtasks at ``full`` and above.

        ``comprehensive`` adds reports and recent workflow transitions.
        """
        task = await self.db.get_task(task_id)
        description = await self.db.get_description(task_id)
        context: dict = {
            "task": task.model_dump(mode="json"),
            "description": description.model_dump(mode="json") if description else None,
            "include_level": include_level.value,
        }
        if include_level in (ContextLevel.FULL, ContextLevel.COMPREHENSIVE):
            context["plans"] = await self.get_plans(task_id=task_id)
            subtasks = await self.db.get_subtasks(task_id)
            context["subtasks"] = [s.model_dump(mode="json") for s in subtasks]
        if include_level == ContextLevel.COMPREHENSIVE:
            grouped = await self.db.get_reports(task_id)
            context["reports"] = {
                k: [r.model_dump(mode="json") for r in v] for k, v in grouped.items()
            }
            transitions = await self.db.get_transitions(task_id)
            context["transitions"] = [t.model_dump(mode="json") for t in transitions]
        return context

    # ── Agent context ─────────────────────────────────────────────────────

    def context_loaders(self, task_id: int) -> ContextLoaders:
        async def get_task() -> dict:
            return (await self.db.get_task(task_id)).model_dump(mode="json")

        return ContextLoaders(
            get_task=get_task,
            get_workflow_status=lambda: self.get_workflow_status(task_id=task_id),
            get_reports=lambda: self.get_reports(task_id=task_id),
            get_plans=lambda: self.get_plans(task_id=task_id),
        )

    async def get_comprehensive_context(
        self,
        task_id: int,
        *,
        include_workflow_history: bool = True,
        include_reports: bool = True,
        include_plans: bool = True,
        include_subtasks: bool = True,
    ) -> dict:
        cached = self.agent_context.get_task_context(task_id)
        if cached is not None:
            logger.info("Cache hit for comprehensive context: %s", task_id)
            return {**cached, "cached": True}

        logger.info("Loading comprehensive context for task: %s", task_id)
        task = await self.db.get_task(task_id)
        subtasks = await self.db.get_subtasks(task_id) if include_subtasks else None
        context = {
            "task": task.model_dump(mode="json"),
            "workflow_status": (
                await self.get_workflow_status(task_id=task_id)
                if include_workflow_history
                else None
            ),
            "reports": await self.get_reports(task_id=task_id) if include_reports else None,
            "plans": await self.get_plans(task_id=task_id) if include_plans else None,
            "subtasks": (
                [s.model_dump(mode="json") for s in subtasks] if subtasks is not None else None
            ),
            "metadata": {
                "loaded_at": datetime.now(UTC).isoformat(),
                "include_flags": {
                    "workflow_history": include_workflow_history,
                    "reports": include_reports,
                    "plans": include_plans,
                    "subtasks": include_subtasks,
                },
            },
        }
        self.agent_context.set_task_context(task_id, context)
        return {**context, "cached": False}

    async def preload_context(self, task_id: int) -> dict:
        await self.db.get_task(task_id)
        return await self.agent_context.preload_task_context(
            task_id, self.context_loaders(task_id)
        )

    def get_conversation_context(self, conversation_id: str, context_type: str) -> dict:
        cached = self.agent_context.get_conversation_context(conversation_id, context_type)
        if cached is not None:
            return {**cached, "cached": True}

        empty = {
            "conversation_id": conversation_id,
            "context_type": context_type,
            "data": {},
            "created_at": datetime.now(UTC).isoformat(),
        }
        self.agent_context.set_conversation_context(conversation_id, context_type, empty)
        return {**empty, "cached": False}

    # ── Writes ────────────────────────────────────────────────────────────

    def invalidate_task(self, task_id: int) -> int:
        """Drop every cached read that covers *task_id*, including task lists."""
        removed = self.cache.invalidate_task(task_id)
        removed += self.agent_context.invalidate_task_context(task_id)
        removed += self.cache.invalidate_pattern(TASK_LIST_PATTERN)
        logger.debug("Invalidated %d cache entries after write to task %s", removed, task_id)
        return removed

    async def create_task(
        self, task: Task, description: TaskDescription | None = None
    ) -> Task:
        created = await self.db.create_task(task)
        assert created.id is not None
        if description is not None:
            await self.db.save_description(description.model_copy(update={"task_id": created.id}))
        await self.db.record_transition(
            WorkflowTransition(
                task_id=created.id,
                to_status=created.status,
                role=created.owner,
                reason="Task created",
            )
        )
        self.cache.invalidate_pattern(TASK_LIST_PATTERN)
        logger.info("Created task %s: %s", created.id, created.name)
        return created

    async def update_task_status(
        self,
        task_id: int,
        status: TaskStatus,
        role: WorkflowRole | None = None,
        reason: str | None = None,
    ) -> Task:
        current = await self.db.get_task(task_id)
        if current.status == status:
            raise InvalidTransitionError(f"Task {task_id} is already '{status.value}'")
        if current.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Task {task_id} is '{current.status.value}' and cannot change status"
            )

        updated = await self.db.update_task_status(task_id, status)
        await self.db.record_transition(
            WorkflowTransition(
                task_id=task_id,
                from_status=current.status,
                to_status=status,
                role=role,
                reason=reason,
            )
        )
        self.invalidate_task(task_id)
        return updated

    async def save_description(self, description: TaskDescription) -> None:
        await self.db.get_task(description.task_id)
        await self.db.save_description(description)
        self.invalidate_task(description.task_id)

    async def create_plan(self, plan: ImplementationPlan) -> ImplementationPlan:
        await self.db.get_task(plan.task_id)
        created = await self.db.create_plan(plan)
        self.invalidate_task(plan.task_id)
        return created

    async def add_subtask(self, subtask: Subtask) -> Subtask:
        await self.db.get_task(subtask.task_id)
        created = await self.db.add_subtask(subtask)
        self.invalidate_task(subtask.task_id)
        return created

    async def update_subtask_status(self, subtask_id: int, status: SubtaskStatus) -> Subtask:
        updated = await self.db.update_subtask_status(subtask_id, status)
        self.invalidate_task(updated.task_id)
        return updated

    async def add_report(self, report: Report) -> Report:
        await self.db.get_task(report.task_id)
        created = await self.db.add_report(report)
        self.invalidate_task(report.task_id)
        return created
