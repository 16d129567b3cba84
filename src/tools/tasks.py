"""MCP tools for creating and updating tasks, plans, subtasks and reports."""

import logging

from fastmcp import FastMCP

from src.errors import ValidationFailedError
from src.models.enums import ReportType, SubtaskStatus, TaskStatus, WorkflowRole
from src.models.task import ImplementationPlan, Report, Subtask, Task, TaskDescription
from src.server import get_workflow_service
from src.tools.error_messages import safe_tool_wrapper

logger = logging.getLogger(__name__)


def _split_lines(text: str | None) -> list[str]:
    if not text:
        return []
    return [line.strip() for line in text.splitlines() if line.strip()]


def register_task_tools(mcp: FastMCP) -> None:  # noqa: C901
    """Register task CRUD tools on the MCP server."""

    @mcp.tool
    async def create_task(
        name: str,
        description: str | None = None,
        acceptance_criteria: str | None = None,
        owner: str | None = None,
        priority: str = "medium",
        git_branch: str | None = None,
    ) -> str:
        """Create a new workflow task.

        Args:
            name: Short task title.
            description: What needs to be done.
            acceptance_criteria: One criterion per line.
            owner: Role that owns the task, e.g. "architect".
            priority: "low", "medium", "high" or "critical".
            git_branch: Branch the work happens on.

        Returns:
            Confirmation with the new task id.
        """

        async def _run() -> str:
            if not name.strip():
                raise ValidationFailedError("Task name must not be empty")
            service = get_workflow_service()
            task = Task(
                name=name.strip(),
                owner=WorkflowRole(owner) if owner else None,
                priority=priority,
                git_branch=git_branch,
            )
            details = (
                TaskDescription(
                    task_id=0,
                    description=description,
                    acceptance_criteria=_split_lines(acceptance_criteria),
                )
                if description
                else None
            )
            created = await service.create_task(task, details)
            return f"Created task {created.id}: {created.name} ({created.status.value})"

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def list_tasks(status: str | None = None, limit: int = 50) -> str:
        """List tasks, newest first. Results are cached for about a minute.

        Args:
            status: Only tasks in this status, e.g. "in-progress".
            limit: Maximum number of tasks to return.

        Returns:
            One line per task.
        """

        async def _run() -> str:
            service = get_workflow_service()
            tasks = await service.list_tasks(
                status=TaskStatus(status) if status else None, limit=limit
            )
            if not tasks:
                return f"No tasks with status '{status}'." if status else "No tasks yet."
            lines = [f"{len(tasks)} task(s):"]
            for t in tasks:
                owner = f" [{t['owner']}]" if t["owner"] else ""
                lines.append(f"  #{t['id']} {t['name']} ({t['status']}){owner}")
            return "\n".join(lines)

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def update_task_status(
        task_id: int,
        status: str,
        role: str | None = None,
        reason: str | None = None,
    ) -> str:
        """Move a task to a new workflow status and record the transition.

        Args:
            task_id: Task to update.
            status: New status, e.g. "needs-review".
            role: Role making the change.
            reason: Why the status changed.

        Returns:
            Confirmation of the new status.
        """

        async def _run() -> str:
            service = get_workflow_service()
            task = await service.update_task_status(
                task_id,
                TaskStatus(status),
                role=WorkflowRole(role) if role else None,
                reason=reason,
            )
            return f"Task {task.id} is now '{task.status.value}'."

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def update_task_description(
        task_id: int,
        description: str,
        business_requirements: str | None = None,
        technical_requirements: str | None = None,
        acceptance_criteria: str | None = None,
    ) -> str:
        """Replace a task's description and requirements.

        Args:
            task_id: Task to update.
            description: New description.
            business_requirements: Business-facing requirements.
            technical_requirements: Technical requirements.
            acceptance_criteria: One criterion per line.

        Returns:
            Confirmation message.
        """

        async def _run() -> str:
            service = get_workflow_service()
            await service.save_description(
                TaskDescription(
                    task_id=task_id,
                    description=description,
                    business_requirements=business_requirements,
                    technical_requirements=technical_requirements,
                    acceptance_criteria=_split_lines(acceptance_criteria),
                )
            )
            return f"Updated description for task {task_id}."

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def create_plan(
        task_id: int,
        overview: str,
        approach: str | None = None,
        technical_decisions: str | None = None,
    ) -> str:
        """Attach an implementation plan to a task.

        Args:
            task_id: Task the plan belongs to.
            overview: Summary of the plan.
            approach: How the work will be done.
            technical_decisions: Key decisions and trade-offs.

        Returns:
            Confirmation with the plan id.
        """

        async def _run() -> str:
            service = get_workflow_service()
            plan = await service.create_plan(
                ImplementationPlan(
                    task_id=task_id,
                    overview=overview,
                    approach=approach,
                    technical_decisions=technical_decisions,
                )
            )
            return f"Created plan {plan.id} for task {task_id}."

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def add_subtask(
        task_id: int,
        name: str,
        batch_id: str,
        sequence_number: int = 1,
        description: str | None = None,
        plan_id: int | None = None,
    ) -> str:
        """Add a subtask to a task's implementation batch.

        Args:
            task_id: Parent task.
            name: Subtask title.
            batch_id: Batch identifier, e.g. "B001".
            sequence_number: Order within the batch.
            description: What the subtask covers.
            plan_id: Implementation plan the subtask belongs to.

        Returns:
            Confirmation with the subtask id.
        """

        async def _run() -> str:
            service = get_workflow_service()
            subtask = await service.add_subtask(
                Subtask(
                    task_id=task_id,
                    plan_id=plan_id,
                    batch_id=batch_id,
                    sequence_number=sequence_number,
                    name=name,
                    description=description,
                )
            )
            return f"Added subtask {subtask.id} to task {task_id} (batch {batch_id})."

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def list_subtasks(
        task_id: int, batch_id: str | None = None, status: str | None = None
    ) -> str:
        """List a task's subtasks in batch order. Results are cached for a few minutes.

        Args:
            task_id: Parent task.
            batch_id: Only subtasks in this batch, e.g. "B001".
            status: Only subtasks in this status.

        Returns:
            One line per subtask.
        """

        async def _run() -> str:
            service = get_workflow_service()
            subtasks = await service.get_subtasks(
                task_id=task_id,
                batch_id=batch_id,
                status=SubtaskStatus(status) if status else None,
            )
            if not subtasks:
                return f"No matching subtasks for task {task_id}."
            lines = [f"{len(subtasks)} subtask(s) for task {task_id}:"]
            for s in subtasks:
                lines.append(
                    f"  #{s['id']} [{s['batch_id']}.{s['sequence_number']}]"
                    f" {s['name']} ({s['status']})"
                )
            return "\n".join(lines)

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def update_subtask_status(subtask_id: int, status: str) -> str:
        """Change a subtask's status.

        Args:
            subtask_id: Subtask to update.
            status: "not-started", "in-progress" or "completed".

        Returns:
            Confirmation message.
        """

        async def _run() -> str:
            service = get_workflow_service()
            subtask = await service.update_subtask_status(subtask_id, SubtaskStatus(status))
            return f"Subtask {subtask.id} is now '{subtask.status.value}'."

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def add_report(
        task_id: int,
        report_type: str,
        summary: str,
        findings: str | None = None,
    ) -> str:
        """Record a research, code review or completion report for a task.

        Args:
            task_id: Task the report covers.
            report_type: "research", "code_review" or "completion".
            summary: Report summary.
            findings: One finding per line.

        Returns:
            Confirmation with the report id.
        """

        async def _run() -> str:
            service = get_workflow_service()
            report = await service.add_report(
                Report(
                    task_id=task_id,
                    report_type=ReportType(report_type),
                    summary=summary,
                    findings=_split_lines(findings),
                )
            )
            return f"Added {report.report_type.value} report {report.id} to task {task_id}."

        return await safe_tool_wrapper(_run)
