"""MCP tools that serve cached task context to agents."""

import json
import logging

from fastmcp import FastMCP

from src.errors import ValidationFailedError
from src.models.enums import ContextLevel
from src.server import get_workflow_service
from src.tools.error_messages import safe_tool_wrapper

logger = logging.getLogger(__name__)

AGENT_CONTEXT_OPERATIONS = (
    "get_comprehensive_context",
    "get_conversation_context",
    "preload_context",
    "get_cache_metrics",
)


def _to_json(payload: object) -> str:
    return json.dumps(payload, indent=2, default=str)


def register_context_tools(mcp: FastMCP) -> None:
    """Register task-context retrieval tools on the MCP server."""

    @mcp.tool
    async def get_task_context(task_id: int, include_level: str = "full") -> str:
        """Get a task with its related records in one call.

        Args:
            task_id: Task to load.
            include_level: "basic" (task + description), "full" (adds plans
                and subtasks) or "comprehensive" (adds reports and workflow
                history).

        Returns:
            JSON document with the requested context.
        """

        async def _run() -> str:
            service = get_workflow_service()
            context = await service.get_task_context(
                task_id=task_id, include_level=ContextLevel(include_level)
            )
            return _to_json(context)

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def agent_context(
        operation: str,
        task_id: int | None = None,
        conversation_id: str | None = None,
        context_type: str | None = None,
        include_workflow_history: bool = True,
        include_reports: bool = True,
        include_plans: bool = True,
        include_subtasks: bool = True,
    ) -> str:
        """Reduce round-trips by serving whole task contexts from cache.

        Operations:
            get_comprehensive_context: task, plans, subtasks, reports and
                workflow status in one response (needs task_id).
            get_conversation_context: conversation-level scratch context
                (needs conversation_id and context_type).
            preload_context: warm the cache for a task (needs task_id).
            get_cache_metrics: cache efficiency figures and recommendations.

        Returns:
            JSON document with the operation's result.
        """

        async def _run() -> str:
            service = get_workflow_service()
            logger.info("Agent context operation: %s", operation)

            if operation == "get_comprehensive_context":
                if task_id is None:
                    raise ValidationFailedError("task_id is required for comprehensive context")
                data = await service.get_comprehensive_context(
                    task_id,
                    include_workflow_history=include_workflow_history,
                    include_reports=include_reports,
                    include_plans=include_plans,
                    include_subtasks=include_subtasks,
                )
            elif operation == "get_conversation_context":
                if not conversation_id or not context_type:
                    raise ValidationFailedError(
                        "conversation_id and context_type are required for conversation context"
                    )
                data = service.get_conversation_context(conversation_id, context_type)
            elif operation == "preload_context":
                if task_id is None:
                    raise ValidationFailedError("task_id is required for preload context")
                data = {
                    "task_id": task_id,
                    "preloaded": True,
                    "context": await service.preload_context(task_id),
                }
            elif operation == "get_cache_metrics":
                metrics = service.agent_context.metrics()
                data = {
                    "cache_metrics": metrics,
                    "operations": service.cache.metrics.summary().model_dump(),
                    "recommendations": service.agent_context.recommendations(metrics),
                }
            else:
                raise ValidationFailedError(
                    f"Unknown operation '{operation}'. "
                    f"Use one of: {', '.join(AGENT_CONTEXT_OPERATIONS)}"
                )

            return _to_json({"success": True, "operation": operation, "data": data})

        return await safe_tool_wrapper(_run)
