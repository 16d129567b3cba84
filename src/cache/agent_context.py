"""Agent-facing context caching built on :class:`AdaptiveCache`.

An agent usually needs a task, its plans, its reports and its workflow
history together. Caching that bundle under one key replaces several tool
calls with one. The keys embed the task id, so any write to the task can
drop the bundle with :meth:`AgentContextCache.invalidate_task_context`.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from src.cache.engine import AdaptiveCache
from src.cache.keys import estimate_cost

logger = logging.getLogger(__name__)

TASK_CONTEXT_TTL = 600.0
WORKFLOW_SESSION_TTL = 300.0
CONVERSATION_TTL = 120.0
CALLS_AVOIDED_PER_ENTRY = 3

_AGENT_KEY_PREFIXES = ("agent_", "conversation:")


@dataclass
class ContextLoaders:
    """Async producers for each part of a task's agent context."""

    get_task: Callable[[], Awaitable[Any]]
    get_workflow_status: Callable[[], Awaitable[Any]]
    get_reports: Callable[[], Awaitable[Any]]
    get_plans: Callable[[], Awaitable[Any]]


def task_context_key(task_id: int | str) -> str:
    return f"agent_context:task:{task_id}"


def workflow_session_key(session_id: str) -> str:
    return f"agent_session:workflow:{session_id}"


def conversation_key(conversation_id: str, context_type: str) -> str:
    return f"conversation:{conversation_id}:{context_type}"


class AgentContextCache:
    """Typed get/set helpers for agent context, conversation and session data."""

    def __init__(self, cache: AdaptiveCache) -> None:
        self.cache = cache

    def get_task_context(self, task_id: int | str) -> dict | None:
        return self.cache.get(task_context_key(task_id), operation="agent_context")

    def set_task_context(self, task_id: int | str, context: dict) -> None:
        self.cache.set(task_context_key(task_id), context, ttl=TASK_CONTEXT_TTL)

    def get_workflow_session(self, session_id: str) -> dict | None:
        return self.cache.get(workflow_session_key(session_id), operation="agent_session")

    def set_workflow_session(self, session_id: str, context: dict) -> None:
        self.cache.set(workflow_session_key(session_id), context, ttl=WORKFLOW_SESSION_TTL)

    def get_conversation_context(self, conversation_id: str, context_type: str) -> dict | None:
        return self.cache.get(
            conversation_key(conversation_id, context_type), operation="conversation"
        )

    def set_conversation_context(
        self, conversation_id: str, context_type: str, context: dict
    ) -> None:
        self.cache.set(
            conversation_key(conversation_id, context_type), context, ttl=CONVERSATION_TTL
        )

    async def preload_task_context(self, task_id: int | str, loaders: ContextLoaders) -> dict:
        """Load and cache the full context for *task_id* unless already cached."""

        async def load() -> dict:
            task, workflow_status, reports, plans = await asyncio.gather(
                loaders.get_task(),
                loaders.get_workflow_status(),
                loaders.get_reports(),
                loaders.get_plans(),
            )
            logger.debug("Loaded agent context for task %s", task_id)
            return {
                "task": task,
                "workflow_status": workflow_status,
                "reports": reports,
                "plans": plans,
                "loaded_at": datetime.now(UTC).isoformat(),
                "cache_type": "agent_comprehensive_context",
            }

        return await self.cache.preload(
            task_context_key(task_id), load, ttl=TASK_CONTEXT_TTL, operation="agent_context"
        )

    def invalidate_task_context(self, task_id: int | str) -> int:
        """Drop the task's context, sessions and task-scoped conversations.

        The task id must be the whole last segment of the key, so task 1
        leaves task 12 alone.
        """
        task = re.escape(str(task_id))
        return self.cache.invalidate_matching(
            rf"^(?:agent_context:task:{task}"
            rf"|agent_session:.*:{task}"
            rf"|conversation:.*:task:{task})$"
        )

    def metrics(self) -> dict:
        """Cache stats plus estimates of the agent calls the cache has absorbed."""
        stats = self.cache.get_cache_stats()
        keys = self.cache.keys()
        agent_keys = [k for k in keys if k.startswith(_AGENT_KEY_PREFIXES)]

        tokens_saved = 0
        for key in agent_keys:
            entry = self.cache.snapshot(key)
            if entry is not None:
                tokens_saved += estimate_cost(entry.value)

        return {
            **stats.model_dump(),
            "agent_cache_entries": len(agent_keys),
            "agent_cache_ratio": len(agent_keys) / len(keys) if keys else 0.0,
            "estimated_calls_avoided": len(agent_keys) * CALLS_AVOIDED_PER_ENTRY,
            "estimated_tokens_saved": tokens_saved,
        }

    def recommendations(self, metrics: dict) -> list[str]:
        tips: list[str] = []
        if metrics["agent_cache_ratio"] < 0.3:
            tips.append(
                "Consider using more comprehensive context calls to improve cache efficiency"
            )
        if metrics["estimated_calls_avoided"] < 10:
            tips.append("Preload context for frequently accessed tasks to reduce MCP calls")
        if metrics["total_entries"] > self.cache.config.max_entries * 0.8:
            tips.append(
                "Cache is near capacity - consider clearing old entries or increasing limits"
            )
        return tips
