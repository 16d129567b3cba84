"""MCP tools for inspecting and invalidating the response cache."""

import logging

from fastmcp import FastMCP

from src.cache.agent_context import AgentContextCache
from src.server import get_cache

logger = logging.getLogger(__name__)


def register_cache_admin_tools(mcp: FastMCP) -> None:
    """Register cache diagnostics tools on the MCP server."""

    @mcp.tool
    async def cache_status() -> str:
        """Show cache size, hit rates and tuning recommendations.

        Returns:
            Formatted cache report.
        """
        cache = get_cache()
        stats = cache.get_cache_stats()
        summary = cache.metrics.summary()
        agent = AgentContextCache(cache)

        lines = [
            "Cache status:",
            f"  Entries: {stats.total_entries}/{cache.config.max_entries}"
            f" ({stats.expired_entries} expired, awaiting sweep)",
            f"  Memory: {stats.memory_usage_mb:.1f} MB"
            f" (limit {cache.config.max_memory_mb:.0f} MB)",
            f"  Avg accesses per entry: {stats.average_access_count:.1f}",
            f"  Hit ratio: {summary.hit_ratio * 100:.0f}%"
            f" ({summary.total_hits} hits, {summary.total_misses} misses)",
            f"  Estimated tokens saved: {summary.estimated_cost_saved}",
            f"  Estimated calls avoided: {summary.estimated_calls_avoided}",
        ]
        if summary.operations:
            lines.append("\nBy operation:")
            for op in summary.operations:
                lines.append(
                    f"  {op.operation}: {op.hits} hits / {op.misses} misses"
                    f" ({op.hit_rate * 100:.0f}%)"
                )

        tips = agent.recommendations(agent.metrics())
        if tips:
            lines.append("\nRecommendations:")
            lines.extend(f"  - {tip}" for tip in tips)
        return "\n".join(lines)

    @mcp.tool
    async def invalidate_cache(
        pattern: str | None = None, task_id: int | None = None
    ) -> str:
        """Drop cached entries by wildcard pattern or by task.

        Args:
            pattern: Key pattern where "*" matches anything, e.g. "task_context:*".
            task_id: Drop every entry cached for this task.

        Returns:
            Number of entries removed.
        """
        if pattern is None and task_id is None:
            return "Provide a pattern or a task_id to invalidate."
        cache = get_cache()
        removed = 0
        if task_id is not None:
            removed += cache.invalidate_task(task_id)
            removed += AgentContextCache(cache).invalidate_task_context(task_id)
        if pattern is not None:
            removed += cache.invalidate_pattern(pattern)
        logger.info("Manual cache invalidation removed %d entries", removed)
        return f"Removed {removed} cache entr{'y' if removed == 1 else 'ies'}."

    @mcp.tool
    async def clear_cache(reset_metrics: bool = False) -> str:
        """Remove every cached entry.

        Args:
            reset_metrics: Also zero the hit/miss counters.

        Returns:
            Confirmation message.
        """
        cache = get_cache()
        count = len(cache)
        cache.clear()
        if reset_metrics:
            cache.metrics.reset()
        return f"Cleared {count} cache entries."
