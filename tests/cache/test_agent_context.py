"""Tests for src.cache.agent_context: agent-facing context caching."""

from unittest.mock import AsyncMock

from src.cache.agent_context import (
    CONVERSATION_TTL,
    TASK_CONTEXT_TTL,
    WORKFLOW_SESSION_TTL,
    AgentContextCache,
    ContextLoaders,
    conversation_key,
    task_context_key,
    workflow_session_key,
)
from src.cache.engine import AdaptiveCache
from src.models.cache import CacheConfig


def make_loaders() -> ContextLoaders:
    return ContextLoaders(
        get_task=AsyncMock(return_value={"id": 7, "name": "Cache"}),
        get_workflow_status=AsyncMock(return_value={"status": "in-progress"}),
        get_reports=AsyncMock(return_value={"research": []}),
        get_plans=AsyncMock(return_value=[{"id": 1}]),
    )


class TestKeys:
    def test_task_context_key(self):
        assert task_context_key(7) == "agent_context:task:7"

    def test_workflow_session_key(self):
        assert workflow_session_key("s1") == "agent_session:workflow:s1"

    def test_conversation_key(self):
        assert conversation_key("c1", "analysis") == "conversation:c1:analysis"


class TestGetSet:
    def test_task_context_round_trip_with_ttl(self, cache: AdaptiveCache):
        agent = AgentContextCache(cache)
        agent.set_task_context(7, {"task": {"id": 7}})
        assert agent.get_task_context(7) == {"task": {"id": 7}}
        assert cache.snapshot("agent_context:task:7").ttl_seconds == TASK_CONTEXT_TTL  # type: ignore[union-attr]

    def test_workflow_session_ttl(self, cache: AdaptiveCache):
        agent = AgentContextCache(cache)
        agent.set_workflow_session("s1", {"tasks": [1]})
        assert agent.get_workflow_session("s1") == {"tasks": [1]}
        assert cache.snapshot("agent_session:workflow:s1").ttl_seconds == WORKFLOW_SESSION_TTL  # type: ignore[union-attr]

    def test_conversation_ttl(self, cache: AdaptiveCache):
        agent = AgentContextCache(cache)
        agent.set_conversation_context("c1", "analysis", {"notes": []})
        assert agent.get_conversation_context("c1", "analysis") == {"notes": []}
        assert cache.snapshot("conversation:c1:analysis").ttl_seconds == CONVERSATION_TTL  # type: ignore[union-attr]

    def test_miss_records_metrics(self, cache: AdaptiveCache):
        AgentContextCache(cache).get_task_context(99)
        assert cache.metrics.get("agent_context").misses == 1  # type: ignore[union-attr]


class TestPreload:
    async def test_loads_all_parts(self, cache: AdaptiveCache):
        agent = AgentContextCache(cache)
        loaders = make_loaders()
        context = await agent.preload_task_context(7, loaders)
        assert context["task"] == {"id": 7, "name": "Cache"}
        assert context["workflow_status"] == {"status": "in-progress"}
        assert context["reports"] == {"research": []}
        assert context["plans"] == [{"id": 1}]
        assert context["cache_type"] == "agent_comprehensive_context"
        assert "loaded_at" in context
        assert agent.get_task_context(7) == context

    async def test_second_preload_uses_cache(self, cache: AdaptiveCache):
        agent = AgentContextCache(cache)
        loaders = make_loaders()
        await agent.preload_task_context(7, loaders)
        await agent.preload_task_context(7, loaders)
        loaders.get_task.assert_awaited_once()  # type: ignore[attr-defined]


class TestInvalidate:
    def test_removes_task_session_and_conversation_entries(self, cache: AdaptiveCache):
        agent = AgentContextCache(cache)
        agent.set_task_context(7, {})
        agent.set_workflow_session("7", {})
        agent.set_conversation_context("c1", "task:7", {})
        agent.set_task_context(8, {})
        assert agent.invalidate_task_context(7) == 3
        assert cache.keys() == ["agent_context:task:8"]

    def test_task_id_must_match_whole_segment(self, cache: AdaptiveCache):
        agent = AgentContextCache(cache)
        for task_id in ("1", "12", "21"):
            agent.set_task_context(task_id, {})
            agent.set_workflow_session(task_id, {})
            agent.set_conversation_context("c1", f"task:{task_id}", {})
        assert agent.invalidate_task_context(1) == 3
        assert sorted(cache.keys()) == [
            "agent_context:task:12",
            "agent_context:task:21",
            "agent_session:workflow:12",
            "agent_session:workflow:21",
            "conversation:c1:task:12",
            "conversation:c1:task:21",
        ]


class TestMetrics:
    def test_empty_cache(self, cache: AdaptiveCache):
        metrics = AgentContextCache(cache).metrics()
        assert metrics["total_entries"] == 0
        assert metrics["agent_cache_entries"] == 0
        assert metrics["agent_cache_ratio"] == 0.0

    def test_counts_agent_entries(self, cache: AdaptiveCache):
        agent = AgentContextCache(cache)
        agent.set_task_context(1, {"x": 1})
        agent.set_conversation_context("c1", "analysis", {})
        cache.set("task_context:1:full", {})
        cache.set("mcp:task_list:abc", [])
        metrics = agent.metrics()
        assert metrics["agent_cache_entries"] == 2
        assert metrics["agent_cache_ratio"] == 0.5
        assert metrics["estimated_calls_avoided"] == 6
        assert metrics["estimated_tokens_saved"] == 2  # '{"x": 1}' + '{}'

    def test_metrics_do_not_touch_entries(self, cache: AdaptiveCache):
        agent = AgentContextCache(cache)
        agent.set_task_context(1, {})
        agent.metrics()
        assert cache.snapshot("agent_context:task:1").access_count == 0  # type: ignore[union-attr]


class TestRecommendations:
    def test_sparse_cache_gets_both_usage_tips(self, cache: AdaptiveCache):
        agent = AgentContextCache(cache)
        tips = agent.recommendations(agent.metrics())
        assert len(tips) == 2
        assert any("comprehensive context" in t for t in tips)
        assert any("Preload" in t for t in tips)

    def test_near_capacity(self, clock):
        cache = AdaptiveCache(
            CacheConfig(max_entries=10), memory_probe=lambda: 0.0, clock=clock
        )
        agent = AgentContextCache(cache)
        for i in range(9):
            agent.set_task_context(i, {})
        tips = agent.recommendations(agent.metrics())
        assert any("near capacity" in t for t in tips)
        assert not any("comprehensive context" in t for t in tips)
        assert not any("Preload" in t for t in tips)
