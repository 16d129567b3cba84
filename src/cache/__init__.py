from src.cache.agent_context import AgentContextCache, ContextLoaders
from src.cache.decorators import cached_operation
from src.cache.engine import AdaptiveCache
from src.cache.keys import (
    OPERATION_TTLS,
    estimate_cost,
    generate_db_key,
    generate_key,
    get_ttl_for_operation,
    hash_string,
)
from src.cache.metrics import MetricsRecorder
from src.cache.pressure import process_memory_mb

__all__ = [
    "OPERATION_TTLS",
    "AdaptiveCache",
    "AgentContextCache",
    "ContextLoaders",
    "MetricsRecorder",
    "cached_operation",
    "estimate_cost",
    "generate_db_key",
    "generate_key",
    "get_ttl_for_operation",
    "hash_string",
    "process_memory_mb",
]
