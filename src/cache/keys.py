"""Cache key derivation, per-operation TTLs and hit cost estimation."""

import json
import logging
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"

# Shorter TTLs for volatile data, longer for stable data.
OPERATION_TTLS: dict[str, float] = {
    "task_list": 60.0,
    "workflow_status": 120.0,
    "subtask_batch": 180.0,
    "task_context": 300.0,
    "reports": 600.0,
    "research": 1800.0,
}


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits: list[str] = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def hash_string(text: str) -> str:
    """Fold *text* into a short base-36 string with a 32-bit rolling hash."""
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _to_base36(abs(value))


def _stringify_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _stringify_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(v) for v in value]
    return value


def canonical_json(params: Mapping[str, Any]) -> str:
    """Serialize *params* with sorted keys so insertion order never matters.

    Mapping keys are compared as strings, so mixed key types still sort.
    """
    return json.dumps(
        _stringify_keys(params), sort_keys=True, separators=(",", ":"), default=str
    )


def generate_key(namespace: str, params: Mapping[str, Any]) -> str:
    """Build a bounded-length cache key for an MCP operation.

    Args:
        namespace: Logical operation name, e.g. ``"task_context"``.
        params: Operation parameters. Key order does not affect the result.

    Returns:
        A key of the form ``mcp:<namespace>:<hash>``.
    """
    return f"mcp:{namespace}:{hash_string(canonical_json(params))}"


def generate_db_key(table: str, query: Mapping[str, Any]) -> str:
    """Build a cache key for a raw database query on *table*."""
    return f"db:{table}:{hash_string(canonical_json(query))}"


def get_ttl_for_operation(operation: str, default: float) -> float:
    """Return the tuned TTL for *operation*, or *default* when unknown."""
    return OPERATION_TTLS.get(operation, default)


def estimate_cost(value: Any) -> int:
    """Estimate tokens saved by serving *value* from cache (~4 chars/token).

    Serialization failures are not fatal: the estimate is simply 0.
    """
    try:
        return len(json.dumps(value, default=str)) // 4
    except (TypeError, ValueError, RecursionError) as exc:
        logger.debug("Cost estimation failed: %s", exc)
        return 0
