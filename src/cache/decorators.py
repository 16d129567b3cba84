"""Decorator that puts an async method behind the cache."""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from src.cache.keys import generate_key

logger = logging.getLogger(__name__)


def cached_operation(
    operation: str,
    *,
    key_builder: Callable[..., str] | None = None,
    ttl: float | None = None,
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """Serve an async method from ``self.cache`` when possible.

    Args:
        operation: Logical operation name. Used for hit/miss metrics and, when
            *ttl* is not given, to look up the operation's TTL.
        key_builder: Builds the cache key from the method's keyword arguments.
            Defaults to ``generate_key(operation, kwargs)``.
        ttl: Fixed TTL in seconds, overriding the per-operation TTL.

    The decorated method must be called with keyword arguments only. ``None``
    results are returned but not cached.
    """

    def decorator(method: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(method)
        async def wrapper(self: Any, **kwargs: Any) -> Any:
            cache = self.cache
            key = key_builder(**kwargs) if key_builder else generate_key(operation, kwargs)

            cached = cache.get(key, operation=operation)
            if cached is not None:
                return cached

            result = await method(self, **kwargs)
            if result is not None:
                cache.set(
                    key,
                    result,
                    ttl if ttl is not None else cache.get_ttl_for_operation(operation),
                )
            return result

        return wrapper

    return decorator
