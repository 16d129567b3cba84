"""Per-operation hit/miss accounting for the cache."""

import logging
import threading

from src.models.cache import MetricsSummary, OperationMetrics

logger = logging.getLogger(__name__)


class MetricsRecorder:
    """Thread-safe hit/miss counters keyed by logical operation name.

    Args:
        calls_saved_per_hit: Rough number of downstream calls a single hit
            stands in for. Used only for the ``estimated_calls_avoided``
            figure, which is computed rather than measured.
    """

    def __init__(self, calls_saved_per_hit: int = 3) -> None:
        self.calls_saved_per_hit = calls_saved_per_hit
        self._lock = threading.Lock()
        self._operations: dict[str, OperationMetrics] = {}

    def _entry(self, operation: str) -> OperationMetrics:
        metrics = self._operations.get(operation)
        if metrics is None:
            metrics = OperationMetrics(operation=operation)
            self._operations[operation] = metrics
        return metrics

    def record_hit(self, operation: str, cost_saved: int = 0) -> None:
        with self._lock:
            metrics = self._entry(operation)
            metrics.hits += 1
            metrics.estimated_cost_saved += max(cost_saved, 0)

    def record_miss(self, operation: str) -> None:
        with self._lock:
            self._entry(operation).misses += 1

    def get(self, operation: str) -> OperationMetrics | None:
        """Return a copy of the counters for *operation*, if any were recorded."""
        with self._lock:
            metrics = self._operations.get(operation)
            return metrics.model_copy() if metrics else None

    def all(self) -> list[OperationMetrics]:
        with self._lock:
            return [
                self._operations[name].model_copy()
                for name in sorted(self._operations)
            ]

    def summary(self) -> MetricsSummary:
        """Aggregate every operation into a single snapshot."""
        operations = self.all()
        hits = sum(m.hits for m in operations)
        misses = sum(m.misses for m in operations)
        total = hits + misses
        return MetricsSummary(
            total_hits=hits,
            total_misses=misses,
            hit_ratio=hits / total if total else 0.0,
            estimated_cost_saved=sum(m.estimated_cost_saved for m in operations),
            estimated_calls_avoided=hits * self.calls_saved_per_hit,
            operations=operations,
        )

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()
        logger.debug("Cache metrics reset")
