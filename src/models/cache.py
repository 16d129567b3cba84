from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class CacheConfig(BaseModel):
    """Process-wide cache limits, fixed at construction.

    ``max_memory_mb`` is compared against the memory probe, which by default
    reports the RSS of the whole process rather than the cache's own size.
    The 100 MB default suits a custom probe that measures the cache alone.
    With the default probe, use a limit above the process baseline, as
    ``Settings.cache_max_memory_mb`` (512 MB) does; otherwise every ``set``
    triggers a bulk eviction.
    """

    model_config = ConfigDict(frozen=True)

    default_ttl_seconds: float = Field(default=300.0, gt=0)
    max_entries: int = Field(default=1000, ge=1)
    max_memory_mb: float = Field(default=100.0, gt=0)
    cleanup_interval_seconds: float = Field(default=60.0, gt=0)


class CacheEntry(BaseModel):
    key: str
    value: Any
    created_at: float
    ttl_seconds: float
    access_count: int = 0
    last_accessed_at: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl_seconds

    def age(self, now: float) -> float:
        return now - self.created_at


class CacheStats(BaseModel):
    total_entries: int
    memory_usage_mb: float
    expired_entries: int
    average_access_count: float
    oldest_entry_age_seconds: float
    newest_entry_age_seconds: float


class OperationMetrics(BaseModel):
    operation: str
    hits: int = 0
    misses: int = 0
    estimated_cost_saved: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


class MetricsSummary(BaseModel):
    total_hits: int
    total_misses: int
    hit_ratio: float
    estimated_cost_saved: int
    estimated_calls_avoided: int
    operations: list[OperationMetrics] = []
