import pytest

from src.cache.engine import AdaptiveCache
from src.cache.metrics import MetricsRecorder
from src.models.cache import CacheConfig
from src.services.workflow import TaskWorkflowService
from src.storage.database import DatabaseManager
from tests.factories import FakeClock


@pytest.fixture
def tmp_data_dir(tmp_path):
    """Provide a temporary data directory for tests that touch the filesystem."""
    return tmp_path / "data"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> AdaptiveCache:
    """Cache with a fake clock and a memory probe that never reports pressure."""
    return AdaptiveCache(
        CacheConfig(max_entries=100),
        metrics=MetricsRecorder(),
        memory_probe=lambda: 0.0,
        clock=clock,
    )


@pytest.fixture
async def db():
    """In-memory SQLite database with schema applied."""
    manager = DatabaseManager(":memory:")
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def service(db: DatabaseManager, cache: AdaptiveCache) -> TaskWorkflowService:
    return TaskWorkflowService(db, cache)
