import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from src.cache.engine import AdaptiveCache
from src.server import (
    _reset_cache,
    _reset_db,
    app_lifespan,
    get_cache,
    get_db,
    get_metrics,
    get_workflow_service,
    health_check,
    initialize,
    mcp,
    setup_logging,
)
from src.services.workflow import TaskWorkflowService


class TestSetupLogging:
    """Test setup_logging configuration."""

    def setup_method(self):
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()

    def teardown_method(self):
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()

    def test_sets_root_logger_level(self, tmp_path):
        setup_logging("DEBUG", tmp_path)
        assert logging.getLogger().level == logging.DEBUG

    def test_creates_console_handler(self, tmp_path):
        setup_logging("INFO", tmp_path)
        root = logging.getLogger()
        stream_handlers = [h for h in root.handlers if type(h) is logging.StreamHandler]
        assert len(stream_handlers) == 1

    def test_creates_file_handler(self, tmp_path):
        setup_logging("INFO", tmp_path)
        root = logging.getLogger()
        file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1

    def test_creates_log_directory(self, tmp_path):
        log_dir = tmp_path / "logs"
        assert not log_dir.exists()
        setup_logging("INFO", tmp_path)
        assert log_dir.exists()

    def test_log_file_path(self, tmp_path):
        setup_logging("INFO", tmp_path)
        root = logging.getLogger()
        file_handler = next(
            h for h in root.handlers if isinstance(h, RotatingFileHandler)
        )
        assert Path(file_handler.baseFilename) == tmp_path / "logs" / "server.log"

    def test_no_duplicate_handlers_on_second_call(self, tmp_path):
        setup_logging("INFO", tmp_path)
        setup_logging("INFO", tmp_path)
        root = logging.getLogger()
        stream_handlers = [h for h in root.handlers if type(h) is logging.StreamHandler]
        file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(stream_handlers) == 1
        assert len(file_handlers) == 1

    def test_invalid_log_level_falls_back_to_info(self, tmp_path):
        setup_logging("INVALID_LEVEL", tmp_path)
        assert logging.getLogger().level == logging.INFO



class TestInitialize:
    """Test the initialize function."""

    def setup_method(self):
        from src.config import reset_settings

        reset_settings()
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()

    def teardown_method(self):
        from src.config import reset_settings

        reset_settings()
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()

    def test_returns_mcp_instance(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        result = initialize()
        assert result is mcp

    def test_creates_data_dir(self, tmp_path, monkeypatch):
        data_dir = tmp_path / "new_data"
        monkeypatch.setenv("DATA_DIR", str(data_dir))
        initialize()
        assert data_dir.exists()

    def test_creates_logs_subdir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        initialize()
        assert (tmp_path / "logs").exists()

    def test_configures_logging(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        initialize()
        root = logging.getLogger()
        assert any(isinstance(h, RotatingFileHandler) for h in root.handlers)

    async def test_registers_tools(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        initialize()
        tools = await mcp.get_tools()
        for name in ("create_task", "get_task_context", "agent_context", "cache_status"):
            assert name in tools


class TestHealthCheck:
    """Test the /health custom route handler."""

    def setup_method(self):
        _reset_cache()

    def teardown_method(self):
        _reset_cache()

    async def test_health_returns_ok(self):
        response = await health_check(None)
        assert response.status_code == 200
        assert response.body == b'{"status":"ok"}'

    async def test_health_reports_cache_size(self):
        import src.server as server_module

        cache = AdaptiveCache(memory_probe=lambda: 0.0)
        cache.set("k", 1)
        server_module._cache = cache
        response = await health_check(None)
        assert response.body == b'{"status":"ok","cache_entries":1}'


class TestAppLifespan:
    """Test the async database and cache lifecycle."""

    def setup_method(self):
        from src.config import reset_settings

        reset_settings()
        _reset_db()
        _reset_cache()

    def teardown_method(self):
        from src.config import reset_settings

        reset_settings()
        _reset_db()
        _reset_cache()

    async def test_lifespan_initializes_and_closes(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        import src.server as server_module

        async with app_lifespan(mcp) as result:
            assert result["db"] is server_module._db
            assert result["cache"] is server_module._cache
            assert result["cache"].metrics is result["metrics"]
            assert result["cache"].running

        assert server_module._db is None
        assert server_module._cache is None

    async def test_lifespan_stops_sweeper(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))

        async with app_lifespan(mcp) as result:
            cache = result["cache"]

        assert not cache.running

    async def test_lifespan_creates_db_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        tmp_path.mkdir(parents=True, exist_ok=True)

        async with app_lifespan(mcp):
            assert (tmp_path / "workflow.db").exists()

    async def test_lifespan_applies_cache_settings(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("CACHE_MAX_ENTRIES", "25")
        monkeypatch.setenv("CACHE_DEFAULT_TTL_SECONDS", "30")

        async with app_lifespan(mcp):
            config = get_cache().config
            assert config.max_entries == 25
            assert config.default_ttl_seconds == 30


class TestAccessors:
    """Test the get_db, get_cache and get_workflow_service accessors."""

    def setup_method(self):
        _reset_db()
        _reset_cache()

    def teardown_method(self):
        _reset_db()
        _reset_cache()

    def test_get_db_raises_when_not_initialized(self):
        with pytest.raises(RuntimeError, match="Database not initialized"):
            get_db()

    def test_get_cache_raises_when_not_initialized(self):
        with pytest.raises(RuntimeError, match="Cache not initialized"):
            get_cache()

    def test_get_metrics_raises_when_not_initialized(self):
        with pytest.raises(RuntimeError, match="Cache not initialized"):
            get_metrics()

    async def test_accessors_during_lifespan(self, tmp_path, monkeypatch):
        from src.config import reset_settings

        reset_settings()
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        tmp_path.mkdir(parents=True, exist_ok=True)

        async with app_lifespan(mcp):
            assert get_db().connection is not None
            service = get_workflow_service()
            assert isinstance(service, TaskWorkflowService)
            assert service.cache is get_cache()
            assert get_metrics() is get_cache().metrics

        reset_settings()


class TestResetHelpers:
    """Test the _reset_db and _reset_cache helpers."""

    def test_reset_db_clears_reference(self):
        import src.server as server_module

        server_module._db = "sentinel"  # type: ignore[assignment]
        _reset_db()
        assert server_module._db is None

    def test_reset_cache_clears_reference(self):
        import src.server as server_module

        server_module._cache = "sentinel"  # type: ignore[assignment]
        _reset_cache()
        assert server_module._cache is None
