import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from src.cache.engine import AdaptiveCache
from src.cache.metrics import MetricsRecorder
from src.services.workflow import TaskWorkflowService
from src.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

_db: DatabaseManager | None = None
_cache: AdaptiveCache | None = None


def get_db() -> DatabaseManager:
    """Get the current DatabaseManager instance. Raises if not initialized."""
    if _db is None:
        raise RuntimeError("Database not initialized. Server lifespan has not started.")
    return _db


def get_cache() -> AdaptiveCache:
    """Get the cache owned by the running server. Raises if not initialized."""
    if _cache is None:
        raise RuntimeError("Cache not initialized. Server lifespan has not started.")
    return _cache


def get_metrics() -> MetricsRecorder:
    """Get the metrics recorder of the running cache. Raises if not initialized."""
    return get_cache().metrics


def get_workflow_service() -> TaskWorkflowService:
    """Build a workflow service over the server's database and cache."""
    return TaskWorkflowService(get_db(), get_cache())


def _reset_db() -> None:
    """Clear the module-level DB reference. Used in tests."""
    global _db  # noqa: PLW0603
    _db = None


def _reset_cache() -> None:
    """Clear the module-level cache reference. Used in tests."""
    global _cache  # noqa: PLW0603
    _cache = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    """Manage async resources (database, cache sweep) for the server lifecycle."""
    global _db, _cache  # noqa: PLW0603
    from src.config import get_settings

    settings = get_settings()
    _db = DatabaseManager(settings.db_path)
    await _db.initialize()
    logger.info("Database initialized")

    metrics = MetricsRecorder()
    _cache = AdaptiveCache(settings.cache_config(), metrics=metrics)
    _cache.start()

    try:
        yield {"db": _db, "cache": _cache, "metrics": metrics}
    finally:
        await _cache.shutdown()
        _cache = None
        await _db.close()
        _db = None
        logger.info("Database closed")


mcp = FastMCP("task-workflow", lifespan=app_lifespan)


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request | None) -> JSONResponse:
    """Liveness probe for HTTP transports."""
    body: dict = {"status": "ok"}
    if _cache is not None:
        body["cache_entries"] = len(_cache)
    return JSONResponse(body)


def setup_logging(log_level: str, data_dir: Path) -> None:
    """Configure logging with file rotation and console output.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        data_dir: Base data directory. Logs go to data_dir/logs/server.log.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Exact type check; FileHandler subclasses StreamHandler.
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    log_dir = data_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "server.log"

    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def initialize() -> FastMCP:
    """Set up directories, logging, and register tools. Returns the MCP server."""
    from src.config import get_settings

    settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    (settings.data_dir / "logs").mkdir(exist_ok=True)

    setup_logging(settings.log_level, settings.data_dir)

    from src.tools.cache_admin import register_cache_admin_tools
    from src.tools.context import register_context_tools
    from src.tools.tasks import register_task_tools

    register_task_tools(mcp)
    register_context_tools(mcp)
    register_cache_admin_tools(mcp)

    logger.info("Task workflow MCP server initialized")
    return mcp
