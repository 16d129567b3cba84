from pathlib import Path

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.cache import CacheConfig


class Settings(BaseSettings):
    """Application configuration loaded from environment variables and .env file.

    Cache limits map onto :class:`~src.models.cache.CacheConfig`; every
    duration is in seconds.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Transport and bind address
    mcp_transport: str = "stdio"
    mcp_host: str = "0.0.0.0"
    mcp_port: int = 8000

    # Paths & logging. Default is <project_root>/data so it works
    # regardless of the process working directory.
    data_dir: Path = Path(__file__).resolve().parent.parent / "data"
    log_level: str = "INFO"

    # Cache limits
    cache_default_ttl_seconds: float = 300.0
    cache_max_entries: int = 1000
    # Compared against the whole process RSS, which is already near 100 MB
    # once the MCP stack is imported.
    cache_max_memory_mb: float = 512.0
    cache_cleanup_interval_seconds: float = 60.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def db_path(self) -> Path:
        return self.data_dir / "workflow.db"

    def cache_config(self) -> CacheConfig:
        """Build the cache limits from the ``CACHE_*`` settings."""
        return CacheConfig(
            default_ttl_seconds=self.cache_default_ttl_seconds,
            max_entries=self.cache_max_entries,
            max_memory_mb=self.cache_max_memory_mb,
            cleanup_interval_seconds=self.cache_cleanup_interval_seconds,
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached Settings singleton. Created on first call."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached settings. Used in tests."""
    global _settings  # noqa: PLW0603
    _settings = None
