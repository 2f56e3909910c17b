"""Application settings loaded from environment variables via pydantic-settings.

Two sources, in priority order:

    1. Environment variables -- e.g. CACHE_TTL_SECONDS=120 (always wins)
    2. .env file in the working directory (local development)

Field ``cache_ttl_seconds`` maps to env var ``CACHE_TTL_SECONDS``.  List
fields such as ``upstream_sources`` are read as JSON, e.g.
``UPSTREAM_SOURCES='["https://a.example/api.php", "https://b.example/"]'``.
An empty ``upstream_sources`` means "use the list in config/config.yaml".
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Relay settings.  Environment variables override defaults."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Upstream sources ===
    upstream_sources: list[str] = []
    default_user_agent: str = "Mozilla/5.0"

    # === Timeouts & retry ===
    probe_timeout_seconds: float = 5.0
    fetch_timeout_seconds: float = 10.0
    retry_backoff_seconds: float = 1.0  # attempt n waits n x this value
    search_max_attempts: int = 3
    direct_max_attempts: int = 2

    # === Response cache ===
    cacheable_query_kind: str = "search"
    cache_ttl_seconds: float = 300.0  # entries evicted at 2 x TTL

    # === Background maintenance ===
    background_tasks_enabled: bool = True
    cache_sweep_interval_seconds: float = 300.0
    health_check_interval_seconds: float = 600.0

    # === Media pass-through ===
    media_host_pattern: str = r"(^|\.)kuwo\.cn$"
    media_referer: str = "https://www.kuwo.cn/"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
