"""Configuration for rss_reader.

Settings are read from environment variables once at startup and passed
explicitly to the server factory and the ingestion engine.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _default_db_path() -> Path:
    return Path.home() / ".rss_reader" / "rss_reader.db"


@dataclass
class ServerConfig:
    """Runtime configuration for the server and ingestion engine."""

    name: str = "rss_reader"
    log_level: str = "INFO"
    db_path: Path = field(default_factory=_default_db_path)
    fetch_timeout: float = 10.0
    user_agent: str = "RSSReader/1.0 (+feed ingestion)"
    default_category: str = "General"
    default_theme: str = "light"
    autoplay_interval_ms: int = 5000


def _env_number(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from e


def load_config() -> ServerConfig:
    """Build a ServerConfig from RSS_READER_* environment variables.

    Returns:
        A fresh ServerConfig instance

    Raises:
        ValueError: If a numeric variable cannot be parsed
    """
    defaults = ServerConfig()
    db_path = os.environ.get("RSS_READER_DB_PATH")

    return ServerConfig(
        name=os.environ.get("RSS_READER_NAME", defaults.name),
        log_level=os.environ.get("RSS_READER_LOG_LEVEL", defaults.log_level).upper(),
        db_path=Path(db_path) if db_path else defaults.db_path,
        fetch_timeout=_env_number(
            "RSS_READER_FETCH_TIMEOUT", defaults.fetch_timeout, float
        ),
        user_agent=os.environ.get("RSS_READER_USER_AGENT", defaults.user_agent),
        default_category=os.environ.get(
            "RSS_READER_DEFAULT_CATEGORY", defaults.default_category
        ),
        default_theme=os.environ.get("RSS_READER_DEFAULT_THEME", defaults.default_theme),
        autoplay_interval_ms=_env_number(
            "RSS_READER_AUTOPLAY_INTERVAL_MS", defaults.autoplay_interval_ms, int
        ),
    )


_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config

    if _config is None:
        _config = load_config()

    return _config
