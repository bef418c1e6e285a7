"""Objects shared by the MCP tools for the lifetime of the server."""

from dataclasses import dataclass

from mcp.server.fastmcp import Context

from rss_reader.config import ServerConfig
from rss_reader.services.ingest import FeedIngestor
from rss_reader.storage.database import Database

THEME_KEY = "theme"
AUTOPLAY_INTERVAL_KEY = "autoplay_interval_ms"


@dataclass
class AppContext:
    """Lifespan state: the open database and the ingestor bound to it."""

    config: ServerConfig
    db: Database
    ingestor: FeedIngestor


def default_settings(config: ServerConfig) -> dict:
    """Settings seeded into a new database."""
    return {
        THEME_KEY: config.default_theme,
        AUTOPLAY_INTERVAL_KEY: str(config.autoplay_interval_ms),
    }


def get_app_context(ctx: Context) -> AppContext:
    """Return the AppContext stored by the server lifespan.

    Raises:
        RuntimeError: If called outside a server request
    """
    if ctx is None:
        raise RuntimeError("Tool called without an MCP request context")
    return ctx.request_context.lifespan_context
