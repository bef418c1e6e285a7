"""rss_reader - MCP Server with Decorators

This module implements the MCP server that exposes the feed ingestion engine
to clients, with multi-transport support (STDIO, SSE, and Streamable HTTP).
Tools are wrapped with exception handling and logging decorators at
registration time. The database and ingestor are created in the server
lifespan and shared by every tool call.
"""

import asyncio
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Optional

import click
from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from rss_reader.config import ServerConfig, get_config
from rss_reader.decorators.exception_handler import exception_handler
from rss_reader.decorators.tool_logger import tool_logger
from rss_reader.logging_config import setup_logging, logger
from rss_reader.services.ingest import FeedIngestor
from rss_reader.storage.database import Database
from rss_reader.tools.context import AppContext, default_settings
from rss_reader.tools.feed_tools import feed_tools


def create_lifespan(config: ServerConfig):
    """Build the server lifespan that owns the database connection."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
        logger.info(f"Opening database at {config.db_path}")
        db = await Database.open(config.db_path, default_settings(config))
        try:
            yield AppContext(config=config, db=db, ingestor=FeedIngestor(db, config))
        finally:
            await db.close()
            logger.info("Database closed")

    return lifespan


def create_mcp_server(config: Optional[ServerConfig] = None) -> FastMCP:
    """Create and configure the MCP server with decorators.

    Args:
        config: Optional server configuration

    Returns:
        Configured FastMCP server instance
    """
    if config is None:
        config = get_config()

    setup_logging(config)
    logger.info(f"Server config: {config.name} at log level {config.log_level}")

    # Configure DNS rebinding protection (disabled by default for development)
    dns_protection = os.getenv("MCP_DNS_REBINDING_PROTECTION", "false").lower() == "true"
    allowed_hosts_env = os.getenv("MCP_ALLOWED_HOSTS", "")
    allowed_hosts = [h.strip() for h in allowed_hosts_env.split(",") if h.strip()] if allowed_hosts_env else []

    logger.info(f"DNS rebinding protection: {'enabled' if dns_protection else 'disabled'}")
    if dns_protection and allowed_hosts:
        logger.info(f"Allowed hosts: {allowed_hosts}")

    mcp_server = FastMCP(
        config.name or "rss_reader",
        lifespan=create_lifespan(config),
        transport_security=TransportSecuritySettings(
            enable_dns_rebinding_protection=dns_protection,
            allowed_hosts=allowed_hosts
        )
    )

    register_tools(mcp_server, config)

    logger.info("Server initialization complete")
    return mcp_server


def register_tools(mcp_server: FastMCP, config: ServerConfig) -> None:
    """Register all MCP tools with the server using decorators.

    Registers decorated functions directly with MCP; functools.wraps keeps
    the original signatures visible for parameter introspection.
    """
    for tool_func in feed_tools:
        # Apply decorator chain: exception_handler → tool_logger
        decorated_func = exception_handler(tool_logger(tool_func, config.__dict__))

        tool_name = tool_func.__name__
        mcp_server.tool(name=tool_name)(decorated_func)

        logger.debug(f"Registered feed tool: {tool_name}")

    logger.info(f"Server '{mcp_server.name}' initialized with {len(feed_tools)} tools")


def _serve_http(server: FastMCP, host: str, port: int, transport: str) -> Awaitable[None]:
    server.settings.host = host
    server.settings.port = port
    if transport == "sse":
        return server.run_sse_async()
    server.settings.streamable_http_path = "/mcp"
    return server.run_streamable_http_async()


@click.command()
@click.option(
    "--transport",
    type=click.Choice(["stdio", "sse", "streamable-http"]),
    default="stdio",
    show_default=True,
    help="MCP transport to serve on",
)
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address for HTTP transports")
@click.option("--port", default=3001, show_default=True, help="Port for HTTP transports")
@click.option(
    "--db-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="SQLite file to use (overrides RSS_READER_DB_PATH)",
)
@click.option("--log-level", default=None, help="Log level (overrides RSS_READER_LOG_LEVEL)")
def main(transport: str, host: str, port: int, db_path: Optional[Path], log_level: Optional[str]) -> int:
    """Serve the RSS reader over MCP."""
    config = get_config()
    if db_path is not None:
        config.db_path = db_path
    if log_level:
        config.log_level = log_level.upper()

    server = create_mcp_server(config)

    if transport == "stdio":
        logger.info("Serving over STDIO")
        runner = server.run_stdio_async()
    else:
        logger.info(f"Serving over {transport} on {host}:{port}")
        runner = _serve_http(server, host, port, transport)

    try:
        asyncio.run(runner)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server exited with an error: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
