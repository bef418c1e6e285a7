"""Shared fixtures and helpers for rss_reader tests."""

from contextlib import contextmanager
from typing import Dict, Union
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from rss_reader.config import ServerConfig
from rss_reader.services.ingest import FeedIngestor
from rss_reader.storage.database import Database
from rss_reader.tools.context import AppContext, default_settings


RSS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:media="http://search.yahoo.com/mrss/">
    <channel>
        <title>{title}</title>
        <link>https://example.com/</link>
        <description>A test feed</description>
        {items}
    </channel>
</rss>
"""

ITEM_TEMPLATE = """
        <item>
            <title>{title}</title>
            <link>{link}</link>
            <description>Summary of {title}</description>
            <pubDate>Mon, 0{day} Jan 2024 12:00:00 GMT</pubDate>
        </item>
"""


def rss_feed(title: str = "Example Feed", count: int = 3, base: str = "https://example.com/post") -> str:
    """Build an RSS 2.0 document with ``count`` items."""
    items = "".join(
        ITEM_TEMPLATE.format(title=f"Post {i}", link=f"{base}{i}", day=i)
        for i in range(1, count + 1)
    )
    return RSS_TEMPLATE.format(title=title, items=items)


def feed_response(url: str, body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=body.encode("utf-8"),
        request=httpx.Request("GET", url),
    )


@contextmanager
def mock_feeds(responses: Dict[str, Union[str, httpx.Response, Exception]]):
    """Patch httpx.AsyncClient so GETs are served from ``responses``.

    Values may be a feed document string, a ready httpx.Response, or an
    exception to raise for that URL.
    """

    async def mock_get(url, **kwargs):
        value = responses[url]
        if isinstance(value, Exception):
            raise value
        if isinstance(value, httpx.Response):
            return value
        return feed_response(url, value)

    with patch("rss_reader.services.feed_parser.httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_instance.get = AsyncMock(side_effect=mock_get)
        mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
        mock_instance.__aexit__ = AsyncMock(return_value=None)
        mock_client.return_value = mock_instance
        yield mock_client


@pytest.fixture
def config(tmp_path):
    return ServerConfig(db_path=tmp_path / "rss_reader.db")


@pytest.fixture
async def db(config):
    """In-memory database, seeded with default settings."""
    database = await Database.open(":memory:", default_settings(config))
    yield database
    await database.close()


@pytest.fixture
def ingestor(db, config):
    return FeedIngestor(db, config)


@pytest.fixture
def mcp_ctx(db, ingestor, config):
    """Stand-in for the MCP Context passed to tools."""
    ctx = MagicMock()
    ctx.request_context.lifespan_context = AppContext(config=config, db=db, ingestor=ingestor)
    ctx.report_progress = AsyncMock()
    return ctx


@pytest.fixture
def anyio_backend():
    """The storage layer (aiosqlite) is asyncio-only."""
    return "asyncio"
