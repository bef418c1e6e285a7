"""Integration tests driving the MCP server through an in-memory client session."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner
from mcp.shared.memory import create_connected_server_and_client_session

from rss_reader.config import ServerConfig
from rss_reader.server.app import create_mcp_server, main

from conftest import mock_feeds, rss_feed


pytestmark = pytest.mark.anyio

FEED_URL = "https://example.com/feed.xml"


@pytest.fixture
def server(tmp_path):
    config = ServerConfig(name="rss-reader-test", db_path=tmp_path / "data" / "reader.db")
    return create_mcp_server(config)


def _payload(result) -> dict:
    assert not result.isError
    return json.loads(result.content[0].text)


async def test_tools_are_listed(server):
    async with create_connected_server_and_client_session(server) as client:
        tools = await client.list_tools()

    names = {tool.name for tool in tools.tools}
    assert {"add_feed", "refresh_all_feeds", "list_articles", "set_theme"} <= names

    add_feed = next(tool for tool in tools.tools if tool.name == "add_feed")
    assert "ctx" not in add_feed.inputSchema["properties"]
    assert add_feed.inputSchema["required"] == ["url"]


async def test_add_feed_then_browse(server, tmp_path):
    """Test a feed added over MCP is persisted and browsable."""
    with mock_feeds({FEED_URL: rss_feed("Example Feed", 2)}):
        async with create_connected_server_and_client_session(server) as client:
            added = _payload(await client.call_tool("add_feed", {"url": FEED_URL}))
            listed = _payload(await client.call_tool("list_articles", {}))
            feeds = _payload(await client.call_tool("list_feeds", {}))

    assert added["success"] is True
    assert added["article_count"] == 2
    assert listed["count"] == 2
    assert listed["articles"][0]["feed_title"] == "Example Feed"
    assert feeds["feeds"][0]["url"] == FEED_URL
    assert (tmp_path / "data" / "reader.db").exists()


async def test_settings_defaults_survive_session(server):
    async with create_connected_server_and_client_session(server) as client:
        theme = _payload(await client.call_tool("get_theme", {}))
        interval = _payload(await client.call_tool("get_autoplay_interval", {}))

    assert theme["theme"] == "light"
    assert interval["interval_ms"] == 5000


def test_cli_applies_overrides(tmp_path):
    """Test the command line options reach the server configuration."""
    server = MagicMock()
    server.run_stdio_async = AsyncMock()
    db_path = tmp_path / "cli.db"

    with patch("rss_reader.server.app.get_config", return_value=ServerConfig()), \
            patch("rss_reader.server.app.create_mcp_server", return_value=server) as factory:
        result = CliRunner().invoke(main, ["--db-path", str(db_path), "--log-level", "debug"])

    assert result.exit_code == 0
    config = factory.call_args.args[0]
    assert config.db_path == db_path
    assert config.log_level == "DEBUG"
    server.run_stdio_async.assert_awaited_once()
