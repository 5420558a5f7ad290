"""Tests for MCP client session handling, with the transports mocked out."""

from contextlib import asynccontextmanager
from datetime import timedelta
from importlib.metadata import version
from unittest.mock import AsyncMock, MagicMock

import pytest
from mcp.types import CallToolResult, ListToolsResult, TextContent

from agenthub.models.tools import ToolServerDescriptor
from agenthub.tools.connections import call_server_tool, connect_and_list_tools
from tests.conftest import make_tool


@pytest.fixture
def session(mocker) -> AsyncMock:
    """The ClientSession every connection opens."""
    session = AsyncMock()
    session.list_tools.return_value = ListToolsResult(tools=[make_tool("search")])
    session.call_tool.return_value = CallToolResult(content=[TextContent(type="text", text="ok")])

    session_cls = mocker.patch("agenthub.tools.connections.ClientSession")
    session_cls.return_value.__aenter__.return_value = session
    return session


@pytest.fixture
def transports(mocker) -> dict[str, MagicMock]:
    """Records the arguments each transport was opened with."""
    calls = {"stdio": MagicMock(), "http": MagicMock()}

    @asynccontextmanager
    async def fake_stdio(params):
        calls["stdio"](params)
        yield "read", "write"

    @asynccontextmanager
    async def fake_http(url, headers=None, timeout=None):
        calls["http"](url, headers=headers, timeout=timeout)
        yield "read", "write", lambda: "session-id"

    mocker.patch("agenthub.tools.connections.stdio_client", fake_stdio)
    mocker.patch("agenthub.tools.connections.streamablehttp_client", fake_http)
    return calls


@pytest.mark.asyncio
async def test_stdio_server_is_launched_with_command_and_env(session, transports):
    config = ToolServerDescriptor(
        identifier="tavily",
        transport="stdio",
        command="npx",
        args=["-y", "tavily-mcp"],
        env={"TAVILY_API_KEY": "key"},
    )

    tools = await connect_and_list_tools(config)

    assert [t.name for t in tools] == ["search"]
    params = transports["stdio"].call_args.args[0]
    assert params.command == "npx"
    assert params.args == ["-y", "tavily-mcp"]
    assert params.env == {"TAVILY_API_KEY": "key"}
    session.initialize.assert_awaited_once()
    transports["http"].assert_not_called()


@pytest.mark.asyncio
async def test_http_server_receives_substituted_headers(session, transports):
    config = ToolServerDescriptor(
        identifier="gmail",
        transport="http",
        url="https://gmail-mcp.example.com/mcp",
        headers={"Authorization": "Bearer token-1"},
    )

    await connect_and_list_tools(config)

    transports["http"].assert_called_once_with(
        "https://gmail-mcp.example.com/mcp",
        headers={"Authorization": "Bearer token-1"},
        timeout=timedelta(seconds=30),
    )
    session.initialize.assert_awaited_once()


@pytest.mark.asyncio
async def test_call_server_tool_uses_original_name(session, transports):
    config = ToolServerDescriptor(identifier="tavily", transport="stdio", command="npx")

    result = await call_server_tool(config, "search", {"query": "weather"})

    session.call_tool.assert_awaited_once_with("search", {"query": "weather"})
    assert result.content[0].text == "ok"


def test_http_transport_comes_from_the_pinned_mcp_client():
    from mcp.client.streamable_http import streamablehttp_client

    from agenthub.tools import connections

    assert connections.streamablehttp_client is streamablehttp_client
    assert int(version("mcp").split(".")[0]) < 2
