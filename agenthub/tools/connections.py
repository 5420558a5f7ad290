"""MCP client connections to tool servers."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import CallToolResult, Tool

from agenthub.models.tools import ToolServerDescriptor

DEFAULT_TIMEOUT = 30.0


@asynccontextmanager
async def open_session(
    config: ToolServerDescriptor, timeout: float = DEFAULT_TIMEOUT
) -> AsyncIterator[ClientSession]:
    """
    Opens an initialized MCP session to a tool server.

    `config` is a descriptor whose header placeholders have already been
    substituted. The subprocess or HTTP stream is closed on exit.
    """
    if config.transport == "stdio":
        params = StdioServerParameters(
            command=config.command or "",
            args=list(config.args),
            env=dict(config.env) or None,
        )
        async with stdio_client(params) as (read_stream, write_stream):
            async with ClientSession(read_stream, write_stream) as session:
                await session.initialize()
                yield session
    else:
        async with streamablehttp_client(
            config.url or "",
            headers=dict(config.headers) or None,
            timeout=timedelta(seconds=timeout),
        ) as (read_stream, write_stream, _session_id):
            async with ClientSession(read_stream, write_stream) as session:
                await session.initialize()
                yield session


async def connect_and_list_tools(config: ToolServerDescriptor) -> list[Tool]:
    """Connects to a tool server and returns the tools it advertises."""
    async with open_session(config) as session:
        result = await session.list_tools()
        return list(result.tools)


async def call_server_tool(
    config: ToolServerDescriptor, name: str, arguments: dict[str, Any]
) -> CallToolResult:
    """Connects to a tool server and calls one of its tools by its original name."""
    async with open_session(config) as session:
        return await session.call_tool(name, arguments)
