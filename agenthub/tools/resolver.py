"""Resolves enabled tool server identifiers into callable, namespaced tools."""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from jsonschema import SchemaError, ValidationError, validate, validators
from mcp.types import CallToolResult, Tool

from agenthub.models.errors import (
    AgentHubError,
    InvalidInputError,
    ServerConnectionError,
    ToolExecutionError,
    ToolNotFoundError,
    UnknownToolServerError,
)
from agenthub.models.tools import ResolvedTool, ToolServerDescriptor, oauth_placeholder_provider
from agenthub.oauth.manager import OAuthService
from agenthub.registry.tool_servers import ToolServerRegistry
from agenthub.tools.cache import ToolCache
from agenthub.tools.connections import DEFAULT_TIMEOUT, call_server_tool, connect_and_list_tools
from agenthub.utils.logging import get_logger

logger = get_logger(__name__)

TOOL_NAME_SEPARATOR = "__"

# Identifiers served by the agent runtime itself rather than an MCP server.
BUILTIN_SERVERS = frozenset({"memory"})

ToolLister = Callable[[ToolServerDescriptor], Awaitable[list[Tool]]]
ToolCaller = Callable[[ToolServerDescriptor, str, dict[str, Any]], Awaitable[CallToolResult]]


class ToolResolver:
    """
    Turns a list of enabled tool server identifiers into the tools an agent can
    bind for one turn.

    Every server is connected independently. A server that is unknown,
    unreachable or misbehaving drops out of the result; it never fails the
    turn.
    """

    def __init__(
        self,
        registry: ToolServerRegistry,
        oauth: OAuthService,
        cache: ToolCache,
        *,
        connect_timeout: float = DEFAULT_TIMEOUT,
        lister: ToolLister = connect_and_list_tools,
        caller: ToolCaller = call_server_tool,
    ) -> None:
        self.registry = registry
        self.oauth = oauth
        self.cache = cache
        self.connect_timeout = connect_timeout
        self._lister = lister
        self._caller = caller

    async def build_connection_config(
        self, descriptor: ToolServerDescriptor, user_id: str
    ) -> ToolServerDescriptor:
        """
        Substitutes `OAUTH:<provider>` header placeholders with the user's
        bearer token. A missing token leaves the placeholder in place, and the
        server then rejects the connection on its own.
        """
        if not descriptor.headers:
            return descriptor
        headers: dict[str, str] = {}
        for name, value in descriptor.headers.items():
            provider = oauth_placeholder_provider(value)
            if provider:
                token = await self.oauth.get_access_token(user_id, provider)
                if token:
                    value = f"Bearer {token}"
                else:
                    logger.warning(
                        "tool_server_oauth_token_missing",
                        server=descriptor.identifier,
                        provider=provider,
                        user_id=user_id,
                    )
            headers[name] = value
        return descriptor.model_copy(update={"headers": headers})

    def _namespace(self, identifier: str, tools: Iterable[Tool]) -> list[ResolvedTool]:
        resolved = []
        for tool in tools:
            schema = tool.inputSchema or {"type": "object"}
            try:
                validators.validator_for(schema).check_schema(schema)
            except SchemaError as e:
                logger.warning(
                    "tool_schema_invalid", server=identifier, tool=tool.name, error=e.message
                )
                continue
            resolved.append(
                ResolvedTool(
                    name=f"{identifier}{TOOL_NAME_SEPARATOR}{tool.name}",
                    original_name=tool.name,
                    server_identifier=identifier,
                    description=tool.description or "",
                    parameter_schema=schema,
                )
            )
        return resolved

    async def _connect(self, descriptor: ToolServerDescriptor, user_id: str) -> list[ResolvedTool]:
        """Builds the authenticated config, then connects and lists one server."""
        config = await self.build_connection_config(descriptor, user_id)
        try:
            tools = await asyncio.wait_for(self._lister(config), timeout=self.connect_timeout)
        except TimeoutError as e:
            raise ServerConnectionError(config.identifier, "timed out") from e
        except Exception as e:
            raise ServerConnectionError(config.identifier, str(e) or type(e).__name__) from e
        return self._namespace(config.identifier, tools)

    def _requested(self, enabled: Iterable[str]) -> list[str]:
        """Deduplicated identifiers, in request order, minus runtime built-ins."""
        return [i for i in dict.fromkeys(enabled) if i not in BUILTIN_SERVERS]

    async def _resolve_uncached(self, identifiers: list[str], user_id: str) -> list[ResolvedTool]:
        descriptors: list[ToolServerDescriptor] = []
        for identifier in identifiers:
            try:
                descriptors.append(self.registry.require(identifier))
            except UnknownToolServerError as e:
                logger.warning("tool_server_unknown", server=identifier, error=e.message)

        if not descriptors:
            logger.info("tool_servers_none_enabled", user_id=user_id)
            return []

        results = await asyncio.gather(
            *(self._connect(descriptor, user_id) for descriptor in descriptors),
            return_exceptions=True,
        )

        tools: list[ResolvedTool] = []
        for descriptor, result in zip(descriptors, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "tool_server_connection_failed",
                    server=descriptor.identifier,
                    error=str(result),
                )
                continue
            logger.info(
                "tool_server_connected", server=descriptor.identifier, tool_count=len(result)
            )
            tools.extend(result)
        return tools

    async def resolve(self, enabled: Iterable[str], user_id: str) -> list[ResolvedTool]:
        """
        Returns the namespaced tools of every enabled server that could be
        reached. Never raises; a structural failure yields an empty list.
        """
        identifiers = self._requested(enabled)
        key = ToolCache.key(identifiers, user_id)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("tool_cache_hit", key=key, tool_count=len(cached))
            return cached

        logger.info("tool_cache_miss", servers=identifiers, user_id=user_id)
        try:
            tools = await self._resolve_uncached(identifiers, user_id)
        except Exception as e:
            logger.error("tool_resolution_failed", servers=identifiers, error=str(e), exc_info=True)
            return []

        self.cache.set(key, tools)
        return tools

    async def describe(self, enabled: Iterable[str], user_id: str) -> list[str]:
        """One '- name: description' line per resolved tool, for system prompts."""
        enabled = list(enabled)
        tools = await self.resolve(enabled, user_id)
        lines = [f"- {tool.name}: {tool.description}" for tool in tools]
        if "memory" in enabled:
            lines.append(
                "- memory: Store and retrieve user profile information and conversation context"
            )
        return lines

    async def call_tool(
        self,
        enabled: Iterable[str],
        user_id: str,
        tool_name: str,
        arguments: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Calls a resolved tool by its namespaced name.

        Raises:
            ToolNotFoundError: No enabled server provides `tool_name`.
            InvalidInputError: `arguments` do not match the tool's schema.
            ToolExecutionError: The connection failed or the tool reported an error.
        """
        tools = await self.resolve(enabled, user_id)
        tool = next((t for t in tools if t.name == tool_name), None)
        if tool is None:
            raise ToolNotFoundError(tool_name)

        try:
            validate(instance=arguments, schema=tool.parameter_schema)
        except ValidationError as e:
            raise InvalidInputError(
                f"Invalid arguments: {e.message}", {"tool_name": tool_name}
            ) from e

        descriptor = self.registry.require(tool.server_identifier)
        config = await self.build_connection_config(descriptor, user_id)
        try:
            result = await asyncio.wait_for(
                self._caller(config, tool.original_name, arguments), timeout=self.connect_timeout
            )
        except AgentHubError:
            raise
        except Exception as e:
            logger.error(
                "tool_call_failed", server=tool.server_identifier, tool=tool_name, error=str(e)
            )
            raise ToolExecutionError(
                f"Calling '{tool_name}' failed: {str(e) or type(e).__name__}",
                {"server": tool.server_identifier},
            ) from e

        payload = result.model_dump(mode="json", exclude_none=True)
        if result.isError:
            raise ToolExecutionError(
                f"Tool '{tool_name}' reported an error",
                {"server": tool.server_identifier, "content": payload.get("content", [])},
            )
        return payload
