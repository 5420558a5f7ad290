"""Routes exposing tool server discovery, resolution and invocation."""

from typing import Any

from fastapi import APIRouter, Depends

from agenthub.handlers.dependencies import current_user_id, get_tool_resolver
from agenthub.models.tools import (
    InvokeToolRequest,
    ResolvedTool,
    ResolveToolsRequest,
    ToolServerInfo,
)
from agenthub.tools.resolver import ToolResolver
from agenthub.utils.logging import get_logger

router = APIRouter(prefix="/api/tools")
logger = get_logger(__name__)


@router.get("/servers")
async def list_tool_servers(
    resolver: ToolResolver = Depends(get_tool_resolver),
) -> list[ToolServerInfo]:
    """Tool servers an agent can enable."""
    return resolver.registry.describe()


@router.post("/resolve")
async def resolve_tools(
    body: ResolveToolsRequest,
    user_id: str = Depends(current_user_id),
    resolver: ToolResolver = Depends(get_tool_resolver),
) -> dict[str, list[ResolvedTool]]:
    tools = await resolver.resolve(body.enabled_servers, user_id)
    return {"tools": tools}


@router.post("/invoke")
async def invoke_tool(
    body: InvokeToolRequest,
    user_id: str = Depends(current_user_id),
    resolver: ToolResolver = Depends(get_tool_resolver),
) -> dict[str, Any]:
    bound_logger = logger.bind(user_id=user_id, tool_name=body.tool_name)
    result = await resolver.call_tool(body.enabled_servers, user_id, body.tool_name, body.arguments)
    bound_logger.info("tool_invoked")
    return {"result": result}
