"""Routes that manage the tool servers a user installed for themselves."""

from fastapi import APIRouter, Depends

from agenthub.handlers.dependencies import current_user_id, get_user_server_store
from agenthub.models.errors import InvalidInputError
from agenthub.models.tools import (
    CreateUserToolServerRequest,
    DeleteUserToolServerRequest,
    UpdateUserToolServerRequest,
    UserToolServer,
)
from agenthub.registry.user_servers import UserServerStore
from agenthub.utils.logging import get_logger

router = APIRouter(prefix="/api/user-mcp-servers")
logger = get_logger(__name__)


@router.get("")
async def list_user_servers(
    user_id: str = Depends(current_user_id),
    store: UserServerStore = Depends(get_user_server_store),
) -> dict[str, list[UserToolServer]]:
    """The session user's installed servers, newest first."""
    return {"servers": await store.list_servers(user_id)}


@router.post("")
async def create_user_server(
    body: CreateUserToolServerRequest,
    user_id: str = Depends(current_user_id),
    store: UserServerStore = Depends(get_user_server_store),
) -> dict[str, UserToolServer]:
    if not body.qualified_name or body.config is None:
        raise InvalidInputError("Missing qualified_name or config")
    server = await store.create(user_id, body.qualified_name, body.config)
    logger.info(
        "user_server_created", user_id=user_id, server_id=server.id, name=server.qualified_name
    )
    return {"server": server}


@router.put("")
async def update_user_server(
    body: UpdateUserToolServerRequest,
    user_id: str = Depends(current_user_id),
    store: UserServerStore = Depends(get_user_server_store),
) -> dict[str, UserToolServer]:
    if not body.id or body.config is None:
        raise InvalidInputError("Missing id or config")
    server = await store.update(user_id, body.id, body.config)
    logger.info("user_server_updated", user_id=user_id, server_id=server.id)
    return {"server": server}


@router.delete("")
async def delete_user_server(
    body: DeleteUserToolServerRequest,
    user_id: str = Depends(current_user_id),
    store: UserServerStore = Depends(get_user_server_store),
) -> dict[str, bool]:
    if not body.id:
        raise InvalidInputError("Missing id")
    await store.delete(user_id, body.id)
    logger.info("user_server_deleted", user_id=user_id, server_id=body.id)
    return {"success": True}
