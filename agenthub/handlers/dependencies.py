"""Request-scoped accessors shared by the route handlers."""

from fastapi import Request

from agenthub.config import get_config
from agenthub.models.errors import AuthenticationError
from agenthub.oauth.manager import OAuthService
from agenthub.registry.user_servers import UserServerStore
from agenthub.tools.resolver import ToolResolver

# Trusted only when session authentication is disabled for local development.
DEV_USER_HEADER = "x-user-id"


def session_user_id(request: Request) -> str | None:
    """The authenticated user for this request, if any."""
    auth_context = getattr(request.state, "auth_context", None)
    if auth_context is not None and auth_context.user_id:
        return str(auth_context.user_id)
    if not get_config().use_session_auth:
        return request.headers.get(DEV_USER_HEADER) or None
    return None


def current_user_id(request: Request) -> str:
    user_id = session_user_id(request)
    if not user_id:
        raise AuthenticationError("Unauthorized")
    return user_id


def get_oauth_service(request: Request) -> OAuthService:
    return request.app.state.oauth


def get_tool_resolver(request: Request) -> ToolResolver:
    return request.app.state.resolver


def get_user_server_store(request: Request) -> UserServerStore:
    return request.app.state.user_servers
