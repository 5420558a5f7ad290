"""Routes that connect, inspect and disconnect third-party OAuth providers."""

from urllib.parse import urlencode
from uuid import uuid4

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from agenthub.config import get_config
from agenthub.handlers.dependencies import (
    current_user_id,
    get_oauth_service,
    get_tool_resolver,
    session_user_id,
)
from agenthub.models.errors import AgentHubError, AuthorizationError, InvalidInputError
from agenthub.oauth.manager import OAuthService, parse_state
from agenthub.tools.resolver import ToolResolver
from agenthub.utils.logging import get_logger

router = APIRouter(prefix="/api/auth")
logger = get_logger(__name__)


class OAuthStartRequest(BaseModel):
    provider: str | None = None


def _require_provider(provider: str | None) -> str:
    if not provider:
        raise InvalidInputError("Provider is required")
    return provider


def _settings_redirect(**params: str) -> RedirectResponse:
    config = get_config()
    target = f"{config.public_base_url.rstrip('/')}{config.settings_path}?{urlencode(params)}"
    return RedirectResponse(target, status_code=303)


@router.post("/oauth")
async def start_oauth(
    body: OAuthStartRequest,
    user_id: str = Depends(current_user_id),
    oauth: OAuthService = Depends(get_oauth_service),
) -> dict[str, str]:
    """Issues the provider consent URL for the session user."""
    provider = _require_provider(body.provider)
    manager = oauth.manager(provider)
    auth_url = manager.build_authorization_url(str(uuid4()), user_id)
    logger.info("oauth_flow_started", provider=manager.provider.key, user_id=user_id)
    return {
        "auth_url": auth_url,
        "provider": provider,
        "message": "Redirect to this URL to complete OAuth flow",
    }


@router.get("/oauth")
async def oauth_status(
    provider: str | None = None,
    user_id: str = Depends(current_user_id),
    oauth: OAuthService = Depends(get_oauth_service),
) -> dict[str, object]:
    provider = _require_provider(provider)
    has_token = await oauth.manager(provider).has_valid_token(user_id)
    return {"provider": provider, "has_token": has_token, "connected": has_token}


@router.delete("/oauth")
async def revoke_oauth(
    provider: str | None = None,
    user_id: str = Depends(current_user_id),
    oauth: OAuthService = Depends(get_oauth_service),
) -> dict[str, str]:
    provider = _require_provider(provider)
    await oauth.revoke(user_id, provider)
    return {"provider": provider, "message": "OAuth token revoked successfully"}


@router.get("/callback/{provider}")
async def oauth_callback(
    provider: str,
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    oauth: OAuthService = Depends(get_oauth_service),
    resolver: ToolResolver = Depends(get_tool_resolver),
) -> RedirectResponse:
    """
    Completes the authorization-code flow.

    Always answers with a redirect to the settings page; failures carry a
    reason code instead of surfacing as HTTP errors.
    """
    if error:
        logger.warning("oauth_provider_error", provider=provider, error=error)
        return _settings_redirect(error=f"oauth_{error}")

    if not code or not state:
        return _settings_redirect(error="missing_oauth_params")

    try:
        _, user_id = parse_state(state)
        if session_user_id(request) != user_id:
            raise AuthorizationError("Session user does not match OAuth state")

        manager = oauth.manager(provider)
        credential = await manager.exchange_code(code)
        await manager.store_credential(user_id, credential)
    except AgentHubError as e:
        logger.warning(
            "oauth_callback_failed",
            provider=provider,
            error_code=e.code.value,
            error=e.message,
        )
        return _settings_redirect(error="oauth_callback_failed", reason=e.code.value.lower())

    # Tool lists resolved before this connection may hold unauthenticated servers.
    resolver.cache.invalidate_user(user_id)
    logger.info("oauth_connected", provider=manager.provider.key, user_id=user_id)
    return _settings_redirect(oauth_success=manager.provider.key)
