"""
AgentHub ASGI application.

Serves the OAuth connect/callback routes and the tool resolution API. The
OAuth service and tool resolver are built once per process and shared by all
requests through `app.state`.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette import status

from agenthub import __version__
from agenthub.config import Config, get_config
from agenthub.handlers.health import health_check
from agenthub.handlers.oauth import router as oauth_router
from agenthub.handlers.tools import router as tools_router
from agenthub.handlers.user_servers import router as user_servers_router
from agenthub.middleware.session import SessionAuthMiddleware
from agenthub.models.errors import AgentHubError, ErrorCode
from agenthub.oauth.manager import OAuthService
from agenthub.oauth.store import CredentialStore, InMemoryCredentialStore, SupabaseCredentialStore
from agenthub.registry.user_servers import (
    InMemoryUserServerStore,
    SupabaseUserServerStore,
    UserServerStore,
)
from agenthub.tools.cache import ToolCache
from agenthub.tools.resolver import ToolResolver
from agenthub.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_ERROR_CODE: dict[ErrorCode, int] = {
    ErrorCode.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_PARAMETER: status.HTTP_400_BAD_REQUEST,
    ErrorCode.UNKNOWN_PROVIDER: status.HTTP_400_BAD_REQUEST,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.TOOL_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNKNOWN_TOOL_SERVER: status.HTTP_404_NOT_FOUND,
    ErrorCode.TOKEN_EXCHANGE_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.TOKEN_REFRESH_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.USER_SERVER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def build_credential_store(config: Config) -> CredentialStore:
    if config.credential_store == "supabase":
        if not config.supabase_url or not config.supabase_service_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
        return SupabaseCredentialStore(
            config.supabase_url,
            config.supabase_service_key.get_secret_value(),
            table=config.oauth_tokens_table,
        )
    return InMemoryCredentialStore()


def build_user_server_store(config: Config) -> UserServerStore:
    if config.credential_store == "supabase":
        if not config.supabase_url or not config.supabase_service_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
        return SupabaseUserServerStore(
            config.supabase_url,
            config.supabase_service_key.get_secret_value(),
            table=config.user_mcp_servers_table,
        )
    return InMemoryUserServerStore()


def build_components(config: Config) -> tuple[OAuthService, ToolResolver]:
    """Wires the credential store, OAuth service, tool cache and resolver together."""
    oauth = OAuthService(
        config.oauth_providers,
        build_credential_store(config),
        timeout=config.oauth_http_timeout,
    )
    cache = ToolCache(
        policy=config.tool_cache_policy,
        ttl=config.tool_cache_ttl,
        maxsize=config.tool_cache_maxsize,
    )
    resolver = ToolResolver(
        config.tool_servers, oauth, cache, connect_timeout=config.tool_connect_timeout
    )
    # A revoked credential must not keep serving tool lists built with it.
    oauth.add_revoke_listener(lambda user_id, _provider: cache.invalidate_user(user_id))
    return oauth, resolver


async def agenthub_error_handler(request: Request, exc: AgentHubError) -> JSONResponse:
    status_code = STATUS_BY_ERROR_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        error_code=exc.code.value,
        error_message=exc.message,
        details=exc.details,
    )
    return JSONResponse(exc.to_detail().model_dump(mode="json"), status_code=status_code)


def create_app(
    config: Config | None = None,
    *,
    oauth: OAuthService | None = None,
    resolver: ToolResolver | None = None,
    user_servers: UserServerStore | None = None,
) -> FastAPI:
    """
    Builds the application. `oauth`, `resolver` and `user_servers` are built
    from `config` at startup unless supplied.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting AgentHub server", version=__version__)
        logger.info(
            "Configuration loaded",
            environment=config.environment,
            log_level=config.log_level,
            credential_store=config.credential_store,
            tool_cache_policy=config.tool_cache_policy,
        )
        if app.state.oauth is None or app.state.resolver is None:
            app.state.oauth, app.state.resolver = build_components(config)
        if app.state.user_servers is None:
            app.state.user_servers = build_user_server_store(config)
        logger.info(
            "Components ready",
            oauth_providers=app.state.oauth.providers.keys(),
            tool_servers=app.state.resolver.registry.identifiers(),
        )
        yield
        logger.info("Shutting down AgentHub server")

    app = FastAPI(
        title="AgentHub",
        description="OAuth connections and MCP tool resolution for AgentHub agents.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.oauth = oauth
    app.state.resolver = resolver
    app.state.user_servers = user_servers

    app.include_router(oauth_router)
    app.include_router(tools_router)
    app.include_router(user_servers_router)
    app.add_exception_handler(AgentHubError, agenthub_error_handler)  # type: ignore[arg-type]

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """Health check endpoint."""
        return await health_check(request.app.state.oauth, request.app.state.resolver)

    if config.use_session_auth:
        logger.info("Session authentication enabled.")
        app.add_middleware(
            SessionAuthMiddleware,
            exclude_paths=["/health"],
            optional_path_prefixes=["/api/auth/callback/"],
        )
    else:
        logger.warning("Session authentication is disabled. This is not safe for production.")

    if config.cors_allowed_origins:
        origins = [origin.strip() for origin in config.cors_allowed_origins.split(",")]
        logger.info("CORS middleware enabled", allowed_origins=origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    return app
