import hashlib
import time
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, cast

import httpx
from authlib.jose import JoseError, JsonWebKey, jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from agenthub.config import get_config
from agenthub.models.auth import AuthContext
from agenthub.utils.logging import get_logger

logger = get_logger(__name__)

SESSION_VALIDATION_SLOW_MS = 1000


class SessionAuthError(Exception):
    """Session token could not be validated."""

    def __init__(self, error: str, description: str, status_code: int):
        self.error = error
        self.description = description
        self.status_code = status_code
        super().__init__(f"{error}: {description}")


@lru_cache(maxsize=16)
def _get_cached_jwks(jwks_uri: str) -> dict[str, Any]:
    """
    Fetch and cache the issuer's JWKS, keyed by URI.
    """
    logger.info("session_jwks_fetching", jwks_uri=jwks_uri)
    try:
        response = httpx.get(jwks_uri, timeout=5.0)
        response.raise_for_status()
        jwks_data = response.json()
    except httpx.HTTPError as e:
        logger.error("session_jwks_fetch_failed", jwks_uri=jwks_uri, error=str(e))
        raise SessionAuthError("server_error", f"Failed to fetch JWKS: {e}", 503) from e
    logger.info(
        "session_jwks_fetch_success", jwks_uri=jwks_uri, key_count=len(jwks_data.get("keys", []))
    )
    return cast(dict[str, Any], jwks_data)


def validate_session_token(token: str, token_hash: str, issuer: str, jwks_uri: str) -> AuthContext:
    """Validates a session JWT against the issuer's JWKS."""
    start_time = time.monotonic()

    try:
        jwks_data = _get_cached_jwks(jwks_uri)
        claims = jwt.decode(
            token,
            JsonWebKey.import_key_set(jwks_data),
            claims_options={
                "iss": {"essential": True, "value": issuer},
                "exp": {"essential": True},
                "sub": {"essential": True},
            },
        )
        claims.validate()
    except SessionAuthError:
        raise
    except JoseError as e:
        logger.warning("session_jwt_validation_failed", token_hash=token_hash[:8], error=str(e))
        raise SessionAuthError("invalid_token", f"Token validation failed: {e}", 401) from e
    except ValueError as e:
        logger.warning("session_jwt_malformed", token_hash=token_hash[:8], error=str(e))
        raise SessionAuthError("invalid_token", "Malformed session token", 401) from e

    auth_context = AuthContext(
        is_valid=True,
        token_hash=token_hash,
        scopes=claims.get("scope", "").split(),
        expires_at=datetime.fromtimestamp(claims["exp"], tz=UTC),
        client_id=claims.get("azp") or claims.get("client_id"),
        user_id=claims.get("sub"),
    )

    duration_ms = (time.monotonic() - start_time) * 1000
    if duration_ms > SESSION_VALIDATION_SLOW_MS:
        logger.warning(
            "session_validation_slow",
            duration_ms=round(duration_ms, 2),
            threshold_ms=SESSION_VALIDATION_SLOW_MS,
        )
    return auth_context


def _error_response(error: str, description: str, status_code: int = 401) -> JSONResponse:
    """Builds an OAuth 2.0 style bearer error response."""
    content = {"error": error, "error_description": description}
    headers = {"WWW-Authenticate": f'Bearer error="{error}", error_description="{description}"'}
    return JSONResponse(content=content, status_code=status_code, headers=headers)


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """
    Authenticates the calling user from a session JWT.

    The token is read from the Authorization header or, for browser redirects
    such as the OAuth callback, from the session cookie. The resulting
    AuthContext is attached to `request.state.auth_context`.
    """

    def __init__(
        self,
        app: ASGIApp,
        exclude_paths: list[str] | None = None,
        optional_path_prefixes: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.exclude_paths = set(exclude_paths or [])
        self.optional_path_prefixes = tuple(optional_path_prefixes or [])
        self.config = get_config()

        if not self.config.session_issuer_url or not self.config.resolved_jwks_uri:
            raise ValueError("SESSION_ISSUER_URL must be configured.")

        self.issuer = self.config.session_issuer_url.rstrip("/")
        self.jwks_uri = self.config.resolved_jwks_uri
        self.cookie_name = self.config.session_cookie_name

        logger.info(
            "session_middleware_initialized",
            issuer=self.issuer,
            jwks_uri=self.jwks_uri,
            exclude_paths=sorted(self.exclude_paths),
        )

    def _extract_token(self, request: Request) -> str | None:
        authorization_header = request.headers.get("authorization")
        if authorization_header:
            if not authorization_header.startswith("Bearer "):
                raise SessionAuthError(
                    "invalid_request", "Authorization header must be in 'Bearer <token>' format", 401
                )
            return authorization_header[7:]
        return request.cookies.get(self.cookie_name)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        try:
            token = self._extract_token(request)
            if not token:
                raise SessionAuthError("invalid_request", "Session token is missing", 401)
            token_hash = hashlib.sha256(token.encode()).hexdigest()
            auth_context = validate_session_token(token, token_hash, self.issuer, self.jwks_uri)
        except SessionAuthError as e:
            if request.url.path.startswith(self.optional_path_prefixes):
                # The handler decides what an anonymous request means here.
                return await call_next(request)
            return _error_response(e.error, e.description, e.status_code)

        request.state.auth_context = auth_context
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response
