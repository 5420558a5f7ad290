"""Health check endpoint handler."""

from datetime import UTC, datetime

from fastapi.responses import JSONResponse

from agenthub import __version__
from agenthub.models.tools import HealthCheckResponse
from agenthub.oauth.manager import OAuthService
from agenthub.tools.resolver import ToolResolver


async def health_check(oauth: OAuthService, resolver: ToolResolver) -> JSONResponse:
    """
    Reports liveness together with what this process has registered and cached.
    """
    response_model = HealthCheckResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(UTC),
        oauth_providers=oauth.providers.keys(),
        tool_servers=resolver.registry.identifiers(),
        cached_tool_sets=len(resolver.cache),
    )

    return JSONResponse(content=response_model.model_dump(mode="json"))
