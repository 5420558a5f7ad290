"""Data models for AgentHub."""

from agenthub.models.auth import AuthContext, OAuthCredential, OAuthProvider
from agenthub.models.errors import AgentHubError, ErrorCode, ErrorDetail
from agenthub.models.tools import HealthCheckResponse, ResolvedTool, ToolServerDescriptor

__all__ = [
    "AgentHubError",
    "AuthContext",
    "ErrorCode",
    "ErrorDetail",
    "HealthCheckResponse",
    "OAuthCredential",
    "OAuthProvider",
    "ResolvedTool",
    "ToolServerDescriptor",
]
