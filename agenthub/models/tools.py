"""Models for tool servers and the tools resolved from them."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Header values of the form "OAUTH:<provider>" are replaced with the user's
# bearer token for that provider when a connection is built.
OAUTH_PLACEHOLDER_PREFIX = "OAUTH:"


def oauth_placeholder_provider(value: str) -> str | None:
    """Returns the provider named by an OAuth header placeholder, if any."""
    if isinstance(value, str) and value.startswith(OAUTH_PLACEHOLDER_PREFIX):
        return value[len(OAUTH_PLACEHOLDER_PREFIX):] or None
    return None


class ToolServerDescriptor(BaseModel):
    """
    Static configuration of one MCP tool server.

    Local servers are launched as a subprocess (`stdio`); remote servers are
    reached over streamable HTTP (`http`).
    """

    model_config = ConfigDict(frozen=True)

    identifier: str = Field(..., min_length=1, description="Key used by callers, e.g. 'tavily'")
    description: str = Field(default="", description="Human-readable summary of the server")
    transport: Literal["stdio", "http"]
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    oauth_provider: str | None = Field(
        None, description="Provider whose token fills the header placeholder"
    )

    @model_validator(mode="before")
    @classmethod
    def _derive_oauth_provider(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("oauth_provider"):
            for value in (data.get("headers") or {}).values():
                provider = oauth_placeholder_provider(value)
                if provider:
                    return {**data, "oauth_provider": provider}
        return data

    @model_validator(mode="after")
    def _check_transport_parameters(self) -> "ToolServerDescriptor":
        if self.transport == "stdio" and not self.command:
            raise ValueError(f"stdio tool server '{self.identifier}' requires a command")
        if self.transport == "http" and not self.url:
            raise ValueError(f"http tool server '{self.identifier}' requires a url")
        return self


class ResolvedTool(BaseModel):
    """A tool listed by a tool server, namespaced by the server's identifier."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="'<server_identifier>__<original_name>'")
    original_name: str
    server_identifier: str
    description: str = ""
    parameter_schema: dict[str, Any] = Field(default_factory=dict)


class ToolServerInfo(BaseModel):
    identifier: str
    description: str
    transport: str
    oauth_provider: str | None = None


class ResolveToolsRequest(BaseModel):
    enabled_servers: list[str] = Field(default_factory=list)


class InvokeToolRequest(BaseModel):
    enabled_servers: list[str] = Field(default_factory=list)
    tool_name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)


class HealthCheckResponse(BaseModel):
    """
    Response model for the health check endpoint.
    """

    status: str = Field(..., description="Status of the server")
    version: str = Field(..., description="Version of the server")
    timestamp: datetime = Field(..., description="Current server timestamp in ISO 8601 format")
    oauth_providers: list[str] = Field(
        default_factory=list, description="Registered OAuth provider keys"
    )
    tool_servers: list[str] = Field(
        default_factory=list, description="Registered tool server identifiers"
    )
    cached_tool_sets: int = Field(0, description="Number of cached resolved tool lists")


class UserToolServer(BaseModel):
    """
    A tool server a user installed for themselves.

    `config` is stored as given; it is not resolved into a descriptor here.
    """

    id: str
    user_id: str
    qualified_name: str = Field(
        ..., min_length=1, description="Registry name, e.g. '@acme/search'"
    )
    config: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CreateUserToolServerRequest(BaseModel):
    qualified_name: str | None = None
    config: dict[str, Any] | None = None


class UpdateUserToolServerRequest(BaseModel):
    id: str | None = None
    config: dict[str, Any] | None = None


class DeleteUserToolServerRequest(BaseModel):
    id: str | None = None
