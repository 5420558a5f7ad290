"""Error handling data models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # Authentication & Authorization
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Input Validation
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_PARAMETER = "MISSING_PARAMETER"

    # OAuth lifecycle
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"
    TOKEN_EXCHANGE_FAILED = "TOKEN_EXCHANGE_FAILED"
    TOKEN_REFRESH_FAILED = "TOKEN_REFRESH_FAILED"
    CREDENTIAL_STORE_ERROR = "CREDENTIAL_STORE_ERROR"

    # Tool servers
    UNKNOWN_TOOL_SERVER = "UNKNOWN_TOOL_SERVER"
    TOOL_SERVER_CONFIG_ERROR = "TOOL_SERVER_CONFIG_ERROR"
    SERVER_CONNECTION_FAILED = "SERVER_CONNECTION_FAILED"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    TOOL_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"

    # Per-user tool servers
    USER_SERVER_NOT_FOUND = "USER_SERVER_NOT_FOUND"
    USER_SERVER_STORE_ERROR = "USER_SERVER_STORE_ERROR"

    # System Errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorDetail(BaseModel):
    """Detailed error information."""

    error_code: ErrorCode = Field(..., description="Error code")
    error: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(None, description="Additional error context")


class AgentHubError(Exception):
    """Base exception for AgentHub errors."""

    def __init__(
        self, code: ErrorCode, message: str, details: dict[str, Any] | None = None
    ) -> None:
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(error_code=self.code, error=self.message, details=self.details)


class AuthenticationError(AgentHubError):
    """No authenticated session."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(ErrorCode.UNAUTHORIZED, message)


class AuthorizationError(AgentHubError):
    """The session user may not act on behalf of the requested user."""

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(ErrorCode.FORBIDDEN, message)


class InvalidInputError(AgentHubError):
    """Invalid input provided."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.INVALID_INPUT, message, details)


class UnknownProviderError(AgentHubError):
    """The provider name is not in the provider registry."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(
            ErrorCode.UNKNOWN_PROVIDER,
            f"Unknown OAuth provider: {provider}",
            {"provider": provider},
        )


class TokenExchangeError(AgentHubError):
    """The provider rejected an authorization-code exchange."""

    def __init__(self, provider: str, status_code: int | None, body: str) -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(
            ErrorCode.TOKEN_EXCHANGE_FAILED,
            f"Token exchange failed: {body}",
            {"provider": provider, "status_code": status_code},
        )


class TokenRefreshError(AgentHubError):
    """The provider rejected a refresh-token grant."""

    def __init__(self, provider: str, status_code: int | None, body: str) -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(
            ErrorCode.TOKEN_REFRESH_FAILED,
            f"Token refresh failed: {body}",
            {"provider": provider, "status_code": status_code},
        )


class CredentialStoreError(AgentHubError):
    """The credential backend failed to read or write a row."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.CREDENTIAL_STORE_ERROR, message)


class UnknownToolServerError(AgentHubError):
    """The requested tool server identifier is not registered."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(
            ErrorCode.UNKNOWN_TOOL_SERVER,
            f"Tool server '{identifier}' not found in configuration",
            {"server": identifier},
        )


class ToolServerConfigError(AgentHubError):
    """A tool server descriptor is malformed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.TOOL_SERVER_CONFIG_ERROR, message, details)


class ServerConnectionError(AgentHubError):
    """Connecting to, or listing tools from, a tool server failed."""

    def __init__(self, identifier: str, reason: str) -> None:
        self.identifier = identifier
        super().__init__(
            ErrorCode.SERVER_CONNECTION_FAILED,
            f"Connection to tool server '{identifier}' failed: {reason}",
            {"server": identifier},
        )


class ToolNotFoundError(AgentHubError):
    """No resolved tool carries the requested name."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            ErrorCode.TOOL_NOT_FOUND, f"Tool '{tool_name}' not found", {"tool_name": tool_name}
        )


class ToolExecutionError(AgentHubError):
    """Tool execution failed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.TOOL_EXECUTION_ERROR, message, details)


class UserServerNotFoundError(AgentHubError):
    """The user has no installed tool server with this id."""

    def __init__(self, server_id: str) -> None:
        self.server_id = server_id
        super().__init__(
            ErrorCode.USER_SERVER_NOT_FOUND,
            f"User tool server '{server_id}' not found",
            {"id": server_id},
        )


class UserServerStoreError(AgentHubError):
    """The user tool server backend failed to read or write a row."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.USER_SERVER_STORE_ERROR, message)
