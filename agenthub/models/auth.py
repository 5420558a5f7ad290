from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuthContext(BaseModel):
    """
    Pydantic model for the session token validation result, attached to authenticated requests.
    """

    is_valid: bool
    token_hash: str
    scopes: list[str]
    expires_at: datetime | None
    client_id: str | None
    user_id: str | None = Field(None, description="Subject identifier for the user")


class OAuthProvider(BaseModel):
    """Static description of a third-party OAuth2 provider."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Registry key, also the provider column in storage")
    name: str = Field(..., description="Display name")
    authorize_url: str
    token_url: str
    scopes: list[str] = Field(default_factory=list)
    client_id: str
    client_secret: str | None = Field(None, description="Absent for public/PKCE clients")
    redirect_uri: str


class OAuthCredential(BaseModel):
    """A stored OAuth2 token set for one (user, provider) pair."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = Field(None, description="Absent means non-expiring")
    token_type: str = "Bearer"
    scope: str | None = None
    updated_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or datetime.now(UTC))

    def is_stale(self, now: datetime | None = None) -> bool:
        """Expired with no way to refresh; readers treat it as absent."""
        return self.is_expired(now) and not self.refresh_token

    @classmethod
    def from_token_response(
        cls,
        data: dict[str, Any],
        previous_refresh_token: str | None = None,
        now: datetime | None = None,
    ) -> "OAuthCredential":
        """
        Builds a credential from a provider's token endpoint JSON.

        Refresh tokens are not guaranteed to rotate, so a response without one
        keeps `previous_refresh_token`.
        """
        now = now or datetime.now(UTC)
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or previous_refresh_token,
            expires_at=now + timedelta(seconds=int(expires_in)) if expires_in else None,
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope"),
        )
