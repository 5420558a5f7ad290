"""Configuration management using environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from agenthub.models.auth import OAuthProvider
from agenthub.models.tools import ToolServerDescriptor
from agenthub.registry.providers import ProviderRegistry
from agenthub.registry.tool_servers import ToolServerRegistry

# Authorization and token endpoints are fixed per provider; only the client
# credentials and redirect URI come from the deployment environment.
PROVIDER_ENDPOINTS: dict[str, dict[str, object]] = {
    "google": {
        "name": "Google",
        "authorize_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "scopes": [
            "https://www.googleapis.com/auth/gmail.readonly",
            "https://www.googleapis.com/auth/gmail.send",
            "https://www.googleapis.com/auth/gmail.modify",
        ],
    },
    "twitter": {
        "name": "Twitter/X",
        "authorize_url": "https://twitter.com/i/oauth2/authorize",
        "token_url": "https://api.twitter.com/2/oauth2/token",
        "scopes": ["tweet.read", "tweet.write", "users.read"],
    },
    "facebook": {
        "name": "Facebook",
        "authorize_url": "https://www.facebook.com/v18.0/dialog/oauth",
        "token_url": "https://graph.facebook.com/v18.0/oauth/access_token",
        "scopes": ["pages_read_engagement", "pages_manage_posts"],
    },
}


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server Configuration
    server_host: str = Field(default="0.0.0.0", description="Server bind address")
    server_port: int = Field(default=8080, description="HTTP server port", ge=1, le=65535)
    cors_allowed_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins (e.g., 'http://localhost:3000')",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    environment: str = Field(default="development", description="Environment name")
    public_base_url: str = Field(
        default="http://localhost:3000", description="Base URL of the web frontend"
    )
    settings_path: str = Field(
        default="/settings", description="Page the OAuth callback redirects back to"
    )

    # Session authentication
    use_session_auth: bool = Field(
        default=True, description="Enable/disable session JWT validation for local development"
    )
    session_issuer_url: str | None = Field(None, description="Issuer of session JWTs")
    session_jwks_uri: str | None = Field(
        None, description="JWKS endpoint; derived from the issuer when unset"
    )
    session_cookie_name: str = Field(
        default="agenthub_session", description="Cookie carrying the session JWT"
    )

    # Credential store
    credential_store: Literal["memory", "supabase"] = Field(
        default="memory", description="Backend used to persist OAuth credentials"
    )
    supabase_url: str | None = Field(None, description="Supabase project URL")
    supabase_service_key: SecretStr | None = Field(None, description="Supabase service role key")
    oauth_tokens_table: str = Field(default="oauth_tokens", description="Credential table name")
    user_mcp_servers_table: str = Field(
        default="user_mcp_servers", description="Per-user tool server table name"
    )

    # OAuth providers
    google_client_id: str = Field(default="", description="Google OAuth client ID")
    google_client_secret: SecretStr | None = Field(None, description="Google OAuth client secret")
    google_redirect_uri: str = Field(
        default="http://localhost:3000/api/auth/callback/google",
        description="Google OAuth redirect URI",
    )
    twitter_client_id: str = Field(default="", description="Twitter OAuth client ID")
    twitter_client_secret: SecretStr | None = Field(None, description="Twitter OAuth client secret")
    twitter_redirect_uri: str = Field(
        default="http://localhost:3000/api/auth/callback/twitter",
        description="Twitter OAuth redirect URI",
    )
    facebook_client_id: str = Field(default="", description="Facebook OAuth client ID")
    facebook_client_secret: SecretStr | None = Field(
        None, description="Facebook OAuth client secret"
    )
    facebook_redirect_uri: str = Field(
        default="http://localhost:3000/api/auth/callback/facebook",
        description="Facebook OAuth redirect URI",
    )
    oauth_http_timeout: float = Field(
        default=10.0, description="Timeout in seconds for provider token requests", gt=0
    )

    # Tool servers
    firecrawl_api_key: SecretStr | None = Field(None, description="Firecrawl API key")
    tavily_api_key: SecretStr | None = Field(None, description="Tavily API key")
    gmail_mcp_url: str | None = Field(None, description="Remote Gmail MCP server endpoint")
    tool_connect_timeout: float = Field(
        default=30.0, description="Per-server connect and list timeout in seconds", gt=0
    )

    # Tool cache
    tool_cache_policy: Literal["none", "ttl", "lru"] = Field(
        default="ttl", description="Eviction policy for resolved tool lists"
    )
    tool_cache_ttl: float = Field(default=900.0, description="Tool cache TTL in seconds", gt=0)
    tool_cache_maxsize: int = Field(default=512, description="Maximum cached tool sets", ge=1)

    @property
    def resolved_jwks_uri(self) -> str | None:
        """JWKS endpoint for session token validation."""
        if self.session_jwks_uri:
            return self.session_jwks_uri
        if self.session_issuer_url:
            return f"{self.session_issuer_url.rstrip('/')}/protocol/openid-connect/certs"
        return None

    @property
    def oauth_providers(self) -> ProviderRegistry:
        """Builds the provider registry from the configured client credentials."""
        providers: list[OAuthProvider] = []
        for key, endpoints in PROVIDER_ENDPOINTS.items():
            client_id = getattr(self, f"{key}_client_id")
            if not client_id:
                continue
            secret: SecretStr | None = getattr(self, f"{key}_client_secret")
            providers.append(
                OAuthProvider(
                    key=key,
                    client_id=client_id,
                    client_secret=secret.get_secret_value() if secret else None,
                    redirect_uri=getattr(self, f"{key}_redirect_uri"),
                    **endpoints,
                )
            )
        return ProviderRegistry(providers)

    @property
    def tool_servers(self) -> ToolServerRegistry:
        """Builds the tool server registry for this deployment."""

        def _secret(value: SecretStr | None) -> str:
            return value.get_secret_value() if value else ""

        servers = [
            ToolServerDescriptor(
                identifier="firecrawl",
                description="Web scraping and content extraction from websites",
                transport="stdio",
                command="npx",
                args=["-y", "firecrawl-mcp"],
                env={"FIRECRAWL_API_KEY": _secret(self.firecrawl_api_key)},
            ),
            ToolServerDescriptor(
                identifier="sequential-thinking",
                description="Think step by step",
                transport="stdio",
                command="npx",
                args=["-y", "@modelcontextprotocol/server-sequential-thinking"],
            ),
            ToolServerDescriptor(
                identifier="tavily",
                description="Web search and real-time information retrieval",
                transport="stdio",
                command="npx",
                args=["-y", "tavily-mcp@0.1.3"],
                env={"TAVILY_API_KEY": _secret(self.tavily_api_key)},
            ),
            ToolServerDescriptor(
                identifier="canva-dev",
                description="Canva API",
                transport="stdio",
                command="npx",
                args=["-y", "@canva/cli@latest", "mcp"],
            ),
        ]
        if self.gmail_mcp_url:
            servers.append(
                ToolServerDescriptor(
                    identifier="gmail-mcp-server",
                    description="Access and manage Gmail messages, send and search email",
                    transport="http",
                    url=self.gmail_mcp_url,
                    headers={"Authorization": "OAUTH:google"},
                )
            )
        return ToolServerRegistry(servers)


@lru_cache
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config()  # type: ignore
