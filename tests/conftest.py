from collections import Counter
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from authlib.jose.rfc7517.jwk import JsonWebKey
from mcp.types import CallToolResult, TextContent, Tool

from agenthub.config import get_config
from agenthub.models.auth import OAuthProvider
from agenthub.models.tools import ToolServerDescriptor
from agenthub.oauth.manager import OAuthService
from agenthub.oauth.store import InMemoryCredentialStore
from agenthub.registry.providers import ProviderRegistry
from agenthub.registry.tool_servers import ToolServerRegistry
from agenthub.tools.cache import ToolCache
from agenthub.tools.resolver import ToolResolver

TOKEN_URL = "https://oauth2.example.com/token"


@pytest.fixture(autouse=True)
def clear_config_cache():
    """Every test starts from a freshly loaded configuration."""
    get_config.cache_clear()
    yield
    get_config.cache_clear()


class TokenEndpoint:
    """Scripted provider token endpoint served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: list[httpx.Response | Exception] = []

    def respond(self, status_code: int = 200, json: Any = None, text: str | None = None) -> None:
        if json is not None:
            self._responses.append(httpx.Response(status_code, json=json))
        else:
            self._responses.append(httpx.Response(status_code, text=text or ""))

    def fail(self, exc: Exception) -> None:
        self._responses.append(exc)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            return httpx.Response(500, text="no response scripted")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def forms(self) -> list[dict[str, str]]:
        return [
            {k: v[0] for k, v in parse_qs(r.content.decode(), keep_blank_values=True).items()}
            for r in self.requests
        ]


class FakeToolServers:
    """Stands in for MCP connections: lists scripted tools and counts attempts."""

    def __init__(self) -> None:
        self.tools: dict[str, list[Tool]] = {}
        self.failures: dict[str, BaseException] = {}
        self.list_calls: Counter[str] = Counter()
        self.configs: list[ToolServerDescriptor] = []
        self.tool_calls: list[tuple[str, str, dict[str, Any]]] = []
        self.call_result = CallToolResult(content=[TextContent(type="text", text="ok")])

    async def list_tools(self, config: ToolServerDescriptor) -> list[Tool]:
        self.list_calls[config.identifier] += 1
        self.configs.append(config)
        if config.identifier in self.failures:
            raise self.failures[config.identifier]
        return self.tools.get(config.identifier, [])

    async def call_tool(
        self, config: ToolServerDescriptor, name: str, arguments: dict[str, Any]
    ) -> CallToolResult:
        self.tool_calls.append((config.identifier, name, arguments))
        return self.call_result


def make_tool(name: str, properties: dict[str, Any] | None = None) -> Tool:
    return Tool(
        name=name,
        description=f"Description for {name}",
        inputSchema={"type": "object", "properties": properties or {}},
    )


@pytest.fixture
def google_provider() -> OAuthProvider:
    return OAuthProvider(
        key="google",
        name="Google",
        authorize_url="https://accounts.example.com/o/oauth2/v2/auth",
        token_url=TOKEN_URL,
        scopes=["gmail.readonly", "gmail.send"],
        client_id="client-123",
        client_secret="secret-456",
        redirect_uri="http://localhost:3000/api/auth/callback/google",
    )


@pytest.fixture
def provider_registry(google_provider: OAuthProvider) -> ProviderRegistry:
    return ProviderRegistry([google_provider])


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def token_endpoint() -> TokenEndpoint:
    return TokenEndpoint()


@pytest.fixture
def oauth_service(provider_registry, credential_store, token_endpoint) -> OAuthService:
    return OAuthService(
        provider_registry,
        credential_store,
        transport=httpx.MockTransport(token_endpoint.handler),
    )


@pytest.fixture
def tool_server_registry() -> ToolServerRegistry:
    return ToolServerRegistry(
        [
            ToolServerDescriptor(identifier="serverA", transport="stdio", command="server-a"),
            ToolServerDescriptor(identifier="serverB", transport="stdio", command="server-b"),
            ToolServerDescriptor(
                identifier="gmail",
                transport="http",
                url="https://gmail-mcp.example.com/mcp",
                headers={"Authorization": "OAUTH:google", "X-Client": "agenthub"},
            ),
        ]
    )


@pytest.fixture
def tool_servers() -> FakeToolServers:
    servers = FakeToolServers()
    servers.tools["serverA"] = [
        make_tool("toolX", {"query": {"type": "string"}}),
        make_tool("toolY"),
    ]
    servers.tools["serverB"] = [make_tool("toolZ")]
    servers.tools["gmail"] = [make_tool("send_email")]
    return servers


@pytest.fixture
def tool_resolver(tool_server_registry, oauth_service, tool_servers) -> ToolResolver:
    return ToolResolver(
        tool_server_registry,
        oauth_service,
        ToolCache(policy="none"),
        connect_timeout=1.0,
        lister=tool_servers.list_tools,
        caller=tool_servers.call_tool,
    )


@pytest.fixture(scope="session")
def jwks_keys():
    """
    RSA keys for signing session JWTs.
    Returns:
        tuple: (main_private_pem, main_public_jwk_dict, untrusted_public_jwk_dict)
    """

    def _pem(key: rsa.RSAPrivateKey) -> str:
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("utf-8")

    main_private_pem = _pem(rsa.generate_private_key(public_exponent=65537, key_size=2048))
    untrusted_private_pem = _pem(rsa.generate_private_key(public_exponent=65537, key_size=2048))

    main_public_jwk_dict = JsonWebKey.import_key(main_private_pem).as_dict(is_private=False)
    untrusted_public_jwk_dict = JsonWebKey.import_key(untrusted_private_pem).as_dict(is_private=False)
    return main_private_pem, main_public_jwk_dict, untrusted_public_jwk_dict
