"""Tests for the tool server, resolution, invocation and health routes."""

import pytest
from fastapi.testclient import TestClient
from mcp.types import CallToolResult, TextContent

from agenthub import __version__
from agenthub.server import create_app

USER = {"X-User-Id": "user-1"}


@pytest.fixture
def client(monkeypatch, oauth_service, tool_resolver):
    monkeypatch.setenv("USE_SESSION_AUTH", "false")
    monkeypatch.delenv("CORS_ALLOWED_ORIGINS", raising=False)
    app = create_app(oauth=oauth_service, resolver=tool_resolver)
    with TestClient(app) as test_client:
        yield test_client


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["version"] == __version__
    assert data["oauth_providers"] == ["google"]
    assert data["tool_servers"] == ["serverA", "serverB", "gmail"]
    assert data["cached_tool_sets"] == 0
    assert "timestamp" in data


def test_list_tool_servers(client):
    response = client.get("/api/tools/servers")

    assert response.status_code == 200
    assert response.json()[2] == {
        "identifier": "gmail",
        "description": "",
        "transport": "http",
        "oauth_provider": "google",
    }


def test_resolve_tools(client, tool_servers):
    tool_servers.failures["serverB"] = RuntimeError("boom")

    response = client.post(
        "/api/tools/resolve",
        json={"enabled_servers": ["serverA", "serverB", "doesNotExist", "memory"]},
        headers=USER,
    )

    assert response.status_code == 200
    tools = response.json()["tools"]
    assert [t["name"] for t in tools] == ["serverA__toolX", "serverA__toolY"]
    assert tools[0]["original_name"] == "toolX"
    assert tools[0]["server_identifier"] == "serverA"


def test_resolve_tools_requires_user(client):
    response = client.post("/api/tools/resolve", json={"enabled_servers": ["serverA"]})

    assert response.status_code == 401


def test_invoke_tool(client, tool_servers):
    response = client.post(
        "/api/tools/invoke",
        json={
            "enabled_servers": ["serverA"],
            "tool_name": "serverA__toolX",
            "arguments": {"query": "weather"},
        },
        headers=USER,
    )

    assert response.status_code == 200
    assert response.json()["result"]["content"] == [{"type": "text", "text": "ok"}]
    assert tool_servers.tool_calls == [("serverA", "toolX", {"query": "weather"})]


def test_invoke_unknown_tool(client):
    response = client.post(
        "/api/tools/invoke",
        json={"enabled_servers": ["serverA"], "tool_name": "serverA__nope"},
        headers=USER,
    )

    assert response.status_code == 404
    assert response.json()["error_code"] == "TOOL_NOT_FOUND"


def test_invoke_with_invalid_arguments(client):
    response = client.post(
        "/api/tools/invoke",
        json={
            "enabled_servers": ["serverA"],
            "tool_name": "serverA__toolX",
            "arguments": {"query": 42},
        },
        headers=USER,
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_INPUT"


def test_invoke_tool_reporting_error(client, tool_servers):
    tool_servers.call_result = CallToolResult(
        content=[TextContent(type="text", text="quota exceeded")], isError=True
    )

    response = client.post(
        "/api/tools/invoke",
        json={"enabled_servers": ["serverA"], "tool_name": "serverA__toolY"},
        headers=USER,
    )

    assert response.status_code == 500
    assert response.json()["error_code"] == "TOOL_EXECUTION_ERROR"


def test_invoke_requires_tool_name(client):
    response = client.post(
        "/api/tools/invoke", json={"enabled_servers": ["serverA"]}, headers=USER
    )

    assert response.status_code == 422
