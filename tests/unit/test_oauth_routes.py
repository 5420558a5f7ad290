"""Tests for the OAuth connect, status, revoke and callback routes."""

from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from agenthub.models.auth import OAuthCredential
from agenthub.server import create_app
from agenthub.tools.cache import ToolCache

USER = {"X-User-Id": "user-1"}


@pytest.fixture
def client(monkeypatch, oauth_service, tool_resolver):
    """App with session auth disabled; the caller is named by X-User-Id."""
    monkeypatch.setenv("USE_SESSION_AUTH", "false")
    monkeypatch.delenv("CORS_ALLOWED_ORIGINS", raising=False)
    monkeypatch.delenv("PUBLIC_BASE_URL", raising=False)
    app = create_app(oauth=oauth_service, resolver=tool_resolver)
    with TestClient(app) as test_client:
        yield test_client


def _redirect_params(response) -> dict[str, str]:
    assert response.status_code == 303
    location = urlparse(response.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == (
        "http://localhost:3000/settings"
    )
    return {k: v[0] for k, v in parse_qs(location.query).items()}


# --- Start flow ---


def test_start_oauth_returns_consent_url(client):
    response = client.post("/api/auth/oauth", json={"provider": "google"}, headers=USER)

    assert response.status_code == 200
    data = response.json()
    assert data["provider"] == "google"
    assert data["message"] == "Redirect to this URL to complete OAuth flow"
    state = parse_qs(urlparse(data["auth_url"]).query)["state"][0]
    token, _, user_id = state.partition(":")
    assert token
    assert user_id == "user-1"


def test_start_oauth_uses_fresh_state_each_time(client):
    first = client.post("/api/auth/oauth", json={"provider": "google"}, headers=USER).json()
    second = client.post("/api/auth/oauth", json={"provider": "google"}, headers=USER).json()

    assert first["auth_url"] != second["auth_url"]


def test_start_oauth_requires_user(client):
    response = client.post("/api/auth/oauth", json={"provider": "google"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "UNAUTHORIZED"


def test_start_oauth_requires_provider(client):
    response = client.post("/api/auth/oauth", json={}, headers=USER)

    assert response.status_code == 400
    assert response.json()["error"] == "Provider is required"


def test_start_oauth_unknown_provider(client):
    response = client.post("/api/auth/oauth", json={"provider": "myspace"}, headers=USER)

    assert response.status_code == 400
    assert response.json() == {
        "error_code": "UNKNOWN_PROVIDER",
        "error": "Unknown OAuth provider: myspace",
        "details": {"provider": "myspace"},
    }


# --- Status and revoke ---


def test_status_reports_connection(client, oauth_service):
    response = client.get("/api/auth/oauth", params={"provider": "google"}, headers=USER)
    assert response.json() == {"provider": "google", "has_token": False, "connected": False}

    client.portal.call(
        oauth_service.manager("google").store_credential,
        "user-1",
        OAuthCredential(access_token="live"),
    )

    response = client.get("/api/auth/oauth", params={"provider": "google"}, headers=USER)
    assert response.json() == {"provider": "google", "has_token": True, "connected": True}


def test_status_requires_provider(client):
    response = client.get("/api/auth/oauth", headers=USER)

    assert response.status_code == 400


def test_revoke_twice_succeeds(client, credential_store):
    for _ in range(2):
        response = client.delete("/api/auth/oauth", params={"provider": "google"}, headers=USER)
        assert response.status_code == 200
        assert response.json() == {
            "provider": "google",
            "message": "OAuth token revoked successfully",
        }
    assert len(credential_store) == 0


# --- Callback ---


def test_callback_stores_credential_and_redirects(
    client, token_endpoint, credential_store, tool_resolver
):
    tool_resolver.cache.set(ToolCache.key(["gmail"], "user-1"), [])
    token_endpoint.respond(
        200, json={"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3600}
    )

    response = client.get(
        "/api/auth/callback/google",
        params={"code": "the-code", "state": "abc:user-1"},
        headers=USER,
        follow_redirects=False,
    )

    assert _redirect_params(response) == {"oauth_success": "google"}
    assert token_endpoint.forms[0]["code"] == "the-code"
    stored = client.portal.call(credential_store.get, "user-1", "google")
    assert stored.access_token == "access-1"
    assert len(tool_resolver.cache) == 0


def test_callback_provider_error(client, token_endpoint):
    response = client.get(
        "/api/auth/callback/google",
        params={"error": "access_denied", "state": "abc:user-1"},
        headers=USER,
        follow_redirects=False,
    )

    assert _redirect_params(response) == {"error": "oauth_access_denied"}
    assert token_endpoint.requests == []


@pytest.mark.parametrize("params", [{"code": "the-code"}, {"state": "abc:user-1"}, {}])
def test_callback_missing_params(client, params):
    response = client.get(
        "/api/auth/callback/google", params=params, headers=USER, follow_redirects=False
    )

    assert _redirect_params(response) == {"error": "missing_oauth_params"}


def test_callback_exchange_failure(client, token_endpoint, credential_store):
    token_endpoint.respond(400, json={"error": "invalid_grant"})

    response = client.get(
        "/api/auth/callback/google",
        params={"code": "bad-code", "state": "abc:user-1"},
        headers=USER,
        follow_redirects=False,
    )

    assert _redirect_params(response) == {
        "error": "oauth_callback_failed",
        "reason": "token_exchange_failed",
    }
    assert len(credential_store) == 0


def test_callback_malformed_token_response(client, token_endpoint, credential_store):
    token_endpoint.respond(200, json={"access_token": "access-1", "expires_in": "3599.5"})

    response = client.get(
        "/api/auth/callback/google",
        params={"code": "the-code", "state": "abc:user-1"},
        headers=USER,
        follow_redirects=False,
    )

    assert _redirect_params(response) == {
        "error": "oauth_callback_failed",
        "reason": "token_exchange_failed",
    }
    assert len(credential_store) == 0


def test_callback_rejects_state_for_another_user(client, token_endpoint):
    response = client.get(
        "/api/auth/callback/google",
        params={"code": "the-code", "state": "abc:user-2"},
        headers=USER,
        follow_redirects=False,
    )

    assert _redirect_params(response) == {"error": "oauth_callback_failed", "reason": "forbidden"}
    assert token_endpoint.requests == []


def test_callback_without_session(client, token_endpoint):
    response = client.get(
        "/api/auth/callback/google",
        params={"code": "the-code", "state": "abc:user-1"},
        follow_redirects=False,
    )

    assert _redirect_params(response)["reason"] == "forbidden"
    assert token_endpoint.requests == []


def test_callback_malformed_state(client):
    response = client.get(
        "/api/auth/callback/google",
        params={"code": "the-code", "state": "no-separator"},
        headers=USER,
        follow_redirects=False,
    )

    assert _redirect_params(response) == {
        "error": "oauth_callback_failed",
        "reason": "invalid_input",
    }


def test_callback_unknown_provider(client):
    response = client.get(
        "/api/auth/callback/myspace",
        params={"code": "the-code", "state": "abc:user-1"},
        headers=USER,
        follow_redirects=False,
    )

    assert _redirect_params(response)["reason"] == "unknown_provider"
