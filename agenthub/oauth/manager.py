"""OAuth2 credential lifecycle for third-party providers.

A credential moves through these states:

    absent -> pending authorization -> active <-> refreshed -> absent

"Pending authorization" is never persisted. It exists only between issuing an
authorization URL and the callback exchanging the code, so a user who abandons
the provider's consent screen leaves nothing behind to clean up.
"""

import hashlib
from collections.abc import Callable
from typing import Any

import httpx

from agenthub.models.auth import OAuthCredential, OAuthProvider
from agenthub.models.errors import (
    AgentHubError,
    InvalidInputError,
    TokenExchangeError,
    TokenRefreshError,
)
from agenthub.oauth.store import CredentialStore
from agenthub.registry.providers import ProviderRegistry
from agenthub.utils.logging import get_logger

logger = get_logger(__name__)

STATE_SEPARATOR = ":"

RevokeListener = Callable[[str, str], None]


def parse_state(state: str) -> tuple[str, str]:
    """
    Splits a callback `state` into (anti_forgery_token, user_id).

    The user id follows the first separator, so the anti-forgery token itself
    must not contain one.
    """
    token, sep, user_id = (state or "").partition(STATE_SEPARATOR)
    if not sep or not token or not user_id:
        raise InvalidInputError("Invalid state parameter")
    return token, user_id


def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()[:8]


class OAuthManager:
    """Authorization, token exchange, refresh and storage for one provider."""

    def __init__(
        self,
        provider: OAuthProvider,
        store: CredentialStore,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.provider = provider
        self.store = store
        self.timeout = timeout
        self._transport = transport

    def build_authorization_url(self, state: str, user_id: str) -> str:
        """
        Builds the provider consent URL.

        The user id rides along in `state` so the callback can recover it
        without a server-side session lookup. Offline access with forced
        consent makes the provider issue a refresh token every time.
        """
        params = {
            "client_id": self.provider.client_id,
            "redirect_uri": self.provider.redirect_uri,
            "scope": " ".join(self.provider.scopes),
            "response_type": "code",
            "state": f"{state}{STATE_SEPARATOR}{user_id}",
            "access_type": "offline",
            "prompt": "consent",
        }
        return str(httpx.URL(self.provider.authorize_url).copy_merge_params(params))

    def _grant_form(self, **grant: str) -> dict[str, str]:
        form = {"client_id": self.provider.client_id}
        if self.provider.client_secret:
            form["client_secret"] = self.provider.client_secret
        form.update(grant)
        return form

    async def _post_token_endpoint(self, form: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.post(
                self.provider.token_url,
                data=form,
                headers={"Accept": "application/json"},
            )

    @staticmethod
    def _token_payload(response: httpx.Response) -> dict[str, Any] | None:
        try:
            payload = response.json()
        except ValueError:
            return None
        if not isinstance(payload, dict) or not payload.get("access_token"):
            return None
        return payload

    def _credential_from_response(
        self,
        response: httpx.Response,
        error_cls: type[TokenExchangeError] | type[TokenRefreshError],
        previous_refresh_token: str | None = None,
    ) -> OAuthCredential:
        """
        Parses a successful token endpoint response. A payload that does not
        describe a usable credential raises `error_cls`.
        """
        payload = self._token_payload(response)
        if payload is None:
            raise error_cls(self.provider.key, response.status_code, response.text)
        try:
            return OAuthCredential.from_token_response(
                payload, previous_refresh_token=previous_refresh_token
            )
        except (ValueError, TypeError, OverflowError) as e:
            # pydantic.ValidationError is a ValueError
            logger.error(
                "oauth_token_response_invalid",
                provider=self.provider.key,
                error=str(e),
            )
            raise error_cls(self.provider.key, response.status_code, response.text) from e

    async def exchange_code(self, code: str) -> OAuthCredential:
        """Exchanges an authorization code for a credential."""
        form = self._grant_form(
            code=code,
            grant_type="authorization_code",
            redirect_uri=self.provider.redirect_uri,
        )
        try:
            response = await self._post_token_endpoint(form)
        except httpx.RequestError as e:
            logger.error(
                "oauth_token_exchange_request_failed", provider=self.provider.key, error=str(e)
            )
            raise TokenExchangeError(self.provider.key, None, str(e)) from e

        if not response.is_success:
            logger.error(
                "oauth_token_exchange_failed",
                provider=self.provider.key,
                status_code=response.status_code,
                body=response.text,
            )
            raise TokenExchangeError(self.provider.key, response.status_code, response.text)

        credential = self._credential_from_response(response, TokenExchangeError)
        logger.info(
            "oauth_token_exchanged",
            provider=self.provider.key,
            token_hash=_token_hash(credential.access_token),
            has_refresh_token=credential.refresh_token is not None,
        )
        return credential

    async def refresh(self, refresh_token: str) -> OAuthCredential:
        """Uses a refresh token to obtain a new credential."""
        form = self._grant_form(refresh_token=refresh_token, grant_type="refresh_token")
        try:
            response = await self._post_token_endpoint(form)
        except httpx.RequestError as e:
            logger.error(
                "oauth_token_refresh_request_failed", provider=self.provider.key, error=str(e)
            )
            raise TokenRefreshError(self.provider.key, None, str(e)) from e

        if not response.is_success:
            logger.error(
                "oauth_token_refresh_failed",
                provider=self.provider.key,
                status_code=response.status_code,
                body=response.text,
            )
            raise TokenRefreshError(self.provider.key, response.status_code, response.text)

        return self._credential_from_response(
            response, TokenRefreshError, previous_refresh_token=refresh_token
        )

    async def store_credential(self, user_id: str, credential: OAuthCredential) -> None:
        """Upserts the credential for (user_id, provider), replacing any previous row."""
        await self.store.upsert(user_id, self.provider.key, credential)

    async def get_credential(self, user_id: str) -> OAuthCredential | None:
        """
        Returns a live credential or None.

        An expired credential is refreshed and persisted transparently. When
        that refresh fails the caller sees "not connected" and the stored row
        is left untouched.
        """
        try:
            credential = await self.store.get(user_id, self.provider.key)
        except AgentHubError:
            return None
        if credential is None:
            return None
        if not credential.is_expired():
            return credential
        if not credential.refresh_token:
            logger.info("oauth_credential_expired", provider=self.provider.key, user_id=user_id)
            return None

        try:
            refreshed = await self.refresh(credential.refresh_token)
        except AgentHubError as e:
            logger.warning(
                "oauth_credential_refresh_failed",
                provider=self.provider.key,
                user_id=user_id,
                error=e.message,
            )
            return None

        try:
            await self.store_credential(user_id, refreshed)
        except AgentHubError as e:
            # A rotated refresh token that never reached the store is gone; the
            # stored one may already be invalid at the provider.
            logger.error(
                "oauth_refreshed_credential_not_stored",
                provider=self.provider.key,
                user_id=user_id,
                refresh_token_rotated=refreshed.refresh_token != credential.refresh_token,
                error=e.message,
            )
            return None

        logger.info("oauth_credential_refreshed", provider=self.provider.key, user_id=user_id)
        return refreshed

    async def has_valid_token(self, user_id: str) -> bool:
        return await self.get_credential(user_id) is not None

    async def revoke(self, user_id: str) -> None:
        """Deletes the stored credential. Revoking a missing credential is a no-op."""
        await self.store.delete(user_id, self.provider.key)
        logger.info("oauth_credential_revoked", provider=self.provider.key, user_id=user_id)


class OAuthService:
    """
    Entry point to the OAuth lifecycle across every registered provider.
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        store: CredentialStore,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.providers = providers
        self.store = store
        self._managers = {
            provider.key.lower(): OAuthManager(
                provider, store, timeout=timeout, transport=transport
            )
            for provider in providers
        }
        self._revoke_listeners: list[RevokeListener] = []

    def manager(self, provider: str) -> OAuthManager:
        """Raises UnknownProviderError for unregistered providers."""
        return self._managers[self.providers.get(provider).key.lower()]

    def add_revoke_listener(self, listener: RevokeListener) -> None:
        """Registers `listener(user_id, provider)` to run after each revocation."""
        self._revoke_listeners.append(listener)

    async def revoke(self, user_id: str, provider: str) -> None:
        manager = self.manager(provider)
        await manager.revoke(user_id)
        for listener in self._revoke_listeners:
            listener(user_id, manager.provider.key)

    async def get_access_token(self, user_id: str, provider: str) -> str | None:
        """
        Bare access token for header substitution, or None when the user is not
        connected or the provider is unknown.
        """
        try:
            credential = await self.manager(provider).get_credential(user_id)
        except AgentHubError as e:
            logger.warning("oauth_access_token_unavailable", provider=provider, error=e.message)
            return None
        return credential.access_token if credential else None
