from collections.abc import Iterable, Iterator
from types import MappingProxyType

from agenthub.models.auth import OAuthProvider
from agenthub.models.errors import UnknownProviderError


class ProviderRegistry:
    """
    Immutable mapping from provider key to its OAuth descriptor.

    Built once from deployment configuration and handed to the OAuth service;
    keys are matched case-insensitively.
    """

    def __init__(self, providers: Iterable[OAuthProvider] = ()) -> None:
        entries: dict[str, OAuthProvider] = {}
        for provider in providers:
            key = provider.key.lower()
            if key in entries:
                raise ValueError(f"OAuth provider '{key}' registered twice.")
            entries[key] = provider
        self._providers = MappingProxyType(entries)

    def get(self, key: str) -> OAuthProvider:
        """Returns the descriptor for `key` or raises UnknownProviderError."""
        provider = self._providers.get((key or "").lower())
        if provider is None:
            raise UnknownProviderError(key)
        return provider

    def keys(self) -> list[str]:
        return list(self._providers.keys())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._providers

    def __iter__(self) -> Iterator[OAuthProvider]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)
