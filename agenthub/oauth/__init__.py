from agenthub.oauth.manager import OAuthManager, OAuthService, parse_state
from agenthub.oauth.store import CredentialStore, InMemoryCredentialStore, SupabaseCredentialStore

__all__ = [
    "CredentialStore",
    "InMemoryCredentialStore",
    "OAuthManager",
    "OAuthService",
    "SupabaseCredentialStore",
    "parse_state",
]
