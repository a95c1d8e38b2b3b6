"""CRM location credentials -- typed decode/encode and OAuth refresh.

Exports:
    Credential: Tagged union of PrivateTokenCredential and OAuthCredential.
    decode_credential / encode_credential: Token column codec.
    current_access_token / is_access_token_expired: Accessors.
    build_oauth_credential: Construct a credential from a token response.
    CredentialRefresher: Refresh-token exchange with merge-forward.
"""

from src.wizard_sync.credentials.errors import (
    CredentialConfigurationError,
    CredentialError,
    MissingAccessTokenError,
)
from src.wizard_sync.credentials.refresher import CredentialRefresher
from src.wizard_sync.credentials.schemas import (
    Credential,
    CredentialType,
    OAuthCredential,
    PrivateTokenCredential,
    RefreshStatus,
    TokenResolution,
)
from src.wizard_sync.credentials.store import (
    build_oauth_credential,
    current_access_token,
    decode_credential,
    encode_credential,
    is_access_token_expired,
    sanitize_credential_for_client,
)

__all__ = [
    "Credential",
    "CredentialConfigurationError",
    "CredentialError",
    "CredentialRefresher",
    "CredentialType",
    "MissingAccessTokenError",
    "OAuthCredential",
    "PrivateTokenCredential",
    "RefreshStatus",
    "TokenResolution",
    "build_oauth_credential",
    "current_access_token",
    "decode_credential",
    "encode_credential",
    "is_access_token_expired",
    "sanitize_credential_for_client",
]
