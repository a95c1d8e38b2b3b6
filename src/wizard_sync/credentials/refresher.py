"""OAuth refresh-token exchange against the CRM token endpoint.

Performs a form-encoded ``grant_type=refresh_token`` POST and merges the
new grant forward onto the old credential: values the provider omits
(refresh token, scope, provider ids, install time) are retained, and
metadata maps are merged with the new values winning per key.

Persistence is the caller's responsibility (see sync.service).
"""

from __future__ import annotations

import httpx
import structlog

from src.wizard_sync.credentials.errors import CredentialConfigurationError
from src.wizard_sync.credentials.schemas import Credential, OAuthCredential
from src.wizard_sync.credentials.store import build_oauth_credential

logger = structlog.get_logger(__name__)

DEFAULT_TOKEN_URL = "https://services.leadconnectorhq.com/oauth/token"


class CredentialRefresher:
    """Exchanges refresh tokens for new access tokens.

    Args:
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests inject MockTransport).
    """

    def __init__(
        self,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def refresh(
        self,
        credential: Credential,
        client_id: str,
        client_secret: str,
        token_url: str | None = None,
    ) -> OAuthCredential:
        """Refresh an OAuth credential and return the merged result.

        Args:
            credential: Stored OAuth credential with a refresh token.
            client_id: OAuth app client id.
            client_secret: OAuth app client secret.
            token_url: Token endpoint; defaults to the LeadConnector endpoint.

        Returns:
            A new OAuthCredential; the input is not mutated.

        Raises:
            CredentialConfigurationError: Preconditions not met.
            httpx.HTTPStatusError: Token endpoint returned a non-2xx status.
            ValueError: Token endpoint response lacked an access token.
        """
        if not isinstance(credential, OAuthCredential):
            raise CredentialConfigurationError("Refresh requires an OAuth credential")
        if not credential.refresh_token:
            raise CredentialConfigurationError("OAuth credential missing refresh token")
        if not client_id or not client_secret:
            raise CredentialConfigurationError(
                "HighLevel OAuth client credentials are not configured"
            )

        url = token_url or DEFAULT_TOKEN_URL
        form = {
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        }

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            response.raise_for_status()
            token_data = response.json() or {}

        installed_at = credential.installed_at.isoformat() if credential.installed_at else None
        refreshed = build_oauth_credential(
            token_data,
            scope_level=credential.scope_level,
            metadata={
                **credential.metadata,
                "providerAccountId": credential.provider_account_id,
                "providerLocationId": credential.provider_location_id,
                "installationId": (
                    credential.metadata.get("installationId")
                    or token_data.get("installationId")
                ),
                "installedAt": installed_at,
            },
        )

        scope = refreshed.scope or list(credential.scope)
        merged = refreshed.model_copy(
            update={
                "refresh_token": refreshed.refresh_token or credential.refresh_token,
                "provider_account_id": (
                    refreshed.provider_account_id or credential.provider_account_id
                ),
                "provider_location_id": (
                    refreshed.provider_location_id or credential.provider_location_id
                ),
                "scope": scope,
                "installed_at": refreshed.installed_at or credential.installed_at,
                "metadata": {**credential.metadata, **refreshed.metadata, "scope": scope},
            }
        )

        logger.info(
            "credentials.refreshed",
            provider_location_id=merged.provider_location_id,
            expires_at=merged.expires_at.isoformat() if merged.expires_at else None,
            refresh_token_rotated=bool(token_data.get("refresh_token")),
        )
        return merged
