"""Authenticated HTTP client factory for the CRM (LeadConnector) REST API.

Produces an httpx.AsyncClient pre-configured with the base URL, bearer token,
API version header and JSON content negotiation. No retry logic lives here;
the sync executor is wrapped by the backoff executor instead.
"""

from __future__ import annotations

import httpx
import structlog

from src.wizard_sync.credentials.errors import MissingAccessTokenError
from src.wizard_sync.credentials.store import RawCredential, current_access_token

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://services.leadconnectorhq.com"
DEFAULT_API_VERSION = "2021-07-28"


def resolve_access_token(credential_or_token: RawCredential) -> str:
    """Return the bearer token for a credential, raising if it is empty."""
    token = current_access_token(credential_or_token)
    if not token:
        raise MissingAccessTokenError("Missing CRM access token")
    return token


def build_crm_client(
    credential_or_token: RawCredential,
    base_url: str = DEFAULT_BASE_URL,
    api_version: str = DEFAULT_API_VERSION,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build an authenticated CRM client.

    Args:
        credential_or_token: Credential, encoded token column value or bare token.
        base_url: CRM API base URL.
        api_version: Value of the ``Version`` header.
        timeout: Default request timeout in seconds.
        transport: Optional transport override (tests inject MockTransport).

    Raises:
        MissingAccessTokenError: If no access token can be resolved.
    """
    token = resolve_access_token(credential_or_token)
    return httpx.AsyncClient(
        base_url=base_url,
        headers={
            "Authorization": f"Bearer {token}",
            "Version": api_version,
            "Accept": "application/json",
        },
        timeout=timeout,
        transport=transport,
    )
