"""CRM REST API access -- authenticated client factory."""

from src.wizard_sync.crm.client import (
    DEFAULT_API_VERSION,
    DEFAULT_BASE_URL,
    build_crm_client,
    resolve_access_token,
)

__all__ = [
    "DEFAULT_API_VERSION",
    "DEFAULT_BASE_URL",
    "build_crm_client",
    "resolve_access_token",
]
