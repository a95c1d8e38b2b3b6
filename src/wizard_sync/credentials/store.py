"""Encode/decode the opaque token column into typed credentials.

The ``saved_locations.token`` column historically held a bare private token
string. OAuth support later stored a JSON object in the same column. This
module normalises both shapes into the Credential union and back, and never
raises on malformed input: decoding falls back to treating the raw string
as a private token.

Exports:
    decode_credential, encode_credential, current_access_token,
    is_access_token_expired, build_oauth_credential,
    sanitize_credential_for_client, normalize_metadata
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Union

import structlog
from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from src.wizard_sync.credentials.schemas import (
    Credential,
    CredentialType,
    OAuthCredential,
    PrivateTokenCredential,
    credential_adapter,
)

logger = structlog.get_logger(__name__)

SUPPORTED_SOCIAL_PLATFORMS = (
    "google",
    "facebook",
    "instagram",
    "linkedin",
    "tiktok",
    "youtube",
)

RawCredential = Union[PrivateTokenCredential, OAuthCredential, dict[str, Any], str, None]


# ── Metadata Normalisation ──────────────────────────────────────────────────


def normalize_metadata(metadata: Any) -> dict[str, Any]:
    """Return a copy of metadata with social profile records normalised.

    Each supported platform list keeps only dict records that resolve an
    ``accountId`` (falling back to ``id``). Unsupported platforms are dropped.
    """
    if not isinstance(metadata, dict):
        return {}
    normalised = dict(metadata)
    profiles = normalised.get("socialProfiles")
    if isinstance(profiles, dict):
        social: dict[str, list[dict[str, Any]]] = {}
        for platform in SUPPORTED_SOCIAL_PLATFORMS:
            records = profiles.get(platform)
            if not isinstance(records, list):
                continue
            items = []
            for item in records:
                if not isinstance(item, dict):
                    continue
                record = {
                    **item,
                    "accountId": item.get("accountId") or item.get("id") or None,
                    "displayName": item.get("displayName") or item.get("name") or None,
                    "connectedAt": item.get("connectedAt") or item.get("updatedAt") or None,
                    "locations": item["locations"] if isinstance(item.get("locations"), list) else [],
                }
                if record["accountId"]:
                    items.append(record)
            social[platform] = items
        normalised["socialProfiles"] = social
    return normalised


def _ensure_credential_shape(data: dict[str, Any]) -> Credential:
    detected = data.get("type") or (
        CredentialType.OAUTH.value
        if data.get("refreshToken") or data.get("scopeLevel") or data.get("expiresAt")
        else CredentialType.PRIVATE_TOKEN.value
    )
    shaped = {**data, "type": detected, "metadata": normalize_metadata(data.get("metadata"))}
    return credential_adapter.validate_python(shaped)


# ── Decode / Encode ─────────────────────────────────────────────────────────


def decode_credential(raw: RawCredential) -> Credential:
    """Decode a stored token column value into a typed credential.

    Args:
        raw: JSON string, bare token string, dict, existing credential or None.

    Returns:
        PrivateTokenCredential or OAuthCredential. Never raises.
    """
    if isinstance(raw, (PrivateTokenCredential, OAuthCredential)):
        return raw
    if not raw:
        return PrivateTokenCredential(access_token="")

    if isinstance(raw, dict):
        try:
            return _ensure_credential_shape(raw)
        except ValidationError:
            logger.warning("credentials.invalid_shape", keys=sorted(raw.keys()))
            return PrivateTokenCredential(access_token="")

    text = str(raw).strip()
    if not text:
        return PrivateTokenCredential(access_token="")

    if text.startswith("{"):
        try:
            parsed = json.loads(text)
            if isinstance(parsed, dict):
                return _ensure_credential_shape(parsed)
        except (json.JSONDecodeError, ValidationError):
            logger.warning("credentials.parse_failed_using_raw_token")
            return PrivateTokenCredential(access_token=text)

    return PrivateTokenCredential(access_token=text)


def encode_credential(credential: Credential | None) -> str:
    """Serialise a credential for the token column; returns "" on failure."""
    if credential is None:
        return ""
    try:
        return credential.model_dump_json(by_alias=True)
    except (PydanticSerializationError, TypeError, ValueError) as exc:
        logger.error("credentials.serialize_failed", error=str(exc))
        return ""


# ── Accessors ───────────────────────────────────────────────────────────────


def current_access_token(raw: RawCredential) -> str:
    """Return the bearer value of a credential (possibly stale for OAuth)."""
    credential = decode_credential(raw)
    if isinstance(credential, OAuthCredential):
        return credential.access_token or ""

    extra = credential.model_extra or {}
    return credential.access_token or extra.get("token") or extra.get("raw") or ""


def is_access_token_expired(
    raw: RawCredential,
    buffer_seconds: int = 60,
    now: datetime | None = None,
) -> bool:
    """Return True if the access token expires within ``buffer_seconds``.

    Credentials without an expiry (private tokens, legacy grants) never expire.
    """
    credential = decode_credential(raw)
    expires_at = getattr(credential, "expires_at", None)
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return current >= expires_at - timedelta(seconds=buffer_seconds)


# ── OAuth Construction ──────────────────────────────────────────────────────


def _derive_scope_level(user_type: str | None) -> str | None:
    if not user_type:
        return None
    return "agency" if user_type == "Company" else "location"


def build_oauth_credential(
    token_response: dict[str, Any],
    scope_level: str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> OAuthCredential:
    """Build an OAuthCredential from an OAuth token endpoint response.

    Args:
        token_response: Parsed JSON body of the token endpoint.
        scope_level: Explicit scope level; derived from ``userType`` if omitted.
        metadata: Metadata to carry forward. ``providerAccountId``,
            ``providerLocationId`` and ``installedAt`` keys take precedence
            over the response's ``companyId`` / ``locationId``.
        now: Clock override for tests.

    Raises:
        ValueError: If the response is not a dict or lacks ``access_token``.
    """
    if not isinstance(token_response, dict):
        raise ValueError("token_response is required to build OAuth credentials")

    access_token = token_response.get("access_token")
    if not access_token:
        raise ValueError("OAuth token response missing access_token")

    metadata = dict(metadata or {})
    issued = now or datetime.now(timezone.utc)

    expires_in = token_response.get("expires_in")
    refresh_expires_in = token_response.get("refresh_token_expires_in")
    expires_at = (
        issued + timedelta(seconds=expires_in)
        if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool)
        else None
    )
    refresh_token_expires_at = (
        issued + timedelta(seconds=refresh_expires_in)
        if isinstance(refresh_expires_in, (int, float)) and not isinstance(refresh_expires_in, bool)
        else None
    )

    scope = token_response.get("scope")
    if isinstance(scope, list):
        scope_list = [str(s) for s in scope if s]
    elif isinstance(scope, str):
        scope_list = [s for s in scope.split() if s]
    else:
        scope_list = []

    user_type = token_response.get("userType")
    provider_account_id = metadata.get("providerAccountId")
    if provider_account_id is None:
        provider_account_id = token_response.get("companyId")
    provider_location_id = metadata.get("providerLocationId")
    if provider_location_id is None:
        provider_location_id = token_response.get("locationId")

    built_metadata = {**metadata, "scope": scope_list}
    social = normalize_metadata(metadata).get("socialProfiles")
    if social is not None:
        built_metadata["socialProfiles"] = social

    return OAuthCredential(
        access_token=access_token,
        refresh_token=token_response.get("refresh_token") or None,
        expires_at=expires_at,
        refresh_token_expires_at=refresh_token_expires_at,
        scope=scope_list,
        scope_level=scope_level or _derive_scope_level(user_type),
        user_type=user_type or None,
        token_type=token_response.get("token_type") or "Bearer",
        provider_account_id=provider_account_id,
        provider_location_id=provider_location_id,
        installed_at=metadata.get("installedAt") or issued,
        metadata=built_metadata,
    )


# ── Client-Safe View ────────────────────────────────────────────────────────


def _sanitize_social_profiles(credential: Credential) -> dict[str, list[dict[str, Any]]]:
    metadata_profiles = credential.metadata.get("socialProfiles") or {}
    direct_profiles = (credential.model_extra or {}).get("socialProfiles") or {}

    output: dict[str, list[dict[str, Any]]] = {}
    for platform in SUPPORTED_SOCIAL_PLATFORMS:
        records = direct_profiles.get(platform)
        if not isinstance(records, list):
            records = metadata_profiles.get(platform)
        if not isinstance(records, list):
            continue
        items = [
            {
                "accountId": record.get("accountId") or record.get("id") or None,
                "displayName": (
                    record.get("displayName") or record.get("name") or record.get("accountName") or None
                ),
                "placement": record.get("placement"),
                "locations": record["locations"] if isinstance(record.get("locations"), list) else [],
                "connectedAt": record.get("connectedAt") or record.get("updatedAt") or None,
                "platform": record.get("platform") or platform,
            }
            for record in records
            if isinstance(record, dict)
        ]
        items = [item for item in items if item["accountId"]]
        if items:
            output[platform] = items
    return output


def sanitize_credential_for_client(raw: RawCredential) -> dict[str, Any]:
    """Return the non-secret view of a credential for dashboard display."""
    credential = decode_credential(raw)
    installed_at = getattr(credential, "installed_at", None)
    return {
        "type": credential.type,
        "scopeLevel": credential.scope_level,
        "userType": credential.user_type,
        "installedAt": installed_at.isoformat() if installed_at else None,
        "providerAccountId": getattr(credential, "provider_account_id", None),
        "providerLocationId": getattr(credential, "provider_location_id", None),
        "businessId": credential.metadata.get("businessId"),
        "socialProfiles": _sanitize_social_profiles(credential),
    }
