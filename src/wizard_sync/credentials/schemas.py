"""Pydantic models for stored CRM location credentials.

A credential is a tagged union on ``type``:
- PrivateTokenCredential: static private integration token
- OAuthCredential: refreshable OAuth grant with expiry and scopes

Field names are snake_case in Python and camelCase on the wire, matching the
JSON stored in the ``saved_locations.token`` column. Unknown keys (legacy
``token`` / ``raw``) are kept as extras so they survive a round trip.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


class CredentialType(str, Enum):
    PRIVATE_TOKEN = "private_token"
    OAUTH = "oauth"


class ScopeLevel(str, Enum):
    LOCATION = "location"
    AGENCY = "agency"


class RefreshStatus(str, Enum):
    """Outcome of the token refresh step during token resolution."""

    NOT_NEEDED = "not_needed"
    REFRESHED = "refreshed"
    SKIPPED_UNCONFIGURED = "skipped_unconfigured"
    FAILED = "failed"


class _CredentialBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    access_token: str = ""
    scope_level: str | None = None
    user_type: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_dict(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("access_token", mode="before")
    @classmethod
    def _access_token_str(cls, value: Any) -> str:
        return "" if value is None else str(value)


class PrivateTokenCredential(_CredentialBase):
    """Static private integration token."""

    type: Literal["private_token"] = "private_token"


class OAuthCredential(_CredentialBase):
    """Refreshable OAuth grant for a CRM location or agency."""

    type: Literal["oauth"] = "oauth"
    refresh_token: str | None = None
    expires_at: datetime | None = None
    refresh_token_expires_at: datetime | None = None
    scope: list[str] = Field(default_factory=list)
    token_type: str = "Bearer"
    provider_account_id: str | None = None
    provider_location_id: str | None = None
    installed_at: datetime | None = None

    @field_validator("scope", mode="before")
    @classmethod
    def _split_scope(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [part for part in value.split() if part]
        if isinstance(value, list):
            return [str(part) for part in value if part]
        return []

    @field_validator(
        "expires_at", "refresh_token_expires_at", "installed_at", mode="before"
    )
    @classmethod
    def _lenient_timestamp(cls, value: Any) -> Any:
        # Unparsable timestamps are treated as absent rather than rejected.
        if value in (None, ""):
            return None
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        return None

    @field_validator("provider_account_id", "provider_location_id", mode="before")
    @classmethod
    def _id_str(cls, value: Any) -> str | None:
        return None if value in (None, "") else str(value)


Credential = Annotated[
    Union[PrivateTokenCredential, OAuthCredential],
    Field(discriminator="type"),
]

credential_adapter: TypeAdapter[Credential] = TypeAdapter(Credential)


class TokenResolution(BaseModel):
    """Result of resolving a usable bearer token for a sync run.

    Refresh is fail-open: when it is skipped or fails, ``access_token`` is
    the stored (possibly stale) token and ``refresh_status`` says why.
    """

    access_token: str
    credential_type: CredentialType
    refresh_status: RefreshStatus = RefreshStatus.NOT_NEEDED
    refresh_error: str | None = None
