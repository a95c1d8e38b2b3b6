"""Tests for the credential store: decode/encode, accessors, OAuth construction."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from src.wizard_sync.credentials import (
    OAuthCredential,
    PrivateTokenCredential,
    build_oauth_credential,
    current_access_token,
    decode_credential,
    encode_credential,
    is_access_token_expired,
    sanitize_credential_for_client,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

TOKEN_RESPONSE = {
    "access_token": "at-1",
    "refresh_token": "rt-1",
    "expires_in": 86399,
    "refresh_token_expires_in": 31536000,
    "scope": "locations.readonly customValues.write",
    "userType": "Location",
    "companyId": "comp-1",
    "locationId": "loc-1",
}


# ── Decode ───────────────────────────────────────────────────────────────────


class TestDecodeCredential:
    def test_empty_values_decode_to_empty_private_token(self):
        for raw in (None, "", "   "):
            credential = decode_credential(raw)
            assert isinstance(credential, PrivateTokenCredential)
            assert credential.access_token == ""

    def test_bare_string_is_private_token(self):
        credential = decode_credential("pit-abc123")
        assert isinstance(credential, PrivateTokenCredential)
        assert credential.access_token == "pit-abc123"

    def test_malformed_json_falls_back_to_raw_string(self):
        raw = '{"accessToken": "abc"'
        credential = decode_credential(raw)
        assert isinstance(credential, PrivateTokenCredential)
        assert credential.access_token == raw

    def test_infers_oauth_from_refresh_token(self):
        credential = decode_credential(json.dumps({"accessToken": "a", "refreshToken": "r"}))
        assert isinstance(credential, OAuthCredential)
        assert credential.refresh_token == "r"

    def test_infers_oauth_from_expiry(self):
        credential = decode_credential(
            json.dumps({"accessToken": "a", "expiresAt": "2026-03-01T12:00:00Z"})
        )
        assert isinstance(credential, OAuthCredential)
        assert credential.expires_at == NOW

    def test_json_without_oauth_markers_is_private_token(self):
        credential = decode_credential(json.dumps({"accessToken": "a", "metadata": {"businessId": "b"}}))
        assert isinstance(credential, PrivateTokenCredential)
        assert credential.metadata == {"businessId": "b"}

    def test_unparsable_timestamp_treated_as_absent(self):
        credential = decode_credential(
            json.dumps({"type": "oauth", "accessToken": "a", "expiresAt": "not a date"})
        )
        assert isinstance(credential, OAuthCredential)
        assert credential.expires_at is None

    def test_social_profiles_normalised_on_decode(self):
        raw = json.dumps(
            {
                "type": "private_token",
                "accessToken": "a",
                "metadata": {
                    "socialProfiles": {
                        "facebook": [{"id": "fb-1", "name": "Page"}, {"name": "no id"}],
                        "myspace": [{"id": "x"}],
                    }
                },
            }
        )
        credential = decode_credential(raw)
        profiles = credential.metadata["socialProfiles"]
        assert list(profiles) == ["facebook"]
        assert profiles["facebook"][0]["accountId"] == "fb-1"
        assert profiles["facebook"][0]["displayName"] == "Page"
        assert len(profiles["facebook"]) == 1


# ── Encode / Round Trip ──────────────────────────────────────────────────────


class TestEncodeCredential:
    def test_encode_none_is_empty_string(self):
        assert encode_credential(None) == ""

    def test_encoded_json_uses_camel_case_keys(self):
        credential = build_oauth_credential(TOKEN_RESPONSE, now=NOW)
        data = json.loads(encode_credential(credential))
        assert data["type"] == "oauth"
        assert data["accessToken"] == "at-1"
        assert data["refreshToken"] == "rt-1"
        assert data["providerLocationId"] == "loc-1"

    def test_oauth_round_trip_is_field_for_field(self):
        credential = build_oauth_credential(
            TOKEN_RESPONSE,
            metadata={"installationId": "inst-9", "businessId": "biz"},
            now=NOW,
        )
        decoded = decode_credential(encode_credential(credential))
        assert isinstance(decoded, OAuthCredential)
        assert decoded.model_dump() == credential.model_dump()

    def test_private_token_round_trip(self):
        credential = PrivateTokenCredential(access_token="pit", scope_level="location")
        decoded = decode_credential(encode_credential(credential))
        assert decoded.model_dump() == credential.model_dump()


# ── Accessors ────────────────────────────────────────────────────────────────


class TestAccessors:
    def test_current_access_token_for_oauth(self):
        credential = build_oauth_credential(TOKEN_RESPONSE, now=NOW)
        assert current_access_token(credential) == "at-1"

    def test_current_access_token_legacy_token_key(self):
        assert current_access_token(json.dumps({"token": "legacy"})) == "legacy"

    def test_current_access_token_empty(self):
        assert current_access_token(None) == ""

    def test_private_token_never_expires(self):
        assert is_access_token_expired("pit-abc", buffer_seconds=180) is False

    def test_expired_within_buffer(self):
        credential = OAuthCredential(access_token="a", expires_at=NOW + timedelta(seconds=120))
        assert is_access_token_expired(credential, buffer_seconds=180, now=NOW) is True
        assert is_access_token_expired(credential, buffer_seconds=60, now=NOW) is False

    def test_naive_expiry_treated_as_utc(self):
        credential = OAuthCredential(access_token="a", expires_at=datetime(2026, 3, 1, 11, 0))
        assert is_access_token_expired(credential, buffer_seconds=0, now=NOW) is True


# ── OAuth Construction ───────────────────────────────────────────────────────


class TestBuildOAuthCredential:
    def test_builds_expiry_scope_and_provider_ids(self):
        credential = build_oauth_credential(TOKEN_RESPONSE, now=NOW)

        assert credential.expires_at == NOW + timedelta(seconds=86399)
        assert credential.refresh_token_expires_at == NOW + timedelta(seconds=31536000)
        assert credential.scope == ["locations.readonly", "customValues.write"]
        assert credential.metadata["scope"] == credential.scope
        assert credential.scope_level == "location"
        assert credential.provider_account_id == "comp-1"
        assert credential.provider_location_id == "loc-1"
        assert credential.installed_at == NOW
        assert credential.token_type == "Bearer"

    def test_company_user_type_is_agency_scope(self):
        credential = build_oauth_credential({**TOKEN_RESPONSE, "userType": "Company"}, now=NOW)
        assert credential.scope_level == "agency"

    def test_metadata_provider_ids_take_precedence(self):
        credential = build_oauth_credential(
            TOKEN_RESPONSE,
            metadata={"providerAccountId": "kept-comp", "providerLocationId": "kept-loc"},
            now=NOW,
        )
        assert credential.provider_account_id == "kept-comp"
        assert credential.provider_location_id == "kept-loc"

    def test_missing_access_token_raises(self):
        with pytest.raises(ValueError, match="access_token"):
            build_oauth_credential({"refresh_token": "r"})

    def test_missing_expiry_leaves_expires_at_empty(self):
        credential = build_oauth_credential({"access_token": "a"}, now=NOW)
        assert credential.expires_at is None
        assert credential.refresh_token is None


# ── Client-Safe View ─────────────────────────────────────────────────────────


class TestSanitizeCredential:
    def test_omits_secrets(self):
        credential = build_oauth_credential(
            TOKEN_RESPONSE,
            metadata={
                "businessId": "biz-1",
                "socialProfiles": {"google": [{"accountId": "g-1", "displayName": "Biz"}]},
            },
            now=NOW,
        )
        view = sanitize_credential_for_client(credential)

        assert "accessToken" not in view
        assert "refreshToken" not in view
        assert view["type"] == "oauth"
        assert view["providerLocationId"] == "loc-1"
        assert view["businessId"] == "biz-1"
        assert view["socialProfiles"]["google"][0]["accountId"] == "g-1"
        assert view["socialProfiles"]["google"][0]["platform"] == "google"
