"""Tests for build_crm_client: token resolution and default headers."""

from __future__ import annotations

import json

import httpx
import pytest

from src.wizard_sync.credentials import MissingAccessTokenError, OAuthCredential
from src.wizard_sync.crm import build_crm_client


class TestBuildCrmClient:
    @pytest.mark.asyncio
    async def test_sets_auth_version_and_accept_headers(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        client = build_crm_client(
            "pit-abc",
            base_url="https://crm.test",
            transport=httpx.MockTransport(handler),
        )
        async with client:
            await client.get("/locations/loc-1")

        request = seen[0]
        assert str(request.url) == "https://crm.test/locations/loc-1"
        assert request.headers["Authorization"] == "Bearer pit-abc"
        assert request.headers["Version"] == "2021-07-28"
        assert request.headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_json_body_sent_as_json(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={})

        client = build_crm_client("pit", base_url="https://crm.test", transport=httpx.MockTransport(handler))
        async with client:
            await client.post("/links/", json={"name": "x"})

        assert seen[0].headers["Content-Type"] == "application/json"
        assert json.loads(seen[0].content) == {"name": "x"}

    def test_uses_oauth_access_token(self):
        credential = OAuthCredential(access_token="oauth-at", refresh_token="rt")
        client = build_crm_client(credential)
        assert client.headers["Authorization"] == "Bearer oauth-at"
        assert str(client.base_url).startswith("https://services.leadconnectorhq.com")

    def test_accepts_encoded_token_column(self):
        client = build_crm_client(json.dumps({"type": "oauth", "accessToken": "from-json"}))
        assert client.headers["Authorization"] == "Bearer from-json"

    def test_missing_token_raises(self):
        with pytest.raises(MissingAccessTokenError):
            build_crm_client(None)

    def test_oauth_without_access_token_raises(self):
        with pytest.raises(MissingAccessTokenError):
            build_crm_client(OAuthCredential(access_token="", refresh_token="rt"))
