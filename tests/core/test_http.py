"""
Tests for the HTTP transport.

Verifies:
- The bearer token is read at request time, not at construction
- Non-2xx and network failures become TransportError with status/body
- Empty and malformed bodies
- Token exchange is form encoded and unauthenticated
"""

import httpx
import pytest

from workspace_integrations.core.errors import TransportError
from workspace_integrations.core.http import JSON_PATCH, Transport

BASE = "https://api.example.com/v1"


def _transport(handler, token_provider=lambda: "T1"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return Transport(BASE, token_provider, client=client)


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_reads_current_token_per_request(self):
        tokens = iter(["T1", "T2"])
        seen = []

        def handler(request):
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, json={})

        transport = _transport(handler, token_provider=lambda: next(tokens))
        await transport.get("devices")
        await transport.get("devices")

        assert seen == ["Bearer T1", "Bearer T2"]

    @pytest.mark.asyncio
    async def test_post_form_has_no_bearer(self):
        captured = {}

        def handler(request):
            captured["auth"] = request.headers.get("Authorization")
            captured["type"] = request.headers["Content-Type"]
            captured["body"] = request.content.decode()
            return httpx.Response(200, json={"access_token": "x"})

        transport = _transport(handler)
        await transport.post_form("https://auth.example.com/token", {"grant_type": "refresh_token"})

        assert captured["auth"] is None
        assert captured["type"] == "application/x-www-form-urlencoded"
        assert captured["body"] == "grant_type=refresh_token"


class TestUrls:
    def test_partial_urls_join_base(self):
        transport = Transport(BASE, lambda: None)

        assert transport.full_url("devices") == f"{BASE}/devices"
        assert transport.full_url("/devices/1") == f"{BASE}/devices/1"
        assert transport.full_url("https://other.example.com/x") == "https://other.example.com/x"


class TestResponses:
    @pytest.mark.asyncio
    async def test_non_2xx_raises_with_status_and_body(self):
        transport = _transport(lambda request: httpx.Response(403, json={"message": "Forbidden"}))

        with pytest.raises(TransportError) as exc_info:
            await transport.get("devices")

        assert exc_info.value.status_code == 403
        assert exc_info.value.body == {"message": "Forbidden"}

    @pytest.mark.asyncio
    async def test_network_error_raises_without_status(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        transport = _transport(handler)

        with pytest.raises(TransportError) as exc_info:
            await transport.get("devices")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_empty_body_is_empty_dict(self):
        transport = _transport(lambda request: httpx.Response(204))

        assert await transport.post("xapi/command/Standby.Activate", {"deviceId": "d"}) == {}

    @pytest.mark.asyncio
    async def test_malformed_json_raises(self):
        transport = _transport(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(TransportError):
            await transport.get("devices")

    @pytest.mark.asyncio
    async def test_patch_uses_given_content_type(self):
        captured = {}

        def handler(request):
            captured["type"] = request.headers["Content-Type"]
            captured["method"] = request.method
            return httpx.Response(200, json={"ok": True})

        transport = _transport(handler)
        result = await transport.patch("deviceConfigurations", [{"op": "replace"}], content_type=JSON_PATCH)

        assert result == {"ok": True}
        assert captured == {"type": JSON_PATCH, "method": "PATCH"}
