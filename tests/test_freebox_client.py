"""
Tests for the Freebox API client, against an httpx.MockTransport.

Covers:
  - api_version parsing and caching
  - challenge/response login (HMAC-SHA1 password, session header)
  - versioned endpoint paths
  - transport errors / non-JSON bodies folded into failure envelopes
  - auth_required clears the session
"""

import hashlib
import hmac
import json

import httpx
import pytest

from freebox_dashboard.config import Settings
from freebox_dashboard.freebox.client import (
    AUTH_HEADER,
    FreeboxApi,
    compute_password,
    parse_api_major,
)


class FakeBox:
    """Routes requests the way a v10 box answers them."""

    def __init__(self, api_version="10.2"):
        self.api_version = api_version
        self.requests = []
        self.session_token = "sess-abc"
        self.expire_session = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api_version":
            return httpx.Response(200, json={
                "api_version": self.api_version,
                "api_base_url": "/api/",
                "box_model": "fbxgw8-r1",
            })
        if path.endswith("/login/"):
            return httpx.Response(200, json={"success": True, "result": {"challenge": "chal-123"}})
        if path.endswith("/login/session/"):
            body = json.loads(request.content)
            expected = hmac.new(b"app-token", b"chal-123", hashlib.sha1).hexdigest()
            if body["password"] != expected:
                return httpx.Response(403, json={
                    "success": False, "error_code": "invalid_token", "msg": "bad password",
                })
            return httpx.Response(200, json={
                "success": True, "result": {"session_token": self.session_token},
            })
        if path.endswith("/login/logout/"):
            return httpx.Response(200, json={"success": True})

        if self.expire_session or request.headers.get(AUTH_HEADER) != self.session_token:
            return httpx.Response(403, json={
                "success": False, "error_code": "auth_required", "msg": "Invalid session token",
            })
        if path.endswith("/connection/"):
            return httpx.Response(200, json={"success": True, "result": {"rate_down": 1234}})
        if "/tv/epg/by_time/" in path:
            return httpx.Response(200, json={"success": True, "result": {"path": path}})
        return httpx.Response(404, json={"success": False, "error_code": "invalid_request", "msg": path})


@pytest.fixture
def box():
    return FakeBox()


@pytest.fixture
def api(box):
    return FreeboxApi(
        "http://box.test",
        app_id="fr.freebox.dashboard",
        app_token="app-token",
        transport=httpx.MockTransport(box.handler),
    )


# ── Helpers ──────────────────────────────────────────────────────────


class TestHelpers:
    def test_parse_api_major(self):
        assert parse_api_major("8.2") == 8
        assert parse_api_major("10") == 10
        assert parse_api_major(None) == 8
        assert parse_api_major("") == 8
        assert parse_api_major("garbage") == 8

    def test_compute_password(self):
        expected = hmac.new(b"tok", b"challenge", hashlib.sha1).hexdigest()
        assert compute_password("tok", "challenge") == expected

    def test_from_settings(self):
        settings = Settings(freebox_host="192.168.1.254", freebox_app_token="t")
        api = FreeboxApi.from_settings(settings)
        assert api.base_url == "http://192.168.1.254"
        assert api.app_id == settings.freebox_app_id


# ── Session ──────────────────────────────────────────────────────────


class TestSession:
    @pytest.mark.asyncio
    async def test_api_version_cached_and_wrapped(self, api, box):
        result = await api.get_api_version()

        assert result["success"] is True
        assert result["result"]["api_version"] == "10.2"
        assert api.get_version_info()["box_model"] == "fbxgw8-r1"
        assert api.api_major() == 10
        await api.aclose()

    @pytest.mark.asyncio
    async def test_login_success(self, api, box):
        result = await api.login()

        assert result["success"] is True
        assert api.is_logged_in()
        assert api.get_session_token() == "sess-abc"
        paths = [r.url.path for r in box.requests]
        assert paths == ["/api_version", "/api/v10/login/", "/api/v10/login/session/"]
        await api.aclose()

    @pytest.mark.asyncio
    async def test_login_wrong_token(self, api):
        result = await api.login(app_token="wrong")

        assert result["success"] is False
        assert result["error_code"] == "invalid_token"
        assert not api.is_logged_in()
        await api.aclose()

    @pytest.mark.asyncio
    async def test_login_without_token(self, box):
        api = FreeboxApi("http://box.test", app_id="x", transport=httpx.MockTransport(box.handler))
        result = await api.login()
        assert result == {"success": False, "error_code": "auth_required", "msg": "No app token configured"}
        assert box.requests == []
        await api.aclose()

    @pytest.mark.asyncio
    async def test_logout_clears_session(self, api):
        await api.login()
        await api.logout()
        assert not api.is_logged_in()
        await api.aclose()


# ── Requests ─────────────────────────────────────────────────────────


class TestRequests:
    @pytest.mark.asyncio
    async def test_authenticated_getter_sends_header(self, api, box):
        await api.login()
        result = await api.get_connection_status()

        assert result == {"success": True, "result": {"rate_down": 1234}}
        assert box.requests[-1].headers[AUTH_HEADER] == "sess-abc"
        await api.aclose()

    @pytest.mark.asyncio
    async def test_epg_path_is_versioned(self, api):
        await api.login()
        result = await api.get_epg_by_time(1_699_999_200)
        assert result["result"]["path"] == "/api/v10/tv/epg/by_time/1699999200"
        await api.aclose()

    @pytest.mark.asyncio
    async def test_auth_required_clears_session(self, api, box):
        await api.login()
        box.expire_session = True

        result = await api.get_connection_status()

        assert result["error_code"] == "auth_required"
        assert not api.is_logged_in()
        await api.aclose()

    @pytest.mark.asyncio
    async def test_network_error_becomes_envelope(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = FreeboxApi("http://box.test", app_id="x", transport=httpx.MockTransport(refuse))
        result = await api.get_api_version()

        assert result["success"] is False
        assert result["error_code"] == "network_error"
        assert "refused" in result["msg"]
        assert api.get_version_info() is None
        await api.aclose()

    @pytest.mark.asyncio
    async def test_non_json_becomes_invalid_response(self):
        def html(request):
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        api = FreeboxApi("http://box.test", app_id="x", transport=httpx.MockTransport(html))
        result = await api.get_connection_status()

        assert result["success"] is False
        assert result["error_code"] == "invalid_response"
        assert "502" in result["msg"]
        await api.aclose()
