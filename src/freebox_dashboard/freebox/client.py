# Freebox API client (session gate)
#
# Async client for the box's local HTTP API. Owns the app session:
# challenge/response login with the app token, the session token sent as
# X-Fbx-App-Auth, and the cached /api_version info used to build versioned
# endpoint paths.
#
# Every getter returns the box's own envelope:
#   {"success": true, "result": ...}
#   {"success": false, "error_code": "...", "msg": "..."}
# Transport problems are folded into the same failure shape so callers
# never have to catch exceptions from a getter.

import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)

AUTH_HEADER = "X-Fbx-App-Auth"
DEFAULT_API_MAJOR = 8
DEFAULT_API_BASE = "/api/"

Envelope = Dict[str, Any]


def _failure(error_code: str, msg: str) -> Envelope:
    return {"success": False, "error_code": error_code, "msg": msg}


def parse_api_major(api_version: Optional[str], default: int = DEFAULT_API_MAJOR) -> int:
    """Major version from an ``api_version`` string ("8.2" -> 8)."""
    if not api_version:
        return default
    head = str(api_version).split(".")[0].strip()
    try:
        return int(head)
    except ValueError:
        return default


def compute_password(app_token: str, challenge: str) -> str:
    """Login password: hex HMAC-SHA1 of the challenge keyed by the app token."""
    return hmac.new(app_token.encode(), challenge.encode(), hashlib.sha1).hexdigest()


class FreeboxApi:
    """Session-holding client for the Freebox local API.

    Usage::

        api = FreeboxApi.from_settings(get_settings())
        await api.login()
        status = await api.get_connection_status()
    """

    def __init__(
        self,
        base_url: str,
        app_id: str,
        app_token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.app_id = app_id
        self._app_token = app_token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json", "User-Agent": "FreeboxDashboard/0.4"},
        )
        self._session_token: Optional[str] = None
        self._version_info: Optional[Dict[str, Any]] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "FreeboxApi":
        return cls(
            base_url=settings.freebox_base_url,
            app_id=settings.freebox_app_id,
            app_token=settings.freebox_app_token,
            timeout=settings.freebox_timeout,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def is_logged_in(self) -> bool:
        return self._session_token is not None

    def get_session_token(self) -> Optional[str]:
        return self._session_token

    def get_version_info(self) -> Optional[Dict[str, Any]]:
        """Cached /api_version body, or None if never fetched."""
        return self._version_info

    def api_major(self) -> int:
        info = self._version_info or {}
        return parse_api_major(info.get("api_version"))

    def _api_path(self, endpoint: str) -> str:
        info = self._version_info or {}
        base = info.get("api_base_url") or DEFAULT_API_BASE
        if not base.endswith("/"):
            base += "/"
        return f"{base}v{self.api_major()}/{endpoint.lstrip('/')}"

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> Envelope:
        headers = {}
        if authenticated and self._session_token:
            headers[AUTH_HEADER] = self._session_token

        try:
            resp = await self._client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Freebox %s %s failed: %s", method, path, exc)
            return _failure("network_error", str(exc) or exc.__class__.__name__)

        try:
            body = resp.json()
        except ValueError:
            logger.warning("Freebox %s %s returned non-JSON (HTTP %d)", method, path, resp.status_code)
            return _failure("invalid_response", f"HTTP {resp.status_code}: non-JSON body")

        if not isinstance(body, dict):
            return _failure("invalid_response", "Unexpected response shape")

        if body.get("error_code") == "auth_required" and authenticated:
            # The box expired our session; callers see the failure, the
            # next login re-establishes it.
            if self._session_token is not None:
                logger.info("Freebox session expired")
            self._session_token = None

        return body

    # ------------------------------------------------------------------
    # Version and session
    # ------------------------------------------------------------------

    async def get_api_version(self) -> Envelope:
        """Query /api_version (no auth) and cache the result.

        The endpoint returns a bare object rather than an envelope; it is
        wrapped here so callers handle one shape.
        """
        body = await self._request("GET", "/api_version", authenticated=False)
        if body.get("success") is False:
            return body
        self._version_info = body
        return {"success": True, "result": body}

    async def login(self, app_token: Optional[str] = None) -> Envelope:
        """Open an app session using the challenge/response flow."""
        token = app_token or self._app_token
        if not token:
            return _failure("auth_required", "No app token configured")
        if app_token:
            self._app_token = app_token

        if self._version_info is None:
            await self.get_api_version()

        challenge_resp = await self._request("GET", self._api_path("login/"), authenticated=False)
        if not challenge_resp.get("success"):
            return challenge_resp
        challenge = (challenge_resp.get("result") or {}).get("challenge")
        if not challenge:
            return _failure("invalid_response", "Login challenge missing")

        session_resp = await self._request(
            "POST",
            self._api_path("login/session/"),
            json={"app_id": self.app_id, "password": compute_password(token, challenge)},
            authenticated=False,
        )
        if not session_resp.get("success"):
            logger.warning("Freebox login refused: %s", session_resp.get("msg"))
            return session_resp

        session_token = (session_resp.get("result") or {}).get("session_token")
        if not session_token:
            return _failure("invalid_response", "Session token missing")

        self._session_token = session_token
        logger.info("Freebox session opened (api v%d)", self.api_major())
        return session_resp

    async def logout(self) -> Envelope:
        """Close the session upstream (best effort) and forget it locally."""
        if self._session_token is None:
            return {"success": True}
        result = await self._request("POST", self._api_path("login/logout/"))
        self._session_token = None
        return result

    # ------------------------------------------------------------------
    # Typed getters
    # ------------------------------------------------------------------

    async def get_connection_status(self) -> Envelope:
        return await self._request("GET", self._api_path("connection/"))

    async def get_system_info(self) -> Envelope:
        return await self._request("GET", self._api_path("system/"))

    async def get_epg_by_time(self, timestamp: int) -> Envelope:
        return await self._request("GET", self._api_path(f"tv/epg/by_time/{int(timestamp)}"))

    async def get_tv_channels(self) -> Envelope:
        return await self._request("GET", self._api_path("tv/channels/"))

    async def get_tv_bouquets(self) -> Envelope:
        return await self._request("GET", self._api_path("tv/bouquets/"))

    async def aclose(self) -> None:
        await self._client.aclose()
