# Runtime services
#
# Holds the process-wide relay components and wires them together:
#
#   FreeboxApi ──> PollingRelay ──┐
#                                 ├──> ConnectionHub ──> dashboard clients
#   FreeboxApi ──> NativeEventBridge ┘
#   FreeboxApi ──> EpgCache ──> /api/tv/epg/by_time
#
# Login and logout fan out to the relay and the bridge from here, so the
# routes never have to know which components care about the session.

import asyncio
import logging
from typing import Optional

from ..cache import EpgCache
from ..config import Settings, get_settings
from ..core import EventSeverity, EventType, log_relay_event
from ..freebox import FreeboxApi
from ..realtime import (
    ConnectionHub,
    NativeEventBridge,
    PollingRelay,
    close_connection_hub,
    get_connection_hub,
)
from .errors import ApiError

logger = logging.getLogger(__name__)


class DashboardServices:
    """Container for the relay singletons."""

    def __init__(
        self,
        settings: Settings,
        api: FreeboxApi,
        hub: ConnectionHub,
        relay: PollingRelay,
        bridge: NativeEventBridge,
        epg_cache: EpgCache,
    ):
        self.settings = settings
        self.api = api
        self.hub = hub
        self.relay = relay
        self.bridge = bridge
        self.epg_cache = epg_cache
        self._login_task: Optional[asyncio.Task] = None

    @classmethod
    def build(cls, settings: Optional[Settings] = None, api: Optional[FreeboxApi] = None) -> "DashboardServices":
        settings = settings or get_settings()
        api = api or FreeboxApi.from_settings(settings)
        hub = get_connection_hub()
        relay = PollingRelay(api, hub)
        hub.set_polling_relay(relay)
        bridge = NativeEventBridge(api, hub, host=settings.freebox_host)
        epg_cache = EpgCache(api.get_epg_by_time)
        return cls(settings, api, hub, relay, bridge, epg_cache)

    async def notify_login(self) -> None:
        """Session opened: resume polling for connected clients, start native events."""
        self.relay.on_login()
        await self.bridge.on_login()

    async def notify_logout(self) -> None:
        self.relay.on_logout()
        await self.bridge.on_logout()

    async def login(self, app_token: Optional[str] = None) -> dict:
        result = await self.api.login(app_token)
        if result.get("success"):
            log_relay_event(EventType.SESSION_LOGIN, "Freebox session opened", source="session")
            await self.notify_login()
        else:
            log_relay_event(
                EventType.SESSION_LOGIN_FAILED,
                f"Freebox login failed: {result.get('msg') or result.get('error_code')}",
                severity=EventSeverity.WARNING,
                source="session",
            )
        return result

    def start_auto_login(self) -> asyncio.Task:
        """Log in with the configured token in the background.

        Startup does not wait on the box: a slow or unreachable box only
        delays the session, never the server.
        """
        if self._login_task is None or self._login_task.done():
            self._login_task = asyncio.create_task(self._auto_login())
        return self._login_task

    async def _auto_login(self) -> None:
        try:
            result = await self.login()
        except Exception:
            logger.exception("Automatic Freebox login crashed")
            return
        if not result.get("success"):
            logger.warning("Automatic Freebox login failed; waiting for /api/auth/login")

    async def logout(self) -> dict:
        await self.notify_logout()
        result = await self.api.logout()
        log_relay_event(EventType.SESSION_LOGOUT, "Freebox session closed", source="session")
        return result

    async def shutdown(self) -> None:
        if self._login_task is not None and not self._login_task.done():
            self._login_task.cancel()
            try:
                await self._login_task
            except asyncio.CancelledError:
                pass
        self._login_task = None
        await self.bridge.stop()
        await close_connection_hub()
        await self.api.aclose()


_services: Optional[DashboardServices] = None


def get_services() -> DashboardServices:
    """Get the process-wide services (singleton pattern)."""
    global _services
    if _services is None:
        _services = DashboardServices.build()
    return _services


def set_services(services: Optional[DashboardServices]) -> None:
    """Replace the services singleton (tests inject fakes here)."""
    global _services
    _services = services


def require_login(services: DashboardServices) -> None:
    """Raise 401 unless a Freebox session is open."""
    if not services.api.is_logged_in():
        raise ApiError("Not logged in to the Freebox", status_code=401, code="AUTH_REQUIRED")
