# Realtime - Polling relay
#
# Polls the box's REST API on two independent intervals and broadcasts the
# snapshots to dashboard clients:
#   - connection status every second (bandwidth chart needs the resolution)
#   - system status every 5 seconds (thermal data changes slowly)
#
# Polling runs only while at least one dashboard client is connected; the
# hub calls start_polling()/stop_polling() on the first/last client. Each
# tick spawns its fetch as a task, so a slow box delays that tick's
# broadcast without holding up the interval itself.

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set

from ..core import EventType, log_relay_event
from ..freebox.normalizer import SYSTEM_STATUS_FIELDS, normalize_system_info

logger = logging.getLogger(__name__)

CONNECTION_POLL_INTERVAL = 1.0  # seconds
SYSTEM_POLL_INTERVAL = 5.0  # seconds

CONNECTION_STATUS_FIELDS = (
    "rate_down",
    "rate_up",
    "bandwidth_down",
    "bandwidth_up",
    "bytes_down",
    "bytes_up",
    "state",
    "type",
    "media",
    "ipv4",
    "ipv6",
    "ipv4_port_range",
)


class SessionGate(Protocol):
    def is_logged_in(self) -> bool: ...

    async def get_connection_status(self) -> Dict[str, Any]: ...

    async def get_system_info(self) -> Dict[str, Any]: ...


class Broadcaster(Protocol):
    @property
    def client_count(self) -> int: ...

    async def broadcast(self, message_type: str, data: Any) -> int: ...


def connection_snapshot(result: Dict[str, Any]) -> Dict[str, Any]:
    """Project a /connection/ result onto the connection_status fields."""
    return {key: result[key] for key in CONNECTION_STATUS_FIELDS if key in result}


def system_snapshot(result: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a /system/ result into the system_status fields."""
    normalized = normalize_system_info(result)
    return {key: normalized[key] for key in SYSTEM_STATUS_FIELDS if key in normalized}


class PollingRelay:
    """Interval poller feeding connection and system snapshots to the hub."""

    def __init__(
        self,
        api: SessionGate,
        hub: Broadcaster,
        connection_interval: float = CONNECTION_POLL_INTERVAL,
        system_interval: float = SYSTEM_POLL_INTERVAL,
    ):
        self._api = api
        self._hub = hub
        self._connection_interval = connection_interval
        self._system_interval = system_interval
        self._connection_task: Optional[asyncio.Task] = None
        self._system_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._connection_task is not None

    def start_polling(self) -> None:
        """Start both intervals and fetch once immediately. No-op if running."""
        if self._connection_task is not None:
            return

        logger.info(
            "Starting relay polling (connection=%.1fs, system=%.1fs)",
            self._connection_interval,
            self._system_interval,
        )
        log_relay_event(EventType.POLLING_STARTED, "Relay polling started", source="relay")

        self._connection_task = asyncio.create_task(
            self._interval_loop(self._connection_interval, self.fetch_connection_and_broadcast)
        )
        self._system_task = asyncio.create_task(
            self._interval_loop(self._system_interval, self.fetch_system_and_broadcast)
        )

        # First client should not wait a full interval for data
        self._spawn(self.fetch_connection_and_broadcast())
        self._spawn(self.fetch_system_and_broadcast())

    def stop_polling(self) -> None:
        """Cancel both intervals. Safe to call when not running.

        Fetches already in flight are left to finish; their results are
        dropped by the zero-client check or simply broadcast once more.
        """
        if self._connection_task is None and self._system_task is None:
            return

        for task in (self._connection_task, self._system_task):
            if task is not None:
                task.cancel()
        self._connection_task = None
        self._system_task = None

        logger.info("Stopped relay polling")
        log_relay_event(EventType.POLLING_STOPPED, "Relay polling stopped", source="relay")

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _interval_loop(self, interval: float, fetch: Callable[[], Awaitable[None]]):
        while True:
            await asyncio.sleep(interval)
            self._spawn(fetch())

    def _should_fetch(self) -> bool:
        return self._api.is_logged_in() and self._hub.client_count > 0

    async def fetch_connection_and_broadcast(self) -> None:
        """One connection tick: fetch /connection/ and broadcast it."""
        if not self._should_fetch():
            return
        try:
            response = await self._api.get_connection_status()
            if response.get("success") and response.get("result"):
                await self._hub.broadcast("connection_status", connection_snapshot(response["result"]))
        except Exception as exc:
            # The next tick is the retry
            logger.debug("Connection poll failed: %s", exc)

    async def fetch_system_and_broadcast(self) -> None:
        """One system tick: fetch /system/, normalize and broadcast it."""
        if not self._should_fetch():
            return
        try:
            response = await self._api.get_system_info()
            if response.get("success") and response.get("result"):
                await self._hub.broadcast("system_status", system_snapshot(response["result"]))
        except Exception as exc:
            logger.debug("System poll failed: %s", exc)

    def on_login(self) -> None:
        if self._hub.client_count > 0:
            self.start_polling()

    def on_logout(self) -> None:
        self.stop_polling()
