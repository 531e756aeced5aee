# Realtime - Native event bridge
#
# Keeps one outbound WebSocket open to the box's own push-event endpoint
# (wss://<host>/api/v<N>/ws/event, API v8+ only: Delta, Pop, Ultra) and
# republishes the events we care about to dashboard clients:
#   - LAN host reachable / unreachable (device joined / left the network)
#   - VM state changed
#   - VM disk task done
#
# Lifecycle:
#   stopped -> connecting -> open -> closed -> reconnect scheduled -> connecting ...
# A dropped connection is retried once after a fixed 5s delay; only stop()
# (logout, shutdown) ends the cycle.

import asyncio
import json
import logging
import ssl
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..core import EventSeverity, EventType, log_relay_event
from ..freebox.client import AUTH_HEADER, DEFAULT_API_MAJOR, parse_api_major

logger = logging.getLogger(__name__)

MIN_NATIVE_API_VERSION = 8
RECONNECT_DELAY_SECONDS = 5.0

NATIVE_EVENTS = (
    "lan_host_l3addr_reachable",
    "lan_host_l3addr_unreachable",
    "vm_state_changed",
    "vm_disk_task_done",
)


class NativeSessionGate(Protocol):
    def is_logged_in(self) -> bool: ...

    def get_session_token(self) -> Optional[str]: ...

    def get_version_info(self) -> Optional[Dict[str, Any]]: ...

    async def get_api_version(self) -> Dict[str, Any]: ...


class FreeboxEventSink(Protocol):
    async def broadcast_freebox_event(self, event_type: str, data: Dict[str, Any]) -> int: ...


def _relaxed_ssl_context() -> ssl.SSLContext:
    """TLS context for the box's self-signed certificate.

    Used for the native event socket only; the REST client keeps default
    verification.
    """
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _now_ms() -> int:
    return int(time.time() * 1000)


class NativeEventBridge:
    """Bridge from the box's push events to dashboard broadcasts."""

    def __init__(
        self,
        api: NativeSessionGate,
        sink: FreeboxEventSink,
        host: str,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        connect_factory: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        self._api = api
        self._sink = sink
        self._host = host
        self._reconnect_delay = reconnect_delay
        self._connect_factory = connect_factory or websockets.connect
        self._ssl_context: Optional[ssl.SSLContext] = None

        self._ws: Any = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

        self.is_connecting = False
        self.should_reconnect = False
        self.api_version = DEFAULT_API_MAJOR
        self.connect_attempts = 0

        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[None]]] = {
            "lan_host_l3addr_reachable": self._handle_lan_host_reachable,
            "lan_host_l3addr_unreachable": self._handle_lan_host_unreachable,
            "vm_state_changed": self._handle_vm_state_changed,
            "vm_disk_task_done": self._handle_vm_disk_task_done,
        }

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return f"wss://{self._host}/api/v{self.api_version}/ws/event"

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None and not self._reconnect_handle.cancelled()

    @property
    def state(self) -> str:
        if self._ws is not None:
            return "open"
        if self.is_connecting:
            return "connecting"
        if self.reconnect_pending:
            return "reconnect_scheduled"
        return "closed" if self.should_reconnect else "stopped"

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    async def _detect_api_version(self) -> int:
        info = self._api.get_version_info()
        if not info:
            response = await self._api.get_api_version()
            if response.get("success") and response.get("result"):
                info = response["result"]
        return parse_api_major((info or {}).get("api_version"))

    async def start(self) -> None:
        """Connect if the box supports native events.

        The version gate is evaluated on every start, so a box that was
        below v8 at one login is checked again at the next.
        """
        self.api_version = await self._detect_api_version()

        if self.api_version < MIN_NATIVE_API_VERSION:
            logger.info(
                "Native events need API v%d+, box reports v%d; bridge disabled for this session",
                MIN_NATIVE_API_VERSION,
                self.api_version,
            )
            log_relay_event(
                EventType.NATIVE_UNSUPPORTED,
                f"Native events unsupported on API v{self.api_version}",
                details={"api_version": self.api_version},
                source="native",
            )
            return

        self.should_reconnect = True
        await self.connect()

    async def stop(self) -> None:
        """Stop reconnecting and close the live connection, if any."""
        self.should_reconnect = False

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        ws, self._ws = self._ws, None
        if ws is not None:
            logger.info("Stopping native event bridge")
            await self._safe_close(ws)
        self._reader_task = None

    async def on_login(self) -> None:
        await self.start()

    async def on_logout(self) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _get_ssl_context(self) -> ssl.SSLContext:
        if self._ssl_context is None:
            self._ssl_context = _relaxed_ssl_context()
        return self._ssl_context

    async def connect(self) -> None:
        """Open the native socket. No-op while connecting or already open."""
        if self.is_connecting or self._ws is not None:
            return

        if not self._api.is_logged_in():
            logger.info("Not logged in, skipping native event connection")
            return

        self.is_connecting = True
        self.connect_attempts += 1
        url = self.url
        logger.info("Connecting to native event endpoint %s", url)

        try:
            ws = await self._connect_factory(
                url,
                additional_headers={AUTH_HEADER: self._api.get_session_token() or ""},
                ssl=self._get_ssl_context(),
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            log_relay_event(
                EventType.NATIVE_DISCONNECTED,
                f"Native event connection failed: {exc}",
                severity=EventSeverity.WARNING,
                source="native",
            )
            self._schedule_reconnect()
            return
        finally:
            self.is_connecting = False

        if not self.should_reconnect:
            # stop() ran while we were connecting
            await self._safe_close(ws)
            return

        self._ws = ws
        log_relay_event(EventType.NATIVE_CONNECTED, "Connected to native event endpoint", source="native")

        try:
            await self._register_events(ws)
        except ConnectionClosed:
            logger.debug("Native socket closed before registration")

        self._reader_task = self._spawn(self._read_loop(ws))

    async def _register_events(self, ws: Any) -> None:
        logger.info("Registering for native events: %s", ", ".join(NATIVE_EVENTS))
        await ws.send(json.dumps({"action": "register", "events": list(NATIVE_EVENTS)}))

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                await self.handle_message(raw)
        except ConnectionClosed:
            pass
        except Exception:
            logger.exception("Native event reader error")
        finally:
            self._on_connection_lost(ws)

    def _on_connection_lost(self, ws: Any) -> None:
        if self._ws is not ws:
            # Released by stop() or superseded; the current connection owns
            # the connecting flag and the reconnect timer
            return

        self._ws = None
        log_relay_event(
            EventType.NATIVE_DISCONNECTED,
            f"Native event connection closed (code={getattr(ws, 'close_code', None)})",
            severity=EventSeverity.WARNING,
            source="native",
        )
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if not self.should_reconnect:
            return

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()

        logger.info("Reconnecting native events in %.0f seconds", self._reconnect_delay)
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self._reconnect_delay, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if self.should_reconnect:
            self._spawn(self.connect())

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _safe_close(ws: Any) -> None:
        try:
            await ws.close()
        except Exception:
            logger.debug("Native socket close failed", exc_info=True)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def handle_message(self, raw: Any) -> None:
        """Parse one frame from the box and dispatch it."""
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Failed to parse native event message: %s", exc)
            return

        if not isinstance(message, dict):
            return

        action = message.get("action")
        if action == "register":
            if message.get("success"):
                logger.info("Registered for native events")
            else:
                log_relay_event(
                    EventType.NATIVE_REGISTER_FAILED,
                    "Box refused native event registration",
                    severity=EventSeverity.ERROR,
                    details={"response": message},
                    source="native",
                )
            return

        if action == "notification" and message.get("success"):
            await self._handle_notification(message)

    async def _handle_notification(self, notification: Dict[str, Any]) -> None:
        full_event = f"{notification.get('source')}_{notification.get('event')}"
        handler = self._handlers.get(full_event)
        if handler is None:
            logger.info("Unknown native event: %s", full_event)
            return

        result = notification.get("result")
        await handler(result if isinstance(result, dict) else {})

    async def _handle_lan_host_reachable(self, host: Dict[str, Any]) -> None:
        logger.info("Device connected: %s", host.get("primary_name") or host.get("id"))
        await self._sink.broadcast_freebox_event("lan_host_reachable", {
            "id": host.get("id"),
            "name": host.get("primary_name") or "Unknown",
            "host_type": host.get("host_type"),
            "vendor_name": host.get("vendor_name"),
            "active": True,
            "timestamp": _now_ms(),
        })

    async def _handle_lan_host_unreachable(self, host: Dict[str, Any]) -> None:
        logger.info("Device disconnected: %s", host.get("primary_name") or host.get("id"))
        await self._sink.broadcast_freebox_event("lan_host_unreachable", {
            "id": host.get("id"),
            "name": host.get("primary_name") or "Unknown",
            "host_type": host.get("host_type"),
            "vendor_name": host.get("vendor_name"),
            "active": False,
            "timestamp": _now_ms(),
        })

    async def _handle_vm_state_changed(self, vm: Dict[str, Any]) -> None:
        logger.info("VM %s state -> %s", vm.get("id"), vm.get("status"))
        await self._sink.broadcast_freebox_event("vm_state_changed", {
            "id": vm.get("id"),
            "status": vm.get("status"),
            "timestamp": _now_ms(),
        })

    async def _handle_vm_disk_task_done(self, task: Dict[str, Any]) -> None:
        logger.info("VM disk task %s done (error=%s)", task.get("id"), task.get("error"))
        await self._sink.broadcast_freebox_event("vm_disk_task_done", {
            "id": task.get("id"),
            "done": task.get("done"),
            "error": task.get("error"),
            "timestamp": _now_ms(),
        })
