# Realtime - Dashboard WebSocket hub
#
# Accepts browser connections on /ws/connection and fans relay messages out
# to all of them. The hub also drives the polling relay's lifecycle: the
# first client to connect starts polling, the last one to leave stops it,
# so the box is never polled while nobody is watching.
#
# Liveness is protocol-level: uvicorn sends WebSocket ping frames every 30s
# (see start_api_server) and closes a peer that misses the pong, which ends
# the endpoint's receive loop. Browsers answer those pings on their own, so
# the dashboard never has to send anything. The hub's own 30s sweep only
# reclaims clients whose socket is no longer reported open, in case a close
# never reached the receive loop.

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from ..core import EventSeverity, EventType, log_relay_event

logger = logging.getLogger(__name__)

WS_PATH = "/ws/connection"
PING_INTERVAL_SECONDS = 30.0

# Close code for server-initiated terminations and shutdown ("going away")
CLOSE_GOING_AWAY = 1001


class PollingLifecycle(Protocol):
    def start_polling(self) -> None: ...

    def stop_polling(self) -> None: ...


@dataclass
class DownstreamClient:
    """One accepted dashboard connection."""
    websocket: WebSocket
    is_alive: bool = True
    remote: str = "unknown"


def is_open(websocket: WebSocket) -> bool:
    """True when both sides of the socket are still connected."""
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class ConnectionHub:
    """Manages dashboard WebSocket connections and relay broadcasts."""

    def __init__(self, ping_interval: float = PING_INTERVAL_SECONDS):
        self._ping_interval = ping_interval
        self._clients: Dict[WebSocket, DownstreamClient] = {}
        self._relay: Optional[PollingLifecycle] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._attached = False
        self._closed = False

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def init(self, app: FastAPI) -> None:
        """Attach the WebSocket endpoint to the app. Idempotent."""
        if self._attached:
            return
        # A hub closed on a previous shutdown may still own the path
        app.router.routes[:] = [
            route for route in app.router.routes if getattr(route, "path", None) != WS_PATH
        ]
        app.add_api_websocket_route(WS_PATH, self.websocket_endpoint, name="relay_ws")
        self._attached = True
        logger.info("Relay WebSocket attached on %s", WS_PATH)

    def set_polling_relay(self, relay: PollingLifecycle) -> None:
        self._relay = relay

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, websocket: WebSocket) -> DownstreamClient:
        """Accept a dashboard connection and start polling on the first one."""
        await websocket.accept()
        remote = websocket.client.host if websocket.client else "unknown"
        client = DownstreamClient(websocket=websocket, remote=str(remote))
        self._clients[websocket] = client
        self._ensure_liveness_sweep()

        log_relay_event(
            EventType.CLIENT_CONNECTED,
            f"Dashboard client connected from {client.remote}",
            details={"clients": len(self._clients)},
            source="hub",
        )

        if len(self._clients) == 1 and self._relay is not None:
            self._relay.start_polling()
        return client

    def disconnect(self, websocket: WebSocket) -> bool:
        """Forget a connection; stop polling when it was the last one.

        Returns False when the socket was already gone (terminated by the
        liveness sweep, or closed on shutdown).
        """
        client = self._clients.pop(websocket, None)
        if client is None:
            return False

        log_relay_event(
            EventType.CLIENT_DISCONNECTED,
            f"Dashboard client {client.remote} disconnected",
            details={"clients": len(self._clients)},
            source="hub",
        )

        if not self._clients and self._relay is not None:
            self._relay.stop_polling()
        return True

    def handle_message(self, websocket: WebSocket, raw: str) -> None:
        """Process a frame sent by a dashboard client.

        The relay is server-to-client only; inbound frames are logged and
        dropped without affecting the connection.
        """
        client = self._clients.get(websocket)
        if client is None:
            return

        try:
            json.loads(raw)
        except ValueError:
            logger.debug("Dropping malformed frame from %s", client.remote)
            return
        logger.debug("Ignoring frame from %s", client.remote)

    async def websocket_endpoint(self, websocket: WebSocket):
        """WebSocket endpoint for real-time dashboard updates."""
        if self._closed:
            await websocket.close(code=CLOSE_GOING_AWAY)
            return

        await self.connect(websocket)
        try:
            while True:
                raw = await websocket.receive_text()
                self.handle_message(websocket, raw)
        except WebSocketDisconnect:
            pass
        except Exception as exc:
            logger.warning("Dashboard client error: %s", exc)
        finally:
            self.disconnect(websocket)

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    def _ensure_liveness_sweep(self) -> None:
        if self._closed:
            return
        if self._ping_task is None or self._ping_task.done():
            self._ping_task = asyncio.create_task(self._liveness_loop())

    async def _liveness_loop(self):
        while True:
            await asyncio.sleep(self._ping_interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Liveness sweep error")

    async def sweep(self) -> int:
        """Run one liveness pass. Returns the number of clients terminated.

        Clients whose socket is still open are left alone, whether or not
        they ever sent a frame.
        """
        terminated = 0
        for websocket, client in list(self._clients.items()):
            client.is_alive = is_open(websocket)
            if not client.is_alive:
                await self._terminate(client)
                terminated += 1
        return terminated

    async def _terminate(self, client: DownstreamClient) -> None:
        log_relay_event(
            EventType.CLIENT_TERMINATED,
            f"Dashboard client {client.remote} is no longer connected, reclaiming",
            severity=EventSeverity.WARNING,
            source="hub",
        )
        self.disconnect(client.websocket)
        try:
            await client.websocket.close(code=CLOSE_GOING_AWAY)
        except Exception as exc:
            logger.debug("Close of dead client %s failed: %s", client.remote, exc)

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    async def _send_to_all(self, message: str) -> int:
        sent = 0
        for websocket in list(self._clients):
            if not is_open(websocket):
                continue
            try:
                await websocket.send_text(message)
                sent += 1
            except Exception as exc:
                logger.debug("Broadcast send failed: %s", exc)
        return sent

    async def broadcast(self, message_type: str, data: Any) -> int:
        """Send ``{"type", "data"}`` to every open client.

        The payload is serialized once; closed sockets are skipped. Returns
        the number of clients the frame was handed to.
        """
        return await self._send_to_all(json.dumps({"type": message_type, "data": data}))

    async def broadcast_freebox_event(self, event_type: str, data: Dict[str, Any]) -> int:
        """Relay a native box event to every open client."""
        return await self._send_to_all(json.dumps({
            "type": "freebox_event",
            "eventType": event_type,
            "data": data,
        }))

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop polling and the liveness sweep, close every client. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if self._relay is not None:
            self._relay.stop_polling()

        if self._ping_task:
            self._ping_task.cancel()
            try:
                await self._ping_task
            except asyncio.CancelledError:
                pass
            self._ping_task = None

        for websocket in list(self._clients):
            self._clients.pop(websocket, None)
            try:
                await websocket.close(code=CLOSE_GOING_AWAY)
            except Exception:
                logger.debug("Close during shutdown failed", exc_info=True)

        logger.info("Relay WebSocket hub closed")


_connection_hub: Optional[ConnectionHub] = None


def get_connection_hub() -> ConnectionHub:
    """Get the process-wide hub (singleton pattern)."""
    global _connection_hub
    if _connection_hub is None:
        _connection_hub = ConnectionHub()
    return _connection_hub


async def close_connection_hub() -> None:
    """Close the hub and release the singleton."""
    global _connection_hub
    if _connection_hub is not None:
        await _connection_hub.close()
        _connection_hub = None
