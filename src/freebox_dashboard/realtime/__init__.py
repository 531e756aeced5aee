# Realtime Module
# Dashboard WebSocket hub, the REST polling relay and the bridge to the
# box's native push events.

from .connection_hub import (
    WS_PATH,
    ConnectionHub,
    DownstreamClient,
    close_connection_hub,
    get_connection_hub,
)
from .native_bridge import NATIVE_EVENTS, NativeEventBridge
from .polling_relay import PollingRelay

__all__ = [
    "WS_PATH",
    "ConnectionHub",
    "DownstreamClient",
    "close_connection_hub",
    "get_connection_hub",
    "NATIVE_EVENTS",
    "NativeEventBridge",
    "PollingRelay",
]
