"""
Shared pytest fixtures for the Freebox dashboard test suite.

Autouse fixtures below isolate tests from the live environment:
  - Settings       -> rebuilt per test from a clean environment (no .env token)
  - Event log      -> fresh logger and throttler per test
  - Services / hub -> singletons reset so no test sees another's clients
"""

from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from starlette.websockets import WebSocketState


@pytest.fixture(autouse=True)
def _isolate_settings(tmp_path, monkeypatch):
    """Point settings at a temp log dir and drop any configured app token.

    Without this, a developer's ``.env`` with FREEBOX_APP_TOKEN makes the
    app try to log in to a real box during TestClient startup.
    """
    import freebox_dashboard.config as config_mod

    monkeypatch.setenv("FREEBOX_APP_TOKEN", "")
    monkeypatch.setenv("DASHBOARD_LOG_DIR", str(tmp_path / "logs"))
    config_mod.reset_settings()
    yield
    config_mod.reset_settings()


@pytest.fixture(autouse=True)
def _isolate_event_log():
    """Fresh event logger and throttler so throttling never leaks across tests."""
    import freebox_dashboard.core.event_log as event_mod
    import freebox_dashboard.core.log_throttle as throttle_mod

    old_logger, old_throttler = event_mod._event_logger, throttle_mod._log_throttler
    event_mod._event_logger = None
    throttle_mod._log_throttler = None
    yield
    event_mod._event_logger = old_logger
    throttle_mod._log_throttler = old_throttler


@pytest.fixture(autouse=True)
def _isolate_services():
    """Reset the services and hub singletons around every test."""
    import freebox_dashboard.api.services as services_mod
    import freebox_dashboard.realtime.connection_hub as hub_mod

    services_mod._services = None
    hub_mod._connection_hub = None
    yield
    services_mod._services = None
    hub_mod._connection_hub = None


# ── Fakes ────────────────────────────────────────────────────────────


class FakeWebSocket:
    """Minimal stand-in for a Starlette WebSocket held by the hub."""

    def __init__(self, host: str = "10.0.0.2", open_: bool = True):
        self.client = MagicMock(host=host, port=50000)
        self.client_state = WebSocketState.CONNECTED if open_ else WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.CONNECTING
        self.sent: List[str] = []
        self.closed_with: Optional[int] = None

    async def accept(self):
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, data: str):
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        self.closed_with = code
        self.application_state = WebSocketState.DISCONNECTED

    def set_open(self, open_: bool):
        self.client_state = WebSocketState.CONNECTED if open_ else WebSocketState.DISCONNECTED


class FakeSessionGate:
    """Scriptable Freebox API stand-in for relay and bridge tests."""

    def __init__(
        self,
        logged_in: bool = True,
        connection: Optional[List[Dict[str, Any]]] = None,
        system: Optional[Dict[str, Any]] = None,
        api_version: Optional[str] = "10.2",
    ):
        self.logged_in = logged_in
        self.connection_responses = list(connection or [])
        self.system_response = system or {"success": True, "result": {"temp_cpum": 60, "uptime_val": 100}}
        self.api_version = api_version
        self.version_info: Optional[Dict[str, Any]] = None
        self.connection_calls = 0
        self.system_calls = 0
        self.version_calls = 0

    def is_logged_in(self) -> bool:
        return self.logged_in

    def get_session_token(self) -> Optional[str]:
        return "session-token" if self.logged_in else None

    def get_version_info(self) -> Optional[Dict[str, Any]]:
        return self.version_info

    async def get_api_version(self) -> Dict[str, Any]:
        self.version_calls += 1
        if self.api_version is None:
            return {"success": False, "error_code": "network_error", "msg": "unreachable"}
        self.version_info = {"api_version": self.api_version}
        return {"success": True, "result": self.version_info}

    async def get_connection_status(self) -> Dict[str, Any]:
        self.connection_calls += 1
        if self.connection_responses:
            return self.connection_responses.pop(0)
        return {"success": True, "result": {"rate_down": 1, "rate_up": 1, "state": "up"}}

    async def get_system_info(self) -> Dict[str, Any]:
        self.system_calls += 1
        return self.system_response


@pytest.fixture
def fake_api():
    return FakeSessionGate()

