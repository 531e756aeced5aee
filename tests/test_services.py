"""
Tests for the services container: wiring, login/logout fan-out and
background auto-login.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from freebox_dashboard.api.errors import ApiError
from freebox_dashboard.api.services import (
    DashboardServices,
    get_services,
    require_login,
    set_services,
)
from freebox_dashboard.config import Settings
from freebox_dashboard.realtime import get_connection_hub


def _services(login_result):
    api = MagicMock()
    api.login = AsyncMock(return_value=login_result)
    api.logout = AsyncMock(return_value={"success": True})
    api.aclose = AsyncMock()
    relay = MagicMock()
    bridge = MagicMock()
    bridge.on_login = AsyncMock()
    bridge.on_logout = AsyncMock()
    bridge.stop = AsyncMock()
    return DashboardServices(Settings(), api, get_connection_hub(), relay, bridge, MagicMock())


class TestWiring:
    def test_build_wires_relay_into_hub(self):
        services = DashboardServices.build(settings=Settings(freebox_host="box.test"))
        assert services.hub is get_connection_hub()
        assert services.hub._relay is services.relay
        assert services.bridge.url == "wss://box.test/api/v8/ws/event"

    def test_set_and_get(self):
        services = _services({"success": True})
        set_services(services)
        assert get_services() is services


class TestLoginFanOut:
    @pytest.mark.asyncio
    async def test_login_success_notifies(self):
        services = _services({"success": True, "result": {"session_token": "s"}})

        result = await services.login("tok")

        assert result["success"] is True
        services.api.login.assert_awaited_once_with("tok")
        services.relay.on_login.assert_called_once()
        services.bridge.on_login.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_login_failure_does_not_notify(self):
        services = _services({"success": False, "error_code": "invalid_token", "msg": "nope"})

        await services.login("bad")

        services.relay.on_login.assert_not_called()
        services.bridge.on_login.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_logout_stops_relay_and_bridge(self):
        services = _services({"success": True})

        await services.logout()

        services.relay.on_logout.assert_called_once()
        services.bridge.on_logout.assert_awaited_once()
        services.api.logout.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shutdown_closes_everything(self):
        services = _services({"success": True})
        hub = services.hub

        await services.shutdown()

        services.bridge.stop.assert_awaited_once()
        services.api.aclose.assert_awaited_once()
        assert hub.is_closed


class TestAutoLogin:
    @pytest.mark.asyncio
    async def test_start_returns_while_box_is_slow(self):
        services = _services({"success": True})
        box_answers = asyncio.Event()

        async def slow_login(app_token=None):
            await box_answers.wait()
            return {"success": True}

        services.api.login = AsyncMock(side_effect=slow_login)

        task = services.start_auto_login()
        await asyncio.sleep(0.01)

        assert not task.done()
        services.bridge.on_login.assert_not_awaited()

        box_answers.set()
        await task

        services.bridge.on_login.assert_awaited_once()
        services.relay.on_login.assert_called_once()

    @pytest.mark.asyncio
    async def test_start_twice_reuses_pending_task(self):
        services = _services({"success": True})

        async def slow_login(app_token=None):
            await asyncio.sleep(1)

        services.api.login = AsyncMock(side_effect=slow_login)

        first = services.start_auto_login()
        second = services.start_auto_login()

        assert first is second
        await services.shutdown()

    @pytest.mark.asyncio
    async def test_failed_auto_login_is_logged_not_raised(self):
        services = _services({"success": True})
        services.api.login = AsyncMock(side_effect=RuntimeError("box unreachable"))

        await services.start_auto_login()

        services.bridge.on_login.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending_login(self):
        services = _services({"success": True})
        never = asyncio.Event()

        async def hanging_login(app_token=None):
            await never.wait()

        services.api.login = AsyncMock(side_effect=hanging_login)
        task = services.start_auto_login()
        await asyncio.sleep(0.01)

        await services.shutdown()

        assert task.cancelled()
        services.bridge.on_login.assert_not_awaited()
        services.bridge.stop.assert_awaited_once()


class TestRequireLogin:
    def test_raises_when_logged_out(self):
        services = _services({"success": True})
        services.api.is_logged_in.return_value = False
        with pytest.raises(ApiError) as exc_info:
            require_login(services)
        assert exc_info.value.status_code == 401
        assert exc_info.value.code == "AUTH_REQUIRED"

    def test_passes_when_logged_in(self):
        services = _services({"success": True})
        services.api.is_logged_in.return_value = True
        require_login(services)
