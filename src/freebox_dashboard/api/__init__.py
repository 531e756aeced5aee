# Dashboard - Web API
#
# FastAPI backend providing the REST proxy and the realtime relay WebSocket
# for the dashboard UI.

from .errors import ApiError
from .main import app, start_api_server
from .services import DashboardServices, get_services, set_services

__all__ = [
    "ApiError",
    "app",
    "start_api_server",
    "DashboardServices",
    "get_services",
    "set_services",
]
