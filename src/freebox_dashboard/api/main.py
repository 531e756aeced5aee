# Dashboard - FastAPI Backend
#
# REST proxy to the Freebox local API plus the realtime relay WebSocket
# (/ws/connection) feeding the dashboard UI.

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import get_settings
from ..core import EventType, configure_logging, log_relay_event
from ..realtime.connection_hub import PING_INTERVAL_SECONDS
from .auth_routes import router as auth_router
from .connection_routes import router as connection_router
from .errors import register_error_handlers
from .services import get_services, set_services
from .tv_routes import router as tv_router

logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Freebox Dashboard API",
    description="REST proxy and realtime relay for the Freebox dashboard",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Register routers
app.include_router(auth_router)
app.include_router(connection_router)
app.include_router(tv_router)


# Startup/shutdown events
@app.on_event("startup")
async def startup_event():
    """Configure logging, attach the relay socket, log in if a token is configured."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_dir)

    services = get_services()
    services.hub.init(app)

    log_relay_event(
        EventType.SYSTEM_START,
        f"Freebox dashboard API starting (box: {settings.freebox_host})",
        source="system",
    )

    if settings.freebox_app_token:
        services.start_auto_login()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the bridge, close dashboard sockets and the HTTP client."""
    log_relay_event(EventType.SYSTEM_STOP, "Freebox dashboard API shutting down", source="system")
    await get_services().shutdown()
    set_services(None)


@app.get("/api/health")
async def health_check():
    services = get_services()
    return {
        "status": "ok",
        "version": __version__,
        "logged_in": services.api.is_logged_in(),
        "clients": services.hub.client_count,
        "polling": services.relay.is_running,
        "native_events": services.bridge.state,
    }


def start_api_server(host: str = "127.0.0.1", port: int = 8000):
    """
    Start FastAPI server.

    Args:
        host: Host to bind to (default: localhost only)
        port: Port to listen on
    """
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        # Protocol-level keepalive for /ws/connection; browsers answer on their own
        ws_ping_interval=PING_INTERVAL_SECONDS,
        ws_ping_timeout=PING_INTERVAL_SECONDS,
    )


if __name__ == "__main__":
    settings = get_settings()
    start_api_server(settings.host, settings.port)
