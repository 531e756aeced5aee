# Main Entry Point
#
# Runs the dashboard backend (REST proxy + realtime relay) under uvicorn.
# Host/port default to the DASHBOARD_HOST / DASHBOARD_PORT settings.

import argparse
import sys

from . import __version__
from .config import get_settings
from .core import EventSeverity, EventType, log_relay_event


def main():
    """Main entry point for the Freebox dashboard backend."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Freebox dashboard backend: REST proxy and realtime relay",
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Backend host (default: {settings.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Backend port (default: {settings.port})",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Freebox Dashboard v{__version__}",
    )

    args = parser.parse_args()

    from .api.main import start_api_server

    try:
        start_api_server(host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\nShutting down backend...")
    except Exception as e:
        log_relay_event(
            EventType.SYSTEM_STOP,
            f"Backend crashed: {e}",
            severity=EventSeverity.ERROR,
            source="system",
        )
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
