# Relay event log
#
# Structured (JSON) log of relay lifecycle events: session login/logout,
# dashboard clients joining and leaving, the native event bridge connecting,
# dropping and being refused by the box.
#
# Diagnostics stay on plain module loggers (logging.getLogger(__name__));
# this log is the one an operator tails to see what the relay is doing.

import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

from .log_throttle import get_log_throttler


class EventType(str, Enum):
    """Relay lifecycle events."""
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"

    SESSION_LOGIN = "session.login"
    SESSION_LOGIN_FAILED = "session.login.failed"
    SESSION_LOGOUT = "session.logout"

    CLIENT_CONNECTED = "client.connected"
    CLIENT_DISCONNECTED = "client.disconnected"
    CLIENT_TERMINATED = "client.terminated"

    POLLING_STARTED = "polling.started"
    POLLING_STOPPED = "polling.stopped"

    NATIVE_CONNECTED = "native.connected"
    NATIVE_DISCONNECTED = "native.disconnected"
    NATIVE_UNSUPPORTED = "native.unsupported"
    NATIVE_REGISTER_FAILED = "native.register.failed"


class EventSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    def to_level(self) -> int:
        return {
            EventSeverity.INFO: logging.INFO,
            EventSeverity.WARNING: logging.WARNING,
            EventSeverity.ERROR: logging.ERROR,
        }[self]


_configured = False


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """
    Configure stdlib logging and structlog for the process.

    Module loggers and the event log both go through the root logger, so a
    single console handler and a single daily file handler cover them.
    Safe to call more than once; only the first call installs handlers.
    """
    global _configured
    if _configured:
        return

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    root_logger.addHandler(console)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y-%m-%d")
        file_handler = logging.FileHandler(log_dir / f"relay_{today}.log", mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(file_handler)

    _configured = True


class EventLogger:
    """
    Structured logger for relay lifecycle events.

    Every event carries an id, a type, a severity, a message, a UTC
    timestamp and optional details. Repeated events from one source are
    throttled (see log_throttle); errors always go through.
    """

    def __init__(self):
        self.logger = structlog.get_logger("freebox_dashboard.events")

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        source: str = "relay",
    ) -> Optional[str]:
        """
        Log a relay event.

        Returns:
            The event id, or None when the event was throttled.
        """
        should_log, note = get_log_throttler().should_log(
            source=source,
            message=message,
            severity=severity.value,
        )
        if not should_log:
            return None

        event_id = str(uuid4())
        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "source": source,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {},
        }
        if note:
            event_data["throttle_note"] = note

        self.logger.log(severity.to_level(), "relay_event", **event_data)
        return event_id


_event_logger: Optional[EventLogger] = None


def get_event_logger() -> EventLogger:
    """Get global event logger (singleton pattern)."""
    global _event_logger
    if _event_logger is None:
        _event_logger = EventLogger()
    return _event_logger


def log_relay_event(
    event_type: EventType,
    message: str,
    severity: EventSeverity = EventSeverity.INFO,
    details: Optional[Dict[str, Any]] = None,
    source: str = "relay",
) -> Optional[str]:
    """Convenience wrapper around ``get_event_logger().log_event``."""
    return get_event_logger().log_event(
        event_type=event_type,
        severity=severity,
        message=message,
        details=details,
        source=source,
    )
