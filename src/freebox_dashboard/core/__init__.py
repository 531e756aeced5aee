# Core Module - Shared Utilities
#
# Logging configuration, the structured relay event log and log throttling,
# shared by the Freebox client, the realtime relay and the API.

from .event_log import (
    EventLogger,
    EventSeverity,
    EventType,
    configure_logging,
    get_event_logger,
    log_relay_event,
)
from .log_throttle import LogThrottler, get_log_throttler

__all__ = [
    "EventLogger",
    "EventSeverity",
    "EventType",
    "configure_logging",
    "get_event_logger",
    "log_relay_event",
    "LogThrottler",
    "get_log_throttler",
]
