"""Freebox dashboard backend: REST proxy, realtime relay and EPG cache."""

__version__ = "0.4.0"
