# Freebox Module
# Client for the box's local API and the normalizer for per-model
# system info layouts.

from .client import FreeboxApi, compute_password, parse_api_major
from .normalizer import SYSTEM_STATUS_FIELDS, normalize_system_info

__all__ = [
    "FreeboxApi",
    "compute_password",
    "parse_api_major",
    "SYSTEM_STATUS_FIELDS",
    "normalize_system_info",
]
