# Cache Module
# Bucketed EPG cache shared by the TV routes.

from .epg_cache import (
    EPG_BUCKET_SECONDS,
    EPG_CACHE_SOFT_LIMIT,
    EPG_CACHE_TTL_SECONDS,
    EpgCache,
    normalize_epg_timestamp,
)

__all__ = [
    "EPG_BUCKET_SECONDS",
    "EPG_CACHE_SOFT_LIMIT",
    "EPG_CACHE_TTL_SECONDS",
    "EpgCache",
    "normalize_epg_timestamp",
]
