"""TV API routes: channels, bouquets and the cached program guide.

The EPG route accepts any raw unix timestamp; bucketing to the 2-hour grid
happens in the cache, so the frontend never needs to know about it.
"""

import logging
import re
import time

from fastapi import APIRouter

from .services import get_services, require_login

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tv", tags=["tv"])

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_timestamp(raw: str) -> int:
    """Leading integer of ``raw``; unparsable or zero means now."""
    match = _LEADING_INT.match(raw or "")
    value = int(match.group(1)) if match else 0
    return value or int(time.time())


@router.get("/channels")
async def get_channels():
    services = get_services()
    require_login(services)
    return await services.api.get_tv_channels()


@router.get("/bouquets")
async def get_bouquets():
    services = get_services()
    require_login(services)
    return await services.api.get_tv_bouquets()


@router.get("/epg/by_time/{timestamp}")
async def get_epg_by_time(timestamp: str):
    services = get_services()
    require_login(services)
    return await services.epg_cache.fetch(parse_timestamp(timestamp))


@router.get("/epg/cache")
async def get_epg_cache_stats():
    return {"success": True, "result": get_services().epg_cache.stats()}
