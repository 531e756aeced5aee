# Connection and system routes
#
# Plain passthrough to the box for pages that load once rather than follow
# the relay. /api/system merges the normalized sensor fields into the raw
# result so every model exposes the same temperature keys.

import logging

from fastapi import APIRouter

from ..freebox import normalize_system_info
from .services import get_services, require_login

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["connection"])


@router.get("/connection")
async def get_connection():
    services = get_services()
    require_login(services)
    return await services.api.get_connection_status()


@router.get("/system")
async def get_system():
    services = get_services()
    require_login(services)
    result = await services.api.get_system_info()
    if result.get("success") and isinstance(result.get("result"), dict):
        raw = result["result"]
        result = {**result, "result": {**raw, **normalize_system_info(raw)}}
    return result
