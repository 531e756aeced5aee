"""Session API routes: open/close the Freebox app session.

Logging in resumes relay polling for already-connected dashboards and starts
the native event bridge; logging out stops both.
"""

import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from .errors import ApiError
from .services import get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    app_token: Optional[str] = None


@router.post("/login")
async def login(body: Optional[LoginRequest] = None):
    services = get_services()
    result = await services.login(body.app_token if body else None)
    if not result.get("success"):
        code = str(result.get("error_code") or "auth_failed").upper()
        raise ApiError(result.get("msg") or "Freebox login failed", status_code=401, code=code)
    return {
        "success": True,
        "result": {"logged_in": True, "api_version": services.api.api_major()},
    }


@router.post("/logout")
async def logout():
    await get_services().logout()
    return {"success": True, "result": {"logged_in": False}}


@router.get("/status")
async def status():
    services = get_services()
    return {
        "success": True,
        "result": {
            "logged_in": services.api.is_logged_in(),
            "version_info": services.api.get_version_info(),
        },
    }
