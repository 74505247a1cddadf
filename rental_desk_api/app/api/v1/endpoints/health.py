"""
Liveness endpoint.

Answers without touching Google Sheets so that a slow or unconfigured
store does not make the process look dead to the platform.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from rental_desk_api.app.api.deps import get_clock, get_settings
from rental_desk_api.app.core.config import Settings
from rental_desk_api.app.services.values import to_iso


router = APIRouter()


@router.get("/health")
async def health(settings: Settings = Depends(get_settings), clock=Depends(get_clock)) -> Dict[str, Any]:
    return {
        "success": True,
        "status": "ok",
        "service": settings.project_name,
        "version": settings.api_version,
        "timestamp": to_iso(clock()),
    }
