"""
Lifecycle transition endpoints for API v1.

Each route moves one rental through one step of its lifecycle::

    Pending --checkin--> Active (Bike, Onsen) / Awaiting_Storage (Luggage)
    Pending, Awaiting_Storage --move-to-active--> Active (Luggage)
    Active --return--> Closed / Closed (Picked Up)
    Pending, Awaiting_Storage, Active --report-trouble--> Troubled
    Troubled --resolve-trouble--> Active

A transition requested from the wrong status answers 409.  Only POST is
routed; any other method on these paths answers 405.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from rental_desk_api.app.api.deps import get_lifecycle_service
from rental_desk_api.app.schemas.lifecycle import (
    CheckinRequest,
    MoveToActiveRequest,
    ReturnRequest,
    TroubleReport,
    TroubleResolution,
)
from rental_desk_api.app.services.lifecycle_service import LifecycleService


router = APIRouter()


@router.post("/checkin")
async def checkin(
    request: CheckinRequest,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    """Hand over the resources of a pending rental.

    Bike and Onsen check-ins need the staff name and, unless disabled,
    an ID photo; the photo is uploaded before the rental is touched.
    """
    return await service.checkin(request)


@router.post("/move-to-active")
async def move_to_active(
    request: MoveToActiveRequest,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    return await service.move_to_active(request)


@router.post("/return")
async def return_rental(
    request: ReturnRequest,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    """Close an active rental.

    Bike and Onsen returns must list exactly the resources that were
    handed out.  Late bikes are charged per started increment.
    """
    return await service.return_rental(request)


@router.post("/report-trouble")
async def report_trouble(
    request: TroubleReport,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    return await service.report_trouble(request)


@router.post("/resolve-trouble")
async def resolve_trouble(
    request: TroubleResolution,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    return await service.resolve_trouble(request)
