"""
Staff list endpoints for API v1.

Reading the list is open to the front desk screens; adding, renaming,
deleting and reordering staff require a staff session.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from rental_desk_api.app.api.deps import get_staff_service
from rental_desk_api.app.core.security import require_staff_session
from rental_desk_api.app.schemas.staff import StaffCreate, StaffReorder, StaffUpdate
from rental_desk_api.app.services.staff_service import StaffService


router = APIRouter()


@router.get("")
async def list_staff(service: StaffService = Depends(get_staff_service)) -> Dict[str, Any]:
    return await service.list_staff()


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_staff(
    staff: StaffCreate,
    _: dict = Depends(require_staff_session),
    service: StaffService = Depends(get_staff_service),
) -> Dict[str, Any]:
    """Append a staff member at the end of the list."""
    return await service.create(staff)


@router.put("")
async def rename_staff(
    staff: StaffUpdate,
    _: dict = Depends(require_staff_session),
    service: StaffService = Depends(get_staff_service),
) -> Dict[str, Any]:
    return await service.rename(staff)


@router.delete("")
async def delete_staff(
    id: Optional[str] = Query(None, description="Staff ID, e.g. STAFF_1718000000000"),
    _: dict = Depends(require_staff_session),
    service: StaffService = Depends(get_staff_service),
) -> Dict[str, Any]:
    return await service.delete(id)


@router.patch("")
async def reorder_staff(
    payload: StaffReorder,
    _: dict = Depends(require_staff_session),
    service: StaffService = Depends(get_staff_service),
) -> Dict[str, Any]:
    """Replace the staff list with ``orderedStaff`` in its new order."""
    return await service.reorder(payload)
