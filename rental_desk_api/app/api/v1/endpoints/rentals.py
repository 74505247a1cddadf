"""
Rental endpoints for API v1.

``POST /rentals`` registers a rental from any of the three channels
(customer self-service, staff counter, partner hotel).  ``GET`` lists,
``PUT`` partially updates and ``DELETE`` removes a rental.  The history
search lives under ``/rentals/history`` and, like updates and deletion,
is limited to signed-in staff.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from rental_desk_api.app.api.deps import get_history_service, get_rental_service
from rental_desk_api.app.core.security import require_staff_session
from rental_desk_api.app.schemas.rental import RentalCreate, RentalUpdate
from rental_desk_api.app.services.history_service import DEFAULT_LIMIT, HistoryQuery, HistoryService
from rental_desk_api.app.services.rental_service import RentalService


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_rental(
    rental: RentalCreate,
    type: Optional[str] = Query(None, description="Registration channel: customer, counter or hotel"),
    service: RentalService = Depends(get_rental_service),
) -> Dict[str, Any]:
    """Register a new rental.

    The channel comes from ``registrationType`` in the body, then the
    ``type`` query parameter, then ``createdBy == "staff"``; anything
    else is a customer self-registration.
    """
    return await service.register(rental, query_type=type)


@router.get("")
async def list_rentals(
    status: Optional[str] = Query(None),
    serviceType: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    service: RentalService = Depends(get_rental_service),
) -> Dict[str, Any]:
    """List rentals, optionally filtered by status and service type.

    ``pagination`` is ``null`` unless ``limit`` is given.
    """
    return await service.list_rentals(status=status, service_type=serviceType, limit=limit, offset=offset)


@router.put("")
async def update_rental(
    update: RentalUpdate,
    _: dict = Depends(require_staff_session),
    service: RentalService = Depends(get_rental_service),
) -> Dict[str, Any]:
    """Partially update a rental; unknown and foreign fields are reported, not written."""
    return await service.update(update)


@router.delete("")
async def delete_rental(
    rentalID: Optional[str] = Query(None),
    _: dict = Depends(require_staff_session),
    service: RentalService = Depends(get_rental_service),
) -> Dict[str, Any]:
    return await service.delete(rentalID)


@router.get("/history")
async def rental_history(
    startDate: Optional[str] = Query(None, description="YYYY-MM-DD, local date"),
    endDate: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    status: Optional[str] = Query(None),
    serviceType: Optional[str] = Query(None),
    customerName: Optional[str] = Query(None),
    customerContact: Optional[str] = Query(None),
    staffName: Optional[str] = Query(None),
    rentalID: Optional[str] = Query(None),
    sortBy: str = Query("submittedAt"),
    sortOrder: str = Query("desc"),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    _: dict = Depends(require_staff_session),
    service: HistoryService = Depends(get_history_service),
) -> Dict[str, Any]:
    """Search the rental history with filters, sorting and paging."""
    query = HistoryQuery(
        startDate=startDate,
        endDate=endDate,
        status=status,
        serviceType=serviceType,
        customerName=customerName,
        customerContact=customerContact,
        staffName=staffName,
        rentalID=rentalID,
        sortBy=sortBy,
        sortOrder=sortOrder,
        limit=limit,
        offset=offset,
    )
    return await service.query(query)
