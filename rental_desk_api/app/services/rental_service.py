"""
Business logic for registering and administering rentals.

``RentalService`` covers the record-level operations: registration from
the three channels (customer kiosk, staff counter, partner hotel),
listing, administrative partial updates and deletion.  The status
transitions after registration live in ``LifecycleService``.

Registration writes one complete row.  Fields that belong to another
service type are left blank, so a Bike row never carries onsen counts
and vice versa.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from starlette.concurrency import run_in_threadpool

from rental_desk_api.app.core.errors import StateConflict, ValidationFailed
from rental_desk_api.app.core.sheet_schema import SERVICE_TYPES, foreign_service_fields
from rental_desk_api.app.schemas.rental import RentalCreate, RentalUpdate
from rental_desk_api.app.services.base import RentalStoreService
from rental_desk_api.app.services.lifecycle_service import expected_return_for
from rental_desk_api.app.services.values import (
    STATUS_ACTIVE,
    STATUS_AWAITING_STORAGE,
    STATUS_PENDING,
    STATUSES,
    clean,
    is_blank,
    join_tokens,
    split_tokens,
    to_iso,
)


logger = logging.getLogger(__name__)

CHANNEL_CUSTOMER = "customer"
CHANNEL_COUNTER = "counter"
CHANNEL_HOTEL = "hotel"
CHANNELS = (CHANNEL_CUSTOMER, CHANNEL_COUNTER, CHANNEL_HOTEL)

SERVICE_PREFIXES = {"Bike": "B", "Onsen": "O", "Luggage": "L"}
CHANNEL_PREFIXES = {CHANNEL_CUSTOMER: "", CHANNEL_COUNTER: "C", CHANNEL_HOTEL: "H"}

RESOURCE_FIELDS = ("bikeNumber", "onsenKeyNumber", "luggageTagNumber")

# Fields a partial update never writes itself.
_UPDATE_CONTROL_FIELDS = {"rentalID", "photoData", "photoFileName", "photoMimeType"}


def generate_rental_id(service_type: str, channel: str, timestamp_ms: int, hotel_name: Optional[str] = None) -> str:
    """``<service><channel>[<hotel code>]<last 8 digits of the ms timestamp>``.

    >>> generate_rental_id("Luggage", "hotel", 1717000000123, "Grand-Inn")
    'LHGRA00000123'
    """
    prefix = SERVICE_PREFIXES.get(service_type, "R") + CHANNEL_PREFIXES.get(channel, "")
    if channel == CHANNEL_HOTEL and hotel_name:
        prefix += re.sub(r"[^A-Za-z]", "", hotel_name)[:3].upper()
    return f"{prefix}{str(timestamp_ms)[-8:]}"


def detect_channel(data: RentalCreate, query_type: Optional[str] = None) -> str:
    """Which registration channel a payload came through."""
    explicit = clean(data.registrationType).lower()
    if explicit:
        if explicit not in CHANNELS:
            raise ValidationFailed(
                "registrationType",
                f"registrationType must be one of: {', '.join(CHANNELS)}",
                validValues=list(CHANNELS),
            )
        return explicit
    if not is_blank(data.hotelName):
        return CHANNEL_HOTEL
    if clean(query_type).lower() == CHANNEL_COUNTER or clean(data.createdBy).lower() == "staff":
        return CHANNEL_COUNTER
    return CHANNEL_CUSTOMER


def onsen_totals(data: RentalCreate) -> Tuple[int, int, int]:
    """Adult, child and kids totals; totals are derived from the split counts when missing."""
    adults = data.totalAdultCount
    if adults is None:
        adults = (data.maleCount or 0) + (data.femaleCount or 0)
    children = data.totalChildCount
    if children is None:
        children = (data.boyCount or 0) + (data.girlCount or 0)
    return adults, children, data.kidsCount or 0


def validate_registration(data: RentalCreate, channel: str) -> List[Dict[str, str]]:
    """Collect every rule the payload breaks as ``{"field", "message"}`` entries."""
    errors: List[Dict[str, str]] = []

    def fail(field: str, message: str) -> None:
        errors.append({"field": field, "message": message})

    if channel != CHANNEL_HOTEL:
        if is_blank(data.customerName):
            fail("customerName", "Customer name is required")
        if is_blank(data.customerContact):
            fail("customerContact", "Customer contact is required")
    if data.serviceType not in SERVICE_TYPES:
        fail("serviceType", "Valid service type is required (Bike, Onsen, or Luggage)")

    if data.serviceType == "Bike":
        if is_blank(data.rentalPlan):
            fail("rentalPlan", "Rental plan is required for bike service")
        if data.bikeCount is None or data.bikeCount < 1:
            fail("bikeCount", "Valid bike count is required")
        if data.totalPrice is None or data.totalPrice < 0:
            fail("totalPrice", "Valid price is required")
        if channel == CHANNEL_CUSTOMER and not data.agreement:
            fail("agreement", "Agreement is required for bike service")
    elif data.serviceType == "Onsen":
        if data.totalPrice is None or data.totalPrice < 0:
            fail("totalPrice", "Valid price is required")
        if channel == CHANNEL_CUSTOMER and not data.agreement:
            fail("agreement", "Agreement is required for onsen service")
        if not any(count > 0 for count in onsen_totals(data)):
            fail("totalAdultCount", "At least one adult, child or kids count is required")
    elif data.serviceType == "Luggage":
        if data.luggageCount is None or data.luggageCount < 1:
            fail("luggageCount", "Valid luggage count is required")

    if channel == CHANNEL_HOTEL:
        if is_blank(data.hotelName):
            fail("hotelName", "Hotel name is required for hotel registrations")
        if data.serviceType in ("Bike", "Onsen"):
            fail("serviceType", "Hotel registrations are only available for luggage")
    if channel == CHANNEL_COUNTER and data.immediateCheckin and is_blank(data.staffName):
        fail("staffName", "Staff name is required for counter check-in")
    return errors


class RentalService(RentalStoreService):
    """Registration, listing, partial update and deletion of rentals."""

    def build_registration_row(self, data: RentalCreate, rental_id: str, channel: str) -> Dict[str, Any]:
        now = to_iso(self.clock())
        service = data.serviceType
        row: Dict[str, Any] = {
            "rentalID": rental_id,
            "status": STATUS_PENDING,
            "submittedAt": now,
            "lastUpdated": now,
            "customerName": clean(data.customerName),
            "customerContact": clean(data.customerContact),
            "documentType": clean(data.documentType),
            "serviceType": service,
            "totalPrice": data.totalPrice or 0,
            "agreement": bool(data.agreement),
            "verified": False,
            "createdBy": clean(data.createdBy) or clean(data.staffName),
        }

        if service == "Bike":
            row.update(rentalPlan=clean(data.rentalPlan), bikeCount=data.bikeCount, expectedReturn=clean(data.expectedReturn))
        elif service == "Onsen":
            adults, children, kids = onsen_totals(data)
            row.update(
                comeFrom=clean(data.comeFrom),
                maleCount=data.maleCount or 0,
                femaleCount=data.femaleCount or 0,
                totalAdultCount=adults,
                boyCount=data.boyCount or 0,
                girlCount=data.girlCount or 0,
                totalChildCount=children,
                kidsCount=kids,
                faceTowelCount=data.faceTowelCount or 0,
                bathTowelCount=data.bathTowelCount or 0,
            )
        elif service == "Luggage":
            row.update(luggageCount=data.luggageCount, expectedReturn=clean(data.expectedReturn))

        if channel == CHANNEL_HOTEL:
            hotel = clean(data.hotelName)
            row.update(
                status=STATUS_AWAITING_STORAGE,
                customerName=hotel,
                customerContact="",
                documentType="",
                partnerHotel=hotel,
                luggageTagNumber=join_tokens(split_tokens(data.hotelTagNumbers)),
                checkedInAt=now,
                verified=True,
                agreement=True,
                totalPrice=data.totalPrice if data.totalPrice is not None else self.hotel_price(data),
            )
        elif channel == CHANNEL_COUNTER:
            row["documentType"] = clean(data.documentType) or "on_site"
            if data.immediateCheckin:
                row.update(
                    status=self.settings.luggage_checkin_status if service == "Luggage" else STATUS_ACTIVE,
                    checkInStaff=clean(data.staffName),
                    checkedInAt=now,
                    verified=True,
                )
                if service == "Bike" and not row["expectedReturn"]:
                    row["expectedReturn"] = expected_return_for(data.rentalPlan, self.clock()) or ""

        # Service specific columns of other services stay blank.
        for name in foreign_service_fields(service):
            row.pop(name, None)
        return row

    def hotel_price(self, data: RentalCreate) -> int:
        return (data.luggageCount or 0) * self.settings.hotel_luggage_price_per_item

    async def register(self, data: RentalCreate, query_type: Optional[str] = None) -> Dict[str, Any]:
        """Validate a registration and append its row.

        Raises
        ------
        ValidationFailed
            Listing every broken rule under ``details``.
        """
        channel = detect_channel(data, query_type)
        errors = validate_registration(data, channel)
        if errors:
            raise ValidationFailed(errors[0]["field"], "Validation failed", details=errors)

        now = self.clock()
        rental_id = generate_rental_id(data.serviceType, channel, int(now.timestamp() * 1000), data.hotelName)
        row = self.build_registration_row(data, rental_id, channel)
        await run_in_threadpool(self.store.append, row)
        logger.info(
            "%s registration: %s for %s - ID %s",
            channel.upper(),
            data.serviceType,
            row["customerName"],
            rental_id,
        )

        response: Dict[str, Any] = {
            "success": True,
            "rentalId": rental_id,
            "serviceType": data.serviceType,
            "registrationType": channel,
            "status": row["status"],
            "message": "Rental registered successfully",
            "timestamp": to_iso(now),
        }
        if channel == CHANNEL_HOTEL:
            response["hotelLuggage"] = {
                "hotelName": row["partnerHotel"],
                "luggageCount": data.luggageCount,
                "tagNumbers": split_tokens(data.hotelTagNumbers),
                "pricePerItem": self.settings.hotel_luggage_price_per_item,
                "totalPrice": self.hotel_price(data),
                "registeredBy": clean(data.staffName),
                "status": row["status"],
                "expectedReturn": clean(data.expectedReturn),
                "notes": clean(data.notes),
            }
            response["message"] = "Hotel luggage registered successfully"
        elif channel == CHANNEL_COUNTER:
            response["counterRegistration"] = {
                "staffName": clean(data.staffName),
                "immediateCheckin": bool(data.immediateCheckin),
                "customerName": row["customerName"],
                "serviceType": data.serviceType,
            }
            response["message"] = "Counter registration completed successfully"
        return response

    async def list_rentals(
        self,
        status: Optional[str] = None,
        service_type: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Dict[str, Any]:
        records = await run_in_threadpool(self.store.read_records)
        rentals = [
            record
            for record in records
            if (not status or record.get("status") == status)
            and (not service_type or record.get("serviceType") == service_type)
        ]
        total = len(rentals)
        pagination = None
        if limit:
            rentals = rentals[offset:offset + limit]
            pagination = {"limit": limit, "offset": offset, "hasMore": offset + limit < total}
        return {
            "success": True,
            "rentals": rentals,
            "total": total,
            "pagination": pagination,
            "timestamp": to_iso(self.clock()),
        }

    async def update(self, data: RentalUpdate) -> Dict[str, Any]:
        """Administrative partial update of the columns of the rental's service.

        ``rentalID`` and ``serviceType`` cannot be changed, and ``status``
        only moves through the lifecycle endpoints; sending the current
        status is accepted as a no-op.  Fields of other service types and
        fields the sheet does not know are reported under
        ``ignoredFields``.  A photo is uploaded before anything is
        written; if the upload fails the row is left untouched.
        """
        payload = {name: value for name, value in data.model_dump().items() if value is not None}
        rental_id = self.require_id(payload.get("rentalID"))

        new_status = payload.get("status")
        if new_status is not None and new_status not in STATUSES:
            raise ValidationFailed(
                "status", f"Unknown status '{new_status}'", validStatuses=list(STATUSES)
            )

        async with self.locks.hold(rental_id):
            record = await self.get_record(rental_id)
            current_service = record.fields.get("serviceType", "")
            requested_service = payload.get("serviceType")
            if requested_service not in (None, "") and requested_service != current_service:
                raise StateConflict(
                    "serviceType cannot be changed after registration",
                    field="serviceType",
                    currentValue=current_service,
                )
            current_status = record.fields.get("status", "")
            if new_status is not None and new_status != current_status:
                raise StateConflict(
                    "Status changes go through the check-in, return and trouble endpoints",
                    current=current_status,
                    field="status",
                    requestedStatus=new_status,
                )

            updates = {
                name: value
                for name, value in payload.items()
                if name not in _UPDATE_CONTROL_FIELDS and name != "serviceType"
            }
            for name in RESOURCE_FIELDS:
                if isinstance(updates.get(name), list):
                    updates[name] = join_tokens(split_tokens(updates[name]))

            photo_uploaded = False
            if payload.get("photoData"):
                updates["photoFileID"] = await self.upload_photo(
                    rental_id, payload["photoData"], payload.get("photoFileName")
                )
                photo_uploaded = True

            mapping = self.schema.get_service_column_mapping(current_service, "UPDATE")
            ignored = [name for name in updates if name not in mapping]
            updates["lastUpdated"] = to_iso(self.clock())
            written = await self.write(record, updates, mapping)

        if ignored:
            logger.warning("Update of %s ignored fields: %s", rental_id, ", ".join(ignored))
        logger.info("Rental %s updated: %s", rental_id, ", ".join(written))
        return {
            "success": True,
            "rentalID": rental_id,
            "updatedFields": written,
            "ignoredFields": ignored,
            "photoUploaded": photo_uploaded,
            "message": "Rental updated successfully",
            "timestamp": updates["lastUpdated"],
        }

    async def delete(self, rental_id: Optional[str]) -> Dict[str, Any]:
        """Remove a rental row.  Active rentals must be returned first."""
        rental_id = self.require_id(rental_id)
        async with self.locks.hold(rental_id):
            record = await self.get_record(rental_id)
            status = record.fields.get("status", "")
            if status == STATUS_ACTIVE:
                raise ValidationFailed(
                    "status",
                    "Cannot delete active rental",
                    currentStatus=status,
                    reason="Active rentals must be returned before deletion",
                )
            await run_in_threadpool(self.store.delete_row, record.row_number)
        logger.info(
            "DELETION: rental %s deleted - customer %s, service %s, status %s",
            rental_id,
            record.fields.get("customerName", ""),
            record.fields.get("serviceType", ""),
            status,
        )
        return {
            "success": True,
            "rentalID": rental_id,
            "message": "Rental deleted successfully",
            "timestamp": to_iso(self.clock()),
        }
