"""
Status transitions of a registered rental.

States and the events that move between them::

    Pending ──check-in──▶ Active (Bike, Onsen)
    Pending ──check-in──▶ Awaiting_Storage (Luggage, configurable)
    Pending / Awaiting_Storage ──move-to-active──▶ Active (Luggage)
    Pending / Awaiting_Storage / Active ──report trouble──▶ Troubled
    Troubled ──resolve trouble──▶ Active (configurable)
    Active ──return──▶ Closed, or "Closed (Picked Up)" for Luggage

A request for a transition the current status does not allow fails with
``StateConflict``; it is never silently accepted.  Every transition
reads the row, checks its guards and writes all changed cells in one
batched request while holding the rental's lock, and the fields it
writes are limited to the operation's column group in
``core.sheet_schema``.
"""

import logging
import math
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from rental_desk_api.app.core.errors import StateConflict, ValidationFailed
from rental_desk_api.app.schemas.lifecycle import (
    CheckinRequest,
    MoveToActiveRequest,
    ReturnRequest,
    TroubleReport,
    TroubleResolution,
)
from rental_desk_api.app.services.base import RentalStoreService
from rental_desk_api.app.services.photo_service import VALID_PHOTO_TYPES, photo_mime_type
from rental_desk_api.app.services.values import (
    STATUS_ACTIVE,
    STATUS_AWAITING_STORAGE,
    STATUS_CLOSED,
    STATUS_PENDING,
    STATUS_PICKED_UP,
    STATUS_TROUBLED,
    clean,
    duplicates,
    is_blank,
    join_tokens,
    parse_timestamp,
    split_tokens,
    to_int,
    to_iso,
    to_number,
)


logger = logging.getLogger(__name__)

STORAGE_AREAS = (
    "Area A - Front",
    "Area B - Middle",
    "Area C - Back",
    "Area D - Overflow",
    "Refrigerated Section",
    "Oversized Items",
    "Valuable Items",
)

PLAN_HOURS = {
    "1h": 1,
    "2h": 2,
    "3h": 3,
    "4h": 4,
    "half_day": 4,
    "full_day": 8,
    "1day": 24,
}

_PLAN_HOURS_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:h|hr|hrs|hour|hours)\b", re.IGNORECASE)

# Trouble is flagged against rentals in use only; resolving it returns
# the rental to ``resolved_trouble_status`` without going through check-in.
TROUBLE_FROM = (STATUS_ACTIVE,)
STORAGE_FROM = (STATUS_PENDING, STATUS_AWAITING_STORAGE)

# Payload field, sheet field and wording per resource kind.
_RESOURCES = {
    "Bike": ("bikeNumbers", "bikeNumber", "bike"),
    "Onsen": ("onsenKeyNumbers", "onsenKeyNumber", "key"),
    "Luggage": ("luggageTagNumbers", "luggageTagNumber", "tag"),
}


def plan_duration_hours(plan: Optional[str]) -> Optional[float]:
    """Length of a bike rental plan in hours, ``None`` if unknown."""
    label = clean(plan).lower()
    if not label:
        return None
    if label in PLAN_HOURS:
        return PLAN_HOURS[label]
    match = _PLAN_HOURS_RE.match(label)
    return float(match.group(1)) if match else None


def expected_return_for(plan: Optional[str], start: datetime) -> Optional[str]:
    hours = plan_duration_hours(plan)
    if hours is None:
        return None
    return to_iso(start + timedelta(hours=hours))


def compute_lateness(expected_return: Any, now: datetime) -> Tuple[bool, int]:
    """``(is_late, minutes_late)``; a blank or unreadable deadline is never late."""
    deadline = parse_timestamp(expected_return)
    if deadline is None or now <= deadline:
        return False, 0
    return True, math.ceil((now - deadline).total_seconds() / 60)


def compute_late_fee(minutes_late: int, per_increment: int, increment_minutes: int) -> int:
    """Fee for every started increment of lateness; zero settings disable it."""
    if minutes_late <= 0 or per_increment <= 0 or increment_minutes <= 0:
        return 0
    return math.ceil(minutes_late / increment_minutes) * per_increment


class LifecycleService(RentalStoreService):
    """Check-in, storage, return and trouble handling."""

    def conflict(self, action: str, record_status: str, allowed: Tuple[str, ...], rental_id: str) -> StateConflict:
        allowed_text = " or ".join(f"'{status}'" for status in allowed)
        return StateConflict(
            f"Rental {rental_id} has status '{record_status}' and cannot be {action}. "
            f"Only {allowed_text} rentals can be {action}.",
            current=record_status,
            required=allowed,
            rentalID=rental_id,
        )

    @staticmethod
    def service_of(rental: Dict[str, Any]) -> str:
        service_type = rental.get("serviceType", "")
        if service_type not in _RESOURCES:
            raise ValidationFailed(
                "serviceType",
                f"Rental {rental.get('rentalID')} has an unknown service type '{service_type}'",
            )
        return service_type

    def resource_tokens(self, service_type: str, payload: Any) -> List[str]:
        field, _, noun = _RESOURCES[service_type]
        tokens = split_tokens(payload)
        if not tokens:
            raise ValidationFailed(field, f"{field} is required for {service_type.lower()} check-in")
        repeated = duplicates(tokens)
        if repeated:
            raise ValidationFailed(field, f"Duplicate {noun} numbers: {join_tokens(repeated)}", duplicates=repeated)
        return tokens

    def check_photo(self, data: CheckinRequest, service_type: str) -> None:
        if not data.photoData:
            if self.settings.require_checkin_photo and service_type != "Luggage":
                raise ValidationFailed("photoData", "An ID photo is required for check-in")
            return
        mime = photo_mime_type(data.photoData, data.photoMimeType)
        if mime not in VALID_PHOTO_TYPES:
            raise ValidationFailed(
                "photoMimeType",
                f"Photo must be JPEG or PNG format. Received: {mime}",
                validFormats=list(VALID_PHOTO_TYPES),
            )

    async def checkin(self, data: CheckinRequest) -> Dict[str, Any]:
        rental_id = self.require_id(data.rentalID)
        async with self.locks.hold(rental_id):
            record = await self.get_record(rental_id)
            rental = record.fields
            service_type = self.service_of(rental)
            status = rental.get("status", "")
            if status != STATUS_PENDING:
                raise self.conflict("checked in", status, (STATUS_PENDING,), rental_id)

            staff = clean(data.staffName)
            if service_type != "Luggage" and not staff:
                raise ValidationFailed("staffName", "staffName is required for check-in")
            self.check_photo(data, service_type)

            payload_field, sheet_field, _ = _RESOURCES[service_type]
            tokens = self.resource_tokens(service_type, getattr(data, payload_field))
            if service_type == "Bike":
                expected = to_int(rental.get("bikeCount"))
                if len(tokens) != expected:
                    raise ValidationFailed(
                        "bikeNumbers",
                        f"Bike count mismatch: expected {expected} bikes but received {len(tokens)} bike numbers",
                        expectedCount=expected,
                        receivedCount=len(tokens),
                    )

            photo_file_id = None
            if data.photoData:
                photo_file_id = await self.upload_photo(rental_id, data.photoData, data.photoFileName)

            now = self.clock()
            if service_type == "Luggage":
                next_status = self.settings.luggage_checkin_status
                staff = staff or "System"
            else:
                next_status = STATUS_ACTIVE
            updates: Dict[str, Any] = {
                "status": next_status,
                "lastUpdated": to_iso(now),
                "checkedInAt": to_iso(now),
                "checkInStaff": staff,
                "verified": bool(data.verified),
                "photoFileID": photo_file_id,
                sheet_field: join_tokens(tokens),
            }
            if service_type == "Bike":
                updates["expectedReturn"] = expected_return_for(rental.get("rentalPlan"), now)

            mapping = self.schema.get_service_column_mapping(service_type, "CHECKIN")
            await self.write(record, updates, mapping)

        logger.info(
            "Rental %s checked in by %s - service %s, status %s -> %s",
            rental_id,
            staff,
            service_type,
            status,
            next_status,
        )
        checkin: Dict[str, Any] = {
            "staffName": staff,
            "checkedInAt": updates["checkedInAt"],
            "previousStatus": status,
            "newStatus": next_status,
            "serviceType": service_type,
            "photoUploaded": photo_file_id is not None,
            "photoFileId": photo_file_id,
            payload_field: tokens,
        }
        if updates.get("expectedReturn"):
            checkin["expectedReturn"] = updates["expectedReturn"]
        message = (
            "Check-in completed. Rental moved to storage queue."
            if next_status == STATUS_AWAITING_STORAGE
            else "Check-in completed. Rental is now active."
        )
        return {
            "success": True,
            "rentalID": rental_id,
            "message": message,
            "checkin": checkin,
            "timestamp": updates["lastUpdated"],
        }

    async def move_to_active(self, data: MoveToActiveRequest) -> Dict[str, Any]:
        """Luggage has been physically stored; it can now be picked up."""
        rental_id = self.require_id(data.rentalID)
        location = clean(data.storageLocation)
        if location and location not in STORAGE_AREAS:
            raise ValidationFailed(
                "storageLocation",
                f"Storage location must be one of: {', '.join(STORAGE_AREAS)}",
                validLocations=list(STORAGE_AREAS),
            )

        async with self.locks.hold(rental_id):
            record = await self.get_record(rental_id)
            rental = record.fields
            service_type = rental.get("serviceType", "")
            if service_type != "Luggage":
                raise ValidationFailed(
                    "serviceType",
                    f"move-to-active is only for luggage storage. Current service type: {service_type}",
                    serviceType=service_type,
                )
            status = rental.get("status", "")
            if status not in STORAGE_FROM:
                raise self.conflict("moved to Active", status, STORAGE_FROM, rental_id)
            if is_blank(rental.get("luggageTagNumber")):
                raise ValidationFailed(
                    "luggageTagNumber",
                    "Luggage tag number is missing. Cannot complete storage without tag assignment.",
                )

            now = to_iso(self.clock())
            updates = {
                "status": STATUS_ACTIVE,
                "lastUpdated": now,
                "storedAt": now,
                "storageLocation": location,
                "storageNotes": clean(data.notes),
            }
            written = await self.write(record, updates, self.schema.get_service_column_mapping("Luggage", "STORAGE"))

        if location and "storageLocation" not in written:
            logger.warning("Sheet layout v%s has no storageLocation column; %s not recorded", self.schema.version, location)
        logger.info("Luggage %s stored - location %s", rental_id, location or "not specified")
        return {
            "success": True,
            "rentalID": rental_id,
            "message": "Luggage storage completed successfully",
            "storage": {
                "previousStatus": status,
                "newStatus": STATUS_ACTIVE,
                "storedAt": now,
                "storageLocation": location or "Not specified",
                "storageNotes": clean(data.notes),
                "tagNumber": rental.get("luggageTagNumber"),
                "customerName": rental.get("customerName"),
                "luggageCount": to_int(rental.get("luggageCount"), 1),
            },
            "timestamp": now,
        }

    def check_returned_resources(self, service_type: str, rental: Dict[str, Any], returned: Any) -> List[str]:
        """The returned set must match the assigned set exactly."""
        payload_field, sheet_field, noun = _RESOURCES[service_type]
        assigned = split_tokens(rental.get(sheet_field))
        returning = split_tokens(returned)
        missing = [token for token in assigned if token not in returning]
        if missing:
            label = "bike" if service_type == "Bike" else "key"
            raise ValidationFailed(
                payload_field,
                f"Incomplete {label} return: missing {noun}s {join_tokens(missing)}",
                assigned=assigned,
                returning=returning,
                missing=missing,
            )
        unexpected = [token for token in returning if token not in assigned]
        if unexpected:
            raise ValidationFailed(
                payload_field,
                f"Returned {noun}s were never assigned to this rental: {join_tokens(unexpected)}",
                assigned=assigned,
                returning=returning,
                unexpected=unexpected,
            )
        return returning

    async def return_rental(self, data: ReturnRequest) -> Dict[str, Any]:
        """Close an Active rental, releasing its resources.

        Bike returns past ``expectedReturn`` are charged a late fee when
        ``late_fee_per_increment`` is set.
        """
        rental_id = self.require_id(data.rentalID)
        async with self.locks.hold(rental_id):
            record = await self.get_record(rental_id)
            rental = record.fields
            service_type = self.service_of(rental)
            status = rental.get("status", "")
            if status != STATUS_ACTIVE:
                raise self.conflict("returned", status, (STATUS_ACTIVE,), rental_id)

            staff = clean(data.returnStaff) or clean(data.staffName)
            released: Dict[str, Any] = {}
            if service_type == "Luggage":
                if not data.customerVerified:
                    raise ValidationFailed(
                        "customerVerified", "Customer identity must be verified before luggage pickup"
                    )
                released = {"luggagePickedUp": True, "pickupAuthorized": True}
            else:
                if not staff:
                    raise ValidationFailed("returnStaff", "returnStaff is required for returns")
                if service_type == "Bike":
                    released["bikesReturned"] = self.check_returned_resources("Bike", rental, data.bikeNumbers)
                elif service_type == "Onsen":
                    released["keysReturned"] = self.check_returned_resources("Onsen", rental, data.onsenKeyNumbers)

            now = self.clock()
            is_late, minutes_late = compute_lateness(rental.get("expectedReturn"), now)
            late_fee = 0
            if service_type == "Bike":
                late_fee = compute_late_fee(
                    minutes_late,
                    self.settings.late_fee_per_increment,
                    self.settings.late_fee_increment_minutes,
                )
            good_condition = True if data.goodCondition is None else data.goodCondition
            final_status = STATUS_PICKED_UP if service_type == "Luggage" else STATUS_CLOSED
            updates = {
                "status": final_status,
                "lastUpdated": to_iso(now),
                "returnStaff": staff,
                "returnedAt": to_iso(now),
                "goodCondition": good_condition,
                "returnNotes": clean(data.returnNotes),
                "isLate": is_late,
                "minutesLate": minutes_late,
                "damageReported": (not good_condition) if data.damageReported is None else data.damageReported,
                "repairRequired": bool(data.repairRequired),
                "replacementRequired": bool(data.replacementRequired),
            }
            await self.write(record, updates, self.schema.get_service_column_mapping(service_type, "RETURN"))

        logger.info(
            "%s return processed: %s by %s - condition %s, %s minutes late, late fee ¥%s",
            service_type,
            rental_id,
            staff or "unattributed",
            "good" if good_condition else "issues reported",
            minutes_late,
            late_fee,
        )
        summary: Dict[str, Any] = {
            "serviceType": service_type,
            "previousStatus": status,
            "newStatus": final_status,
            "returnStaff": staff,
            "returnedAt": updates["returnedAt"],
            "goodCondition": good_condition,
            "returnNotes": updates["returnNotes"],
            "customerName": rental.get("customerName"),
            "isLate": is_late,
            "minutesLate": minutes_late,
            "lateFee": late_fee,
            **released,
        }
        if service_type == "Bike":
            message = (
                f"Bike return completed with late fee of ¥{late_fee:,}" if late_fee else "Bike return completed successfully"
            )
        elif service_type == "Onsen":
            message = "Onsen pass return completed successfully"
        else:
            message = "Luggage pickup completed successfully"
        response: Dict[str, Any] = {
            "success": True,
            "rentalID": rental_id,
            "message": message,
            "return": summary,
            "timestamp": updates["lastUpdated"],
        }
        if late_fee:
            original = to_number(rental.get("totalPrice"))
            response["billing"] = {"originalPrice": original, "lateFee": late_fee, "totalDue": original + late_fee}
        return response

    async def report_trouble(self, data: TroubleReport) -> Dict[str, Any]:
        rental_id = self.require_id(data.rentalID)
        notes = clean(data.troubleNotes)
        if not notes:
            raise ValidationFailed("troubleNotes", "troubleNotes is required to report trouble")

        async with self.locks.hold(rental_id):
            record = await self.get_record(rental_id)
            rental = record.fields
            status = rental.get("status", "")
            if status not in TROUBLE_FROM:
                raise self.conflict("flagged as troubled", status, TROUBLE_FROM, rental_id)
            now = to_iso(self.clock())
            updates = {
                "status": STATUS_TROUBLED,
                "lastUpdated": now,
                "troubleNotes": notes,
                "troubleResolved": False,
                "damageReported": data.damageReported,
                "repairRequired": data.repairRequired,
                "replacementRequired": data.replacementRequired,
            }
            await self.write(record, updates, self.schema.get_service_column_mapping(rental.get("serviceType", ""), "TROUBLE"))

        logger.info("Trouble reported on %s by %s: %s", rental_id, clean(data.staffName) or "unknown", notes)
        return {
            "success": True,
            "rentalID": rental_id,
            "message": "Trouble reported",
            "trouble": {
                "previousStatus": status,
                "newStatus": STATUS_TROUBLED,
                "troubleNotes": notes,
                "serviceType": rental.get("serviceType"),
                "customerName": rental.get("customerName"),
            },
            "timestamp": now,
        }

    async def resolve_trouble(self, data: TroubleResolution) -> Dict[str, Any]:
        rental_id = self.require_id(data.rentalID)
        async with self.locks.hold(rental_id):
            record = await self.get_record(rental_id)
            rental = record.fields
            status = rental.get("status", "")
            if status != STATUS_TROUBLED:
                raise self.conflict("resolved", status, (STATUS_TROUBLED,), rental_id)
            next_status = self.settings.resolved_trouble_status
            now = to_iso(self.clock())
            updates = {"status": next_status, "lastUpdated": now, "troubleResolved": True}
            await self.write(record, updates, self.schema.get_service_column_mapping(rental.get("serviceType", ""), "TROUBLE"))

        resolution_notes = clean(data.notes) or "トラブル解決済み"
        logger.info("Trouble resolved on %s -> %s: %s", rental_id, next_status, resolution_notes)
        return {
            "success": True,
            "rentalID": rental_id,
            "message": "Trouble resolved successfully",
            "resolution": {
                "previousStatus": STATUS_TROUBLED,
                "newStatus": next_status,
                "resolvedAt": now,
                "customerName": rental.get("customerName"),
                "serviceType": rental.get("serviceType"),
                "troubleNotes": rental.get("troubleNotes"),
                "resolutionNotes": resolution_notes,
            },
            "timestamp": now,
        }
