"""
Business logic for the staff list.

The Staff sheet holds the names offered as check-in and return staff.
Rows carry an explicit ``order`` used for display; reordering rewrites
every row in the new order.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List

from starlette.concurrency import run_in_threadpool

from rental_desk_api.app.core.errors import NotFound, ValidationFailed
from rental_desk_api.app.core.sheets import RowStore
from rental_desk_api.app.schemas.staff import StaffCreate, StaffReorder, StaffUpdate
from rental_desk_api.app.services.values import clean, to_int, to_iso, utc_now


logger = logging.getLogger(__name__)


class StaffService:
    """CRUD and reordering of the staff list."""

    def __init__(self, store: RowStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.clock = clock

    async def list_staff(self) -> Dict[str, Any]:
        records = await run_in_threadpool(self.store.read_records)
        # sorted() is stable, so rows without an order keep sheet order.
        staff = sorted(records, key=lambda member: to_int(member.get("order"), len(records)))
        return {"success": True, "staff": staff, "total": len(staff), "timestamp": to_iso(self.clock())}

    async def create(self, data: StaffCreate) -> Dict[str, Any]:
        name = clean(data.name)
        if not name:
            raise ValidationFailed("name", "Staff name is required")
        now = self.clock()
        staff_id = f"STAFF_{int(now.timestamp() * 1000)}"
        order = await run_in_threadpool(self.store.count_rows)
        await run_in_threadpool(
            self.store.append, {"id": staff_id, "name": name, "lastUpdated": to_iso(now), "order": str(order)}
        )
        logger.info("Staff member %s added as %s", name, staff_id)
        return {
            "success": True,
            "staffId": staff_id,
            "name": name,
            "order": order,
            "message": "Staff member added successfully",
            "timestamp": to_iso(now),
        }

    async def rename(self, data: StaffUpdate) -> Dict[str, Any]:
        staff_id = clean(data.id)
        if not staff_id:
            raise ValidationFailed("id", "Missing staff ID")
        name = clean(data.name)
        if not name:
            raise ValidationFailed("name", "Staff name is required")
        record = await run_in_threadpool(self.store.find_by_id, staff_id)
        if record is None:
            raise NotFound("Staff member", staff_id)
        now = to_iso(self.clock())
        await run_in_threadpool(
            self.store.apply_update,
            record.row_number,
            {"name": name, "lastUpdated": now},
            self.store.schema.get_column_mapping(["name", "lastUpdated"]),
        )
        logger.info("Staff member %s renamed from %s to %s", staff_id, record.fields.get("name"), name)
        return {
            "success": True,
            "staffId": staff_id,
            "name": name,
            "message": "Staff member updated successfully",
            "timestamp": now,
        }

    async def delete(self, staff_id: str) -> Dict[str, Any]:
        staff_id = clean(staff_id)
        if not staff_id:
            raise ValidationFailed("id", "Missing staff ID")
        record = await run_in_threadpool(self.store.find_by_id, staff_id)
        if record is None:
            raise NotFound("Staff member", staff_id)
        await run_in_threadpool(self.store.delete_row, record.row_number)
        logger.info("Staff member %s (%s) deleted", staff_id, record.fields.get("name"))
        return {
            "success": True,
            "staffId": staff_id,
            "message": "Staff member deleted successfully",
            "timestamp": to_iso(self.clock()),
        }

    async def reorder(self, data: StaffReorder) -> Dict[str, Any]:
        """Replace the whole list with ``orderedStaff``."""
        if not data.orderedStaff:
            raise ValidationFailed("orderedStaff", "orderedStaff must be a non-empty list")
        ids = [member.id for member in data.orderedStaff]
        if len(set(ids)) != len(ids):
            raise ValidationFailed("orderedStaff", "orderedStaff contains the same staff ID more than once")
        if not await run_in_threadpool(self.store.count_rows):
            raise NotFound("Staff", message="No staff data found")

        now = to_iso(self.clock())
        rows: List[Dict[str, Any]] = [
            {
                "id": member.id,
                "name": member.name,
                "lastUpdated": member.lastUpdated or now,
                "order": str(index if member.order is None else member.order),
            }
            for index, member in enumerate(data.orderedStaff)
        ]
        await run_in_threadpool(self.store.replace_rows, rows)
        logger.info("Staff order updated: %s", ", ".join(ids))
        return {
            "success": True,
            "total": len(rows),
            "message": "Staff order updated successfully",
            "timestamp": now,
        }
