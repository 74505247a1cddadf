"""
Pydantic models for the staff list.

Staff names are offered as attribution choices (check-in and return
staff) in the front end; ``order`` is their display position.
"""

from pydantic import BaseModel, Field


class StaffCreate(BaseModel):
    name: str | None = None


class StaffUpdate(BaseModel):
    """Rename a staff member."""

    id: str | None = None
    name: str | None = None


class StaffOrderEntry(BaseModel):
    id: str
    name: str
    lastUpdated: str | None = None
    order: int | None = Field(default=None, ge=0, description="Defaults to the entry's position in the list")


class StaffReorder(BaseModel):
    """The complete staff list in its new order.  Replaces every row."""

    orderedStaff: list[StaffOrderEntry] | None = None
