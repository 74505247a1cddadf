"""
Request bodies of the lifecycle transition endpoints.

Each transition takes the ``rentalID`` it applies to plus the data the
desk collects at that step.  Resource lists (bike numbers, onsen keys,
luggage tags) may be sent as a JSON array or as one comma separated
string; numbers are accepted and treated as their string form.
"""

from pydantic import BaseModel, Field

from .rental import ResourceTokens


class CheckinRequest(BaseModel):
    rentalID: str | None = None
    staffName: str | None = None
    verified: bool | None = None
    bikeNumbers: ResourceTokens = None
    onsenKeyNumbers: ResourceTokens = None
    luggageTagNumbers: ResourceTokens = None
    photoData: str | None = Field(default=None, description="Base64 ID photo, optionally a data URL")
    photoFileName: str | None = None
    photoMimeType: str | None = Field(default=None, description="image/jpeg, image/jpg or image/png")


class MoveToActiveRequest(BaseModel):
    """Completion of physical luggage storage."""

    rentalID: str | None = None
    storageLocation: str | None = None
    notes: str | None = None
    staffName: str | None = None


class ReturnRequest(BaseModel):
    rentalID: str | None = None
    returnStaff: str | None = None
    staffName: str | None = Field(default=None, description="Accepted in place of returnStaff")
    bikeNumbers: ResourceTokens = None
    onsenKeyNumbers: ResourceTokens = None
    goodCondition: bool | None = None
    returnNotes: str | None = None
    damageReported: bool | None = None
    repairRequired: bool | None = None
    replacementRequired: bool | None = None
    customerVerified: bool | None = Field(default=None, description="Luggage pickup: identity checked")


class TroubleReport(BaseModel):
    rentalID: str | None = None
    troubleNotes: str | None = None
    staffName: str | None = None
    damageReported: bool | None = None
    repairRequired: bool | None = None
    replacementRequired: bool | None = None


class TroubleResolution(BaseModel):
    rentalID: str | None = None
    notes: str | None = None
    staffName: str | None = None
