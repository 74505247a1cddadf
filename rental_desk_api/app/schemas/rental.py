"""
Pydantic models for rental registration and administrative updates.

Field names follow the column names of the Rentals sheet (camelCase),
which is also what the kiosk, counter and hotel front ends send.  Every
field is optional here; which fields a service type requires and which
channel applies are checked by ``RentalService``, which reports all
problems of a payload together.
"""

from pydantic import BaseModel, Field


ResourceTokens = list[str | int] | str | None


class RentalCreate(BaseModel):
    """Registration payload shared by the customer, counter and hotel channels."""

    serviceType: str | None = Field(default=None, description="Bike, Onsen or Luggage")
    registrationType: str | None = Field(
        default=None, description="customer, counter or hotel; detected from the payload when omitted"
    )
    customerName: str | None = None
    customerContact: str | None = None
    documentType: str | None = None
    comeFrom: str | None = None
    agreement: bool | None = None
    totalPrice: float | None = None
    createdBy: str | None = None

    # Bike
    rentalPlan: str | None = None
    bikeCount: int | None = None
    expectedReturn: str | None = Field(default=None, description="ISO-8601 timestamp")

    # Onsen
    maleCount: int | None = None
    femaleCount: int | None = None
    totalAdultCount: int | None = None
    boyCount: int | None = None
    girlCount: int | None = None
    totalChildCount: int | None = None
    kidsCount: int | None = None
    faceTowelCount: int | None = None
    bathTowelCount: int | None = None

    # Luggage
    luggageCount: int | None = None

    # Hotel channel
    hotelName: str | None = None
    hotelTagNumbers: ResourceTokens = Field(default=None, description="Tags already attached by the hotel")
    notes: str | None = None

    # Counter channel
    staffName: str | None = None
    immediateCheckin: bool | None = Field(
        default=None, description="Check the rental in while registering it at the counter"
    )


class RentalUpdate(BaseModel):
    """Administrative partial update.

    Any Rentals column may be sent; names the sheet does not know are
    reported back as ignored.  ``photoData`` (base64, optionally as a data
    URL) is uploaded before anything is written.
    """

    rentalID: str | None = None
    photoData: str | None = None
    photoFileName: str | None = None

    model_config = {"extra": "allow"}
