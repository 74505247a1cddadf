"""
/rentals API tests: registration from every channel, listing, partial
update and deletion.
"""
from fastapi.testclient import TestClient

from .conftest import PHOTO
from .fakes import add_rental


RENTALS = "/api/v1/rentals"

BIKE = {
    "serviceType": "Bike",
    "customerName": "Taro Yamada",
    "customerContact": "090-1234-5678",
    "documentType": "passport",
    "rentalPlan": "2h",
    "bikeCount": 2,
    "totalPrice": 2000,
    "agreement": True,
}

ONSEN = {
    "serviceType": "Onsen",
    "customerName": "Hanako Sato",
    "customerContact": "hanako@example.com",
    "comeFrom": "Osaka",
    "maleCount": 1,
    "femaleCount": 1,
    "boyCount": 1,
    "bathTowelCount": 2,
    "totalPrice": 1500,
    "agreement": True,
}


class TestCustomerRegistration:
    """Self-service registrations"""

    def test_register_bike(self, client: TestClient, sheets):
        response = client.post(RENTALS, json=BIKE)

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["rentalId"] == "B03600000"
        assert data["registrationType"] == "customer"
        assert data["status"] == "Pending"
        row = sheets.record("Rentals", "B03600000")
        assert row["status"] == "Pending"
        assert row["submittedAt"] == "2024-06-01T01:00:00.000Z"
        assert row["bikeCount"] == "2"
        assert row["totalPrice"] == "2000"
        assert row["agreement"] == "TRUE"
        assert row["verified"] == "FALSE"
        assert row["maleCount"] == ""
        assert row["luggageCount"] == ""

    def test_register_onsen_derives_totals(self, client: TestClient, sheets):
        response = client.post(RENTALS, json=ONSEN)

        assert response.status_code == 201
        row = sheets.record("Rentals", response.json()["rentalId"])
        assert row["serviceType"] == "Onsen"
        assert row["totalAdultCount"] == "2"
        assert row["totalChildCount"] == "1"
        assert row["kidsCount"] == "0"
        assert row["comeFrom"] == "Osaka"
        assert row["bikeCount"] == ""

    def test_all_failures_reported_together(self, client: TestClient, sheets):
        response = client.post(RENTALS, json={"serviceType": "Bike", "customerName": "Taro"})

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "validation_error"
        assert data["field"] == "customerContact"
        assert [d["field"] for d in data["details"]] == [
            "customerContact",
            "rentalPlan",
            "bikeCount",
            "totalPrice",
            "agreement",
        ]
        assert len(sheets.rows("Rentals")) == 1

    def test_unknown_service_type(self, client: TestClient):
        response = client.post(RENTALS, json={**BIKE, "serviceType": "Kayak"})

        assert response.status_code == 400
        assert response.json()["field"] == "serviceType"

    def test_invalid_registration_type(self, client: TestClient):
        response = client.post(RENTALS, json={**BIKE, "registrationType": "walk-in"})

        assert response.status_code == 400
        assert response.json()["field"] == "registrationType"


class TestHotelRegistration:
    """Partner hotel luggage drop-off"""

    def test_register_hotel_luggage(self, client: TestClient, sheets):
        response = client.post(
            RENTALS,
            json={
                "hotelName": "Grand Inn",
                "serviceType": "Luggage",
                "luggageCount": 3,
                "hotelTagNumbers": ["T1", "T2", "T3"],
                "staffName": "Aiko",
                "notes": "fragile",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["rentalId"] == "LHGRA03600000"
        assert data["registrationType"] == "hotel"
        assert data["status"] == "Awaiting_Storage"
        assert data["hotelLuggage"]["totalPrice"] == 1500
        assert data["hotelLuggage"]["tagNumbers"] == ["T1", "T2", "T3"]
        row = sheets.record("Rentals", "LHGRA03600000")
        assert row["customerName"] == "Grand Inn"
        assert row["partnerHotel"] == "Grand Inn"
        assert row["luggageTagNumber"] == "T1, T2, T3"
        assert row["totalPrice"] == "1500"
        assert row["verified"] == "TRUE"
        assert row["checkedInAt"] == "2024-06-01T01:00:00.000Z"

    def test_hotel_cannot_register_bikes(self, client: TestClient):
        response = client.post(RENTALS, json={**BIKE, "hotelName": "Grand Inn"})

        assert response.status_code == 400
        assert {"field": "serviceType", "message": "Hotel registrations are only available for luggage"} in (
            response.json()["details"]
        )

    def test_hotel_name_required_when_type_is_explicit(self, client: TestClient):
        response = client.post(RENTALS, json={"registrationType": "hotel", "serviceType": "Luggage", "luggageCount": 1})

        assert response.status_code == 400
        assert response.json()["field"] == "hotelName"


class TestCounterRegistration:
    """Staff registrations at the desk"""

    def test_counter_without_checkin_stays_pending(self, client: TestClient, sheets):
        payload = {k: v for k, v in BIKE.items() if k not in ("agreement", "documentType")}
        response = client.post(f"{RENTALS}?type=counter", json=payload)

        assert response.status_code == 201
        data = response.json()
        assert data["rentalId"] == "BC03600000"
        assert data["status"] == "Pending"
        assert data["counterRegistration"]["immediateCheckin"] is False
        assert sheets.record("Rentals", "BC03600000")["documentType"] == "on_site"

    def test_counter_immediate_checkin(self, client: TestClient, sheets):
        response = client.post(
            f"{RENTALS}?type=counter",
            json={**BIKE, "immediateCheckin": True, "staffName": "Aiko"},
        )

        assert response.status_code == 201
        assert response.json()["status"] == "Active"
        row = sheets.record("Rentals", "BC03600000")
        assert row["checkInStaff"] == "Aiko"
        assert row["expectedReturn"] == "2024-06-01T03:00:00.000Z"
        assert row["verified"] == "TRUE"

    def test_counter_immediate_luggage_waits_for_storage(self, client: TestClient):
        response = client.post(
            RENTALS,
            json={
                "createdBy": "staff",
                "serviceType": "Luggage",
                "customerName": "Ken",
                "customerContact": "ken@example.com",
                "luggageCount": 2,
                "immediateCheckin": True,
                "staffName": "Aiko",
            },
        )

        assert response.status_code == 201
        assert response.json()["rentalId"] == "LC03600000"
        assert response.json()["status"] == "Awaiting_Storage"

    def test_immediate_checkin_needs_staff(self, client: TestClient):
        response = client.post(f"{RENTALS}?type=counter", json={**BIKE, "immediateCheckin": True})

        assert response.status_code == 400
        assert response.json()["field"] == "staffName"


class TestListRentals:
    def test_filter_and_paginate(self, client: TestClient, sheets):
        add_rental(sheets, rentalID="B1", status="Active", serviceType="Bike")
        add_rental(sheets, rentalID="O2", status="Active", serviceType="Onsen")
        add_rental(sheets, rentalID="B3", status="Closed", serviceType="Bike")

        data = client.get(RENTALS, params={"status": "Active"}).json()
        assert [r["rentalID"] for r in data["rentals"]] == ["B1", "O2"]
        assert data["total"] == 2
        assert data["pagination"] is None

        data = client.get(RENTALS, params={"serviceType": "Bike", "limit": 1}).json()
        assert [r["rentalID"] for r in data["rentals"]] == ["B1"]
        assert data["pagination"] == {"limit": 1, "offset": 0, "hasMore": True}

    def test_empty_sheet(self, client: TestClient):
        data = client.get(RENTALS).json()
        assert data["rentals"] == []
        assert data["total"] == 0


class TestUpdateRental:
    """Administrative partial updates"""

    def test_updates_known_fields_and_reports_unknown(self, client: TestClient, sheets):
        add_rental(sheets, rentalID="B1", status="Active", serviceType="Bike", customerName="Old Name")

        response = client.put(RENTALS, json={"rentalID": "B1", "customerName": "New Name", "favouriteColour": "blue"})

        assert response.status_code == 200
        data = response.json()
        assert data["updatedFields"] == ["customerName", "lastUpdated"]
        assert data["ignoredFields"] == ["favouriteColour"]
        assert data["photoUploaded"] is False
        row = sheets.record("Rentals", "B1")
        assert row["customerName"] == "New Name"
        assert row["lastUpdated"] == "2024-06-01T01:00:00.000Z"

    def test_resource_lists_are_joined(self, client: TestClient, sheets):
        add_rental(sheets, rentalID="B1", status="Active", serviceType="Bike")

        client.put(RENTALS, json={"rentalID": "B1", "bikeNumber": ["3", "4"]})

        assert sheets.record("Rentals", "B1")["bikeNumber"] == "3, 4"

    def test_photo_is_uploaded_first(self, client: TestClient, sheets, uploader):
        add_rental(sheets, rentalID="B1", status="Active", serviceType="Bike")

        response = client.put(RENTALS, json={"rentalID": "B1", "photoData": PHOTO})

        assert response.json()["photoUploaded"] is True
        assert uploader.uploads[0]["fileName"] == "B1_ID_1717203600000.jpg"
        assert sheets.record("Rentals", "B1")["photoFileID"] == "drive-file-1"

    def test_failed_upload_leaves_row_untouched(self, client: TestClient, sheets, uploader):
        add_rental(sheets, rentalID="B1", status="Active", serviceType="Bike", customerName="Taro")
        uploader.fail = True

        response = client.put(RENTALS, json={"rentalID": "B1", "customerName": "Jiro", "photoData": PHOTO})

        assert response.status_code == 502
        assert response.json()["error"] == "upstream_failure"
        assert sheets.record("Rentals", "B1")["customerName"] == "Taro"

    def test_service_type_is_immutable(self, client: TestClient, sheets):
        add_rental(sheets, rentalID="B1", status="Active", serviceType="Bike")

        response = client.put(RENTALS, json={"rentalID": "B1", "serviceType": "Onsen"})

        assert response.status_code == 409
        assert response.json()["error"] == "state_conflict"
        assert sheets.record("Rentals", "B1")["serviceType"] == "Bike"

    def test_fields_of_other_services_are_not_written(self, client: TestClient, sheets):
        add_rental(sheets, rentalID="O1", status="Active", serviceType="Onsen", onsenKeyNumber="12")

        response = client.put(
            RENTALS, json={"rentalID": "O1", "bikeNumber": "9", "luggageTagNumber": "T1", "onsenKeyNumber": "14"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["updatedFields"] == ["onsenKeyNumber", "lastUpdated"]
        assert data["ignoredFields"] == ["bikeNumber", "luggageTagNumber"]
        row = sheets.record("Rentals", "O1")
        assert row["bikeNumber"] == ""
        assert row["luggageTagNumber"] == ""
        assert row["onsenKeyNumber"] == "14"

    def test_status_cannot_be_moved(self, client: TestClient, sheets):
        add_rental(sheets, rentalID="B1", status="Closed", serviceType="Bike", customerName="Taro")

        response = client.put(RENTALS, json={"rentalID": "B1", "status": "Pending", "customerName": "Jiro"})

        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "state_conflict"
        assert data["currentStatus"] == "Closed"
        assert data["requestedStatus"] == "Pending"
        row = sheets.record("Rentals", "B1")
        assert row["status"] == "Closed"
        assert row["customerName"] == "Taro"

    def test_unchanged_status_is_accepted(self, client: TestClient, sheets):
        add_rental(sheets, rentalID="B1", status="Active", serviceType="Bike")

        response = client.put(RENTALS, json={"rentalID": "B1", "status": "Active", "returnNotes": "bell fixed"})

        assert response.status_code == 200
        assert sheets.record("Rentals", "B1")["returnNotes"] == "bell fixed"

    def test_unknown_status_rejected(self, client: TestClient, sheets):
        add_rental(sheets, rentalID="B1", status="Active", serviceType="Bike")

        response = client.put(RENTALS, json={"rentalID": "B1", "status": "Lost"})

        assert response.status_code == 400
        assert response.json()["field"] == "status"

    def test_missing_and_unknown_ids(self, client: TestClient):
        assert client.put(RENTALS, json={"customerName": "x"}).status_code == 400
        response = client.put(RENTALS, json={"rentalID": "B404", "customerName": "x"})
        assert response.status_code == 404
        assert response.json()["message"] == "Could not find rental with ID: B404"


class TestDeleteRental:
    def test_delete_closed_rental(self, client: TestClient, sheets):
        add_rental(sheets, rentalID="B1", status="Closed", serviceType="Bike")
        add_rental(sheets, rentalID="B2", status="Pending", serviceType="Bike")

        response = client.delete(RENTALS, params={"rentalID": "B1"})

        assert response.status_code == 200
        assert sheets.record("Rentals", "B1") is None
        assert sheets.record("Rentals", "B2") is not None

    def test_active_rental_cannot_be_deleted(self, client: TestClient, sheets):
        add_rental(sheets, rentalID="B1", status="Active", serviceType="Bike")

        response = client.delete(RENTALS, params={"rentalID": "B1"})

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delete active rental"
        assert response.json()["field"] == "status"
        assert sheets.record("Rentals", "B1") is not None

    def test_missing_and_unknown_ids(self, client: TestClient):
        assert client.delete(RENTALS).status_code == 400
        assert client.delete(RENTALS, params={"rentalID": "B404"}).status_code == 404
