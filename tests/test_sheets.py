"""
Google Sheets client and row store tests, against the in-memory sheet.
"""
import base64
import json
import logging

import google.auth.exceptions
import httplib2
import pytest
from googleapiclient.errors import HttpError

from rental_desk_api.app.core.errors import BackingStoreUnavailable
from rental_desk_api.app.core.sheet_schema import get_rental_schema
from rental_desk_api.app.core.sheets import (
    RowStore,
    SheetsClient,
    a1_range,
    decode_row,
    load_service_account_info,
)

from .fakes import FakeSheetsService, add_rental, add_staff


class TestRanges:
    """A1 notation"""

    def test_plain_sheet_name(self):
        assert a1_range("Rentals", "A2:AU5") == "Rentals!A2:AU5"
        assert a1_range("Rentals") == "Rentals"

    def test_names_that_need_quotes(self):
        assert a1_range("Front Desk", "B3") == "'Front Desk'!B3"
        assert a1_range("O'Hara") == "'O''Hara'"


class TestServiceAccountKey:
    """Decoding GOOGLE_SERVICE_ACCOUNT_KEY_BASE64"""

    def test_decodes_json_document(self):
        key = {"type": "service_account", "client_email": "desk@example.iam.gserviceaccount.com"}
        encoded = base64.b64encode(json.dumps(key).encode()).decode()
        assert load_service_account_info(encoded) == key

    def test_missing_key(self):
        with pytest.raises(BackingStoreUnavailable, match="not configured"):
            load_service_account_info("")

    def test_garbage_key(self):
        with pytest.raises(BackingStoreUnavailable, match="could not be decoded"):
            load_service_account_info("not base64 at all!")


class TestSheetsClientErrors:
    """Every transport failure becomes BackingStoreUnavailable"""

    def test_http_error(self, sheets):
        sheets.fail_with = HttpError(httplib2.Response({"status": 500}), b"backend error")
        client = SheetsClient(sheets, "test-spreadsheet")
        with pytest.raises(BackingStoreUnavailable) as info:
            client.get_values("Rentals")
        assert info.value.extra["storeStatus"] == 500
        assert isinstance(info.value.cause, HttpError)

    def test_auth_error(self, sheets):
        sheets.fail_with = google.auth.exceptions.RefreshError("invalid_grant")
        with pytest.raises(BackingStoreUnavailable, match="authentication failed"):
            SheetsClient(sheets, "test-spreadsheet").get_values("Rentals")

    def test_timeout(self, sheets):
        sheets.fail_with = TimeoutError("timed out")
        with pytest.raises(BackingStoreUnavailable, match="timed out"):
            SheetsClient(sheets, "test-spreadsheet").get_values("Rentals")

    def test_connection_refused(self, sheets):
        sheets.fail_with = ConnectionRefusedError("refused")
        with pytest.raises(BackingStoreUnavailable, match="unreachable"):
            SheetsClient(sheets, "test-spreadsheet").get_values("Rentals")

    def test_fresh_transport_per_request(self, sheets):
        transports = []

        def factory():
            transports.append(object())
            return transports[-1]

        client = SheetsClient(sheets, "test-spreadsheet", http_factory=factory)
        client.get_values("Rentals")
        client.get_values("Staff")
        assert len(transports) == 2

    def test_unknown_sheet_title(self, sheets):
        with pytest.raises(BackingStoreUnavailable, match="'Archive' not found"):
            SheetsClient(sheets, "test-spreadsheet").sheet_id("Archive")


class TestDecodeRow:
    def test_pads_trimmed_rows(self):
        assert decode_row(["a", "b", "c"], ["1"]) == {"a": "1", "b": "", "c": ""}

    def test_skips_unnamed_columns(self):
        assert decode_row(["a", "", "c"], ["1", "x", "3"]) == {"a": "1", "c": "3"}


class TestRowStore:
    """Row level reads and writes"""

    def test_find_by_id_returns_sheet_row_number(self, sheets, rental_store):
        add_rental(sheets, rentalID="B1", status="Pending", serviceType="Bike")
        add_rental(sheets, rentalID="O2", status="Active", serviceType="Onsen")
        record = rental_store.find_by_id("O2")
        assert record.row_number == 3
        assert record.fields["status"] == "Active"
        assert record.fields["bikeNumber"] == ""
        assert rental_store.find_by_id("X9") is None
        assert rental_store.find_by_id("") is None

    def test_read_records_skips_blank_rows(self, sheets, rental_store):
        add_rental(sheets, rentalID="B1", status="Pending")
        sheets.grids["Rentals"].append([])
        add_rental(sheets, rentalID="B2", status="Pending")
        assert [r["rentalID"] for r in rental_store.read_records()] == ["B1", "B2"]

    def test_booleans_come_back_as_strings(self, sheets, rental_store):
        add_rental(sheets, rentalID="B1", agreement=True, verified=False, totalPrice=1500.0)
        record = rental_store.read_records()[0]
        assert record["agreement"] == "TRUE"
        assert record["verified"] == "FALSE"
        assert record["totalPrice"] == "1500"

    def test_apply_update_is_one_batch_of_mapped_fields(self, sheets, rental_store):
        add_rental(sheets, rentalID="B1", status="Pending")
        sheets.calls.clear()
        written = rental_store.apply_update(
            2,
            {"status": "Active", "bikeNumber": "7", "shoeSize": 27, "verified": None},
            {"status": "B", "bikeNumber": "AE", "verified": "Q"},
        )
        assert written == ["status", "bikeNumber"]
        batches = sheets.calls_of("values.batchUpdate")
        assert len(batches) == 1
        assert [entry["range"] for entry in batches[0]["body"]["data"]] == ["Rentals!B2", "Rentals!AE2"]
        assert batches[0]["body"]["valueInputOption"] == "RAW"
        assert sheets.record("Rentals", "B1")["bikeNumber"] == "7"

    def test_apply_update_without_known_fields_writes_nothing(self, sheets, rental_store):
        add_rental(sheets, rentalID="B1")
        sheets.calls.clear()
        assert rental_store.apply_update(2, {"shoeSize": 27}, {"status": "B"}) == []
        assert sheets.calls == []

    def test_append_lays_out_a_full_row(self, sheets, rental_store):
        add_rental(sheets, rentalID="B1")
        rental_store.append({"rentalID": "O2", "serviceType": "Onsen", "storageNotes": "n/a"})
        call = sheets.calls_of("values.append")[0]
        assert call["range"] == "Rentals!A:AU"
        assert call["insertDataOption"] == "INSERT_ROWS"
        assert len(call["body"]["values"][0]) == 47
        assert sheets.record("Rentals", "O2")["storageNotes"] == "n/a"
        assert rental_store.count_rows() == 2

    def test_delete_row(self, sheets, rental_store):
        add_rental(sheets, rentalID="B1")
        add_rental(sheets, rentalID="B2")
        rental_store.delete_row(2)
        request = sheets.calls_of("spreadsheets.batchUpdate")[0]["body"]["requests"][0]["deleteDimension"]
        assert request["range"]["startIndex"] == 1
        assert request["range"]["endIndex"] == 2
        assert [r["rentalID"] for r in rental_store.read_records()] == ["B2"]

    def test_replace_rows(self, sheets, staff_store):
        add_staff(sheets, "STAFF_1", "Aiko", 0)
        add_staff(sheets, "STAFF_2", "Ken", 1)
        add_staff(sheets, "STAFF_3", "Mika", 2)
        staff_store.replace_rows(
            [
                {"id": "STAFF_3", "name": "Mika", "lastUpdated": "", "order": "0"},
                {"id": "STAFF_1", "name": "Aiko", "lastUpdated": "", "order": "1"},
            ]
        )
        assert sheets.calls_of("values.clear")[0]["range"] == "Staff!A2:D4"
        assert [r["id"] for r in staff_store.read_records()] == ["STAFF_3", "STAFF_1"]
        assert staff_store.count_rows() == 2

    def test_header_mismatch_is_logged_once(self, caplog):
        service = FakeSheetsService()
        header = get_rental_schema(3).header_row()
        header[1] = "state"
        service.add_sheet("Rentals", header)
        store = RowStore(SheetsClient(service, "test-spreadsheet"), get_rental_schema(3))
        with caplog.at_level(logging.WARNING, logger="rental_desk_api.app.core.sheets"):
            store.read_records()
            store.read_records()
        warnings = [r for r in caplog.records if "header differs" in r.getMessage()]
        assert len(warnings) == 1
        assert "B: expected 'status', found 'state'" in warnings[0].getMessage()

    def test_empty_sheet(self):
        service = FakeSheetsService()
        service.add_sheet("Rentals", [])
        store = RowStore(SheetsClient(service, "test-spreadsheet"), get_rental_schema(3))
        assert store.read_records() == []
        assert store.count_rows() == 0
