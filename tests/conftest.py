"""
Shared fixtures.

Every API test runs against a fresh in-memory spreadsheet and a fixed
clock (2024-06-01 10:00 JST) so timestamps, rental IDs and lateness are
predictable.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from rental_desk_api.app.core.config import Settings
from rental_desk_api.app.core.sheet_schema import get_rental_schema, get_staff_schema
from rental_desk_api.app.core.sheets import RowStore, SheetsClient
from rental_desk_api.app.main import create_app

from .fakes import FakeUploader, rental_sheet


FIXED_NOW = datetime(2024, 6, 1, 1, 0, 0, tzinfo=timezone.utc)
PHOTO = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD"


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


def make_settings(**overrides) -> Settings:
    values = dict(
        project_name="Rental Desk API",
        api_version="test",
        log_level="WARNING",
        log_file="",
        google_service_account_key_base64="",
        google_spreadsheet_id="test-spreadsheet",
        rentals_sheet_name="Rentals",
        staff_sheet_name="Staff",
        sheet_schema_version=3,
        photo_upload_url="https://script.example.com/exec",
        require_checkin_photo=True,
        allowed_email_domain="",
        google_client_id="",
        timezone="Asia/Tokyo",
        luggage_checkin_status="Awaiting_Storage",
        resolved_trouble_status="Active",
        late_fee_per_increment=500,
        late_fee_increment_minutes=30,
        hotel_luggage_price_per_item=500,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def sheets():
    """In-memory spreadsheet with empty Rentals (v3) and Staff sheets."""
    return rental_sheet()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def rental_store(sheets):
    return RowStore(SheetsClient(sheets, "test-spreadsheet"), get_rental_schema(3))


@pytest.fixture
def staff_store(sheets):
    return RowStore(SheetsClient(sheets, "test-spreadsheet"), get_staff_schema())


@pytest.fixture
def app(settings, sheets, uploader, clock):
    return create_app(settings, sheets_client=SheetsClient(sheets, "test-spreadsheet"), uploader=uploader, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
