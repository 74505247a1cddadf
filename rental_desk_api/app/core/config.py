"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from environment
variables, with defaults for everything except the Google credentials.
A single instance is created at import time as ``settings``; the
application factory accepts an explicit ``Settings`` so tests and
alternative deployments can construct their own without touching the
environment.

Product decisions that changed between releases of the front desk
(where luggage goes after check-in, where a resolved trouble goes, whether
late bikes pay a fee) are settings rather than constants.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Rental Desk API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    debug: bool = _env_bool("DEBUG", "false")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")

    # Base64 encoded JSON key of the Google service account that owns
    # access to the spreadsheet.  Without it every request touching the
    # store fails with ``backing_store_unavailable``.
    google_service_account_key_base64: str = os.getenv("GOOGLE_SERVICE_ACCOUNT_KEY_BASE64", "")
    google_spreadsheet_id: str = os.getenv("GOOGLE_SPREADSHEET_ID", "")
    rentals_sheet_name: str = os.getenv("RENTALS_SHEET_NAME", "Rentals")
    staff_sheet_name: str = os.getenv("STAFF_SHEET_NAME", "Staff")
    # Column layout version of the Rentals sheet, see ``core.sheet_schema``.
    sheet_schema_version: int = int(os.getenv("SHEET_SCHEMA_VERSION", "3"))
    sheets_timeout_seconds: float = float(os.getenv("SHEETS_TIMEOUT_SECONDS", "15"))

    # Google Apps Script web app that stores ID photos in Drive.
    photo_upload_url: str = os.getenv("GOOGLE_APPS_SCRIPT_WEB_APP_URL", "")
    photo_upload_timeout_seconds: float = float(os.getenv("PHOTO_UPLOAD_TIMEOUT_SECONDS", "30"))
    require_checkin_photo: bool = _env_bool("REQUIRE_CHECKIN_PHOTO", "true")

    # When set, administrative endpoints require a Google ID token whose
    # e-mail belongs to this domain.  Empty disables the check.
    allowed_email_domain: str = os.getenv("ALLOWED_EMAIL_DOMAIN", "")
    google_client_id: str = os.getenv("GOOGLE_CLIENT_ID", "")

    # Date-only filters and exported timestamps use the desk's local time.
    timezone: str = os.getenv("TIMEZONE", "Asia/Tokyo")

    luggage_checkin_status: str = os.getenv("LUGGAGE_CHECKIN_STATUS", "Awaiting_Storage")
    resolved_trouble_status: str = os.getenv("RESOLVED_TROUBLE_STATUS", "Active")
    # Yen charged per started increment of lateness on bike returns.
    # Zero turns late fees off while keeping the lateness flags.
    late_fee_per_increment: int = int(os.getenv("LATE_FEE_PER_INCREMENT", "500"))
    late_fee_increment_minutes: int = int(os.getenv("LATE_FEE_INCREMENT_MINUTES", "30"))
    hotel_luggage_price_per_item: int = int(os.getenv("HOTEL_LUGGAGE_PRICE_PER_ITEM", "500"))


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Because the dataclass
# computes values at instantiation time, environment variables should
# be set before importing this module.
settings = Settings()
