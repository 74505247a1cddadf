"""
Main entrypoint for the Rental Desk API.

This module assembles the FastAPI application, sets up logging, installs
the error handlers and includes the versioned router.  The
``create_app`` function builds and configures the app, which is then
instantiated at module import time as ``app``, so the service can be
run with uvicorn or another ASGI server, e.g.::

    uvicorn rental_desk_api.app.main:app --reload

The Google Sheets client is built at startup from the service account
in ``Settings``.  When it cannot be built the API still starts; health
checks answer and every request that needs the spreadsheet fails with
``backing_store_unavailable`` until the configuration is fixed.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI

from .api.v1.router import router as v1_router
from .core.config import Settings, settings as default_settings
from .core.errors import BackingStoreUnavailable, register_exception_handlers
from .core.logging_config import setup_logging
from .core.sheet_schema import get_rental_schema, get_staff_schema
from .core.sheets import RowStore, SheetsClient, build_sheets_client
from .services.locks import KeyedLock
from .services.photo_service import PhotoUploader
from .services.values import (
    STATUS_ACTIVE,
    STATUS_AWAITING_STORAGE,
    STATUS_CLOSED,
    utc_now,
)


logger = logging.getLogger(__name__)

# Statuses the configurable transitions may land in.
LUGGAGE_CHECKIN_STATUSES = (STATUS_AWAITING_STORAGE, STATUS_ACTIVE)
RESOLVED_TROUBLE_STATUSES = (STATUS_ACTIVE, STATUS_CLOSED)


def check_settings(settings: Settings) -> None:
    """Reject transition targets that would write an unusable status."""
    if settings.luggage_checkin_status not in LUGGAGE_CHECKIN_STATUSES:
        raise ValueError(
            f"LUGGAGE_CHECKIN_STATUS must be one of {list(LUGGAGE_CHECKIN_STATUSES)}, "
            f"got '{settings.luggage_checkin_status}'"
        )
    if settings.resolved_trouble_status not in RESOLVED_TROUBLE_STATUSES:
        raise ValueError(
            f"RESOLVED_TROUBLE_STATUS must be one of {list(RESOLVED_TROUBLE_STATUSES)}, "
            f"got '{settings.resolved_trouble_status}'"
        )



def attach_stores(app: FastAPI, client: SheetsClient) -> None:
    """Create the Rentals and Staff row stores on top of ``client``."""
    settings = app.state.settings
    app.state.rental_store = RowStore(
        client, get_rental_schema(settings.sheet_schema_version, settings.rentals_sheet_name)
    )
    app.state.staff_store = RowStore(client, get_staff_schema(settings.staff_sheet_name))
    app.state.store_error = None


def create_app(
    settings: Optional[Settings] = None,
    sheets_client: Optional[SheetsClient] = None,
    uploader: Optional[PhotoUploader] = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """Create and configure a FastAPI application.

    Parameters
    ----------
    settings : Optional[Settings]
        Configuration to use; defaults to the environment based
        ``core.config.settings``.
    sheets_client : Optional[SheetsClient]
        A ready Sheets client.  When omitted one is built from
        ``settings`` at startup.
    uploader : Optional[PhotoUploader]
        Photo upload client; defaults to one posting to
        ``GOOGLE_APPS_SCRIPT_WEB_APP_URL``.
    clock : Callable[[], datetime]
        Source of the current UTC time for timestamps and lateness.

    Returns
    -------
    FastAPI
        A configured FastAPI application instance.

    Raises
    ------
    ValueError
        If ``LUGGAGE_CHECKIN_STATUS`` or ``RESOLVED_TROUBLE_STATUS`` names a
        status those transitions cannot end in.
    """
    settings = settings or default_settings
    check_settings(settings)
    # Initialise logging before anything else so that the startup below
    # can log.
    setup_logging(settings.log_level, settings.log_file or None)

    app = FastAPI(title=settings.project_name, version=settings.api_version, debug=settings.debug)
    register_exception_handlers(app)

    app.state.settings = settings
    app.state.rental_store = None
    app.state.staff_store = None
    app.state.store_error = None
    app.state.uploader = uploader or PhotoUploader(
        settings.photo_upload_url, timeout=settings.photo_upload_timeout_seconds
    )
    app.state.locks = KeyedLock()
    app.state.clock = clock
    if sheets_client is not None:
        attach_stores(app, sheets_client)

    app.include_router(v1_router, prefix="/api/v1")

    @app.on_event("startup")
    async def startup_event() -> None:
        if app.state.rental_store is not None:
            return
        try:
            attach_stores(app, build_sheets_client(settings))
        except BackingStoreUnavailable as exc:
            # Keep serving; store-backed requests answer 503 with this reason.
            logger.error("Google Sheets unavailable: %s", exc.message)
            app.state.store_error = exc.message

    return app


# Create the application instance at import time so that tools such as
# uvicorn can discover it without calling create_app manually.
app = create_app()
