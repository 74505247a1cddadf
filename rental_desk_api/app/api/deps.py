"""
FastAPI dependencies shared by the v1 endpoints.

The application factory puts the long lived objects (settings, the two
row stores, the photo uploader, the per-rental lock registry and the
clock) on ``app.state``.  The getters below hand them to the endpoints,
and the service factories combine them, so tests can swap any piece
through ``app.dependency_overrides``.
"""

from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, Request

from rental_desk_api.app.core.config import Settings
from rental_desk_api.app.core.errors import BackingStoreUnavailable
from rental_desk_api.app.core.sheets import RowStore
from rental_desk_api.app.services.export_service import ExportService
from rental_desk_api.app.services.history_service import HistoryService
from rental_desk_api.app.services.lifecycle_service import LifecycleService
from rental_desk_api.app.services.locks import KeyedLock
from rental_desk_api.app.services.photo_service import PhotoUploader
from rental_desk_api.app.services.rental_service import RentalService
from rental_desk_api.app.services.staff_service import StaffService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _configured_store(request: Request, attribute: str) -> RowStore:
    store = getattr(request.app.state, attribute, None)
    if store is None:
        reason = getattr(request.app.state, "store_error", None) or "Google Sheets is not configured"
        raise BackingStoreUnavailable(reason)
    return store


def get_rental_store(request: Request) -> RowStore:
    return _configured_store(request, "rental_store")


def get_staff_store(request: Request) -> RowStore:
    return _configured_store(request, "staff_store")


def get_uploader(request: Request) -> Optional[PhotoUploader]:
    return request.app.state.uploader


def get_locks(request: Request) -> KeyedLock:
    return request.app.state.locks


def get_clock(request: Request) -> Callable[[], datetime]:
    return request.app.state.clock


def get_rental_service(
    store: RowStore = Depends(get_rental_store),
    settings: Settings = Depends(get_settings),
    uploader: Optional[PhotoUploader] = Depends(get_uploader),
    locks: KeyedLock = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> RentalService:
    return RentalService(store, settings, uploader=uploader, locks=locks, clock=clock)


def get_lifecycle_service(
    store: RowStore = Depends(get_rental_store),
    settings: Settings = Depends(get_settings),
    uploader: Optional[PhotoUploader] = Depends(get_uploader),
    locks: KeyedLock = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LifecycleService:
    return LifecycleService(store, settings, uploader=uploader, locks=locks, clock=clock)


def get_history_service(
    store: RowStore = Depends(get_rental_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> HistoryService:
    return HistoryService(store, settings, clock=clock)


def get_export_service(
    store: RowStore = Depends(get_rental_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ExportService:
    return ExportService(store, settings, clock=clock)


def get_staff_service(
    store: RowStore = Depends(get_staff_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> StaffService:
    return StaffService(store, clock=clock)
