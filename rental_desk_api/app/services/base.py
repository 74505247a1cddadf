"""
Plumbing shared by the services that work on the Rentals sheet.

The Sheets client is blocking, so every store call is pushed to the
threadpool with ``run_in_threadpool``; the event loop keeps serving
other requests while a sheet round trip is in flight.
"""

from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from starlette.concurrency import run_in_threadpool

from rental_desk_api.app.core.config import Settings
from rental_desk_api.app.core.errors import BackingStoreUnavailable, NotFound, ValidationFailed
from rental_desk_api.app.core.sheets import RowRecord, RowStore
from rental_desk_api.app.services.locks import KeyedLock
from rental_desk_api.app.services.photo_service import PhotoUploader
from rental_desk_api.app.services.values import clean, utc_now


class RentalStoreService:
    def __init__(
        self,
        store: RowStore,
        settings: Settings,
        uploader: Optional[PhotoUploader] = None,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.schema = store.schema
        self.settings = settings
        self.uploader = uploader
        self.locks = locks or KeyedLock()
        self.clock = clock
        self.tz = ZoneInfo(settings.timezone)

    @staticmethod
    def require_id(value: Optional[str], field: str = "rentalID") -> str:
        rental_id = clean(value)
        if not rental_id:
            raise ValidationFailed(field, f"{field} is required")
        return rental_id

    async def get_record(self, rental_id: str) -> RowRecord:
        record = await run_in_threadpool(self.store.find_by_id, rental_id)
        if record is None:
            raise NotFound("Rental", rental_id)
        return record

    async def write(self, record: RowRecord, updates: dict, column_map: dict) -> list:
        return await run_in_threadpool(self.store.apply_update, record.row_number, updates, column_map)

    async def upload_photo(self, rental_id: str, photo_data: str, file_name: Optional[str]) -> str:
        if self.uploader is None:
            raise BackingStoreUnavailable("Photo uploads are not configured")
        stamp = int(self.clock().timestamp() * 1000)
        name = clean(file_name) or f"{rental_id}_ID_{stamp}.jpg"
        return await run_in_threadpool(self.uploader.upload, rental_id, photo_data, name)
