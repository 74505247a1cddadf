"""
Excel export of Onsen visits for the tourism association's monthly report.

The workbook has a single sheet named as in the association's report
form, with the Japanese column headings of that form, prices printed as
yen and check-in times in local time.
"""

import io
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from starlette.concurrency import run_in_threadpool

from rental_desk_api.app.core.config import Settings
from rental_desk_api.app.core.errors import NotFound, ValidationFailed
from rental_desk_api.app.core.sheets import RowStore
from rental_desk_api.app.services.values import (
    day_bounds,
    format_yen,
    parse_date,
    parse_timestamp,
    utc_now,
)


EXPORT_COLUMNS: List[Tuple[str, str]] = [
    ("rentalID", "予約番号"),
    ("customerName", "お客様名"),
    ("customerContact", "連絡先"),
    ("totalPrice", "料金"),
    ("comeFrom", "お住まい"),
    ("totalAdultCount", "大人"),
    ("totalChildCount", "小人"),
    ("kidsCount", "幼児"),
    ("maleCount", "男性"),
    ("femaleCount", "女性"),
    ("boyCount", "男の子"),
    ("girlCount", "女の子"),
    ("faceTowelCount", "フェイスタオル"),
    ("bathTowelCount", "バスタオル"),
    ("checkInStaff", "担当"),
    ("checkedInAt", "日時"),
]

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SHEET_TITLE = "外湯めぐりdata"
COLUMN_WIDTH = 15


def export_filename(start: Optional[date], end: Optional[date], today: date) -> str:
    if start is None:
        return f"onsen-data-all-{today.isoformat()}.xlsx"
    if start == end:
        return f"onsen-data-{start.isoformat()}.xlsx"
    return f"onsen-data-{start.isoformat()}_to_{end.isoformat()}.xlsx"


class ExportService:
    def __init__(self, store: RowStore, settings: Settings, clock: Callable[[], Any] = utc_now) -> None:
        self.store = store
        self.clock = clock
        self.tz = ZoneInfo(settings.timezone)

    def parse_range(self, start_date: Optional[str], end_date: Optional[str]) -> Tuple[Optional[date], Optional[date]]:
        """A single bound selects that one day."""
        parsed = {}
        for field, value in (("startDate", start_date), ("endDate", end_date)):
            if not value:
                parsed[field] = None
                continue
            try:
                parsed[field] = parse_date(value)
            except ValueError:
                raise ValidationFailed(field, f"{field} must be a date in YYYY-MM-DD format") from None
        start = parsed["startDate"] or parsed["endDate"]
        end = parsed["endDate"] or parsed["startDate"]
        if start and end and start > end:
            raise ValidationFailed("endDate", "endDate must not be before startDate")
        return start, end

    def format_value(self, field: str, value: Any) -> str:
        if field == "totalPrice":
            return format_yen(value)
        if field == "checkedInAt":
            moment = parse_timestamp(value)
            return moment.astimezone(self.tz).strftime("%Y/%m/%d %H:%M:%S") if moment else str(value or "")
        return "" if value is None else str(value)

    def render(self, rentals: List[Dict[str, Any]]) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = SHEET_TITLE
        sheet.append([heading for _, heading in EXPORT_COLUMNS])
        for rental in rentals:
            # Blank cells stay empty instead of holding an empty string.
            sheet.append(
                [self.format_value(field, rental.get(field)) or None for field, _ in EXPORT_COLUMNS]
            )
        for index in range(1, len(EXPORT_COLUMNS) + 1):
            sheet.column_dimensions[get_column_letter(index)].width = COLUMN_WIDTH

        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    async def export_onsen(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> Tuple[str, bytes, int]:
        """Return ``(filename, xlsx_bytes, row_count)``.

        Raises ``NotFound`` when no Onsen record falls in the range.
        """
        start, end = self.parse_range(start_date, end_date)
        lower = day_bounds(start, self.tz)[0] if start else None
        upper = day_bounds(end, self.tz)[1] if end else None

        records = await run_in_threadpool(self.store.read_records)
        rentals = []
        for record in records:
            if record.get("serviceType") != "Onsen":
                continue
            if lower is not None:
                submitted = parse_timestamp(record.get("submittedAt"), self.tz)
                if submitted is None or not lower <= submitted <= upper:
                    continue
            rentals.append(record)
        if not rentals:
            raise NotFound("Onsen export", message="No Onsen service records available for export")

        today = self.clock().astimezone(self.tz).date()
        content = await run_in_threadpool(self.render, rentals)
        return export_filename(start, end, today), content, len(rentals)
