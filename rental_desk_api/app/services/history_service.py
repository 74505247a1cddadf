"""
Filtering, sorting and paging of rental history.

The whole Rentals sheet is read on every query; at front desk volumes
(hundreds to a few thousand rows) that is a single fast request.  The
sort is stable and ties keep sheet order, so repeating a query without
writes in between returns the rows in the same order.
"""

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from starlette.concurrency import run_in_threadpool

from rental_desk_api.app.core.config import Settings
from rental_desk_api.app.core.errors import ValidationFailed
from rental_desk_api.app.core.sheets import RowStore
from rental_desk_api.app.services.values import (
    day_bounds,
    parse_date,
    parse_timestamp,
    to_iso,
    to_number,
    utc_now,
)


DEFAULT_LIMIT = 100
SORT_ORDERS = ("asc", "desc")
STAFF_FIELDS = ("checkInStaff", "returnStaff", "createdBy")
_NUMERIC_SORT_FIELDS = {"totalPrice", "minutesLate"}


@dataclass
class HistoryQuery:
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    status: Optional[str] = None
    serviceType: Optional[str] = None
    customerName: Optional[str] = None
    customerContact: Optional[str] = None
    staffName: Optional[str] = None
    rentalID: Optional[str] = None
    sortBy: str = "submittedAt"
    sortOrder: str = "desc"
    limit: int = DEFAULT_LIMIT
    offset: int = 0


def sort_key(field: str, tz: ZoneInfo) -> Callable[[Dict[str, Any]], Any]:
    """Key function for ``field``: dates by instant, counts and prices as numbers."""
    if field.endswith("At") or field == "expectedReturn":

        def date_key(record: Dict[str, Any]) -> float:
            moment = parse_timestamp(record.get(field), tz)
            return moment.timestamp() if moment else float("-inf")

        return date_key
    if field in _NUMERIC_SORT_FIELDS or field.endswith("Count"):
        return lambda record: to_number(record.get(field))
    return lambda record: str(record.get(field, ""))


class HistoryService:
    """Read-only queries over the Rentals sheet."""

    def __init__(self, store: RowStore, settings: Settings, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock
        self.tz = ZoneInfo(settings.timezone)

    def date_range(self, query: HistoryQuery):
        start = end = None
        try:
            if query.startDate:
                start = day_bounds(parse_date(query.startDate), self.tz)[0]
        except ValueError:
            raise ValidationFailed("startDate", "startDate must be a date in YYYY-MM-DD format") from None
        try:
            if query.endDate:
                end = day_bounds(parse_date(query.endDate), self.tz)[1]
        except ValueError:
            raise ValidationFailed("endDate", "endDate must be a date in YYYY-MM-DD format") from None
        return start, end

    def matches(self, record: Dict[str, Any], query: HistoryQuery, start, end) -> bool:
        if start or end:
            submitted = parse_timestamp(record.get("submittedAt"), self.tz)
            if submitted is None:
                return False
            if start and submitted < start:
                return False
            if end and submitted > end:
                return False
        if query.status and record.get("status") != query.status:
            return False
        if query.serviceType and record.get("serviceType") != query.serviceType:
            return False
        if query.customerName and query.customerName.lower() not in str(record.get("customerName", "")).lower():
            return False
        if query.customerContact and record.get("customerContact") != query.customerContact:
            return False
        if query.staffName:
            needle = query.staffName.lower()
            if not any(needle in str(record.get(name, "")).lower() for name in STAFF_FIELDS):
                return False
        if query.rentalID and record.get("rentalID") != query.rentalID:
            return False
        return True

    def stats(self, rentals: List[Dict[str, Any]]) -> Dict[str, Any]:
        by_status: Dict[str, int] = {}
        by_service: Dict[str, int] = {}
        revenue = 0.0
        earliest = latest = None
        for rental in rentals:
            by_status[rental.get("status", "")] = by_status.get(rental.get("status", ""), 0) + 1
            by_service[rental.get("serviceType", "")] = by_service.get(rental.get("serviceType", ""), 0) + 1
            revenue += to_number(rental.get("totalPrice"))
            submitted = parse_timestamp(rental.get("submittedAt"), self.tz)
            if submitted is None:
                continue
            if earliest is None or submitted < earliest[0]:
                earliest = (submitted, rental["submittedAt"])
            if latest is None or submitted > latest[0]:
                latest = (submitted, rental["submittedAt"])
        return {
            "total": len(rentals),
            "byStatus": by_status,
            "byServiceType": by_service,
            "totalRevenue": revenue,
            "dateRange": {
                "earliest": earliest[1] if earliest else None,
                "latest": latest[1] if latest else None,
            },
        }

    async def query(self, query: HistoryQuery) -> Dict[str, Any]:
        if query.sortOrder not in SORT_ORDERS:
            raise ValidationFailed("sortOrder", "sortOrder must be 'asc' or 'desc'")
        start, end = self.date_range(query)

        records = await run_in_threadpool(self.store.read_records)
        filtered = [record for record in records if self.matches(record, query, start, end)]
        ordered = sorted(filtered, key=sort_key(query.sortBy, self.tz), reverse=query.sortOrder == "desc")
        page = ordered[query.offset:query.offset + query.limit]

        filters = asdict(query)
        for name in ("limit", "offset"):
            filters.pop(name)
        # Search terms that identify a customer are not echoed back.
        for name in ("customerName", "customerContact"):
            filters[name] = "[FILTERED]" if filters[name] else None

        return {
            "success": True,
            "rentals": page,
            "total": len(records),
            "filtered": len(filtered),
            "stats": self.stats(filtered),
            "pagination": {
                "limit": query.limit,
                "offset": query.offset,
                "hasMore": query.offset + query.limit < len(filtered),
                "totalPages": math.ceil(len(filtered) / query.limit),
                "currentPage": query.offset // query.limit + 1,
            },
            "filters": filters,
            "timestamp": to_iso(self.clock()),
        }
