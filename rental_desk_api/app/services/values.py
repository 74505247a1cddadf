"""
Conversions between sheet cell values and Python values.

Cells come back from the Sheets API as display strings: booleans written
as ``True`` read back as ``"TRUE"``, numbers as ``"1500"``, missing
trailing cells as ``""``.  The helpers here accept both the written and
the read-back forms so the services never care which one they hold.
"""

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, List, Optional
from zoneinfo import ZoneInfo


STATUS_PENDING = "Pending"
STATUS_AWAITING_STORAGE = "Awaiting_Storage"
STATUS_ACTIVE = "Active"
STATUS_TROUBLED = "Troubled"
STATUS_CLOSED = "Closed"
STATUS_PICKED_UP = "Closed (Picked Up)"

STATUSES = (
    STATUS_PENDING,
    STATUS_AWAITING_STORAGE,
    STATUS_ACTIVE,
    STATUS_TROUBLED,
    STATUS_CLOSED,
    STATUS_PICKED_UP,
)

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """``2024-05-01T09:30:00.000Z`` style timestamp."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any, tz: Optional[ZoneInfo] = None) -> Optional[datetime]:
    """Parse an ISO-8601 cell value into an aware datetime.

    Naive values are taken to be in ``tz`` (UTC when omitted).  Blank or
    unparseable values give ``None``.
    """
    if isinstance(value, datetime):
        moment = value
    else:
        text = str(value or "").strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz or timezone.utc)
    return moment


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD``; raises ``ValueError`` otherwise."""
    return date.fromisoformat(value.strip())


def day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """First and last instant of ``day`` in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    return start, start + timedelta(days=1) - timedelta(milliseconds=1)


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in _TRUE_STRINGS


def to_number(value: Any, default: float = 0) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return value if not math.isnan(value) else default
    text = str(value or "").strip().replace(",", "").lstrip("¥")
    if not text:
        return default
    try:
        number = float(text)
    except ValueError:
        return default
    return default if math.isnan(number) else number


def to_int(value: Any, default: int = 0) -> int:
    return int(to_number(value, default))


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


def split_tokens(value: Any) -> List[str]:
    """Resource list from a cell or payload value.

    Accepts a list (numbers allowed) or one comma separated string.
    Blank entries are dropped; order is kept.
    """
    if value is None:
        return []
    items: Iterable[Any] = value if isinstance(value, (list, tuple)) else str(value).split(",")
    return [str(item).strip() for item in items if str(item).strip()]


def join_tokens(tokens: Iterable[str]) -> str:
    return ", ".join(tokens)


def duplicates(tokens: Iterable[str]) -> List[str]:
    seen, repeated = set(), []
    for token in tokens:
        if token in seen and token not in repeated:
            repeated.append(token)
        seen.add(token)
    return repeated


def format_yen(value: Any) -> str:
    return f"¥{to_number(value):,.0f}"
