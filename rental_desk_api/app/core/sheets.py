"""
Google Sheets integration: the spreadsheet is the database.

This module provides the client construction (``build_sheets_client``)
and a small row-oriented adapter (``RowStore``) that the services use
instead of talking to the Sheets API directly.  It plays the role a
``get_connection`` helper plays for an SQL database:

* the client is built once at startup from a base64 encoded service
  account key and handed to the stores explicitly;
* every request goes through ``SheetsClient.execute`` so transport,
  authentication and timeout failures all surface as
  ``BackingStoreUnavailable``;
* rows are decoded through the header row, while writes are addressed
  through the column letters of a ``SheetSchema``.

The Sheets API offers no multi-request transactions.  A lookup followed
by an update is two round trips; callers that need the pair to be
atomic must serialise on their own (see ``services.locks``).
"""

import base64
import binascii
import json
import logging
import re
import socket
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import google.auth.exceptions
import google_auth_httplib2
import httplib2
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import Settings
from .errors import BackingStoreUnavailable
from .sheet_schema import SheetSchema, column_letter


logger = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

_PLAIN_SHEET_NAME = re.compile(r"^[A-Za-z0-9_]+$")


def a1_range(sheet_name: str, cells: str = "") -> str:
    """Build an A1 range, quoting sheet names that need it."""
    name = sheet_name if _PLAIN_SHEET_NAME.match(sheet_name) else "'" + sheet_name.replace("'", "''") + "'"
    return f"{name}!{cells}" if cells else name


def load_service_account_info(key_base64: str) -> Dict[str, Any]:
    """Decode the base64 service account key into its JSON document."""
    if not key_base64:
        raise BackingStoreUnavailable("GOOGLE_SERVICE_ACCOUNT_KEY_BASE64 is not configured")
    try:
        info = json.loads(base64.b64decode(key_base64, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise BackingStoreUnavailable(
            "GOOGLE_SERVICE_ACCOUNT_KEY_BASE64 could not be decoded", cause=exc
        ) from exc
    if not isinstance(info, dict) or not info:
        raise BackingStoreUnavailable("GOOGLE_SERVICE_ACCOUNT_KEY_BASE64 does not contain a service account key")
    return info


class SheetsClient:
    """Thin wrapper around a googleapiclient Sheets ``Resource``.

    ``http_factory`` returns a fresh authorised transport per request.
    httplib2 transports are not thread safe and requests are executed
    from the threadpool, so they are never shared.
    """

    def __init__(
        self,
        service: Any,
        spreadsheet_id: str,
        http_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.service = service
        self.spreadsheet_id = spreadsheet_id
        self._http_factory = http_factory
        self._sheet_ids: Dict[str, int] = {}

    def execute(self, request: Any, description: str) -> Dict[str, Any]:
        try:
            if self._http_factory is not None:
                return request.execute(http=self._http_factory())
            return request.execute()
        except HttpError as exc:
            status = getattr(exc.resp, "status", None)
            raise BackingStoreUnavailable(
                f"Failed to {description}: Google Sheets answered {status}",
                cause=exc,
                storeStatus=status,
            ) from exc
        except google.auth.exceptions.GoogleAuthError as exc:
            raise BackingStoreUnavailable(
                f"Failed to {description}: Google Sheets authentication failed", cause=exc
            ) from exc
        except (socket.timeout, TimeoutError) as exc:
            raise BackingStoreUnavailable(f"Failed to {description}: Google Sheets timed out", cause=exc) from exc
        except (httplib2.HttpLib2Error, OSError) as exc:
            raise BackingStoreUnavailable(f"Failed to {description}: Google Sheets unreachable", cause=exc) from exc

    def get_values(self, range_name: str) -> List[List[Any]]:
        request = self.service.spreadsheets().values().get(spreadsheetId=self.spreadsheet_id, range=range_name)
        return self.execute(request, f"read {range_name}").get("values", [])

    def batch_update_values(self, data: List[Dict[str, Any]]) -> Dict[str, Any]:
        request = self.service.spreadsheets().values().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={"valueInputOption": "RAW", "data": data},
        )
        return self.execute(request, "update cells")

    def append_values(self, range_name: str, rows: List[List[Any]]) -> Dict[str, Any]:
        request = self.service.spreadsheets().values().append(
            spreadsheetId=self.spreadsheet_id,
            range=range_name,
            valueInputOption="RAW",
            insertDataOption="INSERT_ROWS",
            body={"values": rows},
        )
        return self.execute(request, f"append to {range_name}")

    def clear_values(self, range_name: str) -> Dict[str, Any]:
        request = self.service.spreadsheets().values().clear(
            spreadsheetId=self.spreadsheet_id, range=range_name, body={}
        )
        return self.execute(request, f"clear {range_name}")

    def sheet_id(self, title: str) -> int:
        """Numeric id of the sheet called ``title`` (needed for row deletion)."""
        if title not in self._sheet_ids:
            request = self.service.spreadsheets().get(
                spreadsheetId=self.spreadsheet_id, fields="sheets.properties"
            )
            meta = self.execute(request, "read spreadsheet metadata")
            for sheet in meta.get("sheets", []):
                props = sheet.get("properties") or {}
                self._sheet_ids[props.get("title")] = props.get("sheetId")
            if title not in self._sheet_ids:
                raise BackingStoreUnavailable(f"Sheet '{title}' not found in spreadsheet")
        return self._sheet_ids[title]

    def delete_rows(self, title: str, start_index: int, end_index: int) -> Dict[str, Any]:
        body = {
            "requests": [
                {
                    "deleteDimension": {
                        "range": {
                            "sheetId": self.sheet_id(title),
                            "dimension": "ROWS",
                            "startIndex": start_index,
                            "endIndex": end_index,
                        }
                    }
                }
            ]
        }
        request = self.service.spreadsheets().batchUpdate(spreadsheetId=self.spreadsheet_id, body=body)
        return self.execute(request, f"delete rows from {title}")


def build_sheets_client(settings: Settings) -> SheetsClient:
    """Create the Sheets client from the service account in ``settings``.

    Raises
    ------
    BackingStoreUnavailable
        If the key or the spreadsheet id is missing or unusable.
    """
    info = load_service_account_info(settings.google_service_account_key_base64)
    if not settings.google_spreadsheet_id:
        raise BackingStoreUnavailable("GOOGLE_SPREADSHEET_ID is not configured")
    try:
        credentials = service_account.Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
    except (ValueError, KeyError) as exc:
        raise BackingStoreUnavailable("Service account key is incomplete", cause=exc) from exc

    timeout = settings.sheets_timeout_seconds

    def http_factory() -> google_auth_httplib2.AuthorizedHttp:
        return google_auth_httplib2.AuthorizedHttp(credentials, http=httplib2.Http(timeout=timeout))

    service = build("sheets", "v4", http=http_factory(), cache_discovery=False)
    logger.info("Google Sheets client ready for spreadsheet %s", settings.google_spreadsheet_id)
    return SheetsClient(service, settings.google_spreadsheet_id, http_factory=http_factory)


@dataclass
class RowRecord:
    """One decoded data row; ``row_number`` is the 1-based sheet row."""

    row_number: int
    fields: Dict[str, Any]


def decode_row(headers: Sequence[Any], row: Sequence[Any]) -> Dict[str, Any]:
    """Key ``row`` by ``headers``.  The API trims trailing blanks, so pad."""
    record: Dict[str, Any] = {}
    for index, header in enumerate(headers):
        if header in (None, ""):
            continue
        value = row[index] if index < len(row) else ""
        record[str(header)] = "" if value is None else value
    return record


class RowStore:
    """Row-level access to one sheet described by a ``SheetSchema``."""

    def __init__(self, client: SheetsClient, schema: SheetSchema) -> None:
        self.client = client
        self.schema = schema
        self._header_checked = False

    @property
    def sheet_name(self) -> str:
        return self.schema.name

    def read_table(self) -> Tuple[List[Any], List[List[Any]]]:
        """Return ``(headers, data_rows)`` for the whole sheet."""
        rows = self.client.get_values(a1_range(self.sheet_name))
        if not rows:
            return [], []
        headers = rows[0]
        if not self._header_checked:
            problems = self.schema.check_header(headers)
            if problems:
                logger.warning(
                    "%s header differs from schema v%s: %s",
                    self.sheet_name,
                    self.schema.version,
                    "; ".join(problems),
                )
            self._header_checked = True
        return headers, rows[1:]

    def read_records(self) -> List[Dict[str, Any]]:
        headers, rows = self.read_table()
        return [decode_row(headers, row) for row in rows if any(cell not in ("", None) for cell in row)]

    def find_by_id(self, identifier: str) -> Optional[RowRecord]:
        """Locate the first row whose first cell equals ``identifier``."""
        if not identifier:
            return None
        headers, rows = self.read_table()
        for offset, row in enumerate(rows):
            if row and str(row[0]) == identifier:
                # +2: one for the header row, one for 1-based numbering
                return RowRecord(row_number=offset + 2, fields=decode_row(headers, row))
        return None

    def count_rows(self) -> int:
        """Number of data rows (header excluded)."""
        _, rows = self.read_table()
        return len(rows)

    def apply_update(self, row_number: int, fields: Dict[str, Any], column_map: Dict[str, str]) -> List[str]:
        """Write ``fields`` into ``row_number`` with one batched request.

        Only fields present in ``column_map`` with a value other than
        ``None`` are written; anything else is skipped without error.
        Returns the names of the written fields.
        """
        data = []
        written = []
        for name, value in fields.items():
            column = column_map.get(name)
            if column is None or value is None:
                continue
            data.append({"range": a1_range(self.sheet_name, f"{column}{row_number}"), "values": [[value]]})
            written.append(name)
        if data:
            self.client.batch_update_values(data)
        return written

    def append(self, fields: Dict[str, Any]) -> None:
        row = self.schema.build_row(fields)
        self.client.append_values(a1_range(self.sheet_name, f"A:{self.schema.last_column()}"), [row])

    def delete_row(self, row_number: int) -> None:
        self.client.delete_rows(self.sheet_name, row_number - 1, row_number)

    def replace_rows(self, records: List[Dict[str, Any]]) -> None:
        """Overwrite every data row with ``records`` (header row kept)."""
        existing = self.count_rows()
        last = self.schema.last_column()
        if existing:
            self.client.clear_values(a1_range(self.sheet_name, f"A2:{last}{existing + 1}"))
        if records:
            rows = [self.schema.build_row(record) for record in records]
            self.client.batch_update_values(
                [{"range": a1_range(self.sheet_name, f"A2:{last}{len(rows) + 1}"), "values": rows}]
            )


__all__ = [
    "RowRecord",
    "RowStore",
    "SheetsClient",
    "a1_range",
    "build_sheets_client",
    "column_letter",
    "decode_row",
    "load_service_account_info",
]
