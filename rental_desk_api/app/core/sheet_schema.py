"""
Column layouts of the spreadsheet used as the database.

Every sheet is described by a ``SheetSchema``: a mapping from logical
field names to column letters plus named column groups listing which
fields an operation is allowed to write.  The rest of the application
speaks only in logical field names; letters are resolved here and
consumed by ``core.sheets.RowStore``.

The Rentals sheet has gone through several layouts.  Each layout is
kept as a numbered version so that an old spreadsheet can still be
served by pointing ``SHEET_SCHEMA_VERSION`` at it.  New fields are
appended at new columns, which keeps rows written under an older
version readable: the new fields simply come back blank.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


SERVICE_TYPES = ("Bike", "Onsen", "Luggage")
OPERATIONS = ("CHECKIN", "RETURN", "TROUBLE", "STORAGE", "UPDATE")

_COLUMN_RE = re.compile(r"^[A-Z]+$")


def column_index(column: str) -> int:
    """Convert a column letter (``A``, ``Z``, ``AA``...) to a zero-based index."""
    letters = column.strip().upper()
    if not _COLUMN_RE.match(letters):
        raise ValueError(f"Invalid column address: {column!r}")
    index = 0
    for char in letters:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def column_letter(index: int) -> str:
    """Inverse of :func:`column_index`."""
    if index < 0:
        raise ValueError(f"Column index must be non-negative, got {index}")
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


@dataclass(frozen=True)
class SheetSchema:
    """Field to column mapping of one sheet at one layout version."""

    name: str
    version: int
    columns: Dict[str, str]
    groups: Dict[str, Any] = field(default_factory=dict)

    def ordered_columns(self) -> List[Tuple[str, str]]:
        """Return ``(field, column)`` pairs in A, B, ..., Z, AA, AB order."""
        return sorted(self.columns.items(), key=lambda item: column_index(item[1]))

    def header_row(self) -> List[str]:
        return [name for name, _ in self.ordered_columns()]

    def row_length(self) -> int:
        if not self.columns:
            return 0
        return max(column_index(col) for col in self.columns.values()) + 1

    def last_column(self) -> str:
        return column_letter(self.row_length() - 1)

    def column_for(self, field_name: str) -> Optional[str]:
        return self.columns.get(field_name)

    def get_column_mapping(self, field_names: Iterable[str]) -> Dict[str, str]:
        """Mapping for the subset of ``field_names`` this layout knows."""
        return {name: self.columns[name] for name in field_names if name in self.columns}

    def get_service_column_mapping(self, service_type: str, operation: str) -> Dict[str, str]:
        """Columns ``operation`` may write on a row of ``service_type``.

        The COMMON group plus the operation's group (per service when the
        group is split by service).  ``UPDATE`` covers every column except
        the fields of the other service types.  The key column is never
        included.
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown sheet operation: {operation}")
        if operation == "UPDATE":
            foreign = set(foreign_service_fields(service_type))
            group = [name for name in self.columns if name not in foreign]
        else:
            group = self.groups.get(operation, [])
            if isinstance(group, dict):
                group = group.get(service_type, [])
        mapping = self.common_mapping()
        mapping.update(self.get_column_mapping(group))
        mapping.pop(self.ordered_columns()[0][0], None)
        return mapping

    def common_mapping(self) -> Dict[str, str]:
        return self.get_column_mapping(self.groups.get("COMMON", []))

    def validate_fields(self, field_names: Iterable[str]) -> Tuple[bool, List[str]]:
        """Report fields that have no column, i.e. would be dropped on write."""
        missing = [name for name in field_names if name not in self.columns]
        return not missing, missing

    def build_row(self, values: Dict[str, Any]) -> List[Any]:
        """Lay ``values`` out as a full row; absent fields become blank cells."""
        row: List[Any] = [""] * self.row_length()
        for name, column in self.columns.items():
            value = values.get(name)
            if value is not None:
                row[column_index(column)] = value
        return row

    def check_header(self, headers: Sequence[str]) -> List[str]:
        """Describe header cells that disagree with this layout."""
        problems = []
        for name, column in self.columns.items():
            index = column_index(column)
            actual = headers[index] if index < len(headers) else ""
            if actual != name:
                problems.append(f"{column}: expected '{name}', found '{actual}'")
        return problems


# Layout used before the column map was centralised.  Onsen demographics
# were only two totals and a few since-dropped fields lived at the end.
_RENTALS_V1 = {
    "rentalID": "A",
    "status": "B",
    "submittedAt": "C",
    "lastUpdated": "D",
    "customerName": "E",
    "customerContact": "F",
    "documentType": "G",
    "serviceType": "H",
    "rentalPlan": "I",
    "totalPrice": "J",
    "expectedReturn": "K",
    "agreement": "L",
    "checkInStaff": "M",
    "checkedInAt": "N",
    "photoFileID": "O",
    "verified": "P",
    "storageStaff": "Q",
    "storedAt": "R",
    "returnedAt": "S",
    "returnStaff": "T",
    "goodCondition": "U",
    "returnNotes": "V",
    "isLate": "W",
    "minutesLate": "X",
    "troubleNotes": "Y",
    "troubleResolved": "Z",
    "damageReported": "AA",
    "repairRequired": "AB",
    "replacementRequired": "AC",
    "bikeCount": "AD",
    "bikeNumber": "AE",
    "onsenKeyNumber": "AF",
    "luggageCount": "AG",
    "luggageTagNumber": "AH",
    "companion": "AI",
    "totalAdultCount": "AJ",
    "totalChildCount": "AK",
    "faceTowelCount": "AL",
    "bathTowelCount": "AM",
    "discountApplied": "AN",
    "partnerHotel": "AO",
    "createdBy": "AP",
    "comeFrom": "AQ",
    "unavailableBaths": "AR",
}

_RENTALS_V2 = {
    # Basic rental information
    "rentalID": "A",
    "status": "B",
    "submittedAt": "C",
    "lastUpdated": "D",
    "customerName": "E",
    "customerContact": "F",
    "documentType": "G",
    "comeFrom": "H",
    "serviceType": "I",
    "rentalPlan": "J",
    "totalPrice": "K",
    "expectedReturn": "L",
    # Agreement and check-in
    "agreement": "M",
    "checkInStaff": "N",
    "checkedInAt": "O",
    "photoFileID": "P",
    "verified": "Q",
    # Storage and return
    "storedAt": "R",
    "returnedAt": "S",
    "returnStaff": "T",
    "goodCondition": "U",
    "returnNotes": "V",
    "isLate": "W",
    "minutesLate": "X",
    # Trouble, damage and repair
    "troubleNotes": "Y",
    "troubleResolved": "Z",
    "damageReported": "AA",
    "repairRequired": "AB",
    "replacementRequired": "AC",
    # Service specific counts and assignments
    "bikeCount": "AD",
    "bikeNumber": "AE",
    "onsenKeyNumber": "AF",
    "luggageCount": "AG",
    "luggageTagNumber": "AH",
    # Onsen demographics
    "maleCount": "AI",
    "femaleCount": "AJ",
    "totalAdultCount": "AK",
    "boyCount": "AL",
    "girlCount": "AM",
    "totalChildCount": "AN",
    "kidsCount": "AO",
    # Extras
    "faceTowelCount": "AP",
    "bathTowelCount": "AQ",
    "partnerHotel": "AR",
    "createdBy": "AS",
}

_RENTALS_V3 = dict(_RENTALS_V2, storageLocation="AT", storageNotes="AU")

RENTAL_GROUPS: Dict[str, Any] = {
    "COMMON": [
        "rentalID",
        "status",
        "submittedAt",
        "lastUpdated",
        "customerName",
        "customerContact",
        "serviceType",
        "totalPrice",
        "createdBy",
    ],
    "CHECKIN": {
        "Bike": [
            "checkInStaff",
            "checkedInAt",
            "photoFileID",
            "verified",
            "documentType",
            "agreement",
            "rentalPlan",
            "expectedReturn",
            "bikeCount",
            "bikeNumber",
        ],
        "Onsen": [
            "checkInStaff",
            "checkedInAt",
            "photoFileID",
            "verified",
            "documentType",
            "agreement",
            "comeFrom",
            "onsenKeyNumber",
            "maleCount",
            "femaleCount",
            "totalAdultCount",
            "boyCount",
            "girlCount",
            "totalChildCount",
            "kidsCount",
            "faceTowelCount",
            "bathTowelCount",
        ],
        "Luggage": [
            "checkInStaff",
            "checkedInAt",
            "photoFileID",
            "verified",
            "expectedReturn",
            "luggageCount",
            "luggageTagNumber",
            "partnerHotel",
        ],
    },
    "RETURN": {
        "Bike": [
            "returnStaff",
            "returnedAt",
            "goodCondition",
            "returnNotes",
            "isLate",
            "minutesLate",
            "damageReported",
            "repairRequired",
            "replacementRequired",
        ],
        "Onsen": [
            "returnStaff",
            "returnedAt",
            "goodCondition",
            "returnNotes",
            "isLate",
            "minutesLate",
            "damageReported",
            "repairRequired",
            "replacementRequired",
        ],
        "Luggage": ["returnStaff", "returnedAt", "returnNotes", "isLate", "minutesLate"],
    },
    "TROUBLE": [
        "troubleNotes",
        "troubleResolved",
        "damageReported",
        "repairRequired",
        "replacementRequired",
    ],
    "STORAGE": ["storedAt", "storageLocation", "storageNotes"],
}

# Fields that only make sense for one service type; they stay blank on
# rows of the other services.
SERVICE_FIELDS: Dict[str, List[str]] = {
    "Bike": ["bikeCount", "bikeNumber", "rentalPlan"],
    "Onsen": [
        "onsenKeyNumber",
        "maleCount",
        "femaleCount",
        "totalAdultCount",
        "boyCount",
        "girlCount",
        "totalChildCount",
        "kidsCount",
        "faceTowelCount",
        "bathTowelCount",
        "comeFrom",
    ],
    "Luggage": ["luggageCount", "luggageTagNumber", "partnerHotel", "storageLocation", "storageNotes"],
}

RENTAL_SCHEMAS: Dict[int, SheetSchema] = {
    1: SheetSchema("Rentals", 1, _RENTALS_V1, RENTAL_GROUPS),
    2: SheetSchema("Rentals", 2, _RENTALS_V2, RENTAL_GROUPS),
    3: SheetSchema("Rentals", 3, _RENTALS_V3, RENTAL_GROUPS),
}
LATEST_RENTAL_SCHEMA_VERSION = max(RENTAL_SCHEMAS)

STAFF_COLUMNS = {"id": "A", "name": "B", "lastUpdated": "C", "order": "D"}


def get_rental_schema(version: int = LATEST_RENTAL_SCHEMA_VERSION, sheet_name: str = "Rentals") -> SheetSchema:
    """Return the Rentals layout for ``version`` bound to ``sheet_name``."""
    try:
        schema = RENTAL_SCHEMAS[version]
    except KeyError:
        raise ValueError(
            f"Unknown sheet schema version {version}; known versions: {sorted(RENTAL_SCHEMAS)}"
        ) from None
    if sheet_name != schema.name:
        schema = SheetSchema(sheet_name, schema.version, schema.columns, schema.groups)
    return schema


def get_staff_schema(sheet_name: str = "Staff") -> SheetSchema:
    return SheetSchema(sheet_name, 1, STAFF_COLUMNS)


def foreign_service_fields(service_type: str) -> List[str]:
    """Service specific fields that do not belong to ``service_type``."""
    return [
        name
        for other, names in SERVICE_FIELDS.items()
        if other != service_type
        for name in names
    ]
