"""Layout of a newly provisioned user spreadsheet."""

from typing import Any

SPREADSHEET_TITLE = "Health Readings"

PROFILE_SHEET = "User Profiles"
BLOOD_SUGAR_SHEET = "Blood Sugar"
BLOOD_PRESSURE_SHEET = "Blood Pressure"

CREDENTIAL_CELL = f"{PROFILE_SHEET}!A1"
BLOOD_SUGAR_RANGE = f"{BLOOD_SUGAR_SHEET}!A:D"
BLOOD_PRESSURE_RANGE = f"{BLOOD_PRESSURE_SHEET}!A:E"

BLOOD_SUGAR_HEADERS = ["Date", "Time", "Type", "Value (mg/dL)"]
BLOOD_PRESSURE_HEADERS = ["Date", "Time", "Systolic", "Diastolic", "Heart Rate"]


def _header_row(values: list[str]) -> dict[str, Any]:
    return {"values": [{"userEnteredValue": {"stringValue": v}} for v in values]}


def _sheet(title: str, index: int, headers: list[str] | None = None) -> dict[str, Any]:
    sheet: dict[str, Any] = {"properties": {"title": title, "index": index}}
    if headers:
        sheet["data"] = [{"startRow": 0, "startColumn": 0, "rowData": [_header_row(headers)]}]
    return sheet


def new_spreadsheet_body(title: str = SPREADSHEET_TITLE) -> dict[str, Any]:
    """Request body for ``spreadsheets.create``."""
    return {
        "properties": {"title": title},
        "sheets": [
            _sheet(BLOOD_SUGAR_SHEET, 0, BLOOD_SUGAR_HEADERS),
            _sheet(BLOOD_PRESSURE_SHEET, 1, BLOOD_PRESSURE_HEADERS),
            # Credential cell lives here; keep the sheet out of the way
            {"properties": {"title": PROFILE_SHEET, "index": 2, "hidden": True}},
        ],
    }
