# DataSync_app/sheets.py
"""Google Sheets snapshot fetcher.

``fetch_snapshot`` never raises: every failure is turned into a one-row
table (``headers=["Error"]`` etc.) so callers can render and broadcast it
like any other data.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Optional

import httpx

from DataSync_app.config import settings
from DataSync_app.db.schemas import SheetData

log = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
SHEET_ID_RE = re.compile(r"[-\w]{25,}")

GENERIC_ERROR = SheetData(
    headers=["Error"],
    rows=[["Failed to load data. Please check the Google Sheet URL and try again."]],
)
NOT_FOUND = SheetData(
    headers=["Data not found"],
    rows=[["Please check your Google Sheet URL and permissions"]],
)
ACCESS_DENIED = SheetData(
    headers=["Access denied"],
    rows=[["Google Sheet requires public access or sharing with service account"]],
)


class SheetFetchError(Exception):
    """Raised internally; converted to an in-band error table by fetch_snapshot."""


def extract_sheet_id(sheet_url: str) -> Optional[str]:
    m = SHEET_ID_RE.search(sheet_url or "")
    return m.group(0) if m else None


def _cell(value: Any) -> str:
    # UNFORMATTED_VALUE hands back JSON numbers/bools; render them the way the sheet shows them
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_values(values: list[list[Any]]) -> SheetData:
    """Turn the raw ``values`` grid into headers + string rows."""
    if not values:
        return SheetData(headers=[], rows=[])

    first = values[0] if isinstance(values[0], list) else []
    headers = [_cell(h) for h in first]

    if not headers:
        width = max((len(r) for r in values if isinstance(r, list)), default=0)
        headers = [f"Column {i + 1}" for i in range(width)]

    rows: list[list[str]] = []
    for row in values[1:]:
        if not isinstance(row, list):
            rows.append([""] * len(headers))
            continue
        width = max(len(headers), len(row))
        rows.append([_cell(row[i]) if i < len(row) else "" for i in range(width)])

    # keep one blank row so a header-only sheet still renders as a table
    if not rows and headers:
        rows.append([""] * len(headers))

    return SheetData(headers=headers, rows=rows)


async def _request_values(client: httpx.AsyncClient, spreadsheet_id: str) -> list[list[Any]]:
    api_key = settings.google_sheets_api_key
    if not api_key:
        raise SheetFetchError("Google Sheets API key is missing")

    resp = await client.get(
        f"{SHEETS_API}/{spreadsheet_id}/values/{settings.sheets_range}",
        params={
            "key": api_key,
            "valueRenderOption": "UNFORMATTED_VALUE",
            "dateTimeRenderOption": "FORMATTED_STRING",
        },
        headers={"Cache-Control": "no-cache"},
    )
    resp.raise_for_status()
    return resp.json().get("values") or []


async def fetch_snapshot(sheet_url: str, *, client: Optional[httpx.AsyncClient] = None) -> SheetData:
    """Fetch the current contents of the sheet behind ``sheet_url``."""
    try:
        spreadsheet_id = extract_sheet_id(sheet_url)
        if not spreadsheet_id:
            raise SheetFetchError("Invalid Google Sheet URL")

        try:
            if client is not None:
                values = await _request_values(client, spreadsheet_id)
            else:
                async with httpx.AsyncClient(timeout=settings.sheets_timeout_seconds) as c:
                    values = await _request_values(c, spreadsheet_id)
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 404:
                log.warning("[SHEETS] not found: %s", spreadsheet_id)
                return NOT_FOUND.model_copy(deep=True)
            if status_code == 403:
                log.warning("[SHEETS] access denied: %s", spreadsheet_id)
                return ACCESS_DENIED.model_copy(deep=True)
            raise

        data = normalize_values(values)
        log.info("[SHEETS] fetched %d rows from %s", len(data.rows), spreadsheet_id)
        return data

    except SheetFetchError as e:
        log.warning("[SHEETS] %s (url=%r)", e, sheet_url)
        return GENERIC_ERROR.model_copy(deep=True)
    except Exception:
        log.exception("[SHEETS] error fetching Google Sheet data")
        return GENERIC_ERROR.model_copy(deep=True)


async def get_sheet_fetcher():
    """FastAPI dependency; tests override it with a stub fetcher."""
    return fetch_snapshot
