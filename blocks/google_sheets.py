"""
google-sheets-crud — rows of one sheet through the Sheets v4 API.

Row addressing: ``rowIndex`` is a 0-based sheet row.  Its A1 row is
``rowIndex + 1`` and its grid index for dimension operations is
``rowIndex``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List

from blocks.google_api import build_service
from blocks.registry import BlockDefinition
from blocks.strategies import BlockInputs, Credentials, NativeStrategy
from config.settings import Settings
from utils.errors import ClientInputError

logger = logging.getLogger(__name__)

BLOCK_ID = "google-sheets-crud"
HEADER_ROWS = 1
FETCH_ROW_LIMIT = 1000

_plain_title_re = re.compile(r"^\w+$")


# ── A1 helpers ───────────────────────────────────────────────────────────


def quote_sheet_title(title: str) -> str:
    """Quote a sheet title for A1 notation unless it is a plain word."""
    if _plain_title_re.match(title):
        return title
    return "'" + title.replace("'", "''") + "'"


def column_letter(number: int) -> str:
    """1 → A, 26 → Z, 27 → AA."""
    letters = ""
    while number > 0:
        number, rem = divmod(number - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def row_range(sheet_title: str, row_index: int) -> str:
    """A1 anchor for the 0-based sheet row ``row_index``."""
    return f"{quote_sheet_title(sheet_title)}!A{row_index + HEADER_ROWS}"


def parse_row_index(inputs: BlockInputs) -> int:
    raw = inputs.require("rowIndex")
    try:
        row_index = int(raw)
    except (TypeError, ValueError):
        raise ClientInputError(f"rowIndex must be an integer, got {raw!r}", code="invalid-input")
    if row_index < 0:
        raise ClientInputError("rowIndex must not be negative", code="invalid-input")
    return row_index


def _spreadsheet_id(inputs: BlockInputs) -> str:
    spreadsheet_id = inputs.get("spreadsheetId") or inputs.config.get("spreadsheet_id")
    if not spreadsheet_id:
        raise ClientInputError("Missing required field: spreadsheetId", code="missing-fields")
    return spreadsheet_id


def _sheet_title(inputs: BlockInputs) -> str:
    return inputs.get("sheetName") or inputs.config.get("sheet_name") or "Sheet1"


async def _service(credentials: Credentials, inputs: BlockInputs) -> Any:
    return await build_service(
        "sheets", "v4", credentials, timeout=inputs.config.get("timeout", 30.0)
    )


# ── Operations ───────────────────────────────────────────────────────────


async def fetch_rows(credentials: Credentials, inputs: BlockInputs) -> Dict[str, Any]:
    spreadsheet_id = _spreadsheet_id(inputs)
    columns: List[str] = list(inputs.config.get("columns") or ["name", "email"])
    sheet_range = (
        f"{quote_sheet_title(_sheet_title(inputs))}"
        f"!A1:{column_letter(len(columns))}{FETCH_ROW_LIMIT}"
    )
    service = await _service(credentials, inputs)

    def _call() -> Dict[str, Any]:
        return (
            service.spreadsheets()
            .values()
            .get(spreadsheetId=spreadsheet_id, range=sheet_range)
            .execute()
        )

    response = await asyncio.to_thread(_call)
    rows = [
        row for row in response.get("values", [])
        if row and str(row[0]).strip() != ""
    ]
    records = [
        {
            "id": index,
            "fields": {col: row[i] if i < len(row) else "" for i, col in enumerate(columns)},
        }
        for index, row in enumerate(rows)
    ]
    return {"data": records}


async def append_row(credentials: Credentials, inputs: BlockInputs) -> Dict[str, Any]:
    spreadsheet_id = _spreadsheet_id(inputs)
    anchor = f"{quote_sheet_title(_sheet_title(inputs))}!A1"
    values = list(inputs.values)
    service = await _service(credentials, inputs)

    def _call() -> Dict[str, Any]:
        return (
            service.spreadsheets()
            .values()
            .append(
                spreadsheetId=spreadsheet_id,
                range=anchor,
                valueInputOption="RAW",
                body={"values": [values]},
            )
            .execute()
        )

    await asyncio.to_thread(_call)
    return {"status": "success"}


async def update_row(credentials: Credentials, inputs: BlockInputs) -> Dict[str, Any]:
    spreadsheet_id = _spreadsheet_id(inputs)
    target = row_range(_sheet_title(inputs), parse_row_index(inputs))
    values = list(inputs.values)
    service = await _service(credentials, inputs)

    def _call() -> Dict[str, Any]:
        return (
            service.spreadsheets()
            .values()
            .update(
                spreadsheetId=spreadsheet_id,
                range=target,
                valueInputOption="RAW",
                body={"values": [values]},
            )
            .execute()
        )

    await asyncio.to_thread(_call)
    logger.debug("Updated %s in spreadsheet %s", target, spreadsheet_id)
    return {"status": "updated"}


async def delete_row(credentials: Credentials, inputs: BlockInputs) -> Dict[str, Any]:
    spreadsheet_id = _spreadsheet_id(inputs)
    row_index = parse_row_index(inputs)
    start = row_index + HEADER_ROWS - 1
    try:
        sheet_id = int(inputs.get("sheetId", 0))
    except (TypeError, ValueError):
        raise ClientInputError("sheetId must be an integer", code="invalid-input")
    service = await _service(credentials, inputs)

    body = {
        "requests": [
            {
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": start,
                        "endIndex": start + 1,
                    }
                }
            }
        ]
    }

    def _call() -> Dict[str, Any]:
        return (
            service.spreadsheets()
            .batchUpdate(spreadsheetId=spreadsheet_id, body=body)
            .execute()
        )

    await asyncio.to_thread(_call)
    return {"status": "deleted"}


_ROUTING_INPUTS = ("spreadsheetId", "sheetName", "sheetId", "rowIndex")


def build_block(settings: Settings) -> BlockDefinition:
    return BlockDefinition(
        block_id=BLOCK_ID,
        requires_session=True,
        config={
            "spreadsheet_id": settings.default_spreadsheet_id,
            "sheet_name": settings.default_sheet_name,
            "columns": tuple(settings.sheets_fetch_columns),
            "timeout": settings.http_timeout_seconds,
        },
        operations={
            "fetch": NativeStrategy(execute=fetch_rows, method="GET", input_fields=_ROUTING_INPUTS),
            "create": NativeStrategy(execute=append_row, method="POST", input_fields=_ROUTING_INPUTS),
            "update": NativeStrategy(execute=update_row, method="PUT", input_fields=_ROUTING_INPUTS),
            "delete": NativeStrategy(execute=delete_row, method="DELETE", input_fields=_ROUTING_INPUTS),
        },
    )
