#!/usr/bin/env python3
"""
Workbook Reader
Loads XLSX exports with openpyxl and reads cells as text or numbers.

Exports arrive as raw bytes, base64 text (from the mobile client), a path,
or an open binary file.
"""

import base64
import binascii
import io
import logging
import re
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, Optional, Union

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

logger = logging.getLogger(__name__)

WorkbookSource = Union[bytes, bytearray, str, Path, io.IOBase, Workbook]

_XLSX_MAGIC = b'PK'


class WorkbookReadError(ValueError):
    """The input could not be read as an XLSX workbook"""


def _decode_source(source: WorkbookSource) -> Union[io.BytesIO, Path, io.IOBase]:
    if isinstance(source, (bytes, bytearray)):
        return io.BytesIO(bytes(source))
    if isinstance(source, Path):
        return source
    if isinstance(source, str):
        if len(source) < 4096:
            path = Path(source)
            if path.suffix.lower() in ('.xlsx', '.xlsm'):
                return path
        try:
            raw = base64.b64decode(source, validate=True)
        except (binascii.Error, ValueError):
            raise WorkbookReadError("Input is neither an .xlsx path nor base64-encoded workbook data")
        return io.BytesIO(raw)
    return source


def load_workbook_source(source: WorkbookSource) -> Workbook:
    """
    Load a workbook from bytes, base64 text, a path or a binary file object.

    Args:
        source: Workbook input (an openpyxl Workbook is returned unchanged)

    Returns:
        openpyxl Workbook with cached formula values (data_only=True)

    Raises:
        WorkbookReadError: if the input is not a readable XLSX workbook
    """
    if isinstance(source, Workbook):
        return source

    handle = _decode_source(source)
    if isinstance(handle, io.BytesIO) and not handle.getvalue().startswith(_XLSX_MAGIC):
        raise WorkbookReadError("Input is not an XLSX workbook (missing zip signature)")

    try:
        return openpyxl.load_workbook(handle, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise WorkbookReadError(f"Failed to read workbook: {e}") from e


def cell_text(ws: Worksheet, address: str) -> Optional[str]:
    """Cell value as stripped text; None for empty cells. Dates render as YYYY-MM-DD."""
    return value_text(ws[address].value)


def value_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime('%Y-%m-%d')
    if isinstance(value, date):
        return value.strftime('%Y-%m-%d')
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).replace("\u00A0", " ").strip()
    return text or None


def clean_number(x: Any) -> Optional[float]:
    """Parse 1,234.56 or (12.34) -> -12.34. Return float or None."""
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, (int, float)):
        if x != x:  # NaN
            return None
        return float(x)
    s = str(x).strip().replace(",", "").replace("\u00A0", " ").strip()
    if not s:
        return None
    if re.fullmatch(r"\(.*\)", s):
        s = "-" + s[1:-1]
    try:
        return float(s)
    except ValueError:
        return None


def cell_number(ws: Worksheet, address: str) -> Optional[float]:
    return clean_number(ws[address].value)


def sheet_rows(ws: Worksheet, max_rows: Optional[int] = None) -> List[List[Any]]:
    """All rows of a sheet as lists of raw values (trailing empty cells kept)"""
    rows = []
    for row in ws.iter_rows(values_only=True, max_row=max_rows):
        rows.append(list(row))
    return rows
