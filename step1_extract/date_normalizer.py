#!/usr/bin/env python3
"""
Date Normalization Module
Normalizes spreadsheet date cells to YYYY-MM-DD.

Convention: slash/dash dates with a short leading field are DAY-MONTH-YEAR.
The point-of-sale exports write DD/MM/YYYY, so "10/11/2025" is 10 November
2025. There is no locale detection; if an export ever switches to
MM/DD/YYYY, dates will parse wrongly without warning.

Order of attempts:
1. D{1,2}[-/]D{1,2}[-/]D{2,4} -> day-month-year (2-digit years become 20xx);
   an impossible day or month gives None, never a month-day-year guess
2. YYYY[-/]M{1,2}[-/]D{1,2} -> year-month-day
3. dateutil parser (dayfirst) for anything else ("10 Nov 2025"); dates
   missing a day, month or year give None
"""

import re
import logging
from datetime import date, datetime
from typing import Any, Optional

from dateutil import parser as date_parser
from openpyxl.utils.datetime import from_excel

logger = logging.getLogger(__name__)

DAY_FIRST_PATTERN = re.compile(r'(?<!\d)(\d{1,2})[-/](\d{1,2})[-/](\d{2,4})(?!\d)')
YEAR_FIRST_PATTERN = re.compile(r'(?<!\d)(\d{4})[-/](\d{1,2})[-/](\d{1,2})(?!\d)')
PARSER_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def _format(year: int, month: int, day: int) -> Optional[str]:
    """Validate the calendar date and format it, or None"""
    try:
        return date(year, month, day).strftime('%Y-%m-%d')
    except ValueError:
        return None


def _normalize_day_first(text: str) -> Optional[str]:
    match = DAY_FIRST_PATTERN.search(text)
    if not match:
        return None
    day, month, year = match.groups()
    if len(year) == 2:
        year = f"20{year}"
    elif len(year) == 3:
        return None
    return _format(int(year), int(month), int(day))


def _normalize_year_first(text: str) -> Optional[str]:
    match = YEAR_FIRST_PATTERN.search(text)
    if not match:
        return None
    year, month, day = match.groups()
    return _format(int(year), int(month), int(day))


def _normalize_with_parser(text: str) -> Optional[str]:
    """Parse free-form dates; partial dates ("10", "Nov 2025") are rejected"""
    results = set()
    for default in PARSER_DEFAULTS:
        try:
            parsed = date_parser.parse(text, dayfirst=True, default=default)
        except (ValueError, OverflowError):
            return None
        results.add(parsed.strftime('%Y-%m-%d'))
    # A missing day, month or year was filled from the default
    if len(results) > 1:
        return None
    return results.pop()


def normalize_date(value: Any) -> Optional[str]:
    """
    Normalize a raw cell value to YYYY-MM-DD.

    Args:
        value: Cell value - string, datetime/date, or a spreadsheet serial number

    Returns:
        YYYY-MM-DD string, or None when the value is empty or unparseable
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.strftime('%Y-%m-%d')
    if isinstance(value, date):
        return value.strftime('%Y-%m-%d')

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Spreadsheet date serial that reached us without a date format
        try:
            converted = from_excel(value)
        except (ValueError, OverflowError, TypeError):
            return None
        return converted.strftime('%Y-%m-%d') if isinstance(converted, (datetime, date)) else None

    text = str(value).strip()
    if not text:
        return None

    if DAY_FIRST_PATTERN.search(text):
        # Never reinterpreted as month-day-year when the day is out of range
        result = _normalize_day_first(text)
        if result is None:
            logger.debug(f"Invalid day-month-year date: {text}")
        return result

    for attempt in (_normalize_year_first, _normalize_with_parser):
        result = attempt(text)
        if result:
            logger.debug(f"normalize_date: '{text}' -> {result} ({attempt.__name__})")
            return result

    logger.debug(f"Could not parse date string: {text}")
    return None


def extract_labelled_date(text: Any, label: str = 'Date From') -> Optional[str]:
    """
    Extract the date following a label inside a text cell.

    "Date From 10/11/2025 To 10/11/2025" -> "2025-11-10"
    """
    if text is None:
        return None
    pattern = re.compile(re.escape(label) + r'[:\s]*(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})', re.IGNORECASE)
    match = pattern.search(str(text))
    if not match:
        return None
    return normalize_date(match.group(1))
