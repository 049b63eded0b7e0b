#!/usr/bin/env python3
"""
Workbook Region Locator
Finds metadata (outlet, date) and the product table inside exports whose
exact layout is not guaranteed.

Each known export format is a named strategy with a short detection probe:

Metadata:
- FixedCellMetadata: values at fixed addresses (J5/H9 on sales reports,
  D5 and a "Date From DD/MM/YYYY" label in B7 on kitchen sheets)
- SummarySheetMetadata: Field/Value rows on a "Summary" sheet

Tables:
- FixedColumnTable: fixed column letters from a fixed first row (sales report)
- HeaderScanTable: header row found by keyword scan in the first 30 rows
- OutletColumnTable: legacy kitchen sheets with one column per outlet

Data rows end after 10 consecutive fully-empty rows rather than at the
sheet's last row, since trailing formatting and stray cells are common.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import pandas as pd
from openpyxl.utils import column_index_from_string, get_column_letter
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from .date_normalizer import extract_labelled_date, normalize_date
from .workbook_reader import sheet_rows, value_text

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONSECUTIVE_EMPTY = 10


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    return isinstance(value, str) and not value.strip()


def _header_text(value: Any) -> str:
    return '' if _blank(value) else str(value).lower().strip()


@dataclass
class SheetMetadata:
    outlet: Optional[str] = None
    date: Optional[str] = None         # YYYY-MM-DD
    date_raw: Optional[str] = None     # Cell text as found, for error messages
    sources: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return bool(self.outlet and self.date)


@dataclass
class TableRow:
    row_index: int                     # 1-based sheet row number
    values: Dict[str, Any]


def iter_data_rows(rows: Iterable[Tuple[int, Dict[str, Any]]],
                   max_consecutive_empty: int = DEFAULT_MAX_CONSECUTIVE_EMPTY) -> Iterator[TableRow]:
    """
    Yield non-empty rows until max_consecutive_empty fully-empty rows are seen.

    Args:
        rows: (row_index, {field: value}) pairs in sheet order
        max_consecutive_empty: End-of-data marker
    """
    empty_run = 0
    for row_index, values in rows:
        if all(_blank(v) for v in values.values()):
            empty_run += 1
            if empty_run >= max_consecutive_empty:
                logger.debug(f"End of data after {empty_run} empty rows (row {row_index})")
                return
            continue
        empty_run = 0
        yield TableRow(row_index=row_index, values=values)


# ---------------------------------------------------------------------------
# Metadata strategies
# ---------------------------------------------------------------------------

class FixedCellMetadata:
    """Outlet and date at fixed cell addresses"""

    name = 'fixed_cell'

    def __init__(self, outlet_cell: str, date_cell: str, date_label: Optional[str] = None,
                 all_sheets: bool = False, sheet_index: int = 0):
        self.outlet_cell = outlet_cell
        self.date_cell = date_cell
        self.date_label = date_label
        self.all_sheets = all_sheets
        self.sheet_index = sheet_index

    def _sheets(self, wb: Workbook) -> List[Worksheet]:
        if self.all_sheets:
            return list(wb.worksheets)
        if self.sheet_index < len(wb.worksheets):
            return [wb.worksheets[self.sheet_index]]
        return []

    def detect(self, wb: Workbook) -> bool:
        return any(
            not _blank(ws[self.outlet_cell].value) or not _blank(ws[self.date_cell].value)
            for ws in self._sheets(wb)
        )

    def locate(self, wb: Workbook, metadata: Optional[SheetMetadata] = None) -> SheetMetadata:
        metadata = metadata or SheetMetadata()
        for ws in self._sheets(wb):
            if not metadata.date:
                raw_value = ws[self.date_cell].value
                raw_text = value_text(raw_value)
                if raw_text and not metadata.date_raw:
                    metadata.date_raw = raw_text
                if self.date_label:
                    parsed = extract_labelled_date(raw_text, self.date_label)
                else:
                    parsed = normalize_date(raw_value)
                if parsed:
                    metadata.date = parsed
                    metadata.date_raw = raw_text
                    metadata.sources.append(f"{self.name}:{ws.title}!{self.date_cell}")

            if not metadata.outlet:
                outlet = value_text(ws[self.outlet_cell].value)
                if outlet:
                    metadata.outlet = outlet
                    metadata.sources.append(f"{self.name}:{ws.title}!{self.outlet_cell}")

            if metadata.complete:
                break
        return metadata


class SummarySheetMetadata:
    """Field/Value rows; sheets named "Summary" are probed first"""

    name = 'summary_sheet'

    def __init__(self, date_fields: Sequence[str] = ('production date', 'stock check date'),
                 outlet_field: str = 'outlet', summary_sheet_name: str = 'summary'):
        self.date_fields = [f.lower() for f in date_fields]
        self.outlet_field = outlet_field.lower()
        self.summary_sheet_name = summary_sheet_name.lower()

    def detect(self, wb: Workbook) -> bool:
        return any(ws.title.lower().strip() == self.summary_sheet_name for ws in wb.worksheets)

    def _ordered_sheets(self, wb: Workbook) -> List[Worksheet]:
        summary = [ws for ws in wb.worksheets if ws.title.lower().strip() == self.summary_sheet_name]
        others = [ws for ws in wb.worksheets if ws not in summary]
        return summary + others

    def locate(self, wb: Workbook, metadata: Optional[SheetMetadata] = None) -> SheetMetadata:
        metadata = metadata or SheetMetadata()
        for ws in self._ordered_sheets(wb):
            for row in ws.iter_rows(min_col=1, max_col=2, values_only=True):
                if len(row) < 2:
                    continue
                field_name = _header_text(row[0])
                value = row[1]
                if not field_name or _blank(value):
                    continue

                if not metadata.date and any(f in field_name for f in self.date_fields):
                    parsed = normalize_date(value)
                    if parsed:
                        metadata.date = parsed
                        metadata.date_raw = value_text(value)
                        metadata.sources.append(f"{self.name}:{ws.title}")

                if not metadata.outlet and field_name == self.outlet_field:
                    metadata.outlet = value_text(value)
                    metadata.sources.append(f"{self.name}:{ws.title}")

            if metadata.complete:
                break
        return metadata


def locate_metadata(wb: Workbook, strategies: Sequence[Any]) -> SheetMetadata:
    """Run metadata strategies in order, each filling only what is still missing"""
    metadata = SheetMetadata()
    for strategy in strategies:
        if metadata.complete:
            break
        metadata = strategy.locate(wb, metadata)
    logger.debug(f"Workbook metadata: outlet={metadata.outlet!r} date={metadata.date} from {metadata.sources}")
    return metadata


# ---------------------------------------------------------------------------
# Table strategies
# ---------------------------------------------------------------------------

class FixedColumnTable:
    """Rows from first_row down, fields read from fixed column letters"""

    name = 'fixed_columns'

    def __init__(self, first_row: int, columns: Dict[str, str], last_row: Optional[int] = None,
                 min_last_row: int = 0, max_consecutive_empty: int = DEFAULT_MAX_CONSECUTIVE_EMPTY):
        self.first_row = first_row
        self.columns = {key: column_index_from_string(col) for key, col in columns.items()}
        self.last_row = last_row
        self.min_last_row = min_last_row
        self.max_consecutive_empty = max_consecutive_empty

    def read(self, ws: Worksheet) -> List[TableRow]:
        last_row = self.last_row or max(ws.max_row or 0, self.min_last_row)
        max_col = max(self.columns.values())

        def rows():
            for offset, row in enumerate(ws.iter_rows(min_row=self.first_row, max_row=last_row,
                                                      max_col=max_col, values_only=True)):
                yield self.first_row + offset, {
                    key: (row[idx - 1] if idx - 1 < len(row) else None)
                    for key, idx in self.columns.items()
                }

        return list(iter_data_rows(rows(), self.max_consecutive_empty))


@dataclass
class HeaderMatch:
    header_index: int                  # 0-based index into the sheet rows
    columns: Dict[str, int]            # field -> 0-based column index


class HeaderScanTable:
    """
    Table with a header row containing product, unit and quantity keywords.
    The quantity column is found by header text, falling back to a fixed index.
    """

    name = 'header_scan'

    def __init__(self, product_tokens: Sequence[str] = ('product',), unit_tokens: Sequence[str] = ('unit',),
                 quantity_tokens: Sequence[str] = ('kitchen', 'production'),
                 optional_columns: Optional[Dict[str, Sequence[str]]] = None,
                 max_scan: int = 30, fallback_quantity_index: Optional[int] = 4,
                 max_consecutive_empty: int = DEFAULT_MAX_CONSECUTIVE_EMPTY):
        self.product_tokens = [t.lower() for t in product_tokens]
        self.unit_tokens = [t.lower() for t in unit_tokens]
        self.quantity_tokens = [t.lower() for t in quantity_tokens]
        self.optional_columns = optional_columns if optional_columns is not None else {
            'opening': ('opening',),
            'received': ('received',),
        }
        self.max_scan = max_scan
        self.fallback_quantity_index = fallback_quantity_index
        self.max_consecutive_empty = max_consecutive_empty

    @staticmethod
    def _first(header: List[str], predicate) -> int:
        for idx, text in enumerate(header):
            if text and predicate(text):
                return idx
        return -1

    def _has(self, text: str, tokens: Sequence[str]) -> bool:
        return any(t in text for t in tokens)

    def find_header(self, frame: pd.DataFrame) -> Optional[HeaderMatch]:
        header_index = -1
        header: List[str] = []
        for r in range(min(self.max_scan, len(frame))):
            candidate = [_header_text(v) for v in frame.iloc[r].tolist()]
            if (any(self._has(h, self.product_tokens) for h in candidate)
                    and any(self._has(h, self.unit_tokens) for h in candidate)
                    and any(self._has(h, self.quantity_tokens) for h in candidate)):
                header_index, header = r, candidate
                break

        if header_index == -1:
            return None

        # "production" contains "product"; prefer a product column that is not the quantity column
        idx_product = self._first(header, lambda h: self._has(h, self.product_tokens)
                                  and not self._has(h, self.quantity_tokens))
        if idx_product == -1:
            idx_product = self._first(header, lambda h: self._has(h, self.product_tokens))
        idx_unit = self._first(header, lambda h: self._has(h, self.unit_tokens))

        idx_quantity = self._first(header, lambda h: all(t in h for t in self.quantity_tokens))
        for token in self.quantity_tokens:
            if idx_quantity != -1:
                break
            idx_quantity = self._first(header, lambda h, t=token: t in h and h != header[idx_product])
        if idx_quantity == -1 and self.fallback_quantity_index is not None and len(header) > self.fallback_quantity_index:
            idx_quantity = self.fallback_quantity_index

        if -1 in (idx_product, idx_unit, idx_quantity):
            return None

        columns = {'name': idx_product, 'unit': idx_unit, 'quantity': idx_quantity}
        for key, tokens in self.optional_columns.items():
            idx = self._first(header, lambda h, tokens=tokens: self._has(h, tokens))
            if idx != -1:
                columns[key] = idx
        return HeaderMatch(header_index=header_index, columns=columns)

    def detect(self, ws: Worksheet) -> bool:
        frame = pd.DataFrame(sheet_rows(ws, max_rows=self.max_scan), dtype=object)
        return self.find_header(frame) is not None

    def read(self, ws: Worksheet) -> Optional[List[TableRow]]:
        """Rows below the header, or None when no header row is found"""
        frame = pd.DataFrame(sheet_rows(ws), dtype=object)
        match = self.find_header(frame)
        if match is None:
            return None

        logger.debug(f"Header row {match.header_index + 1} on '{ws.title}': columns {match.columns}")

        def rows():
            for r in range(match.header_index + 1, len(frame)):
                values = frame.iloc[r].tolist()
                yield r + 1, {key: values[idx] if idx < len(values) else None
                              for key, idx in match.columns.items()}

        return list(iter_data_rows(rows(), self.max_consecutive_empty))


class OutletColumnTable:
    """Legacy kitchen layout: the column whose header cell equals the outlet name holds quantities"""

    name = 'outlet_column'

    def __init__(self, header_row: int = 9, max_columns: int = 50, name_column: str = 'C',
                 unit_column: str = 'E', first_row: int = 8, last_row: int = 500,
                 max_consecutive_empty: int = DEFAULT_MAX_CONSECUTIVE_EMPTY):
        self.header_row = header_row
        self.max_columns = max_columns
        self.name_column = name_column
        self.unit_column = unit_column
        self.first_row = first_row
        self.last_row = last_row
        self.max_consecutive_empty = max_consecutive_empty

    def find_column(self, ws: Worksheet, outlet_names: Iterable[Optional[str]]) -> Optional[str]:
        wanted = {n.strip().lower() for n in outlet_names if n}
        for col in range(1, self.max_columns + 1):
            text = value_text(ws.cell(row=self.header_row, column=col).value)
            if text and text.lower() in wanted:
                letter = get_column_letter(col)
                logger.debug(f"Outlet column found in {letter}{self.header_row}")
                return letter
        return None

    def detect(self, ws: Worksheet, outlet_names: Iterable[Optional[str]]) -> bool:
        return self.find_column(ws, outlet_names) is not None

    def read(self, ws: Worksheet, outlet_names: Iterable[Optional[str]]) -> Optional[List[TableRow]]:
        """Rows with name, unit and quantity, or None when the outlet column is missing"""
        column = self.find_column(ws, outlet_names)
        if column is None:
            return None
        table = FixedColumnTable(
            first_row=self.first_row,
            columns={'name': self.name_column, 'unit': self.unit_column, 'quantity': column},
            last_row=self.last_row,
            max_consecutive_empty=self.max_consecutive_empty,
        )
        return table.read(ws)
