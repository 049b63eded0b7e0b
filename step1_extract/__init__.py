"""
Step 1: Extract Data from Workbooks
Reads sales reports, kitchen production sheets and transfer request exports.
Uses rule-driven layouts with named region strategies for metadata and tables.
"""

from .rule_loader import RuleLoader
from .date_normalizer import normalize_date, extract_labelled_date
from .workbook_reader import WorkbookReadError, load_workbook_source, cell_text, cell_number, clean_number, sheet_rows
from .region_locator import (
    SheetMetadata, TableRow, FixedCellMetadata, SummarySheetMetadata, FixedColumnTable,
    HeaderScanTable, OutletColumnTable, iter_data_rows, locate_metadata,
)
from .transfer_parser import parse_transfer_received
from .logger import setup_logger

__all__ = [
    'RuleLoader',
    'normalize_date',
    'extract_labelled_date',
    'WorkbookReadError',
    'load_workbook_source',
    'cell_text',
    'cell_number',
    'clean_number',
    'sheet_rows',
    'SheetMetadata',
    'TableRow',
    'FixedCellMetadata',
    'SummarySheetMetadata',
    'FixedColumnTable',
    'HeaderScanTable',
    'OutletColumnTable',
    'iter_data_rows',
    'locate_metadata',
    'parse_transfer_received',
    'setup_logger',
]
