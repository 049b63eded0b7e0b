#!/usr/bin/env python3
"""
Report Exporter
Writes reconciliation results to an Excel workbook.

Sales report sheets: Summary, Discrepancies, By Unit (when any product has
unit variants) and Raw Consumption (when raw rows exist).
Kitchen report sheets: Summary and Discrepancies; the kitchen report can be
read back by KitchenReconciler.

The Discrepancy column is an Excel formula over the other columns, so edits
to the counts recalculate in the spreadsheet. Non-zero discrepancies are
highlighted red.
"""

import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill

from models import KitchenStockCheckResult, RawConsumptionResult, ReconciledRow, SalesReconcileResult

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color='366092', end_color='366092', fill_type='solid')
HEADER_FONT = Font(bold=True, color='FFFFFF')
DISCREPANCY_FILL = PatternFill(start_color='FFCCCC', end_color='FFCCCC', fill_type='solid')
DISCREPANCY_FONT = Font(color='CC0000')

SALES_COLUMNS = [
    'Product Name', 'Unit', 'Sold', 'Opening Stock', 'Received', 'Wastage',
    'Closing Stock', 'Expected Closing', 'Discrepancy', 'Notes',
]
SALES_FORMULA = '=D{n}+E{n}-C{n}-G{n}-F{n}'
SALES_FORMULA_TEXT = 'Discrepancy = Opening + Received - Sales - Closing - Wastage'

KITCHEN_COLUMNS = [
    'Product Name', 'Unit', 'Opening Stock', 'Received in Stock Check', 'Kitchen Production',
    'Discrepancy (Kitchen - Opening - Received)', 'Notes',
]
KITCHEN_FORMULA = '=E{n}-C{n}-D{n}'
KITCHEN_FORMULA_TEXT = 'Discrepancy = Kitchen Production - Opening Stock - Received in Stock Check'

RAW_COLUMNS = [
    'Raw Material', 'Unit', 'Opening Stock', 'Received in Stock Check', 'Consumed',
    'Discrepancy (Consumed - Opening - Received)', 'Counted Stock', 'Expected Closing',
]


def _timestamp() -> str:
    return datetime.now().strftime('%d/%m/%Y %H:%M')


def _summary_frame(fields: List[tuple]) -> pd.DataFrame:
    return pd.DataFrame([{'Field': f, 'Value': v} for f, v in fields], columns=['Field', 'Value'])


def sales_rows_frame(rows: List[ReconciledRow]) -> pd.DataFrame:
    """Discrepancies sheet rows; resolved rows get the discrepancy formula"""
    records = []
    for idx, row in enumerate(rows):
        n = idx + 2
        records.append({
            'Product Name': row.name,
            'Unit': row.unit,
            'Sold': row.sold,
            'Opening Stock': row.opening,
            'Received': row.received,
            'Wastage': row.wastage,
            'Closing Stock': row.closing,
            'Expected Closing': row.expected_closing,
            'Discrepancy': SALES_FORMULA.format(n=n) if row.resolved else None,
            'Notes': row.notes or '',
        })
    return pd.DataFrame(records, columns=SALES_COLUMNS)


def split_units_frame(rows: List[ReconciledRow]):
    """By Unit sheet rows and the discrepancy value behind each row"""
    records = []
    values = []
    for row in rows:
        if not row.split_units:
            continue
        for split in row.split_units:
            records.append([
                row.name, split.unit, row.sold if split.unit == row.unit else 0,
                split.opening, split.received, split.wastage, split.closing, split.expected_closing,
            ])
            values.append(split.discrepancy)
        records.append([
            f"{row.name} (Combined Total)", row.unit, row.sold,
            row.opening, row.received, row.wastage, row.closing, row.expected_closing,
        ])
        values.append(row.discrepancy)

    for idx, record in enumerate(records):
        record.append(SALES_FORMULA.format(n=idx + 2))
    return pd.DataFrame(records, columns=SALES_COLUMNS[:-1]), values


def raw_consumption_frame(raw: RawConsumptionResult) -> pd.DataFrame:
    return pd.DataFrame([{
        'Raw Material': r.raw_name,
        'Unit': r.raw_unit,
        'Opening Stock': r.opening_stock,
        'Received in Stock Check': r.received_stock,
        'Consumed': r.consumed,
        'Discrepancy (Consumed - Opening - Received)': r.discrepancy,
        'Counted Stock': r.total_stock,
        'Expected Closing': r.expected_closing,
    } for r in raw.rows], columns=RAW_COLUMNS)


def kitchen_rows_frame(result: KitchenStockCheckResult) -> pd.DataFrame:
    return pd.DataFrame([{
        'Product Name': d.product_name,
        'Unit': d.unit,
        'Opening Stock': d.opening_stock,
        'Received in Stock Check': d.received_in_stock_check,
        'Kitchen Production': d.kitchen_production,
        'Discrepancy (Kitchen - Opening - Received)': KITCHEN_FORMULA.format(n=idx + 2),
        'Notes': d.notes or '',
    } for idx, d in enumerate(result.discrepancies)], columns=KITCHEN_COLUMNS)


def _format_sheet(worksheet, df: pd.DataFrame) -> None:
    """Header styling, frozen header row and column widths"""
    for cell in worksheet[1]:
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)

    worksheet.freeze_panes = 'A2'

    # Auto-adjust column widths
    for idx, col in enumerate(df.columns):
        lengths = df[col].map(lambda v: 0 if pd.isna(v) else len(str(v))) if len(df) else pd.Series([0])
        max_length = max(lengths.max(), len(str(col)))
        # Cap at 50 characters for readability
        worksheet.column_dimensions[chr(65 + idx)].width = min(max_length + 2, 50)


def _highlight(worksheet, column: int, values: List[Optional[float]]) -> int:
    """Highlight non-zero discrepancies; returns the number highlighted"""
    highlighted = 0
    for idx, value in enumerate(values):
        if value is None or value == 0:
            continue
        cell = worksheet.cell(row=idx + 2, column=column)
        cell.fill = DISCREPANCY_FILL
        cell.font = DISCREPANCY_FONT
        highlighted += 1
    return highlighted


def _write_sheet(writer, name: str, df: pd.DataFrame):
    df.to_excel(writer, sheet_name=name, index=False)
    worksheet = writer.sheets[name]
    _format_sheet(worksheet, df)
    return worksheet


def _finish(buffer: io.BytesIO, output_path: Optional[Union[str, Path]]) -> bytes:
    data = buffer.getvalue()
    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(data)
        logger.info(f"Report written to {output_path}")
    return data


def export_sales_report(result: SalesReconcileResult, raw: Optional[RawConsumptionResult] = None,
                        output_path: Optional[Union[str, Path]] = None) -> bytes:
    """
    Export a sales reconciliation to Excel

    Args:
        result: Sales reconciliation result
        raw: Optional raw-material consumption for the same sales
        output_path: Also write the workbook here when given

    Returns:
        XLSX file content
    """
    summary = _summary_frame([
        ('Sales Date', result.sheet_date or ''),
        ('Stock Check Date Used', result.stock_check_date or ''),
        ('Outlet', result.outlet_from_sheet or ''),
        ('Date Matched', f"Yes - Reconciled: {_timestamp()}" if result.date_matched else 'No'),
        ('Formula', SALES_FORMULA_TEXT),
        ('Note', 'Opening, Received, Wastage and Closing are actual values from the stock check'),
        ('Pending Confirmations', len(result.pending_confirmations)),
        ('Errors', len(result.errors)),
        ('Generated At', datetime.now().strftime('%Y-%m-%d %H:%M:%S')),
    ])

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        _write_sheet(writer, 'Summary', summary)

        discrepancies = sales_rows_frame(result.rows)
        worksheet = _write_sheet(writer, 'Discrepancies', discrepancies)
        highlighted = _highlight(worksheet, 9, [r.discrepancy for r in result.rows])

        by_unit, by_unit_values = split_units_frame(result.rows)
        if len(by_unit):
            worksheet = _write_sheet(writer, 'By Unit', by_unit)
            _highlight(worksheet, 9, by_unit_values)

        if raw is not None and raw.rows:
            _write_sheet(writer, 'Raw Consumption', raw_consumption_frame(raw))

    logger.info(f"Exported {len(result.rows)} sales rows ({highlighted} with discrepancies)")
    return _finish(buffer, output_path)


def export_kitchen_report(result: KitchenStockCheckResult,
                          output_path: Optional[Union[str, Path]] = None) -> bytes:
    """
    Export a kitchen reconciliation to Excel

    Args:
        result: Kitchen reconciliation result
        output_path: Also write the workbook here when given

    Returns:
        XLSX file content
    """
    summary = _summary_frame([
        ('Production Date', result.production_date or ''),
        ('Stock Check Date', result.stock_check_date or ''),
        ('Outlet', result.outlet_name or ''),
        ('Matched', f"Yes - Reconciled: {_timestamp()}" if result.matched else 'No'),
        ('Total Discrepancies', len(result.discrepancies)),
        ('Pending Confirmations', len(result.pending_confirmations)),
        ('Formula', KITCHEN_FORMULA_TEXT),
        ('Generated At', datetime.now().strftime('%Y-%m-%d %H:%M:%S')),
    ])

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        _write_sheet(writer, 'Summary', summary)
        worksheet = _write_sheet(writer, 'Discrepancies', kitchen_rows_frame(result))
        highlighted = _highlight(worksheet, 6, [d.discrepancy for d in result.discrepancies])

    logger.info(f"Exported {len(result.discrepancies)} kitchen rows ({highlighted} with discrepancies)")
    return _finish(buffer, output_path)


def result_summary(result: Any) -> Dict[str, Any]:
    """Counts printed by the CLI after a run"""
    if isinstance(result, SalesReconcileResult):
        return {
            'rows': len(result.rows),
            'resolved': sum(1 for r in result.rows if r.resolved),
            'with_discrepancy': sum(1 for r in result.rows if r.discrepancy),
            'pending_confirmations': len(result.pending_confirmations),
            'errors': len(result.errors),
        }
    return {
        'rows': len(result.discrepancies),
        'with_discrepancy': sum(1 for d in result.discrepancies if d.discrepancy),
        'pending_confirmations': len(result.pending_confirmations),
        'errors': len(result.errors),
    }
