"""
Workbook and catalog fixtures shared by the tests.
Workbooks are built in memory with openpyxl and returned as XLSX bytes.
"""

import io
from typing import Iterable, Optional, Sequence

from openpyxl import Workbook

from models import Product, StockCheck, StockCount


def to_bytes(wb: Workbook) -> bytes:
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def sales_workbook(outlet: Optional[str] = 'Main Outlet', date='10/11/2025',
                   rows: Iterable[Sequence] = ()) -> bytes:
    """Sales report: outlet in J5, date in H9, rows (name, unit, sold) from row 10"""
    wb = Workbook()
    ws = wb.active
    ws.title = 'Sales'
    ws['A1'] = 'Daily Sales Report'
    if outlet is not None:
        ws['J5'] = outlet
    if date is not None:
        ws['H9'] = date
    for offset, (name, unit, sold) in enumerate(rows):
        r = 10 + offset
        ws[f'I{r}'] = name
        ws[f'R{r}'] = unit
        ws[f'AC{r}'] = sold
    return to_bytes(wb)


def legacy_kitchen_workbook(outlet='Main Outlet', date_text='Date From 10/11/2025 To 10/11/2025',
                            outlets=('Other Outlet', 'Main Outlet'), rows: Iterable[Sequence] = ()) -> bytes:
    """Legacy kitchen sheet: date label in B7, outlet in D5, outlet columns in row 9 from F"""
    wb = Workbook()
    ws = wb.active
    ws.title = 'Production'
    ws['B7'] = date_text
    if outlet is not None:
        ws['D5'] = outlet
    ws['C9'] = 'Product'
    ws['E9'] = 'Unit'
    for idx, name in enumerate(outlets):
        ws.cell(row=9, column=6 + idx, value=name)
    # rows: (name, unit, {outlet: quantity})
    for offset, (name, unit, quantities) in enumerate(rows):
        r = 10 + offset
        ws[f'C{r}'] = name
        ws[f'E{r}'] = unit
        for idx, outlet_name in enumerate(outlets):
            if outlet_name in quantities:
                ws.cell(row=r, column=6 + idx, value=quantities[outlet_name])
    return to_bytes(wb)


def summary_kitchen_workbook(outlet='Main Outlet', production_date='10/11/2025',
                             rows: Iterable[Sequence] = (), header_offset: int = 0) -> bytes:
    """Summary sheet (Field/Value) plus a Discrepancies sheet with a header row"""
    wb = Workbook()
    summary = wb.active
    summary.title = 'Summary'
    summary.append(['Field', 'Value'])
    summary.append(['Production Date', production_date])
    summary.append(['Outlet', outlet])

    ws = wb.create_sheet('Discrepancies')
    for _ in range(header_offset):
        ws.append([None])
    ws.append(['Product Name', 'Unit', 'Opening Stock', 'Received in Stock Check', 'Kitchen Production'])
    # rows: (name, unit, opening, received, kitchen)
    for row in rows:
        ws.append(list(row))
    return to_bytes(wb)


def transfer_workbook(rows: Iterable[Sequence], headers=('Date', 'Product', 'Unit', 'Quantity', 'From Outlet', 'To Outlet')) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = 'Requests'
    ws.append(list(headers))
    for row in rows:
        ws.append(list(row))
    return to_bytes(wb)


def catalog() -> list:
    return [
        Product(id='p1', name='Chocolate Cake', unit='whole', type='menu', sales_based_raw_calc=True),
        Product(id='p2', name='Cake', unit='whole', type='menu'),
        Product(id='p3', name='Cake', unit='slice', type='menu'),
        Product(id='p4', name='Croissant', unit='pcs', type='menu'),
        Product(id='r1', name='Flour', unit='kg', type='raw'),
        Product(id='r2', name='Cocoa Powder', unit='kg', type='raw'),
    ]


def stock_check(date='2025-11-10', outlet='Main Outlet', counts=(), check_id='sc1', timestamp=1000) -> StockCheck:
    """counts: (product_id, opening, received, wastage, closing)"""
    return StockCheck(
        id=check_id,
        date=date,
        outlet=outlet,
        timestamp=timestamp,
        counts=[
            StockCount(product_id=pid, quantity=closing, opening_stock=opening,
                       received_stock=received, wastage=wastage)
            for pid, opening, received, wastage, closing in counts
        ],
    )
