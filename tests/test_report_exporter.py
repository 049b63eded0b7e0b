#!/usr/bin/env python3
"""
Report Exporter Tests
Sheet layout, discrepancy formulas and highlighting of exported workbooks.
"""

import io
import tempfile
import unittest
from pathlib import Path

import openpyxl

from models import ProductConversion, Recipe, RecipeComponent, ReconciledRow, SalesReconcileResult
from step3_reconcile.kitchen_reconciler import reconcile_kitchen
from step3_reconcile.raw_consumption import compute_raw_consumption
from step3_reconcile.sales_reconciler import SalesReconciler, SalesRow
from step4_report.report_exporter import (
    SALES_COLUMNS, export_kitchen_report, export_sales_report, result_summary,
)
from tests.workbook_builders import catalog, stock_check, summary_kitchen_workbook


def load(data: bytes):
    # Formulas as written, not cached values
    return openpyxl.load_workbook(io.BytesIO(data))


def is_highlighted(cell) -> bool:
    return cell.fill.fill_type == 'solid' and str(cell.fill.fgColor.rgb).endswith('FFCCCC')


class TestSalesExport(unittest.TestCase):
    """Test the sales discrepancy workbook"""

    def setUp(self):
        self.products = catalog()
        self.checks = [stock_check(counts=[
            ('p1', 10, 0, 0, 6),
            ('p2', 3, 0, 0, 1),
            ('p3', 8, 0, 0, 8),
            ('p4', 20, 10, 2, 15),
            ('r1', 5, 2, 0, 6),
        ])]
        reconciler = SalesReconciler(
            self.products, self.checks,
            conversions=[ProductConversion(from_product_id='p3', to_product_id='p2', conversion_factor=0.125)],
        )
        self.result = reconciler.reconcile_rows([
            SalesRow(row_index=10, name='Croissant', unit='pcs', sold=12),
            SalesRow(row_index=11, name='Cake', unit='whole', sold=1),
            SalesRow(row_index=12, name='Zebra Stripes', unit='pcs', sold=1),
            SalesRow(row_index=13, name='Chocolate Cake', unit='whole', sold=4),
        ], 'Main Outlet', '2025-11-10')
        self.raw = compute_raw_consumption(
            self.result, self.checks, self.products,
            [Recipe(menu_product_id='p1', components=[RecipeComponent('r1', 0.25)])],
        )

    def test_sheets(self):
        wb = load(export_sales_report(self.result, raw=self.raw))
        self.assertEqual(wb.sheetnames, ['Summary', 'Discrepancies', 'By Unit', 'Raw Consumption'])

    def test_optional_sheets_omitted(self):
        result = SalesReconciler(self.products, self.checks).reconcile_rows(
            [SalesRow(row_index=10, name='Croissant', unit='pcs', sold=12)], 'Main Outlet', '2025-11-10')
        wb = load(export_sales_report(result))
        self.assertEqual(wb.sheetnames, ['Summary', 'Discrepancies'])

    def test_summary_fields(self):
        ws = load(export_sales_report(self.result))['Summary']
        fields = {row[0]: row[1] for row in ws.iter_rows(min_row=2, values_only=True)}
        self.assertEqual(fields['Sales Date'], '2025-11-10')
        self.assertEqual(fields['Stock Check Date Used'], '2025-11-10')
        self.assertEqual(fields['Outlet'], 'Main Outlet')
        self.assertTrue(fields['Date Matched'].startswith('Yes'))
        self.assertEqual(fields['Errors'], 1)

    def test_discrepancy_formula_and_highlight(self):
        ws = load(export_sales_report(self.result))['Discrepancies']
        self.assertEqual([c.value for c in ws[1]], SALES_COLUMNS)
        self.assertEqual(ws['A2'].value, 'Croissant')
        self.assertEqual(ws['I2'].value, '=D2+E2-C2-G2-F2')
        self.assertEqual(ws['I5'].value, '=D5+E5-C5-G5-F5')

        # Croissant and Cake are off by one, Chocolate Cake balances
        self.assertTrue(is_highlighted(ws['I2']))
        self.assertTrue(is_highlighted(ws['I3']))
        self.assertFalse(is_highlighted(ws['I5']))

        # Unresolved row: no formula, note kept
        self.assertIsNone(ws['I4'].value)
        self.assertFalse(is_highlighted(ws['I4']))
        self.assertIn('not found', ws['J4'].value)

    def test_by_unit_sheet(self):
        ws = load(export_sales_report(self.result))['By Unit']
        names = [ws.cell(row=r, column=1).value for r in range(2, 5)]
        units = [ws.cell(row=r, column=2).value for r in range(2, 5)]
        self.assertEqual(names, ['Cake', 'Cake', 'Cake (Combined Total)'])
        self.assertEqual(units, ['whole', 'slice', 'whole'])
        self.assertEqual(ws['D4'].value, 4)
        self.assertEqual(ws['I4'].value, '=D4+E4-C4-G4-F4')
        self.assertTrue(is_highlighted(ws['I2']))
        self.assertFalse(is_highlighted(ws['I3']))
        self.assertTrue(is_highlighted(ws['I4']))

    def test_raw_consumption_sheet(self):
        ws = load(export_sales_report(self.result, raw=self.raw))['Raw Consumption']
        self.assertEqual(ws['A2'].value, 'Flour')
        self.assertEqual(ws['E2'].value, 1)
        self.assertEqual(ws['F2'].value, 1 - 5 - 2)

    def test_only_unresolved_rows(self):
        result = SalesReconcileResult(date_matched=True, rows=[
            ReconciledRow(name='Mystery', unit='pcs', sold=2, notes='Product not found in master list'),
        ])
        ws = load(export_sales_report(result))['Discrepancies']
        self.assertEqual(ws['A2'].value, 'Mystery')
        self.assertIsNone(ws['D2'].value)
        self.assertIsNone(ws['I2'].value)
        # Empty numeric columns are sized by their header
        self.assertEqual(ws.column_dimensions['D'].width, len('Opening Stock') + 2)
        self.assertEqual(ws.column_dimensions['J'].width, len('Product not found in master list') + 2)

    def test_header_style(self):
        ws = load(export_sales_report(self.result))['Discrepancies']
        self.assertTrue(ws['A1'].font.bold)
        self.assertEqual(ws.freeze_panes, 'A2')

    def test_output_path_written(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / 'reports' / 'sales.xlsx'
            data = export_sales_report(self.result, output_path=path)
            self.assertTrue(path.exists())
            self.assertEqual(path.read_bytes(), data)

    def test_result_summary(self):
        summary = result_summary(self.result)
        self.assertEqual(summary['rows'], 4)
        self.assertEqual(summary['resolved'], 3)
        self.assertEqual(summary['with_discrepancy'], 2)
        self.assertEqual(summary['errors'], 1)


class TestKitchenExport(unittest.TestCase):
    """Test the kitchen discrepancy workbook"""

    def setUp(self):
        products = catalog()
        checks = [stock_check(counts=[('p4', 5, 2, 0, 0), ('r1', 1, 1, 0, 0)])]
        self.result = reconcile_kitchen(summary_kitchen_workbook(rows=[
            ('Croissant', 'pcs', 2, 3, 10),
            ('Flour', 'kg', 1, 1, 2),
        ]), products, checks)

    def test_formula_and_highlight(self):
        wb = load(export_kitchen_report(self.result))
        self.assertEqual(wb.sheetnames, ['Summary', 'Discrepancies'])
        ws = wb['Discrepancies']
        self.assertEqual(ws['E1'].value, 'Kitchen Production')
        self.assertEqual(ws['F2'].value, '=E2-C2-D2')
        self.assertTrue(is_highlighted(ws['F2']))
        self.assertFalse(is_highlighted(ws['F3']))

    def test_summary(self):
        ws = load(export_kitchen_report(self.result))['Summary']
        fields = {row[0]: row[1] for row in ws.iter_rows(min_row=2, values_only=True)}
        self.assertEqual(fields['Production Date'], '2025-11-10')
        self.assertEqual(fields['Outlet'], 'Main Outlet')
        self.assertEqual(fields['Total Discrepancies'], 2)

    def test_result_summary(self):
        summary = result_summary(self.result)
        self.assertEqual(summary, {'rows': 2, 'with_discrepancy': 1, 'pending_confirmations': 0, 'errors': 0})


if __name__ == '__main__':
    unittest.main()
