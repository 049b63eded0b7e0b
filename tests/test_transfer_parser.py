#!/usr/bin/env python3
"""
Transfer Request Parser Tests
"""

import unittest

from step1_extract.transfer_parser import parse_transfer_received
from tests.workbook_builders import catalog, transfer_workbook


class TestTransferParser(unittest.TestCase):
    """Test received-quantity extraction from transfer requests"""

    def setUp(self):
        self.products = catalog()

    def test_sums_per_product(self):
        data = transfer_workbook([
            ('10/11/2025', 'Croissant', 'pcs', 5, 'Central Kitchen', 'Main Outlet'),
            ('10/11/2025', 'Croissant', 'pcs', 3, 'Central Kitchen', 'Main Outlet'),
            ('10/11/2025', 'Flour', 'kg', '2.5', 'Warehouse', 'Main Outlet'),
        ])
        received = parse_transfer_received(data, self.products)
        self.assertEqual(received, {'p4': 8.0, 'r1': 2.5})

    def test_outlet_filter(self):
        data = transfer_workbook([
            ('10/11/2025', 'Croissant', 'pcs', 5, 'Central Kitchen', 'Main Outlet'),
            ('10/11/2025', 'Croissant', 'pcs', 7, 'Central Kitchen', 'Other Outlet'),
            ('10/11/2025', 'Croissant', 'pcs', 1, 'Central Kitchen', None),
        ])
        received = parse_transfer_received(data, self.products, outlet='main outlet')
        # Rows without a destination are kept
        self.assertEqual(received, {'p4': 6.0})

    def test_date_filter(self):
        data = transfer_workbook([
            ('10/11/2025', 'Croissant', 'pcs', 5, 'Central Kitchen', 'Main Outlet'),
            ('09/11/2025', 'Croissant', 'pcs', 7, 'Central Kitchen', 'Main Outlet'),
        ])
        received = parse_transfer_received(data, self.products, outlet='Main Outlet', date='2025-11-10')
        self.assertEqual(received, {'p4': 5.0})

    def test_resolves_by_name_and_unit_then_name(self):
        data = transfer_workbook([
            ('10/11/2025', 'Cake', 'slice', 4, 'Central Kitchen', 'Main Outlet'),
            ('10/11/2025', 'cake', 'tray', 1, 'Central Kitchen', 'Main Outlet'),
            ('10/11/2025', 'Mystery Item', 'pcs', 9, 'Central Kitchen', 'Main Outlet'),
        ])
        received = parse_transfer_received(data, self.products)
        # "tray" has no product; the first "Cake" in the catalog takes it
        self.assertEqual(received, {'p3': 4.0, 'p2': 1.0})

    def test_zero_and_invalid_quantities_skipped(self):
        data = transfer_workbook([
            ('10/11/2025', 'Croissant', 'pcs', 0, 'Central Kitchen', 'Main Outlet'),
            ('10/11/2025', 'Croissant', 'pcs', 'n/a', 'Central Kitchen', 'Main Outlet'),
            ('10/11/2025', 'Croissant', 'pcs', None, 'Central Kitchen', 'Main Outlet'),
        ])
        self.assertEqual(parse_transfer_received(data, self.products), {})

    def test_dict_products(self):
        data = transfer_workbook([('10/11/2025', 'Croissant', 'pcs', 2, 'Central Kitchen', 'Main Outlet')])
        products = [{'id': 'x1', 'name': 'Croissant', 'unit': 'pcs'}]
        self.assertEqual(parse_transfer_received(data, products), {'x1': 2.0})

    def test_sheet_without_header_skipped(self):
        data = transfer_workbook([('a', 'b')], headers=('Name', 'Amount'))
        self.assertEqual(parse_transfer_received(data, self.products), {})

    def test_unreadable_workbook(self):
        with self.assertLogs('step1_extract.transfer_parser', level='WARNING'):
            self.assertEqual(parse_transfer_received(b'garbage', self.products), {})


if __name__ == '__main__':
    unittest.main()
