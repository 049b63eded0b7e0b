#!/usr/bin/env python3
"""
Rule Loader Tests
Layout merging over config.py defaults, caching and hot-reload toggling.
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path

# Setup path
TEST_DIR = Path(__file__).parent
PROJECT_ROOT = TEST_DIR.parent

import config
from step1_extract.rule_loader import RuleLoader


class TestRuleLoader(unittest.TestCase):
    """Test RuleLoader against the shipped reconcile_rules directory"""

    @classmethod
    def setUpClass(cls):
        """Set up test fixtures"""
        cls.rules_dir = PROJECT_ROOT / 'reconcile_rules'

    def test_shipped_rules_match_defaults(self):
        """Test that the shipped rule files agree with config.py"""
        loader = RuleLoader(self.rules_dir)
        self.assertEqual(loader.get_matching_config(), config.MATCHING)
        sales = loader.get_layout('sales_layout')
        self.assertEqual(sales['metadata'], config.SALES_LAYOUT['metadata'])
        self.assertEqual(sales['table']['columns'], {'name': 'I', 'unit': 'R', 'sold': 'AC'})
        kitchen = loader.get_layout('kitchen_layout')
        self.assertEqual(kitchen['legacy']['outlet_header_row'], 9)
        self.assertEqual(kitchen['discrepancies_sheet']['fallback_quantity_index'], 4)

    def test_layout_carries_row_scan(self):
        loader = RuleLoader(self.rules_dir)
        layout = loader.get_layout('transfer_layout')
        self.assertEqual(layout['row_scan']['max_consecutive_empty_rows'], 10)
        self.assertEqual(layout['row_scan']['max_header_scan_rows'], 30)

    def test_unknown_layout(self):
        loader = RuleLoader(self.rules_dir)
        with self.assertRaises(KeyError):
            loader.get_layout('invoice_layout')

    def test_missing_rules_dir_uses_defaults(self):
        loader = RuleLoader(PROJECT_ROOT / 'no_such_rules_dir')
        self.assertEqual(loader.get_matching_config(), config.MATCHING)
        self.assertEqual(loader.get_layout('sales_layout')['table'], config.SALES_LAYOUT['table'])

    def test_hot_reload_default_off(self):
        """Test that hot-reload is OFF by default"""
        original_env = os.environ.pop('RECONCILE_HOT_RELOAD', None)
        try:
            loader = RuleLoader(self.rules_dir)
            self.assertFalse(loader._enable_hot_reload, "Hot-reload should be OFF by default")
            self.assertIsNone(loader._file_checksums, "File checksums should not be tracked when hot-reload is OFF")
        finally:
            if original_env is not None:
                os.environ['RECONCILE_HOT_RELOAD'] = original_env

    def test_hot_reload_env_variable(self):
        """Test that RECONCILE_HOT_RELOAD=1 enables hot-reload"""
        original_env = os.environ.get('RECONCILE_HOT_RELOAD')
        try:
            os.environ['RECONCILE_HOT_RELOAD'] = '1'
            self.assertTrue(RuleLoader(self.rules_dir)._enable_hot_reload)

            os.environ['RECONCILE_HOT_RELOAD'] = '0'
            self.assertFalse(RuleLoader(self.rules_dir)._enable_hot_reload)
        finally:
            if original_env is not None:
                os.environ['RECONCILE_HOT_RELOAD'] = original_env
            else:
                os.environ.pop('RECONCILE_HOT_RELOAD', None)

    def test_no_duplicate_reads_hot_reload_off(self):
        """Test that files are read only once when hot-reload is OFF"""
        loader = RuleLoader(self.rules_dir, enable_hot_reload=False)

        loader.reset_file_read_count()
        first = loader.get_layout('kitchen_layout')
        first_read_count = loader.get_file_read_count()
        self.assertGreater(first_read_count, 0, "Should have read at least one file")

        second = loader.get_layout('kitchen_layout')
        self.assertEqual(loader.get_file_read_count(), first_read_count,
                         "Should not re-read files when hot-reload is OFF")
        self.assertEqual(first, second, "Cached rules should match original")

    def test_returned_layout_is_a_copy(self):
        loader = RuleLoader(self.rules_dir)
        layout = loader.get_layout('sales_layout')
        layout['metadata']['outlet_cell'] = 'Z99'
        self.assertEqual(loader.get_layout('sales_layout')['metadata']['outlet_cell'], 'J5')
        self.assertEqual(config.SALES_LAYOUT['metadata']['outlet_cell'], 'J5')


class TestRuleOverrides(unittest.TestCase):
    """Test overrides written to a temporary rules directory"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.rules_dir = Path(self.tmp.name)
        shutil.copy(PROJECT_ROOT / 'reconcile_rules' / 'shared.yaml', self.rules_dir / 'shared.yaml')

    def tearDown(self):
        self.tmp.cleanup()

    def test_partial_override_is_deep_merged(self):
        (self.rules_dir / '10_sales_layout.yaml').write_text(
            "sales_layout:\n  metadata:\n    outlet_cell: K5\n", encoding='utf-8')
        layout = RuleLoader(self.rules_dir).get_layout('sales_layout')
        self.assertEqual(layout['metadata']['outlet_cell'], 'K5')
        self.assertEqual(layout['metadata']['date_cell'], 'H9', "Unspecified keys keep their defaults")
        self.assertEqual(layout['table']['first_row'], 10)

    def test_matching_override(self):
        (self.rules_dir / 'shared.yaml').write_text("matching:\n  min_auto_match_score: 90\n", encoding='utf-8')
        matching = RuleLoader(self.rules_dir).get_matching_config()
        self.assertEqual(matching['min_auto_match_score'], 90)
        self.assertEqual(matching['candidate_floor'], 50)

    def test_reload_works_when_hot_reload_on(self):
        """Test that hot-reload detects changes when ON"""
        loader = RuleLoader(self.rules_dir, enable_hot_reload=True)
        shared_file = self.rules_dir / 'shared.yaml'

        self.assertTrue(loader._should_reload_file('shared.yaml', shared_file), "First load should reload")
        loader._load_shared_rules()
        self.assertFalse(loader._should_reload_file('shared.yaml', shared_file),
                         "Second load should not reload if file unchanged")

        shared_file.write_text("matching:\n  min_auto_match_score: 70\n", encoding='utf-8')
        self.assertEqual(loader.get_matching_config()['min_auto_match_score'], 70)

    def test_invalid_yaml_falls_back_to_defaults(self):
        (self.rules_dir / '20_kitchen_layout.yaml').write_text("kitchen_layout: [unclosed\n", encoding='utf-8')
        layout = RuleLoader(self.rules_dir).get_layout('kitchen_layout')
        self.assertEqual(layout['metadata'], config.KITCHEN_LAYOUT['metadata'])


if __name__ == '__main__':
    unittest.main()
