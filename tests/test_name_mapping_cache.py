#!/usr/bin/env python3
"""
Name-Mapping Cache Tests
Upsert semantics, case-insensitive lookup, stale mappings and the JSON file store.
"""

import json
import tempfile
import time
import unittest
from pathlib import Path

from models import Product
from step2_matching.name_mapping_cache import InMemoryStore, JsonFileStore, NameMappingCache, mapping_key


class TestNameMappingCache(unittest.TestCase):
    """Test NameMappingCache over the in-memory store"""

    def setUp(self):
        self.store = InMemoryStore()
        self.cache = NameMappingCache(self.store)

    def test_key_format(self):
        self.assertEqual(mapping_key('  Choc Cake '), 'mapping:choc cake')

    def test_get_is_case_insensitive(self):
        self.cache.put('Choc Cake', 'p1', 'Chocolate Cake')
        mapping = self.cache.get('CHOC CAKE')
        self.assertIsNotNone(mapping)
        self.assertEqual(mapping.full_product_id, 'p1')
        self.assertEqual(mapping.full_product_name, 'Chocolate Cake')
        self.assertIsNone(self.cache.get('unknown'))
        self.assertIsNone(self.cache.get('   '))

    def test_last_confirmation_wins(self):
        self.cache.put('Choc Cake', 'p1', 'Chocolate Cake')
        self.cache.put('choc cake', 'p9', 'Choc Chip Cake')
        self.assertEqual(self.cache.get('Choc Cake').full_product_id, 'p9')
        self.assertEqual(len(self.cache.mappings()), 1)

    def test_confirming_twice_only_changes_added_at(self):
        first = self.cache.put('Choc Cake', 'p1', 'Chocolate Cake')
        time.sleep(0.002)
        second = self.cache.put('Choc Cake', 'p1', 'Chocolate Cake')

        stored = self.cache.get('choc cake')
        self.assertEqual(
            (stored.truncated_name, stored.full_product_id, stored.full_product_name),
            (first.truncated_name, first.full_product_id, first.full_product_name),
        )
        self.assertGreaterEqual(second.added_at, first.added_at)
        self.assertEqual(stored.added_at, second.added_at)

    def test_stored_value_uses_external_keys(self):
        self.cache.put('Choc Cake', 'p1', 'Chocolate Cake')
        value = self.store.get('mapping:choc cake')
        self.assertEqual(set(value), {'truncatedName', 'fullProductId', 'fullProductName', 'addedAt'})

    def test_resolve(self):
        products = {'p1': Product(id='p1', name='Chocolate Cake', unit='whole')}
        self.cache.put('Choc Cake', 'p1', 'Chocolate Cake')
        self.assertEqual(self.cache.resolve('choc cake', products).id, 'p1')
        self.assertIsNone(self.cache.resolve('not mapped', products))

    def test_stale_mapping_resolves_to_none(self):
        self.cache.put('Choc Cake', 'deleted', 'Old Chocolate Cake')
        with self.assertLogs('step2_matching.name_mapping_cache', level='WARNING') as logs:
            self.assertIsNone(self.cache.resolve('Choc Cake', {}))
        self.assertIn('Stale name mapping', logs.output[0])


class TestJsonFileStore(unittest.TestCase):
    """Test the file-backed store"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / 'data' / 'mappings.json'

    def tearDown(self):
        self.tmp.cleanup()

    def test_mappings_survive_reload(self):
        NameMappingCache(JsonFileStore(self.path)).put('Choc Cake', 'p1', 'Chocolate Cake')
        self.assertTrue(self.path.exists())

        reloaded = NameMappingCache(JsonFileStore(self.path))
        self.assertEqual(reloaded.get('choc cake').full_product_id, 'p1')

    def test_metadata_keys_ignored(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({
            '_comment': 'confirmed mappings',
            'mapping:choc cake': {'truncatedName': 'Choc Cake', 'fullProductId': 'p1',
                                  'fullProductName': 'Chocolate Cake', 'addedAt': 1},
        }), encoding='utf-8')
        cache = NameMappingCache(JsonFileStore(self.path))
        self.assertEqual(len(cache.mappings()), 1)

    def test_corrupt_file_is_treated_as_empty(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text('{not json', encoding='utf-8')
        with self.assertLogs('step2_matching.name_mapping_cache', level='WARNING'):
            store = JsonFileStore(self.path)
        self.assertEqual(list(store.items()), [])


if __name__ == '__main__':
    unittest.main()
