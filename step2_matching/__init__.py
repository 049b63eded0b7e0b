"""
Step 2: Product Matching
Resolves free-text product names from exports to catalog products, using
confirmed name mappings first and fuzzy scoring second.
"""

from .name_normalizer import normalize_name, compact_name, normalize_unit, significant_words
from .product_matcher import ProductMatcher, MatchResult, MatchCandidate, MatchVerdict
from .name_mapping_cache import NameMappingCache, KeyValueStore, InMemoryStore, JsonFileStore

__all__ = [
    'normalize_name',
    'compact_name',
    'normalize_unit',
    'significant_words',
    'ProductMatcher',
    'MatchResult',
    'MatchCandidate',
    'MatchVerdict',
    'NameMappingCache',
    'KeyValueStore',
    'InMemoryStore',
    'JsonFileStore',
]
