#!/usr/bin/env python3
"""
Name-Mapping Cache
Remembers confirmed truncated-name -> product resolutions so that repeat
imports of the same export skip matching entirely.

Storage is a plain key-value store keyed by "mapping:" + lower-cased name.
Mappings never expire; a mapping whose product has since disappeared is
reported as stale and ignored.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from models import ProductNameMapping

logger = logging.getLogger(__name__)

KEY_PREFIX = 'mapping:'


class KeyValueStore:
    """Minimal store contract: get, put and items"""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def put(self, key: str, value: Dict[str, Any]) -> None:
        raise NotImplementedError

    def items(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        raise NotImplementedError


class InMemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self._data: Dict[str, Dict[str, Any]] = dict(initial or {})

    def get(self, key):
        value = self._data.get(key)
        return dict(value) if value is not None else None

    def put(self, key, value):
        self._data[key] = dict(value)

    def items(self):
        return iter(list(self._data.items()))


class JsonFileStore(KeyValueStore):
    """
    File-backed store holding one JSON object.
    The whole file is rewritten on every put; concurrent writers are not
    supported (last writer wins).
    """

    def __init__(self, path):
        self.path = Path(path)
        self._data: Dict[str, Dict[str, Any]] = self._load()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load name mappings from {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring name mapping file {self.path}: expected a JSON object")
            return {}
        # Remove metadata fields (starting with _)
        return {k: v for k, v in data.items() if not k.startswith('_') and isinstance(v, dict)}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=self.path.name, dir=str(self.path.parent))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, key):
        value = self._data.get(key)
        return dict(value) if value is not None else None

    def put(self, key, value):
        self._data[key] = dict(value)
        self._save()

    def items(self):
        return iter(list(self._data.items()))


def mapping_key(truncated_name: str) -> str:
    return KEY_PREFIX + (truncated_name or '').strip().lower()


class NameMappingCache:
    """Confirmed truncated-name resolutions on top of a KeyValueStore"""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store if store is not None else InMemoryStore()

    def get(self, truncated_name: str) -> Optional[ProductNameMapping]:
        """Case-insensitive exact lookup"""
        if not truncated_name or not truncated_name.strip():
            return None
        value = self.store.get(mapping_key(truncated_name))
        if value is None:
            return None
        return ProductNameMapping.from_dict(value)

    def put(self, truncated_name: str, product_id: str, product_name: str) -> ProductNameMapping:
        """Upsert; the latest confirmation for a name replaces any earlier one"""
        mapping = ProductNameMapping(
            truncated_name=truncated_name.strip(),
            full_product_id=str(product_id),
            full_product_name=product_name,
            added_at=int(time.time() * 1000),
        )
        self.store.put(mapping_key(truncated_name), mapping.to_dict())
        logger.info(f"Saved product name mapping: \"{mapping.truncated_name}\" -> \"{product_name}\" ({product_id})")
        return mapping

    def mappings(self) -> List[ProductNameMapping]:
        return [
            ProductNameMapping.from_dict(value)
            for key, value in self.store.items()
            if key.startswith(KEY_PREFIX)
        ]

    def resolve(self, truncated_name: str, products_by_id: Mapping[str, Any]) -> Optional[Any]:
        """
        Return the mapped product, or None when there is no mapping or the
        mapped product no longer exists in the catalog
        """
        mapping = self.get(truncated_name)
        if mapping is None:
            return None
        product = products_by_id.get(mapping.full_product_id)
        if product is None:
            logger.warning(
                f"Stale name mapping: \"{truncated_name}\" -> \"{mapping.full_product_name}\" "
                f"({mapping.full_product_id}) is no longer in the catalog"
            )
        return product
