#!/usr/bin/env python3
"""
Rule Loader - Load YAML rules from reconcile_rules directory
Merges shared.yaml and the numbered layout files over the defaults in config.py
"""

import os
import copy
import yaml
import logging
import hashlib
from pathlib import Path
from typing import Dict, Any, Optional

import config

logger = logging.getLogger(__name__)

# Layout name -> (rule file, default layout from config.py)
LAYOUT_FILES = {
    'sales_layout': ('10_sales_layout.yaml', config.SALES_LAYOUT),
    'kitchen_layout': ('20_kitchen_layout.yaml', config.KITCHEN_LAYOUT),
    'transfer_layout': ('30_transfer_layout.yaml', config.TRANSFER_LAYOUT),
}


class RuleLoader:
    """Load and parse YAML rules, merging them over the config.py defaults"""

    def __init__(self, rules_dir: Optional[Path] = None, enable_hot_reload: Optional[bool] = None):
        """
        Initialize rule loader with rules directory

        Args:
            rules_dir: Path to reconcile_rules directory (defaults to config.RULES_DIR)
            enable_hot_reload: Enable checksum-based hot-reload. When None, the
                              RECONCILE_HOT_RELOAD environment variable decides (default: off)
        """
        if enable_hot_reload is None:
            enable_hot_reload = os.getenv('RECONCILE_HOT_RELOAD', '0') == '1'

        self.rules_dir = Path(rules_dir) if rules_dir else Path(config.RULES_DIR)
        self._rules_cache: Dict[str, Dict[str, Any]] = {}
        self._file_checksums = {} if enable_hot_reload else None  # Only track when enabled
        self._enable_hot_reload = enable_hot_reload
        self._shared_rules = None  # Cache shared.yaml
        self._file_read_count = 0

        if not self.rules_dir.exists():
            logger.warning(f"Rules directory not found: {self.rules_dir}. Using config.py defaults.")

    def _calculate_file_checksum(self, file_path: Path) -> str:
        """Calculate MD5 checksum for a file"""
        try:
            with open(file_path, 'rb') as f:
                return hashlib.md5(f.read()).hexdigest()
        except OSError as e:
            logger.warning(f"Error calculating checksum for {file_path}: {e}")
            return ''

    def _should_reload_file(self, filename: str, rule_file: Path) -> bool:
        """Check if a rule file should be reloaded based on checksum"""
        # Fast path: when hot-reload is disabled, only check cache
        if not self._enable_hot_reload:
            return filename not in self._rules_cache

        if not rule_file.exists():
            return False

        current_checksum = self._calculate_file_checksum(rule_file)
        cached_checksum = self._file_checksums.get(filename)

        if current_checksum != cached_checksum:
            if cached_checksum:
                logger.debug(f"Rule file {filename} modified, reloading...")
            return True

        return False

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Load a YAML file directly"""
        self._file_read_count += 1
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading YAML file {file_path}: {e}")
            return {}

    def get_file_read_count(self) -> int:
        """Number of YAML files read from disk since the last reset"""
        return self._file_read_count

    def reset_file_read_count(self) -> None:
        self._file_read_count = 0

    def load_rule_file_by_name(self, filename: str) -> Dict[str, Any]:
        """
        Load a specific rule file by filename (e.g., '10_sales_layout.yaml')

        Args:
            filename: Rule file name

        Returns:
            Rule dictionary or empty dict if not found
        """
        rule_file = self.rules_dir / filename

        if not rule_file.exists():
            logger.debug(f"Rule file not found: {rule_file}")
            return {}

        if self._should_reload_file(filename, rule_file):
            self._rules_cache[filename] = self._load_yaml_file(rule_file)
            if self._enable_hot_reload:
                self._file_checksums[filename] = self._calculate_file_checksum(rule_file)
            logger.debug(f"Loaded rule file: {filename}")

        return self._rules_cache.get(filename, {})

    def _load_shared_rules(self) -> Dict[str, Any]:
        """Load shared.yaml rules"""
        shared_file = self.rules_dir / 'shared.yaml'
        if self._shared_rules is None or self._should_reload_file('shared.yaml', shared_file):
            self._shared_rules = self.load_rule_file_by_name('shared.yaml')
        return self._shared_rules

    def _merge_rules(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries
        override takes precedence over base
        """
        result = copy.deepcopy(base)

        for key, value in (override or {}).items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_rules(result[key], value)
            else:
                result[key] = copy.deepcopy(value)

        return result

    def get_matching_config(self) -> Dict[str, Any]:
        """Matching thresholds: config.MATCHING overridden by shared.yaml 'matching'"""
        shared_rules = self._load_shared_rules()
        return self._merge_rules(config.MATCHING, shared_rules.get('matching', {}))

    def get_row_scan_config(self) -> Dict[str, Any]:
        """Row-scan settings: config.ROW_SCAN overridden by shared.yaml 'row_scan'"""
        shared_rules = self._load_shared_rules()
        return self._merge_rules(config.ROW_SCAN, shared_rules.get('row_scan', {}))

    def get_layout(self, layout_name: str) -> Dict[str, Any]:
        """
        Get a workbook layout merged over its config.py default

        Args:
            layout_name: 'sales_layout', 'kitchen_layout' or 'transfer_layout'

        Returns:
            Layout dictionary
        """
        if layout_name not in LAYOUT_FILES:
            raise KeyError(f"Unknown layout: {layout_name}")

        filename, defaults = LAYOUT_FILES[layout_name]
        rules = self.load_rule_file_by_name(filename)
        layout = self._merge_rules(defaults, rules.get(layout_name, {}))

        # Row-scan settings are shared by every layout
        layout.setdefault('row_scan', self.get_row_scan_config())
        return layout

    def clear_cache(self):
        """Clear the rules cache"""
        logger.debug("Clearing rules cache")
        self._rules_cache.clear()
        if self._file_checksums is not None:
            self._file_checksums.clear()
        self._shared_rules = None
