#!/usr/bin/env python3
"""
Configuration file for the Stock Reconciler
Edit these values according to your export formats.

Values here are defaults. Rule files in reconcile_rules/ are merged on top
of them by step1_extract.rule_loader.RuleLoader.
"""

from pathlib import Path

PROJECT_ROOT = Path(__file__).parent

# Rule files directory
# - shared.yaml: matching thresholds and row-scan settings
# - 10_sales_layout.yaml: daily sales report layout
# - 20_kitchen_layout.yaml: kitchen production sheet layouts
# - 30_transfer_layout.yaml: stock-transfer request export layout
RULES_DIR = PROJECT_ROOT / 'reconcile_rules'

# Product Matching Settings
# Scores are on a 0-100 scale. These thresholds were tuned against real
# exports; keep them unless the product owners agree to retune.
MATCHING = {
    'min_auto_match_score': 85,        # Best score >= this is applied without confirmation
    'confirmation_floor': 70,          # Lower edge of the "likely truncation" band
    'candidate_floor': 50,             # Candidates below this are discarded
    'max_candidates': 10,              # Candidates returned for confirmation
    'levenshtein_min_length': 5,       # Both names must be at least this long
    'levenshtein_min_similarity': 0.6, # Similarity must exceed this
}

# Row scanning
ROW_SCAN = {
    'max_consecutive_empty_rows': 10,  # End of data after this many fully-empty rows
    'max_header_scan_rows': 30,        # Header rows are searched in the first N rows
}

# Daily sales report (fixed-cell export)
SALES_LAYOUT = {
    'sheet_index': 0,
    'metadata': {
        'outlet_cell': 'J5',
        'date_cell': 'H9',
    },
    'table': {
        'first_row': 10,
        'min_last_row': 1000,
        'columns': {
            'name': 'I',
            'unit': 'R',
            'sold': 'AC',
        },
    },
}

# Kitchen production sheet (modern "Discrepancies" layout and legacy outlet-column layout)
KITCHEN_LAYOUT = {
    'metadata': {
        'date_cell': 'B7',
        'date_label': 'Date From',
        'outlet_cell': 'D5',
    },
    'summary': {
        'date_fields': ['production date', 'stock check date'],
        'outlet_field': 'outlet',
    },
    'discrepancies_sheet': {
        'sheet_name_contains': 'discrep',
        'product_tokens': ['product'],
        'unit_tokens': ['unit'],
        'quantity_tokens': ['kitchen', 'production'],
        'fallback_quantity_index': 4,
    },
    'legacy': {
        'outlet_header_row': 9,
        'max_columns': 50,
        'first_row': 8,
        'last_row': 500,
        'columns': {
            'name': 'C',
            'unit': 'E',
        },
    },
}

# Stock-transfer request export (one header row per sheet)
TRANSFER_LAYOUT = {
    'header_tokens': {
        'product': 'product',
        'unit': 'unit',
        'quantity': 'quantity',
        'to_outlet': 'to outlet',
        'date': 'date',
    },
}

# File Paths
PATHS = {
    'mapping_file': 'data/product_name_mapping.json',  # Confirmed truncated-name mappings
    'log_folder': 'logs/',                             # Folder for log files
    'output_folder': 'output/',                        # Folder for exported reports
}

# Logging Settings
LOGGING = {
    'level': 'INFO',                   # DEBUG, INFO, WARNING, ERROR
    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    'log_file': 'reconcile.log',
}
