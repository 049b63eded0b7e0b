#!/usr/bin/env python3
"""
Main Workflow Script - Stock Reconciliation Pipeline
        Step 1: Read the workbook (sales report or kitchen production sheet)
        Step 2: Match product names to the catalog (saved mappings, fuzzy match)
        Step 3: Reconcile against the same day's stock check
        Step 4: Export the discrepancy report (Excel)

Catalog inputs are JSON files as exported by the app's sync layer
(lists of products, stock checks, conversions and recipes).
"""

import sys
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from datetime import datetime

# Load environment variables from .env file if it exists
_env_file = Path(__file__).parent / '.env'
if _env_file.exists():
    with open(_env_file, 'r') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#') and '=' in line:
                key, value = line.split('=', 1)
                os.environ[key.strip()] = value.strip()

from models import Product, ProductConversion, Recipe, StockCheck
from step1_extract.logger import setup_logger
from step1_extract.rule_loader import RuleLoader
from step1_extract.transfer_parser import parse_transfer_received
from step1_extract.workbook_reader import WorkbookReadError, load_workbook_source
from step2_matching.name_mapping_cache import JsonFileStore, NameMappingCache
from step2_matching.product_matcher import ProductMatcher
from step3_reconcile.kitchen_reconciler import KitchenReconciler
from step3_reconcile.raw_consumption import compute_raw_consumption
from step3_reconcile.sales_reconciler import SalesReconciler
from step4_report.report_exporter import export_kitchen_report, export_sales_report, result_summary
from config import PATHS


def load_collection(path: Optional[str], model) -> List[Any]:
    """
    Load a JSON list into model objects

    Args:
        path: JSON file path (None for an empty collection)
        model: Dataclass with a from_dict classmethod

    Returns:
        List of model instances
    """
    if not path:
        return []
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict):
        # Sync-layer exports wrap the list in a single top-level key
        data = next((v for v in data.values() if isinstance(v, list)), [])
    return [model.from_dict(item) for item in data]


class ReconcileWorkflow:
    """Stock reconciliation workflow"""

    def __init__(self, rules_dir: Optional[str] = None, mapping_file: Optional[str] = None,
                 output_dir: Optional[str] = None):
        """
        Initialize workflow

        Args:
            rules_dir: Rule files directory (defaults to reconcile_rules/)
            mapping_file: Name-mapping JSON file (defaults to PATHS['mapping_file'])
            output_dir: Report folder (defaults to PATHS['output_folder'])
        """
        self.logger = logging.getLogger(__name__)
        self.rule_loader = RuleLoader(Path(rules_dir) if rules_dir else None)
        self.matcher = ProductMatcher(settings=self.rule_loader.get_matching_config())
        self.mapping_cache = NameMappingCache(JsonFileStore(mapping_file or PATHS['mapping_file']))
        self.output_dir = Path(output_dir or PATHS['output_folder'])

    def _output_path(self, output: Optional[str], prefix: str) -> Path:
        if output:
            return Path(output)
        return self.output_dir / f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"

    def run_sales(self, workbook: str, products: List[Product], stock_checks: List[StockCheck],
                  conversions: Optional[List[ProductConversion]] = None, recipes: Optional[List[Recipe]] = None,
                  transfers: Optional[str] = None, outlet: Optional[str] = None,
                  output: Optional[str] = None) -> Dict:
        """
        Reconcile a sales report and export the discrepancy workbook

        Returns:
            Summary dictionary ('ok' is False on a hard failure)
        """
        self.logger.info("=" * 80)
        self.logger.info(f"SALES RECONCILIATION: {workbook}")
        self.logger.info("=" * 80)

        reconciler = SalesReconciler(
            products, stock_checks,
            conversions=conversions,
            mapping_cache=self.mapping_cache,
            matcher=self.matcher,
            layout=self.rule_loader.get_layout('sales_layout'),
        )

        source: Any = Path(workbook)
        extra_received = None
        if transfers:
            try:
                source = load_workbook_source(source)
            except WorkbookReadError as e:
                self.logger.error(f"Cannot read sales workbook: {e}")
            else:
                metadata = reconciler.read_metadata(source)
                extra_received = parse_transfer_received(
                    Path(transfers), products,
                    outlet=outlet or metadata.outlet,
                    date=metadata.date,
                    layout=self.rule_loader.get_layout('transfer_layout'),
                )
                self.logger.info(f"Transfer requests: {len(extra_received)} products with extra received stock")

        result = reconciler.reconcile_workbook(source, extra_received=extra_received)
        for error in result.errors:
            self.logger.warning(error)

        summary = result_summary(result)
        summary['ok'] = result.date_matched
        if not result.date_matched:
            return summary

        raw = compute_raw_consumption(result, stock_checks, products, recipes) if recipes else None
        output_path = self._output_path(output, 'sales_discrepancies')
        export_sales_report(result, raw=raw, output_path=output_path)
        summary['report'] = str(output_path)
        return summary

    def run_kitchen(self, workbook: str, products: List[Product], stock_checks: List[StockCheck],
                    output: Optional[str] = None) -> Dict:
        """
        Reconcile a kitchen production sheet and export the discrepancy workbook

        Returns:
            Summary dictionary ('ok' is False on a hard failure)
        """
        self.logger.info("=" * 80)
        self.logger.info(f"KITCHEN RECONCILIATION: {workbook}")
        self.logger.info("=" * 80)

        reconciler = KitchenReconciler(
            products, stock_checks,
            mapping_cache=self.mapping_cache,
            matcher=self.matcher,
            layout=self.rule_loader.get_layout('kitchen_layout'),
        )
        result = reconciler.reconcile_workbook(Path(workbook))
        for error in result.errors:
            self.logger.warning(error)

        summary = result_summary(result)
        summary['ok'] = result.matched
        if not result.matched:
            return summary

        output_path = self._output_path(output, 'kitchen_discrepancies')
        export_kitchen_report(result, output_path=output_path)
        summary['report'] = str(output_path)
        return summary


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    import argparse

    parser = argparse.ArgumentParser(description='Stock Reconciliation Workflow')
    parser.add_argument('--mode', type=str, choices=['sales', 'kitchen'], default='sales',
                       help='Workbook type to reconcile')
    parser.add_argument('--workbook', type=str, required=True,
                       help='Sales report or kitchen production workbook (.xlsx)')
    parser.add_argument('--products', type=str, required=True,
                       help='Products JSON file')
    parser.add_argument('--stock-checks', type=str, required=True,
                       help='Stock checks JSON file')
    parser.add_argument('--conversions', type=str,
                       help='Product conversions JSON file (sales mode)')
    parser.add_argument('--recipes', type=str,
                       help='Recipes JSON file; enables the Raw Consumption sheet (sales mode)')
    parser.add_argument('--transfers', type=str,
                       help='Transfer request workbook adding extra received stock (sales mode)')
    parser.add_argument('--outlet', type=str,
                       help='Outlet filter for transfer requests (defaults to the sales report outlet)')
    parser.add_argument('--mapping-file', type=str,
                       help=f"Name-mapping file (default {PATHS['mapping_file']})")
    parser.add_argument('--output', type=str,
                       help='Report path (default: timestamped file in the output folder)')
    parser.add_argument('--rules-dir', type=str,
                       help='Rule files directory (default reconcile_rules/)')
    parser.add_argument('--log-level', type=str, default='INFO',
                       choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])

    args = parser.parse_args(argv)

    # Setup logging
    logger = setup_logger(args.log_level)

    workflow = ReconcileWorkflow(rules_dir=args.rules_dir, mapping_file=args.mapping_file)

    products = load_collection(args.products, Product)
    stock_checks = load_collection(args.stock_checks, StockCheck)
    logger.info(f"Loaded {len(products)} products and {len(stock_checks)} stock checks")

    if args.mode == 'kitchen':
        summary = workflow.run_kitchen(args.workbook, products, stock_checks, output=args.output)
    else:
        summary = workflow.run_sales(
            args.workbook, products, stock_checks,
            conversions=load_collection(args.conversions, ProductConversion),
            recipes=load_collection(args.recipes, Recipe),
            transfers=args.transfers,
            outlet=args.outlet,
            output=args.output,
        )

    logger.info(f"Summary: {json.dumps(summary, indent=2, default=str)}")
    return 0 if summary['ok'] else 1


if __name__ == '__main__':
    sys.exit(main())
