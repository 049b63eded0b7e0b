#!/usr/bin/env python3
"""
Sales Reconciler
Reconciles a daily sales report against the same day's stock check.

For every sold row the product is resolved (exact name+unit, saved name
mapping, then fuzzy match) and its stock-check figures are pulled in:

    Expected Closing = Opening + Received - Sold - Wastage
    Discrepancy      = Opening + Received - Sold - Closing - Wastage

Same-named products in other units are folded into the sold product's
totals through ProductConversion edges before the discrepancy is computed.
Each variant's own unconverted figures are kept in split_units.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models import (
    Product, ProductConversion, ReconciledRow, SalesReconcileResult, SplitUnit, StockCheck, StockCount,
)
from step1_extract.region_locator import FixedCellMetadata, FixedColumnTable, SheetMetadata, locate_metadata
from step1_extract.workbook_reader import WorkbookReadError, WorkbookSource, clean_number, load_workbook_source, value_text
from step1_extract.date_normalizer import normalize_date
from step2_matching.name_mapping_cache import NameMappingCache
from step2_matching.product_matcher import MatchVerdict, ProductMatcher

import config

logger = logging.getLogger(__name__)

NOTE_MISSING_NAME_OR_UNIT = 'Missing product name or unit'
NOTE_INVALID_SOLD = 'Invalid sold quantity'
NOTE_NEEDS_CONFIRMATION = 'Product name may be truncated - needs confirmation'
NOTE_NOT_FOUND = 'Product not found in master list'


@dataclass
class SalesRow:
    """One extracted sales report row"""
    row_index: Optional[int]
    name: Optional[str]
    unit: Optional[str]
    sold: Optional[float]
    sold_raw: Any = None


@dataclass
class _Figures:
    opening: float
    received: float
    wastage: float
    closing: float


def _name_unit_key(name: str, unit: str) -> str:
    return f"{name.strip().lower()}__{unit.strip().lower()}"


def _default_layout() -> Dict:
    layout = dict(config.SALES_LAYOUT)
    layout['row_scan'] = dict(config.ROW_SCAN)
    return layout


class SalesReconciler:
    """Reconcile sales report rows against stock checks"""

    def __init__(self, products: Iterable[Product], stock_checks: Iterable[StockCheck],
                 conversions: Optional[Iterable[ProductConversion]] = None,
                 mapping_cache: Optional[NameMappingCache] = None,
                 matcher: Optional[ProductMatcher] = None,
                 layout: Optional[Dict] = None,
                 use_saved_mappings: bool = True):
        """
        Initialize sales reconciler

        Args:
            products: Catalog products
            stock_checks: Stock checks for any outlets and dates
            conversions: ProductConversion edges between unit variants
            mapping_cache: Confirmed name mappings (in-memory cache if None)
            matcher: Fuzzy matcher (default thresholds if None)
            layout: Sales layout (RuleLoader.get_layout('sales_layout') or config default)
            use_saved_mappings: Consult the mapping cache before fuzzy matching
        """
        self.products = list(products)
        self.stock_checks = list(stock_checks)
        self.conversions = list(conversions or [])
        self.mapping_cache = mapping_cache if mapping_cache is not None else NameMappingCache()
        self.matcher = matcher or ProductMatcher()
        self.layout = layout or _default_layout()
        self.use_saved_mappings = use_saved_mappings

        self.products_by_id: Dict[str, Product] = {p.id: p for p in self.products}

        self.products_by_name_unit: Dict[str, Product] = {}
        self.products_by_name: Dict[str, List[Product]] = {}
        for product in self.products:
            self.products_by_name_unit.setdefault(_name_unit_key(product.name, product.unit), product)
            self.products_by_name.setdefault(product.name.strip().lower(), []).append(product)

        # (from_product_id, to_product_id) -> factor; first edge wins
        self.conversion_factors: Dict[Tuple[str, str], float] = {}
        for conv in self.conversions:
            self.conversion_factors.setdefault((conv.from_product_id, conv.to_product_id), conv.conversion_factor)

    # ------------------------------------------------------------------
    # Workbook entry point
    # ------------------------------------------------------------------

    def extract_rows(self, ws) -> List[SalesRow]:
        """Read product rows from the sales sheet"""
        table_layout = self.layout['table']
        row_scan = self.layout.get('row_scan', config.ROW_SCAN)
        table = FixedColumnTable(
            first_row=table_layout['first_row'],
            columns=table_layout['columns'],
            min_last_row=table_layout.get('min_last_row', 0),
            max_consecutive_empty=row_scan['max_consecutive_empty_rows'],
        )
        rows = []
        for table_row in table.read(ws):
            values = table_row.values
            rows.append(SalesRow(
                row_index=table_row.row_index,
                name=value_text(values.get('name')),
                unit=value_text(values.get('unit')),
                sold=clean_number(values.get('sold')),
                sold_raw=values.get('sold'),
            ))
        return rows

    def read_metadata(self, wb) -> SheetMetadata:
        """Outlet and sales date from the report's fixed cells"""
        metadata_layout = self.layout['metadata']
        return locate_metadata(wb, [
            FixedCellMetadata(
                outlet_cell=metadata_layout['outlet_cell'],
                date_cell=metadata_layout['date_cell'],
                sheet_index=self.layout.get('sheet_index', 0),
            ),
        ])

    def reconcile_workbook(self, source: WorkbookSource,
                           extra_received: Optional[Dict[str, float]] = None) -> SalesReconcileResult:
        """
        Reconcile a sales report workbook

        Args:
            source: Workbook input (bytes, base64 text, path or file object)
            extra_received: product id -> quantity received outside the stock check
                            (e.g. from parse_transfer_received)

        Returns:
            SalesReconcileResult; hard failures carry zero rows and errors
        """
        try:
            wb = load_workbook_source(source)
        except WorkbookReadError as e:
            logger.error(f"Failed to parse sales workbook: {e}", exc_info=True)
            return SalesReconcileResult(errors=[f"Failed to parse sales workbook: {e}"])

        if not wb.worksheets:
            return SalesReconcileResult(errors=['Workbook contains no sheets'])

        sheet_index = self.layout.get('sheet_index', 0)
        if sheet_index >= len(wb.worksheets):
            return SalesReconcileResult(errors=[f"Workbook has no sheet at index {sheet_index}"])
        ws = wb.worksheets[sheet_index]

        metadata = self.read_metadata(wb)
        sales_rows = self.extract_rows(ws)
        logger.info(f"Read {len(sales_rows)} sales rows from '{ws.title}'")

        return self.reconcile_rows(sales_rows, metadata.outlet, metadata.date or metadata.date_raw, extra_received)

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def _checks_for_outlet(self, outlet: str) -> List[StockCheck]:
        wanted = outlet.strip().lower()
        return [c for c in self.stock_checks if (c.outlet or '').strip().lower() == wanted]

    def _available_outlets(self) -> str:
        outlets = []
        for check in self.stock_checks:
            if check.outlet and check.outlet not in outlets:
                outlets.append(check.outlet)
        return ', '.join(outlets) or 'None'

    def reconcile_rows(self, sales_rows: Iterable[SalesRow], outlet: Optional[str],
                       sheet_date_raw: Any, extra_received: Optional[Dict[str, float]] = None) -> SalesReconcileResult:
        """
        Reconcile already-extracted sales rows

        Args:
            sales_rows: Rows from the sales report
            outlet: Outlet name from the report
            sheet_date_raw: Sales date as found in the report (any format normalize_date accepts)
            extra_received: product id -> extra received quantity

        Returns:
            SalesReconcileResult
        """
        date_cell = self.layout['metadata']['date_cell']
        outlet_cell = self.layout['metadata']['outlet_cell']
        sheet_date = normalize_date(sheet_date_raw)
        result = SalesReconcileResult(outlet_from_sheet=outlet, sheet_date=sheet_date)

        if not outlet:
            result.errors.append(f"Missing outlet in sheet cell {outlet_cell}")
        if not sheet_date:
            raw_text = value_text(sheet_date_raw) or '(empty)'
            result.errors.append(f"Missing or invalid sales date in sheet cell {date_cell}. Found: \"{raw_text}\"")
        if result.errors:
            return result

        candidates = self._checks_for_outlet(outlet)
        if not candidates:
            result.errors.append(
                f"No matching stock check found for outlet \"{outlet}\" from {outlet_cell}. "
                f"Available outlets in stock checks: {self._available_outlets()}"
            )
            return result

        result.outlet_matched = True
        matched_check = next((c for c in candidates if c.date == sheet_date), None)
        if matched_check is None:
            latest = max(candidates, key=lambda c: c.timestamp)
            result.matched_outlet_name = latest.outlet or outlet
            result.stock_check_date = latest.date
            result.errors.extend([
                "DATE MISMATCH:",
                f"  Sales date from sheet ({date_cell}): {sheet_date}",
                f"  Expected stock check date: {sheet_date} (same date)",
                f"  Found stock check date: {latest.date}",
                f"  Please create a stock check for {sheet_date} or adjust the sales date",
            ])
            logger.warning(f"Date mismatch for outlet '{outlet}': sales {sheet_date}, latest stock check {latest.date}")
            return result

        result.matched_outlet_name = matched_check.outlet or outlet
        result.stock_check_date = matched_check.date
        result.date_matched = True
        logger.info(f"Reconciling against stock check {matched_check.id} ({result.matched_outlet_name}, {matched_check.date})")

        counts = {c.product_id: c for c in matched_check.counts}
        extra_received = extra_received or {}

        for sales_row in sales_rows:
            row = self._reconcile_row(sales_row, counts, extra_received, result.errors)
            if row is not None:
                result.rows.append(row)

        resolved = sum(1 for r in result.rows if r.resolved)
        logger.info(
            f"Sales reconciliation: {resolved} resolved, {len(result.pending_confirmations)} need confirmation, "
            f"{len(result.errors)} errors"
        )
        return result

    def _unresolved(self, sales_row: SalesRow, sold: float, note: str, **kwargs) -> ReconciledRow:
        return ReconciledRow(
            name=sales_row.name or '',
            unit=sales_row.unit or '',
            sold=sold,
            notes=note,
            row_index=sales_row.row_index,
            **kwargs,
        )

    def _reconcile_row(self, sales_row: SalesRow, counts: Dict[str, StockCount],
                       extra_received: Dict[str, float], errors: List[str]) -> Optional[ReconciledRow]:
        label = f"Row {sales_row.row_index}" if sales_row.row_index is not None else "Row"

        sold = sales_row.sold
        if sold is None and value_text(sales_row.sold_raw) is not None:
            errors.append(f"{label}: invalid sold quantity \"{value_text(sales_row.sold_raw)}\" for \"{sales_row.name or ''}\"")
            return self._unresolved(sales_row, 0.0, NOTE_INVALID_SOLD)
        sold = sold or 0.0

        if not sales_row.name or not sales_row.unit:
            errors.append(f"{label}: missing product name or unit (name=\"{sales_row.name or ''}\", unit=\"{sales_row.unit or ''}\")")
            return self._unresolved(sales_row, sold, NOTE_MISSING_NAME_OR_UNIT)

        product, match = self._resolve_product(sales_row.name, sales_row.unit)
        if product is None:
            if match is not None and match.verdict == MatchVerdict.NEEDS_CONFIRMATION:
                return self._unresolved(
                    sales_row, sold, NOTE_NEEDS_CONFIRMATION,
                    needs_mapping=True, possible_matches=match.possible_matches,
                )
            errors.append(f"{label}: product \"{sales_row.name}\" ({sales_row.unit}) not found in master list")
            return self._unresolved(sales_row, sold, NOTE_NOT_FOUND)

        figures, split_units = self._aggregate(product, sold, counts, extra_received)

        expected_closing = figures.opening + figures.received - sold - figures.wastage
        discrepancy = figures.opening + figures.received - sold - figures.closing - figures.wastage
        logger.debug(
            f"{sales_row.name} ({sales_row.unit}): Discrepancy = {figures.opening} + {figures.received} - {sold} "
            f"- {figures.closing} - {figures.wastage} = {discrepancy}"
        )

        return ReconciledRow(
            name=sales_row.name,
            unit=sales_row.unit,
            sold=sold,
            opening=figures.opening,
            received=figures.received,
            wastage=figures.wastage,
            closing=figures.closing,
            expected_closing=expected_closing,
            discrepancy=discrepancy,
            product_id=product.id,
            row_index=sales_row.row_index,
            split_units=split_units or None,
        )

    def _resolve_product(self, name: str, unit: str):
        """Return (product, match_result); match_result is None when no fuzzy match ran"""
        product = self.products_by_name_unit.get(_name_unit_key(name, unit))
        if product is not None:
            return product, None

        if self.use_saved_mappings:
            product = self.mapping_cache.resolve(name, self.products_by_id)
            if product is not None:
                logger.debug(f"Saved mapping: '{name}' -> '{product.name}' ({product.unit})")
                return product, None

        match = self.matcher.find_best_match(name, self.products, unit=unit)
        if match.verdict == MatchVerdict.AUTO_MATCH:
            product = self.products_by_id.get(match.match.id)
            if product is not None:
                self.mapping_cache.put(name, product.id, product.name)
                return product, match
        return None, match

    def _figures_for(self, product_id: str, counts: Dict[str, StockCount],
                     extra_received: Dict[str, float]) -> Optional[_Figures]:
        count = counts.get(product_id)
        if count is None:
            return None
        return _Figures(
            opening=count.opening_stock or 0.0,
            received=(count.received_stock or 0.0) + extra_received.get(product_id, 0.0),
            wastage=count.wastage or 0.0,
            closing=count.quantity or 0.0,
        )

    def _conversion_to(self, variant_id: str, primary_id: str) -> Optional[float]:
        """
        Multiplier expressing one variant unit in primary units:
        a variant -> primary edge multiplies, a primary -> variant edge divides
        """
        factor = self.conversion_factors.get((variant_id, primary_id))
        if factor:
            return factor
        factor = self.conversion_factors.get((primary_id, variant_id))
        if factor:
            return 1.0 / factor
        return None

    def _aggregate(self, product: Product, sold: float, counts: Dict[str, StockCount],
                   extra_received: Dict[str, float]) -> Tuple[_Figures, List[SplitUnit]]:
        """Primary figures plus convertible same-name variants, and the per-unit split"""
        primary = self._figures_for(product.id, counts, extra_received)
        if primary is None:
            primary = _Figures(opening=0.0, received=extra_received.get(product.id, 0.0), wastage=0.0, closing=0.0)

        same_name = self.products_by_name.get(product.name.strip().lower(), [])
        if len(same_name) < 2:
            return primary, []

        totals = _Figures(primary.opening, primary.received, primary.wastage, primary.closing)
        unit_figures = [(product, primary)]

        for variant in same_name:
            if variant.id == product.id:
                continue
            figures = self._figures_for(variant.id, counts, extra_received)
            if figures is None or figures.opening + figures.received <= 0:
                continue
            unit_figures.append((variant, figures))

            factor = self._conversion_to(variant.id, product.id)
            if factor is None:
                logger.debug(f"No conversion between {variant.name} ({variant.unit}) and {product.unit}; listed only")
                continue

            logger.debug(
                f"Converting {variant.name} ({variant.unit}) to {product.unit}: factor={factor} "
                f"opening={figures.opening * factor} received={figures.received * factor} "
                f"wastage={figures.wastage * factor} closing={figures.closing * factor}"
            )
            totals.opening += figures.opening * factor
            totals.received += figures.received * factor
            totals.wastage += figures.wastage * factor
            totals.closing += figures.closing * factor

        if len(unit_figures) < 2:
            return primary, []

        split_units = []
        for variant, figures in unit_figures:
            unit_sold = sold if variant.id == product.id else 0.0
            expected = figures.opening + figures.received - unit_sold - figures.wastage
            split_units.append(SplitUnit(
                unit=variant.unit,
                opening=figures.opening,
                received=figures.received,
                wastage=figures.wastage,
                closing=figures.closing,
                expected_closing=expected,
                discrepancy=expected - figures.closing,
                product_id=variant.id,
            ))
        return totals, split_units


def reconcile_sales(source: WorkbookSource, products: Iterable[Product], stock_checks: Iterable[StockCheck],
                    conversions: Optional[Iterable[ProductConversion]] = None,
                    extra_received: Optional[Dict[str, float]] = None,
                    mapping_cache: Optional[NameMappingCache] = None,
                    use_saved_mappings: bool = True) -> SalesReconcileResult:
    """Reconcile a sales report workbook with default matcher and layout"""
    reconciler = SalesReconciler(
        products, stock_checks,
        conversions=conversions,
        mapping_cache=mapping_cache,
        use_saved_mappings=use_saved_mappings,
    )
    return reconciler.reconcile_workbook(source, extra_received=extra_received)
