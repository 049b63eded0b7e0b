#!/usr/bin/env python3
"""
Kitchen Production Reconciler
Compares a production sheet's declared kitchen output with opening stock and
stock received in the same day's stock check:

    Discrepancy = Kitchen Production - Opening Stock - Received in Stock Check

Two sheet formats are supported:
- A "Discrepancies" sheet with a header row (also what export_kitchen_report writes)
- The legacy sheet where row 9 holds one quantity column per outlet
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from models import KitchenStockCheckResult, KitchenStockDiscrepancy, Product, StockCheck
from step1_extract.region_locator import (
    FixedCellMetadata, HeaderScanTable, OutletColumnTable, SummarySheetMetadata, TableRow, locate_metadata,
)
from step1_extract.workbook_reader import WorkbookReadError, WorkbookSource, clean_number, load_workbook_source, value_text
from step2_matching.name_mapping_cache import NameMappingCache
from step2_matching.product_matcher import MatchVerdict, ProductMatcher

import config

logger = logging.getLogger(__name__)

NOTE_NOT_FOUND = 'Product not found in master list; sheet figures used'
NOTE_NEEDS_CONFIRMATION = 'Product name may be truncated - needs confirmation; sheet figures used'


@dataclass
class KitchenRow:
    row_index: int
    product_name: str
    unit: str
    kitchen_production: float
    opening_from_sheet: Optional[float] = None
    received_from_sheet: Optional[float] = None


def _default_layout() -> Dict:
    layout = dict(config.KITCHEN_LAYOUT)
    layout['row_scan'] = dict(config.ROW_SCAN)
    return layout


class KitchenReconciler:
    """Reconcile kitchen production sheets against stock checks"""

    def __init__(self, products: Iterable[Product], stock_checks: Iterable[StockCheck],
                 mapping_cache: Optional[NameMappingCache] = None,
                 matcher: Optional[ProductMatcher] = None,
                 layout: Optional[Dict] = None):
        self.products = list(products)
        self.stock_checks = list(stock_checks)
        self.mapping_cache = mapping_cache if mapping_cache is not None else NameMappingCache()
        self.matcher = matcher or ProductMatcher()
        self.layout = layout or _default_layout()

        self.products_by_id: Dict[str, Product] = {p.id: p for p in self.products}
        self.products_by_name_unit: Dict[str, Product] = {}
        for product in self.products:
            key = f"{product.name.strip().lower()}__{product.unit.strip().lower()}"
            self.products_by_name_unit.setdefault(key, product)

        row_scan = self.layout.get('row_scan', config.ROW_SCAN)
        self.max_consecutive_empty = row_scan['max_consecutive_empty_rows']
        self.max_header_scan_rows = row_scan['max_header_scan_rows']

    # ------------------------------------------------------------------
    # Region strategies
    # ------------------------------------------------------------------

    def _metadata_strategies(self, wb):
        """Fixed cells first, unless a Summary sheet is present"""
        metadata = self.layout['metadata']
        summary = self.layout['summary']
        fixed = FixedCellMetadata(
            outlet_cell=metadata['outlet_cell'],
            date_cell=metadata['date_cell'],
            date_label=metadata.get('date_label'),
            all_sheets=True,
        )
        summary_sheet = SummarySheetMetadata(
            date_fields=summary['date_fields'],
            outlet_field=summary['outlet_field'],
        )
        if summary_sheet.detect(wb):
            return [summary_sheet, fixed]
        return [fixed, summary_sheet]

    def _discrepancies_table(self) -> HeaderScanTable:
        sheet = self.layout['discrepancies_sheet']
        return HeaderScanTable(
            product_tokens=sheet['product_tokens'],
            unit_tokens=sheet['unit_tokens'],
            quantity_tokens=sheet['quantity_tokens'],
            max_scan=self.max_header_scan_rows,
            fallback_quantity_index=sheet.get('fallback_quantity_index'),
            max_consecutive_empty=self.max_consecutive_empty,
        )

    def _legacy_table(self) -> OutletColumnTable:
        legacy = self.layout['legacy']
        return OutletColumnTable(
            header_row=legacy['outlet_header_row'],
            max_columns=legacy['max_columns'],
            name_column=legacy['columns']['name'],
            unit_column=legacy['columns']['unit'],
            first_row=legacy['first_row'],
            last_row=legacy['last_row'],
            max_consecutive_empty=self.max_consecutive_empty,
        )

    def _to_kitchen_rows(self, table_rows: List[TableRow], errors: List[str],
                         skip_rows: Iterable[int] = ()) -> List[KitchenRow]:
        rows = []
        for table_row in table_rows:
            if table_row.row_index in skip_rows:
                continue
            values = table_row.values
            name = value_text(values.get('name'))
            unit = value_text(values.get('unit'))
            raw_quantity = values.get('quantity')
            quantity = clean_number(raw_quantity)

            if name and quantity is None and value_text(raw_quantity) is not None:
                errors.append(
                    f"Row {table_row.row_index}: invalid kitchen production \"{value_text(raw_quantity)}\" for \"{name}\""
                )
                continue
            if not name or not unit or quantity is None:
                logger.debug(f"Row {table_row.row_index}: incomplete kitchen row skipped ({name!r}, {unit!r}, {raw_quantity!r})")
                continue

            rows.append(KitchenRow(
                row_index=table_row.row_index,
                product_name=name,
                unit=unit,
                kitchen_production=quantity,
                opening_from_sheet=clean_number(values.get('opening')),
                received_from_sheet=clean_number(values.get('received')),
            ))
        return rows

    def extract_rows(self, wb, outlet_names: List[Optional[str]], errors: List[str]) -> Optional[List[KitchenRow]]:
        """Kitchen rows from the Discrepancies sheet, else the legacy outlet column; None when neither is found"""
        name_token = self.layout['discrepancies_sheet']['sheet_name_contains'].lower()
        sheet = next((ws for ws in wb.worksheets if name_token in ws.title.lower()), None)
        if sheet is not None:
            table_rows = self._discrepancies_table().read(sheet)
            if table_rows:
                rows = self._to_kitchen_rows(table_rows, errors)
                if rows:
                    logger.info(f"Read {len(rows)} kitchen rows from '{sheet.title}' sheet")
                    return rows

        legacy = self._legacy_table()
        first_sheet = wb.worksheets[0]
        table_rows = legacy.read(first_sheet, outlet_names)
        if table_rows is None:
            return None
        rows = self._to_kitchen_rows(table_rows, errors, skip_rows=(legacy.header_row,))
        logger.info(f"Read {len(rows)} kitchen rows from legacy layout on '{first_sheet.title}'")
        return rows

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _resolve_product(self, name: str, unit: str):
        """Return (product, match_result); match_result is None when no fuzzy match ran"""
        product = self.products_by_name_unit.get(f"{name.strip().lower()}__{unit.strip().lower()}")
        if product is not None:
            return product, None

        product = self.mapping_cache.resolve(name, self.products_by_id)
        if product is not None:
            return product, None

        match = self.matcher.find_best_match(name, self.products, unit=unit)
        if match.verdict == MatchVerdict.AUTO_MATCH:
            product = self.products_by_id.get(match.match.id)
            if product is not None:
                self.mapping_cache.put(name, product.id, product.name)
                return product, match
        return None, match

    def _find_stock_check(self, outlet: str, date: str) -> Optional[StockCheck]:
        wanted = outlet.strip().lower()
        for check in self.stock_checks:
            if check.date == date and (check.outlet or '').strip().lower() == wanted:
                return check
        return None

    def _available_dates(self, outlet: str) -> str:
        wanted = outlet.strip().lower()
        dates = sorted({c.date for c in self.stock_checks if (c.outlet or '').strip().lower() == wanted})
        return ', '.join(dates) or 'None'

    def reconcile_workbook(self, source: WorkbookSource,
                           manual_stock_by_product_id: Optional[Dict[str, float]] = None) -> KitchenStockCheckResult:
        """
        Reconcile a kitchen production workbook

        Args:
            source: Workbook input (bytes, base64 text, path or file object)
            manual_stock_by_product_id: product id -> received quantity replacing the stock check's
                                        received figures (products missing from the map receive 0)

        Returns:
            KitchenStockCheckResult; hard failures carry no discrepancies and matched=False
        """
        try:
            wb = load_workbook_source(source)
        except WorkbookReadError as e:
            logger.error(f"Failed to parse kitchen stock workbook: {e}", exc_info=True)
            return KitchenStockCheckResult(errors=[f"Failed to parse kitchen stock workbook: {e}"])

        if not wb.worksheets:
            return KitchenStockCheckResult(errors=['Workbook contains no sheets'])

        metadata = locate_metadata(wb, self._metadata_strategies(wb))
        date_cell = self.layout['metadata']['date_cell']
        outlet_cell = self.layout['metadata']['outlet_cell']

        if not metadata.date:
            return KitchenStockCheckResult(errors=[
                f"Could not parse production date from workbook. Expected \"Date From DD/MM/YYYY\" in {date_cell} "
                f"or a summary row with \"Production Date\". Found: \"{metadata.date_raw or '(empty)'}\""
            ])

        result = KitchenStockCheckResult(production_date=metadata.date, stock_check_date=metadata.date)

        if not metadata.outlet:
            result.errors.append(
                f"Missing outlet name in workbook. Expected outlet in cell {outlet_cell} or summary row field \"Outlet\"."
            )
            return result
        result.outlet_name = metadata.outlet

        check = self._find_stock_check(metadata.outlet, metadata.date)
        if check is None:
            result.errors.append(
                f"No stock check found for outlet \"{metadata.outlet}\" on date {metadata.date}. "
                f"Stock check dates for this outlet: {self._available_dates(metadata.outlet)}"
            )
            return result
        result.outlet_name = check.outlet or metadata.outlet

        rows = self.extract_rows(wb, [check.outlet, metadata.outlet], result.errors)
        if rows is None:
            result.errors.append(
                f"Could not find kitchen production rows. Checked \"Discrepancies\" sheet and legacy outlet "
                f"column in row {self.layout['legacy']['outlet_header_row']} for \"{result.outlet_name}\"."
            )
            return result

        result.matched = True
        counts = {c.product_id: c for c in check.counts}

        for row in rows:
            result.discrepancies.append(self._reconcile_row(row, counts, manual_stock_by_product_id, result.errors))

        logger.info(
            f"Kitchen reconciliation for {result.outlet_name} on {result.production_date}: "
            f"{len(result.discrepancies)} rows, {len(result.errors)} errors"
        )
        return result

    def _reconcile_row(self, row: KitchenRow, counts: Dict[str, Any],
                       manual_stock: Optional[Dict[str, float]], errors: List[str]) -> KitchenStockDiscrepancy:
        product, match = self._resolve_product(row.product_name, row.unit)

        if product is None:
            opening = row.opening_from_sheet or 0.0
            received = row.received_from_sheet or 0.0
            unresolved = KitchenStockDiscrepancy(
                product_name=row.product_name,
                unit=row.unit,
                opening_stock=opening,
                received_in_stock_check=received,
                kitchen_production=row.kitchen_production,
                discrepancy=row.kitchen_production - opening - received,
                notes=NOTE_NOT_FOUND,
            )
            if match is not None and match.verdict == MatchVerdict.NEEDS_CONFIRMATION:
                unresolved.notes = NOTE_NEEDS_CONFIRMATION
                unresolved.needs_mapping = True
                unresolved.possible_matches = match.possible_matches
                return unresolved
            errors.append(f"Row {row.row_index}: product \"{row.product_name}\" ({row.unit}) not found in master list")
            return unresolved

        count = counts.get(product.id)
        check_opening = (count.opening_stock if count else None) or 0.0
        check_received = (count.received_stock if count else None) or 0.0

        if manual_stock is not None:
            received = manual_stock.get(product.id, 0.0)
        elif row.received_from_sheet is not None:
            received = row.received_from_sheet
        else:
            received = check_received
        opening = row.opening_from_sheet if row.opening_from_sheet is not None else check_opening

        discrepancy = row.kitchen_production - opening - received
        logger.debug(
            f"{row.product_name} ({row.unit}): Discrepancy = {row.kitchen_production} - {opening} - {received} = {discrepancy}"
        )
        return KitchenStockDiscrepancy(
            product_name=row.product_name,
            unit=row.unit,
            opening_stock=opening,
            received_in_stock_check=received,
            kitchen_production=row.kitchen_production,
            discrepancy=discrepancy,
            product_id=product.id,
        )


def reconcile_kitchen(source: WorkbookSource, products: Iterable[Product], stock_checks: Iterable[StockCheck],
                      manual_stock_by_product_id: Optional[Dict[str, float]] = None,
                      mapping_cache: Optional[NameMappingCache] = None) -> KitchenStockCheckResult:
    """Reconcile a kitchen production workbook with default matcher and layout"""
    reconciler = KitchenReconciler(products, stock_checks, mapping_cache=mapping_cache)
    return reconciler.reconcile_workbook(source, manual_stock_by_product_id=manual_stock_by_product_id)
