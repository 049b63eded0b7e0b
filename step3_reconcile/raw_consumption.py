#!/usr/bin/env python3
"""
Raw-Material Consumption Calculator
Derives raw-material consumption implied by sold menu items.

Only menu products flagged sales_based_raw_calc with a recipe contribute.
Consumption is compared against supply, not against a counted closing:

    Discrepancy      = Consumed - Opening - Received
    Expected Closing = Counted Stock - Consumed
"""

import logging
from typing import Dict, Iterable, Optional

from models import Product, RawConsumptionResult, RawConsumptionRow, Recipe, SalesReconcileResult, StockCheck, StockCount

logger = logging.getLogger(__name__)


def _round(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(value, 3)


def _matched_counts(sales_result: SalesReconcileResult, stock_checks: Iterable[StockCheck],
                    outlet: Optional[str]) -> Dict[str, StockCount]:
    """Counts of the stock check the sales result matched; empty unless the date matched"""
    if not sales_result.date_matched or not outlet:
        return {}
    for check in stock_checks:
        if (check.outlet or '').strip().lower() == outlet.strip().lower() and check.date == sales_result.sheet_date:
            return {c.product_id: c for c in check.counts}
    return {}


def compute_raw_consumption(sales_result: SalesReconcileResult, stock_checks: Iterable[StockCheck],
                            products: Iterable[Product], recipes: Iterable[Recipe]) -> RawConsumptionResult:
    """
    Compute raw-material consumption from a sales reconciliation

    Args:
        sales_result: Result of SalesReconciler.reconcile_workbook
        stock_checks: Stock checks (the matched one supplies opening/received/counted stock)
        products: Catalog products
        recipes: Recipes keyed by menu product

    Returns:
        RawConsumptionResult with rows sorted by raw-material name
    """
    outlet = sales_result.matched_outlet_name or sales_result.outlet_from_sheet
    date = sales_result.stock_check_date or sales_result.sheet_date
    counts = _matched_counts(sales_result, stock_checks, outlet)

    products_by_id = {p.id: p for p in products}
    recipe_by_menu = {r.menu_product_id: r for r in recipes}

    sold_by_product: Dict[str, float] = {}
    for row in sales_result.rows:
        if row.product_id:
            sold_by_product[row.product_id] = sold_by_product.get(row.product_id, 0.0) + (row.sold or 0.0)

    consumed_by_raw: Dict[str, float] = {}
    for product_id, sold in sold_by_product.items():
        product = products_by_id.get(product_id)
        if product is None or product.type != 'menu' or sold <= 0:
            continue
        if not product.sales_based_raw_calc:
            continue
        recipe = recipe_by_menu.get(product_id)
        if recipe is None:
            continue
        for component in recipe.components:
            consumed_by_raw[component.raw_product_id] = (
                consumed_by_raw.get(component.raw_product_id, 0.0) + sold * component.quantity_per_unit
            )

    rows = []
    for raw_id, consumed in consumed_by_raw.items():
        raw = products_by_id.get(raw_id)
        if raw is None:
            logger.warning(f"Recipe component {raw_id} is not in the catalog, skipping")
            continue

        count = counts.get(raw_id)
        opening = count.opening_stock if count else None
        received = count.received_stock if count else None
        total_stock = count.quantity if count else None

        discrepancy = None
        if opening is not None and received is not None:
            discrepancy = consumed - opening - received
        expected_closing = total_stock - consumed if total_stock is not None else None

        rows.append(RawConsumptionRow(
            raw_product_id=raw_id,
            raw_name=raw.name,
            raw_unit=raw.unit,
            opening_stock=opening,
            received_stock=received,
            total_stock=total_stock,
            consumed=round(consumed, 3),
            expected_closing=_round(expected_closing),
            discrepancy=_round(discrepancy),
        ))

    rows.sort(key=lambda r: r.raw_name.lower())
    logger.info(f"Raw consumption: {len(rows)} raw materials from {len(sold_by_product)} sold products")
    return RawConsumptionResult(outlet=outlet, date=date, rows=rows)
