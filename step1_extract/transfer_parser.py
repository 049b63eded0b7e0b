#!/usr/bin/env python3
"""
Transfer Request Parser
Sums received quantities per product from stock-transfer request exports.

The result is the "extra received" side map handed to the sales reconciler:
stock that arrived through transfer requests but was not entered on the
stock check itself.
"""

import logging
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from .date_normalizer import normalize_date
from .workbook_reader import (
    WorkbookReadError, WorkbookSource, clean_number, load_workbook_source, sheet_rows, value_text,
)

import config

logger = logging.getLogger(__name__)


def _product_field(product: Any, key: str) -> str:
    if isinstance(product, dict):
        return str(product.get(key) or '')
    return str(getattr(product, key, '') or '')


def _find_column(headers, token: str) -> int:
    for idx, header in enumerate(headers):
        if token in header:
            return idx
    return -1


def parse_transfer_received(source: WorkbookSource, products: Iterable[Any],
                            outlet: Optional[str] = None, date: Optional[str] = None,
                            layout: Optional[Dict] = None) -> Dict[str, float]:
    """
    Parse received quantities from a transfer request workbook.

    Every sheet is read; its first row is the header. Rows are kept when the
    destination outlet and the row date match the filters (rows missing
    either value are kept).

    Args:
        source: Workbook input (bytes, base64 text, path or file object)
        products: Catalog products (objects or dicts with id, name, unit)
        outlet: Only count rows sent to this outlet (case-insensitive)
        date: Only count rows dated YYYY-MM-DD
        layout: Transfer layout (defaults to config.TRANSFER_LAYOUT)

    Returns:
        Dictionary of product id -> total received quantity
    """
    received: Dict[str, float] = {}
    tokens = (layout or config.TRANSFER_LAYOUT)['header_tokens']

    try:
        wb = load_workbook_source(source)
    except WorkbookReadError as e:
        logger.warning(f"Could not read transfer requests workbook: {e}")
        return received

    by_name_unit: Dict[str, Any] = {}
    by_name: Dict[str, Any] = {}
    for product in products:
        name = _product_field(product, 'name').lower()
        by_name_unit.setdefault(f"{name}__{_product_field(product, 'unit').lower()}", product)
        by_name.setdefault(name, product)

    wanted_outlet = outlet.strip().lower() if outlet else None

    for ws in wb.worksheets:
        frame = pd.DataFrame(sheet_rows(ws), dtype=object)
        if frame.empty:
            continue

        headers = [str(h).lower().strip() if not pd.isna(h) else '' for h in frame.iloc[0].tolist()]
        idx_product = _find_column(headers, tokens['product'])
        idx_unit = _find_column(headers, tokens['unit'])
        idx_quantity = _find_column(headers, tokens['quantity'])
        idx_to_outlet = _find_column(headers, tokens['to_outlet'])
        idx_date = _find_column(headers, tokens['date'])

        if idx_product == -1 or idx_quantity == -1:
            logger.debug(f"Sheet '{ws.title}' has no product/quantity header, skipping")
            continue

        sheet_total = 0
        for r in range(1, len(frame)):
            row = frame.iloc[r].tolist()
            name = value_text(row[idx_product]) if not pd.isna(row[idx_product]) else None
            quantity = clean_number(row[idx_quantity])
            if not name or not quantity:
                continue

            if wanted_outlet and idx_to_outlet != -1 and not pd.isna(row[idx_to_outlet]):
                to_outlet = value_text(row[idx_to_outlet])
                if to_outlet and to_outlet.lower() != wanted_outlet:
                    continue

            if date and idx_date != -1 and not pd.isna(row[idx_date]):
                row_date = normalize_date(row[idx_date]) or value_text(row[idx_date])
                if row_date and row_date != date:
                    continue

            unit = ''
            if idx_unit != -1 and not pd.isna(row[idx_unit]):
                unit = value_text(row[idx_unit]) or ''

            product = by_name_unit.get(f"{name.lower()}__{unit.lower()}") if unit else None
            product = product or by_name.get(name.lower())
            if product is None:
                logger.debug(f"Transfer row {r + 1} on '{ws.title}': unknown product '{name}' ({unit})")
                continue

            product_id = _product_field(product, 'id')
            received[product_id] = received.get(product_id, 0) + quantity
            sheet_total += 1

        logger.info(f"Sheet '{ws.title}': {sheet_total} transfer rows counted")

    return received
