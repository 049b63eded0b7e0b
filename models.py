#!/usr/bin/env python3
"""
Data models for stock reconciliation

Catalog inputs (products, stock checks, conversions, recipes) come from the
app's sync layer as JSON with camelCase keys; from_dict accepts either
camelCase or snake_case. Reconciliation outputs are never persisted.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present in data (camelCase or snake_case)"""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    return float(value)


@dataclass
class Product:
    id: str
    name: str
    unit: str
    type: str = 'raw'  # menu | raw | kitchen
    category: Optional[str] = None
    sales_based_raw_calc: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Product':
        return cls(
            id=str(data['id']),
            name=str(data.get('name', '')),
            unit=str(data.get('unit', '')),
            type=str(data.get('type', 'raw')),
            category=data.get('category'),
            sales_based_raw_calc=bool(_pick(data, 'salesBasedRawCalc', 'sales_based_raw_calc', default=False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StockCount:
    product_id: str
    quantity: Optional[float]  # Closing count
    opening_stock: Optional[float] = None
    received_stock: Optional[float] = None
    wastage: Optional[float] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StockCount':
        return cls(
            product_id=str(_pick(data, 'productId', 'product_id')),
            quantity=_optional_float(data.get('quantity')),
            opening_stock=_optional_float(_pick(data, 'openingStock', 'opening_stock')),
            received_stock=_optional_float(_pick(data, 'receivedStock', 'received_stock')),
            wastage=_optional_float(data.get('wastage')),
            notes=data.get('notes'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StockCheck:
    id: str
    date: str  # YYYY-MM-DD
    outlet: Optional[str]
    timestamp: int = 0
    counts: List[StockCount] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StockCheck':
        return cls(
            id=str(data['id']),
            date=str(data.get('date', '')),
            outlet=data.get('outlet'),
            timestamp=int(data.get('timestamp') or 0),
            counts=[StockCount.from_dict(c) for c in data.get('counts', [])],
        )

    def count_for(self, product_id: str) -> Optional[StockCount]:
        for count in self.counts:
            if count.product_id == product_id:
                return count
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProductConversion:
    """Directed edge: 1 unit of from_product = conversion_factor units of to_product"""
    from_product_id: str
    to_product_id: str
    conversion_factor: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProductConversion':
        return cls(
            from_product_id=str(_pick(data, 'fromProductId', 'from_product_id')),
            to_product_id=str(_pick(data, 'toProductId', 'to_product_id')),
            conversion_factor=float(_pick(data, 'conversionFactor', 'conversion_factor')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RecipeComponent:
    raw_product_id: str
    quantity_per_unit: float


@dataclass
class Recipe:
    menu_product_id: str
    components: List[RecipeComponent] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Recipe':
        return cls(
            menu_product_id=str(_pick(data, 'menuProductId', 'menu_product_id')),
            components=[
                RecipeComponent(
                    raw_product_id=str(_pick(c, 'rawProductId', 'raw_product_id')),
                    quantity_per_unit=float(_pick(c, 'quantityPerUnit', 'quantity_per_unit', default=0)),
                )
                for c in data.get('components', [])
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProductNameMapping:
    truncated_name: str
    full_product_id: str
    full_product_name: str
    added_at: int  # Epoch milliseconds

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProductNameMapping':
        return cls(
            truncated_name=str(_pick(data, 'truncatedName', 'truncated_name')),
            full_product_id=str(_pick(data, 'fullProductId', 'full_product_id')),
            full_product_name=str(_pick(data, 'fullProductName', 'full_product_name', default='')),
            added_at=int(_pick(data, 'addedAt', 'added_at', default=0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'truncatedName': self.truncated_name,
            'fullProductId': self.full_product_id,
            'fullProductName': self.full_product_name,
            'addedAt': self.added_at,
        }


# ---------------------------------------------------------------------------
# Reconciliation outputs
# ---------------------------------------------------------------------------

@dataclass
class SplitUnit:
    """One unit-variant's own, unconverted figures"""
    unit: str
    opening: float
    received: float
    wastage: float
    closing: float
    expected_closing: float
    discrepancy: float
    product_id: Optional[str] = None


@dataclass
class ReconciledRow:
    name: str
    unit: str
    sold: float
    opening: Optional[float] = None
    received: Optional[float] = None
    wastage: Optional[float] = None
    closing: Optional[float] = None
    expected_closing: Optional[float] = None
    discrepancy: Optional[float] = None
    product_id: Optional[str] = None
    notes: Optional[str] = None
    row_index: Optional[int] = None
    needs_mapping: bool = False
    possible_matches: Optional[List[Any]] = None
    split_units: Optional[List[SplitUnit]] = None

    @property
    def resolved(self) -> bool:
        return self.product_id is not None and self.discrepancy is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SalesReconcileResult:
    outlet_from_sheet: Optional[str] = None
    outlet_matched: bool = False
    matched_outlet_name: Optional[str] = None
    stock_check_date: Optional[str] = None
    sheet_date: Optional[str] = None
    date_matched: bool = False
    rows: List[ReconciledRow] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def pending_confirmations(self) -> List[ReconciledRow]:
        return [r for r in self.rows if r.needs_mapping]


@dataclass
class RawConsumptionRow:
    raw_product_id: str
    raw_name: str
    raw_unit: str
    opening_stock: Optional[float]
    received_stock: Optional[float]
    total_stock: Optional[float]
    consumed: float
    expected_closing: Optional[float]
    discrepancy: Optional[float]


@dataclass
class RawConsumptionResult:
    outlet: Optional[str]
    date: Optional[str]
    rows: List[RawConsumptionRow] = field(default_factory=list)


@dataclass
class KitchenStockDiscrepancy:
    product_name: str
    unit: str
    opening_stock: float
    received_in_stock_check: float
    kitchen_production: float
    discrepancy: float
    product_id: Optional[str] = None
    notes: Optional[str] = None
    needs_mapping: bool = False
    possible_matches: Optional[List[Any]] = None


@dataclass
class KitchenStockCheckResult:
    production_date: Optional[str] = None
    stock_check_date: Optional[str] = None
    outlet_name: Optional[str] = None
    matched: bool = False
    discrepancies: List[KitchenStockDiscrepancy] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def pending_confirmations(self) -> List[KitchenStockDiscrepancy]:
        return [d for d in self.discrepancies if d.needs_mapping]
