"""
Step 3: Reconcile
Sales and kitchen production reconciliation against stock checks, and
raw-material consumption derived from sales.
"""

from .sales_reconciler import SalesReconciler, SalesRow, reconcile_sales
from .raw_consumption import compute_raw_consumption
from .kitchen_reconciler import KitchenReconciler, KitchenRow, reconcile_kitchen

__all__ = [
    'SalesReconciler',
    'SalesRow',
    'reconcile_sales',
    'compute_raw_consumption',
    'KitchenReconciler',
    'KitchenRow',
    'reconcile_kitchen',
]
