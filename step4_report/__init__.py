"""
Step 4: Report
Exports reconciliation results to formatted Excel workbooks.
"""

from .report_exporter import export_sales_report, export_kitchen_report, result_summary

__all__ = [
    'export_sales_report',
    'export_kitchen_report',
    'result_summary',
]
