"""Pipelines - the four independently triggered sync runs.

- material_requests: poll completed material requests, post and reverse
- work_orders: webhook, post labour cost once per order
- stock_sync: correct Infraspeak stock quantities from Odoo
- products: add missing Odoo products to the Infraspeak catalogue
"""

from pipelines.handler import (
    FailureReport,
    PipelineResponse,
    SyncContext,
    build_context,
    connected,
    format_failure_notice,
    run_pipeline,
)
from pipelines.material_requests import MaterialRequestProcessor, sync_material_requests
from pipelines.work_orders import WorkOrderEvent, build_labour_posting, sync_work_order
from pipelines.stock_sync import sync_stock_drift
from pipelines.products import sync_products, unmatched_product_codes

__all__ = [
    "FailureReport",
    "PipelineResponse",
    "SyncContext",
    "build_context",
    "connected",
    "format_failure_notice",
    "run_pipeline",
    "MaterialRequestProcessor",
    "sync_material_requests",
    "WorkOrderEvent",
    "build_labour_posting",
    "sync_work_order",
    "sync_stock_drift",
    "sync_products",
    "unmatched_product_codes",
]
