"""Stock drift pipeline (scheduled).

Brings Infraspeak warehouse quantities in line with Odoo stock quants.
"""

import asyncio
import logging

from core.errors import SyncError
from pipelines.handler import FailureReport, PipelineResponse, SyncContext, run_pipeline
from reconciliation.drift import plan_drift_movements, reconcile_drift


logger = logging.getLogger(__name__)


async def _sync(ctx: SyncContext, report: FailureReport) -> str:
    ledger_stock, products, materials, warehouses, field_quantities = await asyncio.gather(
        ctx.ledger.fetch_stock_snapshot(),
        ctx.ledger.fetch_products_with_stock(),
        ctx.field.fetch_materials(real_only=True),
        ctx.field.fetch_warehouses(),
        ctx.field.fetch_stock_quantities(),
    )
    logger.info(
        f"Drift inputs: {len(ledger_stock)} quants, {len(products)} products, "
        f"{len(materials)} materials, {len(warehouses)} warehouses, {len(field_quantities)} field quantities"
    )

    movements = plan_drift_movements(
        ledger_stock,
        field_quantities,
        products,
        materials,
        warehouses,
        strict_warehouse_matching=ctx.settings.strict_warehouse_matching,
    )
    if not movements:
        return "No stock quantity differences. Nothing to post"

    posted = await reconcile_drift(ctx.field, movements)
    failed = len(movements) - len(posted)
    if not posted:
        raise SyncError(f"All {failed} stock movements failed to post")
    ids = ",".join(p.movement_id for p in posted)
    if failed:
        logger.warning(f"{failed} of {len(movements)} stock movements failed")
        return f"Success! Stock-Movement Id(s): {ids}. {failed} of {len(movements)} movements failed"
    return f"Success! Stock-Movement Id(s): {ids}"


async def sync_stock_drift(ctx: SyncContext) -> PipelineResponse:
    """Run one stock drift reconciliation."""
    return await run_pipeline("stock_sync", ctx, _sync, error_prefix="Error handling stock sync")
