"""Product catalogue pipeline (scheduled).

Finds the first Odoo product in stock that has no Infraspeak material yet,
creates it (and its category folder when missing) in Infraspeak, and books
its current Odoo quantity with an ADD stock movement.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from connectors.base import FieldMaterialRef, LedgerProductRef
from core.errors import ReferenceLookupError, RemoteCallError, ValidationError
from core.identifiers import normalize_code, to_key
from core.models.sync import LedgerStockRecord, MovementAction
from pipelines.handler import FailureReport, PipelineResponse, SyncContext, run_pipeline
from reconciliation.drift import match_warehouse


logger = logging.getLogger(__name__)

NOTHING_TO_DO = "No unmatched products to process."


def unmatched_product_codes(
    ledger_stock: Sequence[LedgerStockRecord],
    materials: Sequence[FieldMaterialRef],
) -> List[str]:
    """Normalized ledger product codes with no real field material, in snapshot order."""
    known = {normalize_code(m.code) for m in materials if m.is_real and m.code}
    codes: List[str] = []
    for record in ledger_stock:
        if not record.product_reference_code:
            logger.warning(f"Stock quant {record.stock_id} has no product reference code")
            continue
        code = normalize_code(record.product_reference_code)
        if code and code not in known and code not in codes:
            codes.append(code)
    return codes


def find_folder(materials: Sequence[FieldMaterialRef], category_code: str) -> Optional[FieldMaterialRef]:
    return next((m for m in materials if not m.is_real and m.code == category_code), None)


async def _first_complete_product(
    ctx: SyncContext,
    codes: Sequence[str],
    ledger_stock: Sequence[LedgerStockRecord],
) -> Tuple[str, LedgerStockRecord, LedgerProductRef, str]:
    """First unmatched code whose product and category code can both be read."""
    for code in codes:
        record = next(
            (r for r in ledger_stock if r.product_reference_code and normalize_code(r.product_reference_code) == code),
            None,
        )
        if record is None:
            logger.warning(f"No stock details found for product code: {code}")
            continue
        try:
            product = await ctx.ledger.fetch_product(record.product_id)
            category_code = await ctx.ledger.fetch_category_code(record.category_id) if record.category_id else None
        except RemoteCallError as e:
            logger.warning(f"Error fetching details for product code {code}: {e}")
            continue
        if product is None or not category_code:
            logger.warning(f"Skipping product with code {code}. Missing product details or category code.")
            continue
        return code, record, product, normalize_code(category_code)

    raise ValidationError("No valid product found with the necessary details.")


async def _sync(ctx: SyncContext, report: FailureReport) -> str:
    ledger_stock, materials, warehouses = await asyncio.gather(
        ctx.ledger.fetch_stock_snapshot(),
        ctx.field.fetch_materials(real_only=False),
        ctx.field.fetch_warehouses(),
    )

    codes = unmatched_product_codes(ledger_stock, materials)
    if not codes:
        return NOTHING_TO_DO

    code, record, product, category_code = await _first_complete_product(ctx, codes, ledger_stock)

    warehouse = match_warehouse(
        record.warehouse_name, warehouses, strict=ctx.settings.strict_warehouse_matching
    )
    if warehouse is None:
        raise ReferenceLookupError(f"No matching warehouse found for warehouse: {record.warehouse_name}")

    folder = find_folder(materials, category_code)
    if folder is not None:
        folder_id = folder.id
    else:
        folder_name = (product.category_name or category_code).strip()
        folder_id = await ctx.field.create_folder(folder_name, category_code, warehouse.warehouse_id)

    material_id = await ctx.field.create_material(
        product.name.strip(),
        code,
        product.avg_cost,
        warehouse.warehouse_id,
        folder_id,
    )
    await ctx.field.create_stock_movement(
        MovementAction.ADD,
        warehouse.warehouse_id,
        int(to_key(material_id)),
        record.quantity_on_hand,
    )
    return f"Success! Product with code {code} has been added to Infraspeak"


async def sync_products(ctx: SyncContext) -> PipelineResponse:
    """Add one missing product to the Infraspeak catalogue."""
    return await run_pipeline("products", ctx, _sync, error_prefix="Error handling product sync")
