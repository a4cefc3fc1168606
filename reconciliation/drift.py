"""Stock drift reconciliation between ledger quants and field warehouses.

The ledger is the source of truth for quantities on hand. For every
(material, warehouse) pair that can be mapped across both systems, a
corrective field-system stock movement brings the field quantity in line.

Exposes:
- plan_drift_movements(...) -> List[DriftMovement]   (pure)
- reconcile_drift(field, movements) -> List[PostedMovement]
"""

import asyncio
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from connectors.base import (
    FieldGateway,
    FieldMaterialRef,
    FieldStockQuantity,
    FieldWarehouseRef,
    LedgerProductRef,
)
from core.errors import AmbiguousMatchError, SyncError, ValidationError
from core.identifiers import normalize_code, to_key
from core.models.sync import DriftMovement, LedgerStockRecord, MovementAction, PostedMovement


logger = logging.getLogger(__name__)


# =============================================================================
# Matching
# =============================================================================

def match_warehouse(
    warehouse_name: Optional[str],
    warehouses: Sequence[FieldWarehouseRef],
    strict: bool = False,
) -> Optional[FieldWarehouseRef]:
    """Find the field warehouse whose full code contains the ledger warehouse name.

    Comparison is case-insensitive. The first match wins; with strict=True
    more than one match raises AmbiguousMatchError.
    """
    if not warehouse_name:
        return None
    needle = warehouse_name.lower()
    candidates = [w for w in warehouses if needle in (w.full_code or "").lower()]
    if not candidates:
        return None
    if strict and len(candidates) > 1:
        codes = ", ".join(w.full_code for w in candidates)
        raise AmbiguousMatchError(f"Warehouse '{warehouse_name}' matches several field warehouses: {codes}")
    return candidates[0]


def _product_by_quant(products: Sequence[LedgerProductRef]) -> Dict[int, LedgerProductRef]:
    index: Dict[int, LedgerProductRef] = {}
    for product in products:
        for quant_id in product.stock_quant_ids:
            index[quant_id] = product
    return index


def _material_by_code(materials: Sequence[FieldMaterialRef]) -> Dict[str, int]:
    index: Dict[str, int] = {}
    for material in materials:
        code = normalize_code(material.code)
        if code and code not in index:
            index[code] = int(to_key(material.id))
    return index


# =============================================================================
# Planning
# =============================================================================

def plan_drift_movements(
    ledger_stock: Sequence[LedgerStockRecord],
    field_quantities: Sequence[FieldStockQuantity],
    products: Sequence[LedgerProductRef],
    materials: Sequence[FieldMaterialRef],
    warehouses: Sequence[FieldWarehouseRef],
    strict_warehouse_matching: bool = False,
) -> List[DriftMovement]:
    """Compute the corrective movements; performs no I/O.

    Ledger quants that land on the same (material, warehouse) are summed
    before comparing. A missing field quantity counts as zero.

    Raises:
        ValidationError: Any of the reference datasets is empty
    """
    if not ledger_stock or not products or not materials or not warehouses:
        raise ValidationError("One or more input datasets are empty, unable to process ledger stock")

    product_index = _product_by_quant(products)
    material_index = _material_by_code(materials)
    field_index: Dict[Tuple[int, int], Decimal] = {
        (q.material_id, q.warehouse_id): q.stock_quantity for q in field_quantities
    }

    ledger_totals: Dict[Tuple[int, int], Decimal] = {}
    details: Dict[Tuple[int, int], Tuple[str, Decimal]] = {}

    for record in ledger_stock:
        product = product_index.get(record.stock_id)
        if product is None:
            continue

        if not record.product_reference_code:
            logger.warning(f"Skipping stock quant {record.stock_id}: no [code] in '{record.product_display}'")
            continue
        code = normalize_code(record.product_reference_code)
        material_id = material_index.get(code)
        if material_id is None:
            continue

        try:
            warehouse = match_warehouse(record.warehouse_name, warehouses, strict=strict_warehouse_matching)
        except AmbiguousMatchError as e:
            logger.warning(f"Skipping stock quant {record.stock_id}: {e}")
            continue
        if warehouse is None:
            continue

        key = (material_id, warehouse.warehouse_id)
        ledger_totals[key] = ledger_totals.get(key, Decimal("0")) + record.quantity_on_hand
        details.setdefault(key, (code, product.avg_cost))

    movements: List[DriftMovement] = []
    for key, ledger_quantity in ledger_totals.items():
        field_quantity = field_index.get(key, Decimal("0"))
        delta = ledger_quantity - field_quantity
        if delta == 0:
            continue
        code, mean_price = details[key]
        movements.append(DriftMovement(
            material_id=key[0],
            warehouse_id=key[1],
            action=MovementAction.ADD if delta > 0 else MovementAction.CONSUME,
            quantity=abs(delta),
            mean_price=mean_price,
            material_code=code,
            ledger_quantity=ledger_quantity,
            field_quantity=field_quantity,
        ))

    return movements


# =============================================================================
# Posting
# =============================================================================

async def _post_movement(field: FieldGateway, movement: DriftMovement) -> Optional[PostedMovement]:
    verb = "Adding" if movement.action == MovementAction.ADD else "Consuming"
    logger.info(
        f"{verb} {movement.quantity} of material {movement.material_id} "
        f"in warehouse {movement.warehouse_id}"
    )
    try:
        movement_id = await field.create_stock_movement(
            movement.action,
            movement.warehouse_id,
            movement.material_id,
            movement.quantity,
            movement.mean_price,
        )
    except (SyncError, asyncio.TimeoutError) as e:
        logger.error(
            f"Failed to post stock for material {movement.material_id} "
            f"in warehouse {movement.warehouse_id}: {e}"
        )
        return None
    return PostedMovement(
        movement_id=movement_id,
        material_id=movement.material_id,
        warehouse_id=movement.warehouse_id,
        action=movement.action,
        quantity=movement.quantity,
    )


async def reconcile_drift(field: FieldGateway, movements: Sequence[DriftMovement]) -> List[PostedMovement]:
    """Post all movements concurrently; failed ones are logged and left out."""
    results = await asyncio.gather(*[_post_movement(field, m) for m in movements])
    return [posted for posted in results if posted is not None]
