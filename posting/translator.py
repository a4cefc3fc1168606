"""Posting translator - order details to inventory and accounting line items.

COMPLETED path: an expanded field-system order plus reference data becomes
TranslationResult(accounting_data, inventory_data). Every material line must
resolve against the ledger stock snapshot before anything is returned, so a
failed translation never leaves a partial posting behind.

REVERSED path: live ledger rows for a previous posting become the same
structures, ready for the poster's REVERSED branch.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from connectors.base import CostCenterRef, LedgerGateway, OrderDetail, StockMoveRef
from core.errors import (
    InsufficientStockError,
    ReferenceLookupError,
    SyncError,
    UnmatchedProductError,
    ValidationError,
)
from core.identifiers import normalize_code, same_id, to_key
from core.models.sync import (
    AccountingData,
    InventoryPosting,
    LedgerStockRecord,
    MaterialLine,
    TranslationResult,
    parse_amount,
)


logger = logging.getLogger(__name__)

STOCK_RESOURCE = "stock"
MATERIAL_RESOURCE = "material"


# =============================================================================
# Cost Center
# =============================================================================

def find_cost_center_code(order: OrderDetail, cost_centers: Sequence[CostCenterRef]) -> str:
    """Cost center code for an order: by id first, by name only if that failed.

    Raises:
        ReferenceLookupError: Neither the id nor the name resolves to a code
    """
    code: Optional[str] = None

    if order.cost_center_id not in (None, ""):
        match = next((cc for cc in cost_centers if same_id(cc.id, order.cost_center_id)), None)
        code = match.code if match else None

    if not code and order.cost_center_name:
        match = next((cc for cc in cost_centers if cc.name == order.cost_center_name), None)
        code = match.code if match else None

    if not code:
        raise ReferenceLookupError(
            f"Cost center not found (id={order.cost_center_id}, name={order.cost_center_name})",
            order_id=order.order_id,
            order_type=order.order_type,
        )
    return code


async def resolve_cost_center(
    ledger: LedgerGateway,
    order: OrderDetail,
    cost_centers: Sequence[CostCenterRef],
) -> int:
    """Ledger account id of the order's cost center (exact code match)."""
    code = find_cost_center_code(order, cost_centers)
    accounts = await ledger.fetch_accounts_by_code(code)
    if not accounts:
        raise ReferenceLookupError(
            f"No ledger account with code {code}",
            order_id=order.order_id,
            order_type=order.order_type,
        )
    if len(accounts) > 1:
        logger.warning(f"Several ledger accounts carry code {code}; using {accounts[0].id}")
    return accounts[0].id


# =============================================================================
# Material Lines
# =============================================================================

def aggregate_stock(order: OrderDetail) -> Dict[str, Dict[str, Decimal]]:
    """Sum stock entry quantities per material; the first entry's mean price is kept."""
    totals: Dict[str, Dict[str, Decimal]] = {}
    for entry in order.included_of_type(STOCK_RESOURCE):
        attributes = entry.get("attributes") or {}
        material_id = attributes.get("material_id")
        if material_id in (None, ""):
            continue
        key = to_key(material_id)
        if key not in totals:
            totals[key] = {"quantity": Decimal("0"), "mean_price": parse_amount(attributes.get("mean_price"))}
        totals[key]["quantity"] += parse_amount(attributes.get("quantity"))
    return totals


def build_material_lines(order: OrderDetail) -> List[MaterialLine]:
    """One line per material entry of the order.

    Raises:
        ValidationError: A material entry lacks its code or full code
    """
    stock = aggregate_stock(order)
    lines: List[MaterialLine] = []
    seen = set()

    for entry in order.included_of_type(MATERIAL_RESOURCE):
        attributes = entry.get("attributes") or {}
        material_id = attributes.get("material_id")
        if material_id in (None, ""):
            logger.warning(f"Material ID missing or invalid for {order.order_type} {order.order_id}")
            continue
        key = to_key(material_id)
        if key in seen:
            continue
        seen.add(key)

        code = attributes.get("code")
        if not code:
            raise ValidationError(
                f"Material code is missing for material {key}",
                order_id=order.order_id,
                order_type=order.order_type,
            )
        full_code = attributes.get("full_code")
        if not full_code:
            raise ValidationError(
                f"Full code is missing for material {key}",
                order_id=order.order_id,
                order_type=order.order_type,
            )
        folder_code = full_code.split(".")[0]
        if not folder_code:
            raise ValidationError(
                f"Folder code is missing for material {key}",
                order_id=order.order_id,
                order_type=order.order_type,
            )

        totals = stock.get(key)
        lines.append(MaterialLine(
            work_order_id=order.order_id,
            material_id=key,
            material_code=code,
            folder_code=folder_code,
            quantity=totals["quantity"] if totals else Decimal("0"),
            mean_price=totals["mean_price"] if totals else parse_amount(attributes.get("mean_price")),
        ))

    return lines


# =============================================================================
# Inventory Matching
# =============================================================================

def find_stock_record(code: str, snapshot: Sequence[LedgerStockRecord]) -> Optional[LedgerStockRecord]:
    wanted = normalize_code(code)
    for record in snapshot:
        if record.product_reference_code and normalize_code(record.product_reference_code) == wanted:
            return record
    return None


def match_inventory(
    lines: Sequence[MaterialLine],
    snapshot: Sequence[LedgerStockRecord],
    scrap_location_id: int,
) -> List[InventoryPosting]:
    """Pair each material line with a ledger stock record.

    Raises:
        ValidationError: Empty snapshot, or a line/record missing required data
        UnmatchedProductError: No stock record carries the material code
        InsufficientStockError: Requested quantity exceeds on-hand quantity
    """
    if not snapshot:
        raise ValidationError("Ledger stock snapshot is empty")

    postings: List[InventoryPosting] = []
    for line in lines:
        if not line.material_code:
            raise ValidationError(f"Material code is missing on line for material {line.material_id}")

        record = find_stock_record(line.material_code, snapshot)
        if record is None:
            raise UnmatchedProductError(
                f"No matching product found in Odoo for material code: {line.material_code}"
            )
        if record.location_id is None:
            raise ValidationError(f"Stock record {record.stock_id} has no location")
        if line.quantity > record.quantity_on_hand:
            raise InsufficientStockError(
                f"Cannot post {line.quantity} for stock ID {record.stock_id}. "
                f"Odoo has {record.quantity_on_hand}.",
                requested=line.quantity,
                on_hand=record.quantity_on_hand,
            )

        postings.append(InventoryPosting(
            product_id=record.product_id,
            source_location_id=record.location_id,
            dest_location_id=scrap_location_id,
            quantity=line.quantity,
            work_order_id=line.work_order_id,
            material_code=line.material_code,
        ))

    return postings


def apply_stock_moves(
    snapshot: Sequence[LedgerStockRecord],
    moves: Sequence[InventoryPosting],
) -> List[LedgerStockRecord]:
    """Snapshot as it stands once moves are done.

    Each move takes its quantity from the first record of the product at the
    source location and adds it to the first one at the destination.
    Locations without a record (scrap) are not tracked.
    """
    deltas: Dict[tuple, Decimal] = {}
    for move in moves:
        source = (move.product_id, move.source_location_id)
        dest = (move.product_id, move.dest_location_id)
        deltas[source] = deltas.get(source, Decimal("0")) - move.quantity
        deltas[dest] = deltas.get(dest, Decimal("0")) + move.quantity

    updated: List[LedgerStockRecord] = []
    for record in snapshot:
        delta = deltas.pop((record.product_id, record.location_id), None)
        if delta:
            record = record.model_copy(update={"quantity_on_hand": record.quantity_on_hand + delta})
        updated.append(record)
    return updated


# =============================================================================
# Translation
# =============================================================================

async def translate(
    ledger: LedgerGateway,
    order: OrderDetail,
    cost_centers: Sequence[CostCenterRef],
    stock_snapshot: Sequence[LedgerStockRecord],
    scrap_location_id: int,
    cost_center_account_id: Optional[int] = None,
) -> TranslationResult:
    """COMPLETED path. Reads from the ledger only to resolve the cost center
    account, and not at all when cost_center_account_id is already known."""
    try:
        if cost_center_account_id is None:
            cost_center_account_id = await resolve_cost_center(ledger, order, cost_centers)
        lines = build_material_lines(order)
        inventory = match_inventory(lines, stock_snapshot, scrap_location_id)
    except SyncError as e:
        raise e.with_context(order_id=order.order_id, order_type=order.order_type)

    return TranslationResult(
        accounting_data=AccountingData(
            work_order_id=order.order_id,
            cost_center_account_id=cost_center_account_id,
            lines=lines,
        ),
        inventory_data=inventory,
    )


def translate_reversal(
    order_id: str,
    stock_moves: Sequence[StockMoveRef],
    journal_total: Decimal,
    cost_center_account_id: int,
) -> TranslationResult:
    """REVERSED path over live ledger rows.

    Inventory postings keep the original orientation (source = where the
    stock was taken from); the poster flips them. The single accounting line
    restates the journal total as its unit price.
    """
    inventory: List[InventoryPosting] = []
    for move in stock_moves:
        if move.product_id is None or move.location_id is None or move.location_dest_id is None:
            raise ValidationError(f"Stock move {move.id} is missing product or locations", order_id=order_id)
        inventory.append(InventoryPosting(
            product_id=move.product_id,
            source_location_id=move.location_id,
            dest_location_id=move.location_dest_id,
            quantity=move.quantity,
            work_order_id=order_id,
        ))

    return TranslationResult(
        accounting_data=AccountingData(
            work_order_id=order_id,
            cost_center_account_id=cost_center_account_id,
            lines=[MaterialLine(work_order_id=order_id, quantity=Decimal("1"), mean_price=journal_total)],
        ),
        inventory_data=inventory,
    )
