"""Odoo ledger connector.

Implements LedgerGateway on top of OdooRpcClient. This is the only module
that knows Odoo model and field names.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from connectors.base import LedgerAccountRef, LedgerGateway, LedgerProductRef, StockMoveRef
from connectors.odoo.odoo_auth import OdooAuthConfig, OdooSessionProvider
from connectors.odoo.odoo_client import OdooRpcClient
from core.config import SyncSettings
from core.errors import ReferenceLookupError
from core.identifiers import try_extract_bracket_code
from core.models.sync import InventoryPosting, JournalPosting, LedgerStockRecord, parse_amount


logger = logging.getLogger(__name__)


# =============================================================================
# Odoo model / field names
# =============================================================================

STOCK_QUANT_FIELDS = ["id", "product_id", "product_categ_id", "location_id", "warehouse_id", "quantity"]
STOCK_MOVE_FIELDS = ["x_work_order_id", "product_id", "quantity", "location_id", "location_dest_id"]
PRODUCT_FIELDS = ["code", "name", "standard_price", "avg_cost", "free_qty", "stock_quant_ids", "categ_id"]
ACCOUNT_FIELDS = ["id", "code", "name"]

WAREHOUSE_DOMAIN = [["warehouse_id", "!=", False]]


def _many2one_name(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)) and len(value) > 1:
        return value[1]
    return None


def _to_float(value: Decimal) -> float:
    return float(value)


def stock_record_from_quant(row: Dict[str, Any]) -> LedgerStockRecord:
    """Normalize a stock.quant row."""
    display = _many2one_name(row.get("product_id")) or ""
    return LedgerStockRecord(
        stock_id=row["id"],
        product_id=row.get("product_id"),
        product_display=display,
        product_reference_code=try_extract_bracket_code(display),
        category_id=row.get("product_categ_id"),
        location_id=row.get("location_id"),
        warehouse_id=row.get("warehouse_id"),
        warehouse_name=_many2one_name(row.get("warehouse_id")),
        quantity_on_hand=row.get("quantity"),
    )


def journal_line_ids(posting: JournalPosting) -> List[List[Any]]:
    """Odoo one2many create commands: one debit and one credit line per pair."""
    commands: List[List[Any]] = []
    for line in posting.lines:
        commands.append([0, 0, {
            "account_id": line.debit_account_id,
            "name": line.memo,
            "debit": _to_float(line.amount),
        }])
        commands.append([0, 0, {
            "account_id": line.credit_account_id,
            "name": line.memo,
            "credit": _to_float(line.amount),
        }])
    return commands


class OdooConnector(LedgerGateway):
    """Ledger gateway for Odoo.

    Usage:
        connector = OdooConnector.from_settings(settings)
        await connector.connect()
        snapshot = await connector.fetch_stock_snapshot()
    """

    def __init__(self, client: OdooRpcClient, page_size: int = 100, product_page_size: int = 500,
                 category_code_field: str = "x_studio_char_field_49j_1ibhepvhj"):
        self.client = client
        self.page_size = page_size
        self.product_page_size = product_page_size
        self.category_code_field = category_code_field

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "OdooConnector":
        auth = OdooSessionProvider(OdooAuthConfig(
            base_url=settings.ledger_base_url,
            db=settings.ledger_db,
            login=settings.ledger_login,
            password=settings.ledger_password,
            api_key=settings.ledger_api_key,
            timeout_seconds=settings.http_timeout_seconds,
        ))
        client = OdooRpcClient(auth, settings.ledger_base_url, timeout_seconds=settings.http_timeout_seconds)
        return cls(
            client,
            page_size=settings.ledger_page_size,
            product_page_size=settings.ledger_product_page_size,
            category_code_field=settings.category_code_field,
        )

    async def connect(self) -> None:
        await self.client.connect()

    async def disconnect(self) -> None:
        await self.client.disconnect()

    def invalidate_session(self) -> None:
        self.client.auth_provider.invalidate()

    # -------------------------------------------------------------------------
    # Stock
    # -------------------------------------------------------------------------

    async def fetch_stock_snapshot(self) -> List[LedgerStockRecord]:
        rows = await self.client.search_read_all(
            "stock.quant", WAREHOUSE_DOMAIN, STOCK_QUANT_FIELDS, page_size=self.page_size
        )
        records = [stock_record_from_quant(row) for row in rows if row.get("warehouse_id")]
        logger.info(f"Fetched {len(records)} stock quants from Odoo")
        return records

    async def create_stock_move(self, posting: InventoryPosting, name: str) -> int:
        values = {
            "product_id": posting.product_id,
            "location_id": posting.source_location_id,
            "location_dest_id": posting.dest_location_id,
            "quantity": _to_float(posting.quantity),
            "x_work_order_id": posting.work_order_id,
            "name": name,
            "state": "done",
        }
        return await self.client.create("stock.move", values)

    async def fetch_stock_moves(self, work_order_id: str, move_ids: List[int]) -> List[StockMoveRef]:
        domain = [["x_work_order_id", "=", work_order_id], ["id", "in", list(move_ids)]]
        rows = await self.client.search_read("stock.move", domain, STOCK_MOVE_FIELDS)
        return [
            StockMoveRef(
                id=row["id"],
                work_order_id=row.get("x_work_order_id") or None,
                product_id=row.get("product_id"),
                quantity=row.get("quantity"),
                location_id=row.get("location_id"),
                location_dest_id=row.get("location_dest_id"),
            )
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Accounting
    # -------------------------------------------------------------------------

    async def fetch_accounts_by_code(self, code: str) -> List[LedgerAccountRef]:
        rows = await self.client.search_read("account.account", [["code", "=", code]], ACCOUNT_FIELDS)
        return [
            LedgerAccountRef(id=row["id"], code=row.get("code") or "", name=row.get("name") or "")
            for row in rows
            if row.get("code") == code
        ]

    async def create_journal_entry(self, posting: JournalPosting, journal_id: int) -> int:
        values = {
            "ref": posting.reference_text,
            "move_type": "entry",
            "journal_id": journal_id,
            "line_ids": journal_line_ids(posting),
            "x_work_order_id": posting.work_order_id,
        }
        return await self.client.create("account.move", values)

    async def post_journal_entry(self, move_id: int) -> None:
        await self.client.action_post("account.move", [move_id])

    async def fetch_journal_total(self, move_id: int) -> Decimal:
        rows = await self.client.search_read("account.move", [["id", "=", move_id]], ["amount_total"])
        if not rows:
            raise ReferenceLookupError(f"Journal entry {move_id} not found in Odoo")
        return parse_amount(rows[0].get("amount_total"))

    # -------------------------------------------------------------------------
    # Catalogue
    # -------------------------------------------------------------------------

    def _product_ref(self, row: Dict[str, Any]) -> LedgerProductRef:
        return LedgerProductRef(
            id=row["id"],
            code=row.get("code") or None,
            name=row.get("name") or "",
            standard_price=row.get("standard_price"),
            avg_cost=row.get("avg_cost"),
            free_qty=row.get("free_qty"),
            stock_quant_ids=row.get("stock_quant_ids"),
            category_id=row.get("categ_id"),
            category_name=_many2one_name(row.get("categ_id")),
        )

    async def fetch_products_with_stock(self) -> List[LedgerProductRef]:
        rows = await self.client.search_read_all(
            "product.product",
            [["stock_quant_ids", "!=", False]],
            ["id"] + PRODUCT_FIELDS,
            page_size=self.product_page_size,
        )
        return [self._product_ref(row) for row in rows]

    async def fetch_product(self, product_id: int) -> Optional[LedgerProductRef]:
        rows = await self.client.search_read("product.product", [["id", "=", product_id]], ["id"] + PRODUCT_FIELDS)
        return self._product_ref(rows[0]) if rows else None

    async def fetch_category_code(self, category_id: int) -> Optional[str]:
        rows = await self.client.search_read(
            "product.category", [["id", "=", category_id]], [self.category_code_field]
        )
        if not rows:
            return None
        return rows[0].get(self.category_code_field) or None
