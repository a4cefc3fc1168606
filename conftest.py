"""Shared fixtures: in-memory ledger and field gateways plus a ready SyncContext."""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from connectors.base import (
    CostCenterRef,
    FieldGateway,
    FieldMaterialRef,
    FieldStockQuantity,
    FieldWarehouseRef,
    LedgerAccountRef,
    LedgerGateway,
    LedgerProductRef,
    OrderDetail,
    StockMoveRef,
    UserContact,
)
from core.config import SyncSettings
from core.errors import RemoteCallError
from core.models.sync import (
    InventoryPosting,
    JournalPosting,
    LedgerStockRecord,
    MovementAction,
    SourceRequest,
)
from core.notifications import InMemoryNotifier
from pipelines.handler import SyncContext, build_context
from storage.state_store import InMemoryStateStore, REQUESTS_TABLE, WORK_ORDERS_TABLE


# =============================================================================
# Fake Gateways
# =============================================================================

class FakeLedger(LedgerGateway):
    """In-memory ledger. Stock move ids start at 501, journal ids at 900.

    With track_stock set, stock moves shift quantity between snapshot records
    the way done moves update quants.
    """

    def __init__(self):
        self.snapshot: List[LedgerStockRecord] = []
        self.accounts: Dict[str, List[LedgerAccountRef]] = {}
        self.products: List[LedgerProductRef] = []
        self.category_codes: Dict[int, str] = {}
        self.stock_moves: Dict[int, StockMoveRef] = {}
        self.stock_move_names: Dict[int, str] = {}
        self.journals: Dict[int, JournalPosting] = {}
        self.posted: List[int] = []
        self.fail_products: set = set()
        self.fail_post_journal = False
        self.track_stock = False
        self.stock_move_queries: List[tuple] = []
        self.journal_total_queries: List[int] = []
        self._next_move = 501
        self._next_journal = 900

    @property
    def write_count(self) -> int:
        return len(self.stock_moves) + len(self.journals)

    async def fetch_stock_snapshot(self):
        return list(self.snapshot)

    async def fetch_accounts_by_code(self, code):
        return list(self.accounts.get(code, []))

    async def create_stock_move(self, posting: InventoryPosting, name: str) -> int:
        if posting.product_id in self.fail_products:
            raise RemoteCallError(f"stock.move create failed for product {posting.product_id}", status_code=500)
        move_id = self._next_move
        self._next_move += 1
        self.stock_moves[move_id] = StockMoveRef(
            id=move_id,
            work_order_id=posting.work_order_id,
            product_id=posting.product_id,
            quantity=posting.quantity,
            location_id=posting.source_location_id,
            location_dest_id=posting.dest_location_id,
        )
        self.stock_move_names[move_id] = name
        if self.track_stock:
            self._shift_stock(posting.product_id, posting.source_location_id, -posting.quantity)
            self._shift_stock(posting.product_id, posting.dest_location_id, posting.quantity)
        return move_id

    def _shift_stock(self, product_id, location_id, quantity):
        for i, record in enumerate(self.snapshot):
            if record.product_id == product_id and record.location_id == location_id:
                self.snapshot[i] = record.model_copy(update={"quantity_on_hand": record.quantity_on_hand + quantity})
                return

    async def create_journal_entry(self, posting: JournalPosting, journal_id: int) -> int:
        move_id = self._next_journal
        self._next_journal += 1
        self.journals[move_id] = posting
        return move_id

    async def post_journal_entry(self, move_id: int) -> None:
        if self.fail_post_journal:
            raise RemoteCallError("action_post failed", status_code=500)
        self.posted.append(move_id)

    async def fetch_stock_moves(self, work_order_id, move_ids):
        self.stock_move_queries.append((work_order_id, list(move_ids)))
        return [
            self.stock_moves[i] for i in move_ids
            if i in self.stock_moves and self.stock_moves[i].work_order_id == work_order_id
        ]

    async def fetch_journal_total(self, move_id):
        self.journal_total_queries.append(move_id)
        return self.journals[move_id].total_debit

    async def fetch_products_with_stock(self):
        return list(self.products)

    async def fetch_product(self, product_id):
        return next((p for p in self.products if p.id == product_id), None)

    async def fetch_category_code(self, category_id):
        return self.category_codes.get(category_id)


class FakeField(FieldGateway):
    """In-memory field system."""

    def __init__(self):
        self.requests: List[SourceRequest] = []
        self.orders: Dict[str, OrderDetail] = {}
        self.cost_centers: List[CostCenterRef] = []
        self.contact = UserContact(name="Ana Silva", email="ana@example.com")
        self.contact_error: Optional[Exception] = None
        self.materials: List[FieldMaterialRef] = []
        self.warehouses: List[FieldWarehouseRef] = []
        self.quantities: List[FieldStockQuantity] = []
        self.folders: List[tuple] = []
        self.created_materials: List[tuple] = []
        self.movements: List[tuple] = []
        self.fail_movement_materials: set = set()
        self.timeout_movement_materials: set = set()
        self._next_id = 7000

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    async def fetch_completed_material_requests(self):
        return list(self.requests)

    async def fetch_order_detail(self, order_id, order_type):
        return self.orders[str(order_id)]

    async def fetch_cost_centers(self):
        return list(self.cost_centers)

    async def fetch_user_contact(self):
        if self.contact_error is not None:
            raise self.contact_error
        return self.contact

    async def fetch_materials(self, real_only=True):
        if real_only:
            return [m for m in self.materials if m.is_real]
        return list(self.materials)

    async def fetch_warehouses(self):
        return list(self.warehouses)

    async def fetch_stock_quantities(self):
        return list(self.quantities)

    async def create_folder(self, name, code, warehouse_id):
        folder_id = self._new_id()
        self.folders.append((folder_id, name, code, warehouse_id))
        return folder_id

    async def create_material(self, name, code, mean_price, warehouse_id, folder_id):
        material_id = self._new_id()
        self.created_materials.append((material_id, name, code, mean_price, warehouse_id, folder_id))
        return material_id

    async def create_stock_movement(self, action, warehouse_id, material_id, quantity, mean_price=None):
        if material_id in self.fail_movement_materials:
            raise RemoteCallError(f"stock movement rejected for material {material_id}", status_code=422)
        if material_id in self.timeout_movement_materials:
            raise asyncio.TimeoutError()
        movement_id = self._new_id()
        self.movements.append((movement_id, MovementAction(action), warehouse_id, material_id, quantity, mean_price))
        return movement_id


# =============================================================================
# Builders
# =============================================================================

def make_order(
    order_id="77",
    order_type="Work Order",
    stock=None,
    materials=None,
    cost_center_id="5",
    cost_center_name="Maintenance",
    **attributes,
) -> OrderDetail:
    """Order with stock entries [(material_id, quantity, mean_price)] and
    material entries [(material_id, code, full_code)]."""
    stock = stock if stock is not None else [(10, 3, "2.5"), (10, 5, "2.5")]
    materials = materials if materials is not None else [(10, "WID-001", "TOOLS.WID-001")]
    included = [
        {"type": "stock", "attributes": {"material_id": m, "quantity": q, "mean_price": p}}
        for m, q, p in stock
    ] + [
        {"type": "material", "attributes": {"material_id": m, "code": c, "full_code": f}}
        for m, c, f in materials
    ]
    attrs = {"cost_center_id": cost_center_id, "cost_center_name": cost_center_name}
    attrs.update(attributes)
    return OrderDetail(order_id=order_id, order_type=order_type, attributes=attrs, included=included)


def make_stock_record(stock_id=1, product_id=300, code="WID-001", quantity=20, location_id=8,
                      warehouse_name="WH", category_id=None) -> LedgerStockRecord:
    return LedgerStockRecord(
        stock_id=stock_id,
        product_id=product_id,
        product_display=f"Widget [{code}]" if code else "Widget",
        product_reference_code=code,
        category_id=category_id,
        location_id=location_id,
        warehouse_id=1,
        warehouse_name=warehouse_name,
        quantity_on_hand=quantity,
    )


def make_settings(**overrides) -> SyncSettings:
    values = dict(
        ledger_base_url="https://acme.odoo.com",
        ledger_db="acme",
        ledger_login="bot@acme.com",
        ledger_password="secret",
        ledger_api_key="odoo-key",
        field_api_key="infraspeak-key",
        field_email="bot@acme.com",
        state_db_path=":memory:",
    )
    values.update(overrides)
    return SyncSettings(**values)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def ledger() -> FakeLedger:
    fake = FakeLedger()
    fake.snapshot = [make_stock_record()]
    fake.accounts = {"6221000": [LedgerAccountRef(id=42, code="6221000", name="Maintenance")]}
    return fake


@pytest.fixture
def field_gateway() -> FakeField:
    fake = FakeField()
    fake.cost_centers = [CostCenterRef(id="5", name="Maintenance", code="6221000")]
    fake.orders["77"] = make_order()
    return fake


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def settings() -> SyncSettings:
    return make_settings()


@pytest.fixture
def ctx(settings, ledger, field_gateway, notifier) -> SyncContext:
    return build_context(
        settings=settings,
        ledger=ledger,
        field_gateway=field_gateway,
        request_store=InMemoryStateStore(REQUESTS_TABLE, "request_id"),
        work_order_store=InMemoryStateStore(WORK_ORDERS_TABLE, "order_id"),
        notifier=notifier,
    )
