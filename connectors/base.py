"""Abstract gateways to the ledger system and the field system.

The pipelines, translators and posters depend ONLY on these interfaces.
Odoo and Infraspeak specifics live in connector subfolders; tests plug in
in-memory fakes.

Key Design Principles:
- All methods return NORMALIZED objects (LedgerAccountRef, CostCenterRef, ...)
- Wire formats (JSON-RPC envelopes, JSON:API resources) never leak out
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.models.sync import (
    Amount,
    IdList,
    InventoryPosting,
    JournalPosting,
    Key,
    LedgerStockRecord,
    MovementAction,
    OptionalId,
    OptionalKey,
    SourceRequest,
    parse_amount,
)


# =============================================================================
# Ledger Reference Models
# =============================================================================

class LedgerAccountRef(BaseModel):
    """Chart-of-accounts entry (account.account)."""
    id: int = Field(..., description="Ledger account id")
    code: str = Field(..., description="Account code, e.g. '6221000'")
    name: str = Field(default="", description="Account name")

    class Config:
        frozen = True


class StockMoveRef(BaseModel):
    """A stock movement as it currently exists in the ledger."""
    id: int
    work_order_id: OptionalKey = None
    product_id: OptionalId = None
    quantity: Amount = Decimal("0")
    location_id: OptionalId = None
    location_dest_id: OptionalId = None

    class Config:
        frozen = True


class LedgerProductRef(BaseModel):
    """Ledger product with its costing fields."""
    id: int
    code: Optional[str] = None
    name: str = ""
    standard_price: Amount = Decimal("0")
    avg_cost: Amount = Decimal("0")
    free_qty: Amount = Decimal("0")
    stock_quant_ids: IdList = Field(default_factory=list)
    category_id: OptionalId = None
    category_name: Optional[str] = None

    class Config:
        frozen = True


# =============================================================================
# Field-System Reference Models
# =============================================================================

class CostCenterRef(BaseModel):
    id: Key
    name: Optional[str] = None
    code: Optional[str] = None

    class Config:
        frozen = True


class FieldMaterialRef(BaseModel):
    """Material or folder in the field-system catalogue."""
    id: Key
    code: Optional[str] = None
    full_code: Optional[str] = None
    name: Optional[str] = None
    is_real: bool = True

    class Config:
        frozen = True


class FieldWarehouseRef(BaseModel):
    id: Key
    warehouse_id: int
    full_code: str = ""
    name: Optional[str] = None

    class Config:
        frozen = True


class FieldStockQuantity(BaseModel):
    material_id: int
    warehouse_id: int
    stock_quantity: Amount = Decimal("0")

    class Config:
        frozen = True


class UserContact(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class OrderDetail(BaseModel):
    """A work order / scheduled order with its expanded stock and materials."""
    order_id: Key
    order_type: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    included: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def cost_center_id(self) -> Optional[Any]:
        return self.attributes.get("cost_center_id")

    @property
    def cost_center_name(self) -> Optional[str]:
        return self.attributes.get("cost_center_name")

    @property
    def manpower_cost(self) -> Decimal:
        return parse_amount(self.attributes.get("manpower_cost"))

    @property
    def completed_by_id(self) -> Optional[Any]:
        return self.attributes.get("completed_by_id")

    @property
    def completed_date(self) -> Optional[str]:
        return self.attributes.get("completed_date")

    def included_of_type(self, resource_type: str) -> List[Dict[str, Any]]:
        return [entry for entry in self.included if entry.get("type") == resource_type]


# =============================================================================
# Gateways
# =============================================================================

class LedgerGateway(ABC):
    """Operations the sync pipelines need from the ledger (Odoo)."""

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def fetch_stock_snapshot(self) -> List[LedgerStockRecord]:
        """All stock quants that belong to a warehouse."""
        pass

    @abstractmethod
    async def fetch_accounts_by_code(self, code: str) -> List[LedgerAccountRef]:
        """Accounts whose code equals `code` exactly."""
        pass

    @abstractmethod
    async def create_stock_move(self, posting: InventoryPosting, name: str) -> int:
        """Create a done stock movement; returns its id."""
        pass

    @abstractmethod
    async def create_journal_entry(self, posting: JournalPosting, journal_id: int) -> int:
        """Create a draft journal entry; returns its id."""
        pass

    @abstractmethod
    async def post_journal_entry(self, move_id: int) -> None:
        """Move a draft journal entry to posted."""
        pass

    @abstractmethod
    async def fetch_stock_moves(self, work_order_id: str, move_ids: List[int]) -> List[StockMoveRef]:
        """Stock moves filtered by work order reference AND id list."""
        pass

    @abstractmethod
    async def fetch_journal_total(self, move_id: int) -> Decimal:
        """Total amount of a journal entry."""
        pass

    @abstractmethod
    async def fetch_products_with_stock(self) -> List[LedgerProductRef]:
        """Products that have at least one stock quant."""
        pass

    @abstractmethod
    async def fetch_product(self, product_id: int) -> Optional[LedgerProductRef]:
        pass

    @abstractmethod
    async def fetch_category_code(self, category_id: int) -> Optional[str]:
        pass


class FieldGateway(ABC):
    """Operations the sync pipelines need from the field system (Infraspeak)."""

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def fetch_completed_material_requests(self) -> List[SourceRequest]:
        pass

    @abstractmethod
    async def fetch_order_detail(self, order_id: str, order_type: str) -> OrderDetail:
        pass

    @abstractmethod
    async def fetch_cost_centers(self) -> List[CostCenterRef]:
        pass

    @abstractmethod
    async def fetch_user_contact(self) -> UserContact:
        """Contact details of the operator that owns the API credentials."""
        pass

    @abstractmethod
    async def fetch_materials(self, real_only: bool = True) -> List[FieldMaterialRef]:
        pass

    @abstractmethod
    async def fetch_warehouses(self) -> List[FieldWarehouseRef]:
        """Real (physical) warehouses."""
        pass

    @abstractmethod
    async def fetch_stock_quantities(self) -> List[FieldStockQuantity]:
        pass

    @abstractmethod
    async def create_folder(self, name: str, code: str, warehouse_id: int) -> str:
        """Create a catalogue folder; returns its id."""
        pass

    @abstractmethod
    async def create_material(
        self,
        name: str,
        code: str,
        mean_price: Decimal,
        warehouse_id: int,
        folder_id: str,
    ) -> str:
        """Create a material under folder_id; returns its id."""
        pass

    @abstractmethod
    async def create_stock_movement(
        self,
        action: MovementAction,
        warehouse_id: int,
        material_id: int,
        quantity: Decimal,
        mean_price: Optional[Decimal] = None,
    ) -> str:
        """Post a stock movement; returns its id."""
        pass
