"""Sync data models - request mirrors, derived line items and postings.

These models sit between the two remote systems. They carry no wire-format
details: connectors translate to and from them.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

from core.identifiers import to_key


ORDER_TYPE_WORK = "Work Order"
ORDER_TYPE_PLANNED = "Planned Order"


# =============================================================================
# Enums
# =============================================================================

class RelatedToType(str, Enum):
    """Kind of order a material request belongs to."""
    FAILURE = "FAILURE"
    SCHEDULE_WORK = "SCHEDULE_WORK"


class RequestState(str, Enum):
    COMPLETED = "COMPLETED"
    REVERSED = "REVERSED"


class UpsertKind(str, Enum):
    INSERTED = "INSERTED"
    UPDATED = "UPDATED"


class MovementAction(str, Enum):
    """Field-system stock movement action (CONSUME is sent as ABATE)."""
    ADD = "ADD"
    CONSUME = "ABATE"


def order_type_for(related_to_type: Any) -> str:
    """Human order type used in ledger memos."""
    value = related_to_type.value if isinstance(related_to_type, Enum) else related_to_type
    return ORDER_TYPE_WORK if value == RelatedToType.FAILURE.value else ORDER_TYPE_PLANNED


# =============================================================================
# Value Parsers
# =============================================================================

def _parse_key(value):
    return to_key(value)


def _parse_optional_key(value):
    if value is None or value == "":
        return None
    return to_key(value)


def parse_amount(value):
    """Parse Decimal from ints, floats and numeric strings (None -> 0)."""
    if value is None or value == "" or value is False:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        return Decimal(value.strip().replace(",", ""))
    return value


def _parse_optional_int(value):
    """Ledger many2one values arrive as [id, "name"] or False."""
    if value is None or value is False or value == "":
        return None
    if isinstance(value, (list, tuple)):
        return int(value[0]) if value else None
    return int(value)


def _parse_id_list(value):
    if value is None or value is False:
        return []
    if isinstance(value, (int, str)):
        value = [value]
    return [int(v) for v in value]


Key = Annotated[str, BeforeValidator(_parse_key)]
OptionalKey = Annotated[Optional[str], BeforeValidator(_parse_optional_key)]
Amount = Annotated[Decimal, BeforeValidator(parse_amount)]
OptionalId = Annotated[Optional[int], BeforeValidator(_parse_optional_int)]
LedgerId = Annotated[int, BeforeValidator(_parse_optional_int)]
IdList = Annotated[List[int], BeforeValidator(_parse_id_list)]


# =============================================================================
# Requests
# =============================================================================

class SourceRequest(BaseModel):
    """One material request as reported by the field system."""
    request_id: Key
    related_to_id: Key
    related_to_type: RelatedToType
    type: Optional[str] = None
    date_created: Optional[str] = None
    date_updated: Optional[str] = None
    operator_id: OptionalKey = None
    cost_center_ref: OptionalKey = None
    journal_move_ref: OptionalId = None
    stock_move_refs: IdList = Field(default_factory=list)

    @property
    def order_type(self) -> str:
        return order_type_for(self.related_to_type)

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "SourceRequest":
        """Build from a JSON:API resource ({id, attributes}) or a bare attribute dict."""
        attributes = resource.get("attributes", resource)
        data = dict(attributes)
        if data.get("request_id") is None and resource.get("id") is not None:
            data["request_id"] = resource["id"]
        return cls.model_validate(data)


class PersistedRequestRecord(BaseModel):
    """State-store mirror of a SourceRequest plus the ledger ids it produced."""
    request_id: Key
    related_to_id: Key
    related_to_type: RelatedToType
    type: Optional[str] = None
    date_created: Optional[str] = None
    date_updated: Optional[str] = None
    operator_id: OptionalKey = None
    state: RequestState = RequestState.COMPLETED
    reversed: bool = False
    cost_center_ledger_id: OptionalId = None
    account_move_id: OptionalId = None
    stock_move_ids: IdList = Field(default_factory=list)
    reversal_account_move_id: OptionalId = None
    reversal_stock_move_ids: IdList = Field(default_factory=list)

    @property
    def order_type(self) -> str:
        return order_type_for(self.related_to_type)

    @property
    def has_postings(self) -> bool:
        return self.account_move_id is not None or bool(self.stock_move_ids)

    @classmethod
    def from_source(cls, request: SourceRequest) -> "PersistedRequestRecord":
        return cls(
            request_id=request.request_id,
            related_to_id=request.related_to_id,
            related_to_type=request.related_to_type,
            type=request.type,
            date_created=request.date_created,
            date_updated=request.date_updated,
            operator_id=request.operator_id,
            state=RequestState.COMPLETED,
            reversed=False,
        )

    def to_item(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class ClassifiedItem(BaseModel):
    """One unit of work produced by the reconciliation engine."""
    request_id: Key
    related_to_id: Key
    related_to_type: RelatedToType
    state: RequestState
    upserted: Optional[UpsertKind] = None
    stock_move_refs: IdList = Field(default_factory=list)
    operator_id: OptionalKey = None
    date_updated: Optional[str] = None

    @property
    def order_type(self) -> str:
        return order_type_for(self.related_to_type)


# =============================================================================
# Derived Line Items
# =============================================================================

class MaterialLine(BaseModel):
    """Aggregated material consumption for one order.

    quantity is the sum of all stock entries for material_id; mean_price is
    the unit price of the first stock entry seen for it.
    """
    work_order_id: Key
    material_id: OptionalKey = None
    material_code: Optional[str] = None
    folder_code: Optional[str] = None
    quantity: Amount = Decimal("0")
    mean_price: Amount = Decimal("0")


class LedgerStockRecord(BaseModel):
    """One warehouse/product stock row (ledger stock quant)."""
    stock_id: int
    product_id: LedgerId
    product_display: str = ""
    product_reference_code: Optional[str] = None
    category_id: OptionalId = None
    location_id: OptionalId = None
    warehouse_id: OptionalId = None
    warehouse_name: Optional[str] = None
    quantity_on_hand: Amount = Decimal("0")


class InventoryPosting(BaseModel):
    """One stock movement to create in the ledger."""
    product_id: int
    source_location_id: int
    dest_location_id: int
    quantity: Amount
    work_order_id: Key
    material_code: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def _non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError(f"Inventory quantity cannot be negative: {v}")
        return v


class JournalLine(BaseModel):
    """A balanced debit/credit pair of the same amount."""
    model_config = ConfigDict(frozen=True)

    debit_account_id: int
    credit_account_id: int
    amount: Amount
    memo: str

    @field_validator("amount")
    @classmethod
    def _non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError(f"Journal amount cannot be negative: {v}")
        return v


class JournalPosting(BaseModel):
    """One double-entry accounting move."""
    work_order_id: Key
    reference_text: str
    lines: List[JournalLine] = Field(default_factory=list)

    @property
    def total_debit(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit


class AccountingData(BaseModel):
    """Input to the journal builder for one order."""
    work_order_id: Key
    cost_center_account_id: int
    lines: List[MaterialLine] = Field(default_factory=list)


class TranslationResult(BaseModel):
    accounting_data: AccountingData
    inventory_data: List[InventoryPosting] = Field(default_factory=list)


class PostingResult(BaseModel):
    """Ledger ids produced by one posting, plus the stock moves as written
    (source and destination already flipped for reversals)."""
    stock_move_ids: List[int] = Field(default_factory=list)
    account_move_id: Optional[int] = None
    finalized: bool = False
    moved: List[InventoryPosting] = Field(default_factory=list)


# =============================================================================
# Drift
# =============================================================================

class DriftMovement(BaseModel):
    """Corrective field-system stock movement for one (material, warehouse)."""
    material_id: int
    warehouse_id: int
    action: MovementAction
    quantity: Amount
    mean_price: Amount = Decimal("0")
    material_code: Optional[str] = None
    ledger_quantity: Amount = Decimal("0")
    field_quantity: Amount = Decimal("0")


class PostedMovement(BaseModel):
    """A drift movement accepted by the field system."""
    movement_id: str
    material_id: int
    warehouse_id: int
    action: MovementAction
    quantity: Amount
