"""Connectors - gateways to the ledger (Odoo) and field (Infraspeak) systems.

Key Design Principle:
- Pipelines, translators and posters depend ONLY on LedgerGateway / FieldGateway
- All methods return NORMALIZED types (LedgerStockRecord, CostCenterRef, ...)
- No JSON-RPC or JSON:API shapes leak through the interfaces
"""

from connectors.base import (
    # Interfaces
    LedgerGateway,
    FieldGateway,

    # Ledger references
    LedgerAccountRef,
    LedgerProductRef,
    StockMoveRef,

    # Field references
    CostCenterRef,
    FieldMaterialRef,
    FieldWarehouseRef,
    FieldStockQuantity,
    OrderDetail,
    UserContact,
)

__all__ = [
    "LedgerGateway",
    "FieldGateway",
    "LedgerAccountRef",
    "LedgerProductRef",
    "StockMoveRef",
    "CostCenterRef",
    "FieldMaterialRef",
    "FieldWarehouseRef",
    "FieldStockQuantity",
    "OrderDetail",
    "UserContact",
]
