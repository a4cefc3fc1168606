"""Core data models - request mirrors, line items and postings.

These models are shared by the reconciliation engine, the posting
translator/poster and the drift reconciler.
"""

from core.models.sync import (
    # Constants / enums
    ORDER_TYPE_WORK,
    ORDER_TYPE_PLANNED,
    RelatedToType,
    RequestState,
    UpsertKind,
    MovementAction,
    order_type_for,

    # Requests
    SourceRequest,
    PersistedRequestRecord,
    ClassifiedItem,

    # Line items and postings
    MaterialLine,
    LedgerStockRecord,
    InventoryPosting,
    JournalLine,
    JournalPosting,
    AccountingData,
    TranslationResult,
    PostingResult,

    # Drift
    DriftMovement,
    PostedMovement,
)

__all__ = [
    "ORDER_TYPE_WORK",
    "ORDER_TYPE_PLANNED",
    "RelatedToType",
    "RequestState",
    "UpsertKind",
    "MovementAction",
    "order_type_for",
    "SourceRequest",
    "PersistedRequestRecord",
    "ClassifiedItem",
    "MaterialLine",
    "LedgerStockRecord",
    "InventoryPosting",
    "JournalLine",
    "JournalPosting",
    "AccountingData",
    "TranslationResult",
    "PostingResult",
    "DriftMovement",
    "PostedMovement",
]
