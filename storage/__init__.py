"""State storage for the sync pipelines.

Provides keyed state tables (sqlite or in-memory) and typed repositories for
material requests and work orders.
"""

from storage.state_store import (
    StateStore,
    InMemoryStateStore,
    SqliteStateStore,
    REQUESTS_TABLE,
    WORK_ORDERS_TABLE,
)
from storage.repositories import RequestRepository, WorkOrderRepository

__all__ = [
    "StateStore",
    "InMemoryStateStore",
    "SqliteStateStore",
    "REQUESTS_TABLE",
    "WORK_ORDERS_TABLE",
    "RequestRepository",
    "WorkOrderRepository",
]
