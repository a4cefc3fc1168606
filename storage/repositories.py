"""Typed access to the request and work-order state tables."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from core.errors import StoreError
from core.identifiers import to_key
from core.models.sync import PersistedRequestRecord, SourceRequest, RequestState
from storage.state_store import StateStore


class RequestRepository:
    """Persisted mirrors of field-system material requests.

    One record per request_id. Records are never deleted; retraction only
    sets the reversed flag.
    """

    def __init__(self, store: StateStore):
        self.store = store

    async def get(self, request_id: Any) -> Optional[PersistedRequestRecord]:
        item = await self.store.get_item(to_key(request_id))
        return PersistedRequestRecord.model_validate(item) if item else None

    async def require(self, request_id: Any) -> PersistedRequestRecord:
        record = await self.get(request_id)
        if record is None:
            raise StoreError(f"No persisted record for request {request_id}", request_id=to_key(request_id))
        return record

    async def scan(self) -> List[PersistedRequestRecord]:
        return [PersistedRequestRecord.model_validate(item) for item in await self.store.scan_items()]

    async def insert(self, request: SourceRequest) -> PersistedRequestRecord:
        record = PersistedRequestRecord.from_source(request)
        await self.store.put_item(record.to_item())
        return record

    async def update_from_source(
        self,
        request: SourceRequest,
        previous_date_updated: Optional[str],
    ) -> PersistedRequestRecord:
        """Refresh source attributes, guarded on the date_updated we read."""
        attributes = {
            "type": request.type,
            "related_to_type": request.related_to_type.value,
            "related_to_id": request.related_to_id,
            "state": RequestState.COMPLETED.value,
            "date_created": request.date_created,
            "date_updated": request.date_updated,
            "operator_id": request.operator_id,
            "reversed": False,
        }
        item = await self.store.update_item(
            request.request_id,
            attributes,
            condition={"date_updated": previous_date_updated},
        )
        return PersistedRequestRecord.model_validate(item)

    async def mark_reversed(self, request_id: Any) -> None:
        await self.store.update_item(to_key(request_id), {"reversed": True})

    async def reset_reversed(self, request_id: Any) -> None:
        await self.store.update_item(to_key(request_id), {"reversed": False})

    async def save_cost_center(self, request_id: Any, cost_center_ledger_id: int) -> None:
        await self.store.update_item(to_key(request_id), {"cost_center_ledger_id": cost_center_ledger_id})

    async def save_posting_ids(
        self,
        request_id: Any,
        stock_move_ids: List[int],
        account_move_id: Optional[int],
    ) -> None:
        await self.store.update_item(
            to_key(request_id),
            {
                "state": RequestState.COMPLETED.value,
                "stock_move_ids": list(stock_move_ids),
                "account_move_id": account_move_id,
            },
        )

    async def save_reversal_ids(
        self,
        request_id: Any,
        stock_move_ids: List[int],
        account_move_id: Optional[int],
    ) -> None:
        """Record the compensating postings; the original ids are cleared so
        they cannot be reversed twice."""
        await self.store.update_item(
            to_key(request_id),
            {
                "state": RequestState.REVERSED.value,
                "reversal_stock_move_ids": list(stock_move_ids),
                "reversal_account_move_id": account_move_id,
                "stock_move_ids": [],
                "account_move_id": None,
            },
        )


class WorkOrderRepository:
    """Posting state of work orders received by webhook (keyed by order_id)."""

    def __init__(self, store: StateStore):
        self.store = store

    async def get(self, order_id: Any) -> Optional[Dict[str, Any]]:
        return await self.store.get_item(to_key(order_id))

    async def posted_move_id(self, order_id: Any) -> Optional[int]:
        item = await self.get(order_id)
        if not item or item.get("posted_to_ledger") in (None, False, ""):
            return None
        return int(item["posted_to_ledger"])

    async def mark_posted(
        self,
        order_id: Any,
        account_move_id: int,
        completed_by: Optional[Any] = None,
        completed_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.store.update_item(
            to_key(order_id),
            {
                "posted_to_ledger": account_move_id,
                "completed_by": to_key(completed_by) if completed_by is not None else None,
                "completed_date": completed_date,
                "posted_at": datetime.utcnow().isoformat(),
            },
        )
