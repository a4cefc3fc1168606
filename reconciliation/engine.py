"""Reconciliation engine for polled material requests.

Compares the latest batch of completed requests from the field system with
the persisted mirror and classifies each one as new, changed or retracted.

Exposes:
- RequestReconciler(repository).reconcile(batch) -> List[ClassifiedItem]
"""

import logging
from typing import Dict, Iterable, List, Set

from core.identifiers import to_key
from core.models.sync import (
    ClassifiedItem,
    PersistedRequestRecord,
    RequestState,
    SourceRequest,
    UpsertKind,
)
from storage.repositories import RequestRepository


logger = logging.getLogger(__name__)


class RequestReconciler:
    """Classifies a polled batch against the state store.

    Usage:
        reconciler = RequestReconciler(RequestRepository(store))
        items = await reconciler.reconcile(batch)
        if not items:
            ...  # nothing to process
    """

    def __init__(self, repository: RequestRepository):
        self.repository = repository

    async def reconcile(self, batch: Iterable[SourceRequest]) -> List[ClassifiedItem]:
        """Upsert the batch into the store and return the work it implies.

        - unseen request: inserted, emitted as COMPLETED / INSERTED
        - seen with a different date_updated: updated, emitted as
          COMPLETED / UPDATED with the stock move ids already persisted
        - seen and unchanged: nothing (a set reversed flag is cleared)
        - persisted, absent from the batch and not yet reversed: flagged,
          emitted as REVERSED

        Returns:
            Classified items in batch order followed by retractions; an
            empty list means there is nothing to do.
        """
        existing: Dict[str, PersistedRequestRecord] = {
            record.request_id: record for record in await self.repository.scan()
        }
        seen: Set[str] = set()
        results: List[ClassifiedItem] = []

        for request in batch:
            key = to_key(request.request_id)
            seen.add(key)
            record = existing.get(key)

            if record is None:
                existing[key] = await self.repository.insert(request)
                results.append(ClassifiedItem(
                    request_id=key,
                    related_to_id=request.related_to_id,
                    related_to_type=request.related_to_type,
                    state=RequestState.COMPLETED,
                    upserted=UpsertKind.INSERTED,
                    stock_move_refs=[],
                    operator_id=request.operator_id,
                    date_updated=request.date_updated,
                ))
                logger.info(
                    f"Inserted new request: {key}, related_to_id: {request.related_to_id}, status: INSERTED"
                )
                continue

            if record.reversed:
                await self.repository.reset_reversed(key)

            if record.date_updated != request.date_updated:
                updated = await self.repository.update_from_source(request, record.date_updated)
                existing[key] = updated
                results.append(ClassifiedItem(
                    request_id=key,
                    related_to_id=request.related_to_id,
                    related_to_type=request.related_to_type,
                    state=RequestState.COMPLETED,
                    upserted=UpsertKind.UPDATED,
                    stock_move_refs=record.stock_move_ids,
                    operator_id=request.operator_id,
                    date_updated=request.date_updated,
                ))
                logger.info(
                    f"Updated request: {key}, related_to_id: {request.related_to_id}, status: COMPLETED"
                )

        for key, record in existing.items():
            if key in seen or record.reversed:
                continue
            await self.repository.mark_reversed(key)
            results.append(ClassifiedItem(
                request_id=key,
                related_to_id=record.related_to_id,
                related_to_type=record.related_to_type,
                state=RequestState.REVERSED,
                stock_move_refs=record.stock_move_ids,
                operator_id=record.operator_id,
                date_updated=record.date_updated,
            ))
            logger.info(f"Reversed request: {key}, related_to_id: {record.related_to_id}")

        return results
