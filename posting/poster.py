"""Ledger poster - executes translated line items against the ledger.

Inventory first (one stock move per posting, issued concurrently), then one
journal entry, then the foreign ids are written back to the request record,
and finally the draft journal entry is posted.
"""

import asyncio
import logging
from decimal import Decimal
from typing import List, Optional, Sequence

from connectors.base import LedgerGateway
from core.errors import JournalFinalizeError, RemoteCallError, ValidationError
from core.models.sync import (
    AccountingData,
    InventoryPosting,
    JournalLine,
    JournalPosting,
    PostingResult,
    RequestState,
)
from storage.repositories import RequestRepository


logger = logging.getLogger(__name__)


def format_quantity(quantity: Decimal) -> str:
    """3 -> "3", 2.50 -> "2.5"."""
    if quantity == quantity.to_integral_value():
        return str(int(quantity))
    return str(quantity.normalize())


def stock_move_name(order_type: str, work_order_id: str, state: RequestState) -> str:
    status = "Stock Move REVERSED" if state == RequestState.REVERSED else "Stock move"
    return f"{order_type} {work_order_id} - {status}"


def oriented(posting: InventoryPosting, state: RequestState) -> InventoryPosting:
    """The posting as it is written: reversals move stock back to its source."""
    if state == RequestState.REVERSED:
        return posting.model_copy(update={
            "source_location_id": posting.dest_location_id,
            "dest_location_id": posting.source_location_id,
        })
    return posting


def build_journal_posting(
    accounting_data: AccountingData,
    order_type: str,
    state: RequestState,
    inventories_account_id: int,
) -> JournalPosting:
    """One debit/credit pair per material line.

    COMPLETED debits inventories and credits the cost center for
    mean_price * quantity. REVERSED swaps the roles and restates mean_price,
    which carries the original journal total.
    """
    if not accounting_data.lines:
        raise ValidationError(
            "No accounting lines to post.",
            order_id=accounting_data.work_order_id,
            order_type=order_type,
        )

    wo = accounting_data.work_order_id
    cost_center = accounting_data.cost_center_account_id
    lines: List[JournalLine] = []

    for material in accounting_data.lines:
        if state == RequestState.REVERSED:
            lines.append(JournalLine(
                debit_account_id=cost_center,
                credit_account_id=inventories_account_id,
                amount=material.mean_price,
                memo=f"{order_type} {wo} REVERSED",
            ))
        else:
            lines.append(JournalLine(
                debit_account_id=inventories_account_id,
                credit_account_id=cost_center,
                amount=material.mean_price * material.quantity,
                memo=f"{order_type} {wo} - Ref: {material.material_code} (Qty: {format_quantity(material.quantity)})",
            ))

    return JournalPosting(work_order_id=wo, reference_text=lines[-1].memo, lines=lines)


class LedgerPoster:
    """Posts inventory and accounting data for one order.

    Usage:
        poster = LedgerPoster(ledger, repository, journal_id=16, inventories_account_id=482)
        result = await poster.post(inventory, accounting, "Work Order", RequestState.COMPLETED, request_id="A1")
    """

    def __init__(
        self,
        ledger: LedgerGateway,
        repository: Optional[RequestRepository],
        journal_id: int,
        inventories_account_id: int,
    ):
        self.ledger = ledger
        self.repository = repository
        self.journal_id = journal_id
        self.inventories_account_id = inventories_account_id

    async def _create_stock_moves(
        self,
        inventory_data: Sequence[InventoryPosting],
        order_type: str,
        state: RequestState,
    ) -> List[int]:
        async def create(posting: InventoryPosting) -> int:
            return await self.ledger.create_stock_move(
                posting, stock_move_name(order_type, posting.work_order_id, state)
            )

        results = await asyncio.gather(
            *[create(oriented(p, state)) for p in inventory_data], return_exceptions=True
        )

        created = [r for r in results if not isinstance(r, BaseException)]
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            if created:
                logger.error(f"Stock moves {created} were created before a sibling move failed")
            raise failures[0]
        return created

    async def post(
        self,
        inventory_data: Sequence[InventoryPosting],
        accounting_data: AccountingData,
        order_type: str,
        state: RequestState,
        request_id: Optional[str] = None,
    ) -> PostingResult:
        """Post one order.

        Raises:
            ValidationError: Nothing to post (checked before any remote write)
            RemoteCallError: A create call failed
            JournalFinalizeError: The journal entry exists but is stuck in draft
        """
        wo = accounting_data.work_order_id
        if not inventory_data:
            raise ValidationError("No valid inventory data to post.", order_id=wo, order_type=order_type)
        journal = build_journal_posting(accounting_data, order_type, state, self.inventories_account_id)

        stock_move_ids = await self._create_stock_moves(inventory_data, order_type, state)
        logger.info(f"{order_type} {wo}: created stock moves {stock_move_ids}")

        account_move_id = await self.ledger.create_journal_entry(journal, self.journal_id)
        logger.info(f"{order_type} {wo}: created journal entry {account_move_id}")

        if request_id is not None and self.repository is not None:
            if state == RequestState.REVERSED:
                await self.repository.save_reversal_ids(request_id, stock_move_ids, account_move_id)
            else:
                await self.repository.save_posting_ids(request_id, stock_move_ids, account_move_id)

        try:
            await self.ledger.post_journal_entry(account_move_id)
        except RemoteCallError as e:
            logger.error(f"{order_type} {wo}: journal entry {account_move_id} left in draft: {e.message}")
            raise JournalFinalizeError(
                f"Journal entry {account_move_id} was created but could not be posted: {e.message}",
                move_id=account_move_id,
                status_code=e.status_code,
                response_body=e.response_body,
                order_id=wo,
                order_type=order_type,
                request_id=request_id,
            ) from e

        return PostingResult(
            stock_move_ids=stock_move_ids,
            account_move_id=account_move_id,
            finalized=True,
            moved=[oriented(p, state) for p in inventory_data],
        )
