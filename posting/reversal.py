"""Reversal engine - compensating postings for retracted requests.

Nothing about the reversal is stored ahead of time. The persisted ledger ids
are used to re-read the live stock moves and journal total, and those rows
are posted back through the poster's REVERSED branch.
"""

import logging
from typing import Any, Optional

from connectors.base import LedgerGateway
from core.errors import ReferenceLookupError
from core.identifiers import to_key
from core.models.sync import PostingResult, RequestState
from posting.poster import LedgerPoster
from posting.translator import translate_reversal
from storage.repositories import RequestRepository


logger = logging.getLogger(__name__)


class ReversalEngine:
    """Reverses what was posted for one request.

    Usage:
        engine = ReversalEngine(ledger, repository, poster)
        result = await engine.reverse("A1")
    """

    def __init__(self, ledger: LedgerGateway, repository: RequestRepository, poster: LedgerPoster):
        self.ledger = ledger
        self.repository = repository
        self.poster = poster

    async def reverse(self, request_id: Any) -> Optional[PostingResult]:
        """Post the compensating entries for request_id.

        Returns:
            The reversal's PostingResult, or None when the request never
            produced a journal entry

        Raises:
            StoreError: No persisted record
            ReferenceLookupError: Missing cost center or journal entry in the ledger
        """
        record = await self.repository.require(request_id)
        key = to_key(request_id)
        order_type = record.order_type
        wo = record.related_to_id

        if record.account_move_id is None:
            logger.warning(f"Request {key} has no journal entry to reverse")
            return None
        if record.cost_center_ledger_id is None:
            raise ReferenceLookupError(
                f"Request {key} has no cost center recorded",
                order_id=wo, order_type=order_type, request_id=key,
            )

        stock_moves = await self.ledger.fetch_stock_moves(wo, record.stock_move_ids)
        if len(stock_moves) != len(record.stock_move_ids):
            logger.warning(
                f"Request {key}: {len(stock_moves)} of {len(record.stock_move_ids)} stock moves found in the ledger"
            )
        journal_total = await self.ledger.fetch_journal_total(record.account_move_id)

        translation = translate_reversal(wo, stock_moves, journal_total, record.cost_center_ledger_id)
        return await self.poster.post(
            translation.inventory_data,
            translation.accounting_data,
            order_type,
            RequestState.REVERSED,
            request_id=key,
        )
