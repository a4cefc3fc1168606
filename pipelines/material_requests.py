"""Material request pipeline (scheduled poll).

1. Fetch completed material requests from Infraspeak
2. Reconcile them against the request store
3. COMPLETED items: translate the order and post stock moves + journal to Odoo
4. REVERSED items: post the compensating entries
"""

import asyncio
from typing import List, Optional, Sequence

from connectors.base import CostCenterRef
from core.errors import RemoteCallError, SyncError
from core.models.sync import ClassifiedItem, LedgerStockRecord, PostingResult, RequestState, UpsertKind
from core.observability.logging import get_logger, with_correlation
from pipelines.handler import FailureReport, PipelineResponse, SyncContext, run_pipeline
from posting.poster import LedgerPoster
from posting.reversal import ReversalEngine
from posting.translator import apply_stock_moves, resolve_cost_center, translate
from reconciliation.engine import RequestReconciler


logger = get_logger(__name__)

NOTHING_TO_DO = "Okay. No new Requests to process."


class MaterialRequestProcessor:
    """Processes the classified items of one poll.

    The ledger stock snapshot is fetched once and then kept current: every
    posting and reversal is applied to it, so later items in the same poll
    are checked against what is actually left on hand. After a failed item
    the ledger may hold a partial posting, so the snapshot is re-fetched.
    """

    def __init__(self, ctx: SyncContext, report: FailureReport):
        self.ctx = ctx
        self.report = report
        settings = ctx.settings
        self.poster = LedgerPoster(
            ctx.ledger,
            ctx.requests,
            journal_id=settings.journal_id,
            inventories_account_id=settings.inventories_account_id,
        )
        self.reversal = ReversalEngine(ctx.ledger, ctx.requests, self.poster)
        self.cost_centers: Sequence[CostCenterRef] = []
        self.snapshot: Sequence[LedgerStockRecord] = []
        self.snapshot_stale = False

    async def load_reference_data(self, items: Sequence[ClassifiedItem]) -> None:
        if not any(item.state == RequestState.COMPLETED for item in items):
            return
        self.cost_centers, self.snapshot = await asyncio.gather(
            self.ctx.field.fetch_cost_centers(),
            self.ctx.ledger.fetch_stock_snapshot(),
        )

    async def current_snapshot(self) -> Sequence[LedgerStockRecord]:
        if self.snapshot_stale:
            logger.info("Re-reading the Odoo stock snapshot")
            self.snapshot = await self.ctx.ledger.fetch_stock_snapshot()
            self.snapshot_stale = False
        return self.snapshot

    def track(self, result: Optional[PostingResult]) -> None:
        if result is not None and result.moved:
            self.snapshot = apply_stock_moves(self.snapshot, result.moved)

    async def process_completed(self, item: ClassifiedItem) -> str:
        order = await self.ctx.field.fetch_order_detail(item.related_to_id, item.order_type)
        self.report.note(completed_date=order.completed_date)

        if item.upserted == UpsertKind.UPDATED:
            record = await self.ctx.requests.get(item.request_id)
            if record is not None and record.account_move_id is not None:
                logger.info(f"Request {item.request_id} changed; reversing its previous posting first")
                self.track(await self.reversal.reverse(item.request_id))

        cost_center_account_id = await resolve_cost_center(self.ctx.ledger, order, self.cost_centers)
        await self.ctx.requests.save_cost_center(item.request_id, cost_center_account_id)

        translation = await translate(
            self.ctx.ledger,
            order,
            self.cost_centers,
            await self.current_snapshot(),
            self.ctx.settings.scrap_location_id,
            cost_center_account_id=cost_center_account_id,
        )
        result = await self.poster.post(
            translation.inventory_data,
            translation.accounting_data,
            item.order_type,
            RequestState.COMPLETED,
            request_id=item.request_id,
        )
        self.track(result)
        logger.info(
            f"Posted request {item.request_id}",
            extra_fields={"stock_move_ids": result.stock_move_ids, "account_move_id": result.account_move_id},
        )
        return f"Successfully posted {item.order_type} Id {item.related_to_id} to Odoo."

    async def process_reversed(self, item: ClassifiedItem) -> str:
        result = await self.reversal.reverse(item.request_id)
        if result is None:
            return f"Nothing to reverse for {item.order_type} Id {item.related_to_id}."
        self.track(result)
        logger.info(
            f"Reversed request {item.request_id}",
            extra_fields={"stock_move_ids": result.stock_move_ids, "account_move_id": result.account_move_id},
        )
        return f"Successfully posted {item.order_type} Id {item.related_to_id} to Odoo."

    async def process(self, item: ClassifiedItem) -> str:
        with with_correlation(request_id=item.request_id, order_id=item.related_to_id, order_type=item.order_type):
            try:
                if item.state == RequestState.COMPLETED:
                    return await self.process_completed(item)
                return await self.process_reversed(item)
            except asyncio.TimeoutError as e:
                self.snapshot_stale = True
                raise RemoteCallError(
                    f"Timed out processing request {item.request_id}",
                    order_id=item.related_to_id,
                    order_type=item.order_type,
                    request_id=item.request_id,
                ) from e
            except SyncError as e:
                self.snapshot_stale = True
                raise e.with_context(
                    order_id=item.related_to_id,
                    order_type=item.order_type,
                    request_id=item.request_id,
                )


async def _sync(ctx: SyncContext, report: FailureReport) -> str:
    batch = await ctx.field.fetch_completed_material_requests()
    items = await RequestReconciler(ctx.requests).reconcile(batch)
    if not items:
        return NOTHING_TO_DO

    processor = MaterialRequestProcessor(ctx, report)
    await processor.load_reference_data(items)

    if not ctx.settings.process_all_items:
        # stop after the first successful item
        return await processor.process(items[0])

    messages: List[str] = []
    failures: List[SyncError] = []
    for item in items:
        try:
            messages.append(await processor.process(item))
        except SyncError as e:
            logger.error(f"Request {item.request_id} failed: {e}")
            failures.append(e)

    if failures:
        summary = "; ".join(str(f) for f in failures)
        raise SyncError(f"{len(failures)} of {len(items)} requests failed: {summary}")
    return " ".join(messages)


async def sync_material_requests(ctx: SyncContext) -> PipelineResponse:
    """Run one poll of the material request pipeline."""
    return await run_pipeline("material_requests", ctx, _sync, error_prefix="Error processing Requests")
