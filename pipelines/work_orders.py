"""Work order pipeline (webhook).

Posts the labour cost of a completed work order or planned order to Odoo as
a journal entry (debit cost center, credit salaries), exactly once per order.
"""

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping

from pydantic import BaseModel

from core.errors import AlreadyPostedError, JournalFinalizeError, RemoteCallError, SyncError, ValidationError
from core.models.sync import ORDER_TYPE_PLANNED, ORDER_TYPE_WORK, JournalLine, JournalPosting, Key
from core.observability.logging import with_correlation
from pipelines.handler import FailureReport, PipelineResponse, SyncContext, run_pipeline
from posting.translator import resolve_cost_center


logger = logging.getLogger(__name__)

WORK_ORDER_RESOURCE = "failures"


class WorkOrderEvent(BaseModel):
    """{data: {id, type}} from the field-system webhook."""
    order_id: Key
    resource_type: str

    @property
    def order_type(self) -> str:
        return ORDER_TYPE_WORK if self.resource_type == WORK_ORDER_RESOURCE else ORDER_TYPE_PLANNED

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WorkOrderEvent":
        """Accept the raw event or an envelope whose `body` is a JSON string.

        Raises:
            ValidationError: Payload is not {data: {id, type}}
        """
        event: Any = payload
        if isinstance(payload, Mapping) and isinstance(payload.get("body"), str):
            try:
                event = json.loads(payload["body"])
            except json.JSONDecodeError as e:
                raise ValidationError(f"Webhook body is not valid JSON: {e}") from e

        data = event.get("data") if isinstance(event, Mapping) else None
        if not isinstance(data, Mapping) or data.get("id") in (None, "") or not data.get("type"):
            raise ValidationError("Webhook payload must be {data: {id, type}}")
        return cls(order_id=data["id"], resource_type=str(data["type"]))


def build_labour_posting(
    order_id: str,
    order_type: str,
    manpower_cost: Decimal,
    cost_center_account_id: int,
    salaries_account_id: int,
) -> JournalPosting:
    memo = f"{order_type} {order_id} - Labour cost"
    return JournalPosting(
        work_order_id=order_id,
        reference_text=memo,
        lines=[JournalLine(
            debit_account_id=cost_center_account_id,
            credit_account_id=salaries_account_id,
            amount=manpower_cost,
            memo=memo,
        )],
    )


async def post_labour(ctx: SyncContext, event: WorkOrderEvent, report: FailureReport) -> str:
    order_type = event.order_type
    order_id = event.order_id

    order, cost_centers = await asyncio.gather(
        ctx.field.fetch_order_detail(order_id, order_type),
        ctx.field.fetch_cost_centers(),
    )
    report.note(completed_date=order.completed_date)

    posted = await ctx.work_orders.posted_move_id(order_id)
    if posted is not None:
        raise AlreadyPostedError(
            f"Order {order_id} has been posted to Odoo already with account move id {posted}",
            order_id=order_id,
            order_type=order_type,
        )

    manpower_cost = order.manpower_cost
    if manpower_cost <= 0:
        return f"No labour cost to post for {order_type} Id {order_id}."

    cost_center_account_id = await resolve_cost_center(ctx.ledger, order, cost_centers)
    posting = build_labour_posting(
        order_id, order_type, manpower_cost, cost_center_account_id, ctx.settings.salaries_account_id
    )
    move_id = await ctx.ledger.create_journal_entry(posting, ctx.settings.journal_id)
    await ctx.work_orders.mark_posted(order_id, move_id, order.completed_by_id, order.completed_date)

    try:
        await ctx.ledger.post_journal_entry(move_id)
    except RemoteCallError as e:
        raise JournalFinalizeError(
            f"Journal entry {move_id} was created but could not be posted: {e.message}",
            move_id=move_id,
            status_code=e.status_code,
            response_body=e.response_body,
        ) from e

    return f"Successfully posted {order_type} Id {order_id} to Odoo."


async def sync_work_order(ctx: SyncContext, payload: Dict[str, Any]) -> PipelineResponse:
    """Handle one work order webhook event."""

    async def body(ctx: SyncContext, report: FailureReport) -> str:
        event = WorkOrderEvent.from_payload(payload)
        with with_correlation(order_id=event.order_id, order_type=event.order_type):
            try:
                return await post_labour(ctx, event, report)
            except SyncError as e:
                raise e.with_context(order_id=event.order_id, order_type=event.order_type)

    return await run_pipeline("work_orders", ctx, body, error_prefix="Error handling webhook event")
