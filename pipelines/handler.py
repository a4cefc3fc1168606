"""Pipeline runtime - shared context, responses and the top-level error handler.

Every pipeline returns a PipelineResponse: 200 for success or a no-op, 500
for any failure. run_pipeline() is the single place where exceptions turn
into responses and operational notifications.
"""

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from connectors.base import FieldGateway, LedgerGateway, UserContact
from core.config import SyncSettings, load_settings
from core.errors import AlreadyPostedError
from core.notifications import NotificationSink, create_notifier
from core.observability.logging import with_correlation
from storage.repositories import RequestRepository, WorkOrderRepository
from storage.state_store import (
    REQUESTS_TABLE,
    WORK_ORDERS_TABLE,
    SqliteStateStore,
    StateStore,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Response
# =============================================================================

@dataclass
class PipelineResponse:
    """{statusCode, body: {message}} as returned by every pipeline."""
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return self.body.get("message", "")

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @classmethod
    def success(cls, message: str) -> "PipelineResponse":
        return cls(status_code=200, body={"message": message})

    @classmethod
    def failure(cls, message: str) -> "PipelineResponse":
        return cls(status_code=500, body={"message": message})

    def to_dict(self) -> Dict[str, Any]:
        return {"statusCode": self.status_code, "body": json.dumps(self.body)}


# =============================================================================
# Runtime Context
# =============================================================================

@dataclass
class SyncContext:
    """Everything a pipeline run needs, built once and injected."""
    settings: SyncSettings
    ledger: LedgerGateway
    field: FieldGateway
    requests: RequestRepository
    work_orders: WorkOrderRepository
    notifier: NotificationSink


def build_context(
    settings: Optional[SyncSettings] = None,
    ledger: Optional[LedgerGateway] = None,
    field_gateway: Optional[FieldGateway] = None,
    request_store: Optional[StateStore] = None,
    work_order_store: Optional[StateStore] = None,
    notifier: Optional[NotificationSink] = None,
) -> SyncContext:
    """Assemble a SyncContext; anything not supplied is built from settings."""
    settings = settings or load_settings()

    if ledger is None:
        from connectors.odoo import OdooConnector
        ledger = OdooConnector.from_settings(settings)
    if field_gateway is None:
        from connectors.infraspeak import InfraspeakConnector
        field_gateway = InfraspeakConnector.from_settings(settings)
    if request_store is None:
        request_store = SqliteStateStore(settings.state_db_path, REQUESTS_TABLE, "request_id")
    if work_order_store is None:
        work_order_store = SqliteStateStore(settings.state_db_path, WORK_ORDERS_TABLE, "order_id")

    return SyncContext(
        settings=settings,
        ledger=ledger,
        field=field_gateway,
        requests=RequestRepository(request_store),
        work_orders=WorkOrderRepository(work_order_store),
        notifier=create_notifier(settings, notifier),
    )


@asynccontextmanager
async def connected(ctx: SyncContext):
    """Open both gateways for the duration of a run."""
    await ctx.ledger.connect()
    try:
        await ctx.field.connect()
        try:
            yield ctx
        finally:
            await ctx.field.disconnect()
    finally:
        await ctx.ledger.disconnect()


# =============================================================================
# Error Handling
# =============================================================================

@dataclass
class FailureReport:
    """Details a pipeline collects while running, used to enrich failure notices."""
    completed_date: Optional[str] = None

    def note(self, completed_date: Optional[str] = None) -> None:
        if completed_date is not None:
            self.completed_date = completed_date


def format_failure_notice(error: BaseException, contact: UserContact, completed_date: Optional[str]) -> str:
    return (
        f"Error: {error}\n\n"
        f"User name: {contact.name}\n"
        f"User email: {contact.email}\n"
        f"Completed date: {completed_date}"
    )


async def _requester_contact(ctx: SyncContext) -> UserContact:
    try:
        return await ctx.field.fetch_user_contact()
    except Exception as e:
        logger.warning(f"Could not fetch requester details: {e}")
        return UserContact()


PipelineBody = Callable[[SyncContext, FailureReport], Awaitable[Union[str, PipelineResponse]]]


async def run_pipeline(
    name: str,
    ctx: SyncContext,
    body: PipelineBody,
    error_prefix: str,
) -> PipelineResponse:
    """Run a pipeline body and map its outcome to a PipelineResponse.

    - returned str: 200 with that message
    - AlreadyPostedError: 200 no-op with the error text
    - any other exception: requester details are fetched (best effort), a
      notice goes to the notifier, and a 500 is returned
    """
    report = FailureReport()
    with with_correlation(pipeline=name):
        async with connected(ctx):
            return await _guarded(ctx, body, report, error_prefix)


async def _guarded(
    ctx: SyncContext,
    body: PipelineBody,
    report: FailureReport,
    error_prefix: str,
) -> PipelineResponse:
    try:
        outcome = await body(ctx, report)
    except AlreadyPostedError as e:
        logger.info(str(e))
        return PipelineResponse.success(str(e))
    except Exception as e:
        logger.error(f"{error_prefix}: {e}", exc_info=True)
        contact = await _requester_contact(ctx)
        await ctx.notifier.send(
            ctx.settings.notify_subject,
            format_failure_notice(e, contact, report.completed_date),
        )
        return PipelineResponse.failure(f"{error_prefix}: {e}")

    if isinstance(outcome, PipelineResponse):
        return outcome
    logger.info(outcome)
    return PipelineResponse.success(outcome)
