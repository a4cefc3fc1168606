"""Sync activities.

Temporal activities that run one pipeline each. Every run gets a fresh
SyncContext from the factory handed to SyncActivities by the worker, so the
settings are loaded once per process and the HTTP sessions once per run.
"""

import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from temporalio import activity

from core.observability.logging import (
    log_activity_complete,
    log_activity_error,
    log_activity_start,
    with_correlation,
)
from pipelines.handler import PipelineResponse, SyncContext, build_context
from pipelines.material_requests import sync_material_requests
from pipelines.products import sync_products
from pipelines.stock_sync import sync_stock_drift
from pipelines.work_orders import sync_work_order


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class WorkOrderSyncInput:
    """Input for run_work_order_sync.

    Attributes:
        order_id: Infraspeak order id from the webhook
        resource_type: Webhook resource type ("failures" for work orders)
    """
    order_id: str
    resource_type: str


@dataclass
class PipelineRunOutput:
    """Outcome of one pipeline run (mirrors PipelineResponse)."""
    status_code: int
    message: str
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def _to_output(response: PipelineResponse, started: float) -> PipelineRunOutput:
    return PipelineRunOutput(
        status_code=response.status_code,
        message=response.message,
        duration_ms=round((time.monotonic() - started) * 1000, 1),
    )


# =============================================================================
# Activity Definitions
# =============================================================================

class SyncActivities:
    """Activity implementations bound to a context factory.

    Usage (worker):
        settings = load_settings()
        acts = SyncActivities(lambda: build_context(settings=settings))
        Worker(client, task_queue=..., activities=acts.all())
    """

    def __init__(self, context_factory: Optional[Callable[[], SyncContext]] = None):
        self.context_factory = context_factory or build_context

    def all(self) -> list:
        return [
            self.run_material_request_sync,
            self.run_work_order_sync,
            self.run_stock_drift_sync,
            self.run_product_sync,
        ]

    def _correlation(self) -> dict:
        info = activity.info()
        return {
            "workflow_id": info.workflow_id,
            "workflow_run_id": info.workflow_run_id,
            "activity_name": info.activity_type,
            "task_queue": info.task_queue,
        }

    async def _run(
        self,
        name: str,
        pipeline: Callable[[SyncContext], Awaitable[PipelineResponse]],
    ) -> PipelineRunOutput:
        started = time.monotonic()
        with with_correlation(**self._correlation()):
            log_activity_start(name)
            response = await pipeline(self.context_factory())
            output = _to_output(response, started)
            if output.ok:
                log_activity_complete(name, duration_ms=output.duration_ms)
            else:
                log_activity_error(name, output.message)
        activity.logger.info(f"{name} finished: {output.status_code} {output.message}")
        return output

    @activity.defn(name="run_material_request_sync")
    async def run_material_request_sync(self) -> PipelineRunOutput:
        """Poll completed material requests and post or reverse them."""
        return await self._run("run_material_request_sync", sync_material_requests)

    @activity.defn(name="run_work_order_sync")
    async def run_work_order_sync(self, input: WorkOrderSyncInput) -> PipelineRunOutput:
        """Post the labour cost of one order."""
        activity.logger.info(f"Work order sync for {input.resource_type}/{input.order_id}")
        payload = {"data": {"id": input.order_id, "type": input.resource_type}}
        return await self._run("run_work_order_sync", lambda ctx: sync_work_order(ctx, payload))

    @activity.defn(name="run_stock_drift_sync")
    async def run_stock_drift_sync(self) -> PipelineRunOutput:
        """Correct Infraspeak stock quantities from Odoo."""
        return await self._run("run_stock_drift_sync", sync_stock_drift)

    @activity.defn(name="run_product_sync")
    async def run_product_sync(self) -> PipelineRunOutput:
        """Add one missing product to the Infraspeak catalogue."""
        return await self._run("run_product_sync", sync_products)
