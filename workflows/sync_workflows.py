"""Sync workflows.

One workflow per pipeline. Each runs a single activity on the remote queue
(the one that talks to Odoo and Infraspeak) and returns its outcome. The
activities are not retried: a partially posted run must be inspected, not
replayed.
"""

from dataclasses import dataclass
from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.sync import PipelineRunOutput, SyncActivities, WorkOrderSyncInput


# Task queues
TASK_QUEUE_DEFAULT = "sync-default"  # workflows
TASK_QUEUE_REMOTE = "sync-remote"    # activities calling Odoo / Infraspeak

REMOTE_ACTIVITY_OPTIONS = {
    "start_to_close_timeout": timedelta(minutes=10),
    "retry_policy": RetryPolicy(maximum_attempts=1),
    "task_queue": TASK_QUEUE_REMOTE,
}


@dataclass
class WorkOrderSyncWorkflowInput:
    """Input for WorkOrderSyncWorkflow.

    Attributes:
        order_id: Infraspeak order id from the webhook
        resource_type: "failures" for work orders, anything else for planned orders
    """
    order_id: str
    resource_type: str


@workflow.defn
class MaterialRequestSyncWorkflow:
    """Poll completed material requests and post them to Odoo."""

    @workflow.run
    async def run(self) -> PipelineRunOutput:
        workflow.logger.info("Starting material request sync")
        result = await workflow.execute_activity_method(
            SyncActivities.run_material_request_sync,
            **REMOTE_ACTIVITY_OPTIONS,
        )
        workflow.logger.info(f"Material request sync: {result.status_code} {result.message}")
        return result


@workflow.defn
class WorkOrderSyncWorkflow:
    """Post the labour cost of one completed order."""

    @workflow.run
    async def run(self, input: WorkOrderSyncWorkflowInput) -> PipelineRunOutput:
        workflow.logger.info(f"Starting work order sync for {input.resource_type}/{input.order_id}")
        result = await workflow.execute_activity_method(
            SyncActivities.run_work_order_sync,
            WorkOrderSyncInput(order_id=input.order_id, resource_type=input.resource_type),
            **REMOTE_ACTIVITY_OPTIONS,
        )
        workflow.logger.info(f"Work order sync: {result.status_code} {result.message}")
        return result


@workflow.defn
class StockDriftSyncWorkflow:
    """Align Infraspeak stock quantities with Odoo."""

    @workflow.run
    async def run(self) -> PipelineRunOutput:
        workflow.logger.info("Starting stock drift sync")
        result = await workflow.execute_activity_method(
            SyncActivities.run_stock_drift_sync,
            **REMOTE_ACTIVITY_OPTIONS,
        )
        workflow.logger.info(f"Stock drift sync: {result.status_code} {result.message}")
        return result


@workflow.defn
class ProductSyncWorkflow:
    """Add one missing Odoo product to the Infraspeak catalogue."""

    @workflow.run
    async def run(self) -> PipelineRunOutput:
        workflow.logger.info("Starting product sync")
        result = await workflow.execute_activity_method(
            SyncActivities.run_product_sync,
            **REMOTE_ACTIVITY_OPTIONS,
        )
        workflow.logger.info(f"Product sync: {result.status_code} {result.message}")
        return result


# Scheduled pipelines by name (for scripts/start_sync.py and the runs endpoint)
SCHEDULED_WORKFLOWS = {
    "material_requests": MaterialRequestSyncWorkflow,
    "stock_sync": StockDriftSyncWorkflow,
    "products": ProductSyncWorkflow,
}

ALL_WORKFLOWS = [
    MaterialRequestSyncWorkflow,
    WorkOrderSyncWorkflow,
    StockDriftSyncWorkflow,
    ProductSyncWorkflow,
]
