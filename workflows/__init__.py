"""Workflow definitions module."""

from workflows.sync_workflows import (
    ALL_WORKFLOWS,
    SCHEDULED_WORKFLOWS,
    TASK_QUEUE_DEFAULT,
    TASK_QUEUE_REMOTE,
    MaterialRequestSyncWorkflow,
    ProductSyncWorkflow,
    StockDriftSyncWorkflow,
    WorkOrderSyncWorkflow,
    WorkOrderSyncWorkflowInput,
)

__all__ = [
    "ALL_WORKFLOWS",
    "SCHEDULED_WORKFLOWS",
    "TASK_QUEUE_DEFAULT",
    "TASK_QUEUE_REMOTE",
    "MaterialRequestSyncWorkflow",
    "ProductSyncWorkflow",
    "StockDriftSyncWorkflow",
    "WorkOrderSyncWorkflow",
    "WorkOrderSyncWorkflowInput",
]
