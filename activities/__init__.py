"""Activity definitions module."""

from activities.sync import (
    SyncActivities,
    WorkOrderSyncInput,
    PipelineRunOutput,
)

__all__ = [
    "SyncActivities",
    "WorkOrderSyncInput",
    "PipelineRunOutput",
]
