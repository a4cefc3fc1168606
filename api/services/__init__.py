"""API Services Package."""

from api.services.workflow_starter import (
    WorkflowAlreadyRunning,
    WorkflowStarter,
    get_workflow_starter,
)

__all__ = [
    "WorkflowAlreadyRunning",
    "WorkflowStarter",
    "get_workflow_starter",
]
