"""Starts sync workflows on behalf of the HTTP routes.

Routes depend on get_workflow_starter(); tests override it with a fake.
"""

from typing import Any, Optional

from temporalio.client import Client
from temporalio.exceptions import WorkflowAlreadyStartedError

from temporal_client import get_temporal_client
from workflows.sync_workflows import TASK_QUEUE_DEFAULT


class WorkflowAlreadyRunning(Exception):
    """A workflow with the same id is still open."""
    pass


class WorkflowStarter:
    """Starts workflows on the default queue, connecting on first use."""

    def __init__(self, client: Optional[Client] = None, task_queue: str = TASK_QUEUE_DEFAULT):
        self._client = client
        self.task_queue = task_queue

    async def _get_client(self) -> Client:
        if self._client is None:
            self._client = await get_temporal_client()
        return self._client

    async def start(self, workflow_run: Any, workflow_id: str, arg: Any = None) -> str:
        """Start a workflow and return its run id.

        Raises:
            WorkflowAlreadyRunning: A workflow with workflow_id is still open
        """
        client = await self._get_client()
        args = [arg] if arg is not None else []
        try:
            handle = await client.start_workflow(
                workflow_run,
                *args,
                id=workflow_id,
                task_queue=self.task_queue,
            )
        except WorkflowAlreadyStartedError as e:
            raise WorkflowAlreadyRunning(workflow_id) from e
        return handle.result_run_id or ""


_starter: Optional[WorkflowStarter] = None


def get_workflow_starter() -> WorkflowStarter:
    """FastAPI dependency: process-wide WorkflowStarter."""
    global _starter
    if _starter is None:
        _starter = WorkflowStarter()
    return _starter
