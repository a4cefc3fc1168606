"""Webhook and manual-run endpoints.

Infraspeak calls POST /webhooks/work-orders when an order is completed; the
scheduled pipelines can also be started by hand via POST /runs/{pipeline}.
Both only start workflows; the work happens in the worker.
"""

import json
import logging
import time
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from api.services.workflow_starter import WorkflowAlreadyRunning, WorkflowStarter, get_workflow_starter
from core.errors import ValidationError
from pipelines.work_orders import WorkOrderEvent
from workflows.sync_workflows import SCHEDULED_WORKFLOWS, WorkOrderSyncWorkflow, WorkOrderSyncWorkflowInput


logger = logging.getLogger(__name__)

router = APIRouter()


class WorkflowStartResponse(BaseModel):
    """Workflow start acknowledgement."""
    workflow_id: str
    status: str
    run_id: Optional[str] = None


def work_order_workflow_id(event: WorkOrderEvent) -> str:
    return f"work-order-{event.resource_type}-{event.order_id}"


@router.post("/webhooks/work-orders", response_model=WorkflowStartResponse, status_code=202)
async def work_order_webhook(
    request: Request,
    response: Response,
    starter: WorkflowStarter = Depends(get_workflow_starter),
) -> WorkflowStartResponse:
    """Start labour-cost posting for a completed order."""
    try:
        payload: Any = await request.json()
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Request body is not valid JSON")

    try:
        event = WorkOrderEvent.from_payload(payload if isinstance(payload, dict) else {})
    except (ValidationError, PydanticValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    workflow_id = work_order_workflow_id(event)
    try:
        run_id = await starter.start(
            WorkOrderSyncWorkflow.run,
            workflow_id,
            WorkOrderSyncWorkflowInput(order_id=event.order_id, resource_type=event.resource_type),
        )
    except WorkflowAlreadyRunning:
        logger.info(f"Workflow {workflow_id} is already running")
        response.status_code = 200
        return WorkflowStartResponse(workflow_id=workflow_id, status="already_running")

    logger.info(f"Started {workflow_id}")
    return WorkflowStartResponse(workflow_id=workflow_id, status="started", run_id=run_id)


@router.post("/runs/{pipeline}", response_model=WorkflowStartResponse, status_code=202)
async def start_pipeline_run(
    pipeline: str,
    response: Response,
    starter: WorkflowStarter = Depends(get_workflow_starter),
) -> WorkflowStartResponse:
    """Start one run of a scheduled pipeline."""
    workflow_cls = SCHEDULED_WORKFLOWS.get(pipeline)
    if workflow_cls is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown pipeline '{pipeline}'. Available: {', '.join(sorted(SCHEDULED_WORKFLOWS))}",
        )

    workflow_id = f"{pipeline}-manual-{int(time.time() * 1000)}"
    try:
        run_id = await starter.start(workflow_cls.run, workflow_id)
    except WorkflowAlreadyRunning:
        response.status_code = 200
        return WorkflowStartResponse(workflow_id=workflow_id, status="already_running")
    return WorkflowStartResponse(workflow_id=workflow_id, status="started", run_id=run_id)
