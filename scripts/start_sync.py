"""Start a sync pipeline workflow on Temporal.

Runs one pipeline now and prints its result, or registers it as a cron
workflow with --cron.

Examples:
    python scripts/start_sync.py material_requests
    python scripts/start_sync.py stock_sync --cron "*/15 * * * *"
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from workflows.sync_workflows import SCHEDULED_WORKFLOWS, TASK_QUEUE_DEFAULT


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def start_sync_workflow(pipeline: str, cron: str = None):
    """Start the workflow for one scheduled pipeline.

    Without a cron schedule, waits for the run and returns its output.
    With one, returns the workflow id right after registration.
    """
    workflow_cls = SCHEDULED_WORKFLOWS[pipeline]
    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    if cron:
        workflow_id = f"{pipeline}-cron"
        await client.start_workflow(
            workflow_cls.run,
            id=workflow_id,
            task_queue=TASK_QUEUE_DEFAULT,
            cron_schedule=cron,
        )
        logger.info(f"Registered {workflow_cls.__name__} with schedule '{cron}'")
        return workflow_id

    handle = await client.start_workflow(
        workflow_cls.run,
        id=f"{pipeline}-{int(time.time() * 1000)}",
        task_queue=TASK_QUEUE_DEFAULT,
    )
    logger.info(f"Workflow started: {handle.id}")
    logger.info("Waiting for result...")
    return await handle.result()


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Start a sync pipeline workflow")
    parser.add_argument("pipeline", choices=sorted(SCHEDULED_WORKFLOWS))
    parser.add_argument("--cron", help="Cron schedule, e.g. '*/15 * * * *'")
    args = parser.parse_args()

    try:
        result = asyncio.run(start_sync_workflow(args.pipeline, cron=args.cron))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if isinstance(result, str):
        print(result)
        return 0
    print(f"{result.status_code} {result.message}")
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
