"""Worker for the Odoo / Infraspeak sync pipelines.

Listens on Temporal task queues and executes the sync workflows/activities.

Task queues:
- sync-default: workflows (deterministic orchestration only)
- sync-remote: pipeline activities that call Odoo and Infraspeak

Run with --queue <name> to specify which queue to poll.
Run with --all to poll both queues (for local development).
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from activities.sync import SyncActivities
from core.config import load_settings
from core.observability.logging import configure_logging
from pipelines.handler import build_context
from temporal_client import get_temporal_client
from workflows.sync_workflows import ALL_WORKFLOWS, TASK_QUEUE_DEFAULT, TASK_QUEUE_REMOTE


logger = logging.getLogger(__name__)


def build_activities() -> SyncActivities:
    """Activities bound to settings read once for this process."""
    settings = load_settings()
    return SyncActivities(lambda: build_context(settings=settings))


def build_workers(client, queue: str = TASK_QUEUE_DEFAULT, all_queues: bool = False) -> list:
    """Create the Worker objects for the requested queue(s)."""
    if all_queues:
        queues = [TASK_QUEUE_DEFAULT, TASK_QUEUE_REMOTE]
    else:
        queues = [queue]

    activities = build_activities() if TASK_QUEUE_REMOTE in queues else None

    workers = []
    for task_queue in queues:
        if task_queue == TASK_QUEUE_REMOTE:
            worker = Worker(client, task_queue=task_queue, activities=activities.all())
        else:
            worker = Worker(client, task_queue=task_queue, workflows=ALL_WORKFLOWS)
        workers.append(worker)
        logger.info(f"Created worker for queue: {task_queue}")
    return workers


async def run_worker(queue: str = TASK_QUEUE_DEFAULT, all_queues: bool = False):
    """Start worker(s) listening on task queue(s).

    Args:
        queue: Specific queue to poll (sync-default, sync-remote)
        all_queues: If True, poll both queues (local dev mode)

    Raises:
        Exception: If connection to Temporal fails
    """
    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    workers = build_workers(client, queue=queue, all_queues=all_queues)

    logger.info("Worker(s) running... (Ctrl+C to stop)")
    try:
        await asyncio.gather(*[w.run() for w in workers])
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Odoo / Infraspeak Sync Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        choices=[TASK_QUEUE_DEFAULT, TASK_QUEUE_REMOTE],
        default=TASK_QUEUE_DEFAULT,
        help="Task queue to poll (default: sync-default)"
    )
    parser.add_argument(
        "--all", "-a",
        action="store_true",
        dest="all_queues",
        help="Poll all queues (local development mode)"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines (default: SYNC_LOG_FORMAT)"
    )

    args = parser.parse_args()
    configure_logging(json_format=args.json_logs or None)
    asyncio.run(run_worker(queue=args.queue, all_queues=args.all_queues))


if __name__ == "__main__":
    main()
