"""
Celery tasks — the periodic case ingestion cycle.

Beat fires ``run_ingestion_cycle`` on a fixed interval.  Each run is
guarded by the advisory lock, so overlapping triggers are no-ops.  A
cycle that processed cases re-arms itself straight away by enqueueing
the task again instead of waiting for the next beat.
"""

import asyncio

import structlog

from casesync.pipeline.context import CycleResult
from casesync.service import run_ingestion_cycle as run_cycle
from casesync.tasks import celery_app

logger = structlog.get_logger("tasks.ingestion")


def _rearm() -> None:
    run_ingestion_cycle.apply_async()


@celery_app.task(bind=True, name="casesync.tasks.ingestion_tasks.run_ingestion_cycle")
def run_ingestion_cycle(self) -> dict:
    """Run one ingestion cycle; returns the cycle summary."""
    task_log = logger.bind(task_id=self.request.id)
    task_log.info("Ingestion task started")

    try:
        # Run the async coordinator in sync Celery context
        result: CycleResult = asyncio.run(run_cycle(rearm=_rearm))
    except Exception as exc:
        task_log.exception("Ingestion task failed", error=str(exc))
        raise

    task_log.info(
        "Ingestion task finished",
        cycle_status=result.status,
        cases_completed=result.cases_completed,
        cases_failed=result.cases_failed,
        rearmed=result.rearmed,
    )
    return result.to_dict()
