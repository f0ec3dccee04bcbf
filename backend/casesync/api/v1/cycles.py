"""
Ingestion cycle endpoints — manual trigger and lock inspection.
"""

from fastapi import APIRouter, HTTPException

from casesync.core.logging import get_logger
from casesync.pipeline.errors import StatusReportError
from casesync.service import read_lock_status

logger = get_logger(__name__)

router = APIRouter(prefix="/cycles", tags=["Cycles"])


# ─── Trigger ──────────────────────────────────────────────
@router.post("/trigger", status_code=202)
async def trigger_cycle() -> dict:
    """
    Enqueue an ingestion cycle on the Celery worker.

    Returns immediately; if a cycle is already running the task finds
    the advisory lock held and exits without doing anything.
    """
    from casesync.tasks.ingestion_tasks import run_ingestion_cycle

    task = run_ingestion_cycle.delay()
    logger.info("Ingestion cycle enqueued", task_id=task.id)
    return {"task_id": task.id, "status": "QUEUED"}


# ─── Lock ─────────────────────────────────────────────────
@router.get("/lock")
async def get_lock_status() -> dict:
    """Current advisory lock value as stored in the portal constants."""
    try:
        return await read_lock_status()
    except StatusReportError as exc:
        logger.error("Lock status unavailable", error=str(exc))
        raise HTTPException(status_code=502, detail=str(exc)) from exc
