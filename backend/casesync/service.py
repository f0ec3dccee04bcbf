"""
Wires the real HTTP clients into a CycleCoordinator.

Used by the Celery task, the API trigger and ``manage.py run-once``.
"""

from __future__ import annotations

from typing import Any, Callable

from casesync.clients.portal import PortalClient
from casesync.clients.storage import BoxStorageClient
from casesync.pipeline.context import CycleResult
from casesync.pipeline.coordinator import CycleCoordinator


async def run_ingestion_cycle(rearm: Callable[[], Any] | None = None) -> CycleResult:
    """Run one full cycle with freshly opened clients."""
    async with PortalClient() as portal, BoxStorageClient() as storage:
        coordinator = CycleCoordinator(portal, storage, rearm=rearm)
        return await coordinator.run_cycle()


async def read_lock_status() -> dict[str, Any]:
    async with PortalClient() as portal, BoxStorageClient() as storage:
        return await CycleCoordinator(portal, storage).lock_status()


async def release_lock() -> None:
    async with PortalClient() as portal, BoxStorageClient() as storage:
        await CycleCoordinator(portal, storage).release_lock()
