"""
Bounded-concurrency runner for deferred coroutines.

A fixed number of workers pull task indexes off a shared cursor until
the queue is exhausted.  Every task is attempted exactly once; a task
that raises has its exception stored in its own slot and never stops
sibling workers or tasks not yet claimed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from casesync.core.logging import get_logger

logger = get_logger(__name__)

DeferredTask = Callable[[], Awaitable[Any]]


@dataclass
class TaskOutcome:
    """Value or exception of one task, at its original position."""

    index: int
    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_bounded(tasks: Sequence[DeferredTask], concurrency: int) -> list[TaskOutcome]:
    """
    Run ``tasks`` with at most ``concurrency`` in flight.

    Returns one TaskOutcome per task, in input order regardless of the
    order in which they finished.
    """
    total = len(tasks)
    if total == 0:
        return []

    workers = max(1, min(concurrency, total))
    results: list[TaskOutcome | None] = [None] * total
    cursor = 0

    async def worker(worker_id: int) -> None:
        nonlocal cursor
        while cursor < total:
            # claim and advance happen with no await in between,
            # so no two workers can take the same index
            index = cursor
            cursor += 1
            try:
                value = await tasks[index]()
            except Exception as exc:
                logger.debug("Pooled task failed", worker=worker_id, index=index, error=str(exc))
                results[index] = TaskOutcome(index=index, error=exc)
            else:
                results[index] = TaskOutcome(index=index, value=value)

    await asyncio.gather(*(worker(i) for i in range(workers)))
    return [r for r in results if r is not None]
