"""
CycleCoordinator — advisory lock + the per-cycle case driver.

One invocation of ``run_cycle``:

    1. Read ``case_downloader_mutex``.  A timestamp less than the lock
       window old means another cycle is running: do nothing.
    2. Write "now", read it back and carry on only if our value stuck.
    3. Fetch the incoming-case listing (bounded server-side by the
       watermark) and ingest the cases strictly one at a time, in
       listing order.
    4. Advance the ``portal_case_ts_ms`` watermark to the last case
       attempted, run the redesign pass, release the lock and re-arm.

The lock is cooperative only.  The key/value store has no conditional
put, so two invocations inside the same second can both win; the
read-back narrows the window but does not close it.

A failed listing stops the cycle and leaves the lock to expire, so the
next trigger after the window retries.
"""

from __future__ import annotations

import inspect
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from casesync.clients.portal import PortalAPI
from casesync.clients.storage import StorageClient
from casesync.core.config import settings
from casesync.core.constants import (
    CASE_WATERMARK_KEY,
    LOCK_KEY,
    REDESIGN_WATERMARK_KEY,
    CycleStatus,
)
from casesync.core.logging import get_logger
from casesync.pipeline.context import CycleContext, CycleResult, IngestionOutcome
from casesync.pipeline.errors import ListingError, LockContentionError, StatusReportError
from casesync.pipeline.ingestor import CaseIngestor
from casesync.pipeline.paths import PathResolver
from casesync.pipeline.redesigns import RedesignIngestor

logger = get_logger(__name__)

RELEASED_LOCK_VALUE = 0


class CycleCoordinator:
    """Runs ingestion cycles against one portal + storage pair."""

    def __init__(
        self,
        portal: PortalAPI,
        storage: StorageClient,
        base_folder: str | Path | None = None,
        *,
        rearm: Callable[[], Any] | None = None,
        lock_window_seconds: int | None = None,
        download_concurrency: int | None = None,
        page_size: int | None = None,
        tz: str | None = None,
        clock: Callable[[], float] = time.time,
        ingestor_factory: Callable[[PathResolver], CaseIngestor] | None = None,
        redesign_factory: Callable[[PathResolver], RedesignIngestor] | None = None,
        redesigns_enabled: bool = True,
    ) -> None:
        self.portal = portal
        self.storage = storage
        self.base_folder = Path(base_folder or settings.BASE_FOLDER)
        self.rearm = rearm
        self.lock_window_seconds = lock_window_seconds or settings.LOCK_WINDOW_SECONDS
        self.download_concurrency = download_concurrency or settings.DOWNLOAD_CONCURRENCY
        self.page_size = page_size or settings.STORAGE_PAGE_SIZE
        self.tz = tz or settings.DATE_BUCKET_TZ
        self.clock = clock
        self._ingestor_factory = ingestor_factory or self._default_ingestor
        self._redesign_factory = redesign_factory or self._default_redesign_ingestor
        self.redesigns_enabled = redesigns_enabled

    # ─── Lock ──────────────────────────────────────────

    def _now(self) -> int:
        return int(self.clock())

    async def lock_status(self) -> dict[str, Any]:
        """Current lock value and whether it is still inside the window."""
        stored = await self.portal.get_constant(LOCK_KEY)
        held_since = stored.as_int(0)
        now = self._now()
        return {
            "name": stored.name,
            "held_since": held_since,
            "age_seconds": now - held_since if held_since else None,
            "locked": held_since + self.lock_window_seconds > now,
            "window_seconds": self.lock_window_seconds,
        }

    async def acquire_lock(self) -> int:
        """
        Take the advisory lock; returns the value written.

        Raises LockContentionError if a cycle started within the window,
        if the store does not serve the lock key, or if another
        invocation overwrote our value between write and read-back.
        """
        stored = await self.portal.get_constant(LOCK_KEY)
        if stored.name != LOCK_KEY:
            raise LockContentionError(
                f"Constants store did not return '{LOCK_KEY}' (got {stored.name!r})",
            )

        now = self._now()
        held_since = stored.as_int(0)
        if held_since + self.lock_window_seconds > now:
            raise LockContentionError(
                f"Cycle already running since {held_since}",
                held_since=held_since,
            )

        await self.portal.set_constant(LOCK_KEY, now)

        confirmed = await self.portal.get_constant(LOCK_KEY)
        if confirmed.as_int(-1) != now:
            raise LockContentionError(
                "Lost the lock to a concurrent invocation",
                held_since=confirmed.as_int(0),
            )
        return now

    async def release_lock(self) -> None:
        try:
            await self.portal.set_constant(LOCK_KEY, RELEASED_LOCK_VALUE)
        except StatusReportError as exc:
            logger.warning("Could not release lock, it will expire on its own", error=str(exc))

    # ─── Cycle ─────────────────────────────────────────

    async def run_cycle(self) -> CycleResult:
        ctx = CycleContext()
        log = logger.bind(cycle_id=ctx.cycle_id)

        try:
            token = await self.acquire_lock()
        except LockContentionError as exc:
            log.info("Its already running, skipping cycle", reason=str(exc), held_since=exc.held_since)
            return CycleResult.skipped(ctx, error=str(exc))
        except StatusReportError as exc:
            log.error("Could not read or write the lock, skipping cycle", error=str(exc))
            return CycleResult.skipped(ctx, error=str(exc))

        log.info("Processing cases", lock_token=token)
        resolver = PathResolver(self.base_folder, ctx, tz=self.tz)

        try:
            cases = await self.portal.list_incoming_cases()
        except ListingError as exc:
            log.error("Error fetching incoming cases, cycle stopped", error=str(exc))
            return CycleResult.skipped(ctx, status=CycleStatus.LISTING_FAILED, error=str(exc))

        result = CycleResult(cycle_id=ctx.cycle_id, status=CycleStatus.COMPLETED, started_at=ctx.started_at)

        if not cases:
            log.info("No cases found")
            result.status = CycleStatus.NO_CASES
        else:
            result.outcomes, result.watermark = await self._process_cases(cases, resolver, log)
            if result.watermark is not None:
                await self._advance_watermark(CASE_WATERMARK_KEY, result.watermark, log)

        if self.redesigns_enabled:
            result.redesign_outcomes = await self._process_redesigns(resolver, log)

        await self.release_lock()
        result.completed_at = datetime.now(timezone.utc)

        log.info(
            "Cycle finished",
            status=result.status,
            cases_completed=result.cases_completed,
            cases_failed=result.cases_failed,
            watermark=result.watermark,
        )

        if result.watermark is not None and self.rearm is not None:
            log.info("Timestamp updated, restarting cycle")
            rearmed = self.rearm()
            if inspect.isawaitable(rearmed):
                await rearmed
            result.rearmed = True

        return result

    async def _process_cases(self, cases, resolver: PathResolver, log) -> tuple[list[IngestionOutcome], int | None]:
        ingestor = self._ingestor_factory(resolver)
        outcomes: list[IngestionOutcome] = []
        last_case_ts: int | None = None

        # sequential on purpose: concurrency lives inside a case only
        for index, case in enumerate(cases, start=1):
            if not case.box_folder_id:
                log.warning("Case has no storage folder, skipping", raw_case_id=case.case_id)
                continue

            log.info(f"Case {index}/{len(cases)}", raw_case_id=case.case_id)
            outcomes.append(await ingestor.ingest(case))
            last_case_ts = case.creation_time_ms

        return outcomes, last_case_ts

    async def _process_redesigns(self, resolver: PathResolver, log) -> list[IngestionOutcome]:
        try:
            redesigns = await self.portal.list_redesigns()
        except ListingError as exc:
            log.error("Exception while processing redesigns", error=str(exc))
            return []

        ingestor = self._redesign_factory(resolver)
        outcomes = []
        last_ts: int | None = None
        for redesign in redesigns:
            outcomes.append(await ingestor.ingest(redesign))
            last_ts = redesign.creation_time_ms

        if last_ts is not None:
            await self._advance_watermark(REDESIGN_WATERMARK_KEY, last_ts, log)
        return outcomes

    async def _advance_watermark(self, key: str, value: int, log) -> None:
        try:
            await self.portal.set_constant(key, value)
        except StatusReportError as exc:
            log.error("Failed to advance watermark", key=key, value=value, error=str(exc))
        else:
            log.info("Watermark advanced", key=key, value=value)

    # ─── Factories ─────────────────────────────────────

    def _default_ingestor(self, resolver: PathResolver) -> CaseIngestor:
        return CaseIngestor(
            self.portal,
            self.storage,
            resolver,
            download_concurrency=self.download_concurrency,
            page_size=self.page_size,
        )

    def _default_redesign_ingestor(self, resolver: PathResolver) -> RedesignIngestor:
        return RedesignIngestor(
            self.storage,
            resolver,
            download_concurrency=self.download_concurrency,
            page_size=self.page_size,
        )
