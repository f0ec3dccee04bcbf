"""
RedesignIngestor — mirrors redesign requests into the REDESIGN namespace.

Each redesign gets ``<date>/REDESIGN/<rd_case_id>/`` holding its active
storage files and a Comments.pdf rendered from its activity thread.
Unlike a case, a redesign with no files is still worth keeping: the
comment thread is the main deliverable.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable

from casesync.clients.storage import StorageClient
from casesync.core.constants import COMMENTS_FILENAME, STORAGE_LISTING_FIELDS, OutcomeStatus
from casesync.core.logging import get_logger
from casesync.documents import generate_comments_pdf
from casesync.models.case import RedesignRecord, StorageItem
from casesync.pipeline.context import DocumentOutcome, IngestionOutcome
from casesync.pipeline.errors import IngestionError
from casesync.pipeline.fetcher import FileFetcher
from casesync.pipeline.ingestor import download_all
from casesync.pipeline.paths import PathResolver, sanitize_case_id

logger = get_logger(__name__)

# (case id, activities, priority, path, *, tz)
CommentsGenerator = Callable[..., Awaitable[object]]


class RedesignIngestor:
    def __init__(
        self,
        storage: StorageClient,
        resolver: PathResolver,
        fetcher: FileFetcher | None = None,
        comments_generator: CommentsGenerator = generate_comments_pdf,
        download_concurrency: int = 4,
        page_size: int = 100,
    ) -> None:
        self.storage = storage
        self.resolver = resolver
        self.fetcher = fetcher or FileFetcher(storage, resolver)
        self.comments_generator = comments_generator
        self.download_concurrency = download_concurrency
        self.page_size = page_size

    async def ingest(self, redesign: RedesignRecord) -> IngestionOutcome:
        """Mirror one redesign; never raises."""
        rd_id = sanitize_case_id(redesign.rd_case_id)
        log = logger.bind(rd_case_id=rd_id, case_id=redesign.case_id)

        if not rd_id:
            log.error("Redesign id is empty after sanitizing, skipping")
            return IngestionOutcome.failed(redesign.rd_case_id, "Empty redesign id")

        try:
            folder = await self.resolver.ensure_redesign_root(rd_id, redesign.creation_time_ms)
            files = await self._eligible_files(redesign.box_folder_id)

            downloads, document = await asyncio.gather(
                download_all(self.fetcher, rd_id, files, self.download_concurrency, folder),
                self._generate_comments(redesign, folder),
            )
        except IngestionError as exc:
            log.error("Redesign failed", error=str(exc), error_type=type(exc).__name__)
            return IngestionOutcome.failed(rd_id, f"{type(exc).__name__}: {exc}")
        except Exception as exc:
            log.exception("Unexpected error in redesign", error=str(exc))
            return IngestionOutcome.failed(rd_id, f"Unexpected: {exc}")

        outcome = IngestionOutcome(
            case_id=rd_id,
            status=OutcomeStatus.COMPLETED,
            date_bucket=self.resolver.ctx.date_for(rd_id),
            downloads=downloads,
            document=document,
        )
        for file_name, error in downloads.failed:
            log.error("Redesign file download failed", file_name=file_name, error=error)
            outcome.notes.append(f"download failed: {file_name}")
        if not document.ok:
            log.warning("Comments.pdf generation failed", error=document.error)
            outcome.notes.append(f"document failed: {document.error}")

        log.info(
            "Redesign completed",
            files_downloaded=len(downloads.succeeded),
            files_failed=len(downloads.failed),
        )
        return outcome

    async def _eligible_files(self, folder_id: str | None) -> list[StorageItem]:
        if not folder_id:
            return []
        listing = await self.storage.list_folder_items(
            folder_id,
            fields=STORAGE_LISTING_FIELDS,
            offset=0,
            limit=self.page_size,
        )
        return [item for item in listing.entries if item.is_downloadable]

    async def _generate_comments(self, redesign: RedesignRecord, folder: Path) -> DocumentOutcome:
        path = folder / COMMENTS_FILENAME
        title_id = redesign.case_id or redesign.rd_case_id
        try:
            await self.comments_generator(
                title_id, redesign.activities, redesign.priority, path, tz=self.resolver.tz
            )
        except Exception as exc:
            return DocumentOutcome(error=str(exc))
        return DocumentOutcome(path=path)

