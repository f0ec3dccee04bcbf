"""
CaseIngestor — drives one case from listing entry to status report.

    FOLDERS_PENDING → FILES_AND_DOC_IN_FLIGHT → RECONCILING → REPORTED

1. Ensure the lab root and the IMPORT / EXPORT - External / Uploads
   case folders.
2. List the case's storage folder; keep active, non-folder entries.
   Nothing eligible → the case fails with NoFilesFound and no status
   is posted.
3. Download every eligible file through the bounded pool while
   CaseDetails.pdf renders alongside.  Both are awaited; neither
   cancels the other.
4. Reconcile: failed downloads and a failed document are logged, not
   fatal.  The case is reported even if every download failed.
5. Post the status record, then the case's creation time as the
   watermark candidate.  A failing post is logged and the case still
   completes.

Whatever goes wrong is caught here and turned into a FAILED outcome so
the cycle driver can move on to the next case.
"""

from __future__ import annotations

import asyncio
import functools
from pathlib import Path
from typing import Awaitable, Callable

from casesync.clients.portal import PortalAPI
from casesync.clients.storage import StorageClient
from casesync.core.constants import (
    CASE_DETAILS_FILENAME,
    CASE_WATERMARK_KEY,
    STORAGE_LISTING_FIELDS,
    CaseStage,
    FolderKind,
    OutcomeStatus,
)
from casesync.core.logging import get_logger
from casesync.documents import generate_case_pdf
from casesync.models.case import CaseDetails, CaseRecord, CaseStatusRecord, StorageItem
from casesync.pipeline.context import DocumentOutcome, DownloadsOutcome, IngestionOutcome
from casesync.pipeline.errors import (
    DocumentGenerationError,
    IngestionError,
    NoFilesFoundError,
    StatusReportError,
)
from casesync.pipeline.fetcher import FileFetcher
from casesync.pipeline.paths import PathResolver, sanitize_case_id
from casesync.pipeline.pool import run_bounded

logger = get_logger(__name__)

DocumentGenerator = Callable[[str, CaseDetails, Path], Awaitable[object]]

# Folders every case gets, in creation order.
CASE_FOLDER_KINDS = (FolderKind.IMPORT, FolderKind.EXPORT_EXTERNAL, FolderKind.UPLOADS)


async def download_all(
    fetcher: FileFetcher,
    case_id: str,
    files: list[StorageItem],
    concurrency: int,
    destination_dir: Path | None = None,
) -> DownloadsOutcome:
    """Fetch every file through the bounded pool; one slot per file, never raises."""
    tasks = [
        functools.partial(fetcher.fetch, f.id, f.name, case_id, destination_dir)
        for f in files
    ]
    try:
        results = await run_bounded(tasks, concurrency)
    except Exception as exc:
        return DownloadsOutcome(error=str(exc))

    outcome = DownloadsOutcome()
    for item, result in zip(files, results):
        if result.ok:
            outcome.succeeded.append(result.value)
        else:
            outcome.failed.append((item.name, str(result.error)))
    return outcome


class CaseIngestor:
    """Ingests cases one at a time; holds no per-case state between calls."""

    def __init__(
        self,
        portal: PortalAPI,
        storage: StorageClient,
        resolver: PathResolver,
        fetcher: FileFetcher | None = None,
        document_generator: DocumentGenerator = generate_case_pdf,
        download_concurrency: int = 4,
        page_size: int = 100,
    ) -> None:
        self.portal = portal
        self.storage = storage
        self.resolver = resolver
        self.fetcher = fetcher or FileFetcher(storage, resolver)
        self.document_generator = document_generator
        self.download_concurrency = download_concurrency
        self.page_size = page_size

    async def ingest(self, case: CaseRecord) -> IngestionOutcome:
        """Run one case through every stage; never raises."""
        case_id = sanitize_case_id(case.case_id)
        log = logger.bind(case_id=case_id, raw_case_id=case.case_id)

        if not case_id:
            log.error("Case id is empty after sanitizing, skipping")
            return IngestionOutcome.failed(case.case_id, "Empty case id")

        log.info("Case started", creation_time_ms=case.creation_time_ms)
        try:
            outcome = await self._run(case_id, case, log)
        except NoFilesFoundError as exc:
            log.warning("No files found, case skipped", error=str(exc))
            return IngestionOutcome.failed(case_id, f"NoFilesFound: {exc}")
        except IngestionError as exc:
            log.error("Case failed", error=str(exc), error_type=type(exc).__name__)
            return IngestionOutcome.failed(case_id, f"{type(exc).__name__}: {exc}")
        except Exception as exc:
            log.exception("Unexpected error in case", error=str(exc))
            return IngestionOutcome.failed(case_id, f"Unexpected: {exc}")

        log.info("Case completed", **{k: v for k, v in outcome.to_dict().items() if k != "case_id"})
        return outcome

    # ─── Stages ────────────────────────────────────────

    async def _run(self, case_id: str, case: CaseRecord, log) -> IngestionOutcome:
        log.debug("Case stage", stage=CaseStage.FOLDERS_PENDING)
        await self.resolver.ensure_lab_root(case_id, case.creation_time_ms)
        for kind in CASE_FOLDER_KINDS:
            await self.resolver.ensure_case_folder(case_id, kind)

        files = await self._eligible_files(case_id, case.box_folder_id)

        log.debug("Case stage", stage=CaseStage.FILES_AND_DOC_IN_FLIGHT, files=len(files))
        downloads_future = asyncio.ensure_future(self._download_batch(case_id, files))
        document_future = asyncio.ensure_future(self._generate_document(case_id, case))
        downloads, document = await asyncio.gather(downloads_future, document_future)

        log.debug("Case stage", stage=CaseStage.RECONCILING)
        outcome = IngestionOutcome(
            case_id=case_id,
            status=OutcomeStatus.COMPLETED,
            date_bucket=self.resolver.ctx.date_for(case_id),
            downloads=downloads,
            document=document,
        )
        self._reconcile(outcome, log)

        log.debug("Case stage", stage=CaseStage.REPORTED)
        await self._report(case, outcome, log)
        return outcome

    async def _eligible_files(self, case_id: str, folder_id: str | None) -> list[StorageItem]:
        if not folder_id:
            raise NoFilesFoundError(f"Case {case_id} has no storage folder", case_id=case_id)

        listing = await self.storage.list_folder_items(
            folder_id,
            fields=STORAGE_LISTING_FIELDS,
            offset=0,
            limit=self.page_size,
        )
        files = [item for item in listing.entries if item.is_downloadable]
        if not files:
            raise NoFilesFoundError(f"Could not find files for {case_id}.", case_id=case_id)

        logger.info(
            "Storage folder listed",
            case_id=case_id,
            eligible=len(files),
            skipped=len(listing.entries) - len(files),
        )
        return files

    async def _download_batch(self, case_id: str, files: list[StorageItem]) -> DownloadsOutcome:
        return await download_all(self.fetcher, case_id, files, self.download_concurrency)

    async def _generate_document(self, case_id: str, case: CaseRecord) -> DocumentOutcome:
        try:
            if case.details_json is None:
                raise DocumentGenerationError(case.details_error or "No case details", case_id=case_id)
            path = self.resolver.file_path(case_id, CASE_DETAILS_FILENAME, FolderKind.IMPORT)
            await self.document_generator(case_id, case.details_json, path)
        except Exception as exc:
            return DocumentOutcome(error=str(exc))
        return DocumentOutcome(path=path)

    @staticmethod
    def _reconcile(outcome: IngestionOutcome, log) -> None:
        downloads, document = outcome.downloads, outcome.document

        if downloads.error is not None:
            log.error("Download batch crashed", error=downloads.error)
            outcome.notes.append(f"download batch crashed: {downloads.error}")
        for file_name, error in downloads.failed:
            log.error("File download failed", file_name=file_name, error=error)
            outcome.notes.append(f"download failed: {file_name}")
        if downloads.attempted and not downloads.succeeded:
            log.warning("Every download failed, reporting case anyway", attempted=downloads.attempted)

        if not document.ok:
            log.warning("CaseDetails.pdf generation failed", error=document.error)
            outcome.notes.append(f"document failed: {document.error}")

    async def _report(self, case: CaseRecord, outcome: IngestionOutcome, log) -> None:
        record = CaseStatusRecord(
            case_id=outcome.case_id,
            dateFolder=outcome.date_bucket,
            patientNames=case.patient_name,
        )
        try:
            await self.portal.post_case_status(record)
            outcome.status_reported = True
            await self.portal.set_constant(CASE_WATERMARK_KEY, case.creation_time_ms)
        except StatusReportError as exc:
            log.error("Failed posting to API", error=str(exc), status_code=exc.status_code)
            outcome.notes.append(f"api_failure: {exc}")
