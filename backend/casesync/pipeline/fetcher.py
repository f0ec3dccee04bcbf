"""
FileFetcher — mirrors one remote file onto local disk.

The copy is chunk-by-chunk: the next chunk is only pulled from the
remote stream once the previous one has been written, so the disk
governs the read rate and a file is never held in memory whole.

A copy that breaks part way leaves the truncated file where it is;
nothing is cleaned up.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from casesync.clients.storage import StorageClient
from casesync.core.constants import FolderKind
from casesync.core.logging import get_logger
from casesync.pipeline.errors import CopyFailedError, DateMappingError, StreamUnavailableError
from casesync.pipeline.paths import PathResolver

logger = get_logger(__name__)


class FileFetcher:
    """Streams files from a StorageClient into the case folder tree."""

    def __init__(self, storage: StorageClient, resolver: PathResolver) -> None:
        self.storage = storage
        self.resolver = resolver

    async def fetch(
        self,
        file_id: str,
        display_name: str,
        case_id: str,
        destination_dir: Path | None = None,
    ) -> Path:
        """
        Download ``file_id`` as ``display_name`` into the case's IMPORT folder.

        ``destination_dir`` overrides the target folder (used by the
        redesign pass).  Raises StreamUnavailableError if the stream
        cannot be opened and CopyFailedError if the copy breaks.
        """
        log = logger.bind(case_id=case_id, file_id=file_id, file_name=display_name)

        try:
            async with self.storage.open_read_stream(file_id) as stream:
                if destination_dir is not None:
                    dest = Path(destination_dir) / display_name
                else:
                    dest = self.resolver.file_path(case_id, display_name, FolderKind.IMPORT)

                try:
                    await self._copy(stream, dest)
                except Exception as exc:
                    log.error("Download failed", path=str(dest), error=str(exc))
                    raise CopyFailedError(
                        f"Failed to copy {display_name} to {dest}: {exc}",
                        case_id=case_id,
                        path=str(dest),
                    ) from exc
        except (CopyFailedError, DateMappingError):
            raise
        except StreamUnavailableError as exc:
            log.error("Stream error for file", error=str(exc))
            exc.case_id = exc.case_id or case_id
            raise
        except Exception as exc:
            log.error("Stream error for file", error=str(exc))
            raise StreamUnavailableError(
                f"Could not open stream for {display_name}: {exc}",
                case_id=case_id,
                file_id=file_id,
            ) from exc

        log.info("File downloaded", path=str(dest))
        return dest

    @staticmethod
    async def _copy(stream, dest: Path) -> None:
        fh = await asyncio.to_thread(open, dest, "wb")
        try:
            async for chunk in stream:
                if chunk:
                    await asyncio.to_thread(fh.write, chunk)
        finally:
            await asyncio.to_thread(fh.close)
