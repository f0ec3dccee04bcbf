"""
PathResolver — canonical on-disk locations for cases and redesigns.

Layout under the base folder::

    <YYYY-MM-DD>/<lab>/IMPORT/<case_id>/<file>
    <YYYY-MM-DD>/<lab>/EXPORT - Internal/<case_id>/...
    <YYYY-MM-DD>/<lab>/EXPORT - External/<case_id>/...
    <YYYY-MM-DD>/<lab>/Uploads/<case_id>/...
    <YYYY-MM-DD>/REDESIGN/<rd_case_id>/...

``<lab>`` is the first two characters of the sanitized case id and the
date bucket comes from the case's creation time.  The bucket is
recorded on the CycleContext when the root is ensured, so every later
path for the same case lands in the same folder even if the clock
crosses midnight mid-cycle.
"""

from __future__ import annotations

import asyncio
import re
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

from casesync.core.constants import REDESIGN_NAMESPACE, FolderKind
from casesync.core.logging import get_logger
from casesync.pipeline.context import CycleContext
from casesync.pipeline.errors import FolderCreationError, InvalidFolderKindError

logger = get_logger(__name__)

LAB_TOKEN_LENGTH = 2

_INVISIBLE_RE = re.compile("[\t\r\n\u00a0\u200b\u200c\u200d\u2060]+")
_ILLEGAL_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_TRAILING_DOTS_RE = re.compile(r"\.+$")
_MULTI_SPACE_RE = re.compile(r"\s{2,}")

# Cc: C0/C1 controls and DEL. Cf: zero-width, BOM, bidi marks and the like.
_STRIPPED_CATEGORIES = ("Cc", "Cf")


def sanitize_case_id(raw: str | None) -> str:
    """
    Make a portal case id safe to use as a folder name.

    Strips tabs/newlines/NBSP, every control and invisible format
    character (zero-width, BOM, DEL, C1), characters illegal on Windows
    file systems, trailing dots and surrounding whitespace,
    and collapses internal whitespace runs to one space.
    """
    if not raw:
        return ""

    value = str(raw)
    value = _INVISIBLE_RE.sub("", value)
    value = "".join(c for c in value if unicodedata.category(c) not in _STRIPPED_CATEGORIES)
    value = _ILLEGAL_RE.sub("", value)
    value = _MULTI_SPACE_RE.sub(" ", value)
    # trimming can expose dots that were followed by whitespace ("a. .")
    stripped = None
    while stripped != value:
        stripped = value
        value = _TRAILING_DOTS_RE.sub("", value).strip()
    return value


def lab_token(case_id: str) -> str:
    """Coarse partition directory; shorter than two chars for very short ids."""
    return case_id[:LAB_TOKEN_LENGTH]


def validate_folder_kind(kind: str) -> FolderKind:
    try:
        return FolderKind(kind)
    except ValueError:
        allowed = ", ".join(f'"{k.value}"' for k in FolderKind)
        raise InvalidFolderKindError(
            f"Invalid folder kind {kind!r}, must be one of {allowed}",
            details={"kind": str(kind)},
        ) from None


class PathResolver:
    """Builds and creates folder paths for one cycle."""

    def __init__(
        self,
        base_folder: str | Path,
        ctx: CycleContext,
        tz: str = "UTC",
    ) -> None:
        self.base_folder = Path(base_folder)
        self.ctx = ctx
        self.tz = ZoneInfo(tz)

    # ─── Date bucket ───────────────────────────────────

    def date_bucket(self, creation_time_ms: int) -> str:
        """``YYYY-MM-DD`` of the creation time in the configured timezone."""
        moment = datetime.fromtimestamp(creation_time_ms / 1000, tz=timezone.utc)
        return moment.astimezone(self.tz).strftime("%Y-%m-%d")

    # ─── Generic helper ────────────────────────────────

    async def ensure_folder(self, relative: str | Path) -> Path:
        """Recursively create ``<base>/<relative>``; existing folders are fine."""
        full_path = self.base_folder / relative
        try:
            await asyncio.to_thread(full_path.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Failed to create folder", path=str(full_path), error=str(exc))
            raise FolderCreationError(
                f"Failed to create folder {full_path}: {exc}",
                path=str(full_path),
            ) from exc
        logger.debug("Folder ensured", path=str(full_path))
        return full_path

    # ─── Lab ───────────────────────────────────────────

    async def ensure_lab_root(self, case_id: str, creation_time_ms: int) -> Path:
        """Record the case's date bucket and create the four lab sub-folders."""
        date = self.date_bucket(creation_time_ms)
        self.ctx.record_date(case_id, date)

        lab_root = Path(date) / lab_token(case_id)
        for kind in FolderKind:
            await self.ensure_folder(lab_root / kind.value)

        logger.info("Lab root ensured", case_id=case_id, date_bucket=date, lab=lab_token(case_id))
        return self.base_folder / lab_root

    # ─── Case ──────────────────────────────────────────

    def case_folder_path(self, case_id: str, kind: str) -> Path:
        kind = validate_folder_kind(kind)
        date = self.ctx.date_for(case_id)
        return self.base_folder / date / lab_token(case_id) / kind.value / case_id

    async def ensure_case_folder(self, case_id: str, kind: str) -> Path:
        folder = self.case_folder_path(case_id, kind)
        return await self.ensure_folder(folder.relative_to(self.base_folder))

    def file_path(self, case_id: str, filename: str, kind: str) -> Path:
        """Destination for ``filename`` inside the case's ``kind`` folder."""
        return self.case_folder_path(case_id, kind) / filename

    # ─── Redesign ──────────────────────────────────────

    async def ensure_redesign_root(self, rd_case_id: str, creation_time_ms: int) -> Path:
        date = self.date_bucket(creation_time_ms)
        self.ctx.record_date(rd_case_id, date)

        await self.ensure_folder(Path(date) / REDESIGN_NAMESPACE)
        return await self.ensure_folder(Path(date) / REDESIGN_NAMESPACE / rd_case_id)

    def redesign_folder_path(self, rd_case_id: str) -> Path:
        return self.base_folder / self.ctx.date_for(rd_case_id) / REDESIGN_NAMESPACE / rd_case_id
