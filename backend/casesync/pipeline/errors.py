"""
Domain-specific exception hierarchy for the ingestion pipeline.

All pipeline exceptions inherit from IngestionError so callers can
catch broadly (case boundary, cycle boundary) or narrowly (per file).
Each exception carries structured context (case id, file name, etc.)
for logging.
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base exception for all ingestion errors."""

    def __init__(
        self,
        message: str,
        *,
        case_id: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.case_id = case_id
        self.details = details or {}
        super().__init__(message)


# ─── Cycle level ──────────────────────────────────────

class LockContentionError(IngestionError):
    """Another cycle holds the advisory lock."""

    def __init__(self, message: str, *, held_since: int | None = None, **kwargs) -> None:
        self.held_since = held_since
        super().__init__(message, **kwargs)


class ListingError(IngestionError):
    """The remote case listing could not be fetched."""


# ─── Path layer ───────────────────────────────────────

class InvalidFolderKindError(IngestionError):
    """A path was requested for a folder kind outside FolderKind."""


class DateMappingError(IngestionError):
    """A path lookup ran before the case's date bucket was recorded."""


class FolderCreationError(IngestionError):
    """Creating part of the local folder tree failed."""

    def __init__(self, message: str, *, path: str | None = None, **kwargs) -> None:
        self.path = path
        super().__init__(message, **kwargs)


# ─── Case level ───────────────────────────────────────

class NoFilesFoundError(IngestionError):
    """The case's storage folder has no active files."""


class StorageListingError(IngestionError):
    """Listing the case's storage folder failed."""


class DocumentGenerationError(IngestionError):
    """Rendering a summary document failed."""


class StatusReportError(IngestionError):
    """A post to the status / key-value API failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message, **kwargs)


# ─── File level ───────────────────────────────────────

class StreamUnavailableError(IngestionError):
    """The storage service would not open a read stream for a file."""

    def __init__(self, message: str, *, file_id: str | None = None, **kwargs) -> None:
        self.file_id = file_id
        super().__init__(message, **kwargs)


class CopyFailedError(IngestionError):
    """Copying an opened stream to local disk broke part way."""

    def __init__(self, message: str, *, path: str | None = None, **kwargs) -> None:
        self.path = path
        super().__init__(message, **kwargs)
