"""Shared constants and enums used across the application."""

from enum import StrEnum


class FolderKind(StrEnum):
    """Per-lab sub-folders a case can be mirrored into."""

    IMPORT = "IMPORT"
    EXPORT_INTERNAL = "EXPORT - Internal"
    EXPORT_EXTERNAL = "EXPORT - External"
    UPLOADS = "Uploads"


# Sibling of the lab tokens under a date bucket; keyed by redesign case id.
REDESIGN_NAMESPACE = "REDESIGN"


class CaseStage(StrEnum):
    """Where a single case currently is in the ingestion state machine."""

    FOLDERS_PENDING = "FOLDERS_PENDING"
    FILES_AND_DOC_IN_FLIGHT = "FILES_AND_DOC_IN_FLIGHT"
    RECONCILING = "RECONCILING"
    REPORTED = "REPORTED"


class OutcomeStatus(StrEnum):
    """Terminal result of ingesting one case (or one redesign)."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class CycleStatus(StrEnum):
    """Overall result of one invocation of the cycle driver."""

    SKIPPED_LOCKED = "SKIPPED_LOCKED"
    NO_CASES = "NO_CASES"
    LISTING_FAILED = "LISTING_FAILED"
    COMPLETED = "COMPLETED"


class StorageItemType(StrEnum):
    FILE = "file"
    FOLDER = "folder"


class ActivityType(StrEnum):
    """Activity kinds found in a redesign comment thread."""

    SYSTEM_UPDATE = "system_update"
    REDESIGN_UPDATE = "redesign_update"
    ADMIN_COMMENT = "admin_comment"
    SUPER_ADMIN_COMMENT = "super admin_comment"
    SIDE_ADMIN_COMMENT = "side admin_comment"
    CRM_COMMENT = "crm_comment"
    USER_COMMENT = "user_comment"


# ── Remote key/value store keys ──────────────────────
LOCK_KEY = "case_downloader_mutex"
CASE_WATERMARK_KEY = "portal_case_ts_ms"
REDESIGN_WATERMARK_KEY = "portal_redesign_ts_ms"

# ── Storage listing ──────────────────────────────────
STORAGE_LISTING_FIELDS = "name,id,item_status,type"
ACTIVE_ITEM_STATUS = "active"

# ── Generated documents ──────────────────────────────
CASE_DETAILS_FILENAME = "CaseDetails.pdf"
COMMENTS_FILENAME = "Comments.pdf"

# ── Status record placeholders ───────────────────────
STATUS_CASE_FILE = "Unzipping paused"
STATUS_QUEUE = "Needs prep work"
STATUS_ALLOCATION = "None"
