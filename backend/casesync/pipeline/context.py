"""
CycleContext — state scoped to one invocation of the cycle driver.

The only mutable state shared between steps is the date mapping
(case id → date bucket).  It is written when a case's lab / redesign
root is ensured and read by every later path lookup for that case.
Living on the context rather than a module global means it is dropped
at the end of the cycle and every test starts from an empty table.

Also holds the outcome types the ingestors hand back to the driver.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from casesync.core.constants import CycleStatus, OutcomeStatus
from casesync.pipeline.errors import DateMappingError


# ═══════════════════════════════════════════════════════════
#  CycleContext
# ═══════════════════════════════════════════════════════════

@dataclass
class CycleContext:
    """Carries the per-cycle date mapping and identity."""

    cycle_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    date_mapping: dict[str, str] = field(default_factory=dict)

    def record_date(self, key: str, date_bucket: str) -> None:
        self.date_mapping[key] = date_bucket

    def date_for(self, key: str) -> str:
        """Date bucket recorded for ``key``; raises if it was never ensured."""
        try:
            return self.date_mapping[key]
        except KeyError:
            raise DateMappingError(
                f"No date bucket recorded for '{key}'; its root folder was never ensured",
                case_id=key,
            ) from None


# ═══════════════════════════════════════════════════════════
#  Outcomes
# ═══════════════════════════════════════════════════════════

@dataclass
class DownloadsOutcome:
    """Result of one case's download batch, one slot per eligible file."""

    succeeded: list[Path] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)     # (file name, error)
    error: str | None = None        # set when the batch itself crashed

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)


@dataclass
class DocumentOutcome:
    """Result of rendering one summary document."""

    path: Path | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class IngestionOutcome:
    """Per-case (or per-redesign) result handed back to the cycle driver."""

    case_id: str
    status: str                     # OutcomeStatus value
    reason: str | None = None
    date_bucket: str | None = None
    downloads: DownloadsOutcome | None = None
    document: DocumentOutcome | None = None
    status_reported: bool = False
    notes: list[str] = field(default_factory=list)

    @classmethod
    def failed(cls, case_id: str, reason: str, **kwargs: Any) -> "IngestionOutcome":
        return cls(case_id=case_id, status=OutcomeStatus.FAILED, reason=reason, **kwargs)

    @property
    def completed(self) -> bool:
        return self.status == OutcomeStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Compact summary for logging / task results."""
        return {
            "case_id": self.case_id,
            "status": self.status,
            "reason": self.reason,
            "date_bucket": self.date_bucket,
            "files_downloaded": len(self.downloads.succeeded) if self.downloads else 0,
            "files_failed": len(self.downloads.failed) if self.downloads else 0,
            "document_ok": self.document.ok if self.document else None,
            "status_reported": self.status_reported,
            "notes": self.notes,
        }


@dataclass
class CycleResult:
    """Final outcome of one cycle invocation."""

    cycle_id: str
    status: str                     # CycleStatus value
    started_at: datetime | None = None
    completed_at: datetime | None = None
    outcomes: list[IngestionOutcome] = field(default_factory=list)
    redesign_outcomes: list[IngestionOutcome] = field(default_factory=list)
    watermark: int | None = None
    rearmed: bool = False
    error: str | None = None

    @property
    def cases_completed(self) -> int:
        return sum(1 for o in self.outcomes if o.completed)

    @property
    def cases_failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.completed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "cases_completed": self.cases_completed,
            "cases_failed": self.cases_failed,
            "redesigns": len(self.redesign_outcomes),
            "watermark": self.watermark,
            "rearmed": self.rearmed,
            "error": self.error,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }

    @classmethod
    def skipped(cls, ctx: CycleContext, status: str = CycleStatus.SKIPPED_LOCKED, error: str | None = None) -> "CycleResult":
        now = datetime.now(timezone.utc)
        return cls(
            cycle_id=ctx.cycle_id,
            status=status,
            started_at=ctx.started_at,
            completed_at=now,
            error=error,
        )
