"""
Typed shapes for everything that crosses the wire.

The portal sends loosely-typed JSON (numeric strings for timestamps,
``details_json`` sometimes double-encoded as a string).  These models
normalise that once at the boundary so the pipeline works with plain
attributes.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from casesync.core.constants import (
    ACTIVE_ITEM_STATUS,
    STATUS_ALLOCATION,
    STATUS_CASE_FILE,
    STATUS_QUEUE,
    StorageItemType,
)


def _decode_json_string(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        value = value.strip() if isinstance(value, str) else value
        if not value:
            return None
        return json.loads(value)
    return value


# ═══════════════════════════════════════════════════════════
#  Cases
# ═══════════════════════════════════════════════════════════

class CaseDetails(BaseModel):
    """
    Structured case payload rendered into CaseDetails.pdf.

    ``services`` maps a service name (e.g. ``crownAndBridge``) to its
    fields.  A service may carry repeatable ``instanceDetails``
    sub-records, each optionally listing ``toothNumbers``.  Values are
    kept as sent; the renderer copes with whatever shape arrives.
    """

    model_config = ConfigDict(extra="allow")

    patientName: str | None = None
    casePriority: str | None = None
    services: dict[str, Any] = Field(default_factory=dict)
    additionalNote: str | None = None
    splintedCrowns: str | None = None

    @field_validator("patientName", "casePriority", "additionalNote", "splintedCrowns", mode="before")
    @classmethod
    def _scalar_as_str(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("services", mode="before")
    @classmethod
    def _services_as_dict(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class CaseRecord(BaseModel):
    """
    One entry of the incoming-cases listing.

    A ``details_json`` that cannot be decoded does not reject the record:
    ``details_json`` is left as ``None`` and ``details_error`` says why,
    so only the case's own CaseDetails.pdf is affected.
    """

    model_config = ConfigDict(extra="ignore")

    case_id: str
    box_folder_id: str | None = None
    creation_time_ms: int
    details_json: CaseDetails | None = None
    details_error: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _parse_details(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = dict(data)
        try:
            decoded = _decode_json_string(data.get("details_json"))
            data["details_json"] = CaseDetails.model_validate(decoded if decoded is not None else {})
        except (ValueError, TypeError) as exc:
            data["details_json"] = None
            data["details_error"] = f"Unreadable details_json: {exc}"
        return data

    @field_validator("case_id", mode="before")
    @classmethod
    def _case_id_as_str(cls, value: Any) -> Any:
        return value if value is None else str(value)

    @field_validator("box_folder_id", mode="before")
    @classmethod
    def _folder_id_as_str(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("creation_time_ms", mode="before")
    @classmethod
    def _parse_creation_time(cls, value: Any) -> Any:
        if isinstance(value, str):
            return int(float(value.strip()))
        return value

    @property
    def patient_name(self) -> str:
        if self.details_json is None:
            return ""
        return self.details_json.patientName or ""


# ═══════════════════════════════════════════════════════════
#  Redesigns
# ═══════════════════════════════════════════════════════════

class CaseActivity(BaseModel):
    """One entry of a redesign's comment thread."""

    model_config = ConfigDict(extra="ignore")

    type: str = ""
    timestamp: int = 0          # unix seconds
    content: str = ""


class RedesignRecord(BaseModel):
    """One entry of the incoming-redesigns listing."""

    model_config = ConfigDict(extra="ignore")

    rd_case_id: str
    case_id: str = ""
    box_folder_id: str | None = None
    creation_time_ms: int
    priority: str = ""
    activities: list[CaseActivity] = Field(default_factory=list)

    @field_validator("rd_case_id", "case_id", "box_folder_id", mode="before")
    @classmethod
    def _ids_as_str(cls, value: Any) -> Any:
        if value is None:
            return value
        return str(value)

    @field_validator("creation_time_ms", mode="before")
    @classmethod
    def _parse_creation_time(cls, value: Any) -> Any:
        if isinstance(value, str):
            return int(float(value.strip()))
        return value

    @field_validator("activities", mode="before")
    @classmethod
    def _parse_activities(cls, value: Any) -> Any:
        value = _decode_json_string(value)
        return value if value is not None else []


# ═══════════════════════════════════════════════════════════
#  Storage
# ═══════════════════════════════════════════════════════════

class StorageItem(BaseModel):
    """File or folder entry returned by a storage folder listing."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    type: str = StorageItemType.FILE
    item_status: str = ACTIVE_ITEM_STATUS

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return str(value)

    @property
    def is_downloadable(self) -> bool:
        """Only active, non-folder entries are mirrored."""
        return self.type != StorageItemType.FOLDER and self.item_status == ACTIVE_ITEM_STATUS


class StorageListing(BaseModel):
    model_config = ConfigDict(extra="ignore")

    entries: list[StorageItem] = Field(default_factory=list)
    total_count: int | None = None


# ═══════════════════════════════════════════════════════════
#  Status / key-value API
# ═══════════════════════════════════════════════════════════

class ConstantValue(BaseModel):
    """``{name, value}`` pair served by the constants endpoint."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    value: str | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _value_as_str(cls, value: Any) -> Any:
        if value is None:
            return value
        return str(value)

    def as_int(self, default: int = 0) -> int:
        """Numeric value, or ``default`` when missing / not numeric."""
        try:
            return int(float(self.value)) if self.value is not None else default
        except ValueError:
            return default


class CaseStatusRecord(BaseModel):
    """Record posted to the tracking API once a case has been ingested."""

    case_id: str
    dateFolder: str
    case_file: str = STATUS_CASE_FILE
    queue_status: str = STATUS_QUEUE
    current_allocation: str = STATUS_ALLOCATION
    patientNames: str = ""
    case_units: list[dict[str, Any]] = Field(default_factory=list)
