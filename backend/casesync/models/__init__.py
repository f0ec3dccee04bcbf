"""Wire models for the portal, storage and status APIs."""

from casesync.models.case import (
    CaseActivity,
    CaseDetails,
    CaseRecord,
    CaseStatusRecord,
    ConstantValue,
    RedesignRecord,
    StorageItem,
    StorageListing,
)

__all__ = [
    "CaseActivity",
    "CaseDetails",
    "CaseRecord",
    "CaseStatusRecord",
    "ConstantValue",
    "RedesignRecord",
    "StorageItem",
    "StorageListing",
]
