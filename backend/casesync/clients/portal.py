"""HTTP client for the portal's case listing, constants and status APIs."""

from __future__ import annotations

from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from casesync.core.config import settings
from casesync.core.logging import get_logger
from casesync.models.case import CaseRecord, CaseStatusRecord, ConstantValue, RedesignRecord
from casesync.pipeline.errors import ListingError, StatusReportError

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class PortalAPI(Protocol):
    """What the cycle driver and ingestors need from the portal."""

    async def list_incoming_cases(self) -> list[CaseRecord]: ...

    async def list_redesigns(self) -> list[RedesignRecord]: ...

    async def get_constant(self, name: str) -> ConstantValue: ...

    async def set_constant(self, name: str, value: Any) -> None: ...

    async def post_case_status(self, record: CaseStatusRecord) -> None: ...


class PortalClient:
    """
    Talks to the portal backend.

    The incoming-cases query is bounded server-side by the
    ``portal_case_ts_ms`` watermark, so listing takes no parameters.
    Constants are a plain ``{name, value}`` key/value store: GET by
    name, form-encoded POST to write.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.PORTAL_API_BASE_URL,
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
        )

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ─── Listings ──────────────────────────────────────

    async def list_incoming_cases(self) -> list[CaseRecord]:
        rows = await self._fetch_rows(settings.INCOMING_CASES_PATH, "cases")
        return _validate_rows(CaseRecord, rows, "case_id")

    async def list_redesigns(self) -> list[RedesignRecord]:
        rows = await self._fetch_rows(settings.REDESIGNS_PATH, "redesigns")
        return _validate_rows(RedesignRecord, rows, "rd_case_id")

    async def _fetch_rows(self, path: str, key: str) -> list:
        try:
            response = await self._client.get(path)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ListingError(f"Listing {key} failed: {exc}") from exc

        if not isinstance(payload, dict):
            raise ListingError(f"Listing {key} failed: expected an object, got {type(payload).__name__}")
        rows = payload.get(key) or []
        if not isinstance(rows, list):
            raise ListingError(f"Listing {key} failed: expected a list, got {type(rows).__name__}")
        return rows

    # ─── Key / value constants ─────────────────────────

    async def get_constant(self, name: str) -> ConstantValue:
        try:
            response = await self._client.get(settings.CONSTANTS_GET_PATH + name)
            response.raise_for_status()
            return ConstantValue.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            raise StatusReportError(
                f"Reading constant '{name}' failed: {exc}",
                details={"name": name},
            ) from exc

    async def set_constant(self, name: str, value: Any) -> None:
        try:
            response = await self._client.post(
                settings.CONSTANTS_POST_PATH,
                data={"name": name, "value": str(value)},
            )
        except httpx.HTTPError as exc:
            raise StatusReportError(
                f"Writing constant '{name}' failed: {exc}",
                details={"name": name},
            ) from exc
        self._raise_for_status(response, f"Writing constant '{name}'")
        logger.debug("Constant updated", name=name, value=str(value))

    # ─── Case status ───────────────────────────────────

    async def post_case_status(self, record: CaseStatusRecord) -> None:
        try:
            response = await self._client.post(settings.CASE_STATUS_PATH, json=record.model_dump())
        except httpx.HTTPError as exc:
            raise StatusReportError(
                f"Posting status for case {record.case_id} failed: {exc}",
                case_id=record.case_id,
            ) from exc
        self._raise_for_status(response, f"Posting status for case {record.case_id}", case_id=record.case_id)

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str, case_id: str | None = None) -> None:
        if response.is_success:
            return
        raise StatusReportError(
            f"{action} returned {response.status_code}",
            case_id=case_id,
            status_code=response.status_code,
            response_body=response.text,
        )


def _validate_rows(model: type[ModelT], rows: list, id_field: str) -> list[ModelT]:
    """Validate listing rows one at a time; a malformed row is logged and dropped."""
    records: list[ModelT] = []
    for position, row in enumerate(rows):
        try:
            records.append(model.model_validate(row))
        except ValidationError as exc:
            raw_id = row.get(id_field) if isinstance(row, dict) else None
            logger.warning(
                "Skipping malformed listing entry",
                model=model.__name__,
                position=position,
                raw_id=raw_id,
                error=str(exc),
            )
    return records
