"""
Remote file storage — folder listing and streamed downloads.

The pipeline only depends on the ``StorageClient`` protocol.
``BoxStorageClient`` implements it over the Box Content API with a
pre-issued bearer token; obtaining / refreshing that token is outside
this service.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Protocol

import httpx

from casesync.core.config import settings
from casesync.core.constants import STORAGE_LISTING_FIELDS
from casesync.core.logging import get_logger
from casesync.models.case import StorageListing
from casesync.pipeline.errors import StorageListingError, StreamUnavailableError

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


class StorageClient(Protocol):
    """What the ingestors need from the storage service."""

    async def list_folder_items(
        self,
        folder_id: str,
        *,
        fields: str = STORAGE_LISTING_FIELDS,
        offset: int = 0,
        limit: int = 100,
    ) -> StorageListing:
        ...

    def open_read_stream(self, file_id: str) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """
        Async context manager yielding an async iterator of byte chunks.

        Must raise StreamUnavailableError on entry when the file cannot
        be opened.
        """
        ...


class BoxStorageClient:
    """StorageClient backed by the Box Content API."""

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        token = access_token if access_token is not None else settings.BOX_ACCESS_TOKEN
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.BOX_API_BASE_URL,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "BoxStorageClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_folder_items(
        self,
        folder_id: str,
        *,
        fields: str = STORAGE_LISTING_FIELDS,
        offset: int = 0,
        limit: int = 100,
    ) -> StorageListing:
        params = {
            "usemarker": "false",
            "fields": fields,
            "offset": offset,
            "limit": limit,
        }
        try:
            response = await self._client.get(f"/folders/{folder_id}/items", params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Storage folder listing failed", folder_id=folder_id, error=str(exc))
            raise StorageListingError(
                f"Could not list storage folder {folder_id}: {exc}",
                details={"folder_id": folder_id},
            ) from exc

        return StorageListing.model_validate(response.json())

    @asynccontextmanager
    async def open_read_stream(self, file_id: str) -> AsyncIterator[AsyncIterator[bytes]]:
        request = self._client.build_request("GET", f"/files/{file_id}/content")
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise StreamUnavailableError(
                f"Could not open stream for file {file_id}: {exc}",
                file_id=file_id,
            ) from exc

        try:
            if response.is_error:
                raise StreamUnavailableError(
                    f"Storage returned {response.status_code} for file {file_id}",
                    file_id=file_id,
                    details={"status_code": response.status_code},
                )
            yield response.aiter_bytes(CHUNK_SIZE)
        finally:
            await response.aclose()
