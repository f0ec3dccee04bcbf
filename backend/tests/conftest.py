"""Fakes for the portal and storage collaborators, shared by the tests."""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from casesync.core.constants import LOCK_KEY
from casesync.models.case import (
    CaseRecord,
    ConstantValue,
    RedesignRecord,
    StorageItem,
    StorageListing,
)
from casesync.pipeline.context import CycleContext
from casesync.pipeline.errors import ListingError, StatusReportError, StreamUnavailableError
from casesync.pipeline.paths import PathResolver


class FakeStorage:
    """In-memory StorageClient that records what was asked of it."""

    def __init__(self, listings=None, contents=None, fail_open=(), fail_mid=(), fail_listing=False):
        self.listings = listings or {}
        self.contents = contents or {}
        self.fail_open = set(fail_open)
        self.fail_mid = set(fail_mid)
        self.fail_listing = fail_listing
        self.list_calls = []
        self.opened = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def list_folder_items(self, folder_id, *, fields="", offset=0, limit=100):
        self.list_calls.append({"folder_id": folder_id, "fields": fields, "offset": offset, "limit": limit})
        if self.fail_listing:
            raise ConnectionError("storage unreachable")
        entries = [StorageItem.model_validate(e) for e in self.listings.get(folder_id, [])]
        return StorageListing(entries=entries)

    @asynccontextmanager
    async def open_read_stream(self, file_id):
        self.opened.append(file_id)
        if file_id in self.fail_open:
            raise StreamUnavailableError(f"404 for {file_id}", file_id=file_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            yield self._chunks(file_id)
        finally:
            self.in_flight -= 1

    async def _chunks(self, file_id):
        data = self.contents.get(file_id, f"content of {file_id}".encode())
        half = len(data) // 2
        yield data[:half]
        await asyncio.sleep(0.01)
        if file_id in self.fail_mid:
            raise ConnectionError("connection reset by peer")
        yield data[half:]


class FakePortal:
    """In-memory portal: listings, constants store and status endpoint."""

    def __init__(self, cases=None, redesigns=None, constants=None, fail_listing=False, fail_status=False):
        self.cases = cases or []
        self.redesigns = redesigns or []
        self.constants = {LOCK_KEY: "0"}
        self.constants.update(constants or {})
        self.fail_listing = fail_listing
        self.fail_status = fail_status
        self.listing_calls = 0
        self.writes = []
        self.status_posts = []

    async def list_incoming_cases(self):
        self.listing_calls += 1
        if self.fail_listing:
            raise ListingError("portal unreachable")
        return [CaseRecord.model_validate(c) for c in self.cases]

    async def list_redesigns(self):
        return [RedesignRecord.model_validate(r) for r in self.redesigns]

    async def get_constant(self, name):
        return ConstantValue(name=name, value=self.constants.get(name))

    async def set_constant(self, name, value):
        self.writes.append((name, str(value)))
        self.constants[name] = str(value)

    async def post_case_status(self, record):
        if self.fail_status:
            raise StatusReportError("status endpoint down", case_id=record.case_id, status_code=503)
        self.status_posts.append(record)

    def writes_for(self, name):
        return [value for key, value in self.writes if key == name]


async def fake_document(case_id, details, path):
    Path(path).write_bytes(b"%PDF-fake")
    return path


async def failing_document(case_id, details, path):
    raise RuntimeError("renderer crashed")


@pytest.fixture
def ctx():
    return CycleContext()


@pytest.fixture
def resolver(tmp_path, ctx):
    return PathResolver(tmp_path, ctx)
