import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from casesync.clients.portal import PortalClient
from casesync.clients.storage import BoxStorageClient
from casesync.models.case import CaseStatusRecord
from casesync.pipeline.errors import (
    ListingError,
    StatusReportError,
    StorageListingError,
    StreamUnavailableError,
)


def _portal(handler):
    return PortalClient(client=httpx.AsyncClient(base_url="http://portal", transport=httpx.MockTransport(handler)))


def _box(handler):
    return BoxStorageClient(client=httpx.AsyncClient(base_url="http://box", transport=httpx.MockTransport(handler)))


def test_incoming_cases_are_normalised():
    def handler(request):
        assert request.url.path == "/api/cases/incoming"
        return httpx.Response(200, json={"cases": [
            {
                "case_id": "AB-123",
                "box_folder_id": 998877,
                "creation_time_ms": "1700000000000",
                "details_json": json.dumps({"patientName": "Jane Roe", "services": {"crown": {"shade": "A2"}}}),
            },
            {"case_id": "CD-9", "creation_time_ms": 1700000005000, "details_json": None},
        ]})

    cases = asyncio.run(_portal(handler).list_incoming_cases())

    assert [c.case_id for c in cases] == ["AB-123", "CD-9"]
    assert cases[0].box_folder_id == "998877"
    assert cases[0].creation_time_ms == 1700000000000
    assert cases[0].details_json.patientName == "Jane Roe"
    assert cases[0].details_json.services == {"crown": {"shade": "A2"}}
    assert cases[1].box_folder_id is None
    assert cases[1].details_json.patientName is None
    assert cases[1].patient_name == ""


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json=["AB-1"]),
        httpx.Response(200, json={"cases": "AB-1"}),
    ],
)
def test_listing_failures_raise_listing_error(response):
    with pytest.raises(ListingError):
        asyncio.run(_portal(lambda request: response).list_incoming_cases())


def test_malformed_case_does_not_hide_the_others():
    good = {"case_id": "AB-1", "box_folder_id": "11", "creation_time_ms": "1700000000000"}

    def handler(request):
        return httpx.Response(200, json={"cases": [
            good,
            {"case_id": "CD-2", "box_folder_id": "12", "creation_time_ms": 1700000001000, "details_json": "{not json"},
            {"case_id": "EF-3", "box_folder_id": "13", "creation_time_ms": 1700000002000,
             "details_json": {"patientName": None, "services": {"crown": "yes", "bridge": None}}},
            {"case_id": "GH-4", "creation_time_ms": "yesterday"},
            "not a case",
            {"case_id": "IJ-5", "box_folder_id": "15", "creation_time_ms": 1700000005000},
        ]})

    cases = asyncio.run(_portal(handler).list_incoming_cases())

    assert [c.case_id for c in cases] == ["AB-1", "CD-2", "EF-3", "IJ-5"]
    assert cases[1].details_json is None
    assert cases[1].details_error.startswith("Unreadable details_json")
    assert cases[2].patient_name == ""
    assert cases[2].details_json.services == {"crown": "yes", "bridge": None}


def test_malformed_redesign_is_skipped():
    def handler(request):
        assert request.url.path == "/api/redesigns/incoming"
        return httpx.Response(200, json={"redesigns": [
            {"rd_case_id": "RD-1", "creation_time_ms": 1700000000000, "activities": "[oops"},
            {"rd_case_id": "RD-2", "creation_time_ms": 1700000001000},
        ]})

    redesigns = asyncio.run(_portal(handler).list_redesigns())

    assert [r.rd_case_id for r in redesigns] == ["RD-2"]


def test_set_constant_posts_form_fields():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    asyncio.run(_portal(handler).set_constant("case_downloader_mutex", 1700000000))

    [request] = seen
    assert request.method == "POST"
    assert request.url.path == "/api/constants"
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    assert parse_qs(request.content.decode()) == {"name": ["case_downloader_mutex"], "value": ["1700000000"]}


def test_get_constant_reads_value():
    def handler(request):
        assert request.url.path == "/api/constants/case_downloader_mutex"
        return httpx.Response(200, json={"name": "case_downloader_mutex", "value": 1699999000})

    value = asyncio.run(_portal(handler).get_constant("case_downloader_mutex"))

    assert value.name == "case_downloader_mutex"
    assert value.as_int() == 1699999000


def test_status_post_failure_raises():
    def handler(request):
        body = json.loads(request.content)
        assert body["case_id"] == "AB-123"
        assert body["queue_status"] == "Needs prep work"
        return httpx.Response(500, text="db down")

    record = CaseStatusRecord(case_id="AB-123", dateFolder="2023-11-14", patientNames="Jane Roe")

    with pytest.raises(StatusReportError) as excinfo:
        asyncio.run(_portal(handler).post_case_status(record))

    assert excinfo.value.status_code == 500
    assert excinfo.value.response_body == "db down"
    assert excinfo.value.case_id == "AB-123"


def test_box_listing_query():
    def handler(request):
        assert request.url.path == "/folders/42/items"
        assert dict(request.url.params) == {
            "usemarker": "false",
            "fields": "name,id,item_status,type",
            "offset": "0",
            "limit": "100",
        }
        return httpx.Response(200, json={"total_count": 2, "entries": [
            {"id": 1, "name": "a.stl", "type": "file", "item_status": "active"},
            {"id": "2", "name": "sub", "type": "folder", "item_status": "active"},
        ]})

    listing = asyncio.run(_box(handler).list_folder_items("42"))

    assert [e.id for e in listing.entries] == ["1", "2"]
    assert [e.is_downloadable for e in listing.entries] == [True, False]


def test_box_listing_failure():
    with pytest.raises(StorageListingError):
        asyncio.run(_box(lambda request: httpx.Response(404)).list_folder_items("42"))


def test_box_stream_content():
    def handler(request):
        assert request.url.path == "/files/7/content"
        return httpx.Response(200, content=b"solid model bytes")

    async def read():
        chunks = []
        async with _box(handler).open_read_stream("7") as stream:
            async for chunk in stream:
                chunks.append(chunk)
        return b"".join(chunks)

    assert asyncio.run(read()) == b"solid model bytes"


def test_box_stream_not_found():
    async def read():
        async with _box(lambda request: httpx.Response(404)).open_read_stream("7"):
            pass

    with pytest.raises(StreamUnavailableError) as excinfo:
        asyncio.run(read())

    assert excinfo.value.file_id == "7"
