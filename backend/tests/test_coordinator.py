import asyncio

from casesync.core.constants import (
    CASE_WATERMARK_KEY,
    LOCK_KEY,
    REDESIGN_WATERMARK_KEY,
    CycleStatus,
    OutcomeStatus,
)
from casesync.models.case import ConstantValue
from casesync.pipeline.coordinator import CycleCoordinator
from casesync.pipeline.ingestor import CaseIngestor

from conftest import FakePortal, FakeStorage, fake_document

NOW = 1700000000
LISTING = {
    "box-a": [{"id": "a1", "name": "a.stl"}],
    "box-b": [{"id": "b1", "name": "b.stl"}],
    "box-c": [{"id": "c1", "name": "c.stl"}],
}


def _cases(*specs):
    return [
        {"case_id": case_id, "box_folder_id": folder, "creation_time_ms": ts}
        for case_id, folder, ts in specs
    ]


def _coordinator(portal, storage, tmp_path, **kwargs):
    kwargs.setdefault("redesigns_enabled", False)
    return CycleCoordinator(
        portal,
        storage,
        tmp_path,
        clock=lambda: NOW,
        lock_window_seconds=600,
        ingestor_factory=lambda resolver: CaseIngestor(
            portal, storage, resolver, document_generator=fake_document
        ),
        **kwargs,
    )


def test_recent_lock_skips_cycle(tmp_path):
    portal = FakePortal(cases=_cases(("AB-1", "box-a", 1)), constants={LOCK_KEY: str(NOW - 300)})
    coordinator = _coordinator(portal, FakeStorage(listings=LISTING), tmp_path)

    result = asyncio.run(coordinator.run_cycle())

    assert result.status == CycleStatus.SKIPPED_LOCKED
    assert portal.listing_calls == 0
    assert portal.writes == []


def test_expired_lock_is_taken(tmp_path):
    portal = FakePortal(cases=_cases(("AB-1", "box-a", 1)), constants={LOCK_KEY: str(NOW - 900)})
    coordinator = _coordinator(portal, FakeStorage(listings=LISTING), tmp_path)

    result = asyncio.run(coordinator.run_cycle())

    assert portal.writes[0] == (LOCK_KEY, str(NOW))
    assert portal.listing_calls == 1
    assert result.status == CycleStatus.COMPLETED
    assert portal.writes_for(LOCK_KEY) == [str(NOW), "0"]


def test_lock_lost_on_read_back(tmp_path):
    class RacingPortal(FakePortal):
        async def set_constant(self, name, value):
            await super().set_constant(name, value)
            if name == LOCK_KEY:
                self.constants[LOCK_KEY] = str(NOW + 1)

    portal = RacingPortal(cases=_cases(("AB-1", "box-a", 1)))
    coordinator = _coordinator(portal, FakeStorage(listings=LISTING), tmp_path)

    result = asyncio.run(coordinator.run_cycle())

    assert result.status == CycleStatus.SKIPPED_LOCKED
    assert portal.listing_calls == 0


def test_missing_lock_key_skips_cycle(tmp_path):
    class BlankPortal(FakePortal):
        async def get_constant(self, name):
            return ConstantValue()

    portal = BlankPortal()
    coordinator = _coordinator(portal, FakeStorage(), tmp_path)

    result = asyncio.run(coordinator.run_cycle())

    assert result.status == CycleStatus.SKIPPED_LOCKED
    assert portal.writes == []


def test_cases_run_in_order_and_advance_watermark(tmp_path):
    portal = FakePortal(
        cases=_cases(
            ("AB-1", "box-a", 1700000000000),
            ("CD-2", "box-b", 1700000100000),
            ("EF-3", "box-c", 1700000200000),
        )
    )
    rearms = []
    coordinator = _coordinator(
        portal, FakeStorage(listings=LISTING), tmp_path, rearm=lambda: rearms.append(True)
    )

    result = asyncio.run(coordinator.run_cycle())

    assert [o.case_id for o in result.outcomes] == ["AB-1", "CD-2", "EF-3"]
    assert [r.case_id for r in portal.status_posts] == ["AB-1", "CD-2", "EF-3"]
    assert result.watermark == 1700000200000
    assert portal.constants[CASE_WATERMARK_KEY] == "1700000200000"
    assert portal.constants[LOCK_KEY] == "0"
    assert result.rearmed
    assert rearms == [True]


def test_async_rearm_is_awaited(tmp_path):
    portal = FakePortal(cases=_cases(("AB-1", "box-a", 1700000000000)))
    calls = []

    async def rearm():
        calls.append("rearmed")

    coordinator = _coordinator(portal, FakeStorage(listings=LISTING), tmp_path, rearm=rearm)

    result = asyncio.run(coordinator.run_cycle())

    assert result.rearmed
    assert calls == ["rearmed"]


def test_failing_case_does_not_stop_the_next(tmp_path):
    portal = FakePortal(
        cases=_cases(
            ("AB-1", "box-empty", 1700000000000),
            ("CD-2", "box-b", 1700000100000),
        )
    )
    coordinator = _coordinator(portal, FakeStorage(listings=LISTING), tmp_path)

    result = asyncio.run(coordinator.run_cycle())

    assert [o.status for o in result.outcomes] == [OutcomeStatus.FAILED, OutcomeStatus.COMPLETED]
    assert result.cases_failed == 1
    assert result.cases_completed == 1
    assert result.watermark == 1700000100000


def test_unreadable_case_details_do_not_block_the_cycle(tmp_path):
    cases = _cases(("AB-1", "box-a", 1700000000000), ("CD-2", "box-b", 1700000100000))
    cases[0]["details_json"] = "{not json"
    portal = FakePortal(cases=cases)
    coordinator = _coordinator(portal, FakeStorage(listings=LISTING), tmp_path)

    result = asyncio.run(coordinator.run_cycle())

    assert result.status == CycleStatus.COMPLETED
    assert [o.status for o in result.outcomes] == [OutcomeStatus.COMPLETED, OutcomeStatus.COMPLETED]
    assert not result.outcomes[0].document.ok
    assert result.outcomes[1].document.ok
    assert result.watermark == 1700000100000


def test_case_without_storage_folder_is_skipped(tmp_path):
    portal = FakePortal(
        cases=_cases(
            ("AB-1", None, 1700000000000),
            ("CD-2", "box-b", 1700000100000),
        )
    )
    storage = FakeStorage(listings=LISTING)
    coordinator = _coordinator(portal, storage, tmp_path)

    result = asyncio.run(coordinator.run_cycle())

    assert [o.case_id for o in result.outcomes] == ["CD-2"]
    assert [c["folder_id"] for c in storage.list_calls] == ["box-b"]
    assert not (tmp_path / "2023-11-14" / "AB").exists()


def test_listing_failure_keeps_lock(tmp_path):
    rearms = []
    portal = FakePortal(fail_listing=True)
    coordinator = _coordinator(portal, FakeStorage(), tmp_path, rearm=lambda: rearms.append(True))

    result = asyncio.run(coordinator.run_cycle())

    assert result.status == CycleStatus.LISTING_FAILED
    assert portal.writes == [(LOCK_KEY, str(NOW))]
    assert rearms == []


def test_empty_listing_releases_lock_without_rearm(tmp_path):
    rearms = []
    portal = FakePortal()
    coordinator = _coordinator(portal, FakeStorage(), tmp_path, rearm=lambda: rearms.append(True))

    result = asyncio.run(coordinator.run_cycle())

    assert result.status == CycleStatus.NO_CASES
    assert result.watermark is None
    assert not result.rearmed
    assert rearms == []
    assert portal.writes_for(LOCK_KEY) == [str(NOW), "0"]
    assert portal.writes_for(CASE_WATERMARK_KEY) == []


def test_redesign_pass_advances_its_own_watermark(tmp_path):
    async def fake_comments(case_id, activities, priority, path, tz=None):
        path.write_bytes(b"%PDF-fake")

    from casesync.pipeline.redesigns import RedesignIngestor

    storage = FakeStorage(listings=LISTING)
    portal = FakePortal(
        redesigns=[
            {"rd_case_id": "RD-1", "case_id": "AB-1", "creation_time_ms": 1700000000000},
            {"rd_case_id": "RD-2", "case_id": "CD-2", "box_folder_id": "box-b", "creation_time_ms": 1700000050000},
        ]
    )
    coordinator = _coordinator(
        portal,
        storage,
        tmp_path,
        redesigns_enabled=True,
        redesign_factory=lambda resolver: RedesignIngestor(storage, resolver, comments_generator=fake_comments),
    )

    result = asyncio.run(coordinator.run_cycle())

    assert result.status == CycleStatus.NO_CASES
    assert [o.case_id for o in result.redesign_outcomes] == ["RD-1", "RD-2"]
    assert portal.writes_for(REDESIGN_WATERMARK_KEY) == ["1700000050000"]
    assert (tmp_path / "2023-11-14" / "REDESIGN" / "RD-2" / "b.stl").exists()
    assert portal.writes[-1] == (LOCK_KEY, "0")


def test_lock_status_reports_age(tmp_path):
    portal = FakePortal(constants={LOCK_KEY: str(NOW - 120)})
    coordinator = _coordinator(portal, FakeStorage(), tmp_path)

    status = asyncio.run(coordinator.lock_status())

    assert status["locked"] is True
    assert status["age_seconds"] == 120
    assert status["held_since"] == NOW - 120
