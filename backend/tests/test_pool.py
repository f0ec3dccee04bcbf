import asyncio
import random

from casesync.pipeline.pool import run_bounded


def test_results_keep_input_order_and_bound():
    in_flight = 0
    peak = 0

    def make(i):
        async def task():
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(random.uniform(0, 0.01))
            in_flight -= 1
            return i * 10
        return task

    results = asyncio.run(run_bounded([make(i) for i in range(12)], 4))

    assert [r.index for r in results] == list(range(12))
    assert [r.value for r in results] == [i * 10 for i in range(12)]
    assert all(r.ok for r in results)
    assert peak <= 4


def test_failure_does_not_stop_other_tasks():
    attempted = []

    def make(i):
        async def task():
            attempted.append(i)
            await asyncio.sleep(0)
            if i == 2:
                raise ValueError("bad file")
            return i
        return task

    results = asyncio.run(run_bounded([make(i) for i in range(6)], 2))

    assert sorted(attempted) == list(range(6))
    assert len(results) == 6
    assert isinstance(results[2].error, ValueError)
    assert [r.value for r in results if r.ok] == [0, 1, 3, 4, 5]


def test_each_task_runs_exactly_once():
    calls = {}

    def make(i):
        async def task():
            calls[i] = calls.get(i, 0) + 1
            await asyncio.sleep(0)
        return task

    asyncio.run(run_bounded([make(i) for i in range(20)], 7))

    assert calls == {i: 1 for i in range(20)}


def test_more_workers_than_tasks():
    async def task():
        return "done"

    results = asyncio.run(run_bounded([task, task], 10))

    assert [r.value for r in results] == ["done", "done"]


def test_empty_task_list():
    assert asyncio.run(run_bounded([], 4)) == []
