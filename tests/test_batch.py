"""Tests for the grouped batch executor."""

import asyncio

import pytest

from sanity.batch.executor import BatchExecutor


def test_results_in_input_order():
    async def double(x):
        await asyncio.sleep(0.001 * (5 - x))
        return x * 2

    result = asyncio.run(BatchExecutor(concurrency=2).run([1, 2, 3, 4, 5], double))
    assert result.results == [2, 4, 6, 8, 10]
    assert result.succeeded == 5
    assert result.failures == []


def test_groups_bound_concurrency():
    in_flight = {"now": 0, "max": 0}

    async def work(x):
        in_flight["now"] += 1
        in_flight["max"] = max(in_flight["max"], in_flight["now"])
        await asyncio.sleep(0.001)
        in_flight["now"] -= 1
        return x

    asyncio.run(BatchExecutor(concurrency=3).run(list(range(10)), work))
    assert in_flight["max"] == 3


def test_next_group_waits_for_previous():
    order = []

    async def work(x):
        # The first item of each group is the slowest.
        await asyncio.sleep(0.01 if x % 2 == 0 else 0)
        order.append(x)
        return x

    asyncio.run(BatchExecutor(concurrency=2).run([0, 1, 2, 3], work))
    assert order.index(0) < order.index(2)
    assert order.index(0) < order.index(3)


def test_failure_is_isolated():
    async def work(x):
        if x == 2:
            raise ValueError("bad item")
        return x

    result = asyncio.run(BatchExecutor(concurrency=5).run([1, 2, 3], work, default=-1))
    assert result.results == [1, -1, 3]
    assert result.failed == 1
    assert result.succeeded == 2
    assert result.failures[0].index == 1
    assert result.failures[0].item == 2
    assert "bad item" in result.failures[0].error


def test_progress_is_monotonic_and_counts_failures():
    seen = []

    async def work(x):
        if x == "b":
            raise RuntimeError("boom")
        return x

    asyncio.run(
        BatchExecutor(concurrency=2).run(
            ["a", "b", "c"], work, on_progress=lambda p: seen.append((p.completed, p.succeeded))
        )
    )
    assert [completed for completed, _ in seen] == [1, 2, 3]
    assert sorted(ok for _, ok in seen) == [False, True, True]


def test_cancellation_keeps_completed_items():
    async def scenario():
        cancel = asyncio.Event()

        async def work(x):
            if x >= 2:
                cancel.set()
                await asyncio.sleep(10)
            return x

        return await BatchExecutor(concurrency=2).run(
            [0, 1, 2, 3, 4], work, cancel_event=cancel
        )

    result = asyncio.run(scenario())
    assert result.cancelled
    assert result.results[:2] == [0, 1]
    assert result.completed[:2] == [True, True]
    assert result.finished == 2


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        BatchExecutor(concurrency=0)
