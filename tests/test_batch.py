"""Batch coordinator tests."""

import asyncio

from bounce.console.batch import run_batch


def test_failure_does_not_stop_batch():
    calls = []

    async def operation(item_id):
        calls.append(item_id)
        if item_id == "p2":
            raise RuntimeError("p2 broke")
        return item_id.upper()

    results = asyncio.run(run_batch(["p1", "p2", "p3"], operation, delay_s=0))

    assert calls == ["p1", "p2", "p3"]
    assert [r.success for r in results] == [True, False, True]
    assert results[0].result == "P1"
    assert results[1].error == "p2 broke"
    assert results[2].summary() == {"id": "p3", "success": True, "result": "P3", "error": None}


def test_items_run_sequentially():
    running = []
    overlap = []

    async def operation(item_id):
        if running:
            overlap.append(item_id)
        running.append(item_id)
        await asyncio.sleep(0)
        running.remove(item_id)

    asyncio.run(run_batch(["a", "b", "c"], operation, delay_s=0.001))
    assert overlap == []


def test_empty_batch():
    async def operation(item_id):
        raise AssertionError("not called")

    assert asyncio.run(run_batch([], operation)) == []
