"""Tests for readmore.pool module."""

from __future__ import annotations

import asyncio

import pytest

from readmore.errors import PoolExhaustedError
from readmore.pool import PoolClosedError, WorkerPool


class TestWorkerPool:
    def test_rejects_empty_pool(self, factory):
        with pytest.raises(ValueError):
            WorkerPool(factory, max_size=0)

    @pytest.mark.asyncio
    async def test_start_warms_minimum(self, factory):
        pool = WorkerPool(factory, max_size=4, min_size=1)
        await pool.start()
        assert len(factory.created) == 1
        assert pool.stats()["available"] == 1

    @pytest.mark.asyncio
    async def test_reuses_released_worker(self, factory):
        pool = WorkerPool(factory, max_size=2)
        first = await pool.acquire()
        await pool.release(first)
        second = await pool.acquire()
        assert second is first
        assert len(factory.created) == 1
        assert pool.stats()["borrowed"] == 1

    @pytest.mark.asyncio
    async def test_creates_up_to_max(self, factory):
        pool = WorkerPool(factory, max_size=2)
        a = await pool.acquire()
        b = await pool.acquire()
        assert a is not b
        assert pool.stats() == {
            "max": 2,
            "size": 2,
            "available": 0,
            "borrowed": 2,
            "pending": 0,
        }

    @pytest.mark.asyncio
    async def test_acquire_times_out_when_exhausted(self, factory):
        pool = WorkerPool(factory, max_size=1, acquire_timeout=0.05)
        await pool.acquire()
        with pytest.raises(PoolExhaustedError):
            await pool.acquire()
        assert pool.stats()["pending"] == 0

    @pytest.mark.asyncio
    async def test_waiter_gets_worker_on_release(self, factory):
        pool = WorkerPool(factory, max_size=1, acquire_timeout=1)
        held = await pool.acquire()
        waiter = asyncio.create_task(pool.acquire())
        await asyncio.sleep(0)
        assert not waiter.done()
        await pool.release(held)
        assert await waiter is held

    @pytest.mark.asyncio
    async def test_invalid_idle_worker_is_replaced_on_borrow(self, factory):
        pool = WorkerPool(factory, max_size=2)
        worker = await pool.acquire()
        await pool.release(worker)
        worker["alive"] = False

        fresh = await pool.acquire()
        assert fresh is not worker
        assert factory.destroyed == [worker]

    @pytest.mark.asyncio
    async def test_invalid_worker_is_destroyed_on_return(self, factory):
        pool = WorkerPool(factory, max_size=1)
        worker = await pool.acquire()
        worker["alive"] = False
        await pool.release(worker)
        assert factory.destroyed == [worker]
        # The warm minimum is refilled and capacity restored.
        assert pool.stats()["available"] == 1
        assert len(factory.created) == 2
        assert await asyncio.wait_for(pool.acquire(), 1) is factory.created[1]

    @pytest.mark.asyncio
    async def test_validation_error_counts_as_invalid(self, factory):
        async def broken_validate(worker):
            raise RuntimeError("engine gone")

        factory.validate = broken_validate
        pool = WorkerPool(factory, max_size=1)
        worker = await pool.acquire()
        await pool.release(worker)
        assert factory.destroyed == [worker]

    @pytest.mark.asyncio
    async def test_destroy_frees_capacity(self, factory):
        pool = WorkerPool(factory, max_size=1, acquire_timeout=0.5)
        worker = await pool.acquire()
        await pool.destroy(worker)
        assert factory.destroyed == [worker]
        assert await pool.acquire() is not worker

    @pytest.mark.asyncio
    async def test_failed_create_releases_slot(self, factory):
        calls = {"n": 0}
        original_create = factory.create

        async def flaky_create():
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("launch failed")
            return await original_create()

        factory.create = flaky_create
        pool = WorkerPool(factory, max_size=1, acquire_timeout=0.5)
        with pytest.raises(RuntimeError):
            await pool.acquire()
        assert await pool.acquire() is not None

    @pytest.mark.asyncio
    async def test_release_of_unknown_worker_is_ignored(self, factory):
        pool = WorkerPool(factory, max_size=1)
        await pool.release({"id": 99, "alive": True})
        assert pool.stats()["available"] == 0

    @pytest.mark.asyncio
    async def test_close_destroys_idle_and_refuses_acquire(self, factory):
        pool = WorkerPool(factory, max_size=2)
        await pool.start()
        borrowed = await pool.acquire()
        await pool.close()
        with pytest.raises(PoolClosedError):
            await pool.acquire()
        await pool.release(borrowed)
        assert factory.destroyed == [borrowed]

    @pytest.mark.asyncio
    async def test_slow_create_counts_against_acquire_timeout(self, factory):
        original_create = factory.create
        gate = asyncio.Event()

        async def slow_create():
            await gate.wait()
            return await original_create()

        factory.create = slow_create
        pool = WorkerPool(factory, max_size=1, acquire_timeout=0.05)
        with pytest.raises(PoolExhaustedError):
            await pool.acquire()

        # The slot taken for the timed-out checkout is handed back.
        gate.set()
        assert await asyncio.wait_for(pool.acquire(), 1) is not None

    @pytest.mark.asyncio
    async def test_destroy_does_not_refill_beyond_minimum(self, factory):
        pool = WorkerPool(factory, max_size=2, min_size=0)
        worker = await pool.acquire()
        await pool.destroy(worker)
        assert pool.stats()["size"] == 0
        assert len(factory.created) == 1
