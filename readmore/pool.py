"""Bounded asyncio pool of reusable workers.

A worker is borrowed with :meth:`WorkerPool.acquire` and must be handed
back with :meth:`WorkerPool.release` (or :meth:`WorkerPool.destroy`) on
every exit path; capacity is only restored on hand-back.

Workers are validated before they are lent out and when they come back;
a worker that fails validation is destroyed and a fresh one created in
its place, so callers only ever see added latency. Disposals refill the
warm minimum. The acquire timeout bounds the wait for capacity and the
worker checkout together.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, Dict, Generic, Protocol, TypeVar

from .errors import PoolExhaustedError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_MIN_CHECKOUT_SECONDS = 0.01


class WorkerFactory(Protocol[T]):
    """Lifecycle hooks the pool needs from its worker provider."""

    async def create(self) -> T: ...

    async def destroy(self, worker: T) -> None: ...

    async def validate(self, worker: T) -> bool: ...


class PoolClosedError(PoolExhaustedError):
    """Raised when acquiring from a pool that has been closed."""


class WorkerPool(Generic[T]):
    """Pool with at most ``max_size`` live workers and ``min_size`` warm ones."""

    def __init__(
        self,
        factory: WorkerFactory[T],
        *,
        max_size: int,
        min_size: int = 1,
        acquire_timeout: float = 60.0,
        test_on_borrow: bool = True,
        test_on_return: bool = True,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._factory = factory
        self._max_size = max_size
        self._min_size = max(0, min(min_size, max_size))
        self._acquire_timeout = acquire_timeout
        self._test_on_borrow = test_on_borrow
        self._test_on_return = test_on_return
        self._slots = asyncio.Semaphore(max_size)
        self._idle: Deque[T] = deque()
        self._borrowed: Dict[int, T] = {}
        self._pending = 0
        self._creating = 0
        self._closed = False

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> Dict[str, int]:
        """Snapshot of pool occupancy for diagnostics."""
        return {
            "max": self._max_size,
            "size": len(self._idle) + len(self._borrowed),
            "available": len(self._idle),
            "borrowed": len(self._borrowed),
            "pending": self._pending,
        }

    async def start(self) -> None:
        """Create the warm minimum of idle workers."""
        while self._live() < self._min_size:
            self._idle.append(await self._create())
        LOGGER.debug("Worker pool started with %d warm worker(s)", len(self._idle))

    async def acquire(self) -> T:
        """Borrow a worker, waiting up to the acquire timeout for capacity.

        Raises:
            PoolExhaustedError: If no capacity freed up within the timeout.
            PoolClosedError: If the pool has been closed.
        """
        if self._closed:
            raise PoolClosedError("Worker pool is closed")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._acquire_timeout
        self._pending += 1
        try:
            await asyncio.wait_for(self._slots.acquire(), self._acquire_timeout)
        except asyncio.TimeoutError as exc:
            raise self._exhausted() from exc
        finally:
            self._pending -= 1

        # The deadline covers the slot wait and the checkout together.
        remaining = max(deadline - loop.time(), _MIN_CHECKOUT_SECONDS)
        try:
            worker = await asyncio.wait_for(self._checkout(), remaining)
        except asyncio.TimeoutError as exc:
            self._slots.release()
            raise self._exhausted() from exc
        except BaseException:
            self._slots.release()
            raise
        self._borrowed[id(worker)] = worker
        return worker

    async def release(self, worker: T) -> None:
        """Return a borrowed worker; invalid or surplus workers are destroyed."""
        if self._borrowed.pop(id(worker), None) is None:
            LOGGER.warning("Ignoring release of a worker this pool did not lend")
            return
        disposed = False
        try:
            if self._closed:
                await self._dispose(worker)
            elif self._test_on_return and not await self._is_valid(worker):
                LOGGER.info("Worker failed validation on return; destroying it")
                await self._dispose(worker)
                disposed = True
            else:
                self._idle.append(worker)
        finally:
            self._slots.release()
        if disposed:
            await self._replenish()

    async def destroy(self, worker: T) -> None:
        """Destroy a borrowed worker instead of returning it."""
        if self._borrowed.pop(id(worker), None) is None:
            LOGGER.warning("Ignoring destroy of a worker this pool did not lend")
            return
        try:
            await self._dispose(worker)
        finally:
            self._slots.release()
        await self._replenish()

    async def close(self) -> None:
        """Refuse new acquisitions and destroy all idle workers.

        Borrowed workers are destroyed as they are released.
        """
        self._closed = True
        while self._idle:
            await self._dispose(self._idle.popleft())

    def _live(self) -> int:
        return len(self._idle) + len(self._borrowed) + self._creating

    def _exhausted(self) -> PoolExhaustedError:
        LOGGER.error(
            "No worker available after %.0fs (%s)", self._acquire_timeout, self.stats()
        )
        return PoolExhaustedError(
            f"No worker available after {self._acquire_timeout:.0f}s"
        )

    async def _create(self) -> T:
        self._creating += 1
        try:
            return await self._factory.create()
        finally:
            self._creating -= 1

    async def _replenish(self) -> None:
        """Refill the warm minimum after a worker was disposed of."""
        while not self._closed and self._live() < self._min_size:
            # A refill occupies a slot while it creates, like a borrower would.
            if self._slots.locked():
                return
            await self._slots.acquire()
            try:
                worker = await self._create()
            except Exception as exc:
                LOGGER.warning("Failed to refill worker pool: %s", exc)
                return
            finally:
                self._slots.release()
            if self._closed:
                await self._dispose(worker)
                return
            self._idle.append(worker)

    async def _checkout(self) -> T:
        while self._idle:
            worker = self._idle.popleft()
            try:
                valid = not self._test_on_borrow or await self._is_valid(worker)
            except asyncio.CancelledError:
                self._idle.appendleft(worker)
                raise
            if valid:
                return worker
            LOGGER.info("Idle worker failed validation; replacing it")
            await self._dispose(worker)
        return await self._create()

    async def _is_valid(self, worker: T) -> bool:
        try:
            return bool(await self._factory.validate(worker))
        except Exception as exc:
            LOGGER.warning("Worker validation raised: %s", exc)
            return False

    async def _dispose(self, worker: T) -> None:
        try:
            await self._factory.destroy(worker)
        except Exception as exc:
            LOGGER.error("Failed to destroy worker: %s", exc)
