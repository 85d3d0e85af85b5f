"""Single shared coordinator that serializes every fare fetch."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import TypeVar

from ..metrics import fare_coordinator_queue_depth

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _QueuedOperation:
    key: Hashable
    waiter: asyncio.Future[None]


class RequestCoordinator:
    """Runs one operation at a time, system-wide, in arrival order.

    A caller that finds the lock held is appended to a FIFO queue and its
    operation still runs, after every operation queued before it. On
    completion the lock is handed straight to the next queued operation,
    so no newcomer can overtake the queue.
    """

    def __init__(self) -> None:
        self._locked = False
        self._queue: deque[_QueuedOperation] = deque()
        self.active_key: Hashable | None = None

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    async def run_exclusive(self, key: Hashable, operation: Callable[[], Awaitable[T]]) -> T:
        if not self._locked:
            self._locked = True
            self.active_key = key
        else:
            await self._wait_turn(key)

        try:
            return await operation()
        finally:
            self._release()

    async def _wait_turn(self, key: Hashable) -> None:
        entry = _QueuedOperation(key, asyncio.get_running_loop().create_future())
        self._queue.append(entry)
        fare_coordinator_queue_depth.set(len(self._queue))
        logger.debug(f"Queued {key} behind {self.active_key} ({len(self._queue)} waiting)")

        try:
            await entry.waiter
        except asyncio.CancelledError:
            if entry.waiter.done() and not entry.waiter.cancelled():
                # The lock was already handed to this caller
                self._release()
            elif entry in self._queue:
                self._queue.remove(entry)
                fare_coordinator_queue_depth.set(len(self._queue))
            raise

    def _release(self) -> None:
        while self._queue:
            entry = self._queue.popleft()
            fare_coordinator_queue_depth.set(len(self._queue))
            if entry.waiter.done():
                continue
            self.active_key = entry.key
            entry.waiter.set_result(None)
            return

        self._locked = False
        self.active_key = None
