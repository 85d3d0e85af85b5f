"""Cancellable delayed-task primitive on top of the asyncio event loop.

Every timer the reconciliation loop uses goes through a Scheduler so that
tearing a consumer down is a single ``cancel_all()`` call instead of
tracking individual loop handles.
"""

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for a one-shot or periodic callback owned by a Scheduler."""

    def __init__(
        self,
        scheduler: "Scheduler",
        callback: Callable[[], None],
        delay: float,
        interval: float | None = None,
        name: str = "task",
    ):
        self._scheduler = scheduler
        self._callback = callback
        self._delay = max(delay, 0.0)
        self.interval = interval
        self.name = name
        self._handle: asyncio.TimerHandle | None = None
        self._cancelled = False
        self._fired = False
        self.due_at = 0.0

    @property
    def active(self) -> bool:
        return not self._cancelled and not (self._fired and self.interval is None)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._scheduler._discard(self)

    def _arm(self) -> None:
        loop = self._scheduler.loop
        self.due_at = loop.time() + self._delay
        self._handle = loop.call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        if self._cancelled:
            return
        if self.interval is None:
            self._fired = True
            self._scheduler._discard(self)
        else:
            self._delay = self.interval
            self._arm()
        try:
            self._callback()
        except Exception:
            logger.exception(f"Scheduled callback {self.name} failed")


class Scheduler:
    """Creates and tracks timers on one event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop
        self._tasks: set[ScheduledTask] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        """Monotonic loop time in seconds."""
        return self.loop.time()

    def call_later(
        self, delay: float, callback: Callable[[], None], name: str = "task"
    ) -> ScheduledTask:
        task = ScheduledTask(self, callback, delay, name=name)
        self._tasks.add(task)
        task._arm()
        return task

    def call_every(
        self,
        interval: float,
        callback: Callable[[], None],
        name: str = "periodic",
    ) -> ScheduledTask:
        if interval <= 0:
            raise ValueError("interval must be positive")
        task = ScheduledTask(self, callback, interval, interval=interval, name=name)
        self._tasks.add(task)
        task._arm()
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    def _discard(self, task: ScheduledTask) -> None:
        self._tasks.discard(task)
