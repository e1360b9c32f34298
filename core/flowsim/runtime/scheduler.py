"""
Schedulers - How the engine's next step gets invoked.

The engine never sleeps or spawns threads itself. After each step it asks
its scheduler to call ``step`` again after the configured delay, and it
cancels that call on pause/stop. Implementations:

- InlineScheduler: runs callbacks immediately as a trampoline (no recursion,
  no delay). Headless runs and the CLI.
- ManualScheduler: queues callbacks until the caller drives them with
  ``run_next()``. Tests.
- AsyncioScheduler: ``loop.call_later`` on the running event loop.
  Interactive, paced replay.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ScheduledCall:
    """Handle for one pending callback."""

    def __init__(self, callback: Callable[[], None], delay: float = 0.0):
        self.callback = callback
        self.delay = delay
        self.cancelled = False
        self.fired = False
        self._timer: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()

    def fire(self) -> None:
        if not self.pending:
            return
        self.fired = True
        self.callback()


class Scheduler(ABC):
    """Deferred invocation of engine steps."""

    @abstractmethod
    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        """Arrange for ``callback`` to run after ``delay`` seconds."""

    def cancel(self, call: ScheduledCall | None) -> None:
        """Prevent ``call`` from firing. A no-op for ``None`` or spent calls."""
        if call is not None:
            call.cancel()


class InlineScheduler(Scheduler):
    """
    Run scheduled callbacks right away, ignoring the delay.

    A callback scheduled from inside another callback is queued and run once
    the outer one returns, so a thousand-step run never grows the stack.
    """

    def __init__(self) -> None:
        self._queue: deque[ScheduledCall] = deque()
        self._draining = False

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(callback, delay)
        self._queue.append(call)
        if not self._draining:
            self._drain()
        return call

    def _drain(self) -> None:
        self._draining = True
        try:
            while self._queue:
                self._queue.popleft().fire()
        finally:
            self._draining = False


class ManualScheduler(Scheduler):
    """Hold callbacks until the test calls ``run_next()``."""

    def __init__(self) -> None:
        self._queue: deque[ScheduledCall] = deque()

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(callback, delay)
        self._queue.append(call)
        return call

    @property
    def pending(self) -> int:
        return sum(1 for call in self._queue if call.pending)

    @property
    def delays(self) -> list[float]:
        """Delays of the callbacks still waiting."""
        return [call.delay for call in self._queue if call.pending]

    def run_next(self) -> bool:
        """Fire the oldest pending callback. Returns False if none was waiting."""
        while self._queue:
            call = self._queue.popleft()
            if call.pending:
                call.fire()
                return True
        return False

    def run_all(self, max_calls: int = 10_000) -> int:
        """Fire callbacks until the queue drains. Returns how many fired."""
        fired = 0
        while fired < max_calls and self.run_next():
            fired += 1
        return fired


class AsyncioScheduler(Scheduler):
    """
    Pace steps on an asyncio event loop.

    Example:
        engine = ExecutionEngine(scheduler=AsyncioScheduler(), speed=Speed.FAST)
        engine.start(graph, inputs)
        await engine.event_bus.wait_for(EventType.RUN_COMPLETED, timeout=10)
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(callback, delay)
        call._timer = self.loop.call_later(max(delay, 0.0), call.fire)
        return call
