from __future__ import annotations

import asyncio
from typing import Callable, Protocol

TimerCallback = Callable[[float], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    """Owns the clock used for motion and hands out cancelable timers.

    Callbacks receive the scheduler's monotonic time in milliseconds.
    """

    def now_ms(self) -> float: ...

    def call_later(self, delay_ms: float, callback: TimerCallback) -> TimerHandle: ...

    def call_every(self, interval_ms: float, callback: TimerCallback) -> TimerHandle: ...


class _OnceHandle:
    def __init__(self, scheduler: AsyncioScheduler, delay_ms: float, callback: TimerCallback) -> None:
        self._scheduler = scheduler
        self._callback = callback
        self._cancelled = False
        self._handle = scheduler.loop.call_later(delay_ms / 1000.0, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._callback(self._scheduler.now_ms())

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    def cancelled(self) -> bool:
        return self._cancelled


class _RepeatingHandle:
    def __init__(self, scheduler: AsyncioScheduler, interval_ms: float, callback: TimerCallback) -> None:
        self._scheduler = scheduler
        self._interval_s = interval_ms / 1000.0
        self._callback = callback
        self._cancelled = False
        self._handle = scheduler.loop.call_later(self._interval_s, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._callback(self._scheduler.now_ms())
        # The callback may have cancelled us.
        if not self._cancelled:
            self._handle = self._scheduler.loop.call_later(self._interval_s, self._fire)

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.loop = loop or asyncio.get_running_loop()

    def now_ms(self) -> float:
        return self.loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: TimerCallback) -> TimerHandle:
        return _OnceHandle(self, delay_ms, callback)

    def call_every(self, interval_ms: float, callback: TimerCallback) -> TimerHandle:
        return _RepeatingHandle(self, interval_ms, callback)
