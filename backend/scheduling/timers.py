"""
Named one-shot timers with explicit handles.

Responsibilities:
- Start / replace / cancel asyncio-backed timers by timer_id
- Hand out a TimerHandle(timer_id, generation) for every start
- Guarantee a cancelled or replaced timer never runs its callback

Non-responsibilities:
- NO knowledge of what a timer means (reducers decide that)
- NO retries

This module is infrastructure only.
"""

from __future__ import annotations

import asyncio
from asyncio import Task
from collections.abc import Awaitable, Callable
from dataclasses import dataclass


TimerCallback = Callable[["TimerHandle"], Awaitable[None]]


@dataclass(frozen=True)
class TimerHandle:
    """
    Identity of one scheduled timer.

    generation increases on every start of the same timer_id, so a holder
    can tell whether the handle it kept is still the armed one.
    """
    timer_id: str
    generation: int
    delay_s: float


class TimerRegistry:
    """
    Owns every pending timer task of one component.

    Lifecycle:
    1. start(timer_id, delay_s, callback) -> TimerHandle
    2a. cancel(timer_id) / cancel_all()  -> callback never runs
    2b. delay elapses                     -> handle dropped, callback(handle)

    A callback that is already running is not interrupted by cancel();
    it has left the registry by then.
    """

    def __init__(self, *, name: str = "timers") -> None:
        self._name = name
        self._tasks: dict[str, Task[None]] = {}
        self._handles: dict[str, TimerHandle] = {}
        self._generations: dict[str, int] = {}
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, timer_id: str, delay_s: float, callback: TimerCallback) -> TimerHandle:
        """
        Start or replace a timer.

        Replacing cancels the previous task before the new one is created.
        """
        if self._closed:
            raise RuntimeError(f"{self._name}: registry is closed")

        self.cancel(timer_id)

        generation = self._generations.get(timer_id, 0) + 1
        self._generations[timer_id] = generation
        handle = TimerHandle(timer_id=timer_id, generation=generation, delay_s=delay_s)

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(delay_s)
            except asyncio.CancelledError:
                return

            if self._handles.get(timer_id) != handle:
                return
            self._handles.pop(timer_id, None)
            self._tasks.pop(timer_id, None)

            await callback(handle)

        self._handles[timer_id] = handle
        self._tasks[timer_id] = asyncio.create_task(
            _timer_task(), name=f"{self._name}:{timer_id}:{generation}"
        )
        return handle

    def cancel(self, timer_id: str) -> bool:
        """
        Cancel a pending timer.

        Idempotent: returns False if nothing was pending.
        """
        self._handles.pop(timer_id, None)
        task = self._tasks.pop(timer_id, None)
        if task is None:
            return False
        if not task.done():
            task.cancel()
        return True

    def cancel_all(self) -> None:
        for timer_id in list(self._tasks.keys()):
            self.cancel(timer_id)

    async def aclose(self) -> None:
        """Cancel everything, wait for the tasks, refuse new timers."""
        tasks = list(self._tasks.values())
        self.cancel_all()
        self._closed = True
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def is_pending(self, timer_id: str) -> bool:
        return timer_id in self._handles

    def handle(self, timer_id: str) -> TimerHandle | None:
        return self._handles.get(timer_id)

    def pending(self) -> tuple[str, ...]:
        return tuple(self._handles.keys())
