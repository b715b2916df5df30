"""FIFO async mutex used to serialise transitions for one match."""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from typing import Any, Awaitable, Callable, Deque, TypeVar, Union

T = TypeVar("T")


class TransitionMutex:
    """At most one holder; waiters resume strictly in arrival order.

    Release hands ownership directly to the next waiter, so a newcomer can
    never jump the queue between a release and the waiter waking up.
    """

    def __init__(self) -> None:
        self._locked = False
        self._waiters: Deque[asyncio.Future] = deque()

    def is_locked(self) -> bool:
        return self._locked

    @property
    def pending(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        if not self._locked and not self._waiters:
            self._locked = True
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # ownership arrived just as we were cancelled; pass it on
                self._wake_next()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        if not self._locked:
            raise RuntimeError("release() called on an unlocked mutex")
        self._wake_next()

    def _wake_next(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._locked = False

    async def run_exclusive(self, func: Callable[..., Union[T, Awaitable[T]]], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` while holding the mutex; sync and async callables both work."""

        await self.acquire()
        try:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                return await result
            return result
        finally:
            self.release()
