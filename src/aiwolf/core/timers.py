"""Phase deadlines and the per-match phase timer.

The pure helpers work on plain float timestamps so handlers stay free of
clock reads. :class:`PhaseTimer` schedules the deadline callback and the
60/30/10 second warnings on the running asyncio loop; starting a new timer
cancels the previous one.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

import structlog

from .state import GameState, Phase, wolf_chat_enabled
from .transitions import requires_timer

LOGGER = structlog.get_logger(__name__)

WARNING_THRESHOLDS: Tuple[float, ...] = (60.0, 30.0, 10.0)

DeadlineCallback = Callable[[Phase], Optional[Awaitable[Any]]]
WarningCallback = Callable[[Phase, float], Optional[Awaitable[Any]]]


def phase_duration(state: GameState, phase: Optional[Phase] = None) -> Optional[float]:
    """Seconds allotted to ``phase`` (default: current phase), ``None`` if untimed.

    Wolf chat collapses to zero when fewer than two wolves are alive.
    """

    phase = phase or state.phase
    if not requires_timer(phase):
        return None
    if phase == Phase.NIGHT_WOLF_CHAT and not wolf_chat_enabled(state):
        return 0.0
    return state.config.timers.duration_for(phase)


def calculate_deadline(now: float, duration: float) -> float:
    return now + duration


def is_deadline_passed(deadline: float, now: float) -> bool:
    return now >= deadline


def remaining_time(deadline: float, now: float) -> float:
    return max(0.0, deadline - now)


@dataclass
class TimerHandle:
    """Cancel token for one scheduled phase timer."""

    phase: Phase
    deadline: float
    _handles: List[asyncio.TimerHandle] = field(default_factory=list)
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.fired


class PhaseTimer:
    """One live deadline per match."""

    def __init__(self, *, thresholds: Tuple[float, ...] = WARNING_THRESHOLDS) -> None:
        self.thresholds = thresholds
        self._current: Optional[TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def current(self) -> Optional[TimerHandle]:
        return self._current

    def is_active(self) -> bool:
        return self._current is not None and self._current.active

    def start(
        self,
        phase: Phase,
        duration: float,
        on_deadline: DeadlineCallback,
        on_warning: Optional[WarningCallback] = None,
    ) -> TimerHandle:
        """Schedule ``on_deadline`` after ``duration`` seconds.

        Must be called from inside a running event loop. A non-positive
        duration fires on the next loop iteration.
        """

        self.clear()
        loop = asyncio.get_running_loop()
        delay = max(0.0, duration)
        handle = TimerHandle(phase=phase, deadline=calculate_deadline(loop.time(), delay))

        def fire_deadline() -> None:
            if handle.cancelled:
                return
            handle.fired = True
            LOGGER.info("timer.deadline", phase=phase.value)
            self._invoke(on_deadline, phase)

        if on_warning is not None:
            for threshold in self.thresholds:
                if delay > threshold:
                    handle._handles.append(
                        loop.call_later(delay - threshold, self._invoke, on_warning, phase, threshold)
                    )
        handle._handles.append(loop.call_later(delay, fire_deadline))

        self._current = handle
        LOGGER.debug("timer.started", phase=phase.value, duration=delay)
        return handle

    def clear(self) -> None:
        """Cancel the current timer; safe to call repeatedly."""
        if self._current is not None:
            self._current.cancel()
            self._current = None

    def remaining(self) -> Optional[float]:
        if not self.is_active():
            return None
        loop = asyncio.get_running_loop()
        return remaining_time(self._current.deadline, loop.time())

    def _invoke(self, callback: Callable[..., Any], *args: Any) -> None:
        result = callback(*args)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
