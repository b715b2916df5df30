"""Async driver that connects the state machine to timers and a transport.

All events for a match, whether submitted by players or raised by the phase
timer, pass through one :class:`TransitionMutex`. After each transition the
runner publishes notifications to the sink and restarts the phase timer when
the phase changed.
"""

from __future__ import annotations

import inspect
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel

from ..core.errors import ConstraintViolation, GameError
from ..core.fallbacks import missing_night_actions
from ..core.fsm import GameFSM
from ..core.schemas import (
    GameEvent,
    Notification,
    NotificationType,
    PhaseDeadlineElapsed,
    StartGame,
    public,
)
from ..core.state import Phase
from ..core.timers import PhaseTimer, calculate_deadline, phase_duration
from ..utils.mutex import TransitionMutex

LOGGER = structlog.get_logger(__name__)

NotificationSink = Callable[[Notification], Union[None, Awaitable[None]]]


class MatchRunner:
    """Serialises events for one match and keeps its phase timer in step."""

    def __init__(
        self,
        fsm: GameFSM,
        *,
        sink: Optional[NotificationSink] = None,
        timer: Optional[PhaseTimer] = None,
        mutex: Optional[TransitionMutex] = None,
        clock: Callable[[], float] = time.time,
        auto_fallbacks: bool = True,
    ) -> None:
        self.fsm = fsm
        self.sink = sink
        self.timer = timer or PhaseTimer()
        self.mutex = mutex or TransitionMutex()
        self.clock = clock
        self.auto_fallbacks = auto_fallbacks
        self._logger = LOGGER.bind(game_id=fsm.state.game_id)

    @property
    def state(self):
        return self.fsm.state

    async def start(self) -> List[Notification]:
        return await self.submit(StartGame())

    async def submit(self, event: Union[GameEvent, Dict[str, Any], BaseModel]) -> List[Notification]:
        """Queue an event behind any in-flight transition and apply it.

        Errors from the event itself propagate to the caller so the
        transport can relay them; state is unchanged in that case.
        """
        return await self.mutex.run_exclusive(self._process, [event])

    def close(self) -> None:
        self.timer.clear()

    async def _process(self, events: List[Any]) -> List[Notification]:
        queue: Deque[Any] = deque(events)
        delivered: List[Notification] = []
        phase_changed = False

        try:
            while queue:
                before = self.fsm.phase
                result = self.fsm.dispatch(queue.popleft())
                delivered.extend(self._stamp(n) for n in result.notifications)
                queue.extend(result.follow_up)
                phase_changed = phase_changed or result.state.phase != before
        finally:
            # transitions already committed keep their timer and notifications
            if phase_changed:
                self._schedule_timer()
            for notification in delivered:
                await self._publish(notification)
        return delivered

    def _stamp(self, notification: Notification) -> Notification:
        """Add an absolute deadline to phase-change notifications."""

        if notification.type != NotificationType.PHASE_CHANGE:
            return notification
        duration = notification.payload.get("duration")
        if duration is None:
            return notification
        payload = dict(notification.payload, deadline=calculate_deadline(self.clock(), duration))
        return notification.model_copy(update={"payload": payload})

    def _schedule_timer(self) -> None:
        state = self.fsm.state
        self.timer.clear()
        if state.is_finished:
            return
        duration = phase_duration(state)
        if duration is None:
            return
        self.timer.start(state.phase, duration, self._on_deadline, self._on_warning)

    async def _on_deadline(self, phase: Phase) -> None:
        try:
            await self.mutex.run_exclusive(self._process_deadline, phase)
        except GameError as exc:
            self._logger.error("match.deadline_failed", phase=phase.value, error=str(exc))
        except Exception:
            # nothing awaits timer tasks, so this is the only place to report it
            self._logger.exception("match.deadline_crashed", phase=phase.value)

    async def _process_deadline(self, phase: Phase) -> List[Notification]:
        state = self.fsm.state
        if state.phase != phase:
            self._logger.info("match.stale_deadline", phase=phase.value, current=state.phase.value)
            return []

        delivered: List[Notification] = []
        if self.auto_fallbacks and phase == Phase.NIGHT_ACTIONS:
            for fallback in missing_night_actions(state):
                try:
                    delivered.extend(await self._process([fallback]))
                except ConstraintViolation as exc:
                    self._logger.warning("match.fallback_rejected", error=str(exc))
        delivered.extend(await self._process([PhaseDeadlineElapsed(phase=phase)]))
        return delivered

    async def _on_warning(self, phase: Phase, remaining: float) -> None:
        if self.fsm.phase != phase:
            return
        await self._publish(public(NotificationType.TIMER_WARNING, phase=phase.value, remaining=remaining))

    async def _publish(self, notification: Notification) -> None:
        if self.sink is None:
            return
        result = self.sink(notification)
        if inspect.isawaitable(result):
            await result
