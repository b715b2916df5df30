"""Finite state machine driving a werewolf match.

``transition`` is the only way state changes. It validates the event against
the transition table, runs the registered handler on a deep copy of the
state, checks the result against the table and the state invariants, and
only then hands back the new state. A rejected event therefore leaves the
caller's state exactly as it was.
"""

from __future__ import annotations

import copy
from collections import Counter, deque
from typing import Any, Deque, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel

from .errors import FSMError, IllegalTransition
from .handlers import HandlerRegistry, TransitionResult, build_default_registry
from .packs import expected_role_counts, validate_packs
from .schemas import (
    DawnComplete,
    EventType,
    GameEvent,
    LastWillComplete,
    Notification,
    PhaseDeadlineElapsed,
    ResolveNight,
    StartNightActions,
    StartVote,
    VoteComplete,
    parse_event,
)
from .state import GameState, Phase
from .transitions import allowed_targets, deadline_event, is_valid_transition

LOGGER = structlog.get_logger(__name__)

MAX_FOLLOW_UPS = 100

_FORCED_EVENTS = {
    EventType.START_VOTE: StartVote,
    EventType.VOTE_COMPLETE: VoteComplete,
    EventType.LAST_WILL_COMPLETE: LastWillComplete,
    EventType.START_NIGHT_ACTIONS: StartNightActions,
    EventType.RESOLVE_NIGHT: ResolveNight,
    EventType.DAWN_COMPLETE: DawnComplete,
}

_VOTE_PHASES = (Phase.DAY_VOTE, Phase.DAY_REVOTE)

_DEFAULT_REGISTRY: Optional[HandlerRegistry] = None


def default_registry() -> HandlerRegistry:
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = build_default_registry()
    return _DEFAULT_REGISTRY


def _resolve_deadline(state: GameState, event: GameEvent) -> GameEvent:
    """Swap a deadline signal for the event that closes the phase."""

    if not isinstance(event, PhaseDeadlineElapsed):
        return event
    if event.phase != state.phase:
        raise IllegalTransition(
            state.phase.value,
            event.type.value,
            f"Stale deadline for {event.phase.value}; current phase is {state.phase.value}",
        )
    forced = deadline_event(state.phase)
    if forced is None:
        raise IllegalTransition(state.phase.value, event.type.value, f"Phase {state.phase.value} has no deadline")
    return _FORCED_EVENTS[forced]()


def check_invariants(state: GameState) -> None:
    """Raise FSMError if the state is internally inconsistent."""

    seating = set(state.seating)
    if not state.alive_ids <= seating:
        raise FSMError(f"Alive ids outside the roster: {sorted(state.alive_ids - seating)}")

    revived = state.alive_ids.intersection(state.dead_ids())
    if revived:
        raise FSMError(f"Dead players marked alive: {sorted(revived)}")

    if not validate_packs(state.config.packs).valid:
        raise FSMError("Configured packs violate pack constraints")

    if state.role_of:
        if set(state.role_of) != seating:
            raise FSMError("Role assignments do not cover the roster exactly")
        if Counter(state.role_of.values()) != expected_role_counts(state.config.packs):
            raise FSMError("Assigned roles do not match the configured packs")

    if state.votes and state.phase not in _VOTE_PHASES:
        raise FSMError(f"Votes left over in {state.phase.value}")
    if (state.night_actions or state.faction_attacks) and state.phase != Phase.NIGHT_ACTIONS:
        raise FSMError(f"Night actions left over in {state.phase.value}")


def transition(
    state: GameState,
    event: Union[GameEvent, Dict[str, Any], BaseModel],
    *,
    registry: Optional[HandlerRegistry] = None,
) -> TransitionResult:
    """Apply ``event`` to ``state`` and return the new state.

    Raises:
        SchemaValidationError: Malformed event payload
        IllegalTransition: Event not accepted in the current phase
        GameValidationError, ConstraintViolation: Rejected by the handler
        FSMError: Handler broke the transition table or an invariant
    """

    registry = registry if registry is not None else default_registry()
    event = _resolve_deadline(state, parse_event(event))
    phase = state.phase

    if not is_valid_transition(phase, event.type):
        raise IllegalTransition(phase.value, event.type.value)
    handler = registry.get(phase, event.type)
    if handler is None:
        raise IllegalTransition(phase.value, event.type.value, f"No handler for {phase.value}:{event.type.value}")

    working = copy.deepcopy(state)
    result = handler(working, event)

    targets = allowed_targets(phase, event.type)
    if result.state.phase not in targets:
        raise FSMError(
            f"Handler for {phase.value}:{event.type.value} moved to {result.state.phase.value}, "
            f"allowed: {sorted(p.value for p in targets)}"
        )
    check_invariants(result.state)
    return result


class GameFSM:
    """Owns one match's state and applies events to it."""

    def __init__(self, state: GameState, *, registry: Optional[HandlerRegistry] = None) -> None:
        self._state = state
        self._registry = registry if registry is not None else default_registry()
        self.transitions = 0

    @property
    def state(self) -> GameState:
        """Current state. Treat as read-only; change it through :meth:`dispatch`."""
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    def can_accept(self, event_type: EventType) -> bool:
        return is_valid_transition(self._state.phase, event_type)

    def dispatch(self, event: Union[GameEvent, Dict[str, Any], BaseModel]) -> TransitionResult:
        """Apply one event; follow-ups are returned, not run."""

        before = self._state.phase
        try:
            result = transition(self._state, event, registry=self._registry)
        except FSMError:
            LOGGER.error("fsm.internal_error", game_id=self._state.game_id, phase=before.value)
            raise
        self._state = result.state
        self.transitions += 1
        if result.state.phase != before:
            LOGGER.info(
                "fsm.transition",
                game_id=self._state.game_id,
                day=self._state.day_number,
                from_phase=before.value,
                to_phase=self._state.phase.value,
            )
        return result

    def run(self, event: Union[GameEvent, Dict[str, Any], BaseModel]) -> List[Notification]:
        """Apply ``event`` and every follow-up it triggers, in order."""

        queue: Deque[Any] = deque([event])
        notifications: List[Notification] = []
        processed = 0
        while queue:
            processed += 1
            if processed > MAX_FOLLOW_UPS:
                raise FSMError("Follow-up events did not settle")
            result = self.dispatch(queue.popleft())
            notifications.extend(result.notifications)
            queue.extend(result.follow_up)
        return notifications
