"""Explicit transition table for the match state machine.

Each ``(phase, event)`` pair lists the phases its handler may move to. Any pair
not listed is illegal.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Optional

from .schemas import EventType
from .state import Phase

PHASE_TRANSITIONS: Dict[Phase, Dict[EventType, FrozenSet[Phase]]] = {
    Phase.LOBBY: {
        EventType.START_GAME: frozenset({Phase.INIT}),
    },
    Phase.INIT: {
        EventType.ROLES_ASSIGNED: frozenset({Phase.ASSIGN_ROLES}),
    },
    Phase.ASSIGN_ROLES: {
        EventType.START_DAY: frozenset({Phase.DAY_FREE_TALK}),
    },
    Phase.DAY_FREE_TALK: {
        EventType.DECLARE_SUSPICION: frozenset({Phase.DAY_FREE_TALK}),
        EventType.START_VOTE: frozenset({Phase.DAY_VOTE}),
    },
    Phase.DAY_VOTE: {
        EventType.VOTE: frozenset({Phase.DAY_VOTE}),
        EventType.DECLARE_SUSPICION: frozenset({Phase.DAY_VOTE}),
        EventType.VOTE_COMPLETE: frozenset({Phase.DAY_REVOTE_TALK, Phase.LAST_WILL}),
    },
    Phase.DAY_REVOTE_TALK: {
        EventType.DECLARE_SUSPICION: frozenset({Phase.DAY_REVOTE_TALK}),
        EventType.START_VOTE: frozenset({Phase.DAY_REVOTE}),
    },
    Phase.DAY_REVOTE: {
        EventType.VOTE: frozenset({Phase.DAY_REVOTE}),
        EventType.DECLARE_SUSPICION: frozenset({Phase.DAY_REVOTE}),
        EventType.VOTE_COMPLETE: frozenset({Phase.LAST_WILL, Phase.CHECK_END}),
    },
    Phase.LAST_WILL: {
        EventType.LAST_WILL_COMPLETE: frozenset({Phase.CHECK_END}),
    },
    Phase.CHECK_END: {
        EventType.CHECK_VICTORY: frozenset({Phase.GAME_OVER, Phase.NIGHT_WOLF_CHAT, Phase.DAY_FREE_TALK}),
        EventType.START_NIGHT: frozenset({Phase.NIGHT_WOLF_CHAT, Phase.GAME_OVER}),
        EventType.START_DAY: frozenset({Phase.DAY_FREE_TALK, Phase.GAME_OVER}),
    },
    Phase.NIGHT_WOLF_CHAT: {
        EventType.WOLF_CHAT_MESSAGE: frozenset({Phase.NIGHT_WOLF_CHAT}),
        EventType.START_NIGHT_ACTIONS: frozenset({Phase.NIGHT_ACTIONS}),
    },
    Phase.NIGHT_ACTIONS: {
        EventType.NIGHT_ACTION: frozenset({Phase.NIGHT_ACTIONS}),
        EventType.FACTION_ATTACK: frozenset({Phase.NIGHT_ACTIONS}),
        EventType.RESOLVE_NIGHT: frozenset({Phase.DAWN}),
    },
    Phase.DAWN: {
        EventType.DAWN_COMPLETE: frozenset({Phase.CHECK_END}),
    },
    Phase.GAME_OVER: {},
}

# Event forced when a phase's deadline elapses.
DEADLINE_EVENTS: Dict[Phase, EventType] = {
    Phase.DAY_FREE_TALK: EventType.START_VOTE,
    Phase.DAY_VOTE: EventType.VOTE_COMPLETE,
    Phase.DAY_REVOTE_TALK: EventType.START_VOTE,
    Phase.DAY_REVOTE: EventType.VOTE_COMPLETE,
    Phase.LAST_WILL: EventType.LAST_WILL_COMPLETE,
    Phase.NIGHT_WOLF_CHAT: EventType.START_NIGHT_ACTIONS,
    Phase.NIGHT_ACTIONS: EventType.RESOLVE_NIGHT,
    Phase.DAWN: EventType.DAWN_COMPLETE,
}


def is_valid_transition(phase: Phase, event: EventType) -> bool:
    return event in PHASE_TRANSITIONS.get(phase, {})


def allowed_targets(phase: Phase, event: EventType) -> FrozenSet[Phase]:
    return PHASE_TRANSITIONS.get(phase, {}).get(event, frozenset())


def allowed_events(phase: Phase) -> FrozenSet[EventType]:
    return frozenset(PHASE_TRANSITIONS.get(phase, {}))


def deadline_event(phase: Phase) -> Optional[EventType]:
    return DEADLINE_EVENTS.get(phase)


def requires_timer(phase: Phase) -> bool:
    return phase in DEADLINE_EVENTS
