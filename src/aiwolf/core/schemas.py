"""Pydantic contracts for inbound events and outbound notifications."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .roles import NightActionKind, Role
from .state import Phase


class EventType(str, Enum):
    """Inbound event kinds."""

    START_GAME = "START_GAME"
    ROLES_ASSIGNED = "ROLES_ASSIGNED"
    START_DAY = "START_DAY"
    START_VOTE = "START_VOTE"
    VOTE = "VOTE"
    VOTE_COMPLETE = "VOTE_COMPLETE"
    DECLARE_SUSPICION = "DECLARE_SUSPICION"
    LAST_WILL_COMPLETE = "LAST_WILL_COMPLETE"
    CHECK_VICTORY = "CHECK_VICTORY"
    START_NIGHT = "START_NIGHT"
    WOLF_CHAT_MESSAGE = "WOLF_CHAT_MESSAGE"
    START_NIGHT_ACTIONS = "START_NIGHT_ACTIONS"
    NIGHT_ACTION = "NIGHT_ACTION"
    FACTION_ATTACK = "FACTION_ATTACK"
    RESOLVE_NIGHT = "RESOLVE_NIGHT"
    DAWN_COMPLETE = "DAWN_COMPLETE"
    PHASE_DEADLINE_ELAPSED = "PHASE_DEADLINE_ELAPSED"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class StartGame(_Event):
    type: Literal[EventType.START_GAME] = EventType.START_GAME


class RolesAssigned(_Event):
    type: Literal[EventType.ROLES_ASSIGNED] = EventType.ROLES_ASSIGNED


class StartDay(_Event):
    type: Literal[EventType.START_DAY] = EventType.START_DAY


class StartVote(_Event):
    type: Literal[EventType.START_VOTE] = EventType.START_VOTE


class Vote(_Event):
    type: Literal[EventType.VOTE] = EventType.VOTE
    voter_id: str = Field(..., min_length=1)
    target_id: str = Field(..., min_length=1)


class VoteComplete(_Event):
    type: Literal[EventType.VOTE_COMPLETE] = EventType.VOTE_COMPLETE


class DeclareSuspicion(_Event):
    """A player publicly names who they suspect; used when their vote is missing."""

    type: Literal[EventType.DECLARE_SUSPICION] = EventType.DECLARE_SUSPICION
    player_id: str = Field(..., min_length=1)
    suspect_id: str = Field(..., min_length=1)


class LastWillComplete(_Event):
    type: Literal[EventType.LAST_WILL_COMPLETE] = EventType.LAST_WILL_COMPLETE


class CheckVictory(_Event):
    type: Literal[EventType.CHECK_VICTORY] = EventType.CHECK_VICTORY


class StartNight(_Event):
    type: Literal[EventType.START_NIGHT] = EventType.START_NIGHT


class WolfChatMessage(_Event):
    type: Literal[EventType.WOLF_CHAT_MESSAGE] = EventType.WOLF_CHAT_MESSAGE
    player_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=2000)


class StartNightActions(_Event):
    type: Literal[EventType.START_NIGHT_ACTIONS] = EventType.START_NIGHT_ACTIONS


class NightAction(_Event):
    type: Literal[EventType.NIGHT_ACTION] = EventType.NIGHT_ACTION
    player_id: str = Field(..., min_length=1)
    kind: NightActionKind
    target_id: str = Field(..., min_length=1)


class FactionAttack(_Event):
    type: Literal[EventType.FACTION_ATTACK] = EventType.FACTION_ATTACK
    attacker_id: str = Field(..., min_length=1)
    target_id: str = Field(..., min_length=1)


class ResolveNight(_Event):
    type: Literal[EventType.RESOLVE_NIGHT] = EventType.RESOLVE_NIGHT


class DawnComplete(_Event):
    type: Literal[EventType.DAWN_COMPLETE] = EventType.DAWN_COMPLETE


class PhaseDeadlineElapsed(_Event):
    """Timer signal; ``phase`` is the phase the timer was started for."""

    type: Literal[EventType.PHASE_DEADLINE_ELAPSED] = EventType.PHASE_DEADLINE_ELAPSED
    phase: Phase


GameEvent = Annotated[
    Union[
        StartGame,
        RolesAssigned,
        StartDay,
        StartVote,
        Vote,
        VoteComplete,
        DeclareSuspicion,
        LastWillComplete,
        CheckVictory,
        StartNight,
        WolfChatMessage,
        StartNightActions,
        NightAction,
        FactionAttack,
        ResolveNight,
        DawnComplete,
        PhaseDeadlineElapsed,
    ],
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(GameEvent)


class NotificationType(str, Enum):
    """Outbound notification kinds."""

    GAME_STARTED = "GAME_STARTED"
    PACK_FALLBACK = "PACK_FALLBACK"
    ROLE_ASSIGNED = "ROLE_ASSIGNED"
    PHASE_CHANGE = "PHASE_CHANGE"
    SUSPICION_DECLARED = "SUSPICION_DECLARED"
    VOTE_RECORDED = "VOTE_RECORDED"
    VOTE_RESULT = "VOTE_RESULT"
    REVOTE_CALLED = "REVOTE_CALLED"
    NO_EXECUTION = "NO_EXECUTION"
    PLAYER_DIED = "PLAYER_DIED"
    WOLF_CHAT_MESSAGE = "WOLF_CHAT_MESSAGE"
    NIGHT_ACTION_RECORDED = "NIGHT_ACTION_RECORDED"
    ATTACK_RECORDED = "ATTACK_RECORDED"
    DIVINATION_RESULT = "DIVINATION_RESULT"
    MEDIUM_RESULT = "MEDIUM_RESULT"
    PROTECTION_RESULT = "PROTECTION_RESULT"
    NIGHT_RESULT = "NIGHT_RESULT"
    NIGHT_RESOLUTION = "NIGHT_RESOLUTION"
    NIGHT_LEADER_SELECTED = "NIGHT_LEADER_SELECTED"
    TIMER_WARNING = "TIMER_WARNING"
    GAME_OVER = "GAME_OVER"


class Visibility(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"
    ROLE_SPECIFIC = "ROLE_SPECIFIC"
    ADMIN_ONLY = "ADMIN_ONLY"


class Notification(BaseModel):
    """Something the transport layer should deliver after a transition."""

    model_config = ConfigDict(frozen=True)

    type: NotificationType
    visibility: Visibility = Visibility.PUBLIC
    recipient_id: Optional[str] = None
    recipient_roles: List[Role] = Field(default_factory=list)
    payload: Dict[str, Any] = Field(default_factory=dict)

    def is_for(self, player_id: str, role: Optional[Role]) -> bool:
        """Whether this notification should reach ``player_id``."""
        if self.visibility == Visibility.PUBLIC:
            return True
        if self.visibility == Visibility.PRIVATE:
            return self.recipient_id == player_id
        if self.visibility == Visibility.ROLE_SPECIFIC:
            return role is not None and role in self.recipient_roles
        return False


def public(kind: NotificationType, /, **payload: Any) -> Notification:
    return Notification(type=kind, payload=payload)


def private(kind: NotificationType, recipient_id: str, /, **payload: Any) -> Notification:
    return Notification(type=kind, visibility=Visibility.PRIVATE, recipient_id=recipient_id, payload=payload)


def to_roles(kind: NotificationType, roles: List[Role], /, **payload: Any) -> Notification:
    return Notification(type=kind, visibility=Visibility.ROLE_SPECIFIC, recipient_roles=roles, payload=payload)


def admin(kind: NotificationType, /, **payload: Any) -> Notification:
    return Notification(type=kind, visibility=Visibility.ADMIN_ONLY, payload=payload)


class SchemaValidationError(Exception):
    """Raised when an inbound event payload fails schema validation."""

    def __init__(self, errors: list):
        self.errors = errors
        super().__init__(f"Event validation failed: {errors}")


def parse_event(payload: Union[Dict[str, Any], BaseModel]) -> GameEvent:
    """Turn a raw dict into a typed event or raise SchemaValidationError."""

    if isinstance(payload, BaseModel):
        return payload  # type: ignore[return-value]
    try:
        return _EVENT_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise SchemaValidationError(e.errors())
