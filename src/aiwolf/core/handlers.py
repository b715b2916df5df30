"""Transition handlers and the registry that maps ``(phase, event)`` to them.

Every handler receives a working copy of the state owned by the state
machine, mutates that copy, and returns it with the notifications to send and
any follow-up events the driver should feed back in. Handlers never read the
clock or do I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from ..utils.rng import choose, derive_rng
from .assigner import assign_roles, export_assignments
from .errors import ConstraintViolation, FSMError, GameValidationError, IllegalTransition
from .night import NightDeath, resolve_death_cascade, resolve_night
from .packs import build_roles
from .roles import WOLF_ROLES, Role, RoleKnowledgeSystem, faction_of, is_werewolf, night_action_for
from .schemas import (
    CheckVictory,
    DeclareSuspicion,
    EventType,
    FactionAttack,
    GameEvent,
    NightAction,
    Notification,
    NotificationType,
    RolesAssigned,
    StartDay,
    Vote,
    WolfChatMessage,
    admin,
    private,
    public,
    to_roles,
)
from .state import DeathCause, GameState, NightActionRecord, Phase, RevoteTiePolicy
from .timers import phase_duration
from .victory import check_victory
from .votes import VoteResult, finalize_votes, submit_vote

LOGGER = structlog.get_logger(__name__)

_KNOWLEDGE = RoleKnowledgeSystem()
_WOLF_AUDIENCE = sorted(WOLF_ROLES, key=lambda role: role.value)


@dataclass
class TransitionResult:
    """What a handler produced."""

    state: GameState
    notifications: List[Notification] = field(default_factory=list)
    follow_up: List[GameEvent] = field(default_factory=list)


Handler = Callable[[GameState, GameEvent], TransitionResult]


class HandlerRegistry:
    """Lookup table of transition handlers."""

    def __init__(self) -> None:
        self._handlers: Dict[Tuple[Phase, EventType], Handler] = {}

    def register(self, phase: Phase, event: EventType, handler: Handler) -> None:
        key = (phase, event)
        if key in self._handlers:
            raise ValueError(f"Handler already registered for {phase.value}:{event.value}")
        self._handlers[key] = handler

    def get(self, phase: Phase, event: EventType) -> Optional[Handler]:
        return self._handlers.get((phase, event))

    def has(self, phase: Phase, event: EventType) -> bool:
        return (phase, event) in self._handlers

    def keys(self) -> List[Tuple[Phase, EventType]]:
        return list(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)


# -- shared helpers ---------------------------------------------------------


def _enter_phase(state: GameState, phase: Phase, notifications: List[Notification]) -> None:
    state.phase = phase
    notifications.append(
        public(
            NotificationType.PHASE_CHANGE,
            phase=phase.value,
            day=state.day_number,
            duration=phase_duration(state, phase),
        )
    )


def _require_alive(state: GameState, player_id: str, what: str) -> None:
    if not state.has_player(player_id):
        raise ConstraintViolation(f"{what} {player_id} is not in this game", player_id=player_id)
    if not state.is_alive(player_id):
        raise ConstraintViolation(f"{what} {player_id} is not alive", player_id=player_id)


def _announce_death(state: GameState, player_id: str, cause: DeathCause, notifications: List[Notification]) -> None:
    if cause == DeathCause.EXECUTION:
        notifications.append(
            public(NotificationType.PLAYER_DIED, player_id=player_id, day=state.day_number, cause=cause.value)
        )
    else:
        notifications.append(public(NotificationType.PLAYER_DIED, player_id=player_id, day=state.day_number))


def _vote_result_notification(result: VoteResult, round_tag: str) -> Notification:
    return public(
        NotificationType.VOTE_RESULT,
        round=round_tag,
        executed_id=result.executed_id,
        per_voter_target=dict(result.per_voter_target),
        per_target_count=dict(result.per_target_count),
        tie_resolved=result.tie_resolved,
        tied_candidates=list(result.tied_candidates),
    )


def _execute(state: GameState, player_id: str, notifications: List[Notification]) -> None:
    """Execute a player and apply whatever deaths follow from it."""

    alive_before = state.alive_order()
    state.kill(player_id, DeathCause.EXECUTION)
    state.last_executed_id = player_id
    _announce_death(state, player_id, DeathCause.EXECUTION, notifications)

    cascade = resolve_death_cascade(
        state.role_of,
        alive_before,
        [NightDeath(player_id=player_id, cause=DeathCause.EXECUTION)],
        seed=state.seeds.turn_fallback,
        day_number=state.day_number,
        tag="execution",
    )
    for death in cascade:
        state.kill(death.player_id, death.cause)
        _announce_death(state, death.player_id, death.cause, notifications)

    LOGGER.info(
        "vote.executed",
        game_id=state.game_id,
        day=state.day_number,
        player_id=player_id,
        cascade=[death.player_id for death in cascade],
    )


def _finish_if_won(state: GameState, notifications: List[Notification]) -> bool:
    result = check_victory(state)
    if not result.has_winner:
        return False
    state.winner = result.winner
    state.victory_reason = result.reason
    state.next_after_check = None
    _enter_phase(state, Phase.GAME_OVER, notifications)
    notifications.append(
        public(
            NotificationType.GAME_OVER,
            winner=result.winner.value,
            reason=result.reason,
            day=state.day_number,
            survivors=state.alive_order(),
            roles=export_assignments(state.role_of),
        )
    )
    LOGGER.info("game.over", game_id=state.game_id, winner=result.winner.value, day=state.day_number)
    return True


def _begin_night(state: GameState, notifications: List[Notification]) -> None:
    state.clear_votes()
    state.clear_night()
    state.next_after_check = None
    wolves = state.alive_wolves()
    if wolves:
        state.night_leader_id = choose(derive_rng(state.seeds.night_leader, state.day_number), wolves)
    _enter_phase(state, Phase.NIGHT_WOLF_CHAT, notifications)
    if wolves:
        notifications.append(
            to_roles(
                NotificationType.NIGHT_LEADER_SELECTED,
                _WOLF_AUDIENCE,
                leader_id=state.night_leader_id,
                wolves=wolves,
                day=state.day_number,
            )
        )


def _begin_next_day(state: GameState, notifications: List[Notification]) -> None:
    state.day_number += 1
    state.last_executed_id = None
    state.tied_candidates = []
    state.next_after_check = None
    state.clear_votes()
    state.clear_night()
    _enter_phase(state, Phase.DAY_FREE_TALK, notifications)


def _to_check_end(state: GameState, resume: Phase, notifications: List[Notification]) -> TransitionResult:
    state.next_after_check = resume
    _enter_phase(state, Phase.CHECK_END, notifications)
    return TransitionResult(state, notifications, [CheckVictory()])


# -- setup ------------------------------------------------------------------


def handle_start_game(state: GameState, event: GameEvent) -> TransitionResult:
    if len(state.players) != state.config.num_players:
        raise GameValidationError(f"Expected {state.config.num_players} players, got {len(state.players)}")

    notifications: List[Notification] = []
    _enter_phase(state, Phase.INIT, notifications)
    notifications.append(
        public(
            NotificationType.GAME_STARTED,
            game_id=state.game_id,
            players=[{"id": p.id, "name": p.name, "kind": p.kind.value} for p in state.players],
            packs=[pack.value for pack in state.config.packs],
        )
    )
    if state.pack_fallback:
        notifications.append(admin(NotificationType.PACK_FALLBACK, warnings=list(state.pack_warnings)))
    return TransitionResult(state, notifications, [RolesAssigned()])


def handle_roles_assigned(state: GameState, event: GameEvent) -> TransitionResult:
    if state.role_of:
        raise FSMError("Roles have already been assigned")

    roles = build_roles(state.config.packs)
    state.role_of = assign_roles(state.seating, roles, state.seeds.roles)

    notifications: List[Notification] = []
    _enter_phase(state, Phase.ASSIGN_ROLES, notifications)
    for pid in state.seating:
        role = state.role_of[pid]
        notifications.append(
            private(
                NotificationType.ROLE_ASSIGNED,
                pid,
                role=role.value,
                faction=faction_of(role).value,
                allies=_KNOWLEDGE.allies_for(
                    player_id=pid, role=role, role_of=state.role_of, seating=state.seating
                ),
            )
        )
    LOGGER.info("roles.assigned", game_id=state.game_id, roles=export_assignments(state.role_of))
    return TransitionResult(state, notifications, [StartDay()])


def handle_start_first_day(state: GameState, event: GameEvent) -> TransitionResult:
    notifications: List[Notification] = []
    state.day_number = 1
    _enter_phase(state, Phase.DAY_FREE_TALK, notifications)
    return TransitionResult(state, notifications)


# -- day ----------------------------------------------------------------------


def handle_declare_suspicion(state: GameState, event: DeclareSuspicion) -> TransitionResult:
    _require_alive(state, event.player_id, "Player")
    _require_alive(state, event.suspect_id, "Suspect")
    if event.player_id == event.suspect_id:
        raise ConstraintViolation("Players cannot suspect themselves", player_id=event.player_id)

    state.player(event.player_id).last_suspect_id = event.suspect_id
    notice = public(NotificationType.SUSPICION_DECLARED, player_id=event.player_id, suspect_id=event.suspect_id)
    return TransitionResult(state, [notice])


def handle_start_vote(state: GameState, event: GameEvent) -> TransitionResult:
    notifications: List[Notification] = []
    state.clear_votes()
    _enter_phase(state, Phase.DAY_VOTE, notifications)
    return TransitionResult(state, notifications)


def handle_start_revote(state: GameState, event: GameEvent) -> TransitionResult:
    notifications: List[Notification] = []
    state.clear_votes()
    _enter_phase(state, Phase.DAY_REVOTE, notifications)
    return TransitionResult(state, notifications)


def handle_vote(state: GameState, event: Vote) -> TransitionResult:
    _require_alive(state, event.voter_id, "Voter")
    _require_alive(state, event.target_id, "Target")
    if event.voter_id == event.target_id:
        raise ConstraintViolation("Players cannot vote for themselves", player_id=event.voter_id)
    if state.phase == Phase.DAY_REVOTE and event.target_id not in state.tied_candidates:
        raise ConstraintViolation(
            f"Revote target must be one of {state.tied_candidates}", player_id=event.voter_id
        )

    submit_vote(state.votes, event.voter_id, event.target_id)
    notice = public(
        NotificationType.VOTE_RECORDED,
        voter_id=event.voter_id,
        votes_cast=len(state.votes),
        alive=len(state.alive_ids),
    )
    return TransitionResult(state, [notice])


def _suspicions(state: GameState) -> Dict[str, Optional[str]]:
    return {player.id: player.last_suspect_id for player in state.players}


def handle_vote_complete(state: GameState, event: GameEvent) -> TransitionResult:
    result = finalize_votes(
        state.votes,
        state.alive_order(),
        seed=state.seeds.turn_fallback,
        day_number=state.day_number,
        suspicions=_suspicions(state),
        resolve_ties=False,
        round_tag="vote",
    )
    state.clear_votes()
    notifications = [_vote_result_notification(result, "vote")]

    if result.is_tie:
        state.tied_candidates = list(result.tied_candidates)
        _enter_phase(state, Phase.DAY_REVOTE_TALK, notifications)
        notifications.append(public(NotificationType.REVOTE_CALLED, candidates=list(state.tied_candidates)))
        return TransitionResult(state, notifications)

    if result.executed_id is None:
        raise GameValidationError("No votes could be counted")

    _execute(state, result.executed_id, notifications)
    _enter_phase(state, Phase.LAST_WILL, notifications)
    return TransitionResult(state, notifications)


def handle_revote_complete(state: GameState, event: GameEvent) -> TransitionResult:
    policy = state.config.revote_tie_policy
    result = finalize_votes(
        state.votes,
        state.alive_order(),
        seed=state.seeds.turn_fallback,
        day_number=state.day_number,
        suspicions=_suspicions(state),
        candidates=state.tied_candidates,
        resolve_ties=policy == RevoteTiePolicy.RANDOM,
        round_tag="revote",
    )
    state.clear_votes()
    state.tied_candidates = []
    notifications = [_vote_result_notification(result, "revote")]

    if result.executed_id is None:
        state.last_executed_id = None
        notifications.append(public(NotificationType.NO_EXECUTION, day=state.day_number))
        LOGGER.info("vote.no_execution", game_id=state.game_id, day=state.day_number)
        return _to_check_end(state, Phase.NIGHT_WOLF_CHAT, notifications)

    _execute(state, result.executed_id, notifications)
    _enter_phase(state, Phase.LAST_WILL, notifications)
    return TransitionResult(state, notifications)


def handle_last_will_complete(state: GameState, event: GameEvent) -> TransitionResult:
    return _to_check_end(state, Phase.NIGHT_WOLF_CHAT, [])


# -- check end --------------------------------------------------------------


def handle_check_victory(state: GameState, event: GameEvent) -> TransitionResult:
    notifications: List[Notification] = []
    if _finish_if_won(state, notifications):
        return TransitionResult(state, notifications)

    if state.next_after_check == Phase.NIGHT_WOLF_CHAT:
        _begin_night(state, notifications)
    elif state.next_after_check == Phase.DAY_FREE_TALK:
        _begin_next_day(state, notifications)
    else:
        raise FSMError(f"CHECK_END has no continuation (next_after_check={state.next_after_check})")
    return TransitionResult(state, notifications)


def handle_start_night(state: GameState, event: GameEvent) -> TransitionResult:
    if state.next_after_check != Phase.NIGHT_WOLF_CHAT:
        raise IllegalTransition(state.phase.value, EventType.START_NIGHT.value, "Night cannot start after dawn")
    notifications: List[Notification] = []
    if not _finish_if_won(state, notifications):
        _begin_night(state, notifications)
    return TransitionResult(state, notifications)


def handle_start_next_day(state: GameState, event: GameEvent) -> TransitionResult:
    if state.next_after_check != Phase.DAY_FREE_TALK:
        raise IllegalTransition(state.phase.value, EventType.START_DAY.value, "Day cannot start before night")
    notifications: List[Notification] = []
    if not _finish_if_won(state, notifications):
        _begin_next_day(state, notifications)
    return TransitionResult(state, notifications)


# -- night ------------------------------------------------------------------


def handle_wolf_chat(state: GameState, event: WolfChatMessage) -> TransitionResult:
    _require_alive(state, event.player_id, "Speaker")
    if not is_werewolf(state.role(event.player_id)):
        raise ConstraintViolation("Only werewolves may use the wolf chat", player_id=event.player_id)

    notice = to_roles(
        NotificationType.WOLF_CHAT_MESSAGE,
        _WOLF_AUDIENCE,
        player_id=event.player_id,
        content=event.content,
        day=state.day_number,
    )
    return TransitionResult(state, [notice])


def handle_start_night_actions(state: GameState, event: GameEvent) -> TransitionResult:
    notifications: List[Notification] = []
    _enter_phase(state, Phase.NIGHT_ACTIONS, notifications)
    return TransitionResult(state, notifications)


def handle_night_action(state: GameState, event: NightAction) -> TransitionResult:
    _require_alive(state, event.player_id, "Actor")
    role: Role = state.role(event.player_id)
    if night_action_for(role) != event.kind:
        raise ConstraintViolation(f"{role.value} cannot {event.kind.value}", player_id=event.player_id)
    _require_alive(state, event.target_id, "Target")
    if event.target_id == event.player_id:
        raise ConstraintViolation(f"Cannot {event.kind.value} yourself", player_id=event.player_id)

    state.night_actions.pop(event.player_id, None)
    state.night_actions[event.player_id] = NightActionRecord(kind=event.kind, target_id=event.target_id)
    notice = private(
        NotificationType.NIGHT_ACTION_RECORDED,
        event.player_id,
        kind=event.kind.value,
        target_id=event.target_id,
    )
    return TransitionResult(state, [notice])


def handle_faction_attack(state: GameState, event: FactionAttack) -> TransitionResult:
    _require_alive(state, event.attacker_id, "Attacker")
    if not is_werewolf(state.role(event.attacker_id)):
        raise ConstraintViolation("Only werewolves can attack", player_id=event.attacker_id)
    _require_alive(state, event.target_id, "Target")
    if is_werewolf(state.role(event.target_id)):
        raise ConstraintViolation("Werewolves cannot attack each other", player_id=event.attacker_id)

    state.faction_attacks.pop(event.attacker_id, None)
    state.faction_attacks[event.attacker_id] = event.target_id
    notice = to_roles(
        NotificationType.ATTACK_RECORDED,
        _WOLF_AUDIENCE,
        attacker_id=event.attacker_id,
        target_id=event.target_id,
    )
    return TransitionResult(state, [notice])


def handle_resolve_night(state: GameState, event: GameEvent) -> TransitionResult:
    result = resolve_night(state, previous_executed_id=state.last_executed_id)

    for death in result.deaths:
        state.kill(death.player_id, death.cause)
    state.clear_night()

    notifications: List[Notification] = []
    for seer_id, outcome in result.divination_results.items():
        notifications.append(
            private(NotificationType.DIVINATION_RESULT, seer_id, target_id=outcome.target_id, result=outcome.result.value)
        )
    for knight_id, outcome in result.protection_results.items():
        notifications.append(
            private(NotificationType.PROTECTION_RESULT, knight_id, target_id=outcome.target_id, success=outcome.success)
        )
    for medium_id, outcome in result.medium_results.items():
        notifications.append(
            private(NotificationType.MEDIUM_RESULT, medium_id, target_id=outcome.target_id, result=outcome.result.value)
        )

    notifications.append(public(NotificationType.NIGHT_RESULT, day=state.day_number, deaths=result.death_ids))
    for death in result.deaths:
        _announce_death(state, death.player_id, death.cause, notifications)
    notifications.append(
        admin(
            NotificationType.NIGHT_RESOLUTION,
            day=state.day_number,
            attack_target_id=result.attack_target_id,
            deaths=[
                {"player_id": d.player_id, "cause": d.cause.value, "source_id": d.source_id} for d in result.deaths
            ],
            chain_victims=list(result.chain_victims),
        )
    )
    _enter_phase(state, Phase.DAWN, notifications)
    return TransitionResult(state, notifications)


def handle_dawn_complete(state: GameState, event: GameEvent) -> TransitionResult:
    return _to_check_end(state, Phase.DAY_FREE_TALK, [])


def build_default_registry() -> HandlerRegistry:
    """Registry wired with every handler in the transition table."""

    registry = HandlerRegistry()
    entries = [
        (Phase.LOBBY, EventType.START_GAME, handle_start_game),
        (Phase.INIT, EventType.ROLES_ASSIGNED, handle_roles_assigned),
        (Phase.ASSIGN_ROLES, EventType.START_DAY, handle_start_first_day),
        (Phase.DAY_FREE_TALK, EventType.DECLARE_SUSPICION, handle_declare_suspicion),
        (Phase.DAY_FREE_TALK, EventType.START_VOTE, handle_start_vote),
        (Phase.DAY_VOTE, EventType.VOTE, handle_vote),
        (Phase.DAY_VOTE, EventType.DECLARE_SUSPICION, handle_declare_suspicion),
        (Phase.DAY_VOTE, EventType.VOTE_COMPLETE, handle_vote_complete),
        (Phase.DAY_REVOTE_TALK, EventType.DECLARE_SUSPICION, handle_declare_suspicion),
        (Phase.DAY_REVOTE_TALK, EventType.START_VOTE, handle_start_revote),
        (Phase.DAY_REVOTE, EventType.VOTE, handle_vote),
        (Phase.DAY_REVOTE, EventType.DECLARE_SUSPICION, handle_declare_suspicion),
        (Phase.DAY_REVOTE, EventType.VOTE_COMPLETE, handle_revote_complete),
        (Phase.LAST_WILL, EventType.LAST_WILL_COMPLETE, handle_last_will_complete),
        (Phase.CHECK_END, EventType.CHECK_VICTORY, handle_check_victory),
        (Phase.CHECK_END, EventType.START_NIGHT, handle_start_night),
        (Phase.CHECK_END, EventType.START_DAY, handle_start_next_day),
        (Phase.NIGHT_WOLF_CHAT, EventType.WOLF_CHAT_MESSAGE, handle_wolf_chat),
        (Phase.NIGHT_WOLF_CHAT, EventType.START_NIGHT_ACTIONS, handle_start_night_actions),
        (Phase.NIGHT_ACTIONS, EventType.NIGHT_ACTION, handle_night_action),
        (Phase.NIGHT_ACTIONS, EventType.FACTION_ATTACK, handle_faction_attack),
        (Phase.NIGHT_ACTIONS, EventType.RESOLVE_NIGHT, handle_resolve_night),
        (Phase.DAWN, EventType.DAWN_COMPLETE, handle_dawn_complete),
    ]
    for phase, event, handler in entries:
        registry.register(phase, event, handler)
    return registry
