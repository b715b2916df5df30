"""Seeded stand-in decisions for players who miss a deadline.

The match runner asks this module for replacement submissions before it
forces a vote or night resolution, and the headless simulation uses it for
every decision. Each draw is seeded from the turn_fallback seed, the day,
the player id and the action name.
"""

from __future__ import annotations

from typing import List, Optional

import structlog

from ..utils.rng import choose, derive_rng
from .roles import NightActionKind, is_werewolf, night_action_for
from .schemas import FactionAttack, GameEvent, NightAction, Vote
from .state import GameState, Phase

LOGGER = structlog.get_logger(__name__)


def _rng(state: GameState, player_id: str, action: str):
    return derive_rng(state.seeds.turn_fallback, state.day_number, player_id, action)


def _vote_options(state: GameState, player_id: str) -> List[str]:
    pool = state.tied_candidates if state.phase == Phase.DAY_REVOTE and state.tied_candidates else state.alive_order()
    return [pid for pid in pool if pid != player_id and state.is_alive(pid)]


def fallback_vote(state: GameState, player_id: str) -> Optional[Vote]:
    """Vote for the player's stated suspect, else a random living player."""

    options = _vote_options(state, player_id)
    if not options:
        return None
    suspect = state.player(player_id).last_suspect_id
    if suspect in options:
        target = suspect
    else:
        target = choose(_rng(state, player_id, "vote"), options)
    return Vote(voter_id=player_id, target_id=target)


def fallback_night_action(state: GameState, player_id: str) -> Optional[NightAction]:
    """Random divination or protection target, never the actor."""

    kind = night_action_for(state.role(player_id))
    if kind is None:
        return None
    options = [pid for pid in state.alive_order() if pid != player_id]
    if not options:
        return None
    target = choose(_rng(state, player_id, kind.value), options)
    return NightAction(player_id=player_id, kind=kind, target_id=target)


def fallback_attack(state: GameState, attacker_id: str) -> Optional[FactionAttack]:
    options = [pid for pid in state.alive_order() if not is_werewolf(state.role(pid))]
    if not options:
        return None
    target = choose(_rng(state, attacker_id, "ATTACK"), options)
    return FactionAttack(attacker_id=attacker_id, target_id=target)


def missing_votes(state: GameState) -> List[GameEvent]:
    events: List[GameEvent] = []
    for pid in state.alive_order():
        if pid in state.votes:
            continue
        vote = fallback_vote(state, pid)
        if vote is not None:
            events.append(vote)
    return events


def missing_night_actions(state: GameState) -> List[GameEvent]:
    """Replacement submissions for every living actor who has not acted yet."""

    events: List[GameEvent] = []
    for pid in state.alive_order():
        kind: Optional[NightActionKind] = night_action_for(state.role(pid))
        if kind is None or pid in state.night_actions:
            continue
        action = fallback_night_action(state, pid)
        if action is not None:
            events.append(action)

    wolves = state.alive_wolves()
    if wolves and not state.faction_attacks:
        attacker = state.night_leader_id if state.night_leader_id in wolves else wolves[0]
        attack = fallback_attack(state, attacker)
        if attack is not None:
            events.append(attack)

    if events:
        LOGGER.info("fallbacks.night_actions", game_id=state.game_id, day=state.day_number, count=len(events))
    return events
