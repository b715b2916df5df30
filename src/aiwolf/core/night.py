"""Night resolution and cascading death effects.

Resolution order is fixed: divination, protection, attack, cat retaliation,
betrayers following a dead fox, hunter chain-kills, then the medium reading
of the previous day's execution. All draws are seeded from the match's
turn_fallback seed, the day number and a per-step offset.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

import structlog

from ..utils.rng import choose, derive_rng
from .roles import NightActionKind, OracleResult, Role, divination_result, medium_result
from .state import DeathCause, GameState

LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NightDeath:
    player_id: str
    cause: DeathCause
    source_id: Optional[str] = None  # who caused a retaliation or chain death


@dataclass(frozen=True)
class OracleOutcome:
    target_id: str
    result: OracleResult


@dataclass(frozen=True)
class ProtectionOutcome:
    target_id: str
    success: bool


@dataclass
class NightInputs:
    """The night's submissions, as handed to the resolver."""

    divinations: Dict[str, str] = field(default_factory=dict)
    protections: Dict[str, str] = field(default_factory=dict)
    attack_target_id: Optional[str] = None


@dataclass
class NightResult:
    deaths: List[NightDeath] = field(default_factory=list)
    chain_victims: List[str] = field(default_factory=list)
    divination_results: Dict[str, OracleOutcome] = field(default_factory=dict)
    medium_results: Dict[str, OracleOutcome] = field(default_factory=dict)
    protection_results: Dict[str, ProtectionOutcome] = field(default_factory=dict)
    attack_target_id: Optional[str] = None

    @property
    def death_ids(self) -> List[str]:
        return [death.player_id for death in self.deaths]


def select_attack_target(state: GameState) -> Optional[str]:
    """The leader's attack if submitted, otherwise the latest submission."""

    if not state.faction_attacks:
        return None
    leader = state.night_leader_id
    if leader is not None and leader in state.faction_attacks:
        return state.faction_attacks[leader]
    return list(state.faction_attacks.values())[-1]


def collect_night_inputs(state: GameState) -> NightInputs:
    inputs = NightInputs(attack_target_id=select_attack_target(state))
    for actor_id, record in state.night_actions.items():
        if record.kind == NightActionKind.DIVINE:
            inputs.divinations[actor_id] = record.target_id
        elif record.kind == NightActionKind.PROTECT:
            inputs.protections[actor_id] = record.target_id
    return inputs


def resolve_death_cascade(
    role_of: Mapping[str, Role],
    alive_order: Sequence[str],
    initial_deaths: Sequence[NightDeath],
    *,
    seed: int,
    day_number: int,
    tag: str,
) -> List[NightDeath]:
    """Deaths that follow from ``initial_deaths``.

    Betrayers die when a fox is among the initial deaths. Every hunter among
    the initial and betrayer deaths then takes one random survivor with them,
    in order. Chain victims do not trigger further effects.

    Args:
        role_of: Role assignments
        alive_order: Players alive before any of these deaths, seating order
        initial_deaths: Deaths already decided this cycle
        seed: turn_fallback seed
        day_number: Current day
        tag: ``"night"`` or ``"execution"``, keeps the two streams apart
    """

    dead = [death.player_id for death in initial_deaths]
    extra: List[NightDeath] = []

    if any(role_of[death.player_id] == Role.FOX for death in initial_deaths):
        for pid in alive_order:
            if role_of.get(pid) == Role.BETRAYER and pid not in dead:
                extra.append(NightDeath(player_id=pid, cause=DeathCause.LINKED))
                dead.append(pid)

    triggers = [death.player_id for death in [*initial_deaths, *extra] if role_of[death.player_id] == Role.HUNTER]
    for hunter_id in triggers:
        options = [pid for pid in alive_order if pid not in dead]
        if not options:
            break
        victim = choose(derive_rng(seed, day_number, tag, "chain", hunter_id), options)
        extra.append(NightDeath(player_id=victim, cause=DeathCause.CHAIN, source_id=hunter_id))
        dead.append(victim)

    return extra


def resolve_night(
    state: GameState,
    inputs: Optional[NightInputs] = None,
    *,
    previous_executed_id: Optional[str] = None,
) -> NightResult:
    """Resolve one night against ``state`` without modifying it."""

    inputs = inputs if inputs is not None else collect_night_inputs(state)
    seed = state.seeds.turn_fallback
    day = state.day_number
    alive = state.alive_order()
    role_of = state.role_of
    result = NightResult(attack_target_id=inputs.attack_target_id)

    # 1. divination
    for seer_id, target_id in inputs.divinations.items():
        if seer_id not in alive or target_id not in role_of:
            continue
        result.divination_results[seer_id] = OracleOutcome(target_id=target_id, result=divination_result(role_of[target_id]))

    # 2. protection
    protections = {knight: target for knight, target in inputs.protections.items() if knight in alive}
    protected = set(protections.values())

    # 3. attack
    attack_target = inputs.attack_target_id
    deaths: List[NightDeath] = []
    if attack_target is not None and attack_target in alive and attack_target not in protected:
        deaths.append(NightDeath(player_id=attack_target, cause=DeathCause.ATTACK))
    for knight_id, target_id in protections.items():
        result.protection_results[knight_id] = ProtectionOutcome(
            target_id=target_id,
            success=attack_target is not None and target_id == attack_target,
        )

    # 4. retaliation
    if deaths and role_of[deaths[0].player_id] == Role.CAT:
        cat_id = deaths[0].player_id
        options = [pid for pid in alive if pid != cat_id]
        if options:
            victim = choose(derive_rng(seed, day, "night", "retaliation", cat_id), options)
            deaths.append(NightDeath(player_id=victim, cause=DeathCause.RETALIATION, source_id=cat_id))

    # 5 and 6. fox-linked deaths, then hunter chains
    deaths.extend(resolve_death_cascade(role_of, alive, deaths, seed=seed, day_number=day, tag="night"))
    result.deaths = deaths
    result.chain_victims = [death.player_id for death in deaths if death.cause == DeathCause.CHAIN]

    # 7. medium
    if previous_executed_id is not None and previous_executed_id in role_of:
        died_tonight = set(result.death_ids)
        for medium_id in state.alive_with_roles([Role.MEDIUM]):
            if medium_id in died_tonight:
                continue
            result.medium_results[medium_id] = OracleOutcome(
                target_id=previous_executed_id,
                result=medium_result(role_of[previous_executed_id]),
            )

    LOGGER.info(
        "night.resolved",
        game_id=state.game_id,
        day=day,
        attack_target=attack_target,
        deaths=[(death.player_id, death.cause.value) for death in deaths],
    )
    return result
