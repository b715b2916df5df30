"""Headless seeded matches where every decision comes from the fallback provider."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..core.errors import FSMError, GameError
from ..core.fallbacks import missing_night_actions, missing_votes
from ..core.fsm import GameFSM
from ..core.schemas import CheckVictory, GameEvent, PhaseDeadlineElapsed
from ..core.state import GameSeeds, GameState, MatchConfig, Phase, build_roster, create_game
from ..core.transitions import requires_timer

LOGGER = structlog.get_logger(__name__)

MAX_TRANSITIONS = 1000
MAX_ERRORS = 10


@dataclass
class SimulationResult:
    game_id: str
    seed: int
    winner: Optional[str]
    days: int
    transitions: int
    packs: List[str]
    pack_fallback: bool
    errors: List[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.winner is not None


@dataclass
class SimulationStats:
    total_games: int = 0
    completed: int = 0
    crashed: int = 0
    wins: Dict[str, int] = field(default_factory=lambda: {"VILLAGE": 0, "WEREWOLF": 0, "FOX": 0})
    avg_days: float = 0.0
    pack_fallbacks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _autopilot(state: GameState) -> List[GameEvent]:
    """Events an all-AI table would produce before the current phase closes."""

    if state.phase in (Phase.DAY_VOTE, Phase.DAY_REVOTE):
        events = missing_votes(state)
    elif state.phase == Phase.NIGHT_ACTIONS:
        events = missing_night_actions(state)
    else:
        events = []

    if requires_timer(state.phase):
        events.append(PhaseDeadlineElapsed(phase=state.phase))
    elif state.phase == Phase.CHECK_END:
        events.append(CheckVictory())
    return events


def simulate_match(
    seed: int,
    *,
    config: Optional[MatchConfig] = None,
    max_transitions: int = MAX_TRANSITIONS,
) -> Tuple[SimulationResult, GameState]:
    """Play one full match from ``seed`` and return its summary and final state."""

    seeds = GameSeeds.from_base(seed)
    config = config or MatchConfig(random_start=True)
    # human seats are played by the autopilot like everyone else
    guests = [f"Guest {index}" for index in range(1, config.num_players - config.num_ai + 1)]
    players = build_roster(guests, num_ai=config.num_ai, seed=seeds.roster, num_players=config.num_players)
    state = create_game(f"sim-{seed}", players, seeds=seeds, config=config)
    fsm = GameFSM(state)
    errors: List[str] = []

    LOGGER.info("simulation.match_start", seed=seed, packs=[p.value for p in state.config.packs])
    fsm.run({"type": "START_GAME"})

    while not fsm.state.is_finished:
        if fsm.transitions >= max_transitions:
            errors.append(f"Transition cap of {max_transitions} reached")
            break
        for event in _autopilot(fsm.state):
            try:
                fsm.run(event)
            except GameError as exc:
                errors.append(f"{type(exc).__name__}: {exc}")
                LOGGER.warning("simulation.event_rejected", seed=seed, error=str(exc))
        if len(errors) > MAX_ERRORS:
            break

    final = fsm.state
    result = SimulationResult(
        game_id=final.game_id,
        seed=seed,
        winner=final.winner.value if final.winner else None,
        days=final.day_number,
        transitions=fsm.transitions,
        packs=[pack.value for pack in final.config.packs],
        pack_fallback=final.pack_fallback,
        errors=errors,
    )
    LOGGER.info("simulation.match_end", seed=seed, winner=result.winner, days=result.days)
    return result, final


def run_batch(
    num_games: int,
    *,
    start_seed: int = 1000,
    config: Optional[MatchConfig] = None,
) -> Tuple[SimulationStats, List[SimulationResult]]:
    """Simulate ``num_games`` matches with consecutive seeds."""

    stats = SimulationStats()
    results: List[SimulationResult] = []
    total_days = 0

    for offset in range(num_games):
        seed = start_seed + offset
        stats.total_games += 1
        try:
            result, _ = simulate_match(seed, config=config)
        except FSMError as exc:
            LOGGER.error("simulation.crashed", seed=seed, error=str(exc))
            result = SimulationResult(
                game_id=f"sim-{seed}", seed=seed, winner=None, days=0, transitions=0,
                packs=[], pack_fallback=False, errors=[str(exc)],
            )
        results.append(result)

        if result.completed:
            stats.completed += 1
            stats.wins[result.winner] += 1
            total_days += result.days
        else:
            stats.crashed += 1
        if result.pack_fallback:
            stats.pack_fallbacks += 1

    stats.avg_days = total_days / stats.completed if stats.completed else 0.0
    return stats, results
