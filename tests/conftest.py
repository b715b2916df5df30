"""
Pytest fixtures for the werewolf orchestration core.

Role layout produced by ``make_state`` for the base game (seat -> role):
p1, p2 WEREWOLF; p3 SEER; p4 MEDIUM; p5 MADMAN; p6 KNIGHT; p7..p11 VILLAGER.
Packs replace from the front, e.g. HUNTER turns p7 into the hunter.
"""

from typing import Iterable, Optional, Sequence

import pytest

from aiwolf.core.fsm import GameFSM
from aiwolf.core.packs import Pack, build_roles
from aiwolf.core.state import GameSeeds, GameState, MatchConfig, Phase, Player, create_game

PLAYER_IDS = [f"p{i}" for i in range(1, 12)]


@pytest.fixture
def seeds():
    return GameSeeds.from_base(42)


@pytest.fixture
def players():
    return [Player(id=pid, name=f"Player {pid[1:]}") for pid in PLAYER_IDS]


@pytest.fixture
def make_state(seeds):
    """Factory for a mid-game state with roles dealt in seat order."""

    def _make(
        packs: Sequence[Pack] = (),
        *,
        phase: Phase = Phase.DAY_FREE_TALK,
        day: int = 1,
        alive: Optional[Iterable[str]] = None,
        config: Optional[MatchConfig] = None,
        **overrides,
    ) -> GameState:
        config = config or MatchConfig(packs=list(packs))
        state = GameState(
            game_id="test-game",
            config=config,
            seeds=seeds,
            players=[Player(id=pid, name=f"Player {pid[1:]}") for pid in PLAYER_IDS],
            phase=phase,
            day_number=day,
            alive_ids=set(alive if alive is not None else PLAYER_IDS),
            role_of=dict(zip(PLAYER_IDS, build_roles(config.packs))),
        )
        for key, value in overrides.items():
            setattr(state, key, value)
        return state

    return _make


@pytest.fixture
def lobby_state(players, seeds):
    return create_game("lobby-game", players, seeds=seeds, config=MatchConfig())


@pytest.fixture
def lobby_fsm(lobby_state):
    return GameFSM(lobby_state)
