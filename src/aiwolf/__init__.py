"""Deterministic orchestration core for 11-player werewolf matches."""

from .core import fsm, handlers, night, packs, roles, schemas, state, victory, votes
from .core.errors import (
    ConstraintViolation,
    FSMError,
    GameError,
    GameValidationError,
    IllegalTransition,
)
from .core.fsm import GameFSM, transition
from .core.state import GameSeeds, GameState, MatchConfig, Phase, create_game

__all__ = [
    "fsm",
    "handlers",
    "night",
    "packs",
    "roles",
    "schemas",
    "state",
    "victory",
    "votes",
    "ConstraintViolation",
    "FSMError",
    "GameError",
    "GameValidationError",
    "IllegalTransition",
    "GameFSM",
    "transition",
    "GameSeeds",
    "GameState",
    "MatchConfig",
    "Phase",
    "create_game",
]
