"""Core game logic and data structures."""

from . import assigner, fallbacks, fsm, handlers, night, packs, roles, schemas, state, timers, transitions, victory, votes

__all__ = [
    "assigner",
    "fallbacks",
    "fsm",
    "handlers",
    "night",
    "packs",
    "roles",
    "schemas",
    "state",
    "timers",
    "transitions",
    "victory",
    "votes",
]
