"""Win condition evaluation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .roles import Faction, faction_of
from .state import GameState


@dataclass(frozen=True)
class VictoryResult:
    has_winner: bool
    winner: Optional[Faction] = None
    reason: Optional[str] = None


def count_factions(state: GameState) -> Dict[Faction, int]:
    counts = {faction: 0 for faction in Faction}
    for pid in state.alive_order():
        role = state.role_of.get(pid)
        if role is not None:
            counts[faction_of(role)] += 1
    return counts


def check_victory(state: GameState) -> VictoryResult:
    """Evaluate the living head-count.

    A living fox-faction member takes the win from whichever side would
    otherwise have won. Wolves being wiped out is checked first so an empty
    table counts as a village win rather than wolf parity.
    """

    counts = count_factions(state)
    wolves = counts[Faction.WEREWOLF]
    fox_alive = counts[Faction.FOX] > 0
    others = counts[Faction.VILLAGE] + counts[Faction.FOX]

    if wolves == 0:
        if fox_alive:
            return VictoryResult(True, Faction.FOX, "Fox survived to the end")
        return VictoryResult(True, Faction.VILLAGE, "All werewolves eliminated")

    if wolves >= others:
        if fox_alive:
            return VictoryResult(True, Faction.FOX, "Fox survived to the end")
        return VictoryResult(True, Faction.WEREWOLF, "Werewolves equal or outnumber the rest")

    return VictoryResult(False)
