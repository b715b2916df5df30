"""Role catalog, factions, oracle mapping and hidden role knowledge."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence


class Role(str, Enum):
    """Roles that can appear in an 11-player match."""

    VILLAGER = "VILLAGER"
    WEREWOLF = "WEREWOLF"
    SEER = "SEER"
    MEDIUM = "MEDIUM"
    KNIGHT = "KNIGHT"
    MADMAN = "MADMAN"
    FOX = "FOX"
    BETRAYER = "BETRAYER"
    CAT = "CAT"
    FREEMASON = "FREEMASON"
    HUNTER = "HUNTER"
    FANATIC = "FANATIC"
    WHITE_WOLF = "WHITE_WOLF"


class Faction(str, Enum):
    """Win-condition teams."""

    VILLAGE = "VILLAGE"
    WEREWOLF = "WEREWOLF"
    FOX = "FOX"


class OracleResult(str, Enum):
    """What a seer or medium is told about a player."""

    WEREWOLF = "WEREWOLF"
    HUMAN = "HUMAN"


class NightActionKind(str, Enum):
    """Individual night abilities submitted through ``NightAction``."""

    DIVINE = "DIVINE"
    PROTECT = "PROTECT"


@dataclass(frozen=True)
class RoleInfo:
    """Static description of a role."""

    role: Role
    faction: Faction
    night_action: Optional[NightActionKind] = None
    attacks: bool = False  # joins the nightly faction attack and wolf chat
    knows_allies: bool = False


ROLE_DEFINITIONS: Dict[Role, RoleInfo] = {
    Role.VILLAGER: RoleInfo(role=Role.VILLAGER, faction=Faction.VILLAGE),
    Role.SEER: RoleInfo(role=Role.SEER, faction=Faction.VILLAGE, night_action=NightActionKind.DIVINE),
    Role.MEDIUM: RoleInfo(role=Role.MEDIUM, faction=Faction.VILLAGE),
    Role.KNIGHT: RoleInfo(role=Role.KNIGHT, faction=Faction.VILLAGE, night_action=NightActionKind.PROTECT),
    Role.FREEMASON: RoleInfo(role=Role.FREEMASON, faction=Faction.VILLAGE, knows_allies=True),
    Role.HUNTER: RoleInfo(role=Role.HUNTER, faction=Faction.VILLAGE),
    Role.CAT: RoleInfo(role=Role.CAT, faction=Faction.VILLAGE),
    Role.WEREWOLF: RoleInfo(role=Role.WEREWOLF, faction=Faction.WEREWOLF, attacks=True, knows_allies=True),
    Role.WHITE_WOLF: RoleInfo(role=Role.WHITE_WOLF, faction=Faction.WEREWOLF, attacks=True, knows_allies=True),
    Role.MADMAN: RoleInfo(role=Role.MADMAN, faction=Faction.WEREWOLF),
    Role.FANATIC: RoleInfo(role=Role.FANATIC, faction=Faction.WEREWOLF),
    Role.FOX: RoleInfo(role=Role.FOX, faction=Faction.FOX),
    Role.BETRAYER: RoleInfo(role=Role.BETRAYER, faction=Faction.FOX),
}

WOLF_ROLES = frozenset(info.role for info in ROLE_DEFINITIONS.values() if info.attacks)


def faction_of(role: Role) -> Faction:
    return ROLE_DEFINITIONS[role].faction


def is_werewolf(role: Role) -> bool:
    """True for roles that attack at night and count as wolves."""
    return role in WOLF_ROLES


def night_action_for(role: Role) -> Optional[NightActionKind]:
    return ROLE_DEFINITIONS[role].night_action


def divination_result(role: Role) -> OracleResult:
    """Seer's view of a role.

    The white wolf reads as human and the fanatic reads as a werewolf; every
    other role reports its true side.
    """
    if role == Role.WHITE_WOLF:
        return OracleResult.HUMAN
    if role in (Role.WEREWOLF, Role.FANATIC):
        return OracleResult.WEREWOLF
    return OracleResult.HUMAN


def medium_result(role: Role) -> OracleResult:
    """Medium's view of an executed player's role."""
    if role in WOLF_ROLES:
        return OracleResult.WEREWOLF
    return OracleResult.HUMAN


class RoleKnowledgeSystem:
    """Works out which other players a role knows at game start."""

    def __init__(self) -> None:
        self.knowledge_map = {
            Role.WEREWOLF: self._wolf_allies,
            Role.WHITE_WOLF: self._wolf_allies,
            Role.FREEMASON: self._freemason_allies,
        }

    def allies_for(
        self,
        *,
        player_id: str,
        role: Role,
        role_of: Mapping[str, Role],
        seating: Sequence[str],
    ) -> List[str]:
        """Return the ids this player learns about, in seating order."""

        if role not in self.knowledge_map:
            return []
        return self.knowledge_map[role](player_id=player_id, role_of=role_of, seating=seating)

    def _wolf_allies(self, *, player_id: str, role_of: Mapping[str, Role], seating: Sequence[str]) -> List[str]:
        return [pid for pid in seating if pid != player_id and is_werewolf(role_of[pid])]

    def _freemason_allies(self, *, player_id: str, role_of: Mapping[str, Role], seating: Sequence[str]) -> List[str]:
        return [pid for pid in seating if pid != player_id and role_of[pid] == Role.FREEMASON]
