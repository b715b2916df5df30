"""Seeded shuffle-and-deal of roles onto players."""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from ..utils.rng import build_rng, shuffled
from .errors import RoleCountMismatch
from .roles import Role, is_werewolf


def assign_roles(player_ids: Sequence[str], roles: Sequence[Role], seed: int) -> Dict[str, Role]:
    """Shuffle ``roles`` with ``seed`` and deal them to players in list order."""

    if len(player_ids) != len(roles):
        raise RoleCountMismatch(expected=len(player_ids), actual=len(roles))
    if len(set(player_ids)) != len(player_ids):
        raise ValueError("Player ids must be unique")

    dealt = shuffled(build_rng(seed=seed), roles)
    return dict(zip(player_ids, dealt))


def werewolf_ids(role_of: Mapping[str, Role]) -> List[str]:
    return [pid for pid, assigned in role_of.items() if is_werewolf(assigned)]


def export_assignments(role_of: Mapping[str, Role]) -> Dict[str, str]:
    """Plain ``{player_id: role_name}`` mapping for logs and reveals."""
    return {pid: role.value for pid, role in role_of.items()}
