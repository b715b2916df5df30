"""Role packs for the 11-player game.

A pack swaps some base roles for new ones. Packs carry constraints that limit
which packs may be combined; this module validates combinations, applies the
substitutions and can pick a random valid combination from a seed.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

import structlog

from ..utils.rng import build_rng, int_in_range, sample_items
from .errors import PackValidationError
from .roles import Role

LOGGER = structlog.get_logger(__name__)

NUM_PLAYERS = 11
MAX_RANDOM_PACKS = 3
MAX_SELECTION_ATTEMPTS = 100

BASE_ROLES: Tuple[Role, ...] = (
    Role.WEREWOLF,
    Role.WEREWOLF,
    Role.SEER,
    Role.MEDIUM,
    Role.MADMAN,
    Role.KNIGHT,
    Role.VILLAGER,
    Role.VILLAGER,
    Role.VILLAGER,
    Role.VILLAGER,
    Role.VILLAGER,
)


class Pack(str, Enum):
    """Optional role packs."""

    FOX = "FOX"
    FREEMASON = "FREEMASON"
    HUNTER = "HUNTER"
    FANATIC = "FANATIC"
    WHITE_WOLF = "WHITE_WOLF"
    CAT = "CAT"
    BETRAYER = "BETRAYER"


@dataclass(frozen=True)
class ThirdPartyExclusive:
    """At most one pack introducing a third party may be active."""


@dataclass(frozen=True)
class JudgmentExclusive:
    """At most one pack that inverts oracle results may be active."""

    conflicts_with: Tuple[Pack, ...] = ()


@dataclass(frozen=True)
class WeightReduction:
    """Combination is legal but tilts balance; reported as a warning."""

    conflicts_with: Tuple[Pack, ...] = ()


PackConstraint = Union[ThirdPartyExclusive, JudgmentExclusive, WeightReduction]


@dataclass(frozen=True)
class PackConfig:
    """Substitutions and constraints for one pack."""

    pack: Pack
    replaces: Tuple[Role, ...]
    introduces: Tuple[Role, ...]
    constraints: Tuple[PackConstraint, ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if len(self.replaces) != len(self.introduces):
            raise ValueError(
                f"Pack {self.pack.value} replaces {len(self.replaces)} roles but introduces {len(self.introduces)}"
            )

    def has_constraint(self, kind: type) -> bool:
        return any(isinstance(constraint, kind) for constraint in self.constraints)


PACK_CONFIGS: Dict[Pack, PackConfig] = {
    Pack.FOX: PackConfig(
        pack=Pack.FOX,
        replaces=(Role.VILLAGER,),
        introduces=(Role.FOX,),
        constraints=(ThirdPartyExclusive(),),
        description="Independent fox that wins if alive when the game would end",
    ),
    Pack.FREEMASON: PackConfig(
        pack=Pack.FREEMASON,
        replaces=(Role.VILLAGER, Role.VILLAGER),
        introduces=(Role.FREEMASON, Role.FREEMASON),
        constraints=(WeightReduction(conflicts_with=(Pack.FANATIC,)),),
        description="Two villagers who know each other",
    ),
    Pack.HUNTER: PackConfig(
        pack=Pack.HUNTER,
        replaces=(Role.VILLAGER,),
        introduces=(Role.HUNTER,),
        description="Takes one random player down when killed",
    ),
    Pack.FANATIC: PackConfig(
        pack=Pack.FANATIC,
        replaces=(Role.MADMAN,),
        introduces=(Role.FANATIC,),
        constraints=(
            JudgmentExclusive(conflicts_with=(Pack.WHITE_WOLF,)),
            WeightReduction(conflicts_with=(Pack.FREEMASON,)),
        ),
        description="Sympathizer who reads as a werewolf to the seer",
    ),
    Pack.WHITE_WOLF: PackConfig(
        pack=Pack.WHITE_WOLF,
        replaces=(Role.WEREWOLF,),
        introduces=(Role.WHITE_WOLF,),
        constraints=(JudgmentExclusive(conflicts_with=(Pack.FANATIC,)),),
        description="Werewolf who reads as human to the seer",
    ),
    Pack.CAT: PackConfig(
        pack=Pack.CAT,
        replaces=(Role.VILLAGER,),
        introduces=(Role.CAT,),
        description="Villager who kills a random player when attacked",
    ),
    Pack.BETRAYER: PackConfig(
        pack=Pack.BETRAYER,
        replaces=(Role.VILLAGER, Role.VILLAGER),
        introduces=(Role.FOX, Role.BETRAYER),
        constraints=(ThirdPartyExclusive(),),
        description="Fox plus a betrayer who dies with the fox",
    ),
}

ALL_PACKS: Tuple[Pack, ...] = tuple(PACK_CONFIGS)

PRESETS: Dict[str, Tuple[Pack, ...]] = {
    "BASIC": (Pack.FOX,),
    "C_COUNTRY": (Pack.FOX, Pack.CAT),
    "G_COUNTRY": (Pack.BETRAYER,),
}


@dataclass
class PackValidation:
    """Outcome of :func:`validate_packs`."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class RandomPackSelection:
    """Outcome of :func:`build_random_roles`."""

    roles: List[Role]
    packs: List[Pack]
    attempts: int
    exhausted: bool = False
    warnings: List[str] = field(default_factory=list)


def get_pack_config(pack: Pack) -> PackConfig:
    return PACK_CONFIGS[pack]


def get_preset(name: str) -> Tuple[Pack, ...]:
    """Look up a named pack bundle.

    Raises:
        ValueError: If no preset with this name exists
    """
    key = name.upper()
    if key not in PRESETS:
        available = ", ".join(sorted(PRESETS))
        raise ValueError(f"Unknown preset {name!r}. Available: {available}")
    return PRESETS[key]


def validate_packs(packs: Sequence[Pack]) -> PackValidation:
    """Check a pack selection against every pack constraint."""

    errors: List[str] = []
    warnings: List[str] = []

    duplicates = sorted(pack.value for pack, count in Counter(packs).items() if count > 1)
    if duplicates:
        errors.append(f"Duplicate packs: {', '.join(duplicates)}")

    unique = list(dict.fromkeys(packs))
    configs = [PACK_CONFIGS[pack] for pack in unique]

    third_party = [cfg.pack.value for cfg in configs if cfg.has_constraint(ThirdPartyExclusive)]
    if len(third_party) > 1:
        errors.append(f"Only one third-party pack allowed, got {', '.join(third_party)}")

    judgment = [cfg.pack.value for cfg in configs if cfg.has_constraint(JudgmentExclusive)]
    if len(judgment) > 1:
        errors.append(f"Only one judgment-inverting pack allowed, got {', '.join(judgment)}")

    reported = set()
    for cfg in configs:
        for constraint in cfg.constraints:
            if not isinstance(constraint, WeightReduction):
                continue
            for other in constraint.conflicts_with:
                pair = frozenset((cfg.pack, other))
                if other in unique and pair not in reported:
                    reported.add(pair)
                    warnings.append(f"{cfg.pack.value} with {other.value} weakens the village")

    return PackValidation(valid=not errors, errors=errors, warnings=warnings)


def apply_pack(roles: Sequence[Role], pack: Pack) -> List[Role]:
    """Replace the first occurrence of each role the pack swaps out."""

    config = PACK_CONFIGS[pack]
    result = list(roles)
    for old_role, new_role in zip(config.replaces, config.introduces):
        try:
            index = result.index(old_role)
        except ValueError:
            raise PackValidationError(
                [f"Pack {pack.value} needs a {old_role.value} to replace but none is left"]
            ) from None
        result[index] = new_role
    if len(result) != NUM_PLAYERS:
        raise PackValidationError([f"Pack {pack.value} left {len(result)} roles instead of {NUM_PLAYERS}"])
    return result


def build_roles(packs: Sequence[Pack] = ()) -> List[Role]:
    """Return the role multiset for a pack selection, in pack order.

    Raises:
        PackValidationError: If the selection breaks a constraint
    """

    validation = validate_packs(packs)
    if not validation.valid:
        raise PackValidationError(validation.errors, validation.warnings)
    for warning in validation.warnings:
        LOGGER.warning("packs.weight_reduction", warning=warning)

    roles = list(BASE_ROLES)
    for pack in packs:
        roles = apply_pack(roles, pack)
    return roles


def expected_role_counts(packs: Sequence[Pack]) -> Counter:
    """Role multiset for an already validated selection, without logging."""

    roles = list(BASE_ROLES)
    for pack in packs:
        roles = apply_pack(roles, pack)
    return Counter(roles)


def build_random_roles(
    seed: int,
    *,
    pool: Sequence[Pack] = ALL_PACKS,
    pack_count: Optional[int] = None,
    max_attempts: int = MAX_SELECTION_ATTEMPTS,
) -> RandomPackSelection:
    """Pick a random valid pack combination and build its roles.

    The draw count comes from ``[0, MAX_RANDOM_PACKS]`` unless ``pack_count``
    is given. Candidate sets are sampled from one generator so each attempt
    advances the stream. When every attempt fails the base game is returned
    with ``exhausted`` set.
    """

    rng = build_rng(seed=seed)
    count = pack_count if pack_count is not None else int_in_range(rng, 0, MAX_RANDOM_PACKS)
    count = min(count, len(pool))

    if count == 0:
        return RandomPackSelection(roles=list(BASE_ROLES), packs=[], attempts=0)

    for attempt in range(1, max_attempts + 1):
        candidate = sample_items(rng, list(pool), count)
        validation = validate_packs(candidate)
        if validation.valid:
            LOGGER.info(
                "packs.random_selected",
                seed=seed,
                packs=[pack.value for pack in candidate],
                attempts=attempt,
            )
            return RandomPackSelection(
                roles=build_roles(candidate),
                packs=candidate,
                attempts=attempt,
                warnings=validation.warnings,
            )

    LOGGER.warning("packs.random_selection_exhausted", seed=seed, attempts=max_attempts, pack_count=count)
    return RandomPackSelection(
        roles=list(BASE_ROLES),
        packs=[],
        attempts=max_attempts,
        exhausted=True,
        warnings=[f"No valid combination of {count} packs found in {max_attempts} attempts; using base game"],
    )
