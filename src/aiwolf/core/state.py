"""Game state aggregate, seeds and match configuration."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.rng import build_rng, sample_items, shuffled
from .errors import GameValidationError
from .packs import NUM_PLAYERS, Pack, build_random_roles, validate_packs
from .roles import Faction, NightActionKind, Role, is_werewolf

LOGGER = structlog.get_logger(__name__)

MIN_WOLVES_FOR_CHAT = 2

AI_NAME_POOL = (
    "Aoi", "Ren", "Hina", "Sora", "Yuki", "Kai", "Mio", "Riku", "Nagi", "Saki",
    "Taro", "Emi", "Jun", "Rin", "Haru", "Nao",
)


class Phase(str, Enum):
    """State machine phases."""

    LOBBY = "LOBBY"
    INIT = "INIT"
    ASSIGN_ROLES = "ASSIGN_ROLES"
    DAY_FREE_TALK = "DAY_FREE_TALK"
    DAY_VOTE = "DAY_VOTE"
    DAY_REVOTE_TALK = "DAY_REVOTE_TALK"
    DAY_REVOTE = "DAY_REVOTE"
    LAST_WILL = "LAST_WILL"
    NIGHT_WOLF_CHAT = "NIGHT_WOLF_CHAT"
    NIGHT_ACTIONS = "NIGHT_ACTIONS"
    DAWN = "DAWN"
    CHECK_END = "CHECK_END"
    GAME_OVER = "GAME_OVER"


class DeathCause(str, Enum):
    EXECUTION = "EXECUTION"
    ATTACK = "ATTACK"
    RETALIATION = "RETALIATION"
    LINKED = "LINKED"
    CHAIN = "CHAIN"


class PlayerKind(str, Enum):
    HUMAN = "HUMAN"
    AI = "AI"


class RevoteTiePolicy(str, Enum):
    """What happens when the revote is tied again."""

    NO_EXECUTION = "NO_EXECUTION"
    RANDOM = "RANDOM"


@dataclass
class Player:
    """A seat at the table."""

    id: str
    name: str
    kind: PlayerKind = PlayerKind.AI
    last_suspect_id: Optional[str] = None  # most recently declared suspicion


@dataclass(frozen=True)
class DeathRecord:
    player_id: str
    cause: DeathCause
    day: int


@dataclass(frozen=True)
class NightActionRecord:
    kind: NightActionKind
    target_id: str


@dataclass(frozen=True)
class GameSeeds:
    """Fixed seeds, one per randomised concern."""

    roster: int
    roles: int
    pack_selection: int
    turn_fallback: int
    night_leader: int

    @classmethod
    def from_base(cls, seed: int) -> "GameSeeds":
        return cls(
            roster=seed,
            roles=seed + 1,
            pack_selection=seed + 2,
            turn_fallback=seed + 3,
            night_leader=seed + 4,
        )


class PhaseTimers(BaseModel):
    """Phase durations in seconds."""

    model_config = ConfigDict(frozen=True)

    day_free_talk: float = Field(300.0, ge=0)
    day_vote: float = Field(120.0, ge=0)
    day_revote_talk: float = Field(30.0, ge=0)
    day_revote: float = Field(60.0, ge=0)
    last_will: float = Field(30.0, ge=0)
    night_wolf_chat: float = Field(180.0, ge=0)
    night_actions: float = Field(60.0, ge=0)
    dawn: float = Field(10.0, ge=0)

    def duration_for(self, phase: Phase) -> Optional[float]:
        """Duration for timed phases, ``None`` for instant ones."""
        return getattr(self, phase.value.lower(), None)


class MatchConfig(BaseModel):
    """Immutable match configuration."""

    model_config = ConfigDict(frozen=True)

    num_players: int = Field(NUM_PLAYERS, ge=NUM_PLAYERS, le=NUM_PLAYERS)
    num_ai: int = Field(NUM_PLAYERS, ge=0, le=NUM_PLAYERS)
    packs: List[Pack] = Field(default_factory=list)
    random_start: bool = False
    revote_tie_policy: RevoteTiePolicy = RevoteTiePolicy.NO_EXECUTION
    timers: PhaseTimers = Field(default_factory=PhaseTimers)

    @field_validator("packs")
    @classmethod
    def _check_packs(cls, packs: List[Pack]) -> List[Pack]:
        validation = validate_packs(packs)
        if not validation.valid:
            raise ValueError("; ".join(validation.errors))
        return packs


@dataclass
class GameState:
    """Everything the state machine knows about one match."""

    game_id: str
    config: MatchConfig
    seeds: GameSeeds
    players: List[Player]

    phase: Phase = Phase.LOBBY
    day_number: int = 0
    alive_ids: Set[str] = field(default_factory=set)
    role_of: Dict[str, Role] = field(default_factory=dict)

    votes: Dict[str, str] = field(default_factory=dict)
    night_actions: Dict[str, NightActionRecord] = field(default_factory=dict)
    faction_attacks: Dict[str, str] = field(default_factory=dict)
    deaths: List[DeathRecord] = field(default_factory=list)

    tied_candidates: List[str] = field(default_factory=list)
    last_executed_id: Optional[str] = None
    night_leader_id: Optional[str] = None
    next_after_check: Optional[Phase] = None
    winner: Optional[Faction] = None
    victory_reason: Optional[str] = None

    pack_fallback: bool = False
    pack_warnings: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        ids = [player.id for player in self.players]
        if len(set(ids)) != len(ids):
            raise GameValidationError("Player ids must be unique")
        if not self.alive_ids and self.phase == Phase.LOBBY:
            self.alive_ids = set(ids)
        unknown = self.alive_ids - set(ids)
        if unknown:
            raise GameValidationError(f"Unknown alive ids: {sorted(unknown)}")

    @property
    def seating(self) -> List[str]:
        return [player.id for player in self.players]

    @property
    def is_finished(self) -> bool:
        return self.phase == Phase.GAME_OVER

    def player(self, player_id: str) -> Player:
        for player in self.players:
            if player.id == player_id:
                return player
        raise KeyError(player_id)

    def has_player(self, player_id: str) -> bool:
        return any(player.id == player_id for player in self.players)

    def is_alive(self, player_id: str) -> bool:
        return player_id in self.alive_ids

    def alive_order(self) -> List[str]:
        """Living ids in seating order; use this, never the raw set, for draws."""
        return [pid for pid in self.seating if pid in self.alive_ids]

    def role(self, player_id: str) -> Role:
        return self.role_of[player_id]

    def alive_with_roles(self, roles: Iterable[Role]) -> List[str]:
        wanted = set(roles)
        return [pid for pid in self.alive_order() if self.role_of.get(pid) in wanted]

    def alive_wolves(self) -> List[str]:
        return [pid for pid in self.alive_order() if pid in self.role_of and is_werewolf(self.role_of[pid])]

    def dead_ids(self) -> List[str]:
        return [record.player_id for record in self.deaths]

    def kill(self, player_id: str, cause: DeathCause) -> DeathRecord:
        if player_id not in self.alive_ids:
            raise GameValidationError(f"Player {player_id} is not alive")
        self.alive_ids.discard(player_id)
        record = DeathRecord(player_id=player_id, cause=cause, day=self.day_number)
        self.deaths.append(record)
        return record

    def clear_votes(self) -> None:
        self.votes.clear()

    def clear_night(self) -> None:
        self.night_actions.clear()
        self.faction_attacks.clear()
        self.night_leader_id = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly snapshot used for exports and replay comparisons."""

        return {
            "game_id": self.game_id,
            "phase": self.phase.value,
            "day_number": self.day_number,
            "players": [
                {"id": p.id, "name": p.name, "kind": p.kind.value, "last_suspect_id": p.last_suspect_id}
                for p in self.players
            ],
            "alive_ids": self.alive_order(),
            "role_of": {pid: role.value for pid, role in self.role_of.items()},
            "votes": dict(self.votes),
            "night_actions": {
                pid: {"kind": rec.kind.value, "target_id": rec.target_id} for pid, rec in self.night_actions.items()
            },
            "faction_attacks": dict(self.faction_attacks),
            "deaths": [
                {"player_id": d.player_id, "cause": d.cause.value, "day": d.day} for d in self.deaths
            ],
            "seeds": asdict(self.seeds),
            "config": self.config.model_dump(mode="json"),
            "tied_candidates": list(self.tied_candidates),
            "last_executed_id": self.last_executed_id,
            "night_leader_id": self.night_leader_id,
            "winner": self.winner.value if self.winner else None,
            "victory_reason": self.victory_reason,
            "pack_fallback": self.pack_fallback,
            "pack_warnings": list(self.pack_warnings),
        }


def build_roster(
    human_names: Sequence[str] = (),
    *,
    num_ai: Optional[int] = None,
    seed: int,
    num_players: int = NUM_PLAYERS,
) -> List[Player]:
    """Create the seat list from human names plus generated AI players.

    AI names are drawn from a fixed pool and the seating order is shuffled,
    both from the roster seed.
    """

    if num_ai is None:
        num_ai = num_players - len(human_names)
    if len(human_names) + num_ai != num_players:
        raise GameValidationError(
            f"{len(human_names)} humans + {num_ai} AI players does not make {num_players}"
        )

    rng = build_rng(seed=seed)
    ai_names = sample_items(rng, AI_NAME_POOL, num_ai)
    players = [
        Player(id=f"human-{index}", name=name, kind=PlayerKind.HUMAN)
        for index, name in enumerate(human_names, start=1)
    ]
    players.extend(
        Player(id=f"ai-{index}", name=name, kind=PlayerKind.AI) for index, name in enumerate(ai_names, start=1)
    )
    return shuffled(rng, players)


def create_game(
    game_id: str,
    players: Sequence[Player],
    *,
    seeds: GameSeeds,
    config: Optional[MatchConfig] = None,
) -> GameState:
    """Create a lobby state, settling the final pack selection up front.

    With ``random_start`` the packs are drawn from the pack_selection seed and
    written back into the (new) config so it stays fixed for the whole match.
    """

    config = config or MatchConfig()
    if len(players) != config.num_players:
        raise GameValidationError(f"Expected {config.num_players} players, got {len(players)}")
    num_ai = sum(1 for player in players if player.kind == PlayerKind.AI)
    if num_ai != config.num_ai:
        raise GameValidationError(f"Expected {config.num_ai} AI players, got {num_ai}")

    pack_fallback = False
    pack_warnings: List[str] = []
    if config.random_start:
        selection = build_random_roles(seeds.pack_selection)
        config = config.model_copy(update={"packs": list(selection.packs)})
        pack_fallback = selection.exhausted
        pack_warnings = list(selection.warnings)
    else:
        pack_warnings = validate_packs(config.packs).warnings

    LOGGER.info(
        "game.created",
        game_id=game_id,
        packs=[pack.value for pack in config.packs],
        random_start=config.random_start,
        pack_fallback=pack_fallback,
    )
    return GameState(
        game_id=game_id,
        config=config,
        seeds=seeds,
        players=[Player(id=p.id, name=p.name, kind=p.kind, last_suspect_id=p.last_suspect_id) for p in players],
        pack_fallback=pack_fallback,
        pack_warnings=pack_warnings,
    )


def wolf_chat_enabled(state: GameState) -> bool:
    return len(state.alive_wolves()) >= MIN_WOLVES_FOR_CHAT
