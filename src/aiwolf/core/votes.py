"""Execution vote collection, abstention filling and tie resolution."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, MutableMapping, Optional, Sequence

import structlog

from ..utils.rng import choose, derive_rng

LOGGER = structlog.get_logger(__name__)


@dataclass
class VoteResult:
    """Outcome of :func:`finalize_votes`."""

    executed_id: Optional[str]
    per_voter_target: Dict[str, str]
    per_target_count: Dict[str, int]
    tie_resolved: bool = False
    tied_candidates: List[str] = field(default_factory=list)
    synthesized: List[str] = field(default_factory=list)

    @property
    def is_tie(self) -> bool:
        return len(self.tied_candidates) > 1


def submit_vote(votes: MutableMapping[str, str], voter_id: str, target_id: str) -> Optional[str]:
    """Record a vote, replacing the voter's earlier one. Returns the replaced target."""

    previous = votes.pop(voter_id, None)
    votes[voter_id] = target_id
    return previous


def missing_voters(votes: Mapping[str, str], alive_ids: Sequence[str]) -> List[str]:
    return [pid for pid in alive_ids if pid not in votes]


def finalize_votes(
    votes: Mapping[str, str],
    alive_ids: Sequence[str],
    *,
    seed: int,
    day_number: int,
    suspicions: Optional[Mapping[str, Optional[str]]] = None,
    candidates: Optional[Sequence[str]] = None,
    resolve_ties: bool = True,
    round_tag: str = "vote",
) -> VoteResult:
    """Fill in missing votes, tally, and pick the executed player.

    Args:
        votes: Submitted ``voter -> target`` votes
        alive_ids: Living players in seating order
        seed: The match's turn_fallback seed
        day_number: Current day, part of the RNG offset
        suspicions: Each player's last declared suspect, preferred for fill-ins
        candidates: Restrict targets (revote between tied players)
        resolve_ties: When False a tie leaves ``executed_id`` empty so the
            caller can call a revote
        round_tag: Distinguishes the first vote from the revote in RNG offsets

    Returns:
        VoteResult with every living voter accounted for
    """

    suspicions = suspicions or {}
    alive = list(alive_ids)
    alive_set = set(alive)
    allowed = [pid for pid in (candidates if candidates is not None else alive) if pid in alive_set]

    per_voter: Dict[str, str] = {}
    synthesized: List[str] = []
    fill_rng = derive_rng(seed, day_number, round_tag, "fill")

    for voter in alive:
        submitted = votes.get(voter)
        if submitted is not None and submitted in allowed:
            per_voter[voter] = submitted
            continue

        options = [pid for pid in allowed if pid != voter]
        if not options:
            continue
        suspect = suspicions.get(voter)
        per_voter[voter] = suspect if suspect in options else choose(fill_rng, options)
        synthesized.append(voter)

    counts = Counter(per_voter.values())
    per_target_count = {pid: counts[pid] for pid in alive if counts[pid]}

    if not per_target_count:
        return VoteResult(
            executed_id=None,
            per_voter_target=per_voter,
            per_target_count=per_target_count,
            synthesized=synthesized,
        )

    top = max(per_target_count.values())
    leaders = [pid for pid, count in per_target_count.items() if count == top]

    if len(leaders) == 1:
        return VoteResult(
            executed_id=leaders[0],
            per_voter_target=per_voter,
            per_target_count=per_target_count,
            synthesized=synthesized,
        )

    executed_id: Optional[str] = None
    if resolve_ties:
        executed_id = choose(derive_rng(seed, day_number, round_tag, "tie"), leaders)

    LOGGER.info(
        "votes.tie",
        day=day_number,
        round=round_tag,
        candidates=leaders,
        resolved=executed_id,
    )
    return VoteResult(
        executed_id=executed_id,
        per_voter_target=per_voter,
        per_target_count=per_target_count,
        tie_resolved=executed_id is not None,
        tied_candidates=leaders,
        synthesized=synthesized,
    )
