"""
Tests for win condition evaluation.
"""

from aiwolf.core.packs import Pack
from aiwolf.core.roles import Faction
from aiwolf.core.victory import check_victory, count_factions


def test_no_winner_at_start(make_state):
    result = check_victory(make_state())
    assert not result.has_winner
    assert result.winner is None


def test_village_wins_when_wolves_are_gone(make_state):
    state = make_state(alive=["p3", "p4", "p5", "p7"])
    result = check_victory(state)
    # the madman still counts for the werewolf side
    assert not result.has_winner

    state = make_state(alive=["p3", "p4", "p7"])
    assert check_victory(state).winner == Faction.VILLAGE


def test_wolves_win_on_parity(make_state):
    state = make_state(alive=["p1", "p5", "p3", "p7"])
    result = check_victory(state)
    assert result.has_winner
    assert result.winner == Faction.WEREWOLF


def test_fox_overrides_either_side(make_state):
    # FOX pack turns p7 into the fox
    state = make_state([Pack.FOX], alive=["p1", "p2", "p7", "p8"])
    assert check_victory(state).winner == Faction.FOX

    state = make_state([Pack.FOX], alive=["p3", "p7", "p8"])
    assert check_victory(state).winner == Faction.FOX


def test_dead_fox_does_not_override(make_state):
    state = make_state([Pack.FOX], alive=["p3", "p8"])
    assert check_victory(state).winner == Faction.VILLAGE


def test_count_factions(make_state):
    counts = count_factions(make_state([Pack.BETRAYER]))
    assert counts == {Faction.VILLAGE: 6, Faction.WEREWOLF: 3, Faction.FOX: 2}
