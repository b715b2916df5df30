"""
Tests for night resolution and death cascades.
"""

from aiwolf.core.night import NightDeath, NightInputs, collect_night_inputs, resolve_death_cascade, resolve_night, select_attack_target
from aiwolf.core.packs import Pack
from aiwolf.core.roles import NightActionKind, OracleResult, Role
from aiwolf.core.state import DeathCause, NightActionRecord, Phase


def _night(make_state, packs=(), **overrides):
    return make_state(packs, phase=Phase.NIGHT_ACTIONS, **overrides)


def test_protection_blocks_attack(make_state):
    state = _night(
        make_state,
        faction_attacks={"p1": "p3"},
        night_actions={"p6": NightActionRecord(NightActionKind.PROTECT, "p3")},
    )
    result = resolve_night(state)
    assert result.deaths == []
    assert result.protection_results["p6"].success
    assert result.attack_target_id == "p3"


def test_unprotected_attack_kills(make_state):
    state = _night(
        make_state,
        faction_attacks={"p1": "p3"},
        night_actions={"p6": NightActionRecord(NightActionKind.PROTECT, "p4")},
    )
    result = resolve_night(state)
    assert result.death_ids == ["p3"]
    assert result.deaths[0].cause == DeathCause.ATTACK
    assert not result.protection_results["p6"].success


def test_resolver_does_not_touch_state(make_state):
    state = _night(make_state, faction_attacks={"p1": "p3"})
    resolve_night(state)
    assert state.is_alive("p3")
    assert state.deaths == []


def test_divination_uses_oracle_mapping(make_state):
    state = _night(make_state, night_actions={"p3": NightActionRecord(NightActionKind.DIVINE, "p1")})
    assert resolve_night(state).divination_results["p3"].result == OracleResult.WEREWOLF

    state = _night(
        make_state, [Pack.WHITE_WOLF], night_actions={"p3": NightActionRecord(NightActionKind.DIVINE, "p1")}
    )
    assert state.role("p1") == Role.WHITE_WOLF
    assert resolve_night(state).divination_results["p3"].result == OracleResult.HUMAN


def test_cat_retaliates_once(make_state):
    state = _night(make_state, [Pack.CAT], faction_attacks={"p1": "p7"})
    result = resolve_night(state)
    assert result.deaths[0] == NightDeath("p7", DeathCause.ATTACK)
    assert len(result.deaths) == 2
    retaliation = result.deaths[1]
    assert retaliation.cause == DeathCause.RETALIATION
    assert retaliation.source_id == "p7"
    assert retaliation.player_id != "p7"


def test_betrayer_follows_dead_fox(make_state):
    state = _night(make_state, [Pack.BETRAYER], faction_attacks={"p1": "p7"})
    result = resolve_night(state)
    assert [(d.player_id, d.cause) for d in result.deaths] == [("p7", DeathCause.ATTACK), ("p8", DeathCause.LINKED)]

    state = _night(make_state, [Pack.BETRAYER], faction_attacks={"p1": "p3"})
    assert resolve_night(state).death_ids == ["p3"]


def test_hunter_takes_exactly_one_victim(make_state):
    state = _night(make_state, [Pack.HUNTER], faction_attacks={"p1": "p7"})
    result = resolve_night(state)
    assert len(result.deaths) == 2
    assert result.deaths[1].cause == DeathCause.CHAIN
    assert result.chain_victims == [result.deaths[1].player_id]
    assert result.chain_victims[0] != "p7"


def test_cascade_picks_one_survivor():
    role_of = {"p1": Role.WEREWOLF, "p2": Role.VILLAGER, "p3": Role.HUNTER, "p4": Role.SEER, "p5": Role.VILLAGER}
    alive = ["p1", "p2", "p3", "p4", "p5"]
    extra = resolve_death_cascade(
        role_of, alive, [NightDeath("p3", DeathCause.EXECUTION)], seed=9, day_number=2, tag="execution"
    )
    assert len(extra) == 1
    assert extra[0].player_id in {"p1", "p2", "p4", "p5"}
    assert extra[0].source_id == "p3"

    again = resolve_death_cascade(
        role_of, alive, [NightDeath("p3", DeathCause.EXECUTION)], seed=9, day_number=2, tag="execution"
    )
    assert again == extra


def test_medium_learns_previous_execution(make_state):
    state = _night(make_state, alive=[f"p{i}" for i in range(2, 12)])
    result = resolve_night(state, previous_executed_id="p1")
    assert result.medium_results["p4"].result == OracleResult.WEREWOLF

    state = _night(make_state, alive=[f"p{i}" for i in range(2, 12)], faction_attacks={"p2": "p4"})
    assert resolve_night(state, previous_executed_id="p1").medium_results == {}


def test_no_attack_no_deaths(make_state):
    result = resolve_night(_night(make_state))
    assert result.deaths == []
    assert result.attack_target_id is None


def test_leader_attack_takes_priority(make_state):
    state = _night(make_state, faction_attacks={"p2": "p3", "p1": "p4"}, night_leader_id="p2")
    assert select_attack_target(state) == "p3"
    state.night_leader_id = None
    assert select_attack_target(state) == "p4"


def test_collect_inputs_splits_by_kind(make_state):
    state = _night(
        make_state,
        night_actions={
            "p3": NightActionRecord(NightActionKind.DIVINE, "p2"),
            "p6": NightActionRecord(NightActionKind.PROTECT, "p9"),
        },
    )
    inputs = collect_night_inputs(state)
    assert inputs == NightInputs(divinations={"p3": "p2"}, protections={"p6": "p9"}, attack_target_id=None)


def test_resolution_is_reproducible(make_state):
    first = resolve_night(_night(make_state, [Pack.CAT], faction_attacks={"p1": "p7"}))
    second = resolve_night(_night(make_state, [Pack.CAT], faction_attacks={"p1": "p7"}))
    assert first.deaths == second.deaths
