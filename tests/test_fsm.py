"""
Tests for the match state machine and its handlers.
"""

from collections import Counter

import pytest

from aiwolf.core.errors import ConstraintViolation, FSMError, IllegalTransition
from aiwolf.core.fsm import GameFSM, check_invariants, transition
from aiwolf.core.handlers import HandlerRegistry, TransitionResult
from aiwolf.core.packs import BASE_ROLES, Pack
from aiwolf.core.roles import NightActionKind, Role
from aiwolf.core.schemas import (
    CheckVictory,
    DeclareSuspicion,
    EventType,
    FactionAttack,
    LastWillComplete,
    NightAction,
    NotificationType,
    PhaseDeadlineElapsed,
    ResolveNight,
    SchemaValidationError,
    StartDay,
    StartGame,
    StartNight,
    StartVote,
    Visibility,
    Vote,
    VoteComplete,
    WolfChatMessage,
)
from aiwolf.core.state import DeathCause, MatchConfig, Phase, RevoteTiePolicy, create_game


def _types(notifications):
    return [n.type for n in notifications]


def _cast(fsm, votes):
    for voter, target in votes.items():
        fsm.run(Vote(voter_id=voter, target_id=target))


# -- setup --------------------------------------------------------------------


def test_start_game_runs_to_first_day(lobby_fsm):
    notifications = lobby_fsm.run(StartGame())

    state = lobby_fsm.state
    assert state.phase == Phase.DAY_FREE_TALK
    assert state.day_number == 1
    assert Counter(state.role_of.values()) == Counter(BASE_ROLES)
    assert _types(notifications).count(NotificationType.ROLE_ASSIGNED) == 11
    assert NotificationType.GAME_STARTED in _types(notifications)
    assert lobby_fsm.transitions == 3


def test_role_notifications_are_private_and_wolves_know_each_other(lobby_fsm):
    notifications = lobby_fsm.run(StartGame())
    role_of = lobby_fsm.state.role_of
    wolves = sorted(pid for pid, role in role_of.items() if role == Role.WEREWOLF)

    for notice in notifications:
        if notice.type != NotificationType.ROLE_ASSIGNED:
            continue
        assert notice.visibility == Visibility.PRIVATE
        assert notice.payload["role"] == role_of[notice.recipient_id].value
        if notice.recipient_id in wolves:
            assert notice.payload["allies"] == [pid for pid in wolves if pid != notice.recipient_id]
        else:
            assert notice.payload["allies"] == []


def test_same_seeds_same_assignment(players, seeds):
    first = GameFSM(create_game("a", players, seeds=seeds))
    second = GameFSM(create_game("b", players, seeds=seeds))
    first.run(StartGame())
    second.run(StartGame())
    assert first.state.role_of == second.state.role_of


def test_pack_fallback_is_reported_to_admins(lobby_fsm):
    lobby_fsm.state.pack_fallback = True
    lobby_fsm.state.pack_warnings = ["fell back"]
    notifications = lobby_fsm.run(StartGame())
    fallback = [n for n in notifications if n.type == NotificationType.PACK_FALLBACK]
    assert len(fallback) == 1
    assert fallback[0].visibility == Visibility.ADMIN_ONLY
    assert not fallback[0].is_for("p1", Role.SEER)


# -- rejection ----------------------------------------------------------------


def test_illegal_event_leaves_state_untouched(lobby_fsm):
    before = lobby_fsm.state.to_dict()
    with pytest.raises(IllegalTransition):
        lobby_fsm.dispatch(Vote(voter_id="p1", target_id="p2"))
    assert lobby_fsm.state.to_dict() == before
    assert lobby_fsm.transitions == 0


def test_malformed_payload_is_a_schema_error(lobby_fsm):
    with pytest.raises(SchemaValidationError):
        lobby_fsm.dispatch({"type": "VOTE", "voter_id": "p1"})
    with pytest.raises(SchemaValidationError):
        lobby_fsm.dispatch({"type": "NOT_AN_EVENT"})


def test_dict_payloads_are_accepted(make_state):
    fsm = GameFSM(make_state(phase=Phase.DAY_VOTE))
    fsm.dispatch({"type": "VOTE", "voter_id": "p1", "target_id": "p3"})
    assert fsm.state.votes == {"p1": "p3"}


def test_rejected_vote_does_not_partially_apply(make_state):
    fsm = GameFSM(make_state(phase=Phase.DAY_VOTE))
    fsm.dispatch(Vote(voter_id="p1", target_id="p3"))
    with pytest.raises(ConstraintViolation):
        fsm.dispatch(Vote(voter_id="p2", target_id="p2"))
    with pytest.raises(ConstraintViolation):
        fsm.dispatch(Vote(voter_id="p2", target_id="nobody"))
    assert fsm.state.votes == {"p1": "p3"}


def test_game_over_accepts_nothing(make_state):
    fsm = GameFSM(make_state(phase=Phase.CHECK_END, alive=["p1", "p2", "p3"], next_after_check=Phase.NIGHT_WOLF_CHAT))
    notifications = fsm.run(CheckVictory())
    assert fsm.phase == Phase.GAME_OVER
    game_over = [n for n in notifications if n.type == NotificationType.GAME_OVER][0]
    assert game_over.payload["winner"] == "WEREWOLF"
    assert game_over.payload["roles"]["p3"] == "SEER"
    assert fsm.state.winner is not None

    for event in (StartGame(), StartDay(), CheckVictory()):
        assert not fsm.can_accept(event.type)
        with pytest.raises(IllegalTransition):
            fsm.dispatch(event)


# -- day ----------------------------------------------------------------------


def test_declare_suspicion_is_remembered(make_state):
    fsm = GameFSM(make_state())
    notifications = fsm.run(DeclareSuspicion(player_id="p3", suspect_id="p1"))
    assert fsm.state.player("p3").last_suspect_id == "p1"
    assert _types(notifications) == [NotificationType.SUSPICION_DECLARED]
    with pytest.raises(ConstraintViolation):
        fsm.dispatch(DeclareSuspicion(player_id="p3", suspect_id="p3"))


def test_majority_vote_executes_and_moves_to_night(make_state):
    fsm = GameFSM(make_state(phase=Phase.DAY_VOTE))
    votes = {pid: "p1" for pid in fsm.state.seating if pid != "p1"}
    votes["p1"] = "p3"
    _cast(fsm, votes)

    notifications = fsm.run(VoteComplete())
    assert fsm.phase == Phase.LAST_WILL
    assert not fsm.state.is_alive("p1")
    assert fsm.state.last_executed_id == "p1"
    died = [n for n in notifications if n.type == NotificationType.PLAYER_DIED]
    assert died[0].payload["cause"] == DeathCause.EXECUTION.value

    notifications = fsm.run(LastWillComplete())
    assert fsm.phase == Phase.NIGHT_WOLF_CHAT
    assert fsm.state.night_leader_id == "p2"
    phase_changes = [n for n in notifications if n.type == NotificationType.PHASE_CHANGE]
    # one wolf left, so the wolf chat is skipped
    assert phase_changes[-1].payload["duration"] == 0.0


def test_tied_revote_means_no_execution(make_state):
    alive = [f"p{i}" for i in range(1, 11)]
    fsm = GameFSM(make_state(phase=Phase.DAY_VOTE, alive=alive))
    votes = {"p1": "p9", "p2": "p9", "p3": "p9", "p4": "p9", "p10": "p9"}
    votes.update({"p5": "p10", "p6": "p10", "p7": "p10", "p8": "p10", "p9": "p10"})

    _cast(fsm, votes)
    notifications = fsm.run(VoteComplete())
    assert fsm.phase == Phase.DAY_REVOTE_TALK
    assert fsm.state.tied_candidates == ["p9", "p10"]
    assert NotificationType.REVOTE_CALLED in _types(notifications)

    fsm.run(StartVote())
    assert fsm.phase == Phase.DAY_REVOTE
    with pytest.raises(ConstraintViolation):
        fsm.dispatch(Vote(voter_id="p1", target_id="p3"))
    _cast(fsm, votes)

    notifications = fsm.run(VoteComplete())
    assert NotificationType.NO_EXECUTION in _types(notifications)
    assert fsm.phase == Phase.NIGHT_WOLF_CHAT
    assert sorted(fsm.state.alive_ids) == sorted(alive)
    assert fsm.state.last_executed_id is None


def test_random_policy_executes_one_tied_candidate(make_state):
    config = MatchConfig(revote_tie_policy=RevoteTiePolicy.RANDOM)
    fsm = GameFSM(
        make_state(
            phase=Phase.DAY_REVOTE,
            alive=[f"p{i}" for i in range(1, 11)],
            config=config,
            tied_candidates=["p9", "p10"],
        )
    )
    votes = {"p1": "p9", "p2": "p9", "p3": "p9", "p4": "p9", "p10": "p9"}
    votes.update({"p5": "p10", "p6": "p10", "p7": "p10", "p8": "p10", "p9": "p10"})
    _cast(fsm, votes)

    fsm.run(VoteComplete())
    assert fsm.phase == Phase.LAST_WILL
    assert fsm.state.last_executed_id in {"p9", "p10"}


def test_executed_hunter_takes_someone_along(make_state):
    fsm = GameFSM(make_state([Pack.HUNTER], phase=Phase.DAY_VOTE))
    assert fsm.state.role("p7") == Role.HUNTER
    votes = {pid: "p7" for pid in fsm.state.seating if pid != "p7"}
    votes["p7"] = "p1"
    _cast(fsm, votes)

    fsm.run(VoteComplete())
    causes = [(d.player_id, d.cause) for d in fsm.state.deaths]
    assert causes[0] == ("p7", DeathCause.EXECUTION)
    assert len(causes) == 2
    assert causes[1][1] == DeathCause.CHAIN
    assert len(fsm.state.alive_ids) == 9


def test_deadline_forces_phase_end(make_state):
    fsm = GameFSM(make_state())
    fsm.run(PhaseDeadlineElapsed(phase=Phase.DAY_FREE_TALK))
    assert fsm.phase == Phase.DAY_VOTE

    with pytest.raises(IllegalTransition):
        fsm.dispatch(PhaseDeadlineElapsed(phase=Phase.DAY_FREE_TALK))

    fsm.run({"type": "PHASE_DEADLINE_ELAPSED", "phase": "DAY_VOTE"})
    assert fsm.phase in (Phase.LAST_WILL, Phase.DAY_REVOTE_TALK)


def test_untimed_phase_has_no_deadline(make_state):
    fsm = GameFSM(make_state(phase=Phase.CHECK_END, next_after_check=Phase.DAY_FREE_TALK))
    with pytest.raises(IllegalTransition):
        fsm.dispatch(PhaseDeadlineElapsed(phase=Phase.CHECK_END))


# -- check end ----------------------------------------------------------------


def test_check_end_continuations(make_state):
    fsm = GameFSM(make_state(phase=Phase.CHECK_END, next_after_check=Phase.DAY_FREE_TALK))
    with pytest.raises(IllegalTransition):
        fsm.dispatch(StartNight())
    fsm.run(StartDay())
    assert fsm.phase == Phase.DAY_FREE_TALK
    assert fsm.state.day_number == 2

    fsm = GameFSM(make_state(phase=Phase.CHECK_END, next_after_check=Phase.NIGHT_WOLF_CHAT))
    with pytest.raises(IllegalTransition):
        fsm.dispatch(StartDay())
    notifications = fsm.run(StartNight())
    assert fsm.phase == Phase.NIGHT_WOLF_CHAT
    leader = [n for n in notifications if n.type == NotificationType.NIGHT_LEADER_SELECTED][0]
    assert leader.payload["leader_id"] in {"p1", "p2"}
    assert leader.is_for("p1", Role.WEREWOLF)
    assert not leader.is_for("p3", Role.SEER)


# -- night --------------------------------------------------------------------


def test_wolf_chat_is_wolves_only(make_state):
    fsm = GameFSM(make_state(phase=Phase.NIGHT_WOLF_CHAT))
    with pytest.raises(ConstraintViolation):
        fsm.dispatch(WolfChatMessage(player_id="p3", content="hello"))
    notifications = fsm.run(WolfChatMessage(player_id="p1", content="take p3"))
    assert notifications[0].visibility == Visibility.ROLE_SPECIFIC
    assert fsm.phase == Phase.NIGHT_WOLF_CHAT


@pytest.mark.parametrize(
    "event",
    [
        NightAction(player_id="p3", kind=NightActionKind.PROTECT, target_id="p4"),
        NightAction(player_id="p3", kind=NightActionKind.DIVINE, target_id="p3"),
        NightAction(player_id="p7", kind=NightActionKind.DIVINE, target_id="p1"),
        FactionAttack(attacker_id="p3", target_id="p4"),
        FactionAttack(attacker_id="p1", target_id="p2"),
    ],
)
def test_night_submissions_are_checked(make_state, event):
    fsm = GameFSM(make_state(phase=Phase.NIGHT_ACTIONS))
    with pytest.raises(ConstraintViolation):
        fsm.dispatch(event)
    assert fsm.state.night_actions == {}
    assert fsm.state.faction_attacks == {}


def test_night_action_is_acknowledged_privately(make_state):
    fsm = GameFSM(make_state(phase=Phase.NIGHT_ACTIONS))
    result = fsm.dispatch(NightAction(player_id="p3", kind=NightActionKind.DIVINE, target_id="p1"))
    (notice,) = result.notifications
    assert notice.type == NotificationType.NIGHT_ACTION_RECORDED
    assert notice.visibility == Visibility.PRIVATE
    assert notice.recipient_id == "p3"
    assert notice.payload == {"kind": "DIVINE", "target_id": "p1"}
    assert fsm.phase == Phase.NIGHT_ACTIONS


def test_full_night_with_protection(make_state):
    fsm = GameFSM(make_state(phase=Phase.NIGHT_ACTIONS))
    fsm.run(NightAction(player_id="p3", kind=NightActionKind.DIVINE, target_id="p1"))
    fsm.run(NightAction(player_id="p6", kind=NightActionKind.PROTECT, target_id="p4"))
    fsm.run(FactionAttack(attacker_id="p1", target_id="p4"))

    notifications = fsm.run(ResolveNight())
    by_type = {n.type: n for n in notifications}
    assert by_type[NotificationType.DIVINATION_RESULT].recipient_id == "p3"
    assert by_type[NotificationType.DIVINATION_RESULT].payload["result"] == "WEREWOLF"
    assert by_type[NotificationType.PROTECTION_RESULT].payload["success"] is True
    assert by_type[NotificationType.NIGHT_RESULT].payload["deaths"] == []
    assert by_type[NotificationType.NIGHT_RESOLUTION].visibility == Visibility.ADMIN_ONLY
    assert fsm.phase == Phase.DAWN
    assert fsm.state.night_actions == {}

    fsm.run(PhaseDeadlineElapsed(phase=Phase.DAWN))
    assert fsm.phase == Phase.DAY_FREE_TALK
    assert fsm.state.day_number == 2


def test_attack_kill_is_public_without_cause(make_state):
    fsm = GameFSM(make_state(phase=Phase.NIGHT_ACTIONS))
    fsm.run(FactionAttack(attacker_id="p2", target_id="p9"))
    notifications = fsm.run(ResolveNight())
    died = [n for n in notifications if n.type == NotificationType.PLAYER_DIED]
    assert [n.payload["player_id"] for n in died] == ["p9"]
    assert "cause" not in died[0].payload
    assert not fsm.state.is_alive("p9")


# -- internals ----------------------------------------------------------------


def test_handler_leaving_the_table_is_an_fsm_error(make_state):
    def broken(state, event):
        state.phase = Phase.DAWN
        return TransitionResult(state)

    registry = HandlerRegistry()
    registry.register(Phase.DAY_FREE_TALK, EventType.START_VOTE, broken)
    fsm = GameFSM(make_state(), registry=registry)
    with pytest.raises(FSMError):
        fsm.dispatch(StartVote())
    assert fsm.phase == Phase.DAY_FREE_TALK


def test_missing_handler_is_illegal(make_state):
    with pytest.raises(IllegalTransition):
        transition(make_state(), StartVote(), registry=HandlerRegistry())


def test_registry_rejects_duplicates():
    registry = HandlerRegistry()
    registry.register(Phase.LOBBY, EventType.START_GAME, lambda s, e: TransitionResult(s))
    with pytest.raises(ValueError):
        registry.register(Phase.LOBBY, EventType.START_GAME, lambda s, e: TransitionResult(s))


def test_invariants_catch_leftover_scratch(make_state):
    state = make_state(votes={"p1": "p2"})
    with pytest.raises(FSMError):
        check_invariants(state)

    state = make_state()
    state.role_of["p7"] = Role.FOX
    with pytest.raises(FSMError):
        check_invariants(state)
