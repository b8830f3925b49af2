import pytest

from court_queue import auditor, engine
from court_queue.auditor import Repair
from court_queue.transaction import Transaction


@pytest.mark.parametrize(
    "waiters, players, violations, repair",
    [
        (0, 0, 1, Repair.ADD_WAITER),
        (0, 1, 0, Repair.NONE),
        (0, 2, 1, Repair.REPLACE_PLAYERS_WITH_WAITER),
        (1, 0, 0, Repair.NONE),
        (1, 1, 0, Repair.NONE),
        (1, 3, 1, Repair.REMOVE_PLAYERS),
        (2, 0, 1, Repair.RESET_TO_ONE_WAITER),
        (2, 2, 1, Repair.RESET_TO_ONE_WAITER),
    ],
)
def test_assess_player(waiters, players, violations, repair):
    verdict = auditor.assess("player", waiters, players)
    assert verdict.violations == violations
    assert verdict.repair is repair


@pytest.mark.parametrize("status", ["admin", "inactive", "suspended"])
def test_assess_non_player(status):
    assert auditor.assess(status, 0, 0).consistent
    assert auditor.assess(status, 1, 0).repair is Repair.REMOVE_WAITERS
    assert auditor.assess(status, 0, 1).repair is Repair.REMOVE_PLAYERS

    both = auditor.assess(status, 1, 1)
    assert both.violations == 2
    assert both.repair is Repair.REMOVE_WAITERS_AND_PLAYERS


def test_report_only_never_writes(session_factory, clock, make_person, snapshot):
    ann = make_person("ann")
    with Transaction(session_factory, gated=False) as session:
        engine.remove_waiter(session, ann)

    with Transaction(session_factory, gated=False, clock=clock) as session:
        assert auditor.check_consistency(session) == 1

    assert snapshot() == ([], {})


def test_fix_repairs_and_reports_pre_repair_count(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    ann = make_person("ann")
    sue = make_person("sue", status="inactive")
    with Transaction(session_factory, gated=False, clock=clock) as session:
        engine.remove_waiter(session, ann)
        engine.add_waiter(session, sue, clock=clock)
        engine.add_player(session, sue, court, 0)

    with Transaction(session_factory, gated=False, clock=clock) as session:
        assert auditor.check_consistency(session, fix=True, clock=clock) == 3

    assert snapshot() == ([ann], {})
    with Transaction(session_factory, gated=False, clock=clock) as session:
        assert auditor.check_consistency(session, fix=True, clock=clock) == 0


def test_player_without_rows_rejoins_the_back_of_the_queue(session_factory, clock, make_person, snapshot):
    ann = make_person("ann")
    bob = make_person("bob")
    with Transaction(session_factory, gated=False) as session:
        engine.remove_waiter(session, ann)

    with Transaction(session_factory, gated=False, clock=clock) as session:
        person = engine.load_person(session, ann)
        assert auditor.check_person(session, person, fix=True, clock=clock) == 1

    assert snapshot()[0] == [bob, ann]


def test_violations_are_logged(session_factory, make_person, caplog):
    ann = make_person("ann")
    with Transaction(session_factory, gated=False) as session:
        engine.remove_waiter(session, ann)

    with caplog.at_level("WARNING", logger="court_queue.auditor"):
        with Transaction(session_factory, gated=False) as session:
            auditor.check_consistency(session)

    assert "ann" in caplog.text
    assert f"[{ann}: ann]" in caplog.text


def test_suspended_person_left_in_the_queue(session_factory, clock, make_person, snapshot):
    sam = make_person("sam", status="suspended")
    with Transaction(session_factory, gated=False, clock=clock) as session:
        engine.add_waiter(session, sam, clock=clock)

    with Transaction(session_factory, gated=False, clock=clock) as session:
        assert auditor.check_consistency(session, clock=clock) == 1
    assert snapshot() == ([sam], {})

    with Transaction(session_factory, gated=False, clock=clock) as session:
        assert auditor.check_consistency(session, fix=True, clock=clock) == 1
    with Transaction(session_factory, gated=False, clock=clock) as session:
        assert auditor.check_consistency(session, clock=clock) == 0
    assert snapshot() == ([], {})
