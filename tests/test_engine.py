import pytest

from court_queue import auditor, engine
from court_queue.errors import BadRequest, NotFound
from court_queue.transaction import Transaction


def occupants(positions):
    return [p.person_id for p in positions]


def test_fill_court_seats_longest_waiting_in_order(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    ids = [make_person(name) for name in ("ann", "bob", "cat", "dan", "eve")]

    with Transaction(session_factory, clock=clock) as session:
        positions = engine.fill_court(session, court)

    assert occupants(positions) == ids[:4]
    assert [p.display_name for p in positions] == ["ann", "bob", "cat", "dan"]
    waiters, seated = snapshot()
    assert waiters == [ids[4]]
    assert seated == {court: {0: ids[0], 1: ids[1], 2: ids[2], 3: ids[3]}}

    with Transaction(session_factory, gated=False) as session:
        assert auditor.check_consistency(session) == 0


def test_fill_court_stops_quietly_when_queue_runs_dry(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    ann = make_person("ann")
    bob = make_person("bob")

    with Transaction(session_factory, clock=clock) as session:
        positions = engine.fill_court(session, court)

    assert occupants(positions) == [ann, bob, None, None]
    assert positions[2].to_dict() == {"index": 2, "personid": None, "displayname": None}
    assert snapshot() == ([], {court: {0: ann, 1: bob}})


def test_fill_court_twice_is_a_no_op(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    for name in ("ann", "bob", "cat", "dan", "eve", "fay"):
        make_person(name)

    with Transaction(session_factory, clock=clock) as session:
        first = engine.fill_court(session, court)
    before = snapshot()

    with Transaction(session_factory, clock=clock) as session:
        second = engine.fill_court(session, court)

    assert second == first
    assert snapshot() == before


def test_fill_court_only_fills_empty_positions(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    ann = make_person("ann")
    bob = make_person("bob")

    with Transaction(session_factory, clock=clock) as session:
        engine.make_player_play(session, bob, court, 2)
        positions = engine.fill_court(session, court)

    assert occupants(positions) == [ann, None, bob, None]


def test_fill_unknown_court_is_not_found(session_factory, clock):
    with pytest.raises(NotFound):
        with Transaction(session_factory, clock=clock) as session:
            engine.fill_court(session, 99)


def test_clear_then_fill_round_trip(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    ids = [make_person(name) for name in ("ann", "bob", "cat", "dan", "eve")]

    with Transaction(session_factory, clock=clock) as session:
        engine.fill_court(session, court)
    with Transaction(session_factory, clock=clock) as session:
        vacated = engine.clear_court(session, court)

    assert vacated == ids[:4]
    # Vacated players join behind whoever was already waiting, in position order.
    assert snapshot() == ([ids[4], *ids[:4]], {})

    with Transaction(session_factory, clock=clock) as session:
        positions = engine.fill_court(session, court)
    assert occupants(positions) == [ids[4], *ids[:3]]
    assert snapshot()[0] == [ids[3]]


def test_clear_court_drops_non_players(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    ann = make_person("ann")
    sue = make_person("sue", status="inactive")

    # An inactive person left on a court is out of step; put them there directly.
    with Transaction(session_factory, gated=False, clock=clock) as session:
        engine.add_player(session, sue, court, 1)
        engine.make_player_play(session, ann, court, 0)

    with Transaction(session_factory, clock=clock) as session:
        assert engine.clear_court(session, court) == [ann, sue]

    assert snapshot() == ([ann], {})


def test_make_player_wait_moves_to_back_of_queue(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    ann = make_person("ann")
    bob = make_person("bob")
    cat = make_person("cat")

    with Transaction(session_factory, clock=clock) as session:
        engine.make_player_play(session, ann, court, 0)
    with Transaction(session_factory, clock=clock) as session:
        engine.make_player_wait(session, ann)

    assert snapshot() == ([bob, cat, ann], {})


def test_make_player_play_moves_a_seated_player(session_factory, clock, make_person, make_court, snapshot):
    a = make_court("A")
    b = make_court("B")
    ann = make_person("ann")

    with Transaction(session_factory, clock=clock) as session:
        engine.make_player_play(session, ann, a, 0)
    with Transaction(session_factory, clock=clock) as session:
        engine.make_player_play(session, ann, b, 3)

    assert snapshot() == ([], {b: {3: ann}})


@pytest.mark.parametrize("position", [-1, 4])
def test_make_player_play_rejects_out_of_range_position(session_factory, clock, make_person, make_court, snapshot, position):
    court = make_court("A")
    ann = make_person("ann")
    before = snapshot()

    with pytest.raises(BadRequest):
        with Transaction(session_factory, clock=clock) as session:
            engine.make_player_play(session, ann, court, position)

    assert snapshot() == before


def test_make_player_play_unknown_court_or_person(session_factory, clock, make_person, make_court):
    court = make_court("A")
    ann = make_person("ann")

    with pytest.raises(NotFound):
        with Transaction(session_factory, clock=clock) as session:
            engine.make_player_play(session, ann, court + 1, 0)
    with pytest.raises(NotFound):
        with Transaction(session_factory, clock=clock) as session:
            engine.make_player_play(session, ann + 100, court, 0)


def test_make_player_play_refuses_non_player(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    make_person("ann")
    sue = make_person("sue", status="inactive")
    before = snapshot()

    with pytest.raises(BadRequest, match="not a player"):
        with Transaction(session_factory, clock=clock) as session:
            engine.make_player_play(session, sue, court, 0)

    assert snapshot() == before


def test_make_player_wait_refuses_non_player(session_factory, clock, make_person):
    sue = make_person("sue", status="suspended")
    with pytest.raises(BadRequest):
        with Transaction(session_factory, clock=clock) as session:
            engine.make_player_wait(session, sue)


def test_update_game_swaps_in_a_waiter(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    ids = [make_person(name) for name in ("ann", "bob", "cat", "dan", "eve")]
    with Transaction(session_factory, clock=clock) as session:
        engine.fill_court(session, court)

    edit = {1: engine.GamePosition(value=ids[4], original=ids[1])}
    with Transaction(session_factory, clock=clock) as session:
        positions = engine.update_game(session, court, edit, clock=clock)

    assert occupants(positions) == [ids[0], ids[4], ids[2], ids[3]]
    assert snapshot()[0] == [ids[1]]


def test_update_game_can_empty_a_position(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    ann = make_person("ann")
    with Transaction(session_factory, clock=clock) as session:
        engine.fill_court(session, court)

    with Transaction(session_factory, clock=clock) as session:
        positions = engine.update_game(session, court, {0: engine.GamePosition(value=None, original=ann)}, clock=clock)

    assert occupants(positions) == [None, None, None, None]
    assert snapshot() == ([ann], {})


def test_update_game_refuses_stale_original(session_factory, clock, make_person, make_court, snapshot):
    court = make_court("A")
    ann = make_person("ann")
    bob = make_person("bob")
    with Transaction(session_factory, clock=clock) as session:
        engine.make_player_play(session, ann, court, 0)
    before = snapshot()

    with pytest.raises(BadRequest, match="has changed"):
        with Transaction(session_factory, clock=clock) as session:
            engine.update_game(session, court, {0: engine.GamePosition(value=bob, original=None)}, clock=clock)

    assert snapshot() == before


def test_update_game_refuses_player_who_is_not_waiting(session_factory, clock, make_person, make_court, snapshot):
    a = make_court("A")
    b = make_court("B")
    ann = make_person("ann")
    bob = make_person("bob")
    with Transaction(session_factory, clock=clock) as session:
        engine.make_player_play(session, ann, a, 0)
        engine.make_player_play(session, bob, b, 0)
    before = snapshot()

    with pytest.raises(BadRequest, match="not waiting"):
        with Transaction(session_factory, clock=clock) as session:
            engine.update_game(session, a, {1: engine.GamePosition(value=bob, original=None)}, clock=clock)

    assert snapshot() == before


def test_update_game_rejects_bad_index(session_factory, clock, make_court):
    court = make_court("A")
    with pytest.raises(BadRequest):
        with Transaction(session_factory, clock=clock) as session:
            engine.update_game(session, court, {4: engine.GamePosition(value=None, original=None)}, clock=clock)
