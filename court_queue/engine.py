from __future__ import annotations

# Queue/assignment engine.
#
# Moves players between the FIFO waiting queue and numbered court positions.
# Every function here works on a caller-supplied Session and never commits:
# the transactional wrapper decides whether the result is kept.

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .errors import BadRequest, NotFound
from .models import NUMBER_OF_COURT_POSITIONS, Court, Person, Playing, Status, Waiting

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Position:
    """Occupancy of one court position; `person_id` is None when empty."""

    index: int
    person_id: int | None = None
    display_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "personid": self.person_id, "displayname": self.display_name}


@dataclass(frozen=True)
class GamePosition:
    """One position in an update_game request.

    `original` is the occupant the caller last saw, `value` the occupant it wants.
    """

    value: int | None
    original: int | None


# -------------------- lookups --------------------


def load_person(session: Session, person_id: int) -> Person:
    person = session.get(Person, person_id)
    if person is None:
        raise NotFound(f"Person [{person_id}] not found")
    return person


def load_court(session: Session, court_id: int) -> Court:
    court = session.get(Court, court_id)
    if court is None:
        raise NotFound(f"Court [{court_id}] not found")
    return court


def load_player(session: Session, person_id: int) -> Person:
    person = load_person(session, person_id)
    if person.status != Status.PLAYER.value:
        raise BadRequest(f"Person [{person_id}] is not a player: state: {person.status}")
    return person


def list_waiters(session: Session) -> list[Waiting]:
    """The whole queue, earliest first."""
    return list(session.scalars(select(Waiting).order_by(Waiting.start, Waiting.id)))


def first_waiter(session: Session) -> Waiting | None:
    return session.scalars(select(Waiting).order_by(Waiting.start, Waiting.id).limit(1)).first()


def waiters_for_person(session: Session, person_id: int) -> list[Waiting]:
    return list(session.scalars(select(Waiting).where(Waiting.person == person_id)))


def players_for_person(session: Session, person_id: int) -> list[Playing]:
    return list(session.scalars(select(Playing).where(Playing.person == person_id)))


def players_for_court(session: Session, court_id: int) -> list[Playing]:
    return list(session.scalars(select(Playing).where(Playing.court == court_id).order_by(Playing.position)))


# -------------------- primitive row changes --------------------


def add_waiter(session: Session, person_id: int, *, clock: Clock = utcnow) -> Waiting:
    waiter = Waiting(person=person_id, start=clock())
    session.add(waiter)
    session.flush()
    return waiter


def remove_waiter(session: Session, person_id: int) -> int:
    result = session.execute(delete(Waiting).where(Waiting.person == person_id))
    return result.rowcount or 0


def add_player(session: Session, person_id: int, court_id: int, position: int) -> Playing:
    player = Playing(person=person_id, court=court_id, position=position)
    session.add(player)
    session.flush()
    return player


def remove_player(session: Session, person_id: int) -> int:
    result = session.execute(delete(Playing).where(Playing.person == person_id))
    return result.rowcount or 0


# -------------------- allocation --------------------


def fill_court(session: Session, court_id: int) -> list[Position]:
    """Seat the longest-waiting players in every free position of a court.

    Stops quietly when the queue runs dry; occupied positions are left alone.
    Returns the occupancy of all positions, filled or not.
    """
    load_court(session, court_id)
    seated = {p.position: p.person for p in players_for_court(session, court_id)}

    for index in range(NUMBER_OF_COURT_POSITIONS):
        if index in seated:
            continue
        waiter = first_waiter(session)
        if waiter is None:
            logger.info("court [%d]: no more waiters, %d position(s) left empty", court_id, NUMBER_OF_COURT_POSITIONS - len(seated))
            break
        person_id = waiter.person
        remove_waiter(session, person_id)
        add_player(session, person_id, court_id, index)
        seated[index] = person_id
        logger.debug("court [%d] position [%d] <- person [%d]", court_id, index, person_id)

    return court_positions(session, seated)


def court_positions(session: Session, seated: dict[int, int]) -> list[Position]:
    positions = []
    for index in range(NUMBER_OF_COURT_POSITIONS):
        person_id = seated.get(index)
        if person_id is None:
            positions.append(Position(index=index))
            continue
        person = load_person(session, person_id)
        positions.append(Position(index=index, person_id=person_id, display_name=person.knownas))
    return positions


def clear_court(session: Session, court_id: int, *, clock: Clock = utcnow) -> list[int]:
    """Vacate every position; players rejoin the back of the queue.

    Returns the ids of the people who were vacated.
    """
    load_court(session, court_id)
    vacated = []
    for player in players_for_court(session, court_id):
        person_id = player.person
        remove_player(session, person_id)
        vacated.append(person_id)

        person = load_person(session, person_id)
        if person.status == Status.PLAYER.value:
            add_waiter(session, person_id, clock=clock)
        else:
            logger.info("court [%d]: person [%d] is %s, not re-queued", court_id, person_id, person.status)
    return vacated


def make_player_wait(session: Session, person_id: int, *, clock: Clock = utcnow) -> None:
    load_player(session, person_id)
    remove_player(session, person_id)
    remove_waiter(session, person_id)
    add_waiter(session, person_id, clock=clock)


def make_player_play(session: Session, person_id: int, court_id: int, position: int) -> None:
    load_player(session, person_id)
    load_court(session, court_id)
    if position < 0 or position >= NUMBER_OF_COURT_POSITIONS:
        raise BadRequest(f"Unexpected position: {position}")

    remove_player(session, person_id)
    remove_waiter(session, person_id)
    add_player(session, person_id, court_id, position)


def update_game(
    session: Session,
    court_id: int,
    positions: dict[int, GamePosition],
    *,
    clock: Clock = utcnow,
) -> list[Position]:
    """Apply an edit of several positions on one court.

    Every position's `original` must still match what is seated, otherwise
    someone else changed the court first and the whole edit is refused.
    """
    load_court(session, court_id)
    if len(positions) > NUMBER_OF_COURT_POSITIONS:
        raise BadRequest(f"Unexpected number of game positions: court: {court_id}, #positions: {len(positions)}")
    for index in positions:
        if index < 0 or index >= NUMBER_OF_COURT_POSITIONS:
            raise BadRequest(f"Unexpected position: {index}")

    seated = {p.position: p.person for p in players_for_court(session, court_id)}
    changed = {}
    for index, position in sorted(positions.items()):
        current = seated.get(index)
        if current != position.original:
            raise BadRequest(f"the player at position [{index}] has changed. [{position.original}] --> [{current}]")
        if current != position.value:
            changed[index] = position

    for index in changed:
        current = seated.get(index)
        if current is not None:
            make_player_wait(session, current, clock=clock)
            del seated[index]

    waiting = {w.person for w in list_waiters(session)}
    for index, position in changed.items():
        if position.value is None:
            continue
        if position.value not in waiting:
            raise BadRequest(f"cannot make player [{position.value}] play as the player is not waiting")
        make_player_play(session, position.value, court_id, index)
        waiting.discard(position.value)
        seated[index] = position.value

    return court_positions(session, seated)
