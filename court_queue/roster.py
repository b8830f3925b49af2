from __future__ import annotations

# Roster: people and courts.
#
# Person lifecycle (register -> suspended, status transitions, profile edits,
# deletion) and court administration. Like the engine, nothing here commits;
# callers run these inside a Transaction.

import logging
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from . import engine
from .errors import BadRequest
from .models import Court, Person, Playing, Status, Waiting
from .schemas import CourtFields, PersonUpdate, Registration

logger = logging.getLogger(__name__)

# Becoming a player re-enters the queue; suspended people must be reinstated first.
CAN_BECOME_PLAYER = {Status.PLAYER.value, Status.INACTIVE.value}

PEOPLE_FILTERS: dict[str, str | None] = {
    "all": None,
    "players": Status.PLAYER.value,
    "inactive": Status.INACTIVE.value,
    "suspended": Status.SUSPENDED.value,
}


# -------------------- people --------------------


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def _flush_person(session: Session, person: Person) -> None:
    try:
        session.flush()
    except IntegrityError as e:
        raise BadRequest(f"A person with email [{person.email}] is already registered") from e


def register(session: Session, registration: Registration) -> Person:
    """Create a new, suspended person. An administrator activates them later."""
    return create_person(session, registration, status=Status.SUSPENDED.value)


def create_person(
    session: Session,
    registration: Registration,
    *,
    status: str = Status.SUSPENDED.value,
    clock: engine.Clock = engine.utcnow,
) -> Person:
    person = Person(
        firstname=registration.firstname,
        lastname=registration.lastname,
        knownas=registration.knownas,
        email=str(registration.email),
        phone=registration.phone,
        hash=hash_password(registration.password),
        status=status,
    )
    session.add(person)
    _flush_person(session, person)
    if status == Status.PLAYER.value:
        engine.add_waiter(session, person.id, clock=clock)
    logger.info("created person [%d: %s] status=%s", person.id, person.knownas, status)
    return person


def list_people(session: Session, filter_name: str = "all") -> list[Person]:
    if filter_name not in PEOPLE_FILTERS:
        raise BadRequest(f"Unknown people filter: {filter_name}")
    query = select(Person).order_by(Person.knownas, Person.id)
    status = PEOPLE_FILTERS[filter_name]
    if status is not None:
        query = query.where(Person.status == status)
    return list(session.scalars(query))


def find_person_by_email(session: Session, email: str) -> Person | None:
    return session.scalars(select(Person).where(Person.email == email)).first()


def set_status(session: Session, person_id: int, status: str, *, clock: engine.Clock = engine.utcnow) -> Person:
    """Move a person to `status`, keeping their queue/court rows in step."""
    if status not in {s.value for s in Status}:
        raise BadRequest(f"Unknown status: {status}")
    person = engine.load_person(session, person_id)
    if person.status == status:
        return person

    if status == Status.PLAYER.value:
        if person.status not in CAN_BECOME_PLAYER:
            raise BadRequest(f"Cannot change person [{person_id}] from {person.status} to {status} state")
        engine.remove_player(session, person_id)
        engine.remove_waiter(session, person_id)
        person.status = status
        session.flush()
        engine.add_waiter(session, person_id, clock=clock)
    else:
        engine.remove_player(session, person_id)
        engine.remove_waiter(session, person_id)
        person.status = status
        session.flush()

    logger.info("person [%d: %s] is now %s", person_id, person.knownas, status)
    return person


def make_person_player(session: Session, person_id: int, *, clock: engine.Clock = engine.utcnow) -> Person:
    return set_status(session, person_id, Status.PLAYER.value, clock=clock)


def make_person_inactive(session: Session, person_id: int) -> Person:
    return set_status(session, person_id, Status.INACTIVE.value)


def update_person(
    session: Session,
    person_id: int,
    update: PersonUpdate,
    *,
    clock: engine.Clock = engine.utcnow,
) -> Person:
    person = engine.load_person(session, person_id)
    fields = update.model_dump(exclude_unset=True)

    for name in ("firstname", "lastname", "knownas", "phone"):
        if fields.get(name) is not None:
            setattr(person, name, fields[name])
    if fields.get("email") is not None:
        person.email = str(fields["email"])
    if fields.get("password") is not None:
        person.hash = hash_password(fields["password"])
    _flush_person(session, person)

    if fields.get("status") is not None:
        set_status(session, person_id, fields["status"], clock=clock)
    return person


def delete_person(session: Session, person_id: int) -> None:
    """Remove a person together with their queue and court rows."""
    person = engine.load_person(session, person_id)
    engine.remove_player(session, person_id)
    engine.remove_waiter(session, person_id)
    session.delete(person)
    session.flush()
    logger.info("deleted person [%d]", person_id)


# -------------------- courts --------------------


def create_court(session: Session, fields: CourtFields) -> Court:
    court = Court(name=fields.name)
    session.add(court)
    session.flush()
    logger.info("created court [%d: %s]", court.id, court.name)
    return court


def list_courts(session: Session) -> list[Court]:
    return list(session.scalars(select(Court).order_by(Court.name, Court.id)))


def update_court(session: Session, court_id: int, fields: CourtFields) -> Court:
    court = engine.load_court(session, court_id)
    court.name = fields.name
    session.flush()
    return court


def delete_court(session: Session, court_id: int, *, clock: engine.Clock = engine.utcnow) -> None:
    """Delete a court; anyone playing on it goes back to the queue."""
    court = engine.load_court(session, court_id)
    for player in engine.players_for_court(session, court_id):
        engine.make_player_wait(session, player.person, clock=clock)
    session.execute(delete(Playing).where(Playing.court == court_id))
    session.delete(court)
    session.flush()
    logger.info("deleted court [%d]", court_id)


# -------------------- maintenance --------------------


def delete_all_records(session: Session) -> None:
    """Empty the courts and the queue and remove everyone except administrators."""
    session.execute(delete(Playing))
    session.execute(delete(Waiting))
    session.execute(delete(Court))
    session.execute(delete(Person).where(Person.status != Status.ADMIN.value))


SAMPLE_PEOPLE: list[tuple[dict[str, str], str]] = [
    ({"firstname": "James", "lastname": "Bond", "knownas": "007", "email": "007@mi6.gov.uk", "phone": "01632 960573", "password": "TopSecret123"}, Status.PLAYER.value),
    ({"firstname": "Alice", "lastname": "Frombe", "knownas": "ali", "email": "ali@mikymouse.com", "phone": "01632 960372", "password": "ali1234567"}, Status.PLAYER.value),
    ({"firstname": "Tom", "lastname": "Smith", "knownas": "tom", "email": "tom@hotmail.com", "phone": "01632 960512", "password": "tom12378909876"}, Status.PLAYER.value),
    ({"firstname": "Sandra", "lastname": "Smythe", "knownas": "sandra", "email": "sandra@hotmail.com", "phone": "01632 960966", "password": "sandra12334567"}, Status.INACTIVE.value),
    ({"firstname": "George", "lastname": "Washington", "knownas": "george", "email": "george@hotmail.com", "phone": "01632 960278", "password": "george789"}, Status.PLAYER.value),
    ({"firstname": "Margret", "lastname": "Tiffington", "knownas": "maggie", "email": "marg@hotmail.com", "phone": "01632 960165", "password": "magie876"}, Status.PLAYER.value),
    ({"firstname": "Elizabeth", "lastname": "Tudor", "knownas": "liz", "email": "liz@buck.palace.com", "phone": "01632 960252", "password": "liz1756453423"}, Status.PLAYER.value),
    ({"firstname": "Cormac", "lastname": "Dwight", "knownas": "cor", "email": "adela.kunze@schmitt.com", "phone": "01632 960026", "password": "tom123frgthyj"}, Status.SUSPENDED.value),
    ({"firstname": "Victoria", "lastname": "Hempworth", "knownas": "vickie", "email": "vickie@waitrose.com", "phone": "0195 76863241", "password": "vickie846"}, Status.PLAYER.value),
]

SAMPLE_COURTS = ["A", "B"]


def populate(
    session: Session,
    *,
    people: Iterable[tuple[dict[str, str], str]] = SAMPLE_PEOPLE,
    courts: Iterable[str] = SAMPLE_COURTS,
    clock: engine.Clock = engine.utcnow,
) -> None:
    """Add a standard set of people and courts; players join the queue in list order."""
    for data, status in people:
        create_person(session, Registration(**data), status=status, clock=clock)
    for name in courts:
        create_court(session, CourtFields(name=name))
