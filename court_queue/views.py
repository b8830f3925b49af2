"""Canonical read views.

Each view function reads the current state and returns a list of
`(logical topic, JSON-ready object)` entries. They back both the `get*`
request commands and the change publisher, so a subscriber and a requester
always see the same shape.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from . import engine, roster
from .models import Court

Entry = tuple[str, Any]
View = Callable[[Session], list[Entry]]


def court_detail(session: Session, court: Court) -> dict[str, Any]:
    seated = {p.position: p.person for p in engine.players_for_court(session, court.id)}
    return {
        "id": court.id,
        "name": court.name,
        "positions": [p.to_dict() for p in engine.court_positions(session, seated)],
    }


def epoch_seconds(when: datetime) -> int:
    # sqlite hands back naive datetimes; they were written as UTC.
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return int(when.timestamp())


def waiter_detail(session: Session) -> list[dict[str, Any]]:
    out = []
    for waiter in engine.list_waiters(session):
        person = engine.load_person(session, waiter.person)
        out.append({"personID": person.id, "knownas": person.knownas, "start": epoch_seconds(waiter.start)})
    return out


def courts_view(session: Session) -> list[Entry]:
    courts = [court_detail(session, c) for c in roster.list_courts(session)]
    entries: list[Entry] = [("getCourts", courts)]
    entries.extend((f"getCourt/{c['id']}", c) for c in courts)
    return entries


def people_view(session: Session) -> list[Entry]:
    entries: list[Entry] = []
    for filter_name in roster.PEOPLE_FILTERS:
        people = roster.list_people(session, filter_name)
        limited = [p.to_limited() for p in people]
        if filter_name == "all":
            entries.extend((f"getPerson/{p['id']}", p) for p in limited)
        entries.append((f"getPeople/{filter_name}", limited))
    return entries


def waiters_view(session: Session) -> list[Entry]:
    return [("getWaiters", waiter_detail(session))]


DEFAULT_VIEWS: tuple[View, ...] = (courts_view, people_view, waiters_view)
