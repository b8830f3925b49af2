from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from court_queue import roster
from court_queue.database import Retry, create_tables, make_engine, make_session_factory
from court_queue.models import Playing, Waiting
from court_queue.schemas import CourtFields, Registration
from court_queue.transaction import Transaction


class FakeClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class FakeChannel:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def publish_text(self, topic: str, payload: str) -> None:
        self.sent.append((topic, payload))

    @property
    def topics(self) -> list[str]:
        return [t for t, _ in self.sent]


def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def db_engine():
    eng = make_engine("sqlite://")
    create_tables(eng, retry=Retry(attempts=1, sleep=no_sleep))
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def make_person(session_factory, clock):
    counter = itertools.count(1)

    def _make(knownas: str, status: str = "player") -> int:
        n = next(counter)
        registration = Registration(
            firstname="Member",
            lastname=f"Number{n}",
            knownas=knownas,
            email=f"{knownas.lower()}{n}@tennisclub.org",
            phone="01632 960000",
            password="password123",
        )
        with Transaction(session_factory, clock=clock) as session:
            person = roster.create_person(session, registration, status=status, clock=clock)
            return person.id

    return _make


@pytest.fixture
def make_court(session_factory):
    def _make(name: str = "A") -> int:
        with Transaction(session_factory) as session:
            return roster.create_court(session, CourtFields(name=name)).id

    return _make


@pytest.fixture
def snapshot(session_factory):
    """Current queue (person ids, earliest first) and seating ({court: {position: person}})."""

    def _snapshot() -> tuple[list[int], dict[int, dict[int, int]]]:
        with Transaction(session_factory, gated=False) as session:
            waiters = [w.person for w in session.scalars(select(Waiting).order_by(Waiting.start, Waiting.id))]
            seated: dict[int, dict[int, int]] = {}
            for p in session.scalars(select(Playing)):
                seated.setdefault(p.court, {})[p.position] = p.person
        return waiters, seated

    return _snapshot
