"""Consistency auditor.

Compares every person's status against their rows in the waiting queue and on
the courts. A player must have exactly one of {waiting row, playing row};
anyone else must have neither.

`check_consistency(session, fix=False)` only counts violations and never writes.
With `fix=True` each violation is repaired in the same session and the count
found before repair is still returned.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import engine
from .models import Person, Status

logger = logging.getLogger(__name__)


class Repair(enum.Enum):
    NONE = "none"
    ADD_WAITER = "add waiter"
    REPLACE_PLAYERS_WITH_WAITER = "remove players, add waiter"
    REMOVE_PLAYERS = "remove players"
    RESET_TO_ONE_WAITER = "remove waiters and players, add waiter"
    REMOVE_WAITERS = "remove waiters"
    REMOVE_WAITERS_AND_PLAYERS = "remove waiters and players"


@dataclass(frozen=True)
class Verdict:
    violations: int
    repair: Repair
    reason: str = ""

    @property
    def consistent(self) -> bool:
        return self.violations == 0


CONSISTENT = Verdict(0, Repair.NONE)


def assess(status: str, waiters: int, players: int) -> Verdict:
    """Classify one person's row counts."""
    if status == Status.PLAYER.value:
        if waiters == 0:
            if players == 0:
                return Verdict(1, Repair.ADD_WAITER, "is a player but has no waiter or player records")
            if players > 1:
                return Verdict(1, Repair.REPLACE_PLAYERS_WITH_WAITER, f"is a player and has {players} player records")
            return CONSISTENT
        if waiters > 1:
            return Verdict(1, Repair.RESET_TO_ONE_WAITER, f"is a player but has {waiters} waiter records")
        if players > 1:
            return Verdict(
                1, Repair.REMOVE_PLAYERS, f"is a player but has 1 waiter record and {players} player records"
            )
        return CONSISTENT

    count = int(waiters > 0) + int(players > 0)
    if count == 0:
        return CONSISTENT
    if waiters and players:
        repair = Repair.REMOVE_WAITERS_AND_PLAYERS
    elif waiters:
        repair = Repair.REMOVE_WAITERS
    else:
        repair = Repair.REMOVE_PLAYERS
    return Verdict(count, repair, f"is {status} but has {waiters} waiter and {players} player records")


def check_person(session: Session, person: Person, *, fix: bool = False, clock: engine.Clock = engine.utcnow) -> int:
    waiters = len(engine.waiters_for_person(session, person.id))
    players = len(engine.players_for_person(session, person.id))
    verdict = assess(person.status, waiters, players)
    if verdict.consistent:
        return 0

    if not fix:
        logger.warning("Inconsistent data: person [%d: %s] %s", person.id, person.knownas, verdict.reason)
        return verdict.violations

    logger.warning("Repairing person [%d: %s]: %s (%s)", person.id, person.knownas, verdict.repair.value, verdict.reason)
    _apply(session, person.id, verdict.repair, clock)
    return verdict.violations


def _apply(session: Session, person_id: int, repair: Repair, clock: engine.Clock) -> None:
    if repair in (Repair.REMOVE_WAITERS, Repair.REMOVE_WAITERS_AND_PLAYERS, Repair.RESET_TO_ONE_WAITER):
        engine.remove_waiter(session, person_id)
    if repair in (
        Repair.REMOVE_PLAYERS,
        Repair.REMOVE_WAITERS_AND_PLAYERS,
        Repair.REPLACE_PLAYERS_WITH_WAITER,
        Repair.RESET_TO_ONE_WAITER,
    ):
        engine.remove_player(session, person_id)
    if repair in (Repair.ADD_WAITER, Repair.REPLACE_PLAYERS_WITH_WAITER, Repair.RESET_TO_ONE_WAITER):
        engine.add_waiter(session, person_id, clock=clock)


def check_consistency(session: Session, *, fix: bool = False, clock: engine.Clock = engine.utcnow) -> int:
    """Audit everyone; returns the number of violations found."""
    total = 0
    for person in session.scalars(select(Person).order_by(Person.knownas, Person.id)).all():
        total += check_person(session, person, fix=fix, clock=clock)
    if total:
        logger.warning("consistency check found %d violation(s)%s", total, " (repaired)" if fix else "")
    return total
