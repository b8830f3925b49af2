"""SQLAlchemy ORM models for the four relations: person, court, playing, waiting."""

from __future__ import annotations

import enum
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase

NUMBER_OF_COURT_POSITIONS = 4

PERSON_TABLE = "person"
COURT_TABLE = "court"
PLAYING_TABLE = "playing"
WAITING_TABLE = "waiting"

ALL_TABLES = (PERSON_TABLE, COURT_TABLE, PLAYING_TABLE, WAITING_TABLE)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Status(str, enum.Enum):
    ADMIN = "admin"
    PLAYER = "player"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class Person(Base):
    __tablename__ = PERSON_TABLE

    id = Column(Integer, primary_key=True, autoincrement=True)
    firstname = Column(String(64), nullable=False)
    lastname = Column(String(64), nullable=False)
    knownas = Column(String(64), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(32), nullable=False, default="")
    hash = Column(String(255), nullable=False, default="")
    status = Column(String(16), nullable=False, default=Status.SUSPENDED.value)

    def to_limited(self) -> dict[str, Any]:
        """Public representation: everything except the credential hash."""
        return {
            "id": self.id,
            "firstname": self.firstname,
            "lastname": self.lastname,
            "knownas": self.knownas,
            "email": self.email,
            "phone": self.phone,
            "status": self.status,
        }

    def __repr__(self) -> str:
        return f"<Person {self.id}: {self.knownas} ({self.status})>"


class Court(Base):
    __tablename__ = COURT_TABLE

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<Court {self.id}: {self.name}>"


class Playing(Base):
    """One person occupying one numbered position on one court."""

    __tablename__ = PLAYING_TABLE
    __table_args__ = (
        UniqueConstraint("court", "position", name="uq_playing_court_position"),
        UniqueConstraint("person", name="uq_playing_person"),
        CheckConstraint(
            f"position >= 0 AND position < {NUMBER_OF_COURT_POSITIONS}",
            name="ck_playing_position",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    court = Column(Integer, ForeignKey(f"{COURT_TABLE}.id"), nullable=False, index=True)
    person = Column(Integer, ForeignKey(f"{PERSON_TABLE}.id"), nullable=False)
    position = Column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<Playing court={self.court} position={self.position} person={self.person}>"


class Waiting(Base):
    """A person in the FIFO queue. `id` breaks ties between equal start times."""

    __tablename__ = WAITING_TABLE
    __table_args__ = (
        UniqueConstraint("person", name="uq_waiting_person"),
        Index("first_waiting", "start", "id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    person = Column(Integer, ForeignKey(f"{PERSON_TABLE}.id"), nullable=False)
    start = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<Waiting person={self.person} start={self.start}>"
