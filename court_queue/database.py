"""Database connection and schema maintenance using SQLAlchemy.

Ordinary traffic only needs `make_engine()` + `make_session_factory()`.
Schema maintenance (`create_tables`, `drop_tables`) waits for the DDL to become
visible, because some stores complete it asynchronously. The wait is a bounded
`Retry` with an injectable sleep so tests never block.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import SchemaTimeout
from .models import ALL_TABLES, Base

logger = logging.getLogger(__name__)


def make_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine for `url`.

    In-memory sqlite is pinned to a single shared connection so every session
    sees the same database.
    """
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(url, echo=echo, pool_pre_ping=True, pool_size=10, max_overflow=20)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)


@dataclass
class Retry:
    """Bounded poll: up to `attempts` checks, `delay` seconds apart."""

    attempts: int = 10
    delay: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep)

    def until(self, predicate: Callable[[], bool], what: str) -> None:
        for attempt in range(1, self.attempts + 1):
            if predicate():
                return
            if attempt < self.attempts:
                logger.debug("waiting for %s (attempt %d/%d)", what, attempt, self.attempts)
                self.sleep(self.delay)
        raise SchemaTimeout(f"Gave up waiting for {what} after {self.attempts} attempts")


def table_exists(engine: Engine, table: str) -> bool:
    # A fresh inspector each time: inspectors cache reflection results.
    return inspect(engine).has_table(table)


def create_tables(engine: Engine, *, retry: Retry | None = None, tables: Iterable[str] = ALL_TABLES) -> None:
    retry = retry or Retry()
    names = list(tables)
    Base.metadata.create_all(bind=engine, checkfirst=True)
    retry.until(lambda: all(table_exists(engine, t) for t in names), f"tables {names} to exist")
    logger.info("created tables: %s", ", ".join(names))


def drop_tables(engine: Engine, *, retry: Retry | None = None, tables: Iterable[str] = ALL_TABLES) -> None:
    retry = retry or Retry()
    names = list(tables)
    Base.metadata.drop_all(bind=engine, checkfirst=True)
    retry.until(lambda: not any(table_exists(engine, t) for t in names), f"tables {names} to be dropped")
    logger.info("dropped tables: %s", ", ".join(names))


def database_ready(engine: Engine) -> bool:
    """True when every relation the service needs is present."""
    return all(table_exists(engine, t) for t in ALL_TABLES)
