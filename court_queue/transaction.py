"""Transactional wrapper gated on the consistency auditor.

    with Transaction(session_factory) as session:
        engine.fill_court(session, court_id)

On a clean exit the auditor runs in report-only mode inside the same
transaction; the work is committed only if it finds nothing. Any error, or any
violation, rolls the whole transaction back. Statements that all succeeded
can therefore still produce a failed operation.

`gated=False` skips the audit (read-only paths and maintenance tooling that
opts out); `fix=True` repairs violations before the gate is checked.
"""

from __future__ import annotations

import enum
import logging
from types import TracebackType
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import auditor, engine
from .errors import CodeError, ConsistencyError, InternalServerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TxState(enum.Enum):
    STARTED = "started"
    OPEN = "open"
    VERIFIED = "verified"
    COMMITTED = "committed"
    VIOLATED = "violated"
    ERRORED = "errored"
    ROLLED_BACK = "rolled back"


class Transaction:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        gated: bool = True,
        fix: bool = False,
        clock: engine.Clock = engine.utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.gated = gated
        self.fix = fix
        self.clock = clock
        self.state = TxState.STARTED
        self.repaired = 0
        self._session: Session | None = None

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("transaction not started")
        return self._session

    def __enter__(self) -> Session:
        self._session = self._session_factory()
        self._session.begin()
        self.state = TxState.OPEN
        return self._session

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        session = self.session
        try:
            if exc is None:
                self._verify_and_commit(session)
            else:
                self.state = TxState.ERRORED
                logger.debug("Rollback on error: %s", exc)
        finally:
            if self.state is not TxState.COMMITTED:
                self._rollback(session)
            session.close()

        if exc is None or isinstance(exc, CodeError) or not isinstance(exc, Exception):
            return False
        raise InternalServerError(str(exc) or type(exc).__name__) from exc

    def _verify_and_commit(self, session: Session) -> None:
        try:
            if self.fix:
                self.repaired = auditor.check_consistency(session, fix=True, clock=self.clock)
            if self.gated:
                count = auditor.check_consistency(session, fix=False, clock=self.clock)
                if count > 0:
                    self.state = TxState.VIOLATED
                    logger.error("Rollback on inconsistent data: count: %d", count)
                    raise ConsistencyError(count)
            self.state = TxState.VERIFIED
            session.commit()
            self.state = TxState.COMMITTED
            logger.debug("Commit on success")
        except CodeError:
            if self.state is not TxState.VIOLATED:
                self.state = TxState.ERRORED
            raise
        except SQLAlchemyError as e:
            self.state = TxState.ERRORED
            logger.error("Could not complete the transaction: %s", e)
            raise InternalServerError(f"Could not complete the transaction: {e}") from e
        except Exception as e:
            self.state = TxState.ERRORED
            logger.exception("Unexpected error while completing the transaction")
            raise InternalServerError(str(e) or type(e).__name__) from e

    def _rollback(self, session: Session) -> None:
        try:
            session.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed")
        if self.state is not TxState.COMMITTED:
            self.state = TxState.ROLLED_BACK


def run_in_transaction(
    session_factory: Callable[[], Session],
    operation: Callable[[Session], T],
    *,
    gated: bool = True,
    fix: bool = False,
    clock: engine.Clock = engine.utcnow,
) -> T:
    """Run `operation(session)` inside a `Transaction` and return its result."""
    with Transaction(session_factory, gated=gated, fix=fix, clock=clock) as session:
        return operation(session)
