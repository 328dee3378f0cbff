"""Transaction scope, optimistic-lock mapping and request-scoped deadlines."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..domain_errors import ConflictOptimisticLockError, DomainError, TransitionTimeoutError

logger = logging.getLogger(__name__)


class Deadline:
    """Monotonic deadline for one request-scoped operation."""

    def __init__(self, timeout_seconds: float, *, clock: Callable[[], float] = time.monotonic):
        self.timeout_seconds = float(timeout_seconds)
        self._clock = clock
        self._expires_at = clock() + self.timeout_seconds

    def remaining(self) -> float:
        return max(self._expires_at - self._clock(), 0.0)

    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self) -> None:
        if self.expired():
            raise TransitionTimeoutError(self.timeout_seconds)


def _dialect_name(db: Session) -> str | None:
    get_bind = getattr(db, "get_bind", None)
    if get_bind is None:
        return None
    return get_bind().dialect.name


def apply_statement_timeout(db: Session, deadline: Deadline) -> None:
    """Bound every statement of the current transaction on PostgreSQL.

    Other dialects rely on the deadline checks around the commit.
    """
    if _dialect_name(db) != "postgresql":
        return
    timeout_ms = max(int(deadline.remaining() * 1000), 1)
    db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))


def ensure_expected_version(*, current_version: int | None, expected_version: int | None) -> None:
    """Compare-and-swap guard for callers that send the version they last saw."""
    if expected_version is None:
        return
    if current_version != expected_version:
        raise ConflictOptimisticLockError(
            f"Purchase order version is {current_version}, expected {expected_version}; reload and retry"
        )


@contextmanager
def order_transaction(db: Session, *, deadline: Deadline | None = None) -> Iterator[Session]:
    """Own the commit for one aggregate change.

    Everything staged inside the block is flushed and committed together; any
    failure rolls the whole unit back. Version mismatches detected by the
    mapper surface as ConflictOptimisticLockError.
    """
    try:
        if deadline is not None:
            apply_statement_timeout(db, deadline)
        yield db
        if deadline is not None:
            deadline.check()
        db.flush()
        if deadline is not None:
            deadline.check()
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        logger.warning("optimistic_lock.conflict error=%s", exc)
        raise ConflictOptimisticLockError() from exc
    except TransitionTimeoutError:
        db.rollback()
        logger.warning("transaction.timeout rolled back")
        raise
    except OperationalError as exc:
        db.rollback()
        if deadline is not None and "statement timeout" in str(exc).lower():
            logger.warning("transaction.timeout statement cancelled by server")
            raise TransitionTimeoutError(deadline.timeout_seconds) from exc
        raise
    except DomainError:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception("transaction.failed rolled back")
        raise
