"""Database session, metadata and unit-of-work configuration."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Generator, Iterator, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings
from .errors import TransactionConflict

logger = logging.getLogger(__name__)

settings = get_settings()

engine = create_engine(settings.database_url, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
_RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}


def get_db() -> Generator:
    """Yield a database session for request lifetime."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_conflict(exc: DBAPIError) -> bool:
    """Return True when the driver error is a lock or serialization failure."""

    orig = exc.orig
    if getattr(orig, "pgcode", None) in _RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig)


@contextmanager
def unit_of_work(session: Session) -> Iterator[Session]:
    """Commit ``session`` when the block succeeds, roll it back otherwise.

    Used by request handlers that already own a session. A lock or
    serialization failure surfaces as :class:`TransactionConflict` so the
    caller can retry the whole request.
    """

    try:
        yield session
        session.commit()
    except DBAPIError as exc:
        session.rollback()
        if not is_conflict(exc):
            raise
        logger.warning("transaction conflict in request: %s", exc.orig)
        raise TransactionConflict("Concurrent update conflict; retry the request.") from exc
    except Exception:
        session.rollback()
        raise


def transactional(
    work: Callable[[Session], T],
    *,
    session_factory: Optional[Callable[[], Session]] = None,
    attempts: Optional[int] = None,
) -> T:
    """Run ``work`` in its own session and commit it as one unit.

    Any exception rolls the whole unit back. Lock and serialization
    failures are retried up to ``attempts`` times before surfacing as
    :class:`TransactionConflict`.
    """

    factory = session_factory or SessionLocal
    max_attempts = attempts or settings.transaction_attempts

    for attempt in range(1, max_attempts + 1):
        session = factory()
        try:
            result = work(session)
            session.commit()
            return result
        except DBAPIError as exc:
            session.rollback()
            if not is_conflict(exc):
                raise
            logger.warning("transaction conflict on attempt %s/%s: %s", attempt, max_attempts, exc.orig)
            if attempt == max_attempts:
                raise TransactionConflict(
                    f"Concurrent update conflict after {max_attempts} attempts; retry the request."
                ) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    raise AssertionError("unreachable")  # pragma: no cover
