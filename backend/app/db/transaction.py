from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
import logging
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import InfrastructureError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}


def is_retryable_failure(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in RETRYABLE_SQLSTATES:
        return True
    message = str(orig).lower()
    return "database is locked" in message or "deadlock" in message


@contextmanager
def transaction_scope(db: Session, *, read_only: bool = False) -> Iterator[Session]:
    """Run the enclosed block as one transaction on ``db``.

    The transaction is committed when the block finishes normally (or rolled
    back when ``read_only``) and rolled back on every other exit path,
    including ``GeneratorExit``, ``KeyboardInterrupt`` and task cancellation.
    Integrity errors propagate unchanged so callers can treat them as lost
    races; every other driver error becomes an ``InfrastructureError``.
    """
    try:
        yield db
        if read_only:
            db.rollback()
        else:
            db.commit()
    except IntegrityError:
        db.rollback()
        raise
    except DBAPIError as exc:
        db.rollback()
        retryable = is_retryable_failure(exc)
        logger.exception("Transaction failed (retryable=%s)", retryable)
        raise InfrastructureError("Schedule store is unavailable", retryable=retryable) from exc
    except BaseException:
        db.rollback()
        raise


def run_in_transaction(db: Session, fn: Callable[[Session], T], *, read_only: bool = False) -> T:
    with transaction_scope(db, read_only=read_only):
        return fn(db)
