# Overview: Unit-of-work and row-locking helpers shared by every write service.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransactionFailed
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def transaction():
    """
    One unit of work on the Flask-SQLAlchemy session.

    Commits when the block finishes, rolls back on any exception. Domain
    errors propagate unchanged; store failures (including optimistic-lock
    conflicts) are re-raised as TransactionFailed. Nothing is retried.
    """
    try:
        yield db.session
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise TransactionFailed(
            "record was modified concurrently; reload and try again",
            details={"cause": str(exc)},
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise TransactionFailed(str(exc.__cause__ or exc), details={"cause": type(exc).__name__}) from exc
    except Exception:
        db.session.rollback()
        raise
