# Overview: Transaction, locking and retry helpers shared by every ledger write.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StorageError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the write transaction before the first read of a read-then-write
    sequence.

    On SQLite this issues BEGIN IMMEDIATE so the database write lock is held
    from the stock/credit check to the commit. Other databases rely on
    lock_for_update() row locks.
    """
    if db.engine.dialect.name != "sqlite":
        return
    with storage_step("begin"):
        raw = db.session.connection().connection.dbapi_connection
        if not getattr(raw, "in_transaction", False):
            db.session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def storage_step(step: str):
    """
    Label backing store failures with the sub-step they happened in.

    Lock conflicts become retryable StorageErrors; anything else from the
    database is final.
    """
    try:
        yield
    except (OperationalError, StaleDataError) as exc:
        raise StorageError(f"{step} failed: concurrent update conflict", step=step, retryable=True) from exc
    except SQLAlchemyError as exc:
        raise StorageError(f"{step} failed: {exc.__class__.__name__}", step=step) from exc


def commit() -> None:
    with storage_step("commit"):
        db.session.commit()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation as one transaction, retrying on lock conflicts.

    Any failure rolls back the whole session transaction first, so every
    mutation of the operation is undone before the error propagates. Only
    conflicts (OperationalError for locked/deadlocked rows, StaleDataError
    for optimistic version mismatches) are retried: nothing was written, so
    running the operation again cannot duplicate it.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except StorageError as exc:
            db.session.rollback()
            if not exc.retryable or attempt >= attempts - 1:
                raise
            current_app.logger.warning("Retrying after %s (attempt %d)", exc, attempt + 1)
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise StorageError(
                    "transaction failed: concurrent update conflict",
                    step="transaction",
                    retryable=True,
                ) from exc
            current_app.logger.warning("Retrying after %s (attempt %d)", exc.__class__.__name__, attempt + 1)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(f"transaction failed: {exc.__class__.__name__}", step="transaction") from exc
        except Exception:
            db.session.rollback()
            raise
        time.sleep(backoff_base * (2 ** attempt))
