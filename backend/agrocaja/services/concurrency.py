# Overview: Service-layer operations for concurrency; encapsulates business logic and database work.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import FarmLock, FarmSequence


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls back the
    session and propagates unchanged.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


def acquire_farm_lock(owner_id: int, farm: str) -> None:
    """
    Serialize writers of one (owner, farm) book for the rest of the transaction.

    Must be the first statement of the transaction: the lock is held until
    commit or rollback. Lock rows are created on first use; two first-time
    writers racing on the insert fall back to the UPDATE path.
    """
    stmt = (
        update(FarmLock)
        .where(FarmLock.owner_id == owner_id, FarmLock.farm == farm)
        .values(lock_version=FarmLock.lock_version + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return

    db.session.add(FarmLock(owner_id=owner_id, farm=farm, lock_version=1))
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise


def next_farm_number(*, owner_id: int, farm: str, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Allocate the next document number for a farm/type (e.g. LIQ-0007).

    Callers hold the farm lock, so the read-increment is not contended; the
    conditional UPDATE keeps it safe even without it.
    """
    stmt = (
        update(FarmSequence)
        .where(
            FarmSequence.owner_id == owner_id,
            FarmSequence.farm == farm,
            FarmSequence.document_type == document_type,
        )
        .values(next_number=FarmSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(FarmSequence.next_number)
            .filter_by(owner_id=owner_id, farm=farm, document_type=document_type)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(FarmSequence(owner_id=owner_id, farm=farm, document_type=document_type, next_number=2))
        db.session.flush()
        number = 1

    return f"{prefix}-{number:0{pad}d}"
