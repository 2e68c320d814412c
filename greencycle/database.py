"""
Transaction and atomic-write helpers shared by the service layer.

The engine keeps its shared counters (points, slot bookings, ratings) in the
database and updates them with single-statement conditional writes, so these
helpers must behave the same on PostgreSQL (production) and SQLite (local
development and tests).
"""
import logging
from contextlib import contextmanager

from sqlalchemy import delete, update
from sqlalchemy.orm.util import identity_key

from greencycle import db

logger = logging.getLogger(__name__)

_DEPTH_KEY = 'greencycle_atomic_depth'


@contextmanager
def atomic():
    """Run a block as one all-or-nothing unit.

    Re-entrant: only the outermost block commits or rolls back, so a service
    that calls another service shares its caller's transaction.
    """
    session = db.session()
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
    except Exception:
        if depth == 0:
            session.rollback()
        raise
    finally:
        session.info[_DEPTH_KEY] = depth


def _dialect_insert(table):
    dialect = db.session.get_bind().dialect.name
    if dialect == 'postgresql':
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == 'sqlite':
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f'Unsupported database dialect: {dialect}')
    return insert(table)


def insert_ignore(model, index_elements, **values):
    """INSERT a row unless it collides with a unique key.

    Returns True when the row was written, False when an existing row won.
    """
    stmt = _dialect_insert(model.__table__).values(**values).on_conflict_do_nothing(
        index_elements=index_elements
    )
    # Core statements do not autoflush; pending ORM rows must land first.
    db.session.flush()
    result = db.session.execute(stmt)
    return result.rowcount == 1


def conditional_update(model, criteria, **values):
    """UPDATE rows matching ``criteria`` and return how many changed.

    The WHERE clause is the guard: callers encode the precondition in it and
    check the count instead of reading first and writing second.
    """
    stmt = (
        update(model)
        .where(*criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount


def expire(model, pk, *attrs):
    """Expire a cached instance so the next access reloads it."""
    instance = db.session.identity_map.get(identity_key(model, pk))
    if instance is not None:
        db.session.expire(instance, list(attrs) or None)


def conditional_delete(model, criteria):
    """DELETE rows matching ``criteria`` and return how many went."""
    stmt = delete(model).where(*criteria).execution_options(synchronize_session=False)
    return db.session.execute(stmt).rowcount


def forget(model, pk):
    """Drop a cached instance whose row was removed behind the session's back."""
    instance = db.session.identity_map.get(identity_key(model, pk))
    if instance is not None:
        db.session.expunge(instance)
