"""Transactional boundary over the Flask-SQLAlchemy session.

Invariant checks that read a count and then write based on it (owner
counts, one-organization-per-user) must run inside one ``transaction()``
block, with the rows they count read through ``locked()`` so concurrent
writers on PostgreSQL serialise on ``SELECT ... FOR UPDATE``. SQLite ignores
the lock clause; its single-writer model already serialises the block.

Usage:
    from tracker.services.helpers.transactions import locked, transaction

    with transaction(conflict_message="already in an organization"):
        owners = locked(select(ProjectMember).where(...)).all()
        ...

    # several backstops in one block: match the violated constraint
    with transaction(conflict_message={"slug": "slug taken",
                                       "user_organizations": "already in an organization"}):
        ...

Storage failures are never retried here; the caller decides.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Mapping, Union

from sqlalchemy.exc import IntegrityError

from tracker.core.exceptions import ConflictError
from tracker.models import db

logger = logging.getLogger(__name__)

ConflictMessage = Union[str, Mapping[str, str], None]


def _conflict_message_for(exc: IntegrityError, conflict_message: ConflictMessage) -> str | None:
    """Pick the message for a tripped backstop.

    A mapping is keyed by a fragment of the driver's error text (constraint
    or column name, e.g. ``organizations.slug`` on SQLite,
    ``organizations_slug_key`` on PostgreSQL); the first fragment found wins.
    """
    if conflict_message is None or isinstance(conflict_message, str):
        return conflict_message
    text = str(exc.orig)
    for fragment, message in conflict_message.items():
        if fragment in text:
            return message
    return None


@contextmanager
def transaction(conflict_message: ConflictMessage = None):
    """Commit the session on success, roll back on any error.

    Args:
        conflict_message: When given, an ``IntegrityError`` raised by a
            uniqueness backstop is re-raised as ``ConflictError`` with this
            message instead of propagating as a storage failure. A mapping
            of error-text fragment to message keeps distinct backstops
            distinct; an unmatched violation propagates unchanged.

    Yields:
        The active SQLAlchemy session.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        message = _conflict_message_for(exc, conflict_message)
        if message is None:
            raise
        logger.warning("Integrity backstop tripped: %s", exc.orig)
        raise ConflictError(message) from exc
    except Exception:
        db.session.rollback()
        raise


def with_transaction(fn, *args, conflict_message: ConflictMessage = None, **kwargs):
    """Run ``fn(*args, **kwargs)`` inside ``transaction()`` and return its result."""
    with transaction(conflict_message=conflict_message):
        return fn(*args, **kwargs)


def locked(stmt):
    """Execute a SELECT with row locks held until the transaction ends."""
    return db.session.execute(stmt.with_for_update()).scalars()
