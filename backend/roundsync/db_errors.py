"""Helpers for classifying database/SQLAlchemy errors during score writes."""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

# lock_not_available, deadlock_detected, serialization_failure, query_canceled
_LOCK_SQLSTATES = {"55P03", "40P01", "40001"}
_TIMEOUT_SQLSTATES = {"57014"}


def _sqlstate(exc: SQLAlchemyError) -> str | None:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_lock_error(exc: SQLAlchemyError) -> bool:
    """Return ``True`` if ``exc`` means another transaction holds the row lock."""

    orig = getattr(exc, "orig", None)
    if orig is None:
        return False

    if _sqlstate(exc) in _LOCK_SQLSTATES:
        return True

    message = str(orig).lower()
    return (
        "could not obtain lock" in message
        or "database is locked" in message
        or "deadlock" in message
        or "could not serialize" in message
    )


def is_timeout_error(exc: SQLAlchemyError) -> bool:
    """Return ``True`` if ``exc`` is a statement or lock timeout.

    Parameters
    ----------
    exc:
        The SQLAlchemy exception to inspect. Timeouts are reported by
        PostgreSQL as ``query_canceled`` when ``statement_timeout`` or
        ``lock_timeout`` fires.
    """

    orig = getattr(exc, "orig", None)
    if orig is None:
        return False

    if _sqlstate(exc) in _TIMEOUT_SQLSTATES:
        return True

    message = str(orig).lower()
    return "timeout" in message or "canceling statement" in message
