"""Propagate the acting user (invoice owner) through the call stack using contextvars."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)


def get_current_user_id() -> UUID:
    """
    Get current user ID from context.

    Raises RuntimeError if no user context is set. Every invoice, client and
    schedule belongs to a user, so user-scoped code running without one is
    a bug.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "user-scoped billing code outside of a request or a per-user job loop."
        )
    return user_id


def set_current_user_id(user_id: UUID) -> None:
    """Set current user ID in context."""
    _current_user_id.set(user_id)


def clear_current_user_id() -> None:
    """
    Clear user context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_user_id.set(None)


@contextmanager
def user_context(user_id: UUID):
    """
    Context manager for temporarily acting as a user.

    Scheduled jobs scan for users with due work over an admin connection,
    then process each user's schedules and invoices inside this block so
    RLS scopes every query to that user.

    Example:
        for user_id in users_with_due_schedules:
            with user_context(user_id):
                schedules = recurring_service.list_due(today)
    """
    previous = _current_user_id.get()
    set_current_user_id(user_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_user_id()
        else:
            set_current_user_id(previous)
