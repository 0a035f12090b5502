"""Tests for utils/user_context.py - invoice owner propagation via contextvars."""

from uuid import uuid4

import pytest

from utils.user_context import (
    get_current_user_id,
    set_current_user_id,
    clear_current_user_id,
    user_context,
)


def test_raises_without_context():
    with pytest.raises(RuntimeError, match="No user context"):
        get_current_user_id()


def test_set_then_clear():
    user_id = uuid4()
    set_current_user_id(user_id)
    assert get_current_user_id() == user_id

    clear_current_user_id()
    with pytest.raises(RuntimeError):
        get_current_user_id()


class TestUserContextManager:

    def test_job_loop_switches_users(self):
        """A per-user job loop sees each owner in turn and nothing afterwards."""
        owners = [uuid4(), uuid4(), uuid4()]
        seen = []

        for owner in owners:
            with user_context(owner):
                seen.append(get_current_user_id())

        assert seen == owners
        with pytest.raises(RuntimeError):
            get_current_user_id()

    def test_restores_previous(self):
        outer_id, inner_id = uuid4(), uuid4()

        with user_context(outer_id):
            with user_context(inner_id):
                assert get_current_user_id() == inner_id
            assert get_current_user_id() == outer_id

    def test_clears_on_exception(self):
        with pytest.raises(ValueError):
            with user_context(uuid4()):
                raise ValueError("schedule failed")

        with pytest.raises(RuntimeError):
            get_current_user_id()
