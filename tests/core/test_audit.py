"""Tests for the invoicing audit trail."""

import pytest
from uuid import uuid4

from psycopg2.extras import Json

from core.audit import AuditAction, AuditLogger, compute_changes


class TestAuditAction:
    """Tests for AuditAction enum."""

    def test_has_create_update_delete(self):
        """AuditAction has required values."""
        assert AuditAction.CREATE.value == "create"
        assert AuditAction.UPDATE.value == "update"
        assert AuditAction.DELETE.value == "delete"


class TestComputeChanges:
    """Tests for compute_changes utility function."""

    def test_detects_changed_fields(self):
        """Different values for same key detected."""
        old = {"status": "sent", "total": "100.00"}
        new = {"status": "paid", "total": "100.00"}

        changes = compute_changes(old, new)

        assert changes == {"status": {"old": "sent", "new": "paid"}}

    def test_detects_added_and_removed_fields(self):
        """Keys present on one side only are reported against None."""
        changes = compute_changes({"notes": "net 30"}, {"paid_at": "2024-02-01"})

        assert changes["notes"] == {"old": "net 30", "new": None}
        assert changes["paid_at"] == {"old": None, "new": "2024-02-01"}

    def test_excludes_updated_at_by_default(self):
        """updated_at not reported as change."""
        old = {"total": "1.00", "updated_at": "2024-01-01T00:00:00Z"}
        new = {"total": "1.00", "updated_at": "2024-01-02T00:00:00Z"}

        assert compute_changes(old, new) == {}

    def test_custom_exclude_fields(self):
        """Can exclude additional fields."""
        old = {"status": "sent", "sent_at": "a"}
        new = {"status": "sent", "sent_at": "b"}

        assert compute_changes(old, new, exclude_fields={"updated_at", "sent_at"}) == {}


class TestAuditLogger:
    """Tests for AuditLogger class."""

    def test_log_change_inserts_entry(self, mock_postgres, authenticated_context):
        """Entry written with the current user, action value and JSON changes."""
        audit = AuditLogger(mock_postgres)
        entity_id = uuid4()
        changes = {"status": {"old": "draft", "new": "sent"}}

        audit.log_change("invoice", entity_id, AuditAction.UPDATE, changes)

        query, params = mock_postgres.execute.call_args.args
        assert "INSERT INTO audit_log" in query
        assert params[1] == authenticated_context
        assert params[2] == "invoice"
        assert params[3] == entity_id
        assert params[4] == "update"
        assert isinstance(params[5], Json)
        assert params[5].adapted == changes

    def test_explicit_user_overrides_context(self, mock_postgres, authenticated_context, test_user_b_id):
        audit = AuditLogger(mock_postgres)

        audit.log_change("invoice", uuid4(), AuditAction.CREATE, {"created": {}}, user_id=test_user_b_id)

        params = mock_postgres.execute.call_args.args[1]
        assert params[1] == test_user_b_id

    def test_requires_user_context(self, mock_postgres):
        audit = AuditLogger(mock_postgres)
        with pytest.raises(RuntimeError, match="No user context"):
            audit.log_change("invoice", uuid4(), AuditAction.CREATE, {"created": {}})

