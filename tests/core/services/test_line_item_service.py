"""Tests for LineItemService."""

import pytest
from decimal import Decimal
from uuid import uuid4

from core.audit import AuditAction
from core.models import LineItemCreate, LineItemUpdate
from core.services.line_item_service import LineItemService


@pytest.fixture
def service(mock_postgres, mock_audit):
    return LineItemService(mock_postgres, mock_audit)


class TestCreateMany:

    def test_amount_is_derived_and_rounded(self, service, mock_postgres, echo_params, authenticated_context):
        mock_postgres.execute_returning.side_effect = echo_params
        invoice_id = uuid4()

        created = service.create_many(invoice_id, [
            LineItemCreate(description="Design", quantity=Decimal("3"), rate=Decimal("0.335")),
        ])

        assert created[0].amount == Decimal("1.01")
        assert created[0].invoice_id == invoice_id
        assert created[0].user_id == authenticated_context

    def test_preserves_order(self, service, mock_postgres, echo_params, authenticated_context):
        mock_postgres.execute_returning.side_effect = echo_params

        created = service.create_many(uuid4(), [
            LineItemCreate(description="First", rate=Decimal("1")),
            LineItemCreate(description="Second", rate=Decimal("2")),
            LineItemCreate(description="Third", rate=Decimal("3")),
        ])

        assert [item.description for item in created] == ["First", "Second", "Third"]
        assert [item.sort_order for item in created] == [0, 1, 2]

    def test_explicit_sort_order_kept(self, service, mock_postgres, echo_params, authenticated_context):
        mock_postgres.execute_returning.side_effect = echo_params

        created = service.create_many(uuid4(), [
            LineItemCreate(description="Pinned", rate=Decimal("1"), sort_order=9),
        ])

        assert created[0].sort_order == 9

    def test_explicit_zero_sort_order_not_replaced(self, service, mock_postgres, echo_params, authenticated_context):
        mock_postgres.execute_returning.side_effect = echo_params

        created = service.create_many(uuid4(), [
            LineItemCreate(description="c", rate=Decimal("1"), sort_order=2),
            LineItemCreate(description="a", rate=Decimal("1"), sort_order=0),
            LineItemCreate(description="b", rate=Decimal("1"), sort_order=1),
        ])

        assert [(item.description, item.sort_order) for item in created] == [("c", 2), ("a", 0), ("b", 1)]

    def test_crypto_precision(self, service, mock_postgres, echo_params, authenticated_context):
        mock_postgres.execute_returning.side_effect = echo_params

        created = service.create_many(uuid4(), [
            LineItemCreate(description="Node", quantity=Decimal("0.5"), rate=Decimal("0.00000003")),
        ], decimals=8)

        assert created[0].amount == Decimal("0.00000002")


class TestReplace:

    def test_soft_deletes_then_inserts(self, service, mock_postgres, echo_params, authenticated_context):
        mock_postgres.execute_returning.side_effect = echo_params
        invoice_id = uuid4()

        created = service.replace(invoice_id, [LineItemCreate(description="New", rate=Decimal("10"))])

        query, params = mock_postgres.execute.call_args.args
        assert "SET deleted_at" in query
        assert params[2] == invoice_id
        assert len(created) == 1


class TestUpdate:

    def test_recomputes_amount(
        self, service, mock_postgres, merge_into, mock_audit, make_line_item_row, authenticated_context
    ):
        current = make_line_item_row(quantity=Decimal("1"), rate=Decimal("100"), amount=Decimal("100.00"))
        mock_postgres.execute_single.return_value = current
        mock_postgres.execute_returning.side_effect = merge_into(current)

        updated = service.update(current["id"], LineItemUpdate(quantity=Decimal("2.5")))

        assert updated.amount == Decimal("250.00")
        changes = mock_audit.log_change.call_args.kwargs["changes"]
        assert set(changes) == {"quantity", "amount"}
        assert mock_audit.log_change.call_args.kwargs["action"] == AuditAction.UPDATE

    def test_no_changes_returns_current(self, service, mock_postgres, make_line_item_row):
        current = make_line_item_row()
        mock_postgres.execute_single.return_value = current

        result = service.update(current["id"], LineItemUpdate())

        assert result.id == current["id"]
        mock_postgres.execute_returning.assert_not_called()

    def test_not_found(self, service):
        with pytest.raises(ValueError, match="not found"):
            service.update(uuid4(), LineItemUpdate(rate=Decimal("1")))


class TestQueries:

    def test_list_for_invoice_excludes_deleted(self, service, mock_postgres, make_line_item_row):
        invoice_id = uuid4()
        mock_postgres.execute.return_value = [make_line_item_row(invoice_id=invoice_id)]

        items = service.list_for_invoice(invoice_id)

        query = mock_postgres.execute.call_args.args[0]
        assert "deleted_at IS NULL" in query
        assert items[0].invoice_id == invoice_id

    def test_get_by_id_missing(self, service):
        assert service.get_by_id(uuid4()) is None
