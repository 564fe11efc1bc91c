# Overview: Pytest coverage for goods receipts against purchase orders.

import pytest

from opscore.models import PurchaseOrderLine, StockMovement
from opscore.models.inventory import MOVEMENT_INBOUND
from opscore.models.orders import (
    PO_STATUS_CANCELLED,
    PO_STATUS_COMPLETED,
    PO_STATUS_PARTIALLY_RECEIVED,
)
from opscore.services import inventory_service
from opscore.services.errors import (
    NotFoundError,
    OrderStateError,
    OverFulfillmentError,
    PreconditionError,
    ValidationError,
)
from opscore.services.ledger_service import movements_for_reference
from opscore.services.order_status import cancel_purchase_order
from opscore.services.receipt_service import receive_goods


@pytest.fixture
def po_line_id(purchase_order):
    return purchase_order.lines[0].id


class TestReceiveGoods:

    def test_partial_then_full_receipt(self, db_session, scope_a, purchase_order, po_line_id, item_a, main_location):
        """20 ordered: receive 5, then 15, then one more is refused."""
        order = receive_goods(scope_a, purchase_order.id, lines=[{"line_id": po_line_id, "quantity": 5}])

        assert order.status == PO_STATUS_PARTIALLY_RECEIVED
        assert db_session.get(PurchaseOrderLine, po_line_id).quantity_received == 5

        order = receive_goods(scope_a, purchase_order.id, lines=[{"line_id": po_line_id, "quantity": 15}])

        assert order.status == PO_STATUS_COMPLETED
        assert db_session.get(PurchaseOrderLine, po_line_id).quantity_received == 20

        with pytest.raises(OverFulfillmentError):
            receive_goods(scope_a, purchase_order.id, lines=[{"line_id": po_line_id, "quantity": 1}])

        position = inventory_service.get_position(scope_a, item_a.id, main_location.id)
        assert position.quantity == 20
        assert db_session.get(PurchaseOrderLine, po_line_id).quantity_received == 20

    def test_receipt_writes_inbound_movement_at_line_cost(
        self, db_session, scope_a, purchase_order, po_line_id, main_location, org_a
    ):
        receive_goods(
            scope_a,
            purchase_order.id,
            receipt_date="2026-03-01T09:30:00Z",
            lines=[{"line_id": po_line_id, "quantity": 5}],
            actor_user_id=42,
        )

        movements = movements_for_reference(scope_a, "purchase_order", purchase_order.id)
        assert len(movements) == 1
        movement = movements[0]
        assert movement.movement_type == MOVEMENT_INBOUND
        assert movement.location_id == main_location.id
        assert movement.quantity == 5
        assert movement.quantity_before == 0
        assert movement.quantity_after == 5
        assert movement.unit_cost_cents == 250
        assert movement.total_cost_cents == 1250
        assert movement.created_by_user_id == 42
        assert movement.movement_date.year == 2026

    def test_explicit_location_overrides_default(
        self, db_session, scope_a, purchase_order, po_line_id, item_a, main_location, annex_location
    ):
        receive_goods(
            scope_a,
            purchase_order.id,
            lines=[
                {"line_id": po_line_id, "quantity": 4, "location_id": annex_location.id},
                {"line_id": po_line_id, "quantity": 2},
            ],
        )

        assert inventory_service.get_position(scope_a, item_a.id, annex_location.id).quantity == 4
        assert inventory_service.get_position(scope_a, item_a.id, main_location.id).quantity == 2
        assert db_session.get(PurchaseOrderLine, po_line_id).quantity_received == 6

    def test_repeated_line_quantities_summed_for_limit(
        self, db_session, scope_a, purchase_order, po_line_id, main_location, org_a
    ):
        with pytest.raises(OverFulfillmentError):
            receive_goods(
                scope_a,
                purchase_order.id,
                lines=[
                    {"line_id": po_line_id, "quantity": 15},
                    {"line_id": po_line_id, "quantity": 6},
                ],
            )

        assert db_session.query(StockMovement).filter_by(org_id=org_a.id).count() == 0
        assert db_session.get(PurchaseOrderLine, po_line_id).quantity_received == 0

    def test_missing_default_location_fails_before_writing(
        self, db_session, scope_a, purchase_order, po_line_id, org_a
    ):
        with pytest.raises(PreconditionError) as exc_info:
            receive_goods(scope_a, purchase_order.id, lines=[{"line_id": po_line_id, "quantity": 5}])

        assert "default location" in str(exc_info.value)
        assert db_session.query(StockMovement).filter_by(org_id=org_a.id).count() == 0
        assert db_session.get(PurchaseOrderLine, po_line_id).quantity_received == 0

    def test_line_from_other_order_rejected(self, db_session, scope_a, purchase_order, main_location):
        with pytest.raises(PreconditionError):
            receive_goods(scope_a, purchase_order.id, lines=[{"line_id": 99999, "quantity": 1}])

    def test_empty_lines_rejected(self, db_session, scope_a, purchase_order, main_location):
        with pytest.raises(ValidationError):
            receive_goods(scope_a, purchase_order.id, lines=[])

    def test_non_positive_quantity_rejected(self, db_session, scope_a, purchase_order, po_line_id, main_location):
        with pytest.raises(ValidationError):
            receive_goods(scope_a, purchase_order.id, lines=[{"line_id": po_line_id, "quantity": 0}])

    def test_cancelled_order_rejected(self, db_session, scope_a, purchase_order, po_line_id, main_location):
        order = cancel_purchase_order(scope_a, purchase_order.id)
        assert order.status == PO_STATUS_CANCELLED

        with pytest.raises(OrderStateError):
            receive_goods(scope_a, purchase_order.id, lines=[{"line_id": po_line_id, "quantity": 1}])

    def test_other_tenant_order_not_found(self, db_session, scope_b, purchase_order, po_line_id, location_b):
        with pytest.raises(NotFoundError):
            receive_goods(scope_b, purchase_order.id, lines=[{"line_id": po_line_id, "quantity": 1}])
