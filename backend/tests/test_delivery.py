# Overview: Pytest coverage for deliveries against sales orders.

import pytest

from opscore.models import SalesOrderLine, StockMovement
from opscore.models.inventory import MOVEMENT_OUTBOUND
from opscore.models.orders import SO_STATUS_COMPLETED, SO_STATUS_PARTIALLY_DELIVERED
from opscore.services import inventory_service
from opscore.services.delivery_service import deliver_goods
from opscore.services.errors import (
    InsufficientStockError,
    OrderStateError,
    OverFulfillmentError,
)
from opscore.services.ledger_service import movements_for_reference
from opscore.services.order_status import cancel_sales_order


@pytest.fixture
def so_line_id(sales_order):
    return sales_order.lines[0].id


@pytest.fixture
def stock_10(scope_a, item_a, main_location):
    """Ten units on hand at the default location."""
    return inventory_service.adjust_stock(
        scope_a, item_id=item_a.id, location_id=main_location.id, delta=10, reason="Opening count",
    )


def _outbound_count(db_session, org_id):
    return (
        db_session.query(StockMovement)
        .filter_by(org_id=org_id, movement_type=MOVEMENT_OUTBOUND)
        .count()
    )


class TestDeliverGoods:

    def test_insufficient_stock_leaves_position_unchanged(
        self, db_session, scope_a, sales_order, so_line_id, item_a, main_location, stock_10, org_a
    ):
        """Quantity 10 on hand, deliver 12: refused and nothing changes."""
        with pytest.raises(InsufficientStockError) as exc_info:
            deliver_goods(scope_a, sales_order.id, lines=[{"line_id": so_line_id, "quantity": 12}])

        err = exc_info.value
        assert err.item_id == item_a.id
        assert err.location_id == main_location.id
        assert err.available == 10
        assert err.requested == 12
        assert err.shortfall == 2

        position = inventory_service.get_position(scope_a, item_a.id, main_location.id)
        assert position.quantity == 10
        assert position.available_quantity == 10
        assert _outbound_count(db_session, org_a.id) == 0
        assert db_session.get(SalesOrderLine, so_line_id).quantity_delivered == 0

    def test_partial_delivery(self, db_session, scope_a, sales_order, so_line_id, item_a, main_location, stock_10):
        order = deliver_goods(
            scope_a, sales_order.id, lines=[{"line_id": so_line_id, "quantity": 4}], actor_user_id=3,
        )

        assert order.status == SO_STATUS_PARTIALLY_DELIVERED
        assert db_session.get(SalesOrderLine, so_line_id).quantity_delivered == 4
        assert inventory_service.get_position(scope_a, item_a.id, main_location.id).quantity == 6

        (movement,) = movements_for_reference(scope_a, "sales_order", sales_order.id)
        assert movement.movement_type == MOVEMENT_OUTBOUND
        assert movement.quantity == -4
        assert movement.quantity_before == 10
        assert movement.quantity_after == 6
        assert movement.unit_cost_cents == 400
        assert movement.total_cost_cents == 1600
        assert movement.created_by_user_id == 3

    def test_full_delivery_completes_order(self, db_session, scope_a, sales_order, so_line_id, item_a, main_location):
        inventory_service.adjust_stock(scope_a, item_id=item_a.id, location_id=main_location.id, delta=15, reason=None)

        order = deliver_goods(scope_a, sales_order.id, lines=[{"line_id": so_line_id, "quantity": 12}])

        assert order.status == SO_STATUS_COMPLETED
        assert inventory_service.get_position(scope_a, item_a.id, main_location.id).quantity == 3

    def test_reserved_stock_not_deliverable(
        self, db_session, scope_a, sales_order, so_line_id, item_a, main_location, stock_10
    ):
        inventory_service.reserve_stock(scope_a, item_id=item_a.id, location_id=main_location.id, quantity=5)

        with pytest.raises(InsufficientStockError) as exc_info:
            deliver_goods(scope_a, sales_order.id, lines=[{"line_id": so_line_id, "quantity": 6}])

        assert exc_info.value.available == 5

    def test_over_delivery_rejected(self, db_session, scope_a, sales_order, so_line_id, item_a, main_location):
        inventory_service.adjust_stock(scope_a, item_id=item_a.id, location_id=main_location.id, delta=20, reason=None)

        with pytest.raises(OverFulfillmentError):
            deliver_goods(scope_a, sales_order.id, lines=[{"line_id": so_line_id, "quantity": 13}])

        assert inventory_service.get_position(scope_a, item_a.id, main_location.id).quantity == 20

    def test_delivery_from_empty_location(
        self, db_session, scope_a, sales_order, so_line_id, annex_location, stock_10
    ):
        with pytest.raises(InsufficientStockError) as exc_info:
            deliver_goods(
                scope_a,
                sales_order.id,
                lines=[{"line_id": so_line_id, "quantity": 1, "location_id": annex_location.id}],
            )

        assert exc_info.value.available == 0

    def test_cancelled_order_rejected(self, db_session, scope_a, sales_order, so_line_id, stock_10):
        cancel_sales_order(scope_a, sales_order.id)

        with pytest.raises(OrderStateError):
            deliver_goods(scope_a, sales_order.id, lines=[{"line_id": so_line_id, "quantity": 1}])
