# Overview: Delivery notes (DN) against sales orders; updates SO lines, positions and the stock ledger.

from __future__ import annotations

from collections import defaultdict

from ..models import SalesOrder, SalesOrderLine
from ..models.inventory import MOVEMENT_OUTBOUND
from ..models.orders import SO_STATUS_CANCELLED
from .concurrency import lock_for_update, unit_of_work
from .errors import InsufficientStockError, OrderStateError, OverFulfillmentError, PreconditionError
from .inventory_service import apply_quantity_delta, business_datetime, get_position, stock_conflict
from .location_service import resolve_line_locations
from .order_status import recompute_sales_order_status
from .receipt_service import parse_fulfillment_lines


def _check_availability(scope, requested: dict) -> None:
    """
    Reject the delivery if any (item, location) lacks available stock.

    Advisory: it reads without waiting for concurrent deliveries. The
    authoritative guard is the non-negative check in apply_quantity_delta.
    """
    for (item_id, location), quantity in requested.items():
        position = get_position(scope, item_id, location.id)
        available = position.available_quantity if position is not None else 0
        if available < quantity:
            raise InsufficientStockError(
                f"Insufficient stock for item {item_id} at location {location.code}: "
                f"available {available}, requested {quantity}",
                item_id=item_id,
                location_id=location.id,
                available=available,
                requested=quantity,
            )


def deliver_goods(
    scope,
    sales_order_id: int,
    *,
    delivery_date=None,
    lines,
    actor_user_id: int | None = None,
) -> SalesOrder:
    """
    Deliver goods against a sales order.

    Mirror of receive_goods: per line a -quantity OUTBOUND movement
    (reference sales_order/<id>) and quantity_delivered += quantity, then
    the header status is recomputed (PARTIALLY_DELIVERED / COMPLETED).

    Raises:
        NotFoundError: order not found for tenant
        OrderStateError: order is CANCELLED
        ValidationError: empty line list or non-positive quantity
        PreconditionError: line not on this order, inactive location, or no default location
        OverFulfillmentError: delivered would exceed ordered on some line
        InsufficientStockError: available stock cannot cover the delivery
            (retryable when a concurrent delivery won the race)
    """
    delivery_dt = business_datetime(delivery_date, field="delivery_date")

    with unit_of_work(scope, on_conflict=stock_conflict):
        order = scope.require(SalesOrder, sales_order_id, label="Sales order", lock=True)
        if order.status == SO_STATUS_CANCELLED:
            raise OrderStateError("Cannot deliver goods for a cancelled sales order")

        parsed = parse_fulfillment_lines(lines)

        order_lines = {
            line.id: line
            for line in lock_for_update(
                scope.query(SalesOrderLine).filter(SalesOrderLine.sales_order_id == order.id)
            ).all()
        }

        outgoing = defaultdict(int)
        for line_id, quantity, _location_id in parsed:
            if line_id not in order_lines:
                raise PreconditionError(
                    f"Sales order line {line_id} not found on sales order {order.document_number}"
                )
            outgoing[line_id] += quantity

        for line_id, quantity in outgoing.items():
            so_line = order_lines[line_id]
            if (so_line.quantity_delivered or 0) + quantity > so_line.quantity_ordered:
                raise OverFulfillmentError(
                    f"Delivered quantity exceeds ordered quantity on line {so_line.line_number}: "
                    f"ordered {so_line.quantity_ordered}, already delivered {so_line.quantity_delivered or 0}, "
                    f"outgoing {quantity}"
                )

        locations = resolve_line_locations(scope, [location_id for _l, _q, location_id in parsed])

        requested = defaultdict(int)
        for line_id, quantity, location_id in parsed:
            requested[(order_lines[line_id].item_id, locations[location_id])] += quantity
        _check_availability(scope, requested)

        for line_id, quantity, location_id in parsed:
            so_line = order_lines[line_id]
            location = locations[location_id]

            apply_quantity_delta(
                scope,
                item_id=so_line.item_id,
                location_id=location.id,
                delta=-quantity,
                movement_type=MOVEMENT_OUTBOUND,
                movement_date=delivery_dt,
                reference_type="sales_order",
                reference_id=order.id,
                unit_cost_cents=so_line.unit_price_cents,
                reason=f"Delivery for sales order {order.document_number}",
                actor_user_id=actor_user_id,
            )
            so_line.quantity_delivered = (so_line.quantity_delivered or 0) + quantity

        recompute_sales_order_status(scope, order)

    return order
