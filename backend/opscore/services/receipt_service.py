# Overview: Goods receipt (GRN) against purchase orders; updates PO lines, positions and the stock ledger.

from __future__ import annotations

from collections import defaultdict

from ..models import PurchaseOrder, PurchaseOrderLine
from ..models.inventory import MOVEMENT_INBOUND
from ..models.orders import PO_STATUS_CANCELLED
from .concurrency import lock_for_update, unit_of_work
from .errors import OrderStateError, OverFulfillmentError, PreconditionError, ValidationError
from .inventory_service import apply_quantity_delta, business_datetime, positive_quantity
from .location_service import resolve_line_locations
from .order_status import recompute_purchase_order_status
"""
Goods Receipt Invariants (authoritative)

- A receipt is all-or-nothing: every line lands (position, ledger row,
  quantity_received) or nothing does.
- quantity_received never exceeds quantity_ordered; incoming quantities for
  a repeated line id are summed before the check.
- Locations (explicit or the tenant default) are resolved before the first
  write; a missing default fails the receipt up front.
- The PO header status is re-projected from its lines in the same transaction.
"""


def parse_fulfillment_lines(lines) -> list[tuple[int, int, int | None]]:
    """
    Normalize request lines into (line_id, quantity, location_id) tuples.

    Each entry is a mapping with "line_id", "quantity" and optional
    "location_id" (None means the tenant's default location).
    """
    if not lines:
        raise ValidationError("at least one line is required")

    parsed = []
    for entry in lines:
        if not isinstance(entry, dict):
            raise ValidationError("each line must be an object")

        line_id = entry.get("line_id")
        if isinstance(line_id, bool) or not isinstance(line_id, int):
            raise ValidationError("line_id must be an integer")

        quantity = positive_quantity(entry.get("quantity"))

        location_id = entry.get("location_id")
        if location_id is not None and (isinstance(location_id, bool) or not isinstance(location_id, int)):
            raise ValidationError("location_id must be an integer")

        parsed.append((line_id, quantity, location_id))
    return parsed


def _receipt_conflict(exc: Exception) -> OverFulfillmentError:
    return OverFulfillmentError(
        "Purchase order changed concurrently; re-read and retry",
        retryable=True,
    )


def receive_goods(
    scope,
    purchase_order_id: int,
    *,
    receipt_date=None,
    lines,
    actor_user_id: int | None = None,
) -> PurchaseOrder:
    """
    Receive goods against a purchase order.

    Per line: +quantity INBOUND movement at the line's location (cost = line
    unit price, reference purchase_order/<id>) and quantity_received += quantity.
    Then the header status is recomputed (PARTIALLY_RECEIVED / COMPLETED).

    Raises:
        NotFoundError: order not found for tenant
        OrderStateError: order is CANCELLED
        ValidationError: empty line list or non-positive quantity
        PreconditionError: line not on this order, inactive location, or no default location
        OverFulfillmentError: received would exceed ordered on some line
    """
    receipt_dt = business_datetime(receipt_date, field="receipt_date")

    with unit_of_work(scope, on_conflict=_receipt_conflict):
        order = scope.require(PurchaseOrder, purchase_order_id, label="Purchase order", lock=True)
        if order.status == PO_STATUS_CANCELLED:
            raise OrderStateError("Cannot receive goods for a cancelled purchase order")

        parsed = parse_fulfillment_lines(lines)

        order_lines = {
            line.id: line
            for line in lock_for_update(
                scope.query(PurchaseOrderLine).filter(PurchaseOrderLine.purchase_order_id == order.id)
            ).all()
        }

        incoming = defaultdict(int)
        for line_id, quantity, _location_id in parsed:
            if line_id not in order_lines:
                raise PreconditionError(
                    f"Purchase order line {line_id} not found on purchase order {order.document_number}"
                )
            incoming[line_id] += quantity

        for line_id, quantity in incoming.items():
            po_line = order_lines[line_id]
            if (po_line.quantity_received or 0) + quantity > po_line.quantity_ordered:
                raise OverFulfillmentError(
                    f"Received quantity exceeds ordered quantity on line {po_line.line_number}: "
                    f"ordered {po_line.quantity_ordered}, already received {po_line.quantity_received or 0}, "
                    f"incoming {quantity}"
                )

        locations = resolve_line_locations(scope, [location_id for _l, _q, location_id in parsed])

        for line_id, quantity, location_id in parsed:
            po_line = order_lines[line_id]
            location = locations[location_id]

            # Position/ledger first so the stock guard runs before the line changes
            apply_quantity_delta(
                scope,
                item_id=po_line.item_id,
                location_id=location.id,
                delta=quantity,
                movement_type=MOVEMENT_INBOUND,
                movement_date=receipt_dt,
                reference_type="purchase_order",
                reference_id=order.id,
                unit_cost_cents=po_line.unit_price_cents,
                reason=f"Goods receipt for purchase order {order.document_number}",
                actor_user_id=actor_user_id,
            )
            po_line.quantity_received = (po_line.quantity_received or 0) + quantity

        recompute_purchase_order_status(scope, order)

    return order
