# Overview: Order header status projection and pre-fulfillment cancellation.

from __future__ import annotations

from typing import Iterable

from ..models import PurchaseOrder, PurchaseOrderLine, SalesOrder, SalesOrderLine
from ..models.orders import (
    PO_STATUS_APPROVED,
    PO_STATUS_CANCELLED,
    PO_STATUS_DRAFT,
    PO_STATUS_PARTIALLY_RECEIVED,
    SO_STATUS_CANCELLED,
    SO_STATUS_CONFIRMED,
    SO_STATUS_DRAFT,
    SO_STATUS_PARTIALLY_DELIVERED,
)
from .concurrency import unit_of_work
from .errors import InvariantViolation, OrderStateError


COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"

PO_CANCELLABLE_STATUSES = {PO_STATUS_DRAFT, PO_STATUS_APPROVED}
SO_CANCELLABLE_STATUSES = {SO_STATUS_DRAFT, SO_STATUS_CONFIRMED}


def derive_fulfillment_status(
    current: str,
    quantities: Iterable[tuple[int, int]],
    partial_status: str,
) -> str:
    """
    Project an order header status from its lines.

    quantities: (ordered, fulfilled) per line.

    - CANCELLED stays CANCELLED
    - every line fully fulfilled (and at least one line) -> COMPLETED
    - any line with fulfilment -> partial_status
    - otherwise the current status is kept

    Pure and idempotent: applying it to its own output changes nothing.
    """
    if current == CANCELLED:
        return current

    lines = list(quantities)
    if lines and all((fulfilled or 0) >= ordered for ordered, fulfilled in lines):
        return COMPLETED
    if any((fulfilled or 0) > 0 for _ordered, fulfilled in lines):
        return partial_status
    return current


def recompute_purchase_order_status(scope, order: PurchaseOrder) -> str:
    """Re-read the order's lines and persist the projected status. No commit."""
    lines = (
        scope.query(PurchaseOrderLine)
        .filter(PurchaseOrderLine.purchase_order_id == order.id)
        .all()
    )
    status = derive_fulfillment_status(
        order.status,
        [(line.quantity_ordered, line.quantity_received) for line in lines],
        PO_STATUS_PARTIALLY_RECEIVED,
    )
    if status != order.status:
        order.status = status
    return status


def recompute_sales_order_status(scope, order: SalesOrder) -> str:
    lines = (
        scope.query(SalesOrderLine)
        .filter(SalesOrderLine.sales_order_id == order.id)
        .all()
    )
    status = derive_fulfillment_status(
        order.status,
        [(line.quantity_ordered, line.quantity_delivered) for line in lines],
        SO_STATUS_PARTIALLY_DELIVERED,
    )
    if status != order.status:
        order.status = status
    return status


def _order_conflict(exc: Exception) -> InvariantViolation:
    return InvariantViolation("Order changed concurrently; re-read and retry", retryable=True)


def cancel_purchase_order(scope, purchase_order_id: int) -> PurchaseOrder:
    """
    Cancel a purchase order that has not started receiving.

    Raises:
        NotFoundError: order not found for tenant
        OrderStateError: order is past DRAFT/APPROVED or has received quantity
    """
    with unit_of_work(scope, on_conflict=_order_conflict):
        order = scope.require(PurchaseOrder, purchase_order_id, label="Purchase order", lock=True)

        if order.status not in PO_CANCELLABLE_STATUSES:
            raise OrderStateError(f"Cannot cancel purchase order in status {order.status}")
        if any((line.quantity_received or 0) > 0 for line in order.lines):
            raise OrderStateError("Cannot cancel a purchase order with received quantities")

        order.status = PO_STATUS_CANCELLED

    return order


def cancel_sales_order(scope, sales_order_id: int) -> SalesOrder:
    """Cancel a sales order that has not started delivering."""
    with unit_of_work(scope, on_conflict=_order_conflict):
        order = scope.require(SalesOrder, sales_order_id, label="Sales order", lock=True)

        if order.status not in SO_CANCELLABLE_STATUSES:
            raise OrderStateError(f"Cannot cancel sales order in status {order.status}")
        if any((line.quantity_delivered or 0) > 0 for line in order.lines):
            raise OrderStateError("Cannot cancel a sales order with delivered quantities")

        order.status = SO_STATUS_CANCELLED

    return order
