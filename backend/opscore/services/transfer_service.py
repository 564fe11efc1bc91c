"""
Stock transfer between two locations of the same organization.

WHY: Moving stock is two quantity changes that must land together. A
transfer writes an OUTBOUND movement at the source and an INBOUND movement
at the destination in one transaction, both referencing the same transfer
number (TRF-000001). The inbound leg links the outbound leg through
related_movement_id, and either leg finds the other via `counterpart`.

INVARIANTS:
- Source and destination differ and are both ACTIVE tenant locations
- The source's available quantity covers the transfer (reserved stock stays put)
- Total quantity of the item across locations is unchanged
"""
from __future__ import annotations

from ..models import InventoryPosition
from ..models.inventory import MOVEMENT_INBOUND, MOVEMENT_OUTBOUND
from opscore.time_utils import utcnow
from .concurrency import unit_of_work
from .document_service import next_transfer_reference
from .errors import InsufficientStockError, ValidationError
from .inventory_service import (
    apply_quantity_delta,
    get_position,
    positive_quantity,
    require_item,
    stock_conflict,
)
from ..validation import optional_text
from .location_service import require_active_location


def transfer_stock(
    scope,
    *,
    item_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
    movement_date=None,
) -> dict:
    """
    Move quantity of one item from one location to another.

    Returns:
        {"reference": "TRF-...", "from_position": InventoryPosition,
         "to_position": InventoryPosition, "movements": [outbound, inbound]}

    Raises:
        ValidationError: same source and destination, or non-positive quantity
        NotFoundError / PreconditionError: unknown item, unknown or inactive location
        InsufficientStockError: source cannot cover the quantity
    """
    positive_quantity(quantity)
    if from_location_id == to_location_id:
        raise ValidationError("Source and destination locations must be different")
    note = optional_text(reason, "reason")

    with unit_of_work(scope, on_conflict=stock_conflict):
        require_item(scope, item_id)
        source = require_active_location(scope, from_location_id)
        destination = require_active_location(scope, to_location_id)

        position: InventoryPosition | None = get_position(scope, item_id, source.id, lock=True)
        available = position.available_quantity if position is not None else 0
        if available < quantity:
            raise InsufficientStockError(
                f"Insufficient stock at source location {source.code}: "
                f"available {available}, requested {quantity}",
                item_id=item_id,
                location_id=source.id,
                available=available,
                requested=quantity,
            )

        reference = next_transfer_reference(org_id=scope.org_id)
        when = movement_date or utcnow()

        from_position, outbound = apply_quantity_delta(
            scope,
            item_id=item_id,
            location_id=source.id,
            delta=-quantity,
            movement_type=MOVEMENT_OUTBOUND,
            movement_date=when,
            reference_type="transfer",
            reference_id=reference,
            reason=note or f"Transfer to {destination.code}",
            actor_user_id=actor_user_id,
        )
        to_position, inbound = apply_quantity_delta(
            scope,
            item_id=item_id,
            location_id=destination.id,
            delta=quantity,
            movement_type=MOVEMENT_INBOUND,
            movement_date=when,
            reference_type="transfer",
            reference_id=reference,
            related_movement=outbound,
            reason=note or f"Transfer from {source.code}",
            actor_user_id=actor_user_id,
        )

    return {
        "reference": reference,
        "from_position": from_position,
        "to_position": to_position,
        "movements": [outbound, inbound],
    }
