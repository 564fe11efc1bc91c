# Overview: Service-layer operations for the stock ledger; append and read StockMovement rows.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import InventoryPosition, StockMovement
from ..models.inventory import MOVEMENT_TRANSFER, MOVEMENT_TYPES, WRITABLE_MOVEMENT_TYPES
from .errors import ValidationError
from .tenant_service import TenantScope
"""
Stock Ledger Invariants (authoritative)

- Append-only: one StockMovement per quantity change, never updated or deleted.
- quantity_before + quantity == quantity_after on every row.
- Movements are written in the same DB transaction as the position change
  they record (see inventory_service.apply_quantity_delta).
- movement_date is business time; created_at is system time (DB default).
- Date filters in the read API are inclusive on both ends.
"""


def append_stock_movement(
    *,
    org_id: int,
    item_id: int,
    location_id: int,
    movement_type: str,
    movement_date: datetime,
    quantity: int,
    quantity_before: int,
    reference_type: str | None = None,
    reference_id=None,
    related_movement: StockMovement | None = None,
    unit_cost_cents: int | None = None,
    reason: str | None = None,
    created_by_user_id: int | None = None,
) -> StockMovement:
    """
    Append one ledger row. Does not touch positions and does not commit.

    related_movement links the row to its counterpart leg (transfers); the
    link is written as the FK column so the earlier leg is not re-flushed.
    """
    if movement_type not in WRITABLE_MOVEMENT_TYPES:
        raise ValidationError(f"invalid movement_type: {movement_type}")

    total_cost_cents = None
    if unit_cost_cents is not None:
        total_cost_cents = unit_cost_cents * abs(quantity)

    movement = StockMovement(
        org_id=org_id,
        item_id=item_id,
        location_id=location_id,
        movement_type=movement_type,
        movement_date=movement_date,
        quantity=quantity,
        quantity_before=quantity_before,
        quantity_after=quantity_before + quantity,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        related_movement_id=related_movement.id if related_movement is not None else None,
        unit_cost_cents=unit_cost_cents,
        total_cost_cents=total_cost_cents,
        reason=reason,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def list_stock_movements(
    scope,
    *,
    item_id: int | None = None,
    location_id: int | None = None,
    movement_type: str | None = None,
    reference_type: str | None = None,
    reference_id=None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int | None = None,
) -> list[StockMovement]:
    """Newest first (movement_date, then id)."""
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"invalid movement_type: {movement_type}")

    q = scope.query(StockMovement)
    if item_id is not None:
        q = q.filter(StockMovement.item_id == item_id)
    if location_id is not None:
        q = q.filter(StockMovement.location_id == location_id)
    if movement_type == MOVEMENT_TRANSFER:
        q = q.filter(StockMovement.reference_type == "transfer")
    elif movement_type is not None:
        q = q.filter(StockMovement.movement_type == movement_type)
    if reference_type is not None:
        q = q.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        q = q.filter(StockMovement.reference_id == str(reference_id))
    if start_date is not None:
        q = q.filter(StockMovement.movement_date >= start_date)
    if end_date is not None:
        q = q.filter(StockMovement.movement_date <= end_date)

    q = q.order_by(StockMovement.movement_date.desc(), StockMovement.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def movements_for_reference(scope, reference_type: str, reference_id) -> list[StockMovement]:
    """All movements caused by one document, in write order."""
    return (
        scope.query(StockMovement)
        .filter(
            StockMovement.reference_type == reference_type,
            StockMovement.reference_id == str(reference_id),
        )
        .order_by(StockMovement.id.asc())
        .all()
    )


def latest_movement(scope, item_id: int, location_id: int) -> StockMovement | None:
    return (
        scope.query(StockMovement)
        .filter(
            StockMovement.item_id == item_id,
            StockMovement.location_id == location_id,
        )
        .order_by(StockMovement.id.desc())
        .first()
    )


def verify_ledger(*, org_id: int | None = None) -> list[str]:
    """
    Check positions against the ledger. Returns human-readable violations.

    - available_quantity == quantity - reserved_quantity
    - each movement satisfies quantity_before + quantity == quantity_after
    - each position's quantity equals quantity_after of its latest movement
      (0 when it has none)

    Maintenance check: reads across tenants unless org_id is given. With
    org_id the tenant is bound first, so row-level security lets the rows
    through; the cross-tenant form needs a role that bypasses it.
    """
    problems = []

    if org_id is not None:
        TenantScope(org_id).activate()

    positions = db.session.query(InventoryPosition)
    movements = db.session.query(StockMovement)
    if org_id is not None:
        positions = positions.filter(InventoryPosition.org_id == org_id)
        movements = movements.filter(StockMovement.org_id == org_id)

    for mv in movements.filter(
        StockMovement.quantity_before + StockMovement.quantity != StockMovement.quantity_after
    ).all():
        problems.append(
            f"movement {mv.id}: {mv.quantity_before} + {mv.quantity} != {mv.quantity_after}"
        )

    for pos in positions.order_by(InventoryPosition.id.asc()).all():
        if pos.available_quantity != pos.quantity - pos.reserved_quantity:
            problems.append(
                f"position {pos.id}: available {pos.available_quantity} != "
                f"{pos.quantity} - {pos.reserved_quantity}"
            )

        latest = (
            db.session.query(StockMovement)
            .filter(
                StockMovement.org_id == pos.org_id,
                StockMovement.item_id == pos.item_id,
                StockMovement.location_id == pos.location_id,
            )
            .order_by(StockMovement.id.desc())
            .first()
        )
        expected = latest.quantity_after if latest is not None else 0
        if pos.quantity != expected:
            problems.append(
                f"position {pos.id} (item {pos.item_id}, location {pos.location_id}): "
                f"quantity {pos.quantity} != latest movement quantity_after {expected}"
            )

    return problems
