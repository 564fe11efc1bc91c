# Overview: Service-layer operations for inventory positions; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import InventoryPosition, Item, StockMovement
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_DAMAGE,
)
from opscore.time_utils import coerce_business_datetime, utcnow
from .concurrency import lock_for_update, unit_of_work
from .errors import InsufficientStockError, InvariantViolation, NotFoundError, ValidationError
from .ledger_service import append_stock_movement
from ..validation import optional_text
from .location_service import require_active_location
"""
Inventory Position Invariants (authoritative)

Position model:
- One InventoryPosition per (org, item, location), created lazily on first
  movement and never deleted.
- available_quantity = quantity - reserved_quantity, recomputed on every write.
- quantity never goes negative; an outbound change that would do so fails
  before anything is written.

Single choke-point:
- Every quantity change goes through apply_quantity_delta, which writes the
  position and appends exactly one StockMovement in the same transaction.
- apply_quantity_delta flushes but never commits; the caller's unit of work
  decides whether the position write and the ledger row land together or
  vanish together.
- Reservations (reserve/release) move reserved_quantity only. They are not
  quantity changes and write no ledger row.

Concurrency:
- Positions are read with SELECT ... FOR UPDATE. Where the store ignores
  row locks, the version_id column turns a lost update into StaleDataError,
  reported as a retryable InsufficientStockError.
"""


def positive_quantity(value, *, field: str = "quantity") -> int:
    """Validate a strictly positive integer quantity."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value <= 0:
        raise ValidationError(f"{field} must be positive")
    return value


def _non_negative_level(value, field: str):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < 0:
        raise ValidationError(f"{field} cannot be negative")
    return value


def business_datetime(value, *, field: str):
    try:
        return coerce_business_datetime(value, field=field)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def stock_conflict(exc: Exception) -> InsufficientStockError:
    """Translate a store conflict on a position into the stock guard's error."""
    return InsufficientStockError(
        "Stock changed concurrently; re-read and retry",
        retryable=True,
    )


def require_item(scope, item_id: int) -> Item:
    return scope.require(Item, item_id, label="Item")


def _position_query(scope, item_id: int, location_id: int):
    return scope.query(InventoryPosition).filter(
        InventoryPosition.item_id == item_id,
        InventoryPosition.location_id == location_id,
    )


def get_position(scope, item_id: int, location_id: int, *, lock: bool = False) -> InventoryPosition | None:
    q = _position_query(scope, item_id, location_id)
    if lock:
        q = lock_for_update(q)
    return q.first()


def _create_position(scope, item_id: int, location_id: int) -> InventoryPosition:
    position = InventoryPosition(
        org_id=scope.org_id,
        item_id=item_id,
        location_id=location_id,
        quantity=0,
        reserved_quantity=0,
        available_quantity=0,
    )
    db.session.add(position)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # Another transaction created the same (org, item, location) row first
        raise InvariantViolation(
            f"Position for item {item_id} at location {location_id} was created concurrently; retry",
            retryable=True,
        ) from exc
    return position


def apply_quantity_delta(
    scope,
    *,
    item_id: int,
    location_id: int,
    delta: int,
    movement_type: str,
    movement_date=None,
    reference_type: str | None = None,
    reference_id=None,
    related_movement: StockMovement | None = None,
    unit_cost_cents: int | None = None,
    reason: str | None = None,
    actor_user_id: int | None = None,
    reserved_quantity: int | None = None,
) -> tuple[InventoryPosition, StockMovement]:
    """
    Apply a signed quantity change to one position and record it in the ledger.

    Steps (all inside the caller's transaction):
    1. Lock-read the position, creating it on first inbound movement
    2. Reject the change if quantity would go negative (nothing written)
    3. Optionally replace reserved_quantity, then recompute available
    4. Append one StockMovement with before/after snapshots

    Returns (position, movement). Flushes, never commits.

    Raises:
        ValidationError: delta is zero/non-integer or reserved_quantity negative
        InsufficientStockError: the change would drive quantity below zero
            (retryable when caused by a concurrent writer)
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")
    if reserved_quantity is not None and reserved_quantity < 0:
        raise ValidationError("reserved_quantity cannot be negative")

    movement_dt = business_datetime(movement_date, field="movement_date")

    position = get_position(scope, item_id, location_id, lock=True)
    if position is None:
        if delta < 0:
            raise InsufficientStockError(
                f"Insufficient stock for item {item_id} at location {location_id}: "
                f"on hand 0, requested {-delta}",
                item_id=item_id,
                location_id=location_id,
                available=0,
                requested=-delta,
            )
        position = _create_position(scope, item_id, location_id)

    quantity_before = position.quantity or 0
    quantity_after = quantity_before + delta
    if quantity_after < 0:
        raise InsufficientStockError(
            f"Insufficient stock for item {item_id} at location {location_id}: "
            f"on hand {quantity_before}, requested {-delta}",
            item_id=item_id,
            location_id=location_id,
            available=quantity_before,
            requested=-delta,
        )

    position.quantity = quantity_after
    if reserved_quantity is not None:
        position.reserved_quantity = reserved_quantity
    position.recompute_available()

    try:
        db.session.flush()
    except StaleDataError as exc:
        message = f"Stock for item {item_id} at location {location_id} changed concurrently; re-read and retry"
        if delta > 0:
            raise InvariantViolation(message, retryable=True) from exc
        raise InsufficientStockError(
            message,
            item_id=item_id,
            location_id=location_id,
            available=quantity_before,
            requested=-delta,
            retryable=True,
        ) from exc

    movement = append_stock_movement(
        org_id=scope.org_id,
        item_id=item_id,
        location_id=location_id,
        movement_type=movement_type,
        movement_date=movement_dt,
        quantity=delta,
        quantity_before=quantity_before,
        reference_type=reference_type,
        reference_id=reference_id,
        related_movement=related_movement,
        unit_cost_cents=unit_cost_cents,
        reason=reason,
        created_by_user_id=actor_user_id,
    )
    return position, movement


def get_total_stock_by_item(scope, item_id: int) -> dict:
    """Sum of quantity, reserved and available across all of the tenant's locations."""
    row = (
        db.session.query(
            func.coalesce(func.sum(InventoryPosition.quantity), 0).label("quantity"),
            func.coalesce(func.sum(InventoryPosition.reserved_quantity), 0).label("reserved"),
            func.coalesce(func.sum(InventoryPosition.available_quantity), 0).label("available"),
        )
        .filter(
            InventoryPosition.org_id == scope.org_id,
            InventoryPosition.item_id == item_id,
        )
        .one()
    )
    return {
        "item_id": item_id,
        "total_quantity": int(row.quantity or 0),
        "total_reserved": int(row.reserved or 0),
        "total_available": int(row.available or 0),
    }


def list_positions(
    scope,
    *,
    item_id: int | None = None,
    location_id: int | None = None,
    low_stock: bool = False,
    out_of_stock: bool = False,
) -> list[InventoryPosition]:
    q = scope.query(InventoryPosition)
    if item_id is not None:
        q = q.filter(InventoryPosition.item_id == item_id)
    if location_id is not None:
        q = q.filter(InventoryPosition.location_id == location_id)
    if low_stock:
        q = q.filter(
            or_(
                and_(
                    InventoryPosition.reorder_point.isnot(None),
                    InventoryPosition.quantity <= InventoryPosition.reorder_point,
                ),
                and_(
                    InventoryPosition.minimum_stock_level.isnot(None),
                    InventoryPosition.quantity < InventoryPosition.minimum_stock_level,
                ),
            )
        )
    if out_of_stock:
        q = q.filter(InventoryPosition.quantity <= 0)
    return q.order_by(InventoryPosition.item_id.asc(), InventoryPosition.location_id.asc()).all()


def set_stock_levels(
    scope,
    *,
    item_id: int,
    location_id: int,
    minimum_stock_level: int | None = None,
    maximum_stock_level: int | None = None,
    reorder_point: int | None = None,
) -> InventoryPosition:
    """
    Set stocking thresholds on a position (creating an empty one if needed).

    Thresholds only; quantities change exclusively through movements.
    """
    minimum_stock_level = _non_negative_level(minimum_stock_level, "minimum_stock_level")
    maximum_stock_level = _non_negative_level(maximum_stock_level, "maximum_stock_level")
    reorder_point = _non_negative_level(reorder_point, "reorder_point")
    if (
        minimum_stock_level is not None
        and maximum_stock_level is not None
        and minimum_stock_level > maximum_stock_level
    ):
        raise ValidationError("minimum_stock_level cannot exceed maximum_stock_level")

    with unit_of_work(scope, on_conflict=stock_conflict):
        require_item(scope, item_id)
        require_active_location(scope, location_id)

        position = get_position(scope, item_id, location_id, lock=True)
        if position is None:
            position = _create_position(scope, item_id, location_id)

        position.minimum_stock_level = minimum_stock_level
        position.maximum_stock_level = maximum_stock_level
        position.reorder_point = reorder_point

    return position


def reserve_stock(scope, *, item_id: int, location_id: int, quantity: int) -> InventoryPosition:
    """
    Earmark available stock (e.g., for a confirmed order).

    Raises:
        NotFoundError: no position for the item at that location
        InsufficientStockError: available quantity cannot cover the reservation
    """
    positive_quantity(quantity)

    with unit_of_work(scope, on_conflict=stock_conflict):
        position = get_position(scope, item_id, location_id, lock=True)
        if position is None:
            raise NotFoundError(f"No inventory for item {item_id} at location {location_id}")

        if position.available_quantity < quantity:
            raise InsufficientStockError(
                f"Insufficient available stock for item {item_id} at location {location_id}: "
                f"available {position.available_quantity}, requested {quantity}",
                item_id=item_id,
                location_id=location_id,
                available=position.available_quantity,
                requested=quantity,
            )

        position.reserved_quantity = (position.reserved_quantity or 0) + quantity
        position.recompute_available()

    return position


def release_reserved_stock(scope, *, item_id: int, location_id: int, quantity: int) -> InventoryPosition:
    """Release a reservation; reserved_quantity never drops below zero."""
    positive_quantity(quantity)

    with unit_of_work(scope, on_conflict=stock_conflict):
        position = get_position(scope, item_id, location_id, lock=True)
        if position is None:
            raise NotFoundError(f"No inventory for item {item_id} at location {location_id}")

        position.reserved_quantity = max(0, (position.reserved_quantity or 0) - quantity)
        position.recompute_available()

    return position


def adjust_stock(
    scope,
    *,
    item_id: int,
    location_id: int,
    delta: int,
    reason: str | None,
    actor_user_id: int | None = None,
    unit_cost_cents: int | None = None,
    movement_date=None,
) -> InventoryPosition:
    """
    Manual correction of on-hand quantity (count differences, found stock).

    Writes one ADJUSTMENT movement referencing "adjustment". A negative delta
    larger than the on-hand quantity fails with InsufficientStockError.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")
    unit_cost_cents = _non_negative_level(unit_cost_cents, "unit_cost_cents")
    reason = optional_text(reason, "reason") or "Stock adjustment"

    with unit_of_work(scope, on_conflict=stock_conflict):
        require_item(scope, item_id)
        require_active_location(scope, location_id)

        position, _movement = apply_quantity_delta(
            scope,
            item_id=item_id,
            location_id=location_id,
            delta=delta,
            movement_type=MOVEMENT_ADJUSTMENT,
            movement_date=movement_date or utcnow(),
            reference_type="adjustment",
            unit_cost_cents=unit_cost_cents,
            reason=reason,
            actor_user_id=actor_user_id,
        )

    return position


def record_damage(
    scope,
    *,
    item_id: int,
    location_id: int,
    quantity: int,
    reason: str | None,
    actor_user_id: int | None = None,
    movement_date=None,
) -> InventoryPosition:
    """Write off damaged stock as a DAMAGE movement (negative delta)."""
    positive_quantity(quantity)
    reason = optional_text(reason, "reason") or "Damaged stock"

    with unit_of_work(scope, on_conflict=stock_conflict):
        require_item(scope, item_id)
        require_active_location(scope, location_id)

        position, _movement = apply_quantity_delta(
            scope,
            item_id=item_id,
            location_id=location_id,
            delta=-quantity,
            movement_type=MOVEMENT_DAMAGE,
            movement_date=movement_date or utcnow(),
            reference_type="damage",
            reason=reason,
            actor_user_id=actor_user_id,
        )

    return position
