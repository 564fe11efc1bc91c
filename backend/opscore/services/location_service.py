# Overview: Service-layer operations for inventory locations; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import InventoryLocation, InventoryPosition, StockMovement
from ..models.inventory import LOCATION_STATUS_ACTIVE, LOCATION_STATUS_INACTIVE
from .concurrency import unit_of_work
from ..validation import optional_text, require_text
from .errors import PreconditionError, ValidationError


LOCATION_STATUSES = {LOCATION_STATUS_ACTIVE, LOCATION_STATUS_INACTIVE}


def _normalize_code(code) -> str:
    code = require_text(code, "code").upper()
    if len(code) > 32:
        raise ValidationError("code must be at most 32 characters")
    return code


def _unset_other_defaults(scope, keep_id: int | None = None) -> None:
    q = scope.query(InventoryLocation).filter(InventoryLocation.is_default.is_(True))
    if keep_id is not None:
        q = q.filter(InventoryLocation.id != keep_id)
    for loc in q.all():
        loc.is_default = False


def create_location(
    scope,
    *,
    code: str,
    name: str,
    address: str | None = None,
    is_default: bool = False,
    status: str = LOCATION_STATUS_ACTIVE,
) -> InventoryLocation:
    """
    Create a location for the tenant.

    Flagging the new location as default clears the flag on every other
    location of the tenant in the same transaction.
    """
    code = _normalize_code(code)
    name = require_text(name, "name")
    address = optional_text(address, "address")
    if status not in LOCATION_STATUSES:
        raise ValidationError(f"invalid status: {status}")
    if is_default and status != LOCATION_STATUS_ACTIVE:
        raise ValidationError("default location must be ACTIVE")

    with unit_of_work(scope):
        if scope.query(InventoryLocation).filter_by(code=code).first():
            raise ValidationError(f'Location with code "{code}" already exists')

        if is_default:
            _unset_other_defaults(scope)

        location = InventoryLocation(
            org_id=scope.org_id,
            code=code,
            name=name,
            address=address,
            is_default=bool(is_default),
            status=status,
        )
        db.session.add(location)

    return location


def update_location(
    scope,
    location_id: int,
    *,
    name: str | None = None,
    address: str | None = None,
    is_default: bool | None = None,
    status: str | None = None,
) -> InventoryLocation:
    """Partial update. Deactivating the default location also clears its default flag."""
    if status is not None and status not in LOCATION_STATUSES:
        raise ValidationError(f"invalid status: {status}")

    with unit_of_work(scope):
        location = scope.require(InventoryLocation, location_id, label="Location")

        if name is not None:
            location.name = require_text(name, "name")
        if address is not None:
            location.address = optional_text(address, "address")
        if status is not None:
            location.status = status
            if status != LOCATION_STATUS_ACTIVE:
                location.is_default = False

        if is_default is True:
            if location.status != LOCATION_STATUS_ACTIVE:
                raise ValidationError("default location must be ACTIVE")
            _unset_other_defaults(scope, keep_id=location.id)
            location.is_default = True
        elif is_default is False:
            location.is_default = False

    return location


def delete_location(scope, location_id: int) -> None:
    """
    Delete a location that never held stock.

    A location with inventory positions or ledger history cannot be deleted
    (movements are append-only and reference it); deactivate it instead.
    """
    with unit_of_work(scope):
        location = scope.require(InventoryLocation, location_id, label="Location", lock=True)

        has_positions = scope.query(InventoryPosition).filter_by(location_id=location.id).first() is not None
        has_movements = scope.query(StockMovement).filter_by(location_id=location.id).first() is not None
        if has_positions or has_movements:
            raise PreconditionError(
                f"Cannot delete location {location.code} with existing inventory; "
                "transfer or remove the stock first, or deactivate the location"
            )

        db.session.delete(location)


def list_locations(scope, *, status: str | None = None, search: str | None = None) -> list[InventoryLocation]:
    q = scope.query(InventoryLocation)
    if status:
        q = q.filter(InventoryLocation.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                InventoryLocation.code.ilike(pattern),
                InventoryLocation.name.ilike(pattern),
                InventoryLocation.address.ilike(pattern),
            )
        )
    return q.order_by(InventoryLocation.is_default.desc(), InventoryLocation.name.asc()).all()


def get_location(scope, location_id: int) -> InventoryLocation:
    return scope.require(InventoryLocation, location_id, label="Location")


def get_default_location(scope) -> InventoryLocation | None:
    """The tenant's ACTIVE default location, or None when none is configured."""
    return (
        scope.query(InventoryLocation)
        .filter(
            InventoryLocation.is_default.is_(True),
            InventoryLocation.status == LOCATION_STATUS_ACTIVE,
        )
        .order_by(InventoryLocation.id.asc())
        .first()
    )


def require_active_location(scope, location_id: int) -> InventoryLocation:
    location = scope.require(InventoryLocation, location_id, label="Location")
    if location.status != LOCATION_STATUS_ACTIVE:
        raise PreconditionError(f"Location {location.code} is not active")
    return location


def require_default_location(scope) -> InventoryLocation:
    location = get_default_location(scope)
    if location is None:
        raise PreconditionError(
            "No default location configured for this organization; "
            "specify a location or mark one as default"
        )
    return location


def resolve_line_locations(scope, requested_ids) -> dict:
    """
    Map each requested location id (None meaning "default") to an active location.

    Runs before any write so that a missing default fails the whole
    operation up front. The default is only looked up when some line
    omits its location.
    """
    resolved = {}
    default = None
    for location_id in requested_ids:
        if location_id in resolved:
            continue
        if location_id is None:
            if default is None:
                default = require_default_location(scope)
            resolved[None] = default
        else:
            resolved[location_id] = require_active_location(scope, location_id)
    return resolved
