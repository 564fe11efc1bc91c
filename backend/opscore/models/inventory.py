from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..extensions import db
from opscore.time_utils import to_utc_z


# Movement types
MOVEMENT_INBOUND = "INBOUND"
MOVEMENT_OUTBOUND = "OUTBOUND"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TRANSFER = "TRANSFER"
MOVEMENT_DAMAGE = "DAMAGE"

MOVEMENT_TYPES = {
    MOVEMENT_INBOUND,
    MOVEMENT_OUTBOUND,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER,
    MOVEMENT_DAMAGE,
}

# TRANSFER is a reporting type: a transfer is written as an OUTBOUND and an
# INBOUND leg sharing reference_type "transfer", and filtering by TRANSFER
# selects those legs. No row is ever written with it.
WRITABLE_MOVEMENT_TYPES = MOVEMENT_TYPES - {MOVEMENT_TRANSFER}

LOCATION_STATUS_ACTIVE = "ACTIVE"
LOCATION_STATUS_INACTIVE = "INACTIVE"


class InventoryLocation(db.Model):
    """
    Physical or logical stock location (warehouse, shelf, van).

    MULTI-TENANT: Location codes are unique within an organization.

    DEFAULT LOCATION:
    At most one ACTIVE location per organization is flagged is_default.
    Receipts and deliveries that omit a location fall back to it; when
    none is configured those operations fail before writing anything.
    """
    __tablename__ = "inventory_locations"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_locations_org_code"),
        db.Index("ix_locations_org_default", "org_id", "is_default"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text, nullable=True)

    is_default = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default=LOCATION_STATUS_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("locations", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryLocation id={self.id} code={self.code!r} default={self.is_default}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "name": self.name,
            "address": self.address,
            "is_default": self.is_default,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryPosition(db.Model):
    """
    Current stock of one item at one location.

    INVARIANTS:
    - One row per (org_id, item_id, location_id)
    - available_quantity = quantity - reserved_quantity, recomputed on every write
    - quantity equals quantity_after of the latest StockMovement for the pair
    - Rows are created lazily and never deleted (zero rows stay for history)

    WRITES: Only through inventory_service.apply_quantity_delta and the
    reservation helpers. version_id catches lost updates from concurrent
    writers on stores that ignore SELECT ... FOR UPDATE.
    """
    __tablename__ = "inventory_positions"
    __table_args__ = (
        db.UniqueConstraint("org_id", "item_id", "location_id", name="uq_positions_org_item_location"),
        db.Index("ix_positions_org_location", "org_id", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    available_quantity = db.Column(db.Integer, nullable=False, default=0)

    # Stocking thresholds (optional)
    minimum_stock_level = db.Column(db.Integer, nullable=True)
    maximum_stock_level = db.Column(db.Integer, nullable=True)
    reorder_point = db.Column(db.Integer, nullable=True)

    last_counted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    item = db.relationship("Item")
    location = db.relationship("InventoryLocation")

    __mapper_args__ = {"version_id_col": version_id}

    def recompute_available(self) -> None:
        self.available_quantity = (self.quantity or 0) - (self.reserved_quantity or 0)

    @property
    def is_low_stock(self) -> bool:
        if self.reorder_point is not None and self.quantity <= self.reorder_point:
            return True
        if self.minimum_stock_level is not None and self.quantity < self.minimum_stock_level:
            return True
        return False

    def __repr__(self) -> str:
        return (
            f"<InventoryPosition item={self.item_id} location={self.location_id} "
            f"qty={self.quantity} reserved={self.reserved_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "item_id": self.item_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "minimum_stock_level": self.minimum_stock_level,
            "maximum_stock_level": self.maximum_stock_level,
            "reorder_point": self.reorder_point,
            "is_low_stock": self.is_low_stock,
            "last_counted_at": to_utc_z(self.last_counted_at) if self.last_counted_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of a single quantity change.

    INVARIANTS:
    - quantity_before + quantity == quantity_after
    - quantity_before/quantity_after are snapshots of the position taken
      in the same transaction as the position write
    - Rows are never updated or deleted (enforced by mapper events below)

    REFERENCES:
    reference_type/reference_id point back to the causing document
    ("purchase_order", "sales_order", "adjustment", "damage", "transfer").
    The inbound leg of a transfer also links the outbound leg through
    related_movement_id.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_org_item_date", "org_id", "item_id", "movement_date"),
        db.Index("ix_movements_org_location_date", "org_id", "location_id", "movement_date"),
        db.Index("ix_movements_reference", "org_id", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=False)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    movement_date = db.Column(db.DateTime(timezone=True), nullable=False)

    # Signed delta
    quantity = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)
    related_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    unit_cost_cents = db.Column(db.Integer, nullable=True)
    total_cost_cents = db.Column(db.Integer, nullable=True)

    reason = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item")
    location = db.relationship("InventoryLocation")
    related_movement = db.relationship(
        "StockMovement",
        remote_side=[id],
        backref=db.backref("linked_movements", lazy=True),
    )

    @property
    def counterpart(self) -> "StockMovement | None":
        """The other leg of a transfer, whichever side holds the link."""
        if self.related_movement is not None:
            return self.related_movement
        if self.linked_movements:
            return self.linked_movements[0]
        return None

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} type={self.movement_type} item={self.item_id} "
            f"location={self.location_id} delta={self.quantity}>"
        )

    def to_dict(self) -> dict:
        counterpart = self.counterpart
        return {
            "id": self.id,
            "org_id": self.org_id,
            "item_id": self.item_id,
            "location_id": self.location_id,
            "movement_type": self.movement_type,
            "movement_date": to_utc_z(self.movement_date),
            "quantity": self.quantity,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "related_movement_id": counterpart.id if counterpart is not None else None,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class ImmutableLedgerError(RuntimeError):
    """Raised when code tries to modify or delete a stock movement."""
    pass


@event.listens_for(StockMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    # Backref collection changes mark the row dirty without touching columns
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise ImmutableLedgerError(f"stock movement {target.id} is immutable")


@event.listens_for(StockMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise ImmutableLedgerError(f"stock movement {target.id} cannot be deleted")
