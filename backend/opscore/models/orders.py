from __future__ import annotations

from ..extensions import db
from opscore.time_utils import to_utc_z


# Purchase order statuses
PO_STATUS_DRAFT = "DRAFT"
PO_STATUS_APPROVED = "APPROVED"
PO_STATUS_PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
PO_STATUS_COMPLETED = "COMPLETED"
PO_STATUS_CANCELLED = "CANCELLED"

# Sales order statuses
SO_STATUS_DRAFT = "DRAFT"
SO_STATUS_CONFIRMED = "CONFIRMED"
SO_STATUS_PARTIALLY_DELIVERED = "PARTIALLY_DELIVERED"
SO_STATUS_COMPLETED = "COMPLETED"
SO_STATUS_CANCELLED = "CANCELLED"


class PurchaseOrder(db.Model):
    """
    Purchase order header (created and edited by order services).

    STATUS is a projection of the lines after every goods receipt:
    DRAFT/APPROVED -> PARTIALLY_RECEIVED -> COMPLETED.
    CANCELLED is terminal and only reachable before anything is received.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_number", name="uq_purchase_orders_org_docnum"),
        db.Index("ix_purchase_orders_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    document_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(24), nullable=False, default=PO_STATUS_DRAFT)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier")
    lines = db.relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        order_by="PurchaseOrderLine.line_number",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} doc_num={self.document_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "supplier_id": self.supplier_id,
            "document_number": self.document_number,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class PurchaseOrderLine(db.Model):
    """
    Purchase order line.

    quantity_received is a running total maintained only by the goods
    receipt engine; it never exceeds quantity_ordered.
    """
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "line_number", name="uq_po_lines_order_line_number"),
        db.CheckConstraint("quantity_received <= quantity_ordered", name="ck_po_lines_received_le_ordered"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    line_number = db.Column(db.Integer, nullable=False)
    quantity_ordered = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    purchase_order = db.relationship("PurchaseOrder", back_populates="lines")
    item = db.relationship("Item")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def quantity_outstanding(self) -> int:
        return self.quantity_ordered - (self.quantity_received or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "item_id": self.item_id,
            "line_number": self.line_number,
            "quantity_ordered": self.quantity_ordered,
            "quantity_received": self.quantity_received,
            "quantity_outstanding": self.quantity_outstanding,
            "unit_price_cents": self.unit_price_cents,
        }


class SalesOrder(db.Model):
    """
    Sales order header.

    STATUS is a projection of the lines after every delivery:
    DRAFT/CONFIRMED -> PARTIALLY_DELIVERED -> COMPLETED.
    """
    __tablename__ = "sales_orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_number", name="uq_sales_orders_org_docnum"),
        db.Index("ix_sales_orders_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    document_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(24), nullable=False, default=SO_STATUS_DRAFT)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer")
    lines = db.relationship(
        "SalesOrderLine",
        back_populates="sales_order",
        order_by="SalesOrderLine.line_number",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SalesOrder id={self.id} doc_num={self.document_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "customer_id": self.customer_id,
            "document_number": self.document_number,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SalesOrderLine(db.Model):
    __tablename__ = "sales_order_lines"
    __table_args__ = (
        db.UniqueConstraint("sales_order_id", "line_number", name="uq_so_lines_order_line_number"),
        db.CheckConstraint("quantity_delivered <= quantity_ordered", name="ck_so_lines_delivered_le_ordered"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    sales_order_id = db.Column(db.Integer, db.ForeignKey("sales_orders.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    line_number = db.Column(db.Integer, nullable=False)
    quantity_ordered = db.Column(db.Integer, nullable=False)
    quantity_delivered = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sales_order = db.relationship("SalesOrder", back_populates="lines")
    item = db.relationship("Item")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def quantity_outstanding(self) -> int:
        return self.quantity_ordered - (self.quantity_delivered or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_order_id": self.sales_order_id,
            "item_id": self.item_id,
            "line_number": self.line_number,
            "quantity_ordered": self.quantity_ordered,
            "quantity_delivered": self.quantity_delivered,
            "quantity_outstanding": self.quantity_outstanding,
            "unit_price_cents": self.unit_price_cents,
        }
