from __future__ import annotations

from ..extensions import db
from opscore.time_utils import to_utc_z


PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_COMPLETED = "COMPLETED"
PAYMENT_STATUS_CANCELLED = "CANCELLED"

PAYMENT_TYPE_CUSTOMER = "CUSTOMER_PAYMENT"
PAYMENT_TYPE_SUPPLIER = "SUPPLIER_PAYMENT"

INVOICE_TYPE_SALES = "SALES_INVOICE"
INVOICE_TYPE_PURCHASE = "PURCHASE_INVOICE"


class Payment(db.Model):
    """
    Money received from a customer or paid to a supplier.

    LIFECYCLE:
    1. PENDING: Created; allocations applied to invoices
    2. COMPLETED: Allocations sum to the amount (automatic) or approved
    3. CANCELLED: Allocations reversed (only from PENDING)

    INVARIANT: sum(allocations.amount_allocated_cents) <= amount_cents.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("org_id", "payment_number", name="uq_payments_org_number"),
        db.Index("ix_payments_org_status", "org_id", "status"),
        db.Index("ix_payments_org_date", "org_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # Human-readable number (e.g., "PAY-20260114-00001")
    payment_number = db.Column(db.String(64), nullable=False)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)

    payment_type = db.Column(db.String(24), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    payment_method = db.Column(db.String(24), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    reference_number = db.Column(db.String(128), nullable=True)
    bank_account = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)

    # Lifecycle user attribution
    created_by_user_id = db.Column(db.Integer, nullable=True)
    approved_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)

    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer")
    supplier = db.relationship("Supplier")
    allocations = db.relationship(
        "PaymentAllocation",
        back_populates="payment",
        order_by="PaymentAllocation.id",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def amount_allocated_cents(self) -> int:
        return sum(a.amount_allocated_cents for a in self.allocations if a.is_active)

    @property
    def amount_unallocated_cents(self) -> int:
        return self.amount_cents - self.amount_allocated_cents

    def __repr__(self) -> str:
        return f"<Payment id={self.id} number={self.payment_number!r} status={self.status}>"

    def to_dict(self, include_allocations: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "payment_number": self.payment_number,
            "payment_date": to_utc_z(self.payment_date),
            "payment_type": self.payment_type,
            "customer_id": self.customer_id,
            "supplier_id": self.supplier_id,
            "payment_method": self.payment_method,
            "amount_cents": self.amount_cents,
            "amount_allocated_cents": self.amount_allocated_cents,
            "amount_unallocated_cents": self.amount_unallocated_cents,
            "currency": self.currency,
            "reference_number": self.reference_number,
            "bank_account": self.bank_account,
            "notes": self.notes,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_allocations:
            data["allocations"] = [a.to_dict() for a in self.allocations]
        return data


class PaymentAllocation(db.Model):
    """
    Portion of a payment applied to one invoice.

    Looked up in both directions: by payment, and by (invoice_type, invoice_id).
    is_active turns False when the owning payment is cancelled; inactive
    allocations no longer count toward the invoice's amount paid.
    """
    __tablename__ = "payment_allocations"
    __table_args__ = (
        db.Index("ix_allocations_invoice", "org_id", "invoice_type", "invoice_id"),
        db.CheckConstraint("amount_allocated_cents > 0", name="ck_allocations_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)

    invoice_type = db.Column(db.String(24), nullable=False)
    invoice_id = db.Column(db.Integer, nullable=False)
    amount_allocated_cents = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    payment = db.relationship("Payment", back_populates="allocations")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "invoice_type": self.invoice_type,
            "invoice_id": self.invoice_id,
            "amount_allocated_cents": self.amount_allocated_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "reversed_at": to_utc_z(self.reversed_at) if self.reversed_at else None,
        }
