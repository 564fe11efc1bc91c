from __future__ import annotations

from ..extensions import db
from opscore.time_utils import to_utc_z


INVOICE_STATUS_DRAFT = "DRAFT"
INVOICE_STATUS_SENT = "SENT"
INVOICE_STATUS_APPROVED = "APPROVED"
INVOICE_STATUS_PARTIALLY_PAID = "PARTIALLY_PAID"
INVOICE_STATUS_PAID = "PAID"
INVOICE_STATUS_OVERDUE = "OVERDUE"
INVOICE_STATUS_CANCELLED = "CANCELLED"


class SalesInvoice(db.Model):
    """
    Customer invoice (issued by invoicing services).

    PAYMENT AGGREGATES:
    amount_paid_cents, balance_due_cents and the paid-side of status are
    derived from active PaymentAllocation rows and written only by
    payment_service.recompute_invoice_balance:
    - amount_paid_cents = sum(active allocations)
    - balance_due_cents = grand_total_cents - amount_paid_cents
    - SENT -> PARTIALLY_PAID -> PAID, and back toward SENT on cancellation
    """
    __tablename__ = "sales_invoices"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_number", name="uq_sales_invoices_org_docnum"),
        db.Index("ix_sales_invoices_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    # Status an invoice returns to once no payment remains applied
    UNPAID_STATUS = INVOICE_STATUS_SENT

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    sales_order_id = db.Column(db.Integer, db.ForeignKey("sales_orders.id"), nullable=True)

    document_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(24), nullable=False, default=INVOICE_STATUS_DRAFT)
    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    grand_total_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_due_cents = db.Column(db.Integer, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SalesInvoice id={self.id} doc_num={self.document_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "customer_id": self.customer_id,
            "sales_order_id": self.sales_order_id,
            "document_number": self.document_number,
            "status": self.status,
            "invoice_date": to_utc_z(self.invoice_date),
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "grand_total_cents": self.grand_total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "version_id": self.version_id,
        }


class PurchaseInvoice(db.Model):
    """
    Supplier invoice. Same payment aggregates as SalesInvoice, but the
    unpaid status is APPROVED (bills are approved before they are paid).
    """
    __tablename__ = "purchase_invoices"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_number", name="uq_purchase_invoices_org_docnum"),
        db.Index("ix_purchase_invoices_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    UNPAID_STATUS = INVOICE_STATUS_APPROVED

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True)

    document_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(24), nullable=False, default=INVOICE_STATUS_DRAFT)
    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    grand_total_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_due_cents = db.Column(db.Integer, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseInvoice id={self.id} doc_num={self.document_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "supplier_id": self.supplier_id,
            "purchase_order_id": self.purchase_order_id,
            "document_number": self.document_number,
            "status": self.status,
            "invoice_date": to_utc_z(self.invoice_date),
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "grand_total_cents": self.grand_total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "version_id": self.version_id,
        }
