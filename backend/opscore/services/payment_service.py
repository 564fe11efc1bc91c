# Overview: Service-layer operations for payments; allocates payments across invoices.

"""
Payment Allocation Service

WHY: Record money received from customers (or paid to suppliers) and apply
it across one or more open invoices, keeping each invoice's amount paid,
balance due and status consistent, and reversible when a payment is
cancelled.

DESIGN PRINCIPLES:
- One payment, many allocations; one invoice, many allocations
- Invoice payment aggregates are derived, never edited directly: a single
  function (recompute_invoice_balance) rebuilds them from active allocations
- Cancellation deactivates allocations instead of deleting them
- All-or-nothing: a payment and every allocation land in one transaction

INVARIANTS:
- sum(active allocations of a payment) <= payment amount; equality completes it
- each allocation <= the invoice's balance due at allocation time
- invoice.amount_paid_cents == sum(active allocations of the invoice)
"""

from __future__ import annotations

from collections import defaultdict

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    Customer,
    Payment,
    PaymentAllocation,
    PurchaseInvoice,
    SalesInvoice,
    Supplier,
)
from ..models.invoices import (
    INVOICE_STATUS_CANCELLED,
    INVOICE_STATUS_DRAFT,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PARTIALLY_PAID,
)
from ..models.payments import (
    INVOICE_TYPE_PURCHASE,
    INVOICE_TYPE_SALES,
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_PENDING,
    PAYMENT_TYPE_CUSTOMER,
    PAYMENT_TYPE_SUPPLIER,
)
from opscore.time_utils import utcnow
from ..validation import optional_text
from .concurrency import lock_for_update, unit_of_work
from .document_service import next_payment_number
from .errors import (
    AllocationError,
    PaymentStateError,
    PreconditionError,
    ValidationError,
)
from .inventory_service import business_datetime


# =============================================================================
# PAYMENT METHODS / TYPES (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_BANK_TRANSFER = "BANK_TRANSFER"
METHOD_CHECK = "CHECK"
METHOD_CREDIT_CARD = "CREDIT_CARD"
METHOD_OTHER = "OTHER"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_BANK_TRANSFER,
    METHOD_CHECK,
    METHOD_CREDIT_CARD,
    METHOD_OTHER,
]

VALID_PAYMENT_TYPES = [PAYMENT_TYPE_CUSTOMER, PAYMENT_TYPE_SUPPLIER]

INVOICE_MODELS = {
    INVOICE_TYPE_SALES: SalesInvoice,
    INVOICE_TYPE_PURCHASE: PurchaseInvoice,
}

# Which invoices each payment type may settle
ALLOWED_INVOICE_TYPE = {
    PAYMENT_TYPE_CUSTOMER: INVOICE_TYPE_SALES,
    PAYMENT_TYPE_SUPPLIER: INVOICE_TYPE_PURCHASE,
}

NON_PAYABLE_INVOICE_STATUSES = {INVOICE_STATUS_DRAFT, INVOICE_STATUS_CANCELLED}


def _allocation_conflict(exc: Exception) -> AllocationError:
    return AllocationError("Invoice or payment changed concurrently; re-read and retry", retryable=True)


def _positive_cents(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents")
    if value <= 0:
        raise ValidationError(f"{field} must be positive")
    return value


def _currency(value) -> str:
    if value is None:
        return "USD"
    if not isinstance(value, str):
        raise ValidationError("currency must be a 3-letter code")
    currency = value.strip().upper() or "USD"
    if len(currency) != 3 or not currency.isalpha():
        raise ValidationError("currency must be a 3-letter code")
    return currency


def invoice_model(invoice_type: str):
    model = INVOICE_MODELS.get(invoice_type)
    if model is None:
        raise ValidationError(f"Invalid invoice type: {invoice_type}. Must be one of {sorted(INVOICE_MODELS)}")
    return model


# =============================================================================
# INVOICE AGGREGATES
# =============================================================================

def recompute_invoice_balance(scope, invoice_type: str, invoice) -> None:
    """
    Rebuild an invoice's payment aggregates from its active allocations.

    - amount_paid_cents = sum(active allocations)
    - balance_due_cents = grand_total_cents - amount_paid_cents
    - status: PAID when nothing is due, PARTIALLY_PAID when something is
      paid, back to the invoice type's unpaid status (SENT / APPROVED) when
      the last payment is withdrawn; other statuses (OVERDUE, CANCELLED)
      are kept while nothing is paid

    The only writer of these fields. Flushes pending allocations (autoflush)
    but never commits.
    """
    paid = (
        db.session.query(func.coalesce(func.sum(PaymentAllocation.amount_allocated_cents), 0))
        .filter(
            PaymentAllocation.org_id == scope.org_id,
            PaymentAllocation.invoice_type == invoice_type,
            PaymentAllocation.invoice_id == invoice.id,
            PaymentAllocation.is_active.is_(True),
        )
        .scalar()
    )
    paid = int(paid or 0)

    invoice.amount_paid_cents = paid
    invoice.balance_due_cents = invoice.grand_total_cents - paid

    if invoice.status == INVOICE_STATUS_CANCELLED:
        return

    if paid > 0 and invoice.balance_due_cents <= 0:
        invoice.status = INVOICE_STATUS_PAID
    elif paid > 0:
        invoice.status = INVOICE_STATUS_PARTIALLY_PAID
    elif invoice.status in (INVOICE_STATUS_PAID, INVOICE_STATUS_PARTIALLY_PAID):
        invoice.status = type(invoice).UNPAID_STATUS


def _lock_invoice(scope, invoice_type: str, invoice_id: int):
    """Re-read an invoice under row lock, discarding any earlier unlocked read."""
    model = invoice_model(invoice_type)
    invoice = (
        lock_for_update(scope.query(model).filter(model.id == invoice_id))
        .populate_existing()
        .first()
    )
    if invoice is None:
        raise PreconditionError(f"{model.__name__} {invoice_id} not found")
    return invoice


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def _validate_header(header: dict) -> dict:
    if not isinstance(header, dict):
        raise ValidationError("payment header must be an object")

    payment_type = header.get("payment_type")
    if payment_type not in VALID_PAYMENT_TYPES:
        raise ValidationError(f"Invalid payment type: {payment_type}. Must be one of {VALID_PAYMENT_TYPES}")

    payment_method = header.get("payment_method")
    if payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}")

    amount_cents = _positive_cents(header.get("amount_cents"), "amount_cents")

    currency = _currency(header.get("currency"))

    customer_id = header.get("customer_id")
    supplier_id = header.get("supplier_id")
    if payment_type == PAYMENT_TYPE_CUSTOMER:
        if customer_id is None:
            raise ValidationError("customer_id is required for customer payments")
        if supplier_id is not None:
            raise ValidationError("customer payments cannot name a supplier")
    else:
        if supplier_id is None:
            raise ValidationError("supplier_id is required for supplier payments")
        if customer_id is not None:
            raise ValidationError("supplier payments cannot name a customer")

    return {
        "payment_type": payment_type,
        "payment_method": payment_method,
        "amount_cents": amount_cents,
        "currency": currency,
        "customer_id": customer_id,
        "supplier_id": supplier_id,
        "payment_date": business_datetime(header.get("payment_date"), field="payment_date"),
        "reference_number": optional_text(header.get("reference_number"), "reference_number"),
        "bank_account": optional_text(header.get("bank_account"), "bank_account"),
        "notes": optional_text(header.get("notes"), "notes"),
    }


def _validate_allocations(payment_type: str, amount_cents: int, allocations) -> list[tuple[str, int, int]]:
    parsed = []
    allowed = ALLOWED_INVOICE_TYPE[payment_type]
    for entry in allocations or []:
        if not isinstance(entry, dict):
            raise ValidationError("each allocation must be an object")

        invoice_type = entry.get("invoice_type")
        invoice_model(invoice_type)
        if invoice_type != allowed:
            raise ValidationError(f"{payment_type} can only be allocated to {allowed}")

        invoice_id = entry.get("invoice_id")
        if isinstance(invoice_id, bool) or not isinstance(invoice_id, int):
            raise ValidationError("invoice_id must be an integer")

        amount = _positive_cents(entry.get("amount_cents"), "allocation amount_cents")
        parsed.append((invoice_type, invoice_id, amount))

    total = sum(amount for _t, _i, amount in parsed)
    if total > amount_cents:
        raise AllocationError(
            f"Total allocated ({total}) exceeds payment amount ({amount_cents})"
        )
    return parsed


def _check_invoice_payable(invoice, amount: int) -> None:
    if invoice.status in NON_PAYABLE_INVOICE_STATUSES:
        raise PreconditionError(
            f"Invoice {invoice.document_number} cannot receive payments in status {invoice.status}"
        )
    if amount > invoice.balance_due_cents:
        raise AllocationError(
            f"Allocation amount ({amount}) exceeds balance due ({invoice.balance_due_cents}) "
            f"for invoice {invoice.document_number}"
        )


def create_payment(
    scope,
    *,
    actor_user_id: int | None,
    header: dict,
    allocations,
) -> Payment:
    """
    Create a payment and allocate it across invoices.

    Args:
        header: payment_type, payment_method, amount_cents, currency,
            payment_date, customer_id / supplier_id, reference_number,
            bank_account, notes
        allocations: [{"invoice_type", "invoice_id", "amount_cents"}, ...]

    The payment starts PENDING and becomes COMPLETED when the allocations
    add up to the full amount.

    Raises:
        ValidationError: malformed header or allocation
        NotFoundError: unknown customer / supplier
        PreconditionError: unknown invoice, or invoice in DRAFT/CANCELLED
        AllocationError: over-allocation of the payment or an invoice
            (retryable when a concurrent payment won the race)
    """
    data = _validate_header(header)
    parsed = _validate_allocations(data["payment_type"], data["amount_cents"], allocations)

    per_invoice = defaultdict(int)
    for invoice_type, invoice_id, amount in parsed:
        per_invoice[(invoice_type, invoice_id)] += amount

    with unit_of_work(scope, on_conflict=_allocation_conflict):
        if data["customer_id"] is not None:
            scope.require(Customer, data["customer_id"], label="Customer")
        if data["supplier_id"] is not None:
            scope.require(Supplier, data["supplier_id"], label="Supplier")

        # Fail fast on unknown/unpayable invoices before anything is written
        for (invoice_type, invoice_id), amount in per_invoice.items():
            model = invoice_model(invoice_type)
            invoice = scope.get(model, invoice_id)
            if invoice is None:
                raise PreconditionError(f"{model.__name__} {invoice_id} not found")
            _check_invoice_payable(invoice, amount)

        payment = Payment(
            org_id=scope.org_id,
            payment_number=next_payment_number(org_id=scope.org_id, payment_date=data["payment_date"]),
            status=PAYMENT_STATUS_PENDING,
            created_by_user_id=actor_user_id,
            **data,
        )
        db.session.add(payment)
        db.session.flush()

        # Sorted lock order keeps two payments on the same invoices from deadlocking
        for (invoice_type, invoice_id) in sorted(per_invoice):
            invoice = _lock_invoice(scope, invoice_type, invoice_id)
            _check_invoice_payable(invoice, per_invoice[(invoice_type, invoice_id)])

        for invoice_type, invoice_id, amount in parsed:
            db.session.add(PaymentAllocation(
                org_id=scope.org_id,
                payment_id=payment.id,
                invoice_type=invoice_type,
                invoice_id=invoice_id,
                amount_allocated_cents=amount,
                is_active=True,
            ))

        for (invoice_type, invoice_id) in sorted(per_invoice):
            invoice = scope.get(invoice_model(invoice_type), invoice_id)
            recompute_invoice_balance(scope, invoice_type, invoice)

        if parsed and sum(amount for _t, _i, amount in parsed) == payment.amount_cents:
            payment.status = PAYMENT_STATUS_COMPLETED

    return payment


# =============================================================================
# PAYMENT LIFECYCLE
# =============================================================================

def cancel_payment(
    scope,
    payment_id: int,
    *,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> Payment:
    """
    Cancel a PENDING payment and withdraw its allocations.

    Each allocation is deactivated (kept for history) and each affected
    invoice is recomputed, moving it back toward SENT / APPROVED.

    Raises:
        NotFoundError: payment not found for tenant
        PaymentStateError: payment already CANCELLED, or COMPLETED (reconciled)
    """
    reason = optional_text(reason, "reason")

    with unit_of_work(scope, on_conflict=_allocation_conflict):
        payment = scope.require(Payment, payment_id, label="Payment", lock=True)

        if payment.status == PAYMENT_STATUS_CANCELLED:
            raise PaymentStateError("Payment is already cancelled")
        if payment.status == PAYMENT_STATUS_COMPLETED:
            raise PaymentStateError("Cannot cancel a completed payment")

        now = utcnow()
        touched = set()
        for allocation in payment.allocations:
            if not allocation.is_active:
                continue
            allocation.is_active = False
            allocation.reversed_at = now
            touched.add((allocation.invoice_type, allocation.invoice_id))

        for (invoice_type, invoice_id) in sorted(touched):
            invoice = _lock_invoice(scope, invoice_type, invoice_id)
            recompute_invoice_balance(scope, invoice_type, invoice)

        payment.status = PAYMENT_STATUS_CANCELLED
        payment.cancelled_at = now
        payment.cancelled_by_user_id = actor_user_id
        payment.cancellation_reason = reason
        if reason:
            payment.notes = f"{payment.notes or ''}\n\nCancelled: {reason}".strip()

    return payment


UPDATABLE_PAYMENT_FIELDS = {
    "payment_date",
    "payment_method",
    "amount_cents",
    "currency",
    "reference_number",
    "bank_account",
    "notes",
}


def _validate_changes(changes: dict) -> dict:
    if not isinstance(changes, dict):
        raise ValidationError("payment changes must be an object")

    unknown = sorted(set(changes) - UPDATABLE_PAYMENT_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {unknown}")

    data = {}
    if "payment_date" in changes:
        if changes["payment_date"] is None:
            raise ValidationError("payment_date cannot be cleared")
        data["payment_date"] = business_datetime(changes["payment_date"], field="payment_date")
    if "payment_method" in changes:
        if changes["payment_method"] not in VALID_PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method: {changes['payment_method']}. Must be one of {VALID_PAYMENT_METHODS}"
            )
        data["payment_method"] = changes["payment_method"]
    if "amount_cents" in changes:
        data["amount_cents"] = _positive_cents(changes["amount_cents"], "amount_cents")
    if "currency" in changes:
        data["currency"] = _currency(changes["currency"])
    for field in ("reference_number", "bank_account", "notes"):
        if field in changes:
            data[field] = optional_text(changes[field], field)
    return data


def update_payment(
    scope,
    payment_id: int,
    *,
    changes: dict,
    actor_user_id: int | None = None,
) -> Payment:
    """
    Edit a PENDING payment's header.

    Updatable: payment_date, payment_method, amount_cents, currency,
    reference_number, bank_account, notes. Allocations are not touched and
    the payment number keeps the date it was issued under.

    The amount may not drop below what is already allocated; when it
    becomes equal to a non-zero allocated total the payment completes.

    Raises:
        ValidationError: unknown field or malformed value
        NotFoundError: payment not found for tenant
        PaymentStateError: payment is not PENDING
        AllocationError: new amount below the allocated total
    """
    data = _validate_changes(changes)

    with unit_of_work(scope, on_conflict=_allocation_conflict):
        payment = scope.require(Payment, payment_id, label="Payment", lock=True)
        if payment.status != PAYMENT_STATUS_PENDING:
            raise PaymentStateError("Only pending payments can be updated")

        allocated = payment.amount_allocated_cents
        if "amount_cents" in data and data["amount_cents"] < allocated:
            raise AllocationError(
                f"Payment amount ({data['amount_cents']}) cannot be less than "
                f"the allocated total ({allocated})"
            )

        for field, value in data.items():
            setattr(payment, field, value)

        if allocated > 0 and allocated == payment.amount_cents:
            payment.status = PAYMENT_STATUS_COMPLETED

    current_app.logger.info(
        "Payment %s updated by user %s: %s", payment_id, actor_user_id, sorted(data),
    )
    return payment


def approve_payment(scope, payment_id: int, *, actor_user_id: int | None = None) -> Payment:
    """Mark a PENDING payment COMPLETED (reconciled). Allocations are unchanged."""
    with unit_of_work(scope, on_conflict=_allocation_conflict):
        payment = scope.require(Payment, payment_id, label="Payment", lock=True)
        if payment.status != PAYMENT_STATUS_PENDING:
            raise PaymentStateError("Only pending payments can be approved")

        payment.status = PAYMENT_STATUS_COMPLETED
        payment.approved_by_user_id = actor_user_id
        payment.approved_at = utcnow()

    return payment


# =============================================================================
# QUERIES
# =============================================================================

def get_payment(scope, payment_id: int) -> Payment:
    return scope.require(Payment, payment_id, label="Payment")


def list_payments(
    scope,
    *,
    payment_type: str | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    supplier_id: int | None = None,
    start_date=None,
    end_date=None,
) -> list[Payment]:
    q = scope.query(Payment)
    if payment_type:
        q = q.filter(Payment.payment_type == payment_type)
    if status:
        q = q.filter(Payment.status == status)
    if customer_id is not None:
        q = q.filter(Payment.customer_id == customer_id)
    if supplier_id is not None:
        q = q.filter(Payment.supplier_id == supplier_id)
    if start_date is not None:
        q = q.filter(Payment.payment_date >= business_datetime(start_date, field="start_date"))
    if end_date is not None:
        q = q.filter(Payment.payment_date <= business_datetime(end_date, field="end_date"))
    return q.order_by(Payment.payment_date.desc(), Payment.id.desc()).all()


def list_invoice_allocations(
    scope,
    invoice_type: str,
    invoice_id: int,
    *,
    include_inactive: bool = True,
) -> list[PaymentAllocation]:
    """Allocations applied to one invoice, oldest first."""
    model = invoice_model(invoice_type)
    scope.require(model, invoice_id, label=model.__name__)

    q = scope.query(PaymentAllocation).filter(
        PaymentAllocation.invoice_type == invoice_type,
        PaymentAllocation.invoice_id == invoice_id,
    )
    if not include_inactive:
        q = q.filter(PaymentAllocation.is_active.is_(True))
    return q.order_by(PaymentAllocation.id.asc()).all()
