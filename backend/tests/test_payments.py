# Overview: Pytest coverage for payments and invoice allocations.

"""
Payment Allocation Tests

Covers the payment lifecycle (PENDING -> COMPLETED / CANCELLED), the
invoice aggregates derived from active allocations, and over-allocation
guards on both the payment and the invoice side.
"""

from datetime import datetime

import pytest

from opscore.models import Customer, Payment, PaymentAllocation, SalesInvoice
from opscore.models.invoices import (
    INVOICE_STATUS_APPROVED,
    INVOICE_STATUS_CANCELLED,
    INVOICE_STATUS_DRAFT,
    INVOICE_STATUS_OVERDUE,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PARTIALLY_PAID,
    INVOICE_STATUS_SENT,
)
from opscore.models.payments import (
    INVOICE_TYPE_PURCHASE,
    INVOICE_TYPE_SALES,
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_PENDING,
)
from opscore.services import payment_service
from opscore.services.errors import (
    AllocationError,
    NotFoundError,
    PaymentStateError,
    PreconditionError,
    ValidationError,
)


def customer_header(customer, amount_cents, **extra):
    header = {
        "payment_type": "CUSTOMER_PAYMENT",
        "payment_method": "BANK_TRANSFER",
        "amount_cents": amount_cents,
        "customer_id": customer.id,
        "payment_date": "2026-04-15",
    }
    header.update(extra)
    return header


def sales_allocation(invoice, amount_cents):
    return {"invoice_type": INVOICE_TYPE_SALES, "invoice_id": invoice.id, "amount_cents": amount_cents}


class TestCreatePayment:

    def test_partial_allocation_then_cancel_restores_invoice(self, db_session, scope_a, customer_a, sales_invoice):
        """Invoice of 1100: 600 allocated leaves 500 due; cancelling restores 1100 and SENT."""
        payment = payment_service.create_payment(
            scope_a,
            actor_user_id=5,
            header=customer_header(customer_a, 1000),
            allocations=[sales_allocation(sales_invoice, 600)],
        )

        invoice = db_session.get(SalesInvoice, sales_invoice.id)
        assert invoice.amount_paid_cents == 600
        assert invoice.balance_due_cents == 500
        assert invoice.status == INVOICE_STATUS_PARTIALLY_PAID
        assert payment.status == PAYMENT_STATUS_PENDING

        payment = payment_service.cancel_payment(scope_a, payment.id, reason="Bounced", actor_user_id=5)

        invoice = db_session.get(SalesInvoice, sales_invoice.id)
        assert invoice.amount_paid_cents == 0
        assert invoice.balance_due_cents == 1100
        assert invoice.status == INVOICE_STATUS_SENT

        assert payment.status == PAYMENT_STATUS_CANCELLED
        assert payment.cancelled_by_user_id == 5
        assert payment.cancelled_at is not None
        assert payment.cancellation_reason == "Bounced"
        assert payment.notes.endswith("Cancelled: Bounced")

        allocations = payment_service.list_invoice_allocations(scope_a, INVOICE_TYPE_SALES, sales_invoice.id)
        assert len(allocations) == 1
        assert allocations[0].is_active is False
        assert allocations[0].reversed_at is not None

        active = payment_service.list_invoice_allocations(
            scope_a, INVOICE_TYPE_SALES, sales_invoice.id, include_inactive=False,
        )
        assert active == []

    def test_full_allocation_completes_payment_and_invoice(self, db_session, scope_a, customer_a, sales_invoice):
        payment = payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header=customer_header(customer_a, 1100),
            allocations=[sales_allocation(sales_invoice, 1100)],
        )

        assert payment.status == PAYMENT_STATUS_COMPLETED
        invoice = db_session.get(SalesInvoice, sales_invoice.id)
        assert invoice.status == INVOICE_STATUS_PAID
        assert invoice.balance_due_cents == 0

    def test_unallocated_payment_stays_pending(self, db_session, scope_a, customer_a):
        payment = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 300), allocations=[],
        )

        assert payment.status == PAYMENT_STATUS_PENDING
        assert payment.currency == "USD"

    def test_split_across_invoices(self, db_session, scope_a, org_a, customer_a, sales_invoice):
        second = SalesInvoice(
            org_id=org_a.id,
            customer_id=customer_a.id,
            document_number="SI-000002",
            status=INVOICE_STATUS_OVERDUE,
            grand_total_cents=400,
            amount_paid_cents=0,
            balance_due_cents=400,
        )
        db_session.add(second)
        db_session.commit()

        payment = payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header=customer_header(customer_a, 1500),
            allocations=[sales_allocation(sales_invoice, 1100), sales_allocation(second, 400)],
        )

        assert payment.status == PAYMENT_STATUS_COMPLETED
        assert db_session.get(SalesInvoice, sales_invoice.id).status == INVOICE_STATUS_PAID
        assert db_session.get(SalesInvoice, second.id).status == INVOICE_STATUS_PAID
        assert len(payment.allocations) == 2

    def test_supplier_payment_against_purchase_invoice(self, db_session, scope_a, supplier_a, purchase_invoice):
        payment = payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header={
                "payment_type": "SUPPLIER_PAYMENT",
                "payment_method": "CHECK",
                "amount_cents": 2000,
                "supplier_id": supplier_a.id,
            },
            allocations=[{"invoice_type": INVOICE_TYPE_PURCHASE, "invoice_id": purchase_invoice.id, "amount_cents": 2000}],
        )
        assert payment.status == PAYMENT_STATUS_COMPLETED

        allocations = payment_service.list_invoice_allocations(scope_a, INVOICE_TYPE_PURCHASE, purchase_invoice.id)
        assert allocations[0].amount_allocated_cents == 2000


class TestAllocationGuards:

    def test_allocations_exceeding_payment_rejected(self, db_session, scope_a, customer_a, sales_invoice):
        with pytest.raises(AllocationError):
            payment_service.create_payment(
                scope_a,
                actor_user_id=None,
                header=customer_header(customer_a, 500),
                allocations=[sales_allocation(sales_invoice, 600)],
            )

        assert db_session.query(Payment).count() == 0

    def test_allocation_exceeding_balance_rejected(self, db_session, scope_a, customer_a, sales_invoice):
        payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header=customer_header(customer_a, 1000),
            allocations=[sales_allocation(sales_invoice, 1000)],
        )

        with pytest.raises(AllocationError) as exc_info:
            payment_service.create_payment(
                scope_a,
                actor_user_id=None,
                header=customer_header(customer_a, 200),
                allocations=[sales_allocation(sales_invoice, 200)],
            )

        assert exc_info.value.retryable is False
        assert db_session.query(Payment).count() == 1
        assert db_session.get(SalesInvoice, sales_invoice.id).balance_due_cents == 100

    def test_repeated_invoice_summed_against_balance(self, db_session, scope_a, customer_a, sales_invoice):
        with pytest.raises(AllocationError):
            payment_service.create_payment(
                scope_a,
                actor_user_id=None,
                header=customer_header(customer_a, 1200),
                allocations=[sales_allocation(sales_invoice, 600), sales_allocation(sales_invoice, 600)],
            )

        assert db_session.query(PaymentAllocation).count() == 0

    @pytest.mark.parametrize("status", [INVOICE_STATUS_DRAFT, INVOICE_STATUS_CANCELLED])
    def test_unpayable_invoice_rejected(self, db_session, scope_a, customer_a, sales_invoice, status):
        sales_invoice.status = status
        db_session.commit()

        with pytest.raises(PreconditionError):
            payment_service.create_payment(
                scope_a,
                actor_user_id=None,
                header=customer_header(customer_a, 100),
                allocations=[sales_allocation(sales_invoice, 100)],
            )

    def test_wrong_invoice_type_for_payment_type(self, db_session, scope_a, customer_a, purchase_invoice):
        with pytest.raises(ValidationError):
            payment_service.create_payment(
                scope_a,
                actor_user_id=None,
                header=customer_header(customer_a, 100),
                allocations=[{"invoice_type": INVOICE_TYPE_PURCHASE, "invoice_id": purchase_invoice.id, "amount_cents": 100}],
            )

    def test_other_tenant_invoice_not_payable(self, db_session, scope_b, org_b, sales_invoice):
        customer = Customer(org_id=org_b.id, code="CB", name="Beta Customer")
        db_session.add(customer)
        db_session.commit()

        with pytest.raises(PreconditionError):
            payment_service.create_payment(
                scope_b,
                actor_user_id=None,
                header=customer_header(customer, 100),
                allocations=[sales_allocation(sales_invoice, 100)],
            )

    @pytest.mark.parametrize("changes", [
        {"amount_cents": 0},
        {"amount_cents": "100"},
        {"payment_method": "BARTER"},
        {"currency": "EURO"},
        {"currency": 840},
        {"supplier_id": 1},
    ])
    def test_invalid_header_rejected(self, db_session, scope_a, customer_a, changes):
        header = customer_header(customer_a, 100)
        header.update(changes)

        with pytest.raises(ValidationError):
            payment_service.create_payment(
                scope_a,
                actor_user_id=None,
                header=header,
                allocations=[],
            )


class TestPaymentLifecycle:

    def test_completed_payment_cannot_be_cancelled(self, db_session, scope_a, customer_a, sales_invoice):
        payment = payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header=customer_header(customer_a, 1100),
            allocations=[sales_allocation(sales_invoice, 1100)],
        )

        with pytest.raises(PaymentStateError):
            payment_service.cancel_payment(scope_a, payment.id)

        assert db_session.get(SalesInvoice, sales_invoice.id).status == INVOICE_STATUS_PAID

    def test_cancel_twice_rejected(self, db_session, scope_a, customer_a):
        payment = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 100), allocations=[],
        )
        payment_service.cancel_payment(scope_a, payment.id)

        with pytest.raises(PaymentStateError):
            payment_service.cancel_payment(scope_a, payment.id)

    def test_cancel_after_overdue_reverts_to_sent(self, db_session, scope_a, customer_a, sales_invoice):
        sales_invoice.status = INVOICE_STATUS_OVERDUE
        db_session.commit()

        payment = payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header=customer_header(customer_a, 500),
            allocations=[sales_allocation(sales_invoice, 100)],
        )
        assert db_session.get(SalesInvoice, sales_invoice.id).status == INVOICE_STATUS_PARTIALLY_PAID

        payment_service.cancel_payment(scope_a, payment.id)
        assert db_session.get(SalesInvoice, sales_invoice.id).status == INVOICE_STATUS_SENT

    def test_purchase_invoice_reverts_to_approved(self, db_session, scope_a, supplier_a, purchase_invoice):
        payment = payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header={
                "payment_type": "SUPPLIER_PAYMENT",
                "payment_method": "CASH",
                "amount_cents": 3000,
                "supplier_id": supplier_a.id,
            },
            allocations=[{"invoice_type": INVOICE_TYPE_PURCHASE, "invoice_id": purchase_invoice.id, "amount_cents": 1000}],
        )
        payment_service.cancel_payment(scope_a, payment.id)

        invoice = payment_service.invoice_model(INVOICE_TYPE_PURCHASE)
        assert db_session.get(invoice, purchase_invoice.id).status == INVOICE_STATUS_APPROVED

    def test_approve_pending_payment(self, db_session, scope_a, customer_a):
        payment = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 100), allocations=[],
        )

        payment = payment_service.approve_payment(scope_a, payment.id, actor_user_id=9)

        assert payment.status == PAYMENT_STATUS_COMPLETED
        assert payment.approved_by_user_id == 9
        assert payment.approved_at is not None

        with pytest.raises(PaymentStateError):
            payment_service.approve_payment(scope_a, payment.id, actor_user_id=9)

    def test_other_tenant_payment_not_found(self, db_session, scope_a, scope_b, customer_a):
        payment = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 100), allocations=[],
        )

        with pytest.raises(NotFoundError):
            payment_service.cancel_payment(scope_b, payment.id)
        with pytest.raises(NotFoundError):
            payment_service.get_payment(scope_b, payment.id)


class TestUpdatePayment:

    def test_pending_payment_header_updated(self, db_session, scope_a, customer_a):
        payment = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 500), allocations=[],
        )

        updated = payment_service.update_payment(
            scope_a,
            payment.id,
            changes={
                "payment_date": datetime(2026, 4, 20, 9, 0),
                "payment_method": "CHECK",
                "amount_cents": 750,
                "currency": "eur",
                "reference_number": " CHK-1001 ",
                "notes": "",
            },
            actor_user_id=7,
        )

        assert updated.status == PAYMENT_STATUS_PENDING
        assert updated.amount_cents == 750
        assert updated.payment_method == "CHECK"
        assert updated.currency == "EUR"
        assert updated.reference_number == "CHK-1001"
        assert updated.notes is None
        assert updated.payment_date == datetime(2026, 4, 20, 9, 0)
        # Number keeps the date it was issued under
        assert updated.payment_number == "PAY-20260415-00001"

    def test_amount_below_allocated_rejected(self, db_session, scope_a, customer_a, sales_invoice):
        payment = payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header=customer_header(customer_a, 1000),
            allocations=[sales_allocation(sales_invoice, 600)],
        )

        with pytest.raises(AllocationError):
            payment_service.update_payment(scope_a, payment.id, changes={"amount_cents": 599})

        assert db_session.get(Payment, payment.id).amount_cents == 1000

    def test_amount_equal_to_allocated_completes(self, db_session, scope_a, customer_a, sales_invoice):
        payment = payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header=customer_header(customer_a, 1000),
            allocations=[sales_allocation(sales_invoice, 600)],
        )

        updated = payment_service.update_payment(scope_a, payment.id, changes={"amount_cents": 600})

        assert updated.status == PAYMENT_STATUS_COMPLETED
        invoice = db_session.get(SalesInvoice, sales_invoice.id)
        assert invoice.amount_paid_cents == 600
        assert invoice.status == INVOICE_STATUS_PARTIALLY_PAID

    def test_unallocated_payment_stays_pending_on_any_amount(self, db_session, scope_a, customer_a):
        payment = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 500), allocations=[],
        )

        updated = payment_service.update_payment(scope_a, payment.id, changes={"amount_cents": 100})
        assert updated.status == PAYMENT_STATUS_PENDING

    @pytest.mark.parametrize("status_change", ["approve", "cancel"])
    def test_only_pending_payments_updatable(self, db_session, scope_a, customer_a, status_change):
        payment = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 500), allocations=[],
        )
        if status_change == "approve":
            payment_service.approve_payment(scope_a, payment.id)
        else:
            payment_service.cancel_payment(scope_a, payment.id)

        with pytest.raises(PaymentStateError):
            payment_service.update_payment(scope_a, payment.id, changes={"notes": "late edit"})

    @pytest.mark.parametrize("changes", [
        {"status": "COMPLETED"},
        {"customer_id": 99},
        {"amount_cents": 0},
        {"amount_cents": "750"},
        {"currency": 978},
        {"payment_method": "BARTER"},
        {"payment_date": None},
        {"notes": 42},
    ])
    def test_invalid_changes_rejected(self, db_session, scope_a, customer_a, changes):
        payment = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 500), allocations=[],
        )

        with pytest.raises(ValidationError):
            payment_service.update_payment(scope_a, payment.id, changes=changes)

    def test_other_tenant_payment_not_found(self, db_session, scope_a, scope_b, customer_a):
        payment = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 500), allocations=[],
        )

        with pytest.raises(NotFoundError):
            payment_service.update_payment(scope_b, payment.id, changes={"amount_cents": 1})


class TestPaymentNumbering:

    def test_numbers_restart_per_day(self, db_session, scope_a, customer_a):
        first = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 100), allocations=[],
        )
        second = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 100), allocations=[],
        )
        next_day = payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header=customer_header(customer_a, 100, payment_date=datetime(2026, 4, 16, 8, 0)),
            allocations=[],
        )

        assert first.payment_number == "PAY-20260415-00001"
        assert second.payment_number == "PAY-20260415-00002"
        assert next_day.payment_number == "PAY-20260416-00001"

    def test_numbers_are_per_tenant(self, db_session, scope_a, scope_b, org_b, customer_a):
        customer_b = Customer(org_id=org_b.id, code="CB", name="Beta Customer")
        db_session.add(customer_b)
        db_session.commit()

        a = payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 100), allocations=[],
        )
        b = payment_service.create_payment(
            scope_b, actor_user_id=None, header=customer_header(customer_b, 100), allocations=[],
        )

        assert a.payment_number == b.payment_number == "PAY-20260415-00001"


class TestPaymentQueries:

    def test_list_filters(self, db_session, scope_a, customer_a, sales_invoice):
        payment_service.create_payment(
            scope_a, actor_user_id=None, header=customer_header(customer_a, 100), allocations=[],
        )
        payment_service.create_payment(
            scope_a,
            actor_user_id=None,
            header=customer_header(customer_a, 1100, payment_date="2026-05-01"),
            allocations=[sales_allocation(sales_invoice, 1100)],
        )

        assert len(payment_service.list_payments(scope_a)) == 2
        assert len(payment_service.list_payments(scope_a, status=PAYMENT_STATUS_PENDING)) == 1
        assert len(payment_service.list_payments(scope_a, start_date="2026-04-20")) == 1
        assert len(payment_service.list_payments(scope_a, customer_id=customer_a.id)) == 2
        assert payment_service.list_payments(scope_a, payment_type="SUPPLIER_PAYMENT") == []
