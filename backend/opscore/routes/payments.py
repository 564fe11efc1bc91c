# backend/opscore/routes/payments.py
"""
Payment and allocation API routes.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, internal_error, require_tenant
from ..services import payment_service
from ..services.errors import OperationError


payments_bp = Blueprint("payments", __name__, url_prefix="/api")


@payments_bp.post("/payments")
@require_tenant
def create_payment(scope):
    """
    Create a payment and allocate it to invoices.

    Request body:
    {
        "payment_type": "CUSTOMER_PAYMENT" | "SUPPLIER_PAYMENT",
        "payment_method": "CASH" | "BANK_TRANSFER" | "CHECK" | "CREDIT_CARD" | "OTHER",
        "amount_cents": int,
        "currency": str (optional, default USD),
        "payment_date": ISO-8601 (optional),
        "customer_id" | "supplier_id": int,
        "reference_number", "bank_account", "notes": str (optional),
        "allocations": [
            {"invoice_type": "SALES_INVOICE" | "PURCHASE_INVOICE", "invoice_id": int, "amount_cents": int}
        ]
    }

    Returns:
        201: Payment with allocations
        400: Invalid request / invoice not payable
        409: Over-allocation or concurrent update
    """
    data = request.get_json(silent=True) or {}
    allocations = data.pop("allocations", [])

    try:
        payment = payment_service.create_payment(
            scope,
            actor_user_id=g.actor_user_id,
            header=data,
            allocations=allocations,
        )
        return jsonify(payment.to_dict()), 201
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("create payment")


@payments_bp.get("/payments")
@require_tenant
def list_payments(scope):
    """Query params: payment_type, status, customer_id, supplier_id, start_date, end_date."""
    try:
        payments = payment_service.list_payments(
            scope,
            payment_type=request.args.get("payment_type"),
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            supplier_id=request.args.get("supplier_id", type=int),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
    except OperationError as e:
        return error_response(e)

    return jsonify({
        "payments": [p.to_dict(include_allocations=False) for p in payments],
        "count": len(payments),
    }), 200


@payments_bp.get("/payments/<int:payment_id>")
@require_tenant
def get_payment(payment_id: int, scope):
    try:
        return jsonify(payment_service.get_payment(scope, payment_id).to_dict()), 200
    except OperationError as e:
        return error_response(e)


@payments_bp.patch("/payments/<int:payment_id>")
@require_tenant
def update_payment(payment_id: int, scope):
    """
    Edit a pending payment.

    Request body (any subset):
    {
        "payment_date": ISO-8601,
        "payment_method": str,
        "amount_cents": int,
        "currency": str,
        "reference_number", "bank_account", "notes": str | null
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        payment = payment_service.update_payment(
            scope,
            payment_id,
            changes=data,
            actor_user_id=g.actor_user_id,
        )
        return jsonify(payment.to_dict()), 200
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("update payment")


@payments_bp.post("/payments/<int:payment_id>/approve")
@require_tenant
def approve_payment(payment_id: int, scope):
    try:
        payment = payment_service.approve_payment(scope, payment_id, actor_user_id=g.actor_user_id)
        return jsonify(payment.to_dict()), 200
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("approve payment")


@payments_bp.post("/payments/<int:payment_id>/cancel")
@require_tenant
def cancel_payment(payment_id: int, scope):
    """
    Cancel a pending payment.

    Request body: {"reason": str (optional)}
    """
    data = request.get_json(silent=True) or {}

    try:
        payment = payment_service.cancel_payment(
            scope,
            payment_id,
            reason=data.get("reason"),
            actor_user_id=g.actor_user_id,
        )
        return jsonify(payment.to_dict()), 200
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("cancel payment")


@payments_bp.get("/invoices/<invoice_type>/<int:invoice_id>/allocations")
@require_tenant
def list_invoice_allocations(invoice_type: str, invoice_id: int, scope):
    """invoice_type is SALES_INVOICE or PURCHASE_INVOICE."""
    try:
        allocations = payment_service.list_invoice_allocations(scope, invoice_type.upper(), invoice_id)
    except OperationError as e:
        return error_response(e)

    return jsonify({
        "allocations": [a.to_dict() for a in allocations],
        "count": len(allocations),
    }), 200
