# backend/opscore/routes/fulfillment.py
"""
Goods receipt and delivery API routes (purchase and sales orders).
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, internal_error, require_tenant
from ..services import delivery_service, order_status, receipt_service
from ..services.errors import OperationError


fulfillment_bp = Blueprint("fulfillment", __name__, url_prefix="/api")


@fulfillment_bp.post("/purchase-orders/<int:purchase_order_id>/receipts")
@require_tenant
def receive_goods(purchase_order_id: int, scope):
    """
    Receive goods against a purchase order.

    Request body:
    {
        "receipt_date": ISO-8601 (optional, defaults to now),
        "lines": [
            {"line_id": int, "quantity": int, "location_id": int (optional)}
        ]
    }

    Returns:
        201: Updated purchase order with lines
        400: Invalid lines / preconditions
        404: Purchase order not found
        409: Over-receipt or concurrent update
    """
    data = request.get_json(silent=True) or {}

    try:
        order = receipt_service.receive_goods(
            scope,
            purchase_order_id,
            receipt_date=data.get("receipt_date"),
            lines=data.get("lines"),
            actor_user_id=g.actor_user_id,
        )
        return jsonify(order.to_dict()), 201
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("receive goods")


@fulfillment_bp.post("/sales-orders/<int:sales_order_id>/deliveries")
@require_tenant
def deliver_goods(sales_order_id: int, scope):
    """
    Deliver goods against a sales order.

    Request body mirrors receipts, with "delivery_date".

    Returns:
        201: Updated sales order with lines
        409: Insufficient stock, over-delivery or concurrent update
    """
    data = request.get_json(silent=True) or {}

    try:
        order = delivery_service.deliver_goods(
            scope,
            sales_order_id,
            delivery_date=data.get("delivery_date"),
            lines=data.get("lines"),
            actor_user_id=g.actor_user_id,
        )
        return jsonify(order.to_dict()), 201
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("deliver goods")


@fulfillment_bp.post("/purchase-orders/<int:purchase_order_id>/cancel")
@require_tenant
def cancel_purchase_order(purchase_order_id: int, scope):
    try:
        order = order_status.cancel_purchase_order(scope, purchase_order_id)
        return jsonify(order.to_dict()), 200
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("cancel purchase order")


@fulfillment_bp.post("/sales-orders/<int:sales_order_id>/cancel")
@require_tenant
def cancel_sales_order(sales_order_id: int, scope):
    try:
        order = order_status.cancel_sales_order(scope, sales_order_id)
        return jsonify(order.to_dict()), 200
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("cancel sales order")
