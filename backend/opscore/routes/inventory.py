# backend/opscore/routes/inventory.py
"""
Inventory position API routes: adjustments, transfers, damage write-offs,
reservations, thresholds and position queries.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, internal_error, require_tenant
from ..services import inventory_service, transfer_service
from ..services.errors import OperationError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _truthy(value) -> bool:
    return str(value or "").lower() in ("1", "true", "yes")


@inventory_bp.post("/adjust")
@require_tenant
def adjust_stock(scope):
    """
    Adjust on-hand quantity.

    Request body:
    {
        "item_id": int,
        "location_id": int,
        "delta": int (non-zero, signed),
        "reason": str (optional),
        "unit_cost_cents": int (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        position = inventory_service.adjust_stock(
            scope,
            item_id=data["item_id"],
            location_id=data["location_id"],
            delta=data["delta"],
            reason=data.get("reason"),
            unit_cost_cents=data.get("unit_cost_cents"),
            actor_user_id=g.actor_user_id,
        )
        return jsonify(position.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("adjust stock")


@inventory_bp.post("/transfer")
@require_tenant
def transfer_stock(scope):
    """
    Move stock between two locations.

    Request body:
    {
        "item_id": int,
        "from_location_id": int,
        "to_location_id": int,
        "quantity": int,
        "reason": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        result = transfer_service.transfer_stock(
            scope,
            item_id=data["item_id"],
            from_location_id=data["from_location_id"],
            to_location_id=data["to_location_id"],
            quantity=data["quantity"],
            reason=data.get("reason"),
            actor_user_id=g.actor_user_id,
        )
        return jsonify({
            "reference": result["reference"],
            "from_position": result["from_position"].to_dict(),
            "to_position": result["to_position"].to_dict(),
            "movements": [m.to_dict() for m in result["movements"]],
        }), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("transfer stock")


@inventory_bp.post("/damage")
@require_tenant
def record_damage(scope):
    data = request.get_json(silent=True) or {}

    try:
        position = inventory_service.record_damage(
            scope,
            item_id=data["item_id"],
            location_id=data["location_id"],
            quantity=data["quantity"],
            reason=data.get("reason"),
            actor_user_id=g.actor_user_id,
        )
        return jsonify(position.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("record damage")


@inventory_bp.post("/reserve")
@require_tenant
def reserve_stock(scope):
    data = request.get_json(silent=True) or {}

    try:
        position = inventory_service.reserve_stock(
            scope,
            item_id=data["item_id"],
            location_id=data["location_id"],
            quantity=data["quantity"],
        )
        return jsonify(position.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("reserve stock")


@inventory_bp.post("/release")
@require_tenant
def release_reserved_stock(scope):
    data = request.get_json(silent=True) or {}

    try:
        position = inventory_service.release_reserved_stock(
            scope,
            item_id=data["item_id"],
            location_id=data["location_id"],
            quantity=data["quantity"],
        )
        return jsonify(position.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("release reserved stock")


@inventory_bp.post("/levels")
@require_tenant
def set_stock_levels(scope):
    """Set minimum / maximum / reorder thresholds for one position."""
    data = request.get_json(silent=True) or {}

    try:
        position = inventory_service.set_stock_levels(
            scope,
            item_id=data["item_id"],
            location_id=data["location_id"],
            minimum_stock_level=data.get("minimum_stock_level"),
            maximum_stock_level=data.get("maximum_stock_level"),
            reorder_point=data.get("reorder_point"),
        )
        return jsonify(position.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("set stock levels")


@inventory_bp.get("/positions")
@require_tenant
def list_positions(scope):
    """
    List positions.

    Query params: item_id, location_id, low_stock=true, out_of_stock=true
    """
    positions = inventory_service.list_positions(
        scope,
        item_id=request.args.get("item_id", type=int),
        location_id=request.args.get("location_id", type=int),
        low_stock=_truthy(request.args.get("low_stock")),
        out_of_stock=_truthy(request.args.get("out_of_stock")),
    )
    return jsonify({"positions": [p.to_dict() for p in positions], "count": len(positions)}), 200


@inventory_bp.get("/items/<int:item_id>/totals")
@require_tenant
def item_totals(item_id: int, scope):
    try:
        inventory_service.require_item(scope, item_id)
    except OperationError as e:
        return error_response(e)
    return jsonify(inventory_service.get_total_stock_by_item(scope, item_id)), 200
