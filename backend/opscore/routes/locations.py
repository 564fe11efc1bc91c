# backend/opscore/routes/locations.py
"""
Inventory location API routes.
"""
from flask import Blueprint, jsonify, request

from ..decorators import error_response, internal_error, require_tenant
from ..services import location_service
from ..services.errors import OperationError


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.post("")
@require_tenant
def create_location(scope):
    """
    Create a location.

    Request body:
    {
        "code": str,
        "name": str,
        "address": str (optional),
        "is_default": bool (optional),
        "status": "ACTIVE" | "INACTIVE" (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        location = location_service.create_location(
            scope,
            code=data["code"],
            name=data["name"],
            address=data.get("address"),
            is_default=bool(data.get("is_default", False)),
            status=data.get("status", "ACTIVE"),
        )
        return jsonify(location.to_dict()), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("create location")


@locations_bp.get("")
@require_tenant
def list_locations(scope):
    locations = location_service.list_locations(
        scope,
        status=request.args.get("status"),
        search=request.args.get("search"),
    )
    return jsonify({"locations": [loc.to_dict() for loc in locations], "count": len(locations)}), 200


@locations_bp.get("/default")
@require_tenant
def get_default_location(scope):
    location = location_service.get_default_location(scope)
    if location is None:
        return jsonify({"error": "No default location configured"}), 404
    return jsonify(location.to_dict()), 200


@locations_bp.get("/<int:location_id>")
@require_tenant
def get_location(location_id: int, scope):
    try:
        return jsonify(location_service.get_location(scope, location_id).to_dict()), 200
    except OperationError as e:
        return error_response(e)


@locations_bp.patch("/<int:location_id>")
@require_tenant
def update_location(location_id: int, scope):
    """Partial update of name, address, is_default or status."""
    data = request.get_json(silent=True) or {}

    try:
        location = location_service.update_location(
            scope,
            location_id,
            name=data.get("name"),
            address=data.get("address"),
            is_default=data.get("is_default"),
            status=data.get("status"),
        )
        return jsonify(location.to_dict()), 200
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("update location")


@locations_bp.delete("/<int:location_id>")
@require_tenant
def delete_location(location_id: int, scope):
    """
    Delete an empty location.

    Returns:
        204: Deleted
        400: Location holds inventory or has ledger history
        404: Location not found for tenant
    """
    try:
        location_service.delete_location(scope, location_id)
        return "", 204
    except OperationError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete location")
