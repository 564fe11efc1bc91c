# backend/opscore/routes/stock_movements.py
"""
Stock ledger read API.
"""
from flask import Blueprint, jsonify, request

from ..decorators import error_response, require_tenant
from ..services import ledger_service
from ..services.errors import OperationError, ValidationError
from ..time_utils import parse_iso_datetime


stock_movements_bp = Blueprint("stock_movements", __name__, url_prefix="/api/stock-movements")


@stock_movements_bp.get("")
@require_tenant
def list_stock_movements(scope):
    """
    Query params (all optional):
        item_id, location_id, movement_type, reference_type, reference_id,
        start_date, end_date (ISO-8601, inclusive), limit
    """
    try:
        try:
            start_date = parse_iso_datetime(request.args.get("start_date"))
            end_date = parse_iso_datetime(request.args.get("end_date"))
        except ValueError:
            raise ValidationError("start_date/end_date must be ISO-8601")

        movements = ledger_service.list_stock_movements(
            scope,
            item_id=request.args.get("item_id", type=int),
            location_id=request.args.get("location_id", type=int),
            movement_type=request.args.get("movement_type"),
            reference_type=request.args.get("reference_type"),
            reference_id=request.args.get("reference_id"),
            start_date=start_date,
            end_date=end_date,
            limit=request.args.get("limit", type=int),
        )
    except OperationError as e:
        return error_response(e)

    return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)}), 200
