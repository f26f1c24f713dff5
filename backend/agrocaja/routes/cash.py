# Overview: Flask API routes for the cash box; balance, manual movements and movement history.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import AgroCajaError, error_response, internal_error_response
from ..services import cash_service


cash_bp = Blueprint("cash", __name__, url_prefix="/api")


@cash_bp.get("/cash-balance")
@require_auth
def cash_balance_route():
    """
    Current cash balance of the active farm.

    balance = closing balance of the latest settlement
            + deposits - withdrawals recorded after it

    With no farm selected the balance is 0 and there is no last settlement.
    """
    try:
        balance = cash_service.get_cash_balance(g.owner_id, g.farm)
        return jsonify({"success": True, **balance.to_dict()}), 200

    except Exception as exc:
        current_app.logger.exception("Failed to compute cash balance")
        return internal_error_response("Failed to compute cash balance", exc)


@cash_bp.post("/cash-movement")
@require_auth
def create_cash_movement_route():
    """
    Register a manual deposit or withdrawal.

    Request body:
    {
        "type": "deposit" | "withdrawal",
        "value_cents": 5000,
        "description": "Aporte del socio"
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        movement, new_balance = cash_service.register_cash_movement(
            owner_id=g.owner_id,
            farm=g.farm,
            movement_type=data.get("type"),
            value_cents=data.get("value_cents"),
            description=data.get("description"),
            recorded_by=g.current_user.label,
        )

        current_app.logger.info(
            "Cash %s of %s cents on farm %r (owner %s), balance now %s",
            movement.movement_type, movement.value_cents, g.farm, g.owner_id, new_balance,
        )

        return jsonify({
            "success": True,
            "message": "Cash movement recorded",
            "movement": movement.to_dict(),
            "new_balance_cents": new_balance,
        }), 201

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to register cash movement")
        return internal_error_response("Failed to register cash movement", exc)


@cash_bp.get("/cash-movements")
@require_auth
def list_cash_movements_route():
    """Newest first. Query params: limit (default 50, max 500)."""
    try:
        limit = request.args.get("limit", default=cash_service.DEFAULT_MOVEMENT_LIMIT, type=int)
        movements = cash_service.list_cash_movements(g.owner_id, g.farm, limit=limit)
        return jsonify({
            "success": True,
            "movements": [m.to_dict() for m in movements],
            "count": len(movements),
        }), 200

    except Exception as exc:
        current_app.logger.exception("Failed to list cash movements")
        return internal_error_response("Failed to list cash movements", exc)
