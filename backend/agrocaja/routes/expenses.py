# Overview: Flask API routes for expenses and their inventory consumption.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_farm
from ..errors import AgroCajaError, error_response, internal_error_response
from ..services import expense_service, pending_service


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.post("")
@expenses_bp.post("/")
@require_auth
def create_expense_route():
    """
    Request body:
    {
        "description": "Fumigación lote 3",
        "value_cents": 2000,
        "expense_date": "2026-03-01",
        "consumption_lines": [{"inventory_item_id": 4, "quantity": 2}]
    }
    """
    try:
        expense = expense_service.create_expense(
            owner_id=g.owner_id,
            farm=g.farm,
            payload=request.get_json(silent=True),
            recorded_by=g.current_user.label,
        )
        return jsonify({
            "success": True,
            "message": "Expense recorded",
            "expense": expense.to_dict(),
        }), 201

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to create expense")
        return internal_error_response("Failed to create expense", exc)


@expenses_bp.get("")
@expenses_bp.get("/")
@require_auth
@require_farm
def list_expenses_route():
    """Query params: settled=true|false (optional), limit (optional)."""
    try:
        settled_arg = request.args.get("settled")
        settled = None
        if settled_arg is not None:
            settled = settled_arg.lower() == "true"

        expenses = expense_service.list_expenses(
            g.owner_id, g.farm, settled=settled, limit=request.args.get("limit")
        )
        return jsonify({
            "success": True,
            "expenses": [e.to_dict() for e in expenses],
            "count": len(expenses),
        }), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to list expenses")
        return internal_error_response("Failed to list expenses", exc)


@expenses_bp.get("/pending")
@require_auth
def pending_expenses_route():
    """
    Unsettled expenses with consumption_value_cents priced at current unit
    prices, i.e. what a settlement made now would book.
    """
    try:
        expenses = pending_service.list_pending_expenses(g.owner_id, g.farm)
        return jsonify({
            "success": True,
            "expenses": expenses,
            "count": len(expenses),
            "total_cents": sum(e["total_cents"] for e in expenses),
        }), 200

    except Exception as exc:
        current_app.logger.exception("Failed to list pending expenses")
        return internal_error_response("Failed to list pending expenses", exc)


@expenses_bp.get("/stats")
@require_auth
@require_farm
def expense_stats_route():
    try:
        return jsonify({"success": True, "stats": expense_service.expense_stats(g.owner_id, g.farm)}), 200

    except Exception as exc:
        current_app.logger.exception("Failed to compute expense stats")
        return internal_error_response("Failed to compute expense stats", exc)


@expenses_bp.get("/<int:expense_id>")
@require_auth
@require_farm
def get_expense_route(expense_id: int):
    try:
        expense = expense_service.get_expense(g.owner_id, g.farm, expense_id)
        return jsonify({"success": True, "expense": expense.to_dict()}), 200

    except AgroCajaError as exc:
        return error_response(exc)


@expenses_bp.put("/<int:expense_id>")
@require_auth
def update_expense_route(expense_id: int):
    """
    Partial update of an unsettled expense (409 once settled).

    Request body (any subset):
    {
        "description": "Fumigación lote 4",
        "value_cents": 2500,
        "expense_date": "2026-03-02",
        "consumption_lines": [{"inventory_item_id": 4, "quantity": 1}]   (replaces all lines)
    }
    """
    try:
        expense = expense_service.update_expense(
            owner_id=g.owner_id,
            farm=g.farm,
            expense_id=expense_id,
            payload=request.get_json(silent=True),
        )
        return jsonify({
            "success": True,
            "message": "Expense updated",
            "expense": expense.to_dict(),
        }), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to update expense")
        return internal_error_response("Failed to update expense", exc)


@expenses_bp.delete("/<int:expense_id>")
@require_auth
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(owner_id=g.owner_id, farm=g.farm, expense_id=expense_id)
        return jsonify({"success": True, "message": "Expense deleted"}), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to delete expense")
        return internal_error_response("Failed to delete expense", exc)
