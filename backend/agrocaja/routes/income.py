# Overview: Flask API routes for income entries; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_farm
from ..errors import AgroCajaError, error_response, internal_error_response
from ..services import entry_service, pending_service


income_bp = Blueprint("income", __name__, url_prefix="/api/income-entries")


@income_bp.post("")
@income_bp.post("/")
@require_auth
def create_income_route():
    """
    Request body:
    {
        "entry_date": "2026-03-01",
        "description": "Venta de café",
        "value_cents": 150000
    }
    """
    try:
        entry = entry_service.create_income_entry(
            owner_id=g.owner_id,
            farm=g.farm,
            payload=request.get_json(silent=True),
            recorded_by=g.current_user.label,
        )
        return jsonify({
            "success": True,
            "message": "Income entry recorded",
            "income_entry": entry.to_dict(),
        }), 201

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to create income entry")
        return internal_error_response("Failed to create income entry", exc)


@income_bp.get("")
@income_bp.get("/")
@require_auth
@require_farm
def list_income_route():
    """
    Query params (all optional):
    - start_date / end_date: inclusive ISO dates on entry_date
    - description: case-insensitive substring
    - min_value_cents / max_value_cents
    - limit
    """
    try:
        entries = entry_service.list_income_entries(
            g.owner_id,
            g.farm,
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            description=request.args.get("description"),
            min_value_cents=request.args.get("min_value_cents"),
            max_value_cents=request.args.get("max_value_cents"),
            limit=request.args.get("limit"),
        )
        return jsonify({
            "success": True,
            "income_entries": [e.to_dict() for e in entries],
            "summary": entry_service.summarize(entries),
        }), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to list income entries")
        return internal_error_response("Failed to list income entries", exc)


@income_bp.get("/pending")
@require_auth
def pending_income_route():
    """Unsettled income entries of the active farm, newest first."""
    try:
        entries = pending_service.list_pending_income(g.owner_id, g.farm)
        return jsonify({
            "success": True,
            "income_entries": [e.to_dict() for e in entries],
            "count": len(entries),
            "total_cents": sum(e.value_cents for e in entries),
        }), 200

    except Exception as exc:
        current_app.logger.exception("Failed to list pending income entries")
        return internal_error_response("Failed to list pending income entries", exc)


@income_bp.get("/stats")
@require_auth
@require_farm
def income_stats_route():
    try:
        return jsonify({"success": True, "stats": entry_service.income_stats(g.owner_id, g.farm)}), 200

    except Exception as exc:
        current_app.logger.exception("Failed to compute income stats")
        return internal_error_response("Failed to compute income stats", exc)


@income_bp.get("/<int:entry_id>")
@require_auth
@require_farm
def get_income_route(entry_id: int):
    try:
        entry = entry_service.get_income_entry(g.owner_id, g.farm, entry_id)
        return jsonify({"success": True, "income_entry": entry.to_dict()}), 200

    except AgroCajaError as exc:
        return error_response(exc)


@income_bp.put("/<int:entry_id>")
@require_auth
def update_income_route(entry_id: int):
    try:
        entry = entry_service.update_income_entry(
            owner_id=g.owner_id,
            farm=g.farm,
            entry_id=entry_id,
            payload=request.get_json(silent=True),
        )
        return jsonify({
            "success": True,
            "message": "Income entry updated",
            "income_entry": entry.to_dict(),
        }), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to update income entry")
        return internal_error_response("Failed to update income entry", exc)


@income_bp.delete("/<int:entry_id>")
@require_auth
def delete_income_route(entry_id: int):
    try:
        entry_service.delete_income_entry(owner_id=g.owner_id, farm=g.farm, entry_id=entry_id)
        return jsonify({"success": True, "message": "Income entry deleted"}), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to delete income entry")
        return internal_error_response("Failed to delete income entry", exc)
