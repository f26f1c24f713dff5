# Overview: Flask API routes for settlements (liquidaciones); processing, history and stats.

"""
Settlement API Routes

DESIGN:
- POST /api/settlement books the selected unsettled income entries and
  expenses of the active farm in one transaction
- Ids that no longer qualify are dropped; the summary reports requested vs
  found counts so the client can tell
- Settlement records are immutable; cancel flips status only
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import AgroCajaError, error_response, internal_error_response
from ..services import cash_service, pending_service, reporting_service, settlement_service


settlements_bp = Blueprint("settlements", __name__, url_prefix="/api/settlement")


@settlements_bp.post("")
@settlements_bp.post("/")
@require_auth
def create_settlement_route():
    """
    Settle selected entries of the active farm.

    Request body:
    {
        "income_entry_ids": [1, 2],
        "expense_ids": [7],
        "notes": "Cierre de marzo"   (optional)
    }

    Returns 201 with {settlement, summary}.
    """
    try:
        data = request.get_json(silent=True) or {}

        result = settlement_service.process_settlement(
            owner_id=g.owner_id,
            farm=g.farm,
            income_entry_ids=data.get("income_entry_ids", []),
            expense_ids=data.get("expense_ids", []),
            notes=data.get("notes"),
            settled_by=g.current_user.label,
        )
        summary = result.summary()

        if result.has_drift:
            current_app.logger.warning(
                "Settlement %s on farm %r skipped ids: income %s/%s, expenses %s/%s found",
                result.settlement.settlement_number, g.farm,
                summary["income_found"], summary["income_requested"],
                summary["expense_found"], summary["expense_requested"],
            )

        return jsonify({
            "success": True,
            "message": f"Settlement {result.settlement.settlement_number} completed",
            "settlement": result.settlement.to_dict(),
            "summary": summary,
        }), 201

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to process settlement")
        return internal_error_response("Failed to process settlement", exc)


@settlements_bp.get("/preview")
@require_auth
def preview_settlement_route():
    """What settling every pending entry right now would book (read-only)."""
    try:
        opening = cash_service.get_cash_balance(g.owner_id, g.farm).balance_cents
        totals = pending_service.pending_totals(g.owner_id, g.farm)
        return jsonify({
            "success": True,
            "opening_balance_cents": opening,
            **totals,
            "projected_closing_balance_cents": opening + totals["income_total_cents"] - totals["egress_total_cents"],
        }), 200

    except Exception as exc:
        current_app.logger.exception("Failed to build settlement preview")
        return internal_error_response("Failed to build settlement preview", exc)


@settlements_bp.get("/history")
@require_auth
def settlement_history_route():
    """
    Query params:
    - start_date / end_date: ISO dates, inclusive
    - limit: default 50, max 500
    """
    try:
        limit = request.args.get("limit", default=reporting_service.DEFAULT_HISTORY_LIMIT, type=int)
        settlements = reporting_service.list_settlements(
            g.owner_id,
            g.farm,
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
            limit=limit,
        )
        return jsonify({
            "success": True,
            "settlements": [s.to_dict(include_lines=False) for s in settlements],
            "count": len(settlements),
        }), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to list settlements")
        return internal_error_response("Failed to list settlements", exc)


@settlements_bp.get("/stats")
@require_auth
def settlement_stats_route():
    try:
        stats = reporting_service.settlement_stats(g.owner_id, g.farm)
        return jsonify({"success": True, "stats": stats}), 200

    except Exception as exc:
        current_app.logger.exception("Failed to compute settlement stats")
        return internal_error_response("Failed to compute settlement stats", exc)


@settlements_bp.get("/<int:settlement_id>")
@require_auth
def get_settlement_route(settlement_id: int):
    try:
        settlement = settlement_service.get_settlement(g.owner_id, settlement_id)
        return jsonify({"success": True, "settlement": settlement.to_dict()}), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to load settlement")
        return internal_error_response("Failed to load settlement", exc)


@settlements_bp.post("/<int:settlement_id>/cancel")
@require_auth
def cancel_settlement_route(settlement_id: int):
    """
    Mark a settlement CANCELLED. Balances and settled flags are left as they are.

    Request body: {"reason": "Duplicated closing"}   (optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        settlement = settlement_service.cancel_settlement(g.owner_id, settlement_id, data.get("reason"))

        current_app.logger.info(
            "Settlement %s cancelled by %s", settlement.settlement_number, g.current_user.username
        )

        return jsonify({
            "success": True,
            "message": f"Settlement {settlement.settlement_number} cancelled",
            "settlement": settlement.to_dict(include_lines=False),
        }), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to cancel settlement")
        return internal_error_response("Failed to cancel settlement", exc)
