# Overview: Flask API routes for farm supply inventory; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_farm
from ..errors import AgroCajaError, error_response, internal_error_response
from ..models.inventory import quantity_out
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("")
@inventory_bp.post("/")
@require_auth
def create_item_route():
    """
    Request body:
    {
        "name": "Urea 46%",
        "category": "fertilizante",
        "unit_price_cents": 500,
        "stock_quantity": 40,
        "volume_liters": null
    }
    """
    try:
        item = inventory_service.create_item(
            owner_id=g.owner_id, farm=g.farm, payload=request.get_json(silent=True)
        )
        return jsonify({
            "success": True,
            "message": "Inventory item created",
            "item": item.to_dict(),
        }), 201

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to create inventory item")
        return internal_error_response("Failed to create inventory item", exc)


@inventory_bp.get("")
@inventory_bp.get("/")
@require_auth
@require_farm
def list_items_route():
    try:
        items = inventory_service.list_items(g.owner_id, g.farm)
        return jsonify({
            "success": True,
            "items": [i.to_dict() for i in items],
            "count": len(items),
        }), 200

    except Exception as exc:
        current_app.logger.exception("Failed to list inventory")
        return internal_error_response("Failed to list inventory", exc)


@inventory_bp.get("/stats")
@require_auth
@require_farm
def inventory_stats_route():
    try:
        return jsonify({"success": True, "stats": inventory_service.inventory_stats(g.owner_id, g.farm)}), 200

    except Exception as exc:
        current_app.logger.exception("Failed to compute inventory stats")
        return internal_error_response("Failed to compute inventory stats", exc)


@inventory_bp.get("/low-stock")
@require_auth
@require_farm
def low_stock_route():
    """Query params: threshold (default 5)."""
    try:
        items, threshold = inventory_service.low_stock_items(
            g.owner_id, g.farm, request.args.get("threshold")
        )
        return jsonify({
            "success": True,
            "items": [i.to_dict() for i in items],
            "count": len(items),
            "threshold": quantity_out(threshold),
        }), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to list low-stock items")
        return internal_error_response("Failed to list low-stock items", exc)


@inventory_bp.get("/<int:item_id>")
@require_auth
@require_farm
def get_item_route(item_id: int):
    try:
        item = inventory_service.get_item(g.owner_id, g.farm, item_id)
        return jsonify({"success": True, "item": item.to_dict()}), 200

    except AgroCajaError as exc:
        return error_response(exc)


@inventory_bp.put("/<int:item_id>")
@require_auth
def update_item_route(item_id: int):
    try:
        item = inventory_service.update_item(
            owner_id=g.owner_id, farm=g.farm, item_id=item_id, payload=request.get_json(silent=True)
        )
        return jsonify({
            "success": True,
            "message": "Inventory item updated",
            "item": item.to_dict(),
        }), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to update inventory item")
        return internal_error_response("Failed to update inventory item", exc)


@inventory_bp.delete("/<int:item_id>")
@require_auth
def delete_item_route(item_id: int):
    try:
        inventory_service.delete_item(owner_id=g.owner_id, farm=g.farm, item_id=item_id)
        return jsonify({"success": True, "message": "Inventory item deleted"}), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to delete inventory item")
        return internal_error_response("Failed to delete inventory item", exc)
