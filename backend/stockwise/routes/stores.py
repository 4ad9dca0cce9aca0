# Overview: Flask API routes for stores operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from stockwise.decorators import require_auth, require_capability
from stockwise.errors import InventoryError
from stockwise.permissions import Capability
from stockwise.services import scoping_service, stock_service, store_service


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
@require_auth
@require_capability(Capability.INVENTORY_VIEW)
def list_stores():
    """Visible stores; writable_ids names the ones the user may record movements in."""
    stores = scoping_service.visible_stores(g.current_user, store_service.list_stores())
    writable = scoping_service.writable_stores(g.current_user, stores)
    return jsonify({
        "items": [store.to_dict() for store in stores],
        "writable_ids": [store.id for store in writable],
        "can_select_all": scoping_service.can_select_all_stores(g.current_user),
    }), 200


@stores_bp.get("/tree")
@require_auth
@require_capability(Capability.INVENTORY_VIEW)
def get_store_tree():
    stores = scoping_service.visible_stores(g.current_user, store_service.list_stores())
    return jsonify(store_service.build_store_tree(stores)), 200


@stores_bp.post("")
@require_auth
@require_capability(Capability.STORE_MANAGE)
def create_store():
    data = request.get_json(silent=True) or {}
    try:
        store = store_service.create_store(
            data.get("name"),
            location=data.get("location"),
            parent_id=data.get("parent_id"),
            manager_ids=data.get("managers"),
            viewer_ids=data.get("viewers"),
        )
        return jsonify(store.to_dict()), 201
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to create store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.put("/<int:store_id>/members")
@require_auth
@require_capability(Capability.STORE_MANAGE)
def set_store_members(store_id: int):
    data = request.get_json(silent=True) or {}
    try:
        store = store_service.set_store_members(
            store_id,
            manager_ids=data.get("managers"),
            viewer_ids=data.get("viewers"),
        )
        return jsonify(store.to_dict()), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to update store members")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.get("/<int:store_id>/stock")
@require_auth
@require_capability(Capability.INVENTORY_VIEW)
def get_store_stock(store_id: int):
    store = store_service.get_store(store_id)
    if not store or not scoping_service.can_view_store(g.current_user, store):
        return jsonify({"error": "NOT_FOUND", "entity": "store", "id": store_id}), 404
    try:
        summary = stock_service.aggregate_stock(store_id)
        summary["expiring"] = [b.to_dict() for b in stock_service.expiring_batches(summary["store_ids"])]
        return jsonify(summary), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to load store stock")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.get("/<int:store_id>/flow")
@require_auth
@require_capability(Capability.INVENTORY_VIEW)
def get_store_flow(store_id: int):
    store = store_service.get_store(store_id)
    if not store or not scoping_service.can_view_store(g.current_user, store):
        return jsonify({"error": "NOT_FOUND", "entity": "store", "id": store_id}), 404
    days = request.args.get("days", default=7, type=int)
    if days < 1 or days > 90:
        return jsonify({"error": "VALIDATION_ERROR", "reason": "days must be between 1 and 90"}), 400
    store_ids = store_service.get_descendant_store_ids(store_id)
    return jsonify(stock_service.stock_flow(store_ids, days=days)), 200


@stores_bp.get("/<int:store_id>/low-stock")
@require_auth
@require_capability(Capability.INVENTORY_VIEW)
def get_low_stock(store_id: int):
    store = store_service.get_store(store_id)
    if not store or not scoping_service.can_view_store(g.current_user, store):
        return jsonify({"error": "NOT_FOUND", "entity": "store", "id": store_id}), 404
    try:
        items = stock_service.low_stock_products(store_id)
        return jsonify({"items": items, "count": len(items)}), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to load low stock")
        return jsonify({"error": "Internal server error"}), 500
