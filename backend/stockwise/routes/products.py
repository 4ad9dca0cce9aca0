# Overview: Flask API routes for products operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from stockwise.decorators import require_auth, require_capability
from stockwise.errors import InventoryError
from stockwise.models import Product
from stockwise.permissions import Capability
from stockwise.services import ledger_service, products_service, scoping_service, store_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _visible_store_ids(user) -> set[int]:
    return {s.id for s in scoping_service.visible_stores(user, store_service.list_stores())}


def _product_visible_to(user, product: Product) -> bool:
    if product.bound_store_id is None or scoping_service.has_global_scope(user):
        return True
    return product.bound_store_id in _visible_store_ids(user)


@products_bp.get("")
@require_auth
@require_capability(Capability.INVENTORY_VIEW)
def list_products():
    """
    ?store_id=<id>  products usable in that store
    ?store_id=all   every product (globally scoped users only)
    no store_id     products usable in any store the user can see
    """
    user = g.current_user
    raw = request.args.get("store_id")
    include_archived = request.args.get("include_archived") == "true"

    if raw == scoping_service.ALL_STORES or (raw is None and scoping_service.has_global_scope(user)):
        if not scoping_service.can_select_all_stores(user):
            return jsonify({"error": "PERMISSION_DENIED", "reason": "store scope is limited"}), 403
        products = products_service.list_products(include_archived=include_archived)
    elif raw is None:
        visible_ids = _visible_store_ids(user)
        products = [
            p for p in products_service.list_products(include_archived=include_archived)
            if p.bound_store_id is None or p.bound_store_id in visible_ids
        ]
    else:
        try:
            store_id = int(raw)
        except ValueError:
            return jsonify({"error": "VALIDATION_ERROR", "reason": "store_id must be an integer or 'all'"}), 400
        if store_id not in _visible_store_ids(user):
            return jsonify({"error": "NOT_FOUND", "entity": "store", "id": store_id}), 404
        products = products_service.list_products(store_id=store_id, include_archived=include_archived)

    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.post("")
@require_auth
@require_capability(Capability.INVENTORY_EDIT)
def create_product():
    try:
        product = products_service.create_product(request.get_json(silent=True))
        return jsonify(product.to_dict()), 201
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_capability(Capability.INVENTORY_EDIT)
def update_product(product_id: int):
    product = products_service.get_product(product_id)
    if not product or not _product_visible_to(g.current_user, product):
        return jsonify({"error": "NOT_FOUND", "entity": "product", "id": product_id}), 404
    try:
        product = products_service.update_product(product_id, request.get_json(silent=True))
        return jsonify(product.to_dict()), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/archive")
@require_auth
@require_capability(Capability.INVENTORY_DELETE)
def archive_product(product_id: int):
    product = products_service.get_product(product_id)
    if not product or not _product_visible_to(g.current_user, product):
        return jsonify({"error": "NOT_FOUND", "entity": "product", "id": product_id}), 404
    data = request.get_json(silent=True) or {}
    try:
        entries = ledger_service.archive_product(product_id, operator=g.current_user, note=data.get("note"))
        return jsonify({"transactions": [tx.to_dict() for tx in entries]}), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to archive product")
        return jsonify({"error": "Internal server error"}), 500
