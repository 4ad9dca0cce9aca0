# Overview: Flask API routes for batch ledger operations; parses input and returns JSON responses.

"""
Batch ledger API

Every write checks two things before calling the ledger:
- the capability for the movement (inventory.edit / import.execute / inventory.delete)
- write scope on the store being touched (viewers are read-only)

Quantities may be sent in major units with unit_type=WHOLE; they are converted
to minor units here and the ledger only ever sees minor units.
"""

from flask import Blueprint, current_app, g, jsonify, request

from stockwise.decorators import require_auth, require_capability
from stockwise.errors import InventoryError, NotFound, PermissionDenied, ValidationError
from stockwise.models import Batch, Product, TransactionType
from stockwise.permissions import Capability
from stockwise.services import (
    allocation_service,
    ledger_service,
    permission_service,
    scoping_service,
    store_service,
    unit_service,
)
from stockwise.time_utils import parse_iso_datetime
from stockwise.validation import coerce_int, require_positive_quantity
from ..extensions import db


batches_bp = Blueprint("batches", __name__, url_prefix="/api")


def _require_writable_store(store_id) -> None:
    store = store_service.get_store(store_id)
    if store is None:
        raise NotFound("store", store_id)
    if not scoping_service.can_write_store(g.current_user, store):
        raise PermissionDenied(store_id=store_id, reason="store_not_writable")


def _load_batch(batch_id: int) -> Batch:
    batch = db.session.get(Batch, batch_id)
    if batch is None:
        raise NotFound("batch", batch_id)
    return batch


def _minor_quantity(data: dict, product: Product | None) -> int:
    quantity = require_positive_quantity(data.get("quantity"))
    unit_type = data.get("unit_type", unit_service.UNIT_TYPE_SPLIT)
    return unit_service.to_minor_units(quantity, unit_type, product.split_ratio if product else None)


@batches_bp.post("/batches")
@require_auth
@require_capability(Capability.INVENTORY_EDIT)
def create_batch():
    data = request.get_json(silent=True) or {}
    try:
        tx_type = data.get("type", TransactionType.IN)
        if tx_type == TransactionType.IMPORT:
            permission_service.require(Capability.IMPORT_EXECUTE, g.current_user)
        product_id = coerce_int(data.get("product_id"), "product_id")
        store_id = coerce_int(data.get("store_id"), "store_id")
        _require_writable_store(store_id)
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFound("product", product_id)

        batch, tx = ledger_service.create_batch(
            product_id,
            store_id,
            _minor_quantity(data, product),
            operator=g.current_user,
            batch_number=data.get("batch_number"),
            expiry_date=data.get("expiry_date"),
            remark=data.get("remark"),
            note=data.get("note"),
            tx_type=tx_type,
        )
        return jsonify({"batch": batch.to_dict(), "transaction": tx.to_dict()}), 201
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to create batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.post("/batches/<int:batch_id>/mutate")
@require_auth
@require_capability(Capability.INVENTORY_EDIT)
def mutate_batch(batch_id: int):
    """Body: {"type": "IN" | "OUT" | "IMPORT", "quantity": n, "unit_type": "WHOLE" | "SPLIT", "note"}"""
    data = request.get_json(silent=True) or {}
    try:
        tx_type = data.get("type")
        if tx_type not in (TransactionType.IN, TransactionType.OUT, TransactionType.IMPORT):
            raise ValidationError("type must be IN, OUT or IMPORT", field="type")
        if tx_type == TransactionType.IMPORT:
            permission_service.require(Capability.IMPORT_EXECUTE, g.current_user)

        batch = _load_batch(batch_id)
        _require_writable_store(batch.store_id)
        quantity = _minor_quantity(data, batch.product)
        delta = -quantity if tx_type == TransactionType.OUT else quantity

        tx = ledger_service.mutate(batch_id, delta, tx_type, operator=g.current_user, note=data.get("note"))
        return jsonify(tx.to_dict()), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to mutate batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.post("/batches/<int:batch_id>/adjust")
@require_auth
@require_capability(Capability.INVENTORY_EDIT)
def adjust_batch(batch_id: int):
    """Body may set any of: quantity (absolute, minor units), batch_number, expiry_date, note."""
    data = request.get_json(silent=True) or {}
    try:
        batch = _load_batch(batch_id)
        _require_writable_store(batch.store_id)

        changes = {}
        if "quantity" in data:
            changes["quantity"] = coerce_int(data["quantity"], "quantity")
        if "batch_number" in data:
            changes["batch_number"] = data["batch_number"]
        if "expiry_date" in data:
            changes["expiry_date"] = data["expiry_date"]

        tx = ledger_service.adjust_batch(batch_id, operator=g.current_user, note=data.get("note"), **changes)
        return jsonify(tx.to_dict()), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.post("/batches/<int:batch_id>/archive")
@require_auth
@require_capability(Capability.INVENTORY_DELETE)
def archive_batch(batch_id: int):
    data = request.get_json(silent=True) or {}
    try:
        batch = _load_batch(batch_id)
        _require_writable_store(batch.store_id)
        tx = ledger_service.archive_batch(batch_id, operator=g.current_user, note=data.get("note"))
        return jsonify(tx.to_dict()), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to archive batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.post("/batches/<int:batch_id>/transfer")
@require_auth
@require_capability(Capability.INVENTORY_EDIT)
def transfer_batch(batch_id: int):
    data = request.get_json(silent=True) or {}
    try:
        batch = _load_batch(batch_id)
        to_store_id = coerce_int(data.get("to_store_id"), "to_store_id")
        _require_writable_store(batch.store_id)
        _require_writable_store(to_store_id)

        target, legs = ledger_service.transfer(
            batch_id,
            to_store_id,
            _minor_quantity(data, batch.product),
            operator=g.current_user,
            note=data.get("note"),
        )
        return jsonify({"batch": target.to_dict(), "transactions": [tx.to_dict() for tx in legs]}), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to transfer batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.get("/batches/<int:batch_id>/balance")
@require_auth
@require_capability(Capability.INVENTORY_VIEW)
def batch_balance(batch_id: int):
    try:
        batch = _load_batch(batch_id)
        store = store_service.get_store(batch.store_id)
        if not scoping_service.can_view_store(g.current_user, store):
            raise NotFound("batch", batch_id)
        as_of_raw = request.args.get("as_of")
        try:
            as_of = parse_iso_datetime(as_of_raw)
        except ValueError:
            raise ValidationError("as_of must be an ISO-8601 datetime", field="as_of")
        if as_of is None:
            return jsonify({"batch_id": batch_id, "quantity": batch.quantity}), 200
        return jsonify({
            "batch_id": batch_id,
            "as_of": as_of_raw,
            "quantity": ledger_service.balance_as_of(batch_id, as_of),
        }), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to load batch balance")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.post("/stock/outbound")
@require_auth
@require_capability(Capability.INVENTORY_EDIT)
def outbound():
    """FEFO depletion for a product at a store. Body: product_id, store_id, quantity, unit_type, note."""
    data = request.get_json(silent=True) or {}
    try:
        product_id = coerce_int(data.get("product_id"), "product_id")
        store_id = coerce_int(data.get("store_id"), "store_id")
        _require_writable_store(store_id)
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFound("product", product_id)

        entries = allocation_service.allocate_outbound(
            product_id,
            store_id,
            _minor_quantity(data, product),
            operator=g.current_user,
            note=data.get("note"),
        )
        return jsonify({"transactions": [tx.to_dict() for tx in entries]}), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to allocate outbound stock")
        return jsonify({"error": "Internal server error"}), 500
