# Overview: Flask API routes for the stock transaction log and undo.

from flask import Blueprint, current_app, g, jsonify, request

from stockwise.decorators import require_auth, require_capability
from stockwise.errors import InventoryError
from stockwise.models import TransactionType
from stockwise.permissions import Capability
from stockwise.services import ledger_service, permission_service, scoping_service, store_service, undo_service
from stockwise.time_utils import parse_iso_datetime


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

MAX_LIMIT = 500


@transactions_bp.get("")
@require_auth
@require_capability(Capability.INVENTORY_VIEW)
def list_transactions():
    """
    Ledger view.

    Users with logs.view_all see entries for every store they can see; others
    see only their own entries. RESTORE entries are hidden unless
    include_restore=true.
    """
    user = g.current_user
    args = request.args

    tx_type = args.get("type")
    if tx_type is not None and tx_type not in TransactionType.ALL:
        return jsonify({"error": "VALIDATION_ERROR", "reason": "unknown type", "field": "type"}), 400

    limit = args.get("limit", default=100, type=int)
    if limit < 1 or limit > MAX_LIMIT:
        return jsonify({"error": "VALIDATION_ERROR", "reason": f"limit must be between 1 and {MAX_LIMIT}"}), 400

    try:
        since = parse_iso_datetime(args.get("since"))
        until = parse_iso_datetime(args.get("until"))
    except ValueError:
        return jsonify({"error": "VALIDATION_ERROR", "reason": "since/until must be ISO-8601 datetimes"}), 400

    filters = {
        "product_id": args.get("product_id", type=int),
        "batch_id": args.get("batch_id", type=int),
        "tx_type": tx_type,
        "since": since,
        "until": until,
        "include_restore": args.get("include_restore") == "true",
        "limit": limit,
    }

    if permission_service.evaluate(Capability.LOGS_VIEW_ALL, user):
        if not scoping_service.has_global_scope(user):
            visible = scoping_service.visible_stores(user, store_service.list_stores(include_archived=True))
            filters["store_ids"] = [s.id for s in visible]
        store_id = args.get("store_id", type=int)
        if store_id is not None:
            if "store_ids" in filters and store_id not in filters["store_ids"]:
                return jsonify({"items": [], "count": 0}), 200
            filters["store_ids"] = [store_id]
    else:
        filters["operator_id"] = user.id

    entries = ledger_service.list_transactions(**filters)
    return jsonify({"items": [tx.to_dict() for tx in entries], "count": len(entries)}), 200


@transactions_bp.post("/<int:transaction_id>/undo")
@require_auth
def undo_transaction(transaction_id: int):
    try:
        restored = undo_service.undo(transaction_id, g.current_user)
        return jsonify({
            "undone": transaction_id,
            "transactions": [tx.to_dict() for tx in restored],
        }), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to undo transaction")
        return jsonify({"error": "Internal server error"}), 500
