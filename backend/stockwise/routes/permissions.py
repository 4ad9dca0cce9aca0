# Overview: Flask API routes for role permission rules.

from flask import Blueprint, current_app, g, jsonify, request

from stockwise.decorators import require_auth, require_capability
from stockwise.errors import InventoryError
from stockwise.permissions import Capability, get_all_capability_codes, get_capability_definition
from stockwise.services import permission_service


permissions_bp = Blueprint("permissions", __name__, url_prefix="/api/permissions")


@permissions_bp.get("/me")
@require_auth
def my_permissions():
    user = g.current_user
    return jsonify({
        "role_level": user.role_level,
        "permission": permission_service.get_permission(user.role_level).to_dict(),
        "capabilities": permission_service.capabilities_for(user),
    }), 200


@permissions_bp.get("/rules")
@require_auth
@require_capability(Capability.PERMISSIONS_MANAGE)
def list_rules():
    rules = permission_service.rule_store.list_rules()
    return jsonify({
        "rules": {str(level): bundle.to_dict() for level, bundle in rules.items()},
        "capabilities": [get_capability_definition(code) for code in get_all_capability_codes()],
    }), 200


@permissions_bp.put("/rules/<int:level>")
@require_auth
@require_capability(Capability.PERMISSIONS_MANAGE)
def update_rule(level: int):
    """Admins edit only levels below their own; level 0 edits any level."""
    user = g.current_user
    if user.role_level != permission_service.SUPER_ADMIN_LEVEL and not permission_service.can_manage_user(user, level):
        return jsonify({"error": "PERMISSION_DENIED", "reason": "cannot edit rules at or above own level"}), 403

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "VALIDATION_ERROR", "reason": "Invalid JSON payload"}), 400
    try:
        bundle = permission_service.rule_store.update_rule(level, **data)
        return jsonify({"role_level": level, "permission": bundle.to_dict()}), 200
    except InventoryError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to update permission rule")
        return jsonify({"error": "Internal server error"}), 500
