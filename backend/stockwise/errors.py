# Overview: Structured error kinds raised by the ledger core.

"""
StockWise error taxonomy.

Every core failure is an InventoryError subclass carrying a stable `code` and a
`context` dict (shortfall, ids, conflicting operator...). The core never builds
user-facing sentences; the route layer serializes `to_dict()` and picks the
HTTP status from `status_code`.

- InsufficientStock: depletion would go negative. Never partially applied.
- PermissionDenied: actor lacks authority (capability table, undo tiers).
- NotFound / AlreadyUndone / CannotRestore / Archived: data-state conflicts.
- StorageUnavailable: transient storage failure; the caller decides to retry.
- ValidationError: malformed input rejected before touching storage.
"""

from __future__ import annotations


class InventoryError(Exception):
    code = "INVENTORY_ERROR"
    status_code = 400

    def __init__(self, **context):
        self.context = context
        super().__init__(self.code)

    def to_dict(self) -> dict:
        return {"error": self.code, **self.context}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.context!r}>"


class ValidationError(InventoryError, ValueError):
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, reason: str, *, field: str | None = None, **context):
        if field is not None:
            context["field"] = field
        super().__init__(reason=reason, **context)
        self.reason = reason
        self.field = field

    def __str__(self) -> str:
        return self.reason


class InsufficientStock(InventoryError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, shortfall: int, **context):
        super().__init__(shortfall=shortfall, **context)
        self.shortfall = shortfall


class PermissionDenied(InventoryError):
    code = "PERMISSION_DENIED"
    status_code = 403


class NotFound(InventoryError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id, **context):
        super().__init__(entity=entity, id=entity_id, **context)


class AlreadyUndone(InventoryError):
    code = "ALREADY_UNDONE"
    status_code = 409


class CannotRestore(InventoryError):
    code = "CANNOT_RESTORE"
    status_code = 409

    def __init__(self, reason: str, **context):
        super().__init__(reason=reason, **context)
        self.reason = reason


class Archived(InventoryError):
    code = "ARCHIVED"
    status_code = 409

    def __init__(self, entity: str, entity_id, **context):
        super().__init__(entity=entity, id=entity_id, **context)


class StorageUnavailable(InventoryError):
    code = "STORAGE_UNAVAILABLE"
    status_code = 503
