# Overview: Service-layer filters deciding which stores and products a user may see or write.

"""
Store / Product Scoping

Pure functions over already-loaded objects; no queries. A user's scope comes
from the current rule for their role level:

- role level 0 or store_scope GLOBAL: every store
- store_scope LIMITED: stores in allowed_store_ids, plus stores listing the
  user as manager or viewer (viewers read only)

Products bound to a store are visible only in that store; unbound products are
visible everywhere. The "all" store selector turns the product filter off.
"""

from __future__ import annotations

from ..permissions import StoreScope
from .permission_service import SUPER_ADMIN_LEVEL, get_permission


ALL_STORES = "all"


def has_global_scope(user, *, rules=None) -> bool:
    if user is None:
        return False
    if user.role_level == SUPER_ADMIN_LEVEL:
        return True
    return get_permission(user.role_level, rules=rules).store_scope == StoreScope.GLOBAL


def _allowed_ids(user) -> set:
    return set(getattr(user, "allowed_store_ids", None) or [])


def can_view_store(user, store, *, rules=None) -> bool:
    if has_global_scope(user, rules=rules):
        return True
    if user is None:
        return False
    return (
        store.id in _allowed_ids(user)
        or user.id in (store.manager_ids or [])
        or user.id in (store.viewer_ids or [])
    )


def can_write_store(user, store, *, rules=None) -> bool:
    if has_global_scope(user, rules=rules):
        return True
    if user is None:
        return False
    return store.id in _allowed_ids(user) or user.id in (store.manager_ids or [])


def visible_stores(user, stores, *, rules=None) -> list:
    """Subset of `stores` the user may see, input order preserved."""
    if has_global_scope(user, rules=rules):
        return list(stores)
    return [s for s in stores if can_view_store(user, s, rules=rules)]


def writable_stores(user, stores, *, rules=None) -> list:
    if has_global_scope(user, rules=rules):
        return list(stores)
    return [s for s in stores if can_write_store(user, s, rules=rules)]


def visible_products(products, current_store_id) -> list:
    """Unbound products everywhere; bound products only in their own store."""
    if current_store_id == ALL_STORES:
        return list(products)
    return [
        p for p in products
        if p.bound_store_id is None or p.bound_store_id == current_store_id
    ]


def can_select_all_stores(user, *, rules=None) -> bool:
    """Only globally scoped users get the "all stores" selector."""
    return has_global_scope(user, rules=rules)
