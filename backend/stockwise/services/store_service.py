from __future__ import annotations

from stockwise.extensions import db
from stockwise.models import Store, User
from stockwise.errors import NotFound, ValidationError
from stockwise.services.concurrency import lock_for_update, run_in_transaction


def _load_users(user_ids) -> list[User]:
    ids = list(dict.fromkeys(user_ids or []))
    if not ids:
        return []
    users = db.session.query(User).filter(User.id.in_(ids)).all()
    found = {u.id for u in users}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFound("user", missing[0])
    return users


def _validate_parent(parent_id: int | None, *, store_id: int | None = None) -> None:
    if parent_id is None:
        return
    if store_id is not None and parent_id == store_id:
        raise ValidationError("store cannot be its own parent", field="parent_id")
    parent = db.session.query(Store).filter_by(id=parent_id).first()
    if not parent:
        raise NotFound("store", parent_id)
    # Two levels only: a parent must itself be top-level
    if parent.parent_id is not None:
        raise ValidationError("parent store must be a top-level store", field="parent_id")
    if store_id is not None:
        has_children = db.session.query(Store.id).filter_by(parent_id=store_id).first()
        if has_children:
            raise ValidationError("a store with child stores cannot get a parent", field="parent_id")


def create_store(
    name: str,
    *,
    location: str | None = None,
    parent_id: int | None = None,
    manager_ids=None,
    viewer_ids=None,
) -> Store:
    def _op():
        if not name or not name.strip():
            raise ValidationError("store name is required", field="name")
        if db.session.query(Store.id).filter_by(name=name.strip()).first():
            raise ValidationError("store name already exists", field="name")
        _validate_parent(parent_id)

        store = Store(name=name.strip(), location=location, parent_id=parent_id)
        store.managers = _load_users(manager_ids)
        store.viewers = _load_users(viewer_ids)
        db.session.add(store)
        db.session.flush()
        return store

    return run_in_transaction(_op)


def update_store(
    store_id: int,
    *,
    name: str | None = None,
    location: str | None = None,
    parent_id: int | None = None,
) -> Store:
    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise NotFound("store", store_id)

        if parent_id is not None:
            _validate_parent(parent_id, store_id=store_id)
            store.parent_id = parent_id
        if name is not None:
            if not name.strip():
                raise ValidationError("store name is required", field="name")
            store.name = name.strip()
        if location is not None:
            store.location = location

        db.session.flush()
        return store

    return run_in_transaction(_op)


def set_store_members(store_id: int, *, manager_ids=None, viewer_ids=None) -> Store:
    """Replace the manager and/or viewer lists (None leaves a list as is)."""
    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise NotFound("store", store_id)
        if manager_ids is not None:
            store.managers = _load_users(manager_ids)
        if viewer_ids is not None:
            store.viewers = _load_users(viewer_ids)
        db.session.flush()
        return store

    return run_in_transaction(_op)


def get_store(store_id: int) -> Store | None:
    return db.session.query(Store).filter_by(id=store_id).first()


def list_stores(*, include_archived: bool = False) -> list[Store]:
    q = db.session.query(Store)
    if not include_archived:
        q = q.filter(Store.is_archived.is_(False))
    return q.order_by(Store.name.asc()).all()


def get_descendant_store_ids(store_id: int, *, include_self: bool = True) -> list[int]:
    stores = db.session.query(Store).filter(Store.is_archived.is_(False)).all()
    children_map: dict[int, list[int]] = {}
    for store in stores:
        if store.parent_id is None:
            continue
        children_map.setdefault(store.parent_id, []).append(store.id)

    result: list[int] = []
    if include_self:
        result.append(store_id)

    stack = list(children_map.get(store_id, []))
    while stack:
        current = stack.pop()
        if current in result:
            continue
        result.append(current)
        stack.extend(children_map.get(current, []))

    return result


def build_store_tree(stores) -> list[dict]:
    """
    Nest an already-filtered store list under its parents.

    A child whose parent is not in `stores` is shown as a root, so a scoped user
    still sees every store they are allowed to see.
    """
    ids = {s.id for s in stores}
    children_map: dict[int, list] = {}
    roots = []
    for store in sorted(stores, key=lambda s: s.name):
        if store.parent_id is not None and store.parent_id in ids:
            children_map.setdefault(store.parent_id, []).append(store)
        else:
            roots.append(store)

    def _build(node) -> dict:
        return {
            "store": node.to_dict(),
            "children": [_build(child) for child in children_map.get(node.id, [])],
        }

    return [_build(root) for root in roots]
