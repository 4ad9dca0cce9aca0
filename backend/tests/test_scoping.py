"""
Store / product scoping tests.

Verifies:
- GLOBAL scope and level 0 see every store
- LIMITED scope sees allowed, managed and viewed stores only
- Viewers read but cannot write
- Bound products only appear in their own store
- Store hierarchy helpers
"""

from dataclasses import replace
from types import SimpleNamespace

import pytest

from stockwise.errors import NotFound, ValidationError
from stockwise.permissions import StoreScope, default_bundle
from stockwise.services import scoping_service, store_service
from stockwise.services.scoping_service import ALL_STORES


class _StubRules:
    def __init__(self, bundles=None):
        self.bundles = bundles or {}

    def get_current(self, level):
        return self.bundles.get(level, default_bundle(level))


def _user(user_id, role_level, allowed=()):
    return SimpleNamespace(id=user_id, role_level=role_level, allowed_store_ids=list(allowed))


def _store(store_id, managers=(), viewers=()):
    return SimpleNamespace(id=store_id, manager_ids=list(managers), viewer_ids=list(viewers))


STORES = [_store(1), _store(2, managers=[7]), _store(3, viewers=[7]), _store(4)]


class TestStoreVisibility:

    def test_level_zero_sees_all(self):
        admin = _user(1, 0)
        assert scoping_service.visible_stores(admin, STORES, rules=_StubRules()) == STORES

    def test_global_scope_sees_all(self):
        manager = _user(2, 1)
        assert scoping_service.visible_stores(manager, STORES, rules=_StubRules()) == STORES
        assert scoping_service.can_select_all_stores(manager, rules=_StubRules())

    def test_limited_scope_sees_allowed_managed_and_viewed(self):
        clerk = _user(7, 3, allowed=[1])
        visible = scoping_service.visible_stores(clerk, STORES, rules=_StubRules())
        assert [s.id for s in visible] == [1, 2, 3]
        assert not scoping_service.can_select_all_stores(clerk, rules=_StubRules())

    def test_viewer_cannot_write(self):
        clerk = _user(7, 3, allowed=[1])
        writable = scoping_service.writable_stores(clerk, STORES, rules=_StubRules())
        assert [s.id for s in writable] == [1, 2]

    def test_scope_follows_rule(self):
        rules = _StubRules({3: replace(default_bundle(3), store_scope=StoreScope.GLOBAL)})
        clerk = _user(7, 3)
        assert scoping_service.visible_stores(clerk, STORES, rules=rules) == STORES

    def test_no_user_sees_nothing(self):
        assert scoping_service.visible_stores(None, STORES, rules=_StubRules()) == []


class TestProductVisibility:

    PRODUCTS = [
        SimpleNamespace(id=1, bound_store_id=None),
        SimpleNamespace(id=2, bound_store_id=1),
        SimpleNamespace(id=3, bound_store_id=2),
    ]

    def test_bound_products_only_in_own_store(self):
        assert [p.id for p in scoping_service.visible_products(self.PRODUCTS, 1)] == [1, 2]
        assert [p.id for p in scoping_service.visible_products(self.PRODUCTS, 2)] == [1, 3]
        assert [p.id for p in scoping_service.visible_products(self.PRODUCTS, 9)] == [1]

    def test_all_selector_shows_everything(self):
        assert [p.id for p in scoping_service.visible_products(self.PRODUCTS, ALL_STORES)] == [1, 2, 3]


class TestStoreHierarchy:

    def test_descendants_include_children(self, db_session, make_store):
        parent = make_store("North")
        child_a = make_store("North-1", parent_id=parent.id)
        child_b = make_store("North-2", parent_id=parent.id)
        make_store("South")

        ids = store_service.get_descendant_store_ids(parent.id)
        assert ids[0] == parent.id
        assert sorted(ids[1:]) == sorted([child_a.id, child_b.id])
        assert store_service.get_descendant_store_ids(child_a.id) == [child_a.id]

    def test_only_two_levels(self, db_session, make_store):
        parent = make_store("North")
        child = make_store("North-1", parent_id=parent.id)
        with pytest.raises(ValidationError):
            store_service.create_store("North-1-a", parent_id=child.id)

    def test_parent_with_children_cannot_be_nested(self, db_session, make_store):
        parent = make_store("North")
        make_store("North-1", parent_id=parent.id)
        other = make_store("South")
        with pytest.raises(ValidationError):
            store_service.update_store(parent.id, parent_id=other.id)

    def test_duplicate_store_name(self, db_session, make_store):
        make_store("North")
        with pytest.raises(ValidationError):
            store_service.create_store("North")

    def test_unknown_member(self, db_session):
        with pytest.raises(NotFound):
            store_service.create_store("East", manager_ids=[12345])

    def test_tree_promotes_orphans_to_roots(self, db_session, make_store):
        parent = make_store("North")
        child = make_store("North-1", parent_id=parent.id)
        lonely = make_store("West-1", parent_id=make_store("West").id)

        tree = store_service.build_store_tree([parent, child, lonely])

        names = [node["store"]["name"] for node in tree]
        assert names == ["North", "West-1"]
        assert tree[0]["children"][0]["store"]["id"] == child.id

    def test_set_members(self, db_session, make_store, make_user):
        store = make_store("North")
        bob = make_user("bob", role_level=4)
        store_service.set_store_members(store.id, manager_ids=[bob.id], viewer_ids=[])
        assert store_service.get_store(store.id).manager_ids == [bob.id]
