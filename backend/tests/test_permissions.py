"""
Permission model tests.

Verifies:
- Capability table and default bundles per level
- Live rule reads: an edit applies to the very next check
- Fail-closed fallbacks (missing row, bad level, storage failure)
- Subscriptions and change polling
"""

import pytest
from sqlalchemy.exc import OperationalError

from stockwise.errors import PermissionDenied, ValidationError
from stockwise.models import RolePermissionRule, User
from stockwise.permissions import (
    Capability,
    DEFAULT_BUNDLES,
    LogsLevel,
    StoreScope,
    default_bundle,
    get_all_capability_codes,
    get_capability_definition,
    is_valid_role_level,
    validate_capability_code,
)
from stockwise.services import permission_service
from stockwise.services.permission_service import RolePermissionStore


class _StubRules:
    """Rule store double returning fixed bundles."""

    def __init__(self, bundles=None):
        self.bundles = bundles or {}

    def get_current(self, level):
        return self.bundles.get(level, default_bundle(level))


def _user(role_level, user_id=1, username="u"):
    return User(id=user_id, username=username, password_hash="x", role_level=role_level)


class TestCapabilityTable:

    def test_every_capability_has_a_rule(self):
        codes = get_all_capability_codes()
        assert Capability.INVENTORY_EDIT in codes
        for code in codes:
            assert validate_capability_code(code)

    def test_unknown_capability_is_invalid(self):
        assert not validate_capability_code("inventory.teleport")

    def test_definition_lookup(self):
        definition = get_capability_definition(Capability.IMPORT_EXECUTE)
        assert definition["category"] == "IMPORTS"
        definition["name"] = "changed"
        assert get_capability_definition(Capability.IMPORT_EXECUTE)["name"] == "Execute Import"
        assert get_capability_definition("inventory.teleport") is None

    @pytest.mark.parametrize("value,valid", [(0, True), (9, True), (10, False), (-1, False), (True, False), ("3", False)])
    def test_role_level_validation(self, value, valid):
        assert is_valid_role_level(value) is valid

    def test_default_bundles_cover_all_levels(self):
        assert sorted(DEFAULT_BUNDLES) == list(range(10))
        assert default_bundle(0).store_scope == StoreScope.GLOBAL
        assert default_bundle(9).store_scope == StoreScope.LIMITED
        assert default_bundle(42) == default_bundle(9)


class TestEvaluate:
    """Capability decisions against injected rules."""

    def test_level_zero_bypasses_rules(self):
        rules = _StubRules()
        assert permission_service.evaluate(Capability.PERMISSIONS_MANAGE, _user(0), rules=rules)

    def test_none_user_denied(self):
        assert not permission_service.evaluate(Capability.INVENTORY_VIEW, None, rules=_StubRules())

    def test_unknown_capability_denied(self):
        assert not permission_service.evaluate("inventory.teleport", _user(1), rules=_StubRules())

    def test_edit_denied_at_level_nine(self):
        rules = _StubRules()
        assert permission_service.evaluate(Capability.INVENTORY_EDIT, _user(8), rules=rules)
        assert not permission_service.evaluate(Capability.INVENTORY_EDIT, _user(9), rules=rules)

    def test_delete_needs_level_one(self):
        rules = _StubRules()
        assert permission_service.evaluate(Capability.INVENTORY_DELETE, _user(1), rules=rules)
        assert not permission_service.evaluate(Capability.INVENTORY_DELETE, _user(2), rules=rules)

    def test_export_follows_show_excel(self):
        from dataclasses import replace
        rules = _StubRules({4: replace(default_bundle(4), show_excel=True)})
        assert permission_service.evaluate(Capability.INVENTORY_EXPORT, _user(4), rules=rules)
        assert not permission_service.evaluate(Capability.INVENTORY_EXPORT, _user(5), rules=rules)

    def test_require_raises(self):
        with pytest.raises(PermissionDenied) as exc:
            permission_service.require(Capability.STORE_MANAGE, _user(9), rules=_StubRules())
        assert exc.value.context["capability"] == Capability.STORE_MANAGE

    def test_can_manage_user_is_strict(self):
        assert permission_service.can_manage_user(_user(1), 2)
        assert not permission_service.can_manage_user(_user(1), 1)
        assert not permission_service.can_manage_user(_user(3), 0)


class TestRuleStore:
    """Rule store backed by RolePermissionRule rows."""

    def test_missing_row_falls_back_to_level_default(self, db_session):
        store = RolePermissionStore()
        assert store.get_current(1) == default_bundle(1)

    def test_invalid_level_gets_most_restrictive(self, db_session):
        store = RolePermissionStore()
        assert store.get_current(17) == default_bundle(9)
        assert store.get_current(None) == default_bundle(9)

    def test_seed_defaults_is_idempotent(self, db_session):
        store = RolePermissionStore()
        assert store.seed_defaults() == 10
        assert store.seed_defaults() == 0
        assert db_session.query(RolePermissionRule).count() == 10

    def test_edit_applies_to_next_check(self, db_session, seeded_rules):
        clerk = _user(3, user_id=None, username="clerk")
        assert not permission_service.evaluate(Capability.INVENTORY_EXPORT, clerk)

        seeded_rules.update_rule(3, show_excel=True)
        assert permission_service.evaluate(Capability.INVENTORY_EXPORT, clerk)

        seeded_rules.update_rule(3, show_excel=False)
        assert not permission_service.evaluate(Capability.INVENTORY_EXPORT, clerk)

    def test_edit_from_another_writer_is_seen(self, db_session, seeded_rules):
        """A change committed outside the store is read on the next check."""
        rule = db_session.get(RolePermissionRule, 2)
        rule.logs_level = LogsLevel.D
        db_session.commit()

        assert seeded_rules.get_current(2).logs_level == LogsLevel.D

    def test_update_rejects_bad_values(self, db_session, seeded_rules):
        with pytest.raises(ValidationError):
            seeded_rules.update_rule(3, logs_level="Z")
        with pytest.raises(ValidationError):
            seeded_rules.update_rule(3, show_excel="yes")
        with pytest.raises(ValidationError):
            seeded_rules.update_rule(3, favourite_colour=True)
        with pytest.raises(ValidationError):
            seeded_rules.update_rule(12, show_excel=True)

    def test_update_creates_missing_row(self, db_session):
        store = RolePermissionStore()
        bundle = store.update_rule(6, view_peers=True)
        assert bundle.view_peers is True
        assert db_session.get(RolePermissionRule, 6).view_peers is True

    def test_storage_failure_is_restrictive(self, db_session, monkeypatch):
        store = RolePermissionStore()

        def _boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "query", _boom)
        assert store.get_current(1) == default_bundle(9)


class TestSubscriptions:

    def test_update_notifies_subscribers(self, db_session, seeded_rules):
        seen = []
        unsubscribe = seeded_rules.subscribe(seen.append)

        seeded_rules.update_rule(4, view_peers=False)
        assert seen == [4]

        unsubscribe()
        seeded_rules.update_rule(4, view_peers=True)
        assert seen == [4]

    def test_failing_subscriber_does_not_block_others(self, db_session, seeded_rules):
        seen = []

        def _broken(level):
            raise RuntimeError("subscriber down")

        seeded_rules.subscribe(_broken)
        seeded_rules.subscribe(seen.append)
        seeded_rules.update_rule(5, view_peers=False)
        assert seen == [5]

    def test_poll_detects_external_change(self, db_session, seeded_rules):
        seen = []
        seeded_rules.subscribe(seen.append)

        assert seeded_rules.poll() == []

        rule = db_session.get(RolePermissionRule, 7)
        rule.show_excel = True
        db_session.commit()

        assert seeded_rules.poll() == [7]
        assert seen == [7]
        assert seeded_rules.poll() == []
