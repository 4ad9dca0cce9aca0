# Overview: Service-layer operations for permission rules; live rule store and capability evaluation.

"""
Role Permission Rules and Capability Checks

Administrators edit the rule for each role level at runtime. No rule is cached
for the lifetime of a session.

DESIGN:
- RolePermissionStore is the one configuration service consumers talk to.
  It is injectable (every public function takes `rules=`) and subscribable.
- get_current() re-reads storage on every call. The store only remembers the
  last (version_id, updated_at) it saw per level, which is what poll() diffs.
- evaluate() resolves capabilities through the single CAPABILITY_RULES table.
  Level 0 is the only bypass.

FAIL CLOSED:
- Missing rule row -> hard-coded default for that level.
- Unknown / out-of-range level -> level-9 default.
- Storage failure while reading -> level-9 default, logged, never raised.
- Unknown capability -> False.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import RolePermissionRule
from ..errors import PermissionDenied, ValidationError
from ..permissions import (
    AnnouncementRule,
    BUNDLE_FIELDS,
    CAPABILITY_RULES,
    DEFAULT_BUNDLES,
    DeleteMode,
    LogsLevel,
    MAX_ROLE_LEVEL,
    MIN_ROLE_LEVEL,
    PermissionBundle,
    StoreScope,
    default_bundle,
    is_valid_role_level,
)
from .concurrency import run_in_transaction


SUPER_ADMIN_LEVEL = 0

# Allowed values for enumerated rule fields
_ENUM_FIELDS = {
    "logs_level": LogsLevel.ALL,
    "announcement_rule": AnnouncementRule.ALL,
    "store_scope": StoreScope.ALL,
    "delete_mode": DeleteMode.ALL,
}


class RolePermissionStore:
    """
    Subscribable store of role permission rules backed by RolePermissionRule rows.

    Subscribers are called with the role level that changed. A failing
    subscriber is logged and does not stop the others.
    """

    def __init__(self):
        self._subscribers = []
        self._last_seen: dict[int, tuple] = {}
        self._primed = False

    # -- subscription --

    def subscribe(self, callback):
        """Register callback(level); returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, level: int) -> None:
        for callback in list(self._subscribers):
            try:
                callback(level)
            except Exception:
                current_app.logger.exception("Permission rule subscriber failed for level %s", level)

    # -- reads --

    def get_current(self, level) -> PermissionBundle:
        """Current bundle for a role level, read from storage on every call."""
        if not is_valid_role_level(level):
            return default_bundle(MAX_ROLE_LEVEL)
        try:
            rule = (
                db.session.query(RolePermissionRule)
                .filter_by(role_level=level)
                .populate_existing()
                .first()
            )
        except SQLAlchemyError:
            current_app.logger.warning(
                "Permission rule read failed for level %s; using restrictive default", level,
                exc_info=True,
            )
            return default_bundle(MAX_ROLE_LEVEL)
        if rule is None:
            return default_bundle(level)
        return PermissionBundle.from_rule(rule)

    def list_rules(self) -> dict[int, PermissionBundle]:
        """Bundle for every level 0-9 (stored rule or default)."""
        return {level: self.get_current(level) for level in range(MIN_ROLE_LEVEL, MAX_ROLE_LEVEL + 1)}

    # -- writes --

    def update_rule(self, level: int, **changes) -> PermissionBundle:
        """
        Administrative write of one rule. Creates the row from defaults if absent.

        version_id is bumped by the ORM on every update; subscribers are
        notified after the commit.
        """
        if not is_valid_role_level(level):
            raise ValidationError("role level must be an integer between 0 and 9", field="role_level")
        cleaned = _validate_rule_changes(changes)

        def _op():
            rule = db.session.get(RolePermissionRule, level)
            if rule is None:
                rule = RolePermissionRule(role_level=level, **default_bundle(level).to_dict())
                db.session.add(rule)
            for name, value in cleaned.items():
                setattr(rule, name, value)
            db.session.flush()
            return rule

        rule = run_in_transaction(_op)
        self._last_seen[level] = (rule.version_id, rule.updated_at)
        current_app.logger.info("Permission rule for level %s updated: %s", level, sorted(cleaned))
        self._notify(level)
        return PermissionBundle.from_rule(rule)

    def seed_defaults(self) -> int:
        """Insert default rows for levels that have none. Returns rows created."""
        def _op():
            existing = {r.role_level for r in db.session.query(RolePermissionRule.role_level).all()}
            created = 0
            for level, bundle in DEFAULT_BUNDLES.items():
                if level in existing:
                    continue
                db.session.add(RolePermissionRule(role_level=level, **bundle.to_dict()))
                created += 1
            return created

        return run_in_transaction(_op)

    # -- change detection --

    def poll(self) -> list[int]:
        """
        Detect rules changed in storage since the last poll and notify subscribers.

        The first call only records a baseline. Returns the changed levels.
        """
        rows = db.session.query(
            RolePermissionRule.role_level,
            RolePermissionRule.version_id,
            RolePermissionRule.updated_at,
        ).all()
        current = {row.role_level: (row.version_id, row.updated_at) for row in rows}

        if not self._primed:
            self._last_seen = current
            self._primed = True
            return []

        changed = sorted(
            level for level in set(current) | set(self._last_seen)
            if current.get(level) != self._last_seen.get(level)
        )
        self._last_seen = current
        for level in changed:
            current_app.logger.info("Permission rule for level %s changed in storage", level)
            self._notify(level)
        return changed


def _validate_rule_changes(changes: dict) -> dict:
    cleaned = {}
    for name, value in changes.items():
        if name not in BUNDLE_FIELDS:
            raise ValidationError(f"unknown rule field: {name}", field=name)
        if name in _ENUM_FIELDS:
            if value not in _ENUM_FIELDS[name]:
                raise ValidationError(f"{name} must be one of {', '.join(_ENUM_FIELDS[name])}", field=name)
        elif not isinstance(value, bool):
            raise ValidationError(f"{name} must be a boolean", field=name)
        cleaned[name] = value
    if not cleaned:
        raise ValidationError("no rule fields to update")
    return cleaned


# Process-wide default store; tests and embedders pass their own via rules=
rule_store = RolePermissionStore()


def get_permission(level, *, rules: RolePermissionStore | None = None) -> PermissionBundle:
    return (rules or rule_store).get_current(level)


def evaluate(capability: str, user, *, rules: RolePermissionStore | None = None) -> bool:
    """
    Decide whether `user` holds `capability` under the current rules.

    Denial is a boolean. Operations that need an exception use require().
    """
    if user is None:
        return False
    if user.role_level == SUPER_ADMIN_LEVEL:
        return True
    predicate = CAPABILITY_RULES.get(capability)
    if predicate is None:
        return False
    bundle = get_permission(user.role_level, rules=rules)
    return bool(predicate(user.role_level, bundle))


def require(capability: str, user, *, rules: RolePermissionStore | None = None) -> None:
    """Raise PermissionDenied unless `user` holds `capability`."""
    if not evaluate(capability, user, rules=rules):
        raise PermissionDenied(
            capability=capability,
            role_level=getattr(user, "role_level", None),
        )


def can_manage_user(actor, target_level: int) -> bool:
    """Strict hierarchy: an actor manages only numerically greater levels."""
    if actor is None:
        return False
    return actor.role_level < target_level


def capabilities_for(user, *, rules: RolePermissionStore | None = None) -> list[str]:
    """Every capability code the user currently holds, in table order."""
    return [code for code in CAPABILITY_RULES if evaluate(code, user, rules=rules)]
