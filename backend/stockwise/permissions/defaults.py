# Overview: Permission bundle type and the hard-coded default bundle per role level.

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace

from .categories import AnnouncementRule, DeleteMode, LogsLevel, StoreScope


MIN_ROLE_LEVEL = 0
MAX_ROLE_LEVEL = 9


@dataclass(frozen=True)
class PermissionBundle:
    """
    Resolved rule for one role level.

    Immutable value: consumers get a fresh bundle from the rule store on every
    check, so a stale copy can never outlive an admin edit for long.
    """
    logs_level: str = LogsLevel.D
    announcement_rule: str = AnnouncementRule.VIEW
    store_scope: str = StoreScope.LIMITED
    delete_mode: str = DeleteMode.SOFT
    show_excel: bool = False
    view_peers: bool = False
    view_self_in_list: bool = True
    hide_perm_page: bool = True
    hide_audit_hall: bool = True
    hide_store_management: bool = True
    hide_new_store_btn: bool = True
    hide_excel_export_btn: bool = True
    hide_store_edit_btn: bool = True
    only_view_config: bool = False

    @classmethod
    def from_rule(cls, rule) -> "PermissionBundle":
        return cls(**{name: getattr(rule, name) for name in BUNDLE_FIELDS})

    def to_dict(self) -> dict:
        return asdict(self)


BUNDLE_FIELDS = tuple(f.name for f in fields(PermissionBundle))


_ADMIN = PermissionBundle(
    logs_level=LogsLevel.A,
    announcement_rule=AnnouncementRule.PUBLISH,
    store_scope=StoreScope.GLOBAL,
    delete_mode=DeleteMode.HARD,
    show_excel=True,
    view_peers=True,
    view_self_in_list=True,
    hide_perm_page=False,
    hide_audit_hall=False,
    hide_store_management=False,
    hide_new_store_btn=False,
    hide_excel_export_btn=False,
    hide_store_edit_btn=False,
    only_view_config=False,
)

_MANAGER = replace(
    _ADMIN,
    logs_level=LogsLevel.B,
    delete_mode=DeleteMode.SOFT,
)

_STAFF = PermissionBundle(
    logs_level=LogsLevel.C,
    announcement_rule=AnnouncementRule.VIEW,
    store_scope=StoreScope.LIMITED,
    delete_mode=DeleteMode.SOFT,
    view_peers=True,
)

_BASIC = PermissionBundle()


DEFAULT_BUNDLES = {
    0: _ADMIN,
    1: _MANAGER,
    2: _MANAGER,
    3: _STAFF,
    4: _STAFF,
    5: _STAFF,
    6: _BASIC,
    7: _BASIC,
    8: _BASIC,
    9: _BASIC,
}


def default_bundle(level) -> PermissionBundle:
    """Default bundle for a level; anything unknown resolves to level 9."""
    return DEFAULT_BUNDLES.get(level, DEFAULT_BUNDLES[MAX_ROLE_LEVEL])
