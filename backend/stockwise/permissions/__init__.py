# Overview: Permission model package.
# Re-exports the capability table, rule field constants and default bundles.

from .categories import (
    CapabilityCategory,
    LogsLevel,
    AnnouncementRule,
    StoreScope,
    DeleteMode,
)
from .capabilities import Capability, CAPABILITY_DEFINITIONS, CAPABILITY_RULES
from .defaults import (
    PermissionBundle,
    BUNDLE_FIELDS,
    DEFAULT_BUNDLES,
    MIN_ROLE_LEVEL,
    MAX_ROLE_LEVEL,
    default_bundle,
)
from .helpers import (
    get_all_capability_codes,
    get_capability_definition,
    validate_capability_code,
    is_valid_role_level,
)

__all__ = [
    "CapabilityCategory",
    "LogsLevel",
    "AnnouncementRule",
    "StoreScope",
    "DeleteMode",
    "Capability",
    "CAPABILITY_DEFINITIONS",
    "CAPABILITY_RULES",
    "PermissionBundle",
    "BUNDLE_FIELDS",
    "DEFAULT_BUNDLES",
    "MIN_ROLE_LEVEL",
    "MAX_ROLE_LEVEL",
    "default_bundle",
    "get_all_capability_codes",
    "get_capability_definition",
    "validate_capability_code",
    "is_valid_role_level",
]
