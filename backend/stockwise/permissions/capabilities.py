# Overview: The capability table.
# Each capability is defined as: (code, name, description, category)
# and decided by exactly one predicate in CAPABILITY_RULES.

from .categories import AnnouncementRule, CapabilityCategory, LogsLevel


class Capability:
    INVENTORY_VIEW = "inventory.view"
    INVENTORY_EDIT = "inventory.edit"
    INVENTORY_DELETE = "inventory.delete"
    INVENTORY_EXPORT = "inventory.export"
    IMPORT_EXECUTE = "import.execute"
    ANNOUNCEMENT_CREATE = "announcement.create"
    LOGS_VIEW_ALL = "logs.view_all"
    STORE_MANAGE = "store.manage"
    PERMISSIONS_MANAGE = "permissions.manage"


CAPABILITY_DEFINITIONS = [
    (
        Capability.INVENTORY_VIEW,
        "View Inventory",
        "View products, batches and stock levels",
        CapabilityCategory.INVENTORY,
    ),
    (
        Capability.INVENTORY_EDIT,
        "Edit Inventory",
        "Create batches, record inbound/outbound movements and adjustments",
        CapabilityCategory.INVENTORY,
    ),
    (
        Capability.INVENTORY_DELETE,
        "Delete Inventory",
        "Archive batches and products",
        CapabilityCategory.INVENTORY,
    ),
    (
        Capability.INVENTORY_EXPORT,
        "Export Inventory",
        "Export stock listings to spreadsheets",
        CapabilityCategory.INVENTORY,
    ),
    (
        Capability.IMPORT_EXECUTE,
        "Execute Import",
        "Run bulk stock imports (IMPORT transactions)",
        CapabilityCategory.IMPORTS,
    ),
    (
        Capability.ANNOUNCEMENT_CREATE,
        "Create Announcement",
        "Publish announcements to other users",
        CapabilityCategory.COMMUNICATIONS,
    ),
    (
        Capability.LOGS_VIEW_ALL,
        "View All Logs",
        "View every user's stock transactions, not only one's own",
        CapabilityCategory.LOGS,
    ),
    (
        Capability.STORE_MANAGE,
        "Manage Stores",
        "Create and edit stores and their members",
        CapabilityCategory.STORES,
    ),
    (
        Capability.PERMISSIONS_MANAGE,
        "Manage Permissions",
        "Edit role permission rules",
        CapabilityCategory.SYSTEM,
    ),
]


# Predicates take (role_level, bundle). Level 0 never reaches them.
CAPABILITY_RULES = {
    Capability.INVENTORY_VIEW: lambda level, bundle: True,
    Capability.INVENTORY_EDIT: lambda level, bundle: level < 9,
    Capability.INVENTORY_DELETE: lambda level, bundle: level <= 1,
    Capability.INVENTORY_EXPORT: lambda level, bundle: bundle.show_excel,
    Capability.IMPORT_EXECUTE: lambda level, bundle: level <= 5,
    Capability.ANNOUNCEMENT_CREATE: lambda level, bundle: bundle.announcement_rule == AnnouncementRule.PUBLISH,
    Capability.LOGS_VIEW_ALL: lambda level, bundle: bundle.logs_level in (LogsLevel.A, LogsLevel.B, LogsLevel.C),
    Capability.STORE_MANAGE: lambda level, bundle: not bundle.hide_store_management,
    Capability.PERMISSIONS_MANAGE: lambda level, bundle: level <= 1 and not bundle.hide_perm_page,
}
