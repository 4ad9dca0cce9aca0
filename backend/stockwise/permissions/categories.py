# Overview: Constant classes for capability categories and rule field values.


class CapabilityCategory:
    """Capability categories for grouping and admin display."""
    INVENTORY = "INVENTORY"
    IMPORTS = "IMPORTS"
    COMMUNICATIONS = "COMMUNICATIONS"
    LOGS = "LOGS"
    STORES = "STORES"
    SYSTEM = "SYSTEM"


class LogsLevel:
    """
    Log visibility / undo authority tier.

    A: everything, may undo anyone's entries
    B: may undo own entries and entries of lower-privileged operators
    C: sees all logs, may undo own entries only
    D: own entries only
    """
    A = "A"
    B = "B"
    C = "C"
    D = "D"

    ALL = (A, B, C, D)


class AnnouncementRule:
    PUBLISH = "PUBLISH"
    VIEW = "VIEW"

    ALL = (PUBLISH, VIEW)


class StoreScope:
    GLOBAL = "GLOBAL"
    LIMITED = "LIMITED"

    ALL = (GLOBAL, LIMITED)


class DeleteMode:
    SOFT = "SOFT"
    HARD = "HARD"

    ALL = (SOFT, HARD)
