# Overview: Capability and role level lookups shared by the API and the CLI.

from .capabilities import CAPABILITY_DEFINITIONS
from .defaults import MAX_ROLE_LEVEL, MIN_ROLE_LEVEL


_DEFINITIONS_BY_CODE = {
    code: {"code": code, "name": name, "description": description, "category": category}
    for code, name, description, category in CAPABILITY_DEFINITIONS
}


def get_all_capability_codes() -> list[str]:
    """Capability codes in table order."""
    return list(_DEFINITIONS_BY_CODE)


def get_capability_definition(code) -> dict | None:
    definition = _DEFINITIONS_BY_CODE.get(code)
    return dict(definition) if definition is not None else None


def validate_capability_code(code) -> bool:
    return code in _DEFINITIONS_BY_CODE


def is_valid_role_level(level):
    return isinstance(level, int) and not isinstance(level, bool) and MIN_ROLE_LEVEL <= level <= MAX_ROLE_LEVEL
