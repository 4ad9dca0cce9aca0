# Overview: Service-layer helpers for unit conversion between major (whole) and minor (split) units.

"""
Unit Conversion

Every stored quantity is an integer count of minor units. A product's
split_ratio says how many minor units make one major unit (e.g. 1 box = 12
pieces). Conversion is display / input only; nothing here touches storage.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, has_app_context

from ..errors import ValidationError


UNIT_TYPE_WHOLE = "WHOLE"
UNIT_TYPE_SPLIT = "SPLIT"

DEFAULT_LOW_STOCK_THRESHOLD = 10


@dataclass(frozen=True)
class UnitSplit:
    """major is None when the ratio is unset (no major unit to show)."""
    major: int | None
    minor: int


def split(quantity: int, ratio: int | None) -> UnitSplit:
    """
    Decompose a minor-unit quantity.

    - ratio >= 1: major = quantity // ratio, minor = quantity % ratio
    - ratio None or < 1: degenerate, everything is minor
    Negative quantities are not validated here.
    """
    if ratio is None or ratio < 1:
        return UnitSplit(major=None, minor=quantity)
    return UnitSplit(major=quantity // ratio, minor=quantity % ratio)


def format_quantity(quantity: int, product) -> str:
    """
    Human display, e.g. "2Box 3Pc".

    Products with ratio <= 1 (or unset) show minor units only.
    """
    ratio = getattr(product, "split_ratio", None)
    minor_label = getattr(product, "split_unit_name", None) or ""
    if ratio is None or ratio <= 1:
        return f"{quantity}{minor_label}"
    parts = split(quantity, ratio)
    major_label = getattr(product, "unit_name", None) or ""
    return f"{parts.major}{major_label} {parts.minor}{minor_label}"


def to_minor_units(quantity: int, unit_type: str, ratio: int | None) -> int:
    """Convert operator input to minor units. WHOLE multiplies by the ratio."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", field="quantity")
    if unit_type == UNIT_TYPE_WHOLE:
        return quantity * (ratio if ratio and ratio >= 1 else 1)
    if unit_type == UNIT_TYPE_SPLIT:
        return quantity
    raise ValidationError("unit_type must be WHOLE or SPLIT", field="unit_type")


def low_stock_threshold(product) -> int:
    if product.min_stock_level is not None:
        return product.min_stock_level
    if has_app_context():
        return int(current_app.config.get("LOW_STOCK_DEFAULT", DEFAULT_LOW_STOCK_THRESHOLD))
    return DEFAULT_LOW_STOCK_THRESHOLD


def is_low_stock(product, total_quantity: int) -> bool:
    """True when total stock (minor units) is below the product's threshold."""
    return total_quantity < low_stock_threshold(product)
