# Overview: Service-layer read models over batches; store aggregation, expiry and low-stock summaries.

"""
Stock summaries (read-only)

Parent stores hold no stock of their own: a parent's figures are the sum of
its children (and of any batches filed directly under it), computed on every
read. Nothing here writes.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta

from flask import current_app

from ..extensions import db
from ..models import Batch, Product, Store, StockTransaction, TransactionType
from ..errors import NotFound
from stockwise.time_utils import utcnow
from .store_service import get_descendant_store_ids
from .unit_service import format_quantity, is_low_stock


DEFAULT_EXPIRY_WARNING_DAYS = 30


def _live_batches(store_ids: list[int], product_id: int | None = None):
    q = db.session.query(Batch).filter(
        Batch.store_id.in_(store_ids),
        Batch.is_archived.is_(False),
    )
    if product_id is not None:
        q = q.filter(Batch.product_id == product_id)
    return q


def aggregate_stock(store_id: int) -> dict:
    """
    Per-product totals for a store, including its child stores.

    Returns {"store_id", "store_ids", "items": [...]} where each item carries
    the product, total minor units, display string, low-stock flag and the
    contributing batches.
    """
    store = db.session.query(Store).filter_by(id=store_id).first()
    if store is None:
        raise NotFound("store", store_id)

    store_ids = get_descendant_store_ids(store_id)
    batches = (
        _live_batches(store_ids)
        .order_by(Batch.product_id.asc(), Batch.expiry_date.is_(None), Batch.expiry_date.asc(), Batch.id.asc())
        .all()
    )

    by_product: dict[int, list[Batch]] = {}
    for batch in batches:
        by_product.setdefault(batch.product_id, []).append(batch)

    items = []
    for product_id, product_batches in by_product.items():
        product = db.session.get(Product, product_id)
        if product is None or product.is_archived:
            continue
        total = sum(b.quantity for b in product_batches)
        items.append({
            "product": product.to_dict(),
            "total_quantity": total,
            "display": format_quantity(total, product),
            "low_stock": is_low_stock(product, total),
            "batches": [b.to_dict() for b in product_batches],
        })
    items.sort(key=lambda item: (item["product"]["name"], item["product"]["id"]))

    return {"store_id": store_id, "store_ids": store_ids, "items": items}


def total_for_product(product_id: int, store_ids: list[int]) -> int:
    return sum(b.quantity for b in _live_batches(store_ids, product_id).all())


def low_stock_products(store_id: int) -> list[dict]:
    """Aggregated items below threshold; products with no stock at all are not listed."""
    return [item for item in aggregate_stock(store_id)["items"] if item["low_stock"]]


def expiring_batches(store_ids: list[int], *, days: int | None = None) -> list[Batch]:
    """Live, non-empty batches expiring within `days` (expired ones included)."""
    if days is None:
        days = int(current_app.config.get("EXPIRY_WARNING_DAYS", DEFAULT_EXPIRY_WARNING_DAYS))
    cutoff = utcnow().date() + timedelta(days=days)
    return (
        _live_batches(store_ids)
        .filter(
            Batch.quantity > 0,
            Batch.expiry_date.isnot(None),
            Batch.expiry_date <= cutoff,
        )
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        .all()
    )


def stock_flow(store_ids: list[int], *, days: int = 7) -> list[dict]:
    """
    Daily inbound / outbound totals for the last `days` days, oldest first.

    Inbound counts IN and IMPORT, outbound counts OUT. Undone entries and
    RESTORE entries are left out so a reversed movement nets to nothing.
    """
    today = utcnow().date()
    start = today - timedelta(days=days - 1)
    rows = (
        db.session.query(StockTransaction)
        .filter(
            StockTransaction.store_id.in_(store_ids),
            StockTransaction.type.in_((TransactionType.IN, TransactionType.IMPORT, TransactionType.OUT)),
            StockTransaction.is_undone.is_(False),
            StockTransaction.timestamp >= datetime.combine(start, time.min),
        )
        .all()
    )

    series = {start + timedelta(days=i): {"in": 0, "out": 0} for i in range(days)}
    for tx in rows:
        bucket = series.get(tx.timestamp.date())
        if bucket is None:
            continue
        if tx.type == TransactionType.OUT:
            bucket["out"] += tx.quantity
        else:
            bucket["in"] += tx.quantity

    return [{"date": day.isoformat(), **totals} for day, totals in sorted(series.items())]
