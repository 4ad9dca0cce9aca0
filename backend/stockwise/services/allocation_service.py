# Overview: Service-layer operations for outbound stock; FEFO allocation across batches.

"""
FIFO / FEFO Allocation

Outbound requests name a product and a store, not a batch. Stock is taken from
the batch that expires first; batches without an expiry go last; ties fall
back to the oldest batch (created_at), then the lowest id.

ATOMICITY: allocate_outbound locks every eligible batch, checks the total
before writing anything, then applies one OUT entry per batch touched and
commits once. A short request fails with InsufficientStock(shortfall) and
leaves every batch untouched.
"""

from __future__ import annotations

from datetime import date, datetime

from ..extensions import db
from ..models import Batch, Product, TransactionType
from ..errors import Archived, InsufficientStock, NotFound, ValidationError
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import apply_mutation


def fefo_sort_key(batch):
    return (
        batch.expiry_date is None,
        batch.expiry_date or date.min,
        batch.created_at or datetime.min,
        batch.id or 0,
    )


def plan_fifo(batches, quantity: int) -> list[tuple]:
    """
    Pure allocation plan: [(batch, take), ...] in FEFO order.

    Only batches with quantity > 0 are used. Raises InsufficientStock with the
    shortfall when the batches cannot cover the request.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", field="quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be positive", field="quantity")

    ordered = sorted((b for b in batches if b.quantity > 0), key=fefo_sort_key)
    available = sum(b.quantity for b in ordered)
    if available < quantity:
        raise InsufficientStock(quantity - available, available=available, requested=quantity)

    plan = []
    remaining = quantity
    for batch in ordered:
        if remaining == 0:
            break
        take = min(batch.quantity, remaining)
        plan.append((batch, take))
        remaining -= take
    return plan


def eligible_batches_query(product_id: int, store_id: int):
    """Live, non-empty batches of a product at a store in FEFO order."""
    return (
        db.session.query(Batch)
        .filter(
            Batch.product_id == product_id,
            Batch.store_id == store_id,
            Batch.is_archived.is_(False),
            Batch.quantity > 0,
        )
        .order_by(
            Batch.expiry_date.is_(None),
            Batch.expiry_date.asc(),
            Batch.created_at.asc(),
            Batch.id.asc(),
        )
    )


def available_quantity(product_id: int, store_id: int) -> int:
    return sum(b.quantity for b in eligible_batches_query(product_id, store_id).all())


def allocate_outbound(
    product_id: int,
    store_id: int,
    quantity: int,
    *,
    operator,
    note: str | None = None,
) -> list:
    """Deplete stock FEFO in one storage transaction. Returns the OUT entries written."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", field="quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be positive", field="quantity")

    def _op():
        product = db.session.query(Product).filter_by(id=product_id).first()
        if product is None:
            raise NotFound("product", product_id)
        if product.is_archived:
            raise Archived("product", product_id)

        batches = lock_for_update(eligible_batches_query(product_id, store_id)).all()
        try:
            plan = plan_fifo(batches, quantity)
        except InsufficientStock as exc:
            raise InsufficientStock(
                exc.shortfall, product_id=product_id, store_id=store_id,
                available=exc.context.get("available"), requested=quantity,
            ) from None

        entries = [
            apply_mutation(batch, -take, TransactionType.OUT, operator=operator, note=note)
            for batch, take in plan
        ]
        db.session.flush()
        return entries

    return run_in_transaction(_op)
