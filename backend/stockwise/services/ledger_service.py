# Overview: Service-layer operations for the batch ledger; every quantity change writes one transaction.

from __future__ import annotations

import uuid
from datetime import datetime

from ..extensions import db
from ..models import Batch, Product, Store, StockTransaction, TransactionType
from ..errors import Archived, InsufficientStock, NotFound, ValidationError
from stockwise.time_utils import utcnow, parse_iso_date, to_iso_date
from .concurrency import lock_for_update, run_in_transaction
from .snapshots import (
    AdjustSnapshot,
    DeleteSnapshot,
    SNAPSHOT_KINDS,
    StockSnapshot,
    TransferSnapshot,
    dump_snapshot,
)
"""
StockWise Batch Ledger Invariants (authoritative)

- Batch.quantity is the materialized balance, in minor units, and is never
  negative. A change that would go negative raises InsufficientStock BEFORE
  anything is written.
- Every change to Batch.quantity writes exactly one StockTransaction in the same
  storage transaction: quantity = |delta|, balance_after = the new quantity.
- StockTransaction rows are append-only; only the undo flag may change later.
- Archiving is a quantity change too: it writes a DELETE entry that zeroes the
  batch before flagging it archived.
- Entries written together by one operation (transfer legs, product archive)
  share a correlation_id.

Time semantics:
- timestamps are UTC-naive (utcnow()); balance_as_of is inclusive (<= as_of).
"""


# Types a caller may pass to mutate(); the rest have dedicated operations.
MUTABLE_TYPES = (
    TransactionType.IN,
    TransactionType.OUT,
    TransactionType.IMPORT,
    TransactionType.ADJUST,
)

UNCHANGED = object()


def _operator_fields(operator) -> tuple[str, int | None]:
    """Accept a User (preferred) or a bare username."""
    if operator is None:
        raise ValidationError("operator is required", field="operator")
    username = getattr(operator, "username", None)
    if username is not None:
        return username, getattr(operator, "id", None)
    return str(operator), None


def _require_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    return value


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def lock_batch(batch_id: int) -> Batch:
    batch = lock_for_update(db.session.query(Batch).filter_by(id=batch_id)).first()
    if batch is None:
        raise NotFound("batch", batch_id)
    return batch


def append_transaction(
    *,
    tx_type: str,
    product_id: int | None,
    store_id: int | None,
    batch_id: int | None,
    quantity: int,
    balance_after: int | None,
    operator,
    note: str | None = None,
    snapshot=None,
    correlation_id: str | None = None,
) -> StockTransaction:
    """
    Append one ledger entry to the session (no commit).

    quantity is a magnitude; the direction is implied by tx_type.
    """
    username, operator_id = _operator_fields(operator)
    tx = StockTransaction(
        type=tx_type,
        product_id=product_id,
        store_id=store_id,
        batch_id=batch_id,
        quantity=quantity,
        balance_after=balance_after,
        timestamp=utcnow(),
        operator=username,
        operator_id=operator_id,
        note=note,
        snapshot_data=dump_snapshot(snapshot) if snapshot is not None else None,
        correlation_id=correlation_id,
    )
    db.session.add(tx)
    return tx


def apply_mutation(
    batch: Batch,
    delta: int,
    tx_type: str,
    *,
    operator,
    note: str | None = None,
    snapshot=None,
    correlation_id: str | None = None,
) -> StockTransaction:
    """
    Apply delta to an already-locked batch and append its ledger entry.

    Runs inside the caller's storage transaction and never commits. Callers
    that need several changes to land together (FIFO, transfer, undo) call this
    once per batch inside one run_in_transaction.
    """
    if batch.is_archived:
        raise Archived("batch", batch.id)

    before = batch.quantity
    after = before + delta
    if after < 0:
        raise InsufficientStock(-after, batch_id=batch.id, available=before, requested=-delta)

    batch.quantity = after
    if snapshot is None:
        snapshot = StockSnapshot(batch_id=batch.id, quantity_before=before, quantity_after=after)

    return append_transaction(
        tx_type=tx_type,
        product_id=batch.product_id,
        store_id=batch.store_id,
        batch_id=batch.id,
        quantity=abs(delta),
        balance_after=after,
        operator=operator,
        note=note,
        snapshot=snapshot,
        correlation_id=correlation_id,
    )


def mutate(
    batch_id: int,
    delta: int,
    tx_type: str,
    *,
    operator,
    note: str | None = None,
    snapshot=None,
) -> StockTransaction:
    """
    Atomically change one batch's quantity and record it.

    - Locks the batch row for the duration of the storage transaction.
    - IN / IMPORT require delta > 0, OUT requires delta < 0, ADJUST either sign.
    - Zero delta is rejected.
    - A negative result raises InsufficientStock(shortfall) and writes nothing.
    """
    delta = _require_int(delta, "delta")
    if tx_type not in MUTABLE_TYPES:
        raise ValidationError(f"mutate does not accept type {tx_type}", field="type")
    if delta == 0:
        raise ValidationError("delta must not be zero", field="delta")
    if tx_type in TransactionType.INBOUND and delta < 0:
        raise ValidationError(f"{tx_type} requires a positive delta", field="delta")
    if tx_type == TransactionType.OUT and delta > 0:
        raise ValidationError("OUT requires a negative delta", field="delta")
    if snapshot is not None and snapshot.kind != SNAPSHOT_KINDS[tx_type].kind:
        raise ValidationError(f"snapshot kind {snapshot.kind} does not match {tx_type}", field="snapshot")

    def _op():
        batch = lock_batch(batch_id)
        if snapshot is None and tx_type == TransactionType.ADJUST:
            adjusted = AdjustSnapshot(
                batch_id=batch.id,
                before={"quantity": batch.quantity},
                after={"quantity": batch.quantity + delta},
            )
        else:
            adjusted = snapshot
        tx = apply_mutation(batch, delta, tx_type, operator=operator, note=note, snapshot=adjusted)
        db.session.flush()
        return tx

    return run_in_transaction(_op)


def _load_product_for_store(product_id: int, store_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFound("product", product_id)
    if product.is_archived:
        raise Archived("product", product_id)
    if product.bound_store_id is not None and product.bound_store_id != store_id:
        raise ValidationError("product is bound to another store", field="store_id", product_id=product_id)
    return product


def _load_active_store(store_id: int) -> Store:
    store = db.session.query(Store).filter_by(id=store_id).first()
    if store is None:
        raise NotFound("store", store_id)
    if store.is_archived:
        raise Archived("store", store_id)
    return store


def create_batch(
    product_id: int,
    store_id: int,
    quantity: int,
    *,
    operator,
    batch_number: str | None = None,
    expiry_date=None,
    remark: str | None = None,
    note: str | None = None,
    tx_type: str = TransactionType.IN,
) -> tuple[Batch, StockTransaction]:
    """
    Receive stock as a new batch.

    The batch is inserted at 0 and credited by one IN (or IMPORT) entry in the
    same storage transaction, so its first ledger entry explains its quantity.
    """
    quantity = _require_int(quantity, "quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be positive", field="quantity")
    if tx_type not in TransactionType.INBOUND:
        raise ValidationError("new batches are received with IN or IMPORT", field="type")
    try:
        expiry = parse_iso_date(expiry_date)
    except ValueError:
        raise ValidationError("expiry_date must be an ISO date", field="expiry_date")

    def _op():
        _load_product_for_store(product_id, store_id)
        _load_active_store(store_id)

        batch = Batch(
            product_id=product_id,
            store_id=store_id,
            batch_number=batch_number,
            expiry_date=expiry,
            remark=remark,
            quantity=0,
        )
        db.session.add(batch)
        db.session.flush()

        tx = apply_mutation(batch, quantity, tx_type, operator=operator, note=note)
        db.session.flush()
        return batch, tx

    return run_in_transaction(_op)


def adjust_batch(
    batch_id: int,
    *,
    operator,
    quantity=UNCHANGED,
    batch_number=UNCHANGED,
    expiry_date=UNCHANGED,
    note: str | None = None,
) -> StockTransaction:
    """
    Correct a batch in place with one ADJUST entry.

    quantity is an absolute target; the entry records the delta. Only fields
    that actually change are captured in the snapshot, so undo can detect a
    later conflicting edit.
    """
    if quantity is not UNCHANGED:
        quantity = _require_int(quantity, "quantity")
        if quantity < 0:
            raise ValidationError("quantity must not be negative", field="quantity")
    if expiry_date is not UNCHANGED:
        try:
            expiry_date = parse_iso_date(expiry_date)
        except ValueError:
            raise ValidationError("expiry_date must be an ISO date", field="expiry_date")

    def _op():
        batch = lock_batch(batch_id)
        if batch.is_archived:
            raise Archived("batch", batch_id)

        before: dict = {}
        after: dict = {}
        if quantity is not UNCHANGED and quantity != batch.quantity:
            before["quantity"] = batch.quantity
            after["quantity"] = quantity
        if batch_number is not UNCHANGED and batch_number != batch.batch_number:
            before["batch_number"] = batch.batch_number
            after["batch_number"] = batch_number
        if expiry_date is not UNCHANGED and expiry_date != batch.expiry_date:
            before["expiry_date"] = to_iso_date(batch.expiry_date)
            after["expiry_date"] = to_iso_date(expiry_date)
        if not after:
            raise ValidationError("adjustment changes nothing")

        if "batch_number" in after:
            batch.batch_number = batch_number
        if "expiry_date" in after:
            batch.expiry_date = expiry_date

        delta = after.get("quantity", batch.quantity) - batch.quantity
        tx = apply_mutation(
            batch,
            delta,
            TransactionType.ADJUST,
            operator=operator,
            note=note,
            snapshot=AdjustSnapshot(batch_id=batch.id, before=before, after=after),
        )
        db.session.flush()
        return tx

    return run_in_transaction(_op)


def _archive_locked_batch(batch: Batch, *, operator, note, product_archived: bool, correlation_id=None):
    prior = batch.quantity
    batch.quantity = 0
    batch.is_archived = True
    return append_transaction(
        tx_type=TransactionType.DELETE,
        product_id=batch.product_id,
        store_id=batch.store_id,
        batch_id=batch.id,
        quantity=prior,
        balance_after=0,
        operator=operator,
        note=note,
        snapshot=DeleteSnapshot(
            product_id=batch.product_id,
            batch_id=batch.id,
            quantity_before=prior,
            product_archived=product_archived,
        ),
        correlation_id=correlation_id,
    )


def archive_batch(batch_id: int, *, operator, note: str | None = None) -> StockTransaction:
    """Zero a batch through a DELETE entry and flag it archived, atomically."""
    def _op():
        batch = lock_batch(batch_id)
        if batch.is_archived:
            raise Archived("batch", batch_id)
        tx = _archive_locked_batch(batch, operator=operator, note=note, product_archived=False)
        db.session.flush()
        return tx

    return run_in_transaction(_op)


def archive_product(product_id: int, *, operator, note: str | None = None) -> list[StockTransaction]:
    """
    Archive a product together with every live batch.

    One DELETE entry per batch, all sharing a correlation_id. A product with no
    live batches still gets one batch-less DELETE entry so the archive itself
    is on the ledger and can be undone.
    """
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFound("product", product_id)
        if product.is_archived:
            raise Archived("product", product_id)

        batches = lock_for_update(
            db.session.query(Batch)
            .filter(Batch.product_id == product_id, Batch.is_archived.is_(False))
            .order_by(Batch.id.asc())
        ).all()

        correlation_id = new_correlation_id()
        entries = [
            _archive_locked_batch(
                batch, operator=operator, note=note, product_archived=True, correlation_id=correlation_id,
            )
            for batch in batches
        ]
        if not entries:
            entries.append(append_transaction(
                tx_type=TransactionType.DELETE,
                product_id=product.id,
                store_id=product.bound_store_id,
                batch_id=None,
                quantity=0,
                balance_after=None,
                operator=operator,
                note=note,
                snapshot=DeleteSnapshot(
                    product_id=product.id, batch_id=None, quantity_before=0, product_archived=True,
                ),
                correlation_id=correlation_id,
            ))

        product.is_archived = True
        db.session.flush()
        return entries

    return run_in_transaction(_op)


def transfer(
    batch_id: int,
    to_store_id: int,
    quantity: int,
    *,
    operator,
    note: str | None = None,
) -> tuple[Batch, list[StockTransaction]]:
    """
    Move stock from a batch into a new batch at another store.

    The destination batch keeps the batch number and expiry of the source.
    Writes an OUT leg and an IN leg, both typed TRANSFER and sharing a
    correlation_id. Returns (destination batch, [out_leg, in_leg]).
    """
    quantity = _require_int(quantity, "quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be positive", field="quantity")

    def _op():
        source = lock_batch(batch_id)
        if source.is_archived:
            raise Archived("batch", batch_id)
        if source.store_id == to_store_id:
            raise ValidationError("cannot transfer to the same store", field="to_store_id")
        _load_active_store(to_store_id)
        _load_product_for_store(source.product_id, to_store_id)

        if source.quantity < quantity:
            raise InsufficientStock(
                quantity - source.quantity, batch_id=source.id, available=source.quantity, requested=quantity,
            )

        target = Batch(
            product_id=source.product_id,
            store_id=to_store_id,
            batch_number=source.batch_number,
            expiry_date=source.expiry_date,
            remark=source.remark,
            quantity=0,
        )
        db.session.add(target)
        db.session.flush()

        correlation_id = new_correlation_id()
        legs = []
        for leg, batch, delta in (("OUT", source, -quantity), ("IN", target, quantity)):
            legs.append(apply_mutation(
                batch,
                delta,
                TransactionType.TRANSFER,
                operator=operator,
                note=note,
                snapshot=TransferSnapshot(
                    leg=leg, source_batch_id=source.id, target_batch_id=target.id, quantity=quantity,
                ),
                correlation_id=correlation_id,
            ))
        db.session.flush()
        return target, legs

    return run_in_transaction(_op)


def list_transactions(
    *,
    store_ids: list[int] | None = None,
    product_id: int | None = None,
    batch_id: int | None = None,
    tx_type: str | None = None,
    operator_id: int | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    include_restore: bool = True,
    limit: int = 100,
) -> list[StockTransaction]:
    """
    Newest-first ledger query.

    store_ids=None means no store filter; an empty list matches nothing.
    Log views pass include_restore=False to hide compensating entries.
    """
    q = db.session.query(StockTransaction)
    if store_ids is not None:
        q = q.filter(StockTransaction.store_id.in_(store_ids))
    if product_id is not None:
        q = q.filter(StockTransaction.product_id == product_id)
    if batch_id is not None:
        q = q.filter(StockTransaction.batch_id == batch_id)
    if tx_type is not None:
        q = q.filter(StockTransaction.type == tx_type)
    if operator_id is not None:
        q = q.filter(StockTransaction.operator_id == operator_id)
    if since is not None:
        q = q.filter(StockTransaction.timestamp >= since)
    if until is not None:
        q = q.filter(StockTransaction.timestamp <= until)
    if not include_restore:
        q = q.filter(StockTransaction.type != TransactionType.RESTORE)

    return (
        q.order_by(StockTransaction.timestamp.desc(), StockTransaction.id.desc())
        .limit(limit)
        .all()
    )


def balance_as_of(batch_id: int, as_of: datetime) -> int:
    """
    Batch quantity at a point in time, from the last entry at or before as_of.

    Undone entries still count: their compensating RESTORE entries come later
    on the same batch, so the running balance stays correct.
    """
    tx = (
        db.session.query(StockTransaction)
        .filter(
            StockTransaction.batch_id == batch_id,
            StockTransaction.timestamp <= as_of,
            StockTransaction.balance_after.isnot(None),
        )
        .order_by(StockTransaction.timestamp.desc(), StockTransaction.id.desc())
        .first()
    )
    return tx.balance_after if tx is not None else 0
