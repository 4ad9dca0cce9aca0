# Overview: Service-layer operations for undo; permission-gated reversal of ledger entries.

"""
Undo / Reversal Engine

A ledger entry is ACTIVE until undone, then UNDONE forever. Undo never edits
or deletes the original: it appends compensating RESTORE entries and flips the
original's is_undone flag, all in one storage transaction.

AUTHORITY (tier = logs_level of the requester's current rule):
- role level 0: anything
- own entries: always
- A: anyone's entries
- B: entries whose operator has a numerically greater role level; an operator
     that can no longer be resolved is denied
- C / D: nothing beyond their own entries

INVERSES:
- IN / IMPORT / OUT: opposite delta on the same batch
- ADJUST: opposite quantity delta; batch_number / expiry_date put back only if
  they still hold the adjusted values
- DELETE: un-archive and credit back (the whole product group for product archives)
- TRANSFER: take back from the destination, credit the source, flag both legs
- RESTORE: never undoable
"""

from __future__ import annotations

from ..extensions import db
from ..models import Batch, Product, StockTransaction, TransactionType, User
from ..errors import AlreadyUndone, CannotRestore, InsufficientStock, NotFound, PermissionDenied
from ..permissions import LogsLevel
from stockwise.time_utils import utcnow, parse_iso_date, to_iso_date
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_transaction, apply_mutation
from .permission_service import SUPER_ADMIN_LEVEL, get_permission
from .snapshots import RestoreSnapshot, load_snapshot


# Types whose entries are written and undone as one correlated group
GROUPED_TYPES = (TransactionType.DELETE, TransactionType.TRANSFER)


def is_own_transaction(user, tx) -> bool:
    if tx.operator_id is not None:
        return tx.operator_id == user.id
    return tx.operator == user.username


def can_undo(user, tx, *, operator_level: int | None, rules=None) -> bool:
    """Authority check only; does not look at is_undone or the entry type."""
    if user is None:
        return False
    if user.role_level == SUPER_ADMIN_LEVEL:
        return True
    if is_own_transaction(user, tx):
        return True

    tier = get_permission(user.role_level, rules=rules).logs_level
    if tier == LogsLevel.A:
        return True
    if tier == LogsLevel.B:
        return operator_level is not None and operator_level > user.role_level
    return False


def operator_level_for(tx) -> int | None:
    """Current role level of the entry's operator, or None if unresolvable."""
    if tx.operator_id is not None:
        operator = db.session.get(User, tx.operator_id)
    else:
        operator = db.session.query(User).filter_by(username=tx.operator).first()
    return operator.role_level if operator is not None else None


def _lock_batch_for_restore(batch_id: int | None) -> Batch:
    if batch_id is None:
        raise CannotRestore("batch_missing", batch_id=batch_id)
    batch = lock_for_update(db.session.query(Batch).filter_by(id=batch_id)).first()
    if batch is None:
        raise CannotRestore("batch_missing", batch_id=batch_id)
    return batch


def _restore_delta(batch: Batch, delta: int, original, *, operator, correlation_id=None):
    """Append a RESTORE entry moving `batch` by `delta` on behalf of `original`."""
    if batch.is_archived:
        raise CannotRestore("batch_archived", batch_id=batch.id)
    before = batch.quantity
    after = before + delta
    if after < 0:
        raise InsufficientStock(-after, batch_id=batch.id, available=before, requested=-delta)
    return apply_mutation(
        batch,
        delta,
        TransactionType.RESTORE,
        operator=operator,
        note=f"undo #{original.id}",
        snapshot=RestoreSnapshot(
            reverses_transaction_id=original.id,
            reverses_type=original.type,
            batch_id=batch.id,
            quantity_before=before,
            quantity_after=after,
        ),
        correlation_id=correlation_id,
    )


def _invert_stock(tx, *, operator):
    snap = load_snapshot(tx.type, tx.snapshot_data)
    batch = _lock_batch_for_restore(snap.batch_id)
    delta = tx.quantity if tx.type == TransactionType.OUT else -tx.quantity
    return [_restore_delta(batch, delta, tx, operator=operator)]


def _invert_adjust(tx, *, operator):
    snap = load_snapshot(tx.type, tx.snapshot_data)
    batch = _lock_batch_for_restore(snap.batch_id)
    if batch.is_archived:
        raise CannotRestore("batch_archived", batch_id=batch.id)

    if "batch_number" in snap.after and batch.batch_number != snap.after["batch_number"]:
        raise CannotRestore("conflict", field="batch_number", batch_id=batch.id)
    if "expiry_date" in snap.after and to_iso_date(batch.expiry_date) != snap.after["expiry_date"]:
        raise CannotRestore("conflict", field="expiry_date", batch_id=batch.id)

    if "batch_number" in snap.before:
        batch.batch_number = snap.before["batch_number"]
    if "expiry_date" in snap.before:
        batch.expiry_date = parse_iso_date(snap.before["expiry_date"])

    delta = 0
    if "quantity" in snap.after:
        delta = snap.before["quantity"] - snap.after["quantity"]
    return [_restore_delta(batch, delta, tx, operator=operator)]


def _invert_delete(group, *, operator):
    restored = []
    product_ids = set()
    for tx in group:
        snap = load_snapshot(tx.type, tx.snapshot_data)
        if snap.product_archived:
            product_ids.add(snap.product_id)
        if snap.batch_id is None:
            restored.append(append_transaction(
                tx_type=TransactionType.RESTORE,
                product_id=snap.product_id,
                store_id=tx.store_id,
                batch_id=None,
                quantity=0,
                balance_after=None,
                operator=operator,
                note=f"undo #{tx.id}",
                snapshot=RestoreSnapshot(
                    reverses_transaction_id=tx.id,
                    reverses_type=tx.type,
                    batch_id=None,
                    quantity_before=None,
                    quantity_after=None,
                ),
            ))
            continue
        batch = _lock_batch_for_restore(snap.batch_id)
        if not batch.is_archived:
            raise CannotRestore("batch_not_archived", batch_id=batch.id)
        if not snap.product_archived and batch.product is not None and batch.product.is_archived:
            raise CannotRestore("product_archived", batch_id=batch.id, product_id=batch.product_id)
        batch.is_archived = False
        restored.append(_restore_delta(batch, snap.quantity_before, tx, operator=operator))

    for product_id in product_ids:
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise CannotRestore("product_missing", product_id=product_id)
        if not product.is_archived:
            raise CannotRestore("product_not_archived", product_id=product_id)
        product.is_archived = False
    return restored


def _invert_transfer(group, *, operator):
    legs = {}
    for tx in group:
        snap = load_snapshot(tx.type, tx.snapshot_data)
        legs[snap.leg] = (tx, snap)
    if set(legs) != {"OUT", "IN"}:
        raise CannotRestore("transfer_leg_missing", legs=sorted(legs))

    in_tx, in_snap = legs["IN"]
    out_tx, out_snap = legs["OUT"]
    target = _lock_batch_for_restore(in_snap.target_batch_id)
    source = _lock_batch_for_restore(out_snap.source_batch_id)
    return [
        _restore_delta(target, -in_snap.quantity, in_tx, operator=operator),
        _restore_delta(source, out_snap.quantity, out_tx, operator=operator),
    ]


def _lock_group(tx) -> list[StockTransaction]:
    if tx.type not in GROUPED_TYPES or tx.correlation_id is None:
        return [tx]
    return lock_for_update(
        db.session.query(StockTransaction)
        .filter_by(correlation_id=tx.correlation_id)
        .order_by(StockTransaction.id.asc())
    ).all()


def undo(transaction_id: int, requesting_user, *, rules=None) -> list[StockTransaction]:
    """
    Reverse one ledger entry (and its correlated group).

    Returns the RESTORE entries written. Raises NotFound, AlreadyUndone,
    PermissionDenied, CannotRestore or InsufficientStock; on any error nothing
    is written.
    """
    def _op():
        tx = lock_for_update(
            db.session.query(StockTransaction).filter_by(id=transaction_id)
        ).first()
        if tx is None:
            raise NotFound("transaction", transaction_id)
        if tx.is_undone:
            raise AlreadyUndone(transaction_id=transaction_id)

        if not can_undo(requesting_user, tx, operator_level=operator_level_for(tx), rules=rules):
            raise PermissionDenied(
                operator=tx.operator,
                transaction_id=transaction_id,
                role_level=getattr(requesting_user, "role_level", None),
            )

        if tx.type == TransactionType.RESTORE:
            raise CannotRestore("restore_not_undoable", transaction_id=transaction_id)

        group = _lock_group(tx)
        if any(member.is_undone for member in group):
            raise AlreadyUndone(transaction_id=transaction_id)

        if tx.type in (TransactionType.IN, TransactionType.IMPORT, TransactionType.OUT):
            restored = _invert_stock(tx, operator=requesting_user)
        elif tx.type == TransactionType.ADJUST:
            restored = _invert_adjust(tx, operator=requesting_user)
        elif tx.type == TransactionType.DELETE:
            restored = _invert_delete(group, operator=requesting_user)
        elif tx.type == TransactionType.TRANSFER:
            restored = _invert_transfer(group, operator=requesting_user)
        else:
            raise CannotRestore("unknown_transaction_type", type=tx.type)

        now = utcnow()
        for member in group:
            member.is_undone = True
            member.undone_at = now
            member.undone_by_id = requesting_user.id
        db.session.flush()
        return restored

    return run_in_transaction(_op)
