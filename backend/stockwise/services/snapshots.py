# Overview: Typed undo payloads stored in StockTransaction.snapshot_data.

"""
Snapshot payloads (tagged union keyed by transaction type)

Each ledger entry stores exactly the fields needed to invert it, as JSON with a
`kind` tag. load_snapshot() checks the tag against the entry's type and the
field set against the variant's schema, so undo never guesses a payload shape.

    IN / IMPORT / OUT  -> StockSnapshot
    ADJUST             -> AdjustSnapshot
    DELETE             -> DeleteSnapshot
    TRANSFER           -> TransferSnapshot
    RESTORE            -> RestoreSnapshot
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import ClassVar

from ..errors import CannotRestore
from ..models import TransactionType


@dataclass(frozen=True)
class StockSnapshot:
    kind: ClassVar[str] = "stock"

    batch_id: int
    quantity_before: int
    quantity_after: int


@dataclass(frozen=True)
class AdjustSnapshot:
    """before/after hold the adjusted fields only: quantity, batch_number, expiry_date (ISO)."""
    kind: ClassVar[str] = "adjust"

    batch_id: int
    before: dict
    after: dict


@dataclass(frozen=True)
class DeleteSnapshot:
    """batch_id is None for a product archived with no live batches."""
    kind: ClassVar[str] = "delete"

    product_id: int
    batch_id: int | None
    quantity_before: int
    product_archived: bool


@dataclass(frozen=True)
class TransferSnapshot:
    """leg is "OUT" on the source entry and "IN" on the destination entry."""
    kind: ClassVar[str] = "transfer"

    leg: str
    source_batch_id: int
    target_batch_id: int
    quantity: int


@dataclass(frozen=True)
class RestoreSnapshot:
    kind: ClassVar[str] = "restore"

    reverses_transaction_id: int
    reverses_type: str
    batch_id: int | None
    quantity_before: int | None
    quantity_after: int | None


SNAPSHOT_KINDS = {
    TransactionType.IN: StockSnapshot,
    TransactionType.IMPORT: StockSnapshot,
    TransactionType.OUT: StockSnapshot,
    TransactionType.ADJUST: AdjustSnapshot,
    TransactionType.DELETE: DeleteSnapshot,
    TransactionType.TRANSFER: TransferSnapshot,
    TransactionType.RESTORE: RestoreSnapshot,
}


def dump_snapshot(snapshot) -> dict:
    return {"kind": snapshot.kind, **asdict(snapshot)}


def load_snapshot(tx_type: str, payload):
    """Rebuild the typed snapshot for an entry, or raise CannotRestore."""
    cls = SNAPSHOT_KINDS.get(tx_type)
    if cls is None:
        raise CannotRestore("unknown_transaction_type", type=tx_type)
    if not isinstance(payload, dict):
        raise CannotRestore("missing_snapshot", type=tx_type)
    if payload.get("kind") != cls.kind:
        raise CannotRestore("snapshot_kind_mismatch", type=tx_type, kind=payload.get("kind"))

    names = [f.name for f in fields(cls)]
    missing = [name for name in names if name not in payload]
    if missing:
        raise CannotRestore("snapshot_incomplete", type=tx_type, missing=missing)
    return cls(**{name: payload[name] for name in names})
