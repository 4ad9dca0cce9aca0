from __future__ import annotations

from sqlalchemy import event, inspect

from ..errors import ValidationError
from ..extensions import db
from stockwise.time_utils import to_utc_z, to_iso_date


class TransactionType:
    """Ledger entry types. Sign of the quantity change is implied by the type."""
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"
    IMPORT = "IMPORT"
    TRANSFER = "TRANSFER"
    DELETE = "DELETE"
    RESTORE = "RESTORE"

    ALL = (IN, OUT, ADJUST, IMPORT, TRANSFER, DELETE, RESTORE)
    INBOUND = (IN, IMPORT)


class Product(db.Model):
    """
    Sellable item definition.

    UNITS: quantities are always stored in minor units (split_unit_name).
    split_ratio is how many minor units make one major unit (unit_name).

    BINDING: bound_store_id makes the product private to one store; unset
    means the product is shared by every store.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("split_ratio >= 1", name="ck_products_split_ratio"),
        db.Index("ix_products_bound_store", "bound_store_id", "is_archived"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True, index=True)
    category = db.Column(db.String(64), nullable=True)

    unit_name = db.Column(db.String(16), nullable=True)
    split_unit_name = db.Column(db.String(16), nullable=True)
    split_ratio = db.Column(db.Integer, nullable=False, default=1)

    # Threshold in minor units
    min_stock_level = db.Column(db.Integer, nullable=True)

    bound_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)
    remark = db.Column(db.Text, nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    bound_store = db.relationship("Store", foreign_keys=[bound_store_id])

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} ratio={self.split_ratio}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "unit_name": self.unit_name,
            "split_unit_name": self.split_unit_name,
            "split_ratio": self.split_ratio,
            "min_stock_level": self.min_stock_level,
            "bound_store_id": self.bound_store_id,
            "remark": self.remark,
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
        }


class Batch(db.Model):
    """
    Physical lot of a product at a store.

    INVARIANTS:
    - quantity (minor units) never goes negative; the ledger rejects the write
      before it happens and the check constraint backs it up.
    - quantity only changes through ledger_service, which writes one
      StockTransaction per change.
    - archiving zeroes quantity through a DELETE entry; rows are never deleted.
    """
    __tablename__ = "batches"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_batches_quantity_non_negative"),
        db.Index("ix_batches_product_store", "product_id", "store_id", "is_archived"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    batch_number = db.Column(db.String(64), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    expiry_date = db.Column(db.Date, nullable=True)
    remark = db.Column(db.Text, nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))
    store = db.relationship("Store", backref=db.backref("batches", lazy=True))

    def __repr__(self) -> str:
        return f"<Batch id={self.id} product_id={self.product_id} store_id={self.store_id} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "expiry_date": to_iso_date(self.expiry_date),
            "remark": self.remark,
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
        }


class StockTransaction(db.Model):
    """
    Append-only ledger entry recording one quantity change.

    - quantity is the magnitude of the change; the sign follows from type.
    - balance_after is the batch quantity right after this entry (null only for
      product-level DELETE entries that touch no batch).
    - snapshot_data is a tagged payload (see services.snapshots) holding what
      undo needs to invert this entry.
    - correlation_id groups entries written by one operation (both legs of a
      transfer, every batch of an archived product); they are undone together.
    - Once written, only is_undone / undone_at / undone_by_id may change.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_tx_quantity_non_negative"),
        db.Index("ix_stock_tx_batch_timestamp", "batch_id", "timestamp"),
        db.Index("ix_stock_tx_store_product_timestamp", "store_id", "product_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("batches.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    operator = db.Column(db.String(64), nullable=False)
    operator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)

    snapshot_data = db.Column(db.JSON, nullable=True)
    correlation_id = db.Column(db.String(36), nullable=True, index=True)

    is_undone = db.Column(db.Boolean, nullable=False, default=False, index=True)
    undone_at = db.Column(db.DateTime(timezone=True), nullable=True)
    undone_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    product = db.relationship("Product")
    store = db.relationship("Store")

    def __repr__(self) -> str:
        return f"<StockTransaction id={self.id} type={self.type} qty={self.quantity} batch_id={self.batch_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "batch_id": self.batch_id,
            "quantity": self.quantity,
            "balance_after": self.balance_after,
            "timestamp": to_utc_z(self.timestamp),
            "operator": self.operator,
            "operator_id": self.operator_id,
            "note": self.note,
            "snapshot_data": self.snapshot_data,
            "correlation_id": self.correlation_id,
            "is_undone": self.is_undone,
            "undone_at": to_utc_z(self.undone_at) if self.undone_at else None,
            "undone_by_id": self.undone_by_id,
        }


MUTABLE_TRANSACTION_FIELDS = {"is_undone", "undone_at", "undone_by_id"}


@event.listens_for(StockTransaction, "before_update")
def _reject_ledger_edits(mapper, connection, target):
    state = inspect(target)
    for attr in state.mapper.column_attrs:
        if attr.key in MUTABLE_TRANSACTION_FIELDS:
            continue
        if state.attrs[attr.key].history.has_changes():
            raise ValidationError(f"stock transactions are append-only ({attr.key} cannot change)", field=attr.key)
