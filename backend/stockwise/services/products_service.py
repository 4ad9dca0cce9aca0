# backend/stockwise/services/products_service.py
"""
Products Service

Product definitions only; stock lives on batches (ledger_service).
- bound_store_id, when set, must name an existing store; a product cannot be
  bound while it has live batches in another store.
- split_ratio >= 1 is enforced here and by a check constraint.
- Archiving a product goes through ledger_service.archive_product so its
  batches are zeroed on the ledger.
"""
from __future__ import annotations
from ..extensions import db
from ..models import Batch, Product, Store
from ..errors import Archived, NotFound, ValidationError
from ..validation import PRODUCT_POLICY, enforce_rules_product, validate_payload
from .concurrency import lock_for_update, run_in_transaction
from .scoping_service import ALL_STORES, visible_products

PRODUCT_MUTABLE_FIELDS = {
    "name", "sku", "category", "unit_name", "split_unit_name",
    "split_ratio", "min_stock_level", "bound_store_id", "remark",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_bound_store(patch: dict) -> None:
    store_id = patch.get("bound_store_id")
    if store_id is None:
        return
    store = db.session.query(Store).filter_by(id=store_id).first()
    if store is None:
        raise NotFound("store", store_id)
    if store.is_archived:
        raise Archived("store", store_id)


def _check_rebind(p: Product, patch: dict) -> None:
    """A product bound to one store may not keep live batches anywhere else."""
    store_id = patch.get("bound_store_id")
    if store_id is None or store_id == p.bound_store_id:
        return
    stranded = (
        db.session.query(Batch.store_id)
        .filter(
            Batch.product_id == p.id,
            Batch.is_archived.is_(False),
            Batch.store_id != store_id,
        )
        .distinct()
        .all()
    )
    if stranded:
        raise ValidationError(
            "product has live batches in other stores",
            field="bound_store_id",
            store_ids=sorted(row.store_id for row in stranded),
        )


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    patch.setdefault("split_ratio", 1)
    enforce_rules_product(patch)

    def _op():
        _check_bound_store(patch)
        p = Product()
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()
        return p

    return run_in_transaction(_op)


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    if not patch:
        raise ValidationError("no fields to update")

    def _op():
        p = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if p is None:
            raise NotFound("product", product_id)
        if p.is_archived:
            raise Archived("product", product_id)
        _check_bound_store(patch)
        _check_rebind(p, patch)
        apply_product_patch(p, patch)
        db.session.flush()
        return p

    return run_in_transaction(_op)


def get_product(product_id: int) -> Product | None:
    return db.session.query(Product).filter_by(id=product_id).first()


def list_products(*, store_id=ALL_STORES, include_archived: bool = False) -> list[Product]:
    """
    Products visible in one store (or every product for "all").

    Unbound products show up in every store; bound ones only in their store.
    """
    q = db.session.query(Product)
    if not include_archived:
        q = q.filter(Product.is_archived.is_(False))
    products = q.order_by(Product.name.asc(), Product.id.asc()).all()
    return visible_products(products, store_id)
