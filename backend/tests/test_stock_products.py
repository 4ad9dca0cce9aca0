"""
Product and stock summary tests.

Verifies:
- Product creation / update validation and store binding
- Parent stores aggregate their children without persisting totals
- Low-stock and expiry reports
- Daily in/out flow ignores reversed movements
"""

from datetime import timedelta

import pytest

from stockwise.errors import Archived, NotFound, ValidationError
from stockwise.models import TransactionType
from stockwise.services import ledger_service, products_service, stock_service, undo_service
from stockwise.time_utils import utcnow


class TestProducts:

    def test_create_defaults_ratio(self, db_session):
        product = products_service.create_product({"name": "Water", "sku": "W-1"})
        assert product.split_ratio == 1
        assert not product.is_archived

    @pytest.mark.parametrize("payload", [
        {},
        {"name": "Water", "split_ratio": 0},
        {"name": "Water", "min_stock_level": -1},
        {"name": "Water", "split_ratio": "1.5"},
        {"name": "Water", "price": 3},
    ])
    def test_create_rejects_bad_payload(self, db_session, payload):
        with pytest.raises(ValidationError):
            products_service.create_product(payload)

    def test_bound_store_must_exist(self, db_session):
        with pytest.raises(NotFound):
            products_service.create_product({"name": "Water", "bound_store_id": 777})

    def test_update_archived_product_rejected(self, db_session, product, manager):
        ledger_service.archive_product(product.id, operator=manager)
        with pytest.raises(Archived):
            products_service.update_product(product.id, {"name": "Juice 2"})

    def test_list_filters_by_binding_and_archive(self, db_session, make_product, store_a, store_b):
        make_product("Apple")
        make_product("Bread", bound_store_id=store_a.id)
        make_product("Cake", bound_store_id=store_b.id)
        make_product("Dates", is_archived=True)

        names = [p.name for p in products_service.list_products(store_id=store_a.id)]
        assert names == ["Apple", "Bread"]
        names = [p.name for p in products_service.list_products()]
        assert names == ["Apple", "Bread", "Cake"]
        names = [p.name for p in products_service.list_products(include_archived=True)]
        assert "Dates" in names

    def test_rebind_rejected_while_stock_elsewhere(self, db_session, product, store_a, store_b, manager):
        ledger_service.create_batch(product.id, store_a.id, 5, operator=manager)

        with pytest.raises(ValidationError) as exc:
            products_service.update_product(product.id, {"bound_store_id": store_b.id})

        assert exc.value.context["store_ids"] == [store_a.id]
        assert products_service.get_product(product.id).bound_store_id is None
        assert [p.id for p in products_service.list_products(store_id=store_a.id)] == [product.id]

    def test_archived_batches_do_not_block_binding(self, db_session, product, store_a, store_b, manager):
        ledger_service.create_batch(product.id, store_a.id, 5, operator=manager)
        other, _ = ledger_service.create_batch(product.id, store_b.id, 1, operator=manager)
        ledger_service.archive_batch(other.id, operator=manager)

        product = products_service.update_product(product.id, {"bound_store_id": store_a.id})

        assert product.bound_store_id == store_a.id


class TestAggregateStock:

    def test_parent_sums_children(self, db_session, make_store, product, manager):
        parent = make_store("North")
        child_a = make_store("North-1", parent_id=parent.id)
        child_b = make_store("North-2", parent_id=parent.id)
        ledger_service.create_batch(product.id, child_a.id, 14, operator=manager)
        ledger_service.create_batch(product.id, child_b.id, 13, operator=manager)

        summary = stock_service.aggregate_stock(parent.id)

        assert sorted(summary["store_ids"]) == sorted([parent.id, child_a.id, child_b.id])
        item = summary["items"][0]
        assert item["total_quantity"] == 27
        assert item["display"] == "2Box 3Pc"
        assert len(item["batches"]) == 2

        child_only = stock_service.aggregate_stock(child_a.id)
        assert child_only["items"][0]["total_quantity"] == 14

    def test_archived_batches_excluded(self, db_session, store_a, product, manager):
        batch, _ = ledger_service.create_batch(product.id, store_a.id, 5, operator=manager)
        ledger_service.create_batch(product.id, store_a.id, 3, operator=manager)
        ledger_service.archive_batch(batch.id, operator=manager)

        assert stock_service.total_for_product(product.id, [store_a.id]) == 3

    def test_unknown_store(self, db_session):
        with pytest.raises(NotFound):
            stock_service.aggregate_stock(31337)

    def test_low_stock(self, db_session, store_a, make_product, manager):
        scarce = make_product("Salt", min_stock_level=5)
        plenty = make_product("Sugar", min_stock_level=5)
        ledger_service.create_batch(scarce.id, store_a.id, 4, operator=manager)
        ledger_service.create_batch(plenty.id, store_a.id, 5, operator=manager)

        low = stock_service.low_stock_products(store_a.id)
        assert [item["product"]["name"] for item in low] == ["Salt"]


class TestExpiryAndFlow:

    def test_expiring_batches(self, db_session, store_a, product, manager):
        today = utcnow().date()
        soon, _ = ledger_service.create_batch(
            product.id, store_a.id, 1, operator=manager, expiry_date=today + timedelta(days=3),
        )
        ledger_service.create_batch(
            product.id, store_a.id, 1, operator=manager, expiry_date=today + timedelta(days=90),
        )
        ledger_service.create_batch(product.id, store_a.id, 1, operator=manager)

        expiring = stock_service.expiring_batches([store_a.id], days=30)
        assert [b.id for b in expiring] == [soon.id]

    def test_flow_ignores_undone_movements(self, db_session, store_a, product, manager):
        batch, _ = ledger_service.create_batch(product.id, store_a.id, 10, operator=manager)
        ledger_service.mutate(batch.id, -4, TransactionType.OUT, operator=manager)
        wrong = ledger_service.mutate(batch.id, -2, TransactionType.OUT, operator=manager)
        undo_service.undo(wrong.id, manager)

        flow = stock_service.stock_flow([store_a.id], days=7)

        assert len(flow) == 7
        assert flow[-1]["date"] == utcnow().date().isoformat()
        assert flow[-1]["in"] == 10
        assert flow[-1]["out"] == 4
