"""
HTTP API tests.

Verifies:
- Unauthenticated requests return 401
- Capabilities and store write scope gate every write (403)
- Whole-unit quantities are converted before they reach the ledger
- Ledger failures map to stable error codes
- Ledger listing respects logs visibility and hides RESTORE entries
"""

import pytest

from stockwise.models import Batch, StockTransaction, TransactionType
from stockwise.services import ledger_service, store_service

from conftest import auth_headers, get_auth_token


@pytest.fixture
def clerk_headers(client, clerk):
    return auth_headers(get_auth_token(client, "clerk"))


@pytest.fixture
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, "manager"))


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/stores"),
            ("POST", "/api/stores"),
            ("GET", "/api/products"),
            ("POST", "/api/batches"),
            ("POST", "/api/batches/1/mutate"),
            ("POST", "/api/stock/outbound"),
            ("GET", "/api/transactions"),
            ("POST", "/api/transactions/1/undo"),
            ("GET", "/api/permissions/rules"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_bad_token(self, client, db_session):
        resp = client.get("/api/stores", headers=auth_headers("deadbeef"))
        assert resp.status_code == 401


# =============================================================================
# LOGIN / SESSION
# =============================================================================


class TestLogin:

    def test_login_returns_token_and_capabilities(self, client, clerk):
        resp = client.post("/api/auth/login", json={"username": "clerk", "password": "Password123!"})
        assert resp.status_code == 200
        body = resp.json
        assert len(body["token"]) == 64
        assert body["user"]["username"] == "clerk"
        assert "inventory.edit" in body["capabilities"]
        assert "inventory.delete" not in body["capabilities"]

    def test_wrong_password(self, client, clerk):
        resp = client.post("/api/auth/login", json={"username": "clerk", "password": "nope"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "clerk"})
        assert resp.status_code == 400

    def test_logout_revokes_token(self, client, clerk_headers):
        assert client.get("/api/auth/me", headers=clerk_headers).status_code == 200
        assert client.post("/api/auth/logout", headers=clerk_headers).status_code == 200
        assert client.get("/api/auth/me", headers=clerk_headers).status_code == 401


# =============================================================================
# CAPABILITY AND SCOPE GATES - 403
# =============================================================================


class TestWriteGates:

    def test_basic_level_cannot_write(self, client, make_user, seeded_rules, store_a, product):
        make_user("viewer", role_level=9, stores=[store_a])
        headers = auth_headers(get_auth_token(client, "viewer"))

        resp = client.post(
            "/api/batches",
            json={"product_id": product.id, "store_id": store_a.id, "quantity": 1},
            headers=headers,
        )

        assert resp.status_code == 403
        assert resp.json["required_capability"] == "inventory.edit"

    def test_clerk_cannot_write_other_store(self, client, clerk_headers, store_b, product, db_session):
        resp = client.post(
            "/api/batches",
            json={"product_id": product.id, "store_id": store_b.id, "quantity": 1},
            headers=clerk_headers,
        )

        assert resp.status_code == 403
        assert resp.json["reason"] == "store_not_writable"
        assert db_session.query(Batch).count() == 0

    def test_staff_cannot_archive(self, client, clerk_headers, store_a, product, manager):
        batch, _ = ledger_service.create_batch(product.id, store_a.id, 5, operator=manager)
        resp = client.post(f"/api/batches/{batch.id}/archive", headers=clerk_headers)
        assert resp.status_code == 403

    def test_store_creation_needs_store_manage(self, client, clerk_headers, manager_headers):
        assert client.post("/api/stores", json={"name": "East"}, headers=clerk_headers).status_code == 403
        resp = client.post("/api/stores", json={"name": "East"}, headers=manager_headers)
        assert resp.status_code == 201
        assert resp.json["name"] == "East"


# =============================================================================
# BATCH LEDGER
# =============================================================================


class TestBatchRoutes:

    def test_whole_units_converted(self, client, clerk_headers, store_a, product):
        resp = client.post(
            "/api/batches",
            json={
                "product_id": product.id,
                "store_id": store_a.id,
                "quantity": 2,
                "unit_type": "WHOLE",
                "expiry_date": "2030-06-30",
            },
            headers=clerk_headers,
        )

        assert resp.status_code == 201
        assert resp.json["batch"]["quantity"] == 24
        assert resp.json["batch"]["expiry_date"] == "2030-06-30"
        assert resp.json["transaction"]["type"] == TransactionType.IN
        assert resp.json["transaction"]["operator"] == "clerk"

    def test_overdraw_returns_insufficient_stock(self, client, clerk_headers, store_a, product, clerk, db_session):
        batch, _ = ledger_service.create_batch(product.id, store_a.id, 5, operator=clerk)
        before = db_session.query(StockTransaction).count()

        resp = client.post(
            f"/api/batches/{batch.id}/mutate",
            json={"type": "OUT", "quantity": 6},
            headers=clerk_headers,
        )

        assert resp.status_code == 409
        assert resp.json["error"] == "INSUFFICIENT_STOCK"
        assert resp.json["shortfall"] == 1
        assert db_session.query(StockTransaction).count() == before

    def test_mutate_rejects_unknown_type(self, client, clerk_headers, store_a, product, clerk):
        batch, _ = ledger_service.create_batch(product.id, store_a.id, 5, operator=clerk)
        resp = client.post(
            f"/api/batches/{batch.id}/mutate",
            json={"type": "RESTORE", "quantity": 1},
            headers=clerk_headers,
        )
        assert resp.status_code == 400
        assert resp.json["field"] == "type"

    def test_outbound_uses_earliest_expiry(self, client, clerk_headers, store_a, product, clerk):
        late, _ = ledger_service.create_batch(product.id, store_a.id, 5, operator=clerk, expiry_date="2031-01-01")
        early, _ = ledger_service.create_batch(product.id, store_a.id, 5, operator=clerk, expiry_date="2030-01-01")

        resp = client.post(
            "/api/stock/outbound",
            json={"product_id": product.id, "store_id": store_a.id, "quantity": 7},
            headers=clerk_headers,
        )

        assert resp.status_code == 200
        legs = [(tx["batch_id"], tx["quantity"]) for tx in resp.json["transactions"]]
        assert legs == [(early.id, 5), (late.id, 2)]

    def test_current_balance(self, client, clerk_headers, store_a, product, clerk):
        batch, _ = ledger_service.create_batch(product.id, store_a.id, 5, operator=clerk)
        ledger_service.mutate(batch.id, -2, TransactionType.OUT, operator=clerk)

        current = client.get(f"/api/batches/{batch.id}/balance", headers=clerk_headers)
        assert current.json["quantity"] == 3

    def test_balance_unexpected_failure_is_500(self, client, clerk_headers, store_a, product, clerk, monkeypatch):
        batch, _ = ledger_service.create_batch(product.id, store_a.id, 5, operator=clerk)

        def _broken(*args, **kwargs):
            raise RuntimeError("corrupt ledger")

        monkeypatch.setattr(ledger_service, "balance_as_of", _broken)

        resp = client.get(
            f"/api/batches/{batch.id}/balance",
            query_string={"as_of": "2030-01-01T00:00:00Z"},
            headers=clerk_headers,
        )
        assert resp.status_code == 500
        assert resp.json == {"error": "Internal server error"}

    def test_store_stock_summary(self, client, clerk_headers, store_a, product, clerk):
        ledger_service.create_batch(product.id, store_a.id, 14, operator=clerk)

        resp = client.get(f"/api/stores/{store_a.id}/stock", headers=clerk_headers)

        assert resp.status_code == 200
        assert resp.json["items"][0]["display"] == "1Box 2Pc"

    def test_hidden_store_is_not_found(self, client, clerk_headers, store_b):
        resp = client.get(f"/api/stores/{store_b.id}/stock", headers=clerk_headers)
        assert resp.status_code == 404

    def test_viewed_store_is_listed_but_not_writable(self, client, clerk_headers, clerk, store_a, store_b):
        store_service.set_store_members(store_b.id, manager_ids=[], viewer_ids=[clerk.id])

        resp = client.get("/api/stores", headers=clerk_headers)

        assert resp.status_code == 200
        assert sorted(item["id"] for item in resp.json["items"]) == sorted([store_a.id, store_b.id])
        assert resp.json["writable_ids"] == [store_a.id]
        assert resp.json["can_select_all"] is False

    def test_low_stock_report(self, client, clerk_headers, store_a, make_product, clerk):
        scarce = make_product("Salt", min_stock_level=5)
        plenty = make_product("Sugar", min_stock_level=5)
        ledger_service.create_batch(scarce.id, store_a.id, 4, operator=clerk)
        ledger_service.create_batch(plenty.id, store_a.id, 9, operator=clerk)

        resp = client.get(f"/api/stores/{store_a.id}/low-stock", headers=clerk_headers)

        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["items"][0]["product"]["name"] == "Salt"
        assert resp.json["items"][0]["total_quantity"] == 4

    def test_low_stock_hidden_store(self, client, clerk_headers, store_b):
        resp = client.get(f"/api/stores/{store_b.id}/low-stock", headers=clerk_headers)
        assert resp.status_code == 404


# =============================================================================
# LEDGER VIEW AND UNDO
# =============================================================================


class TestTransactionRoutes:

    def test_basic_user_sees_only_own_entries(self, client, make_user, seeded_rules, store_a, product, clerk):
        basic = make_user("basic", role_level=6, stores=[store_a])
        ledger_service.create_batch(product.id, store_a.id, 5, operator=clerk)
        mine, _ = ledger_service.create_batch(product.id, store_a.id, 2, operator=basic)
        headers = auth_headers(get_auth_token(client, "basic"))

        resp = client.get("/api/transactions", headers=headers)

        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["items"][0]["batch_id"] == mine.id

    def test_restore_entries_hidden_by_default(self, client, clerk_headers, store_a, product, clerk):
        _, tx = ledger_service.create_batch(product.id, store_a.id, 5, operator=clerk)

        resp = client.post(f"/api/transactions/{tx.id}/undo", headers=clerk_headers)
        assert resp.status_code == 200
        assert resp.json["undone"] == tx.id

        listed = client.get("/api/transactions", headers=clerk_headers).json
        assert [item["type"] for item in listed["items"]] == [TransactionType.IN]
        assert listed["items"][0]["is_undone"]

        with_restore = client.get("/api/transactions?include_restore=true", headers=clerk_headers).json
        assert {item["type"] for item in with_restore["items"]} == {TransactionType.IN, TransactionType.RESTORE}

    def test_undo_twice_conflicts(self, client, clerk_headers, store_a, product, clerk):
        _, tx = ledger_service.create_batch(product.id, store_a.id, 5, operator=clerk)
        client.post(f"/api/transactions/{tx.id}/undo", headers=clerk_headers)

        resp = client.post(f"/api/transactions/{tx.id}/undo", headers=clerk_headers)

        assert resp.status_code == 409
        assert resp.json["error"] == "ALREADY_UNDONE"

    def test_peer_undo_denied(self, client, store_a, product, manager, clerk_headers):
        _, tx = ledger_service.create_batch(product.id, store_a.id, 5, operator=manager)
        resp = client.post(f"/api/transactions/{tx.id}/undo", headers=clerk_headers)
        assert resp.status_code == 403

    @pytest.mark.parametrize("query", ["limit=0", "limit=501", "type=TELEPORT", "since=yesterday"])
    def test_bad_filters(self, client, clerk_headers, query):
        resp = client.get(f"/api/transactions?{query}", headers=clerk_headers)
        assert resp.status_code == 400


# =============================================================================
# PERMISSION RULES
# =============================================================================


class TestPermissionRoutes:

    def test_manager_edits_lower_level(self, client, manager_headers):
        resp = client.put("/api/permissions/rules/3", json={"show_excel": True}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["permission"]["show_excel"] is True

    def test_manager_cannot_edit_own_level(self, client, manager_headers):
        resp = client.put("/api/permissions/rules/1", json={"show_excel": False}, headers=manager_headers)
        assert resp.status_code == 403

    def test_edit_applies_to_next_request(self, client, manager_headers, clerk_headers):
        client.put("/api/permissions/rules/3", json={"show_excel": True}, headers=manager_headers)
        caps = client.get("/api/permissions/me", headers=clerk_headers).json["capabilities"]
        assert "inventory.export" in caps

    def test_unknown_field_rejected(self, client, manager_headers):
        resp = client.put("/api/permissions/rules/3", json={"is_god": True}, headers=manager_headers)
        assert resp.status_code == 400

    def test_staff_cannot_list_rules(self, client, clerk_headers):
        assert client.get("/api/permissions/rules", headers=clerk_headers).status_code == 403

    def test_list_rules_describes_capabilities(self, client, manager_headers):
        resp = client.get("/api/permissions/rules", headers=manager_headers)

        assert resp.status_code == 200
        assert sorted(resp.json["rules"], key=int) == [str(level) for level in range(10)]
        by_code = {c["code"]: c for c in resp.json["capabilities"]}
        assert by_code["inventory.delete"]["category"] == "INVENTORY"
        assert by_code["inventory.delete"]["name"] == "Delete Inventory"


class TestHealth:

    def test_health(self, client, seeded_rules):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["database"]["details"]["permission_rules"] == 10
