# Overview: Pytest coverage for the HTTP API (auth, sale, sync, stock, health).

"""
API route tests.

Verifies:
- Unauthenticated requests return 401; role checks return 403
- Single-sale confirmation maps outcomes and failures to HTTP statuses
- Batch sync always answers 200 for a well-formed batch
- Sellers only see and sell at their own shop
"""

from datetime import timedelta

import pytest

from possync.models import SessionToken, StockRow
from possync.services.session_service import hash_token

from conftest import auth_headers, sale_payload


class TestAuthentication:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/sync/sales"),
            ("GET", "/api/sync/status?client_id=x"),
            ("POST", "/api/sales/shops/1"),
            ("GET", "/api/sales/1"),
            ("GET", "/api/stock/shops/1/products/1"),
            ("POST", "/api/stock/shops/1/products/1/add"),
        ],
    )
    def test_requires_token(self, client, db_session, method, path):
        response = client.open(path, method=method, json={})
        assert response.status_code == 401
        assert response.json == {"error": "unauthorized"}

    def test_unknown_token(self, client, db_session):
        response = client.get("/api/sales/1", headers=auth_headers("not-a-token"))
        assert response.status_code == 401

    def test_idle_session_is_rejected(self, client, db_session, seller_token):
        record = db_session.query(SessionToken).filter_by(token_hash=hash_token(seller_token)).one()
        record.last_used_at = record.last_used_at - timedelta(hours=3)
        db_session.commit()

        response = client.get("/api/sales/1", headers=auth_headers(seller_token))

        assert response.status_code == 401
        db_session.expire_all()
        assert record.is_revoked is True

    def test_deactivated_seller_is_rejected(self, client, db_session, seller, seller_token):
        seller.is_active = False
        db_session.commit()

        response = client.get("/api/sales/1", headers=auth_headers(seller_token))

        assert response.status_code == 401


class TestConfirmSaleRoute:

    def test_created(self, client, db_session, shop, product, add_stock, seller_token):
        add_stock(shop, product, 10)

        response = client.post(
            f"/api/sales/shops/{shop.id}",
            json={"client_id": "web-1", "items": [{"product_id": product.id, "quantity": 3}]},
            headers=auth_headers(seller_token),
        )

        assert response.status_code == 201
        body = response.json
        assert body["status"] == "synced"
        assert body["sale"]["client_id"] == "web-1"
        assert body["sale"]["grand_total"] == "3300.00"
        assert body["sale"]["synced_from_offline"] is False
        assert len(body["lines"]) == 1

    def test_duplicate_returns_existing_sale(self, client, db_session, shop, product, add_stock, seller_token):
        add_stock(shop, product, 10)
        payload = {"client_id": "web-dup", "items": [{"product_id": product.id, "quantity": 1}]}

        first = client.post(f"/api/sales/shops/{shop.id}", json=payload, headers=auth_headers(seller_token))
        second = client.post(f"/api/sales/shops/{shop.id}", json=payload, headers=auth_headers(seller_token))

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json["status"] == "duplicate"
        assert second.json["sale"]["id"] == first.json["sale"]["id"]

    def test_server_generates_client_id(self, client, db_session, shop, product, add_stock, seller_token):
        add_stock(shop, product, 10)

        response = client.post(
            f"/api/sales/shops/{shop.id}",
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=auth_headers(seller_token),
        )

        assert response.status_code == 201
        assert response.json["sale"]["client_id"]

    def test_insufficient_stock(self, client, db_session, shop, product, add_stock, seller_token):
        add_stock(shop, product, 2)

        response = client.post(
            f"/api/sales/shops/{shop.id}",
            json={"items": [{"product_id": product.id, "quantity": 5}]},
            headers=auth_headers(seller_token),
        )

        assert response.status_code == 409
        assert response.json == {
            "error": "insufficient_stock",
            "product_id": product.id,
            "available": 2,
            "requested": 5,
        }

    def test_forbidden_shop(self, client, db_session, other_shop, product, add_stock, seller_token):
        add_stock(other_shop, product, 10)

        response = client.post(
            f"/api/sales/shops/{other_shop.id}",
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=auth_headers(seller_token),
        )

        assert response.status_code == 403
        assert response.json["error"] == "forbidden_shop"

    @pytest.mark.parametrize(
        "body,status,error",
        [
            ({"items": []}, 422, "invalid_sale"),
            ({"items": [{"product_id": 1, "quantity": -1}]}, 422, "invalid_item"),
            ({"items": [{"product_id": 999, "quantity": 1}]}, 404, "stock_not_found"),
        ],
    )
    def test_failure_mapping(self, client, db_session, shop, seller_token, body, status, error):
        response = client.post(f"/api/sales/shops/{shop.id}", json=body, headers=auth_headers(seller_token))

        assert response.status_code == status
        assert response.json["error"] == error

    def test_get_sale_hidden_from_other_shops(
        self, client, db_session, shop, other_shop, product, add_stock, admin_token, seller_token
    ):
        add_stock(other_shop, product, 10)
        created = client.post(
            f"/api/sales/shops/{other_shop.id}",
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=auth_headers(admin_token),
        )
        sale_id = created.json["sale"]["id"]

        as_admin = client.get(f"/api/sales/{sale_id}", headers=auth_headers(admin_token))
        assert as_admin.status_code == 200
        assert as_admin.json["lines"][0]["product_id"] == product.id

        as_seller = client.get(f"/api/sales/{sale_id}", headers=auth_headers(seller_token))
        assert as_seller.status_code == 404


class TestSyncRoutes:

    def test_batch(self, client, db_session, shop, product, add_stock, seller_token):
        add_stock(shop, product, 10)
        batch = [
            sale_payload("http-1", shop.id, [{"product_id": product.id, "quantity": 1}]),
            sale_payload("http-2", shop.id, [{"product_id": product.id, "quantity": 99}]),
        ]

        response = client.post("/api/sync/sales", json={"sales": batch}, headers=auth_headers(seller_token))

        assert response.status_code == 200
        results = response.json["results"]
        assert [r["status"] for r in results] == ["synced", "error"]
        assert results[1]["code"] == "INSUFFICIENT_STOCK"

    @pytest.mark.parametrize("body", [{}, {"sales": []}, {"sales": "x"}, []])
    def test_invalid_payload(self, client, db_session, seller_token, body):
        response = client.post("/api/sync/sales", json=body, headers=auth_headers(seller_token))
        assert response.status_code == 400
        assert response.json == {"error": "invalid_payload"}

    def test_batch_too_large(self, client, db_session, shop, seller_token):
        batch = [sale_payload(f"big-{n}", shop.id, []) for n in range(11)]

        response = client.post("/api/sync/sales", json={"sales": batch}, headers=auth_headers(seller_token))

        assert response.status_code == 413
        assert response.json["max_batch_size"] == 10

    def test_status(self, client, db_session, shop, product, add_stock, seller_token):
        add_stock(shop, product, 10)
        client.post(
            "/api/sync/sales",
            json={"sales": [sale_payload("status-http", shop.id, [{"product_id": product.id, "quantity": 1}])]},
            headers=auth_headers(seller_token),
        )

        found = client.get("/api/sync/status?client_id=status-http", headers=auth_headers(seller_token))
        missing = client.get("/api/sync/status?client_id=nope", headers=auth_headers(seller_token))
        no_param = client.get("/api/sync/status", headers=auth_headers(seller_token))

        assert found.status_code == 200
        assert found.json["synced_from_offline"] is True
        assert missing.status_code == 404
        assert no_param.status_code == 400


class TestStockRoutes:

    def test_read_own_shop(self, client, db_session, shop, product, add_stock, seller_token):
        add_stock(shop, product, 4, sold_count=1)

        response = client.get(f"/api/stock/shops/{shop.id}/products/{product.id}", headers=auth_headers(seller_token))

        assert response.status_code == 200
        assert response.json == {"on_hand": 4, "sold_count": 1}

    def test_read_other_shop_forbidden(self, client, db_session, other_shop, product, seller_token):
        response = client.get(
            f"/api/stock/shops/{other_shop.id}/products/{product.id}",
            headers=auth_headers(seller_token),
        )
        assert response.status_code == 403

    def test_transfer_requires_admin(self, client, db_session, shop, product, seller_token):
        response = client.post(
            f"/api/stock/shops/{shop.id}/products/{product.id}/add",
            json={"quantity": 5},
            headers=auth_headers(seller_token),
        )
        assert response.status_code == 403
        assert response.json == {"error": "forbidden"}

    def test_transfer(self, client, db_session, shop, product, admin_token):
        response = client.post(
            f"/api/stock/shops/{shop.id}/products/{product.id}/add",
            json={"quantity": 5},
            headers=auth_headers(admin_token),
        )

        assert response.status_code == 200
        assert response.json["on_hand"] == 5
        db_session.expire_all()
        assert db_session.query(StockRow).filter_by(shop_id=shop.id, product_id=product.id).one().on_hand == 5

    @pytest.mark.parametrize(
        "quantity,status,error",
        [
            (0, 400, "invalid_fields"),
            ("abc", 400, "invalid_fields"),
            (1000, 400, "insufficient_store_stock"),
        ],
    )
    def test_transfer_failures(self, client, db_session, shop, product, admin_token, quantity, status, error):
        response = client.post(
            f"/api/stock/shops/{shop.id}/products/{product.id}/add",
            json={"quantity": quantity},
            headers=auth_headers(admin_token),
        )
        assert response.status_code == status
        assert response.json["error"] == error


class TestHealth:

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["ok"] is True
        assert response.json["database"]["status"] == "healthy"
