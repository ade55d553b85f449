"""
Queue API tests.

Verifies:
- Unauthenticated requests return 401
- Role permissions are enforced (403) and denials are audited
- Shops and tokens outside the user's shop answer 404
- Typed service errors map to their HTTP status with details
- Settlement is safe to retry over HTTP
"""

import pytest

from queuepos.extensions import db
from queuepos.models import SecurityEvent, Sale


def _token_body(shop, *items, **extra):
    body = {"shop_id": shop.id, "items": [{"product_id": p.id, "quantity": q} for p, q in items]}
    body.update(extra)
    return body


# =============================================================================
# AUTHENTICATION
# =============================================================================


class TestAuthentication:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/queue/shops/1/products"),
            ("GET", "/api/queue/shops/1/board"),
            ("POST", "/api/queue/tokens"),
            ("POST", "/api/queue/shops/1/call-next"),
            ("POST", "/api/queue/tokens/1/status"),
            ("POST", "/api/queue/tokens/1/settle"),
            ("POST", "/api/queue/shops/1/close-day"),
            ("GET", "/api/queue/tokens/1"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_login_returns_token_and_permissions(self, client, cashier):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "Password123"})
        assert resp.status_code == 200
        assert resp.json["token"]
        assert "SETTLE_QUEUE_TOKEN" in resp.json["permissions"]
        assert "CLOSE_QUEUE_DAY" not in resp.json["permissions"]

    def test_bad_password_is_rejected_and_audited(self, client, cashier):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "wrong-pass1"})
        assert resp.status_code == 401
        db.session.expire_all()
        assert db.session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").count() == 1

    def test_logout_revokes_session(self, client, cashier_headers, shop):
        assert client.post("/api/auth/logout", headers=cashier_headers).status_code == 200
        resp = client.get(f"/api/queue/shops/{shop.id}/board", headers=cashier_headers)
        assert resp.status_code == 401


# =============================================================================
# PERMISSIONS AND SHOP SCOPE
# =============================================================================


class TestPermissions:

    def test_kitchen_cannot_create_tokens(self, client, kitchen_headers, shop, tea):
        resp = client.post("/api/queue/tokens", json=_token_body(shop, (tea, 1)), headers=kitchen_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "CREATE_QUEUE_TOKEN"
        db.session.expire_all()
        assert db.session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").count() == 1

    def test_cashier_cannot_close_day(self, client, cashier_headers, shop):
        resp = client.post(f"/api/queue/shops/{shop.id}/close-day", headers=cashier_headers)
        assert resp.status_code == 403

    def test_other_shop_board_is_not_found(self, client, outsider_headers, shop):
        resp = client.get(f"/api/queue/shops/{shop.id}/board", headers=outsider_headers)
        assert resp.status_code == 404

    def test_other_shop_token_is_not_found(self, client, cashier_headers, outsider_headers, shop, tea):
        created = client.post("/api/queue/tokens", json=_token_body(shop, (tea, 1)), headers=cashier_headers)
        token_id = created.json["token"]["id"]

        assert client.get(f"/api/queue/tokens/{token_id}", headers=outsider_headers).status_code == 404
        resp = client.post(f"/api/queue/tokens/{token_id}/settle", headers=outsider_headers)
        assert resp.status_code == 404


# =============================================================================
# QUEUE FLOW
# =============================================================================


class TestQueueFlow:

    def test_create_token_and_see_it_on_board(self, client, cashier_headers, shop, tea, burger):
        resp = client.post(
            "/api/queue/tokens",
            json=_token_body(shop, (tea, 2), (burger, 1), order_type="takeaway", customer_name="Karim"),
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        token = resp.json["token"]
        assert token["token_label"] == "DB-0001"
        assert token["status"] == "WAITING"
        assert token["total_cents"] == 20000
        assert len(token["items"]) == 2

        board = client.get(f"/api/queue/shops/{shop.id}/board", headers=cashier_headers)
        assert board.status_code == 200
        assert [t["id"] for t in board.json["tokens"]] == [token["id"]]
        assert board.json["tokens"][0]["next_action"]["status"] == "CALLED"

    def test_shop_defaults_to_users_shop(self, client, cashier_headers, shop, tea):
        body = {"items": [{"product_id": tea.id, "quantity": 1}]}
        resp = client.post("/api/queue/tokens", json=body, headers=cashier_headers)
        assert resp.status_code == 201
        assert resp.json["token"]["shop_id"] == shop.id

    def test_empty_items_is_bad_request(self, client, cashier_headers, shop):
        resp = client.post("/api/queue/tokens", json=_token_body(shop), headers=cashier_headers)
        assert resp.status_code == 400

    def test_capacity_conflict_names_product(self, client, cashier_headers, shop, tea):
        client.post("/api/queue/tokens", json=_token_body(shop, (tea, 3)), headers=cashier_headers)
        resp = client.post("/api/queue/tokens", json=_token_body(shop, (tea, 4)), headers=cashier_headers)
        assert resp.status_code == 409
        assert "Milk Tea" in resp.json["error"]
        assert resp.json["details"]["available_quantity"] == 2

        options = client.get(f"/api/queue/shops/{shop.id}/products", headers=cashier_headers)
        tea_option = next(o for o in options.json["products"] if o["id"] == tea.id)
        assert tea_option["reserved_qty"] == 3
        assert tea_option["available_stock"] == 2

    def test_status_updates_and_illegal_transition(self, client, cashier_headers, kitchen_headers, shop, tea):
        token_id = client.post(
            "/api/queue/tokens", json=_token_body(shop, (tea, 1)), headers=cashier_headers
        ).json["token"]["id"]

        called = client.post(f"/api/queue/shops/{shop.id}/call-next", headers=kitchen_headers)
        assert called.status_code == 200
        assert called.json["token"]["id"] == token_id

        resp = client.post(f"/api/queue/tokens/{token_id}/status", json={"status": "DONE"}, headers=kitchen_headers)
        assert resp.status_code == 409
        assert resp.json["details"]["current_status"] == "CALLED"

        resp = client.post(
            f"/api/queue/tokens/{token_id}/status", json={"status": "IN_PROGRESS"}, headers=kitchen_headers
        )
        assert resp.status_code == 200
        assert resp.json["token"]["status"] == "IN_PROGRESS"
        assert resp.json["token"]["in_kitchen_at"]

        empty = client.post(f"/api/queue/shops/{shop.id}/call-next", headers=kitchen_headers)
        assert empty.json["token"] is None

    def test_settle_twice_returns_same_sale(self, client, cashier_headers, shop, tea):
        token_id = client.post(
            "/api/queue/tokens", json=_token_body(shop, (tea, 2)), headers=cashier_headers
        ).json["token"]["id"]

        first = client.post(f"/api/queue/tokens/{token_id}/settle", headers=cashier_headers)
        second = client.post(f"/api/queue/tokens/{token_id}/settle", headers=cashier_headers)

        assert first.status_code == 201
        assert first.json["already_settled"] is False
        assert second.status_code == 200
        assert second.json["already_settled"] is True
        assert second.json["sale_id"] == first.json["sale_id"]
        db.session.expire_all()
        assert db.session.query(Sale).count() == 1

        printed = client.get(f"/api/queue/tokens/{token_id}", headers=cashier_headers)
        assert printed.json["token"]["settled_sale_id"] == first.json["sale_id"]
        assert printed.json["token"]["next_action"] is None
        assert printed.json["token"]["shop"]["name"] == "Dhaka Bites"

    def test_owner_closes_day(self, client, cashier_headers, owner_headers, shop, tea, burger):
        client.post("/api/queue/tokens", json=_token_body(shop, (tea, 1)), headers=cashier_headers)
        client.post("/api/queue/tokens", json=_token_body(shop, (burger, 1)), headers=cashier_headers)

        resp = client.post(f"/api/queue/shops/{shop.id}/close-day", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["cancelled_count"] == 2
        assert resp.json["pending_total_cents"] == 2500 + 15000

        again = client.post(f"/api/queue/shops/{shop.id}/close-day", headers=owner_headers)
        assert again.json["cancelled_count"] == 0

    def test_malformed_business_date(self, client, cashier_headers, shop):
        resp = client.get(f"/api/queue/shops/{shop.id}/board?business_date=yesterday", headers=cashier_headers)
        assert resp.status_code == 400


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_cors_allows_configured_origin(self, client, db_session):
        resp = client.get("/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        resp = client.get("/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
