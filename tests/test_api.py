"""End-to-end checks through the HTTP layer."""

from tests.conftest import PASSWORD


async def _place_order(client, seed, lines=None):
    response = await client.post(
        f"/api/public/restaurants/{seed.restaurant.id}/orders",
        json={
            "table_id": seed.table.id,
            "customer_name": "Jane Doe",
            "customer_phone": "555-123-4567",
            "items": lines or [{"menu_item_id": seed.item_a.id, "quantity": 1}],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# AUTH
# =============================================================================

async def test_login_returns_token_and_capabilities(client, seed):
    response = await client.post("/api/auth/login", json={"email": "admin@roma.test", "password": PASSWORD})

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "restaurant_admin"
    assert body["user"]["restaurant_id"] == seed.restaurant.id
    assert "manage_menus" in body["capabilities"]
    assert "manage_users" not in body["capabilities"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "admin@roma.test"


async def test_bad_credentials_are_401(client, seed):
    response = await client.post("/api/auth/login", json={"email": "admin@roma.test", "password": "wrong-pass"})

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["context"]["reason"] == "UNAUTHENTICATED"


async def test_staff_routes_require_a_token(client, seed):
    response = await client.get(f"/api/restaurants/{seed.restaurant.id}/orders")
    assert response.status_code == 401

    response = await client.get(
        f"/api/restaurants/{seed.restaurant.id}/orders", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


async def test_otp_round_trip(client, seed):
    sent = await client.post("/api/auth/otp/send", json={"phone": "+15550001111"})
    assert sent.status_code == 200
    code = sent.json()["code"]

    wrong = await client.post("/api/auth/otp/verify", json={"phone": "+15550001111", "code": "abcdef"})
    assert wrong.status_code == 400

    verified = await client.post("/api/auth/otp/verify", json={"phone": "+15550001111", "code": code})
    assert verified.status_code == 200
    assert verified.json()["verified"] is True


# =============================================================================
# CUSTOMER FLOW
# =============================================================================

async def test_public_menu(client, seed):
    response = await client.get(
        f"/api/public/restaurants/{seed.restaurant.id}/menu", params={"table_id": seed.table.id}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["table_number"] == "T1"
    assert body["categories"] == ["Mains", "Starters"]
    assert [item["name"] for item in body["items"]] == ["Lasagna", "Bruschetta"]


async def test_public_menu_unknown_restaurant(client, seed):
    response = await client.get("/api/public/restaurants/9999/menu")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


async def test_order_lifecycle_over_http(client, seed, auth_headers):
    order = await _place_order(
        client,
        seed,
        [
            {"menu_item_id": seed.item_a.id, "quantity": 2, "price": 0.5},
            {"menu_item_id": seed.item_b.id, "quantity": 1},
        ],
    )
    assert order["total"] == 320.0
    assert order["status"] == "pending"

    waiter = auth_headers(seed.waiter)
    url = f"/api/orders/{order['order_id']}/status"

    confirmed = await client.post(url, json={"status": "confirmed"}, headers=waiter)
    assert confirmed.status_code == 200
    assert confirmed.json()["changed"] is True

    again = await client.post(url, json={"status": "confirmed"}, headers=waiter)
    assert again.status_code == 200
    assert again.json()["changed"] is False

    skipped = await client.post(url, json={"status": "ready"}, headers=waiter)
    assert skipped.status_code == 409
    assert skipped.json()["error"] == "illegal_transition"

    detail = await client.get(f"/api/orders/{order['order_id']}", headers=waiter)
    assert detail.json()["status"] == "confirmed"
    assert detail.json()["next_statuses"] == ["preparing"]


async def test_stale_status_is_409_conflict(client, seed, auth_headers):
    order = await _place_order(client, seed)
    url = f"/api/orders/{order['order_id']}/status"

    await client.post(url, json={"status": "confirmed"}, headers=auth_headers(seed.admin))
    response = await client.post(
        f"/api/orders/{order['order_id']}/cancel",
        json={"expected_status": "pending"},
        headers=auth_headers(seed.waiter),
    )

    assert response.status_code == 409
    assert response.json()["error"] == "conflict"


async def test_other_restaurant_staff_get_403(client, seed, auth_headers):
    order = await _place_order(client, seed)

    response = await client.post(
        f"/api/orders/{order['order_id']}/status",
        json={"status": "confirmed"},
        headers=auth_headers(seed.other_admin),
    )

    assert response.status_code == 403
    assert response.json()["context"]["reason"] == "TENANT_MISMATCH"


async def test_invalid_orders_rejected(client, seed):
    base = f"/api/public/restaurants/{seed.restaurant.id}/orders"

    empty = await client.post(
        base, json={"table_id": seed.table.id, "customer_name": "Jane", "customer_phone": "5551234567", "items": []}
    )
    assert empty.status_code == 422

    unavailable = await client.post(
        base,
        json={
            "table_id": seed.table.id,
            "customer_name": "Jane",
            "customer_phone": "5551234567",
            "items": [{"menu_item_id": seed.unavailable_item.id, "quantity": 1}],
        },
    )
    assert unavailable.status_code == 400
    assert unavailable.json()["error"] == "validation_error"


async def test_list_orders_with_status_filter(client, seed, auth_headers):
    first = await _place_order(client, seed)
    await _place_order(client, seed)
    await client.post(
        f"/api/orders/{first['order_id']}/status", json={"status": "confirmed"}, headers=auth_headers(seed.admin)
    )

    response = await client.get(
        f"/api/restaurants/{seed.restaurant.id}/orders",
        params={"status": ["pending", "confirmed"]},
        headers=auth_headers(seed.waiter),
    )
    assert response.json()["total"] == 2

    response = await client.get(
        f"/api/restaurants/{seed.restaurant.id}/orders",
        params={"status": "confirmed"},
        headers=auth_headers(seed.waiter),
    )
    body = response.json()
    assert body["total"] == 1
    assert body["orders"][0]["id"] == first["order_id"]


# =============================================================================
# ADMINISTRATION
# =============================================================================

async def test_admin_creates_waiter_for_own_restaurant(client, seed, auth_headers):
    response = await client.post(
        "/api/users",
        json={"email": "luca@roma.test", "password": PASSWORD, "name": "Luca"},
        headers=auth_headers(seed.admin),
    )

    assert response.status_code == 201, response.text
    assert response.json()["restaurant_id"] == seed.restaurant.id

    login = await client.post("/api/auth/login", json={"email": "luca@roma.test", "password": PASSWORD})
    assert login.status_code == 200


async def test_waiter_cannot_add_menu_items(client, seed, auth_headers):
    response = await client.post(
        f"/api/restaurants/{seed.restaurant.id}/menu",
        json={"name": "Soup", "price": 9.5},
        headers=auth_headers(seed.waiter),
    )
    assert response.status_code == 403
    assert response.json()["context"]["reason"] == "WRONG_ROLE"


async def test_restaurant_analytics(client, seed, auth_headers):
    order = await _place_order(client, seed)
    admin = auth_headers(seed.admin)
    for status in ("confirmed", "preparing", "ready", "delivered"):
        await client.post(f"/api/orders/{order['order_id']}/status", json={"status": status}, headers=admin)

    response = await client.get(f"/api/restaurants/{seed.restaurant.id}/analytics", headers=admin)
    assert response.status_code == 200
    body = response.json()
    assert body["total_orders"] == 1
    assert body["orders_by_status"]["delivered"] == 1
    assert body["revenue"] == 120.0
    assert body["tables_occupied"] == 0

    platform = await client.get("/api/analytics/platform", headers=admin)
    assert platform.status_code == 403


async def test_health(client, seed):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "operational"
    assert body["database"] == "healthy"
