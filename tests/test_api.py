"""
HTTP API tests through the FastAPI TestClient.
"""

import json
from decimal import Decimal

import pytest

from pizzeria.core.config import get_settings

BRANCH = "colombo-01"
USER = {"X-User-Id": "user-1"}


def add_item(client, item_id="margherita", quantity=1, size="L", extras=("Olives", "Extra Cheese"), headers=USER):
    return client.post(
        f"/api/cart/{BRANCH}/items",
        json={"item_id": item_id, "quantity": quantity, "size": size, "extras": list(extras)},
        headers=headers,
    )


def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["health"] == "/health"


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "operational"
    assert data["cart_store"] == "healthy"
    assert data["geo_service"].startswith("local")


# =============================================================================
# BRANCHES & MENU
# =============================================================================

def test_list_branches_hides_inactive(client):
    ids = {b["id"] for b in client.get("/api/branches").json()}
    assert ids == {"colombo-01", "kandy-01"}

    ids = {b["id"] for b in client.get("/api/branches?include_inactive=true").json()}
    assert "galle-01" in ids


def test_nearest_branch(client):
    resp = client.get("/api/branches/nearest", params={"lat": 7.25, "lng": 80.6})
    assert resp.status_code == 200
    data = resp.json()
    assert data["branch"]["id"] == "kandy-01"
    assert data["provider"] == "local"


def test_nearest_branch_ignores_inactive(client):
    # Galle itself is inactive, so the closest open branch is Colombo
    resp = client.get("/api/branches/nearest", params={"lat": 6.0535, "lng": 80.2210})
    assert resp.json()["branch"]["id"] == "colombo-01"


def test_unknown_branch_is_404(client):
    resp = client.get("/api/branches/nowhere")
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFoundError"


def test_menu_filters(client):
    titles = {i["title"] for i in client.get(f"/api/branches/{BRANCH}/menu").json()}
    assert titles == {"Margherita", "Pepperoni", "Garlic Bread", "Cola"}

    sides = client.get(f"/api/branches/{BRANCH}/menu", params={"category": "sides"}).json()
    assert [i["id"] for i in sides] == ["garlic-bread"]

    found = client.get(f"/api/branches/{BRANCH}/menu", params={"q": "SPICY"}).json()
    assert [i["id"] for i in found] == ["pepperoni"]


def test_quote(client):
    resp = client.post(
        f"/api/branches/{BRANCH}/menu/margherita/quote",
        json={"size": "L", "extras": ["Olives", "Extra Cheese"]},
    )
    assert resp.status_code == 200
    assert Decimal(resp.json()["unit_price"]) == Decimal("1360.00")


def test_quote_uses_item_multipliers(client):
    resp = client.post(f"/api/branches/{BRANCH}/menu/pepperoni/quote", json={"size": "XL"})
    assert Decimal(resp.json()["unit_price"]) == Decimal("2250.00")


def test_quote_unknown_size_is_400(client):
    resp = client.post(f"/api/branches/{BRANCH}/menu/pepperoni/quote", json={"size": "S"})
    assert resp.status_code == 400
    assert "Unknown size" in resp.json()["detail"]


# =============================================================================
# CART
# =============================================================================

def test_add_merges_identical_configuration(client):
    first = add_item(client, quantity=2)
    second = add_item(client, quantity=1, extras=("extra cheese", "Olives"))
    assert first.status_code == 201
    assert second.json()["local_id"] == first.json()["local_id"]
    assert second.json()["quantity"] == 3

    cart = client.get(f"/api/cart/{BRANCH}", headers=USER).json()
    assert len(cart["lines"]) == 1
    assert cart["item_count"] == 3
    assert cart["lines"][0]["extras"] == "Extra Cheese,Olives"


def test_cart_totals(client):
    add_item(client, item_id="margherita", quantity=1)
    add_item(client, item_id="garlic-bread", quantity=2, size="M", extras=())
    cart = client.get(f"/api/cart/{BRANCH}", headers=USER).json()
    assert Decimal(cart["subtotal"]) == Decimal("2260.00")
    assert Decimal(cart["delivery_fee"]) == Decimal("250.00")
    assert Decimal(cart["total"]) == Decimal("2510.00")
    assert cart["lines"][0]["item_id"] == "garlic-bread"


def test_free_delivery_at_threshold(client):
    add_item(client, item_id="pepperoni", quantity=2, size="M", extras=())
    cart = client.get(f"/api/cart/{BRANCH}", headers=USER).json()
    assert Decimal(cart["subtotal"]) == Decimal("3000.00")
    assert Decimal(cart["delivery_fee"]) == Decimal("0")


def test_empty_cart(client):
    cart = client.get(f"/api/cart/{BRANCH}", headers=USER).json()
    assert cart["lines"] == []
    assert Decimal(cart["total"]) == Decimal("0")


def test_add_unavailable_item_is_409(client):
    resp = add_item(client, item_id="cola", size="M", extras=())
    assert resp.status_code == 409


def test_add_unknown_item_is_404(client):
    assert add_item(client, item_id="nope").status_code == 404


def test_add_zero_quantity_is_rejected(client):
    assert add_item(client, quantity=0).status_code == 422


def test_change_quantity_and_remove(client):
    line_id = add_item(client, quantity=1).json()["local_id"]

    resp = client.patch(f"/api/cart/{BRANCH}/items/{line_id}", json={"quantity": 4}, headers=USER)
    assert resp.status_code == 200
    assert resp.json()["lines"][0]["quantity"] == 4

    resp = client.patch(f"/api/cart/{BRANCH}/items/{line_id}", json={"quantity": 0}, headers=USER)
    assert resp.json()["lines"] == []

    # Removing again is a no-op, updating a removed line is not
    assert client.patch(f"/api/cart/{BRANCH}/items/{line_id}", json={"quantity": 0}, headers=USER).status_code == 200
    assert client.patch(f"/api/cart/{BRANCH}/items/{line_id}", json={"quantity": 2}, headers=USER).status_code == 404


def test_change_quantity_wrong_branch_is_404(client):
    line_id = add_item(client).json()["local_id"]
    resp = client.patch(f"/api/cart/kandy-01/items/{line_id}", json={"quantity": 2}, headers=USER)
    assert resp.status_code == 404


def test_clear_cart(client):
    add_item(client)
    resp = client.delete(f"/api/cart/{BRANCH}", headers=USER)
    assert resp.json()["removed"] == 1
    assert client.get(f"/api/cart/{BRANCH}", headers=USER).json()["lines"] == []


def test_cart_requires_user(client):
    assert client.get(f"/api/cart/{BRANCH}").status_code == 401
    assert add_item(client, headers={}).status_code == 401


def test_carts_are_per_user(client):
    alice = {"X-User-Id": "alice"}
    bob = {"X-User-Id": "bob"}
    line_id = add_item(client, quantity=2, headers=alice).json()["local_id"]

    assert client.get(f"/api/cart/{BRANCH}", headers=bob).json()["lines"] == []

    # Bob can neither change nor check out Alice's line
    resp = client.patch(f"/api/cart/{BRANCH}/items/{line_id}", json={"quantity": 5}, headers=bob)
    assert resp.status_code == 404
    resp = client.post(f"/api/checkout/{BRANCH}", json=CHECKOUT_BODY, headers=bob)
    assert resp.status_code == 409

    add_item(client, item_id="garlic-bread", size="M", extras=(), headers=bob)
    order = client.post(f"/api/checkout/{BRANCH}", json=CHECKOUT_BODY, headers=bob).json()
    assert [item["item_id"] for item in order["items"]] == ["garlic-bread"]

    lines = client.get(f"/api/cart/{BRANCH}", headers=alice).json()["lines"]
    assert [(l["item_id"], l["quantity"]) for l in lines] == [("margherita", 2)]


def test_deleting_branch_drops_its_carts(client):
    client.post("/api/admin/branches", json={"id": "negombo-01", "name": "Negombo"})
    client.post(
        "/api/admin/branches/negombo-01/menu",
        json={"id": "hawaiian", "title": "Hawaiian", "price": 1300, "available": True},
    )
    resp = client.post(
        "/api/cart/negombo-01/items",
        json={"item_id": "hawaiian", "quantity": 1, "size": "M"},
        headers=USER,
    )
    assert resp.status_code == 201

    assert client.delete("/api/admin/branches/negombo-01").status_code == 200
    assert client.get("/api/cart/negombo-01", headers=USER).json()["lines"] == []


def test_stream_sends_current_cart(client):
    add_item(client, quantity=2)
    resp = client.get(f"/api/cart/{BRANCH}/stream", params={"max_events": 1}, headers=USER)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")

    data_lines = [l for l in resp.text.splitlines() if l.startswith("data: ")]
    assert len(data_lines) == 1
    payload = json.loads(data_lines[0][len("data: "):])
    assert payload["item_count"] == 2


# =============================================================================
# CHECKOUT, ORDERS & PROFILE
# =============================================================================

CHECKOUT_BODY = {
    "name": "Nimal Perera",
    "address": "12 Galle Road, Colombo 03",
    "phone": "077 123 4567",
    "notes": "Ring twice",
}


def test_checkout_requires_user(client):
    add_item(client)
    assert client.post(f"/api/checkout/{BRANCH}", json=CHECKOUT_BODY).status_code == 401


def test_checkout_empty_cart_is_409(client, user_headers):
    resp = client.post(f"/api/checkout/{BRANCH}", json=CHECKOUT_BODY, headers=user_headers)
    assert resp.status_code == 409
    assert resp.json()["error"] == "EmptyCartError"


def test_checkout_flow(client, user_headers):
    add_item(client, quantity=1)
    add_item(client, item_id="garlic-bread", quantity=2, size="M", extras=())

    resp = client.post(f"/api/checkout/{BRANCH}", json=CHECKOUT_BODY, headers=user_headers)
    assert resp.status_code == 201
    order = resp.json()
    assert order["status"] == "placed"
    assert Decimal(order["total"]) == Decimal("2510.00")
    assert len(order["items"]) == 2

    # Cart is cleared and the delivery details are remembered
    assert client.get(f"/api/cart/{BRANCH}", headers=USER).json()["lines"] == []
    profile = client.get("/api/profile", headers=user_headers).json()
    assert profile["name"] == "Nimal Perera"

    mine = client.get("/api/orders", headers=user_headers).json()
    assert mine["total"] == 1
    assert client.get(f"/api/orders/{order['id']}", headers=user_headers).status_code == 200
    assert client.get(f"/api/orders/{order['id']}", headers={"X-User-Id": "someone-else"}).status_code == 404


def test_checkout_validates_phone(client, user_headers):
    add_item(client)
    body = dict(CHECKOUT_BODY, phone="abc-def-g")
    assert client.post(f"/api/checkout/{BRANCH}", json=body, headers=user_headers).status_code == 422


def test_profile_round_trip(client, user_headers):
    assert client.get("/api/profile", headers=user_headers).status_code == 404
    resp = client.put(
        "/api/profile",
        json={"name": "Amaya", "phone": "0711111111", "address": "Kandy"},
        headers=user_headers,
    )
    assert resp.status_code == 200
    assert client.get("/api/profile", headers=user_headers).json()["address"] == "Kandy"


# =============================================================================
# ADMIN
# =============================================================================

def test_admin_branch_crud(client):
    resp = client.post("/api/admin/branches", json={"id": "negombo-01", "name": "Negombo"})
    assert resp.status_code == 201
    assert client.post("/api/admin/branches", json={"id": "negombo-01", "name": "Again"}).status_code == 409

    resp = client.put("/api/admin/branches/negombo-01", json={"active": False})
    assert resp.json()["active"] is False
    assert resp.json()["name"] == "Negombo"

    assert client.delete("/api/admin/branches/negombo-01").status_code == 200
    assert client.get("/api/branches/negombo-01").status_code == 404


def test_admin_branch_create_reads_nested_location(client):
    resp = client.post(
        "/api/admin/branches",
        json={"id": "jaffna-01", "name": "Jaffna", "location": {"lat": 9.6615, "lng": 80.0255}},
    )
    assert resp.status_code == 201
    assert resp.json()["latitude"] == 9.6615
    assert resp.json()["longitude"] == 80.0255


def test_admin_menu_crud_accepts_legacy_fields(client):
    resp = client.post(
        f"/api/admin/branches/{BRANCH}/menu",
        json={"name": "Veggie Supreme", "basePrice": 1100, "category": "pizza", "available": True},
    )
    assert resp.status_code == 201
    item = resp.json()
    assert item["title"] == "Veggie Supreme"
    assert Decimal(item["price"]) == Decimal("1100.00")

    resp = client.put(
        f"/api/admin/branches/{BRANCH}/menu/{item['id']}",
        json={"title": "Veggie Deluxe", "price": 1200, "available": True},
    )
    assert resp.json()["title"] == "Veggie Deluxe"

    assert client.delete(f"/api/admin/branches/{BRANCH}/menu/{item['id']}").status_code == 200
    assert client.get(f"/api/branches/{BRANCH}/menu/{item['id']}").status_code == 404


def test_admin_menu_import(client):
    resp = client.post(
        f"/api/admin/branches/{BRANCH}/menu/import",
        json={"documents": [
            {"id": "lemonade", "name": "Lemonade", "price": 300, "category": "beverage", "available": True},
            {"id": "margherita", "title": "Margherita", "price": 1050, "available": True},
        ]},
    )
    assert resp.status_code == 200
    assert resp.json()["imported"] == 2

    drinks = client.get(f"/api/branches/{BRANCH}/menu", params={"category": "drinks"}).json()
    assert {d["id"] for d in drinks} == {"cola", "lemonade"}
    margherita = client.get(f"/api/branches/{BRANCH}/menu/margherita").json()
    assert Decimal(margherita["price"]) == Decimal("1050.00")


def test_admin_order_workflow(client, user_headers):
    add_item(client)
    order_id = client.post(f"/api/checkout/{BRANCH}", json=CHECKOUT_BODY, headers=user_headers).json()["id"]

    listing = client.get("/api/admin/orders", params={"status": "placed"}).json()
    assert listing["total"] == 1

    for expected in ("preparing", "out_for_delivery", "delivered", "delivered"):
        resp = client.post(f"/api/admin/orders/{order_id}/advance")
        assert resp.json()["status"] == expected

    resp = client.post(f"/api/admin/orders/{order_id}/cancel")
    assert resp.status_code == 409
    assert resp.json()["error"] == "InvalidTransitionError"


def test_admin_set_status(client, user_headers):
    add_item(client)
    order_id = client.post(f"/api/checkout/{BRANCH}", json=CHECKOUT_BODY, headers=user_headers).json()["id"]
    resp = client.put(f"/api/admin/orders/{order_id}/status", json={"status": "cancelled"})
    assert resp.json()["status"] == "cancelled"
    assert client.post("/api/admin/orders/missing/advance").status_code == 404


def test_admin_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "admin_api_key", "s3cret")
    assert client.get("/api/admin/orders").status_code == 403
    assert client.get("/api/admin/orders", headers={"X-Admin-Key": "wrong"}).status_code == 403
    assert client.get("/api/admin/orders", headers={"X-Admin-Key": "s3cret"}).status_code == 200
