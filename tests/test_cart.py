from fastapi.testclient import TestClient

import database
from main import app
from settings import settings


def test_first_cart_call_mints_session_cookie(client):
    resp = client.get("/api/cart")
    assert resp.status_code == 200
    assert resp.json() == {"items": [], "totalItems": 0, "totalPrice": 0.0}

    token = client.cookies.get(settings.session_cookie_name)
    assert token
    assert database.get_document("sessions", token) is not None

    set_cookie = resp.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie
    assert f"max-age={30 * 24 * 60 * 60}" in set_cookie

    client.get("/api/cart")
    assert database.query("SELECT COUNT(*) AS n FROM sessions")[0]["n"] == 1


def test_unknown_session_token_is_replaced(client):
    client.get("/api/cart")
    stale = client.cookies.get(settings.session_cookie_name)
    database.delete_document("sessions", stale)

    client.get("/api/cart")
    token = client.cookies.get(settings.session_cookie_name)
    assert token != stale
    assert database.get_document("sessions", token) is not None


def test_adding_same_line_twice_merges_quantities(client, make_product):
    product = make_product("Steel Bottle", 499)
    client.post("/api/cart", json={"productId": product["id"], "quantity": 2})
    cart = client.post("/api/cart", json={"productId": product["id"], "quantity": 3}).json()

    assert len(cart["items"]) == 1
    line = cart["items"][0]
    assert line["quantity"] == 5
    assert line["unitPrice"] == 499
    assert line["lineTotal"] == 2495
    assert cart["totalItems"] == 5
    assert cart["totalPrice"] == 2495
    assert database.query("SELECT COUNT(*) AS n FROM cart_items")[0]["n"] == 1


def test_sizes_are_separate_lines_priced_from_the_product(client, make_product):
    product = make_product(
        "Steel Bottle", 499, sizes=[{"name": "500ml", "price": 499}, {"name": "1L", "price": 799}]
    )
    client.post("/api/cart", json={"productId": product["id"]})
    # the client-sent price is ignored
    client.post("/api/cart", json={"productId": product["id"], "selectedSize": {"name": "1L", "price": 1}})
    cart = client.post("/api/cart", json={"productId": product["id"], "selectedSize": {"name": "1L"}}).json()

    lines = {(l["selectedSize"] or {}).get("name"): l for l in cart["items"]}
    assert set(lines) == {None, "1L"}
    assert lines[None]["quantity"] == 1
    assert lines["1L"]["quantity"] == 2
    assert lines["1L"]["unitPrice"] == 799
    assert lines["1L"]["selectedSize"] == {"name": "1L", "price": 799}
    assert cart["totalPrice"] == 499 + 2 * 799


def test_add_rejects_unknown_product_size_and_bad_quantity(client, make_product):
    product = make_product("Steel Bottle", 499, sizes=[{"name": "500ml", "price": 499}])
    assert client.post("/api/cart", json={"productId": "missing"}).status_code == 404
    resp = client.post("/api/cart", json={"productId": product["id"], "selectedSize": {"name": "5L"}})
    assert resp.status_code == 400
    assert client.post("/api/cart", json={"productId": product["id"], "quantity": 0}).status_code == 400
    assert client.get("/api/cart").json()["items"] == []


def test_snapshot_price_survives_product_price_change(client, make_product):
    product = make_product("Photo Frame", 700)
    client.post("/api/cart", json={"productId": product["id"], "quantity": 2})
    client.put(f"/api/products/{product['id']}", json={"price": 900})

    cart = client.get("/api/cart").json()
    line = cart["items"][0]
    assert line["product"]["price"] == 900
    assert line["unitPrice"] == 700
    assert cart["totalPrice"] == 1400


def test_update_sets_quantity_and_zero_or_negative_removes(client, make_product):
    first = make_product("Mug", 250)
    second = make_product("Frame", 600)
    client.post("/api/cart", json={"productId": first["id"]})
    cart = client.post("/api/cart", json={"productId": second["id"]}).json()
    ids = {l["product"]["name"]: l["id"] for l in cart["items"]}

    cart = client.put("/api/cart", json={"itemId": ids["Mug"], "quantity": 40}).json()
    assert {l["product"]["name"]: l["quantity"] for l in cart["items"]} == {"Mug": 40, "Frame": 1}

    cart = client.put("/api/cart", json={"itemId": ids["Mug"], "quantity": 0}).json()
    assert [l["product"]["name"] for l in cart["items"]] == ["Frame"]

    cart = client.put("/api/cart", json={"itemId": ids["Frame"], "quantity": -3}).json()
    assert cart["items"] == []
    assert database.query("SELECT COUNT(*) AS n FROM cart_items")[0]["n"] == 0

    assert client.put("/api/cart", json={"itemId": ids["Frame"], "quantity": 2}).status_code == 404


def test_remove_and_clear(client, make_product):
    first = make_product("Mug", 250)
    second = make_product("Frame", 600)
    client.post("/api/cart", json={"productId": first["id"]})
    cart = client.post("/api/cart", json={"productId": second["id"]}).json()
    mug = next(l for l in cart["items"] if l["product"]["name"] == "Mug")

    assert client.delete("/api/cart", params={"itemId": mug["id"]}).json() == {"removed": True}
    assert client.delete("/api/cart", params={"itemId": mug["id"]}).json() == {"removed": False}
    assert len(client.get("/api/cart").json()["items"]) == 1

    assert client.delete("/api/cart", params={"clearAll": "true"}).json() == {"cleared": 1}
    assert client.get("/api/cart").json()["items"] == []

    assert client.delete("/api/cart").status_code == 400


def test_sessions_cannot_touch_each_other(client, make_product):
    product = make_product("Teddy", 599)
    cart = client.post("/api/cart", json={"productId": product["id"], "quantity": 2}).json()
    item_id = cart["items"][0]["id"]

    other = TestClient(app)
    assert other.get("/api/cart").json()["items"] == []
    assert other.cookies.get(settings.session_cookie_name) != client.cookies.get(settings.session_cookie_name)

    assert other.delete("/api/cart", params={"itemId": item_id}).json() == {"removed": False}
    assert other.put("/api/cart", json={"itemId": item_id, "quantity": 0}).status_code == 404
    assert other.put("/api/cart", json={"itemId": item_id, "quantity": 9}).status_code == 404
    other.delete("/api/cart", params={"clearAll": "true"})

    mine = client.get("/api/cart").json()
    assert len(mine["items"]) == 1
    assert mine["items"][0]["quantity"] == 2


def test_deleted_product_leaves_the_cart(client, make_product):
    product = make_product("Keychain", 199)
    client.post("/api/cart", json={"productId": product["id"]})
    client.delete(f"/api/products/{product['id']}")
    assert client.get("/api/cart").json()["items"] == []
