import pytest

from conftest import auth, make_listing, make_product
from routers.cart import calculate_total


@pytest.fixture
def listing(db, seller):
    return make_listing(db, make_product(db), seller, price=40, stock=5)


def _add(client, buyer, listing, quantity=1, price=None):
    return client.post("/api/cart/add", headers=auth(buyer), json={
        "product_id": str(listing["product_id"]),
        "seller_product_id": str(listing["_id"]),
        "name": "Maggi",
        "price": listing["price"] if price is None else price,
        "quantity": quantity,
    })


def test_calculate_total():
    assert calculate_total([{"price": 10, "quantity": 2}, {"price": 5.5, "quantity": 1}]) == 25.5
    assert calculate_total([]) == 0


def test_empty_cart(client, buyer):
    resp = client.get("/api/cart", headers=auth(buyer))
    assert resp.json() == {"items": [], "total_price": 0}


def test_add_same_listing_merges_quantity(client, buyer, listing):
    _add(client, buyer, listing, quantity=2)
    resp = _add(client, buyer, listing, quantity=3)
    cart = resp.json()
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 5
    assert cart["total_price"] == 200
    assert cart["items"][0]["seller"]["name"] == "Ravi"


def test_price_snapshot_survives_listing_change(client, db, buyer, listing):
    _add(client, buyer, listing, quantity=1)
    db.seller_products.update_one({"_id": listing["_id"]}, {"$set": {"price": 99}})
    cart = client.get("/api/cart", headers=auth(buyer)).json()
    assert cart["items"][0]["price"] == 40
    assert cart["total_price"] == 40


def test_update_and_remove_keep_total_in_sync(client, db, buyer, seller, listing):
    other = make_listing(db, make_product(db, "Coke", "Beverages"), seller, price=20, stock=5)
    _add(client, buyer, listing, quantity=1)
    _add(client, buyer, other, quantity=2)

    resp = client.put("/api/cart/update", headers=auth(buyer),
                      json={"seller_product_id": str(listing["_id"]), "quantity": 3})
    assert resp.json()["total_price"] == 3 * 40 + 2 * 20

    resp = client.delete(f"/api/cart/remove/{other['_id']}", headers=auth(buyer))
    assert resp.json()["total_price"] == 120
    assert len(resp.json()["items"]) == 1


def test_update_unknown_item(client, buyer, listing, seller, db):
    _add(client, buyer, listing)
    stranger = make_listing(db, make_product(db, "Chips", "Snacks"), seller)
    resp = client.put("/api/cart/update", headers=auth(buyer),
                      json={"seller_product_id": str(stranger["_id"]), "quantity": 1})
    assert resp.status_code == 404


def test_update_without_cart(client, buyer, listing):
    resp = client.put("/api/cart/update", headers=auth(buyer),
                      json={"seller_product_id": str(listing["_id"]), "quantity": 1})
    assert resp.status_code == 404


def test_zero_quantity_rejected(client, buyer, listing):
    assert _add(client, buyer, listing, quantity=0).status_code == 400


def test_clear(client, db, buyer, listing):
    _add(client, buyer, listing)
    assert client.delete("/api/cart/clear", headers=auth(buyer)).status_code == 200
    assert db.carts.find_one({"user_id": buyer["_id"]}) is None
