import pytest

from conftest import auth, make_listing, make_product, make_user
from services import orders_service
from errors import Conflict, NotFound, ValidationFailed


@pytest.fixture
def listing(db, seller):
    return make_listing(db, make_product(db), seller, price=50, stock=10)


def _order(client, buyer, listing, quantity):
    return client.post("/api/orders", headers=auth(buyer),
                       json={"seller_product_id": str(listing["_id"]), "quantity": quantity})


def test_place_order_decrements_stock(client, db, buyer, listing):
    resp = _order(client, buyer, listing, 3)
    assert resp.status_code == 201
    order = resp.json()
    assert order["total_price"] == 150
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert db.seller_products.find_one({"_id": listing["_id"]})["stock"] == 7


def test_over_stock_conflicts_without_order(client, db, buyer, listing):
    resp = _order(client, buyer, listing, 11)
    assert resp.status_code == 409
    assert resp.json()["message"] == "Not enough stock available"
    assert db.orders.count_documents({}) == 0
    assert db.seller_products.find_one({"_id": listing["_id"]})["stock"] == 10


def test_exact_stock_goes_to_zero(client, db, buyer, listing):
    assert _order(client, buyer, listing, 10).status_code == 201
    assert db.seller_products.find_one({"_id": listing["_id"]})["stock"] == 0
    assert _order(client, buyer, listing, 1).status_code == 409


def test_unknown_listing(client, buyer):
    resp = client.post("/api/orders", headers=auth(buyer),
                       json={"seller_product_id": "64b000000000000000000000", "quantity": 1})
    assert resp.status_code == 404


def test_seller_cannot_place_orders(client, seller, listing):
    assert _order(client, seller, listing, 1).status_code == 403


def test_decrement_stock_rules(db, listing):
    with pytest.raises(ValidationFailed):
        orders_service.decrement_stock(db, listing["_id"], 0)
    with pytest.raises(Conflict):
        orders_service.decrement_stock(db, listing["_id"], 11)
    with pytest.raises(NotFound):
        orders_service.decrement_stock(db, "64b000000000000000000000", 1)
    after = orders_service.decrement_stock(db, listing["_id"], 4)
    assert after["stock"] == 6


def test_transition_table():
    assert orders_service.can_transition("pending", "accepted")
    assert orders_service.can_transition("pending", "cancelled")
    assert orders_service.can_transition("accepted", "completed")
    assert not orders_service.can_transition("pending", "completed")
    assert not orders_service.can_transition("rejected", "accepted")
    assert not orders_service.can_transition("completed", "pending")
    assert not orders_service.can_transition("pending", "shipped")


def test_seller_accepts_then_completes(client, db, buyer, seller, listing, sent_mail):
    order_id = _order(client, buyer, listing, 1).json()["id"]

    resp = client.patch(f"/api/orders/{order_id}", headers=auth(seller), json={"status": "accepted"})
    assert resp.status_code == 200
    assert resp.json()["order"]["status"] == "accepted"
    assert sent_mail[-1]["to"] == buyer["email"]

    resp = client.patch(f"/api/orders/{order_id}", headers=auth(seller), json={"status": "completed"})
    assert resp.status_code == 200


def test_invalid_transition_conflicts(client, buyer, seller, listing, sent_mail):
    order_id = _order(client, buyer, listing, 1).json()["id"]
    client.patch(f"/api/orders/{order_id}", headers=auth(seller), json={"status": "rejected"})
    resp = client.patch(f"/api/orders/{order_id}", headers=auth(seller), json={"status": "accepted"})
    assert resp.status_code == 409


def test_unknown_status_rejected(client, buyer, seller, listing):
    order_id = _order(client, buyer, listing, 1).json()["id"]
    resp = client.patch(f"/api/orders/{order_id}", headers=auth(seller), json={"status": "shipped"})
    assert resp.status_code == 400


def test_other_seller_cannot_update(client, db, buyer, listing):
    order_id = _order(client, buyer, listing, 1).json()["id"]
    intruder = make_user(db, "seller")
    resp = client.patch(f"/api/orders/{order_id}", headers=auth(intruder), json={"status": "accepted"})
    assert resp.status_code == 403


def test_order_lookups(client, db, buyer, seller, listing):
    order_id = _order(client, buyer, listing, 2).json()["id"]

    mine = client.get("/api/orders/my-orders", headers=auth(buyer)).json()
    assert [o["id"] for o in mine] == [order_id]
    assert mine[0]["seller_product"]["product"]["name"] == "Maggi"

    incoming = client.get("/api/orders/seller-orders", headers=auth(seller)).json()
    assert incoming[0]["buyer"]["name"] == "Asha"

    other_buyer = make_user(db, "user")
    assert client.get(f"/api/orders/{order_id}", headers=auth(other_buyer)).status_code == 403
    assert client.get(f"/api/orders/{order_id}", headers=auth(buyer)).status_code == 200


def test_public_recent_only_paid(client, db, buyer, listing):
    _order(client, buyer, listing, 1)
    assert client.get("/api/orders/public/recent").json() == []
    db.orders.update_many({}, {"$set": {"payment_status": "paid"}})
    recent = client.get("/api/orders/public/recent").json()
    assert recent[0]["product_name"] == "Maggi"
    assert "user_id" not in recent[0]


def test_admin_order_transition(client, buyer, admin, listing, sent_mail):
    order_id = _order(client, buyer, listing, 1).json()["id"]
    resp = client.patch(f"/api/admin/orders/{order_id}/status", headers=auth(admin), json={"status": "cancelled"})
    assert resp.status_code == 200
    resp = client.patch(f"/api/admin/orders/{order_id}/status", headers=auth(admin), json={"status": "accepted"})
    assert resp.status_code == 409


def test_verification_code_must_match_exactly(db, buyer, listing):
    order = orders_service.place_order(db, buyer, listing["_id"], 1)
    db.orders.update_one({"_id": order["_id"]}, {"$set": {"verification_code": "482913", "status": "accepted"}})
    order = db.orders.find_one({"_id": order["_id"]})

    for wrong in ("482914", "48291", "४८२९१३", ""):
        with pytest.raises(ValidationFailed):
            orders_service.verify_completion(db, order, wrong)
    done = orders_service.verify_completion(db, order, "482913")
    assert done["status"] == "completed" and done["is_verified"] is True
