import hashlib
import hmac

import httpx
import pytest

from conftest import GATEWAY_SECRET, auth, make_listing, make_product, sign
from config import settings
from errors import Internal
from services import payment_gateway


def test_signature_is_hmac_of_order_and_payment():
    expected = hmac.new(GATEWAY_SECRET.encode(), b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert payment_gateway.expected_signature("order_1", "pay_1", GATEWAY_SECRET) == expected
    assert payment_gateway.verify_signature("order_1", "pay_1", expected)


def test_signature_mismatch():
    good = sign("order_1", "pay_1")
    assert not payment_gateway.verify_signature("order_1", "pay_1", good[:-1] + ("a" if good[-1] != "a" else "b"))
    assert not payment_gateway.verify_signature("order_1", "pay_2", good)
    assert not payment_gateway.verify_signature("order_1", "pay_1", "")


def test_missing_secret_is_internal(monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_SECRET", "")
    with pytest.raises(Internal):
        payment_gateway.verify_signature("order_1", "pay_1", "whatever")


def test_mock_gateway_order_without_keys(client, buyer):
    resp = client.post("/api/payment/create-order", headers=auth(buyer), json={"amount": 129.5})
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"].startswith("order_")
    assert body["amount"] == 12950
    assert body["currency"] == "INR"


def test_gateway_order_uses_razorpay_api(monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", "rzp_test_key")
    calls = {}

    def fake_post(url, auth=None, json=None, timeout=None):
        calls.update(url=url, auth=auth, json=json)
        return httpx.Response(200, json={"id": "order_live", "amount": json["amount"], "currency": json["currency"]})

    monkeypatch.setattr(payment_gateway.httpx, "post", fake_post)
    order = payment_gateway.create_gateway_order(5000)
    assert order["id"] == "order_live"
    assert calls["url"].endswith("/orders")
    assert calls["auth"] == ("rzp_test_key", GATEWAY_SECRET)


def test_gateway_rejection_is_bad_gateway(client, buyer, monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", "rzp_test_key")
    monkeypatch.setattr(payment_gateway.httpx, "post",
                        lambda *a, **kw: httpx.Response(401, json={"error": "bad key"}))
    resp = client.post("/api/payment/create-order", headers=auth(buyer), json={"amount": 10})
    assert resp.status_code == 502


def test_verify_marks_pending_orders_paid(client, db, buyer, seller):
    listing = make_listing(db, make_product(db), seller)
    client.post("/api/orders", headers=auth(buyer),
                json={"seller_product_id": str(listing["_id"]), "quantity": 1, "razorpay_order_id": "order_9"})

    resp = client.post("/api/payment/verify", headers=auth(buyer), json={
        "razorpay_order_id": "order_9", "razorpay_payment_id": "pay_9", "razorpay_signature": sign("order_9", "pay_9"),
    })
    assert resp.json() == {"ok": True, "orders_updated": 1}
    assert db.orders.find_one({"razorpay_order_id": "order_9"})["payment_status"] == "paid"


def test_verify_bad_signature_marks_failed(client, db, buyer, seller):
    listing = make_listing(db, make_product(db), seller)
    client.post("/api/orders", headers=auth(buyer),
                json={"seller_product_id": str(listing["_id"]), "quantity": 1, "razorpay_order_id": "order_9"})

    resp = client.post("/api/payment/verify", headers=auth(buyer), json={
        "razorpay_order_id": "order_9", "razorpay_payment_id": "pay_9", "razorpay_signature": "forged",
    })
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid signature"
    assert db.orders.find_one({"razorpay_order_id": "order_9"})["payment_status"] == "failed"


def test_verification_code_hand_off(client, db, buyer, seller, sent_mail):
    listing = make_listing(db, make_product(db), seller)
    orders = client.post("/api/payment/complete", headers=auth(buyer), json={
        "razorpay_order_id": "order_h", "razorpay_payment_id": "pay_h",
        "razorpay_signature": sign("order_h", "pay_h"),
        "items": [{"seller_product_id": str(listing["_id"]), "quantity": 1, "price": 50}],
    }).json()["orders"]
    order_id, code = orders[0]["id"], orders[0]["verification_code"]

    # not accepted yet
    resp = client.post(f"/api/orders/{order_id}/verify-completion", headers=auth(seller),
                       json={"verification_code": code})
    assert resp.status_code == 409

    client.patch(f"/api/orders/{order_id}", headers=auth(seller), json={"status": "accepted"})
    # the code is the only way to complete these orders
    assert client.patch(f"/api/orders/{order_id}", headers=auth(seller),
                        json={"status": "completed"}).status_code == 409

    wrong = "000000" if code != "000000" else "111111"
    resp = client.post(f"/api/orders/{order_id}/verify-completion", headers=auth(seller),
                       json={"verification_code": wrong})
    assert resp.status_code == 400

    resp = client.post(f"/api/orders/{order_id}/verify-completion", headers=auth(seller),
                       json={"verification_code": code})
    assert resp.status_code == 200
    order = resp.json()["order"]
    assert order["status"] == "completed" and order["is_verified"] is True
    assert sent_mail[-1]["to"] == buyer["email"]


def test_status_endpoint(client, monkeypatch):
    from routers import status as status_router
    from pymongo.errors import ServerSelectionTimeoutError

    def down():
        raise ServerSelectionTimeoutError("no server")

    monkeypatch.setattr(status_router, "db_ping", down)
    body = client.get("/status").json()
    assert body["backend_service"]["database"] == "Unreachable"
    assert body["backend_service"]["status"] == "Degraded"

    monkeypatch.setattr(status_router, "db_ping", lambda: None)
    assert client.get("/status").json()["backend_service"]["database"] == "Connected"
    assert client.get("/").status_code == 200
