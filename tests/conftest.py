import os
import tempfile

# settings are read once at import time
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["RAZORPAY_KEY_ID"] = ""
os.environ["RAZORPAY_KEY_SECRET"] = "test_razorpay_secret"
os.environ["SMTP_HOST"] = ""
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="cravings-uploads-")
os.environ["CHECKOUT_DECREMENTS_STOCK"] = "false"

from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from main import app
from auth.utils import get_password_hash, token_for_user
from database import get_db
from services import email_service, payment_gateway

PASSWORD = "secret123"
GATEWAY_SECRET = "test_razorpay_secret"


@pytest.fixture
def db():
    return mongomock.MongoClient().cravings_test


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def sent_mail(monkeypatch):
    """Captures every outgoing mail instead of talking to SMTP."""
    outbox = []

    def fake_send(to, subject, html):
        outbox.append({"to": to, "subject": subject, "html": html})
        return True

    monkeypatch.setattr(email_service, "send_email", fake_send)
    return outbox


_counter = {"n": 0}


def make_user(db, role="user", **fields):
    _counter["n"] += 1
    n = _counter["n"]
    user = {
        "name": fields.pop("name", f"{role.title()} {n}"),
        "email": fields.pop("email", f"{role}{n}@campus.edu"),
        "password": get_password_hash(PASSWORD),
        "role": role,
        "banned": False,
        "hostel_block": "A",
        "room_number": str(100 + n),
        "created_at": datetime.now(timezone.utc),
    }
    if role == "seller":
        user.update({"shop_name": f"Shop {n}", "upi_id": f"shop{n}@upi", "seller_status": "approved"})
    user.update(fields)
    user["_id"] = db.users.insert_one(user).inserted_id
    return user


def auth(user):
    return {"Authorization": f"Bearer {token_for_user(user)}"}


def make_product(db, name="Maggi", category="Instant Food"):
    product = {"name": name, "category": category, "description": "", "image": None,
               "created_at": datetime.now(timezone.utc)}
    product["_id"] = db.products.insert_one(product).inserted_id
    return product


def make_listing(db, product, seller, price=50, stock=10):
    listing = {"product_id": product["_id"], "seller_id": seller["_id"], "price": price, "stock": stock,
               "hostel": seller.get("hostel_block"), "created_at": datetime.now(timezone.utc)}
    listing["_id"] = db.seller_products.insert_one(listing).inserted_id
    return listing


def sign(order_id, payment_id):
    return payment_gateway.expected_signature(order_id, payment_id, GATEWAY_SECRET)


@pytest.fixture
def buyer(db):
    return make_user(db, "user", name="Asha")


@pytest.fixture
def seller(db):
    return make_user(db, "seller", name="Ravi")


@pytest.fixture
def admin(db):
    return make_user(db, "admin", name="Warden")
