"""
Order placement, batch checkout and order state changes.

Stock is only ever changed through `decrement_stock` / `restore_stock`, both
single conditional updates on the listing document.
"""
import logging
import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from config import settings
from database import to_object_id
from errors import NotFound, Conflict, Forbidden, ValidationFailed, PaymentVerificationFailed
from services import payment_gateway

logger = logging.getLogger("ORDERS")

NOT_PROVIDED = "Not provided"


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.ACCEPTED, OrderStatus.REJECTED, OrderStatus.CANCELLED},
    OrderStatus.ACCEPTED: {OrderStatus.COMPLETED},
}


def can_transition(current: str, new: str) -> bool:
    try:
        return OrderStatus(new) in ALLOWED_TRANSITIONS.get(OrderStatus(current), set())
    except ValueError:
        return False


# --- Stock ---

def decrement_stock(db, listing_id, qty: int) -> Dict[str, Any]:
    """Takes `qty` units off a listing in one conditional update; returns the listing after."""
    if qty < 1:
        raise ValidationFailed("Quantity must be at least 1")
    oid = to_object_id(listing_id, "Listing")
    listing = db.seller_products.find_one_and_update(
        {"_id": oid, "stock": {"$gte": qty}},
        {"$inc": {"stock": -qty}},
        return_document=ReturnDocument.AFTER,
    )
    if listing is None:
        if db.seller_products.find_one({"_id": oid}, {"_id": 1}) is None:
            raise NotFound("Listing not found")
        raise Conflict("Not enough stock available")
    return listing


def restore_stock(db, listing_id, qty: int):
    db.seller_products.update_one({"_id": to_object_id(listing_id, "Listing")}, {"$inc": {"stock": qty}})


# --- Single item placement ---

def place_order(db, buyer: Dict[str, Any], seller_product_id: str, quantity: int,
                razorpay_order_id: Optional[str] = None) -> Dict[str, Any]:
    listing = decrement_stock(db, seller_product_id, quantity)
    now = datetime.now(timezone.utc)
    order = {
        "user_id": buyer["_id"],
        "seller_product_id": listing["_id"],
        "quantity": quantity,
        "total_price": quantity * listing["price"],
        "payment_status": PaymentStatus.PENDING.value,
        "status": OrderStatus.PENDING.value,
        "is_verified": False,
        "created_at": now,
        "updated_at": now,
    }
    if razorpay_order_id:
        order["razorpay_order_id"] = razorpay_order_id

    try:
        result = db.orders.insert_one(order)
    except PyMongoError:
        restore_stock(db, listing["_id"], quantity)
        logger.exception(f"Order insert failed, stock restored for listing {listing['_id']}")
        raise
    order["_id"] = result.inserted_id
    logger.info(f"Order {order['_id']} placed: {quantity} x listing {listing['_id']}")
    return order


# --- Batch checkout ---

def resolve_delivery(buyer: Dict[str, Any], custom: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    custom = custom or {}
    return {
        "hostel": custom.get("hostel") or buyer.get("hostel_block") or NOT_PROVIDED,
        "room": custom.get("room") or buyer.get("room_number") or NOT_PROVIDED,
    }


def generate_verification_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def _decrement_all(db, lines: List[Dict[str, Any]]):
    done = []
    try:
        for line in lines:
            decrement_stock(db, line["seller_product_id"], line["quantity"])
            done.append(line)
    except (Conflict, NotFound):
        for line in done:
            restore_stock(db, line["seller_product_id"], line["quantity"])
        raise


def complete_checkout(db, buyer: Dict[str, Any], payment: Dict[str, str], lines: List[Dict[str, Any]],
                      custom_delivery: Optional[Dict[str, Any]] = None) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]], Dict[str, str]]:
    """
    Turns a verified payment plus cart lines into one order per line.
    Returns (orders, seller_batches, delivery); notification dispatch is left to the caller.
    """
    if not payment_gateway.verify_signature(
        payment["razorpay_order_id"], payment["razorpay_payment_id"], payment["razorpay_signature"]
    ):
        logger.warning(f"Signature mismatch for gateway order {payment['razorpay_order_id']}")
        raise PaymentVerificationFailed("Payment verification failed")

    if not lines:
        raise ValidationFailed("No items to checkout")

    listing_ids = [to_object_id(line["seller_product_id"], "Listing") for line in lines]
    listings = {l["_id"]: l for l in db.seller_products.find({"_id": {"$in": listing_ids}})}
    missing = [str(i) for i in listing_ids if i not in listings]
    if missing:
        raise NotFound(f"Listing not found: {', '.join(missing)}")

    if settings.CHECKOUT_DECREMENTS_STOCK:
        _decrement_all(db, lines)

    delivery = resolve_delivery(buyer, custom_delivery)
    code = generate_verification_code()
    now = datetime.now(timezone.utc)

    orders = []
    for line, listing_id in zip(lines, listing_ids):
        orders.append({
            "user_id": buyer["_id"],
            "seller_product_id": listing_id,
            "quantity": line["quantity"],
            "total_price": line["price"] * line["quantity"],
            "delivery_hostel": delivery["hostel"],
            "delivery_room": delivery["room"],
            "razorpay_order_id": payment["razorpay_order_id"],
            "razorpay_payment_id": payment["razorpay_payment_id"],
            "razorpay_signature": payment["razorpay_signature"],
            "payment_status": PaymentStatus.PAID.value,
            "status": OrderStatus.PENDING.value,
            "verification_code": code,
            "is_verified": False,
            "created_at": now,
            "updated_at": now,
        })

    try:
        result = db.orders.insert_many(orders)
    except PyMongoError:
        if settings.CHECKOUT_DECREMENTS_STOCK:
            for line in lines:
                restore_stock(db, line["seller_product_id"], line["quantity"])
        logger.exception(f"Checkout {payment['razorpay_order_id']}: order insert failed")
        raise
    for order, oid in zip(orders, result.inserted_ids):
        order["_id"] = oid
    logger.info(f"Checkout {payment['razorpay_order_id']}: {len(orders)} orders for buyer {buyer['_id']}")

    db.carts.delete_one({"user_id": buyer["_id"]})

    return orders, group_by_seller(db, orders, listings), delivery


def group_by_seller(db, orders: List[Dict[str, Any]], listings: Dict[Any, Dict[str, Any]]) -> List[Dict[str, Any]]:
    product_ids = list({l["product_id"] for l in listings.values()})
    seller_ids = list({l["seller_id"] for l in listings.values()})
    products = {p["_id"]: p for p in db.products.find({"_id": {"$in": product_ids}}, {"name": 1})}
    sellers = {s["_id"]: s for s in db.users.find({"_id": {"$in": seller_ids}}, {"name": 1, "email": 1})}

    batches: Dict[Any, Dict[str, Any]] = {}
    for order in orders:
        listing = listings[order["seller_product_id"]]
        seller_id = listing["seller_id"]
        batch = batches.get(seller_id)
        if batch is None:
            seller = sellers.get(seller_id, {})
            batch = batches[seller_id] = {
                "seller_id": seller_id,
                "seller_name": seller.get("name"),
                "seller_email": seller.get("email"),
                "items": [],
                "total_amount": 0,
            }
        product = products.get(listing["product_id"], {})
        batch["items"].append({
            "order_id": order["_id"],
            "product_name": product.get("name", "Item"),
            "quantity": order["quantity"],
            "price": order["total_price"],
        })
        batch["total_amount"] += order["total_price"]
    return list(batches.values())


# --- State changes ---

def get_order_for_seller(db, order_id, seller: Dict[str, Any]) -> Dict[str, Any]:
    order = db.orders.find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    listing = db.seller_products.find_one({"_id": order.get("seller_product_id")}, {"seller_id": 1})
    if not listing or not listing.get("seller_id"):
        raise ValidationFailed("Invalid order data")
    if listing["seller_id"] != seller["_id"]:
        raise Forbidden("Not authorized to update this order")
    return order


def transition_order(db, order: Dict[str, Any], new_status: str, extra: Optional[Dict[str, Any]] = None,
                     verified: bool = False) -> Dict[str, Any]:
    valid = {s.value for s in OrderStatus}
    if new_status not in valid:
        raise ValidationFailed(f"Invalid status '{new_status}'")

    current = order.get("status", OrderStatus.PENDING.value)
    if not can_transition(current, new_status):
        raise Conflict(f"Cannot change order status from {current} to {new_status}")

    if (new_status == OrderStatus.COMPLETED.value and order.get("verification_code")
            and not order.get("is_verified") and not verified):
        raise Conflict("Order requires verification code before completion")

    changes = {"status": new_status, "updated_at": datetime.now(timezone.utc)}
    changes.update(extra or {})
    updated = db.orders.find_one_and_update(
        {"_id": order["_id"], "status": current},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise Conflict("Order was modified by another request")
    logger.info(f"Order {order['_id']}: {current} -> {new_status}")
    return updated


def verify_completion(db, order: Dict[str, Any], code: str) -> Dict[str, Any]:
    if not order.get("verification_code"):
        raise ValidationFailed("This order doesn't require verification")
    if not secrets.compare_digest(str(order["verification_code"]).encode(), (code or "").encode()):
        raise ValidationFailed("Invalid verification code")
    return transition_order(db, order, OrderStatus.COMPLETED.value, extra={"is_verified": True}, verified=True)


# --- Read helpers ---

def populate_orders(db, orders: List[Dict[str, Any]], with_buyer: bool = False) -> List[Dict[str, Any]]:
    """Attaches listing, product and seller summaries (and optionally the buyer) to each order."""
    listing_ids = list({o["seller_product_id"] for o in orders if o.get("seller_product_id")})
    listings = {l["_id"]: l for l in db.seller_products.find({"_id": {"$in": listing_ids}})}
    product_ids = list({l["product_id"] for l in listings.values()})
    products = {p["_id"]: p for p in db.products.find({"_id": {"$in": product_ids}}, {"name": 1, "category": 1, "image": 1})}

    user_ids = {l["seller_id"] for l in listings.values()}
    if with_buyer:
        user_ids |= {o["user_id"] for o in orders}
    users = {
        u["_id"]: u for u in db.users.find(
            {"_id": {"$in": list(user_ids)}},
            {"name": 1, "email": 1, "shop_name": 1, "hostel_block": 1, "room_number": 1},
        )
    }

    populated = []
    for order in orders:
        order = dict(order)
        listing = listings.get(order.get("seller_product_id"))
        if listing:
            listing = dict(listing)
            listing["product"] = products.get(listing["product_id"])
            listing["seller"] = users.get(listing["seller_id"])
        order["seller_product"] = listing
        if with_buyer:
            buyer = users.get(order["user_id"])
            order["buyer"] = {"_id": buyer["_id"], "name": buyer.get("name"), "email": buyer.get("email")} if buyer else None
        populated.append(order)
    return populated
