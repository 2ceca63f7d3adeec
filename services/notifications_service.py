import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from services import email_service

logger = logging.getLogger("NOTIFICATIONS")

NOTIFICATION_TYPES = ("order", "info", "admin")


def create_notification(db, user_id, message: str, kind: str = "info", order_id=None) -> Dict[str, Any]:
    doc = {
        "user_id": user_id,
        "message": message,
        "type": kind if kind in NOTIFICATION_TYPES else "info",
        "read": False,
        "created_at": datetime.now(timezone.utc),
    }
    if order_id is not None:
        doc["order_id"] = order_id
    result = db.notifications.insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def notify_admins(db, message: str) -> int:
    admins = list(db.users.find({"role": "admin"}, {"_id": 1}))
    for admin in admins:
        create_notification(db, admin["_id"], message, kind="admin")
    return len(admins)


def seller_batch_message(batch: Dict[str, Any]) -> str:
    items = ", ".join(f"{item['product_name']} x{item['quantity']}" for item in batch["items"])
    return f"New order received: {items}. Total: ₹{batch['total_amount']}"


def dispatch_checkout_notifications(db, batches: List[Dict[str, Any]], buyer_name: Optional[str], delivery: Dict[str, str]):
    """
    Runs after the checkout response. One in-app notification and one email per
    seller; a failure for one seller never affects another or the orders.
    """
    for batch in batches:
        first_order_id = batch["items"][0]["order_id"] if batch["items"] else None
        try:
            create_notification(db, batch["seller_id"], seller_batch_message(batch), kind="order", order_id=first_order_id)
        except Exception:
            logger.exception(f"Could not store notification for seller {batch['seller_id']}")

        if not batch.get("seller_email"):
            continue
        try:
            email_service.send_order_notification_email(
                batch["seller_email"],
                batch.get("seller_name") or "Seller",
                {
                    "items": batch["items"],
                    "total_amount": batch["total_amount"],
                    "buyer_name": buyer_name,
                    "delivery_hostel": delivery["hostel"],
                    "delivery_room": delivery["room"],
                },
            )
        except Exception:
            logger.exception(f"Order email to seller {batch['seller_id']} failed")


def dispatch_status_email(buyer: Optional[Dict[str, Any]], status: str, order_id: str):
    if not buyer or not buyer.get("email"):
        return
    try:
        email_service.send_order_status_email(buyer["email"], buyer.get("name") or "Customer", status, order_id)
    except Exception:
        logger.exception(f"Status email for order {order_id} failed")
