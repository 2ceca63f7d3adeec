import logging
from typing import Dict, Any, Literal

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel

from auth import utils as auth_utils
from database import get_db, serialize_doc, to_object_id
from errors import NotFound
from services import orders_service, notifications_service

logger = logging.getLogger("MODERATION")

router = APIRouter(prefix="/api/admin", tags=["Admin"])


class SellerVerification(BaseModel):
    status: Literal["approved", "rejected"]


class AdminOrderStatus(BaseModel):
    status: str


def _get_seller(db, seller_id: str) -> Dict[str, Any]:
    seller = db.users.find_one({"_id": to_object_id(seller_id, "Seller")})
    if not seller or seller.get("role") != "seller":
        raise NotFound("Seller not found")
    return seller


@router.get("/users")
def list_users(admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    return serialize_doc(list(db.users.find({"role": "user"})))


@router.get("/sellers")
def list_sellers(admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    return serialize_doc(list(db.users.find({"role": "seller"})))


@router.get("/seller/{seller_id}")
def seller_profile(seller_id: str, admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    seller = _get_seller(db, seller_id)
    listings = list(db.seller_products.find({"seller_id": seller["_id"]}))
    products = {
        p["_id"]: p for p in db.products.find({"_id": {"$in": [l["product_id"] for l in listings]}}, {"name": 1, "category": 1, "image": 1})
    }
    for listing in listings:
        listing["product"] = products.get(listing["product_id"])
    seller["listings"] = listings
    return serialize_doc(seller)


@router.delete("/user/{user_id}")
def delete_user(user_id: str, admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    result = db.users.delete_one({"_id": to_object_id(user_id, "User")})
    if result.deleted_count == 0:
        raise NotFound("User not found")
    return {"message": "User deleted"}


@router.patch("/seller/{seller_id}/ban")
def toggle_ban(seller_id: str, admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    seller = _get_seller(db, seller_id)
    banned = not seller.get("banned", False)
    db.users.update_one({"_id": seller["_id"]}, {"$set": {"banned": banned}})
    logger.info(f"Seller {seller['_id']} {'banned' if banned else 'unbanned'} by {admin['email']}")
    return {"message": "Seller banned" if banned else "Seller unbanned", "banned": banned}


@router.patch("/seller/{seller_id}/verify")
def verify_seller(
    seller_id: str,
    body: SellerVerification,
    admin: Dict[str, Any] = Depends(auth_utils.admin_only),
    db=Depends(get_db),
):
    seller = _get_seller(db, seller_id)
    db.users.update_one({"_id": seller["_id"]}, {"$set": {"seller_status": body.status}})
    notifications_service.create_notification(db, seller["_id"], f"Your seller account has been {body.status}.")
    return {
        "message": f"Seller has been {body.status}",
        "sellerId": str(seller["_id"]),
        "sellerStatus": body.status,
    }


@router.patch("/orders/{order_id}/status")
def set_order_status(
    order_id: str,
    body: AdminOrderStatus,
    background_tasks: BackgroundTasks,
    admin: Dict[str, Any] = Depends(auth_utils.admin_only),
    db=Depends(get_db),
):
    order = db.orders.find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    order = orders_service.transition_order(db, order, body.status)
    buyer = db.users.find_one({"_id": order["user_id"]}, {"name": 1, "email": 1})
    background_tasks.add_task(notifications_service.dispatch_status_email, buyer, order["status"], str(order["_id"]))
    return {"message": "Order status updated", "order": serialize_doc(order)}
