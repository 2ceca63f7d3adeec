from typing import Dict, Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from auth import utils as auth_utils
from database import get_db, serialize_doc, to_object_id
from errors import NotFound, Forbidden
from services import orders_service, notifications_service

router = APIRouter(prefix="/api/orders", tags=["Orders"])


# --- Pydantic Models ---
class OrderCreate(BaseModel):
    seller_product_id: str
    quantity: int = Field(..., ge=1)
    razorpay_order_id: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: str


class VerificationRequest(BaseModel):
    verification_code: str


def _schedule_status_email(db, background_tasks: BackgroundTasks, order: Dict[str, Any]):
    buyer = db.users.find_one({"_id": order["user_id"]}, {"name": 1, "email": 1})
    background_tasks.add_task(notifications_service.dispatch_status_email, buyer, order["status"], str(order["_id"]))


# --- API Endpoints ---

@router.post("", status_code=status.HTTP_201_CREATED)
async def place_order(
    body: OrderCreate,
    buyer: Dict[str, Any] = Depends(auth_utils.buyer_only),
    db=Depends(get_db),
):
    order = await run_in_threadpool(
        orders_service.place_order, db, buyer, body.seller_product_id, body.quantity, body.razorpay_order_id
    )
    return serialize_doc(order)


@router.get("")
def all_orders(admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    orders = list(db.orders.find().sort("created_at", -1))
    return serialize_doc(orders_service.populate_orders(db, orders, with_buyer=True))


@router.get("/my-orders")
def my_orders(buyer: Dict[str, Any] = Depends(auth_utils.buyer_only), db=Depends(get_db)):
    orders = list(db.orders.find({"user_id": buyer["_id"]}).sort("created_at", -1))
    return serialize_doc(orders_service.populate_orders(db, orders))


@router.get("/seller-orders")
def seller_orders(seller: Dict[str, Any] = Depends(auth_utils.seller_only), db=Depends(get_db)):
    listing_ids = [l["_id"] for l in db.seller_products.find({"seller_id": seller["_id"]}, {"_id": 1})]
    orders = list(db.orders.find({"seller_product_id": {"$in": listing_ids}}).sort("created_at", -1))
    return serialize_doc(orders_service.populate_orders(db, orders, with_buyer=True))


@router.get("/public/recent")
def recent_orders(db=Depends(get_db)):
    orders = list(db.orders.find({"payment_status": "paid"}).sort("created_at", -1).limit(10))
    recent = []
    for order in orders_service.populate_orders(db, orders):
        listing = order.get("seller_product") or {}
        product = listing.get("product") or {}
        seller = listing.get("seller") or {}
        recent.append({
            "id": str(order["_id"]),
            "product_name": product.get("name"),
            "category": product.get("category"),
            "shop_name": seller.get("shop_name"),
            "hostel_block": seller.get("hostel_block"),
            "quantity": order["quantity"],
            "created_at": order.get("created_at"),
        })
    return serialize_doc(recent)


@router.get("/{order_id}")
def get_order(order_id: str, buyer: Dict[str, Any] = Depends(auth_utils.buyer_only), db=Depends(get_db)):
    order = db.orders.find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    if order["user_id"] != buyer["_id"]:
        raise Forbidden("Access denied")
    return serialize_doc(orders_service.populate_orders(db, [order])[0])


@router.post("/{order_id}/verify-completion")
async def verify_completion(
    order_id: str,
    body: VerificationRequest,
    background_tasks: BackgroundTasks,
    seller: Dict[str, Any] = Depends(auth_utils.seller_only),
    db=Depends(get_db),
):
    order = await run_in_threadpool(orders_service.get_order_for_seller, db, order_id, seller)
    order = await run_in_threadpool(orders_service.verify_completion, db, order, body.verification_code)
    _schedule_status_email(db, background_tasks, order)
    return {"message": "Order completed successfully", "order": serialize_doc(order)}


@router.patch("/{order_id}")
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    background_tasks: BackgroundTasks,
    seller: Dict[str, Any] = Depends(auth_utils.seller_only),
    db=Depends(get_db),
):
    order = await run_in_threadpool(orders_service.get_order_for_seller, db, order_id, seller)
    order = await run_in_threadpool(orders_service.transition_order, db, order, body.status)
    _schedule_status_email(db, background_tasks, order)
    return {"message": "Order status updated", "order": serialize_doc(order)}
