import logging
from typing import Dict, Any, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from auth import utils as auth_utils
from database import get_db, serialize_doc
from errors import PaymentVerificationFailed
from services import orders_service, notifications_service, payment_gateway

logger = logging.getLogger("PAYMENT")

router = APIRouter(prefix="/api/payment", tags=["Payments"])


class CreateOrderRequest(BaseModel):
    amount: float = Field(..., gt=0, description="Amount in rupees")


class PaymentConfirmation(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class CheckoutLine(BaseModel):
    seller_product_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class DeliveryOverride(BaseModel):
    hostel: Optional[str] = None
    room: Optional[str] = None


class CheckoutCompletion(PaymentConfirmation):
    items: List[CheckoutLine]
    custom_delivery: Optional[DeliveryOverride] = None


@router.post("/create-order")
async def create_payment_order(
    body: CreateOrderRequest,
    current_user: Dict[str, Any] = Depends(auth_utils.get_current_user),
):
    # Razorpay wants the smallest currency unit
    amount_paise = int(round(body.amount * 100))
    return await run_in_threadpool(payment_gateway.create_gateway_order, amount_paise)


@router.post("/verify")
def verify_payment(
    body: PaymentConfirmation,
    current_user: Dict[str, Any] = Depends(auth_utils.get_current_user),
    db=Depends(get_db),
):
    is_valid = payment_gateway.verify_signature(body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature)
    payment_status = "paid" if is_valid else "failed"
    result = db.orders.update_many(
        {"razorpay_order_id": body.razorpay_order_id, "user_id": current_user["_id"], "payment_status": "pending"},
        {"$set": {
            "payment_status": payment_status,
            "razorpay_payment_id": body.razorpay_payment_id,
            "razorpay_signature": body.razorpay_signature,
        }},
    )
    if not is_valid:
        logger.warning(f"Invalid signature for gateway order {body.razorpay_order_id}")
        raise PaymentVerificationFailed("Invalid signature")
    return {"ok": True, "orders_updated": result.modified_count}


@router.post("/complete", status_code=status.HTTP_201_CREATED)
async def complete_payment(
    body: CheckoutCompletion,
    background_tasks: BackgroundTasks,
    current_user: Dict[str, Any] = Depends(auth_utils.get_current_user),
    db=Depends(get_db),
):
    orders, batches, delivery = await run_in_threadpool(
        orders_service.complete_checkout,
        db,
        current_user,
        body.model_dump(include={"razorpay_order_id", "razorpay_payment_id", "razorpay_signature"}),
        [line.model_dump() for line in body.items],
        body.custom_delivery.model_dump() if body.custom_delivery else None,
    )
    # orders are committed at this point; seller notices go out after the response
    background_tasks.add_task(
        notifications_service.dispatch_checkout_notifications, db, batches, current_user.get("name"), delivery
    )
    return {"message": "Payment verified and orders placed", "orders": serialize_doc(orders)}
