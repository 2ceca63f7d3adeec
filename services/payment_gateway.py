import hashlib
import hmac
import logging
import time

import httpx
from fastapi import HTTPException
from bson import ObjectId

from config import settings
from errors import Internal

logger = logging.getLogger("PAYMENT")


def expected_signature(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    return hmac.new(
        secret.encode(),
        f"{gateway_order_id}|{gateway_payment_id}".encode(),
        hashlib.sha256,
    ).hexdigest()


def verify_signature(gateway_order_id: str, gateway_payment_id: str, signature: str, secret: str | None = None) -> bool:
    secret = secret or settings.RAZORPAY_KEY_SECRET
    if not secret:
        raise Internal("Payment gateway is not configured")
    generated = expected_signature(gateway_order_id, gateway_payment_id, secret)
    return hmac.compare_digest(generated.encode(), (signature or "").encode())


def create_gateway_order(amount_minor: int, currency: str | None = None) -> dict:
    """
    Creates an order handle on Razorpay. Without keys (local dev) a mock
    handle shaped like Razorpay's response is returned instead.
    """
    currency = currency or settings.CURRENCY
    payload = {"amount": amount_minor, "currency": currency, "receipt": f"receipt_{int(time.time() * 1000)}"}

    if not (settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET):
        logger.warning("Razorpay keys not set, returning mock order")
        return {"id": f"order_{ObjectId()}", "amount": amount_minor, "currency": currency, "status": "created"}

    try:
        resp = httpx.post(
            f"{settings.RAZORPAY_API_URL}/orders",
            auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET),
            json=payload,
            timeout=10.0,
        )
    except httpx.RequestError as e:
        logger.error(f"Razorpay unreachable: {e}")
        raise HTTPException(status_code=502, detail="Payment gateway unreachable")

    if resp.status_code >= 300:
        logger.error(f"Razorpay order creation failed ({resp.status_code}): {resp.text}")
        raise HTTPException(status_code=502, detail="Payment gateway rejected the order")
    return resp.json()
