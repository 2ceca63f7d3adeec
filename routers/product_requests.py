import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, Form, File, Query, UploadFile, status
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from auth import utils as auth_utils
from database import get_db, serialize_doc, to_object_id
from errors import NotFound, Conflict, ValidationFailed
from routers.products import CATEGORIES
from services import notifications_service
from services.storage import store_upload

logger = logging.getLogger("MODERATION")

router = APIRouter(prefix="/api/product-requests", tags=["Product Requests"])


class ModerationNote(BaseModel):
    admin_note: Optional[str] = None


def _claim_pending(db, request_id, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Moves a pending request to its decision in one conditional update; only one decision can win."""
    oid = to_object_id(request_id, "Product request")
    product_request = db.product_requests.find_one_and_update(
        {"_id": oid, "status": "pending"},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if product_request is None:
        if db.product_requests.find_one({"_id": oid}, {"_id": 1}) is None:
            raise NotFound("Product request not found")
        raise Conflict("Request already processed")
    return product_request


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_request(
    product_name: str = Form(...),
    category: str = Form(...),
    description: str = Form(...),
    suggested_price: float = Form(..., ge=0),
    stock: int = Form(..., ge=0),
    image: Optional[UploadFile] = File(None),
    seller: Dict[str, Any] = Depends(auth_utils.seller_only),
    db=Depends(get_db),
):
    if category not in CATEGORIES:
        raise ValidationFailed(f"Category must be one of: {', '.join(CATEGORIES)}")
    if image is None:
        raise ValidationFailed("Product image is required")

    product_request = {
        "seller_id": seller["_id"],
        "product_name": product_name.strip(),
        "category": category,
        "description": description,
        "image": store_upload(image),
        "suggested_price": suggested_price,
        "stock": stock,
        "status": "pending",
        "created_at": datetime.now(timezone.utc),
    }
    result = db.product_requests.insert_one(product_request)
    product_request["_id"] = result.inserted_id

    notifications_service.notify_admins(db, f"New product request: {product_request['product_name']} from seller")
    return {"message": "Product request submitted successfully", "productRequest": serialize_doc(product_request)}


@router.get("/my-requests")
def my_requests(seller: Dict[str, Any] = Depends(auth_utils.seller_only), db=Depends(get_db)):
    requests = db.product_requests.find({"seller_id": seller["_id"]}).sort("created_at", -1)
    return serialize_doc(list(requests))


@router.get("")
def all_requests(
    request_status: Optional[str] = Query(None, alias="status"),
    admin: Dict[str, Any] = Depends(auth_utils.admin_only),
    db=Depends(get_db),
):
    query = {"status": request_status} if request_status else {}
    requests = list(db.product_requests.find(query).sort("created_at", -1))
    sellers = {
        s["_id"]: s for s in db.users.find(
            {"_id": {"$in": [r["seller_id"] for r in requests]}}, {"name": 1, "email": 1, "shop_name": 1}
        )
    }
    for r in requests:
        r["seller"] = sellers.get(r["seller_id"])
    return serialize_doc(requests)


@router.patch("/{request_id}/approve")
def approve_request(
    request_id: str,
    body: Optional[ModerationNote] = None,
    admin: Dict[str, Any] = Depends(auth_utils.admin_only),
    db=Depends(get_db),
):
    note = body.admin_note if body else None
    product_request = _claim_pending(db, request_id, {"status": "approved", "admin_note": note or "Approved"})
    seller = db.users.find_one({"_id": product_request["seller_id"]}) or {}
    now = datetime.now(timezone.utc)

    product = {
        "name": product_request["product_name"],
        "category": product_request["category"],
        "description": product_request["description"],
        "image": product_request["image"],
        "created_at": now,
    }
    seller_product = {
        "seller_id": product_request["seller_id"],
        "price": product_request["suggested_price"],
        "stock": product_request["stock"],
        "hostel": seller.get("hostel_block") or "Not specified",
        "created_at": now,
    }
    try:
        product["_id"] = db.products.insert_one(product).inserted_id
        seller_product["product_id"] = product["_id"]
        seller_product["_id"] = db.seller_products.insert_one(seller_product).inserted_id
    except PyMongoError:
        # hand the request back so it can be decided again
        if "_id" in product:
            db.products.delete_one({"_id": product["_id"]})
        db.product_requests.update_one(
            {"_id": product_request["_id"]},
            {"$set": {"status": "pending"}, "$unset": {"admin_note": ""}},
        )
        logger.exception(f"Approval of product request {product_request['_id']} failed, request reopened")
        raise

    links = {"created_product_id": product["_id"], "created_seller_product_id": seller_product["_id"]}
    db.product_requests.update_one({"_id": product_request["_id"]}, {"$set": links})
    product_request.update(links)

    notifications_service.create_notification(
        db, product_request["seller_id"],
        f"Your product request \"{product_request['product_name']}\" has been approved!",
    )
    logger.info(f"Product request {product_request['_id']} approved by {admin['email']}")

    return {
        "message": "Product request approved and listing created",
        "productRequest": serialize_doc(product_request),
        "product": serialize_doc(product),
        "sellerProduct": serialize_doc(seller_product),
    }


@router.patch("/{request_id}/reject")
def reject_request(
    request_id: str,
    body: Optional[ModerationNote] = None,
    admin: Dict[str, Any] = Depends(auth_utils.admin_only),
    db=Depends(get_db),
):
    note = body.admin_note if body else None
    product_request = _claim_pending(db, request_id, {"status": "rejected", "admin_note": note or "Rejected"})

    reason = f" Reason: {note}" if note else ""
    notifications_service.create_notification(
        db, product_request["seller_id"],
        f"Your product request \"{product_request['product_name']}\" has been rejected.{reason}",
    )
    logger.info(f"Product request {product_request['_id']} rejected by {admin['email']}")
    return {"message": "Product request rejected", "productRequest": serialize_doc(product_request)}
