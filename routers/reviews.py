import logging
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, Depends, status
from pymongo import ReturnDocument
from pydantic import BaseModel, Field

from auth import utils as auth_utils
from database import get_db, serialize_doc, to_object_id
from errors import NotFound, Forbidden, Conflict, ValidationFailed

logger = logging.getLogger("REVIEWS")

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])

REVIEWABLE_STATUSES = ("delivered", "completed")


class ReviewCreate(BaseModel):
    order_id: str
    seller_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)


def _set_review_status(db, review_id: str, new_status: str):
    review = db.reviews.find_one_and_update(
        {"_id": to_object_id(review_id, "Review")},
        {"$set": {"status": new_status}},
        return_document=ReturnDocument.AFTER,
    )
    if not review:
        raise NotFound("Review not found")
    logger.info(f"Review {review['_id']} set to {new_status}")
    return serialize_doc(review)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_review(
    body: ReviewCreate,
    current_user: Dict[str, Any] = Depends(auth_utils.get_current_user),
    db=Depends(get_db),
):
    comment = body.comment.strip()
    if not comment:
        raise ValidationFailed("All fields are required")

    order = db.orders.find_one({"_id": to_object_id(body.order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    if order["user_id"] != current_user["_id"]:
        raise Forbidden("Not authorized to review this order")
    if order.get("status") not in REVIEWABLE_STATUSES:
        raise ValidationFailed("Can only review delivered/completed orders")

    if db.reviews.find_one({"user_id": current_user["_id"], "order_id": order["_id"]}):
        raise Conflict("You have already reviewed this order")

    seller = db.users.find_one({"_id": to_object_id(body.seller_id, "Seller")})
    if not seller or seller.get("role") != "seller":
        raise NotFound("Seller not found")

    review = {
        "seller_id": seller["_id"],
        "user_id": current_user["_id"],
        "order_id": order["_id"],
        "rating": body.rating,
        "comment": comment,
        "status": "active",
        "created_at": datetime.now(timezone.utc),
    }
    review["_id"] = db.reviews.insert_one(review).inserted_id
    return serialize_doc(review)


@router.get("/my-reviews")
def my_reviews(current_user: Dict[str, Any] = Depends(auth_utils.get_current_user), db=Depends(get_db)):
    reviews = db.reviews.find({"user_id": current_user["_id"]}).sort("created_at", -1)
    return serialize_doc(list(reviews))


@router.get("/can-review/{order_id}")
def can_review(order_id: str, current_user: Dict[str, Any] = Depends(auth_utils.get_current_user), db=Depends(get_db)):
    order = db.orders.find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        return {"canReview": False, "reason": "Order not found"}
    if order["user_id"] != current_user["_id"]:
        return {"canReview": False, "reason": "Not your order"}
    if order.get("status") not in REVIEWABLE_STATUSES:
        return {"canReview": False, "reason": "Order not completed yet"}
    if db.reviews.find_one({"user_id": current_user["_id"], "order_id": order["_id"]}):
        return {"canReview": False, "reason": "Already reviewed"}

    listing = db.seller_products.find_one({"_id": order.get("seller_product_id")}, {"seller_id": 1})
    return {"canReview": True, "seller_id": str(listing["seller_id"]) if listing else None}


@router.get("/seller/{seller_id}")
def seller_reviews(seller_id: str, db=Depends(get_db)):
    reviews = list(db.reviews.find({"seller_id": to_object_id(seller_id, "Seller"), "status": "active"}).sort("created_at", -1))
    authors = {u["_id"]: u for u in db.users.find({"_id": {"$in": [r["user_id"] for r in reviews]}}, {"name": 1})}
    for r in reviews:
        r["user"] = authors.get(r["user_id"])
    return serialize_doc(reviews)


@router.get("/seller/{seller_id}/stats")
def seller_stats(seller_id: str, db=Depends(get_db)):
    ratings = [r["rating"] for r in db.reviews.find({"seller_id": to_object_id(seller_id, "Seller"), "status": "active"}, {"rating": 1})]
    distribution = {str(star): 0 for star in range(5, 0, -1)}
    for rating in ratings:
        distribution[str(rating)] += 1
    average = round(sum(ratings) / len(ratings), 1) if ratings else 0
    return {"averageRating": average, "totalReviews": len(ratings), "ratingDistribution": distribution}


# ===== ADMIN ROUTES =====

@router.get("/admin/all")
def all_reviews(admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    return serialize_doc(list(db.reviews.find().sort("created_at", -1)))


@router.put("/admin/{review_id}/flag")
def flag_review(review_id: str, admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    return _set_review_status(db, review_id, "flagged")


@router.put("/admin/{review_id}/remove")
def remove_review(review_id: str, admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    return _set_review_status(db, review_id, "removed")


@router.put("/admin/{review_id}/activate")
def activate_review(review_id: str, admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    return _set_review_status(db, review_id, "active")
