from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from database import to_object_id
from errors import NotFound, Conflict, Forbidden, ValidationFailed

PUBLIC_SELLER_FIELDS = ("name", "shop_name", "hostel_block", "room_number")


def seller_card(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    card = {"_id": user["_id"]}
    for field in PUBLIC_SELLER_FIELDS:
        card[field] = user.get(field)
    return card


def public_listings(db, match: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Listings joined to their seller, with banned sellers filtered out."""
    pipeline = [
        {"$match": match or {}},
        {"$lookup": {"from": "users", "localField": "seller_id", "foreignField": "_id", "as": "seller"}},
        {"$unwind": "$seller"},
        {"$match": {"seller.banned": {"$ne": True}}},
        {"$sort": {"price": 1}},
    ]
    listings = []
    for doc in db.seller_products.aggregate(pipeline):
        doc["seller"] = seller_card(doc["seller"])
        listings.append(doc)
    return listings


def create_listing(db, product_id, seller: Dict[str, Any], price: float, stock: int,
                   hostel: Optional[str] = None) -> Dict[str, Any]:
    product_oid = to_object_id(product_id, "Product")
    if not db.products.find_one({"_id": product_oid}, {"_id": 1}):
        raise NotFound("Product not found")

    if db.seller_products.find_one({"product_id": product_oid, "seller_id": seller["_id"]}):
        raise Conflict("You already have a listing for this product. Use update instead.")

    listing = {
        "product_id": product_oid,
        "seller_id": seller["_id"],
        "price": price,
        "stock": stock,
        "hostel": hostel or seller.get("hostel_block") or "Not specified",
        "created_at": datetime.now(timezone.utc),
    }
    result = db.seller_products.insert_one(listing)
    listing["_id"] = result.inserted_id
    return listing


def get_owned_listing(db, listing_id, seller: Dict[str, Any], action: str = "update") -> Dict[str, Any]:
    listing = db.seller_products.find_one({"_id": to_object_id(listing_id, "Listing")})
    if not listing:
        raise NotFound("Listing not found")
    if listing["seller_id"] != seller["_id"]:
        raise Forbidden(f"You cannot {action} another seller's listing")
    return listing


def adjust_listing(db, listing_id, seller: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    listing = get_owned_listing(db, listing_id, seller)
    changes = {k: v for k, v in changes.items() if v is not None}
    if changes.get("stock", 0) < 0:
        raise ValidationFailed("Stock cannot be negative")
    if changes.get("price", 0) < 0:
        raise ValidationFailed("Price cannot be negative")
    if changes:
        db.seller_products.update_one({"_id": listing["_id"]}, {"$set": changes})
        listing.update(changes)
    return listing
