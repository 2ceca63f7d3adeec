from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from auth import utils as auth_utils
from database import get_db, serialize_doc, to_object_id
from errors import NotFound
from services import catalog_service

router = APIRouter(prefix="/api/cart", tags=["Cart"])


class CartAdd(BaseModel):
    product_id: str
    seller_product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    image: Optional[str] = None


class CartUpdate(BaseModel):
    seller_product_id: str
    quantity: int = Field(..., ge=1)


def calculate_total(items: List[Dict[str, Any]]) -> float:
    return sum(item["price"] * item["quantity"] for item in items)


def _save(db, cart: Dict[str, Any]) -> Dict[str, Any]:
    cart["total_price"] = calculate_total(cart["items"])
    cart["updated_at"] = datetime.now(timezone.utc)
    db.carts.update_one(
        {"user_id": cart["user_id"]},
        {"$set": {"items": cart["items"], "total_price": cart["total_price"], "updated_at": cart["updated_at"]}},
        upsert=True,
    )
    return _with_sellers(db, db.carts.find_one({"user_id": cart["user_id"]}))


def _with_sellers(db, cart: Dict[str, Any]) -> Dict[str, Any]:
    listing_ids = [i["seller_product_id"] for i in cart["items"]]
    listings = {l["_id"]: l for l in db.seller_products.find({"_id": {"$in": listing_ids}}, {"seller_id": 1, "hostel": 1})}
    sellers = {
        s["_id"]: s for s in db.users.find(
            {"_id": {"$in": [l["seller_id"] for l in listings.values()]}},
            {"name": 1, "shop_name": 1, "hostel_block": 1, "room_number": 1},
        )
    }
    for item in cart["items"]:
        listing = listings.get(item["seller_product_id"])
        item["seller"] = catalog_service.seller_card(sellers.get(listing["seller_id"])) if listing else None
    return serialize_doc(cart)


def _get_cart(db, user_id) -> Dict[str, Any]:
    cart = db.carts.find_one({"user_id": user_id})
    if not cart:
        raise NotFound("Cart not found")
    return cart


@router.get("")
def get_cart(current_user: Dict[str, Any] = Depends(auth_utils.get_current_user), db=Depends(get_db)):
    cart = db.carts.find_one({"user_id": current_user["_id"]})
    if not cart:
        return {"items": [], "total_price": 0}
    return _with_sellers(db, cart)


@router.post("/add")
def add_to_cart(
    item: CartAdd,
    current_user: Dict[str, Any] = Depends(auth_utils.get_current_user),
    db=Depends(get_db),
):
    cart = db.carts.find_one({"user_id": current_user["_id"]}) or {"user_id": current_user["_id"], "items": []}
    listing_oid = to_object_id(item.seller_product_id, "Listing")

    for line in cart["items"]:
        if line["seller_product_id"] == listing_oid:
            line["quantity"] += item.quantity
            break
    else:
        # price is the one the buyer saw when adding, not re-read later
        cart["items"].append({
            "product_id": to_object_id(item.product_id, "Product"),
            "seller_product_id": listing_oid,
            "name": item.name,
            "price": item.price,
            "quantity": item.quantity,
            "image": item.image,
        })
    return _save(db, cart)


@router.put("/update")
def update_cart_item(
    item: CartUpdate,
    current_user: Dict[str, Any] = Depends(auth_utils.get_current_user),
    db=Depends(get_db),
):
    cart = _get_cart(db, current_user["_id"])
    listing_oid = to_object_id(item.seller_product_id, "Item")
    line = next((l for l in cart["items"] if l["seller_product_id"] == listing_oid), None)
    if line is None:
        raise NotFound("Item not found")
    line["quantity"] = item.quantity
    return _save(db, cart)


@router.delete("/remove/{seller_product_id}")
def remove_cart_item(
    seller_product_id: str,
    current_user: Dict[str, Any] = Depends(auth_utils.get_current_user),
    db=Depends(get_db),
):
    cart = _get_cart(db, current_user["_id"])
    listing_oid = to_object_id(seller_product_id, "Item")
    cart["items"] = [l for l in cart["items"] if l["seller_product_id"] != listing_oid]
    return _save(db, cart)


@router.delete("/clear")
def clear_cart(current_user: Dict[str, Any] = Depends(auth_utils.get_current_user), db=Depends(get_db)):
    db.carts.delete_one({"user_id": current_user["_id"]})
    return {"message": "Cart cleared"}
