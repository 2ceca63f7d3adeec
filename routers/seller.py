from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from auth import utils as auth_utils
from database import get_db, serialize_doc, to_object_id
from errors import NotFound
from services import catalog_service

router = APIRouter(prefix="/api/seller", tags=["Seller Listings"])


class ListingCreate(BaseModel):
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)
    hostel: Optional[str] = None


class ListingUpdate(BaseModel):
    price: Optional[float] = None
    stock: Optional[int] = None
    hostel: Optional[str] = None


@router.get("")
def my_listings(seller: Dict[str, Any] = Depends(auth_utils.seller_only), db=Depends(get_db)):
    listings = list(db.seller_products.find({"seller_id": seller["_id"]}).sort("created_at", -1))
    product_ids = [l["product_id"] for l in listings]
    products = {
        p["_id"]: p for p in db.products.find({"_id": {"$in": product_ids}}, {"name": 1, "category": 1, "image": 1})
    }
    for listing in listings:
        listing["product"] = products.get(listing["product_id"])
    return serialize_doc(listings)


@router.get("/product/{product_id}")
def sellers_for_product(product_id: str, db=Depends(get_db)):
    listings = catalog_service.public_listings(db, {"product_id": to_object_id(product_id, "Product")})
    return serialize_doc(listings)


@router.get("/info/{seller_id}")
def seller_info(seller_id: str, db=Depends(get_db)):
    seller = db.users.find_one({"_id": to_object_id(seller_id, "Seller"), "role": "seller"})
    if not seller or seller.get("banned"):
        raise NotFound("Seller not found")
    return serialize_doc(catalog_service.seller_card(seller))


@router.post("/{product_id}", status_code=status.HTTP_201_CREATED)
def create_listing(
    product_id: str,
    body: ListingCreate,
    seller: Dict[str, Any] = Depends(auth_utils.seller_only),
    db=Depends(get_db),
):
    listing = catalog_service.create_listing(db, product_id, seller, body.price, body.stock, body.hostel)
    return serialize_doc(listing)


@router.patch("/{listing_id}")
def update_listing(
    listing_id: str,
    body: ListingUpdate,
    seller: Dict[str, Any] = Depends(auth_utils.seller_only),
    db=Depends(get_db),
):
    listing = catalog_service.adjust_listing(db, listing_id, seller, body.model_dump())
    return {"message": "Listing updated", "listing": serialize_doc(listing)}


@router.delete("/{listing_id}")
def delete_listing(
    listing_id: str,
    seller: Dict[str, Any] = Depends(auth_utils.seller_only),
    db=Depends(get_db),
):
    listing = catalog_service.get_owned_listing(db, listing_id, seller, action="delete")
    db.seller_products.delete_one({"_id": listing["_id"]})
    return {"message": "Listing deleted successfully"}
