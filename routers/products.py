from datetime import datetime, timezone
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, Form, File, UploadFile, status
from pydantic import BaseModel

from auth import utils as auth_utils
from database import get_db, serialize_doc, to_object_id
from errors import NotFound, ValidationFailed
from services import catalog_service
from services.storage import store_upload

router = APIRouter(prefix="/api/products", tags=["Products"])

CATEGORIES = ("Snacks", "Beverages", "Instant Food", "Desserts", "Other")


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


def _attach_listings(products, listings):
    by_product = {}
    for listing in listings:
        by_product.setdefault(listing["product_id"], []).append(listing)
    for product in products:
        product["listings"] = by_product.get(product["_id"], [])
    return products


# --- Public ---

@router.get("")
def list_products(category: Optional[str] = None, hostel: Optional[str] = None, db=Depends(get_db)):
    query = {"category": category} if category else {}
    products = list(db.products.find(query).sort("created_at", -1))

    match = {"product_id": {"$in": [p["_id"] for p in products]}}
    if hostel:
        match["hostel"] = hostel
    products = _attach_listings(products, catalog_service.public_listings(db, match))
    if hostel:
        products = [p for p in products if p["listings"]]
    return serialize_doc(products)


# --- Admin ---
# declared before /{product_id} so "admin" is not taken for an id

@router.get("/admin/all")
def all_products(admin: Dict[str, Any] = Depends(auth_utils.admin_only), db=Depends(get_db)):
    products = list(db.products.find().sort("created_at", -1))
    listings = list(db.seller_products.find({"product_id": {"$in": [p["_id"] for p in products]}}))
    return serialize_doc(_attach_listings(products, listings))


@router.get("/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    product = db.products.find_one({"_id": to_object_id(product_id, "Product")})
    if not product:
        raise NotFound("Product not found")
    product["listings"] = catalog_service.public_listings(db, {"product_id": product["_id"]})
    return serialize_doc(product)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_product(
    name: str = Form(...),
    category: str = Form(...),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    admin: Dict[str, Any] = Depends(auth_utils.admin_only),
    db=Depends(get_db),
):
    if category not in CATEGORIES:
        raise ValidationFailed(f"Category must be one of: {', '.join(CATEGORIES)}")
    product = {
        "name": name.strip(),
        "category": category,
        "description": description,
        "image": store_upload(image) if image is not None else None,
        "created_at": datetime.now(timezone.utc),
    }
    result = db.products.insert_one(product)
    product["_id"] = result.inserted_id
    return serialize_doc(product)


@router.patch("/{product_id}")
def update_product(
    product_id: str,
    body: ProductUpdate,
    admin: Dict[str, Any] = Depends(auth_utils.admin_only),
    db=Depends(get_db),
):
    changes = {k: v for k, v in body.model_dump().items() if v is not None}
    if "category" in changes and changes["category"] not in CATEGORIES:
        raise ValidationFailed(f"Category must be one of: {', '.join(CATEGORIES)}")

    oid = to_object_id(product_id, "Product")
    if changes:
        result = db.products.update_one({"_id": oid}, {"$set": changes})
        if result.matched_count == 0:
            raise NotFound("Product not found")
    product = db.products.find_one({"_id": oid})
    if not product:
        raise NotFound("Product not found")
    return serialize_doc(product)


@router.delete("/{product_id}")
def delete_product(
    product_id: str,
    admin: Dict[str, Any] = Depends(auth_utils.admin_only),
    db=Depends(get_db),
):
    oid = to_object_id(product_id, "Product")
    result = db.products.delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFound("Product not found")
    removed = db.seller_products.delete_many({"product_id": oid}).deleted_count
    return {"message": "Product deleted", "listings_removed": removed}
