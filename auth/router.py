import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Form, File, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import EmailStr

from . import schemas, utils
from database import get_db, serialize_doc
from errors import Conflict, Forbidden, NotFound, Unauthenticated, ValidationFailed
from services.storage import store_upload

logger = logging.getLogger("AUTH")

router = APIRouter(
    prefix="/api/auth",
    tags=["Authentication"]
)


def _auth_payload(user: dict, message: str) -> dict:
    info = schemas.user_info(user)
    return {"message": message, "token": utils.token_for_user(user), **info.model_dump()}


@router.post("/signup")
def create_user(
    name: str = Form(...),
    email: EmailStr = Form(...),
    password: str = Form(..., min_length=6),
    role: Optional[str] = Form(None),
    hostel_block: Optional[str] = Form(None),
    room_number: Optional[str] = Form(None),
    upi_id: Optional[str] = Form(None),
    shop_name: Optional[str] = Form(None),
    college_id: Optional[UploadFile] = File(None),
    db=Depends(get_db),
):
    if not name.strip() or not email.strip():
        raise ValidationFailed("Name, email, and password are required")
    # hostel and room are needed for delivery, buyers and sellers alike
    if not hostel_block or not room_number:
        raise ValidationFailed("Hostel and room number are required")

    email = email.strip().lower()
    # nobody can sign up as admin
    user_role = "seller" if role == "seller" else "user"

    if db.users.find_one({"email": email}):
        raise Conflict("Email already registered")

    user_data = {
        "name": name.strip(),
        "email": email,
        "password": utils.get_password_hash(password),
        "role": user_role,
        "banned": False,
        "hostel_block": hostel_block,
        "room_number": room_number,
        "created_at": datetime.now(timezone.utc),
    }

    if user_role == "seller":
        if not upi_id or college_id is None:
            raise ValidationFailed("UPI ID and college ID image are required for seller signup")
        user_data["upi_id"] = upi_id
        user_data["college_id_url"] = store_upload(college_id)
        user_data["shop_name"] = shop_name or ""
        user_data["seller_status"] = "pending_verification"

    result = db.users.insert_one(user_data)
    user_data["_id"] = result.inserted_id
    logger.info(f"New {user_role} registered: {email}")

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=_auth_payload(user_data, "Signup successful"),
    )


@router.post("/login")
def login_for_access_token(form_data: schemas.UserLogin, db=Depends(get_db)):
    user = db.users.find_one({"email": form_data.email.lower()})
    if not user or not utils.verify_password(form_data.password, user["password"]):
        raise Unauthenticated("Invalid credentials")
    if user.get("banned"):
        raise Forbidden("User is banned")

    return _auth_payload(user, "Login successful")


@router.get("/me")
def read_users_me(current_user: dict = Depends(utils.get_current_user)):
    return {"user": serialize_doc(current_user)}


@router.put("/profile")
def update_profile(
    update: schemas.ProfileUpdate,
    current_user: dict = Depends(utils.get_current_user),
    db=Depends(get_db),
):
    changes = {}
    if update.name:
        changes["name"] = update.name
    if update.email:
        email = update.email.lower()
        if email != current_user["email"] and db.users.find_one({"email": email}):
            raise Conflict("Email already registered")
        changes["email"] = email
    if update.hostel_block:
        changes["hostel_block"] = update.hostel_block
    if update.room_number:
        changes["room_number"] = update.room_number
    if update.shop_name and current_user.get("role") == "seller":
        changes["shop_name"] = update.shop_name

    if changes:
        db.users.update_one({"_id": current_user["_id"]}, {"$set": changes})
    user = db.users.find_one({"_id": current_user["_id"]})
    if not user:
        raise NotFound("User not found")
    return {"message": "Profile updated successfully", "user": serialize_doc(user)}


@router.put("/change-password")
def change_password(
    request: schemas.ChangePasswordRequest,
    current_user: dict = Depends(utils.get_current_user),
    db=Depends(get_db),
):
    if not utils.verify_password(request.current_password, current_user["password"]):
        raise Unauthenticated("Current password is incorrect")

    db.users.update_one(
        {"_id": current_user["_id"]},
        {"$set": {"password": utils.get_password_hash(request.new_password)}}
    )
    return {"message": "Password changed successfully"}
