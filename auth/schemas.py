from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserInfo(BaseModel):
    userId: str
    name: str
    email: EmailStr
    role: str
    sellerStatus: Optional[str] = None
    hostelBlock: Optional[str] = None
    roomNumber: Optional[str] = None
    shopName: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=80)
    email: Optional[EmailStr] = None
    hostel_block: Optional[str] = None
    room_number: Optional[str] = None
    shop_name: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


def user_info(user: dict) -> UserInfo:
    return UserInfo(
        userId=str(user["_id"]),
        name=user.get("name", ""),
        email=user["email"],
        role=user.get("role", "user"),
        sellerStatus=user.get("seller_status"),
        hostelBlock=user.get("hostel_block"),
        roomNumber=user.get("room_number"),
        shopName=user.get("shop_name"),
    )
