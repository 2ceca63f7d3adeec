# File: routers/notifications.py
# In-app notifications, every query scoped to the caller.

from typing import Dict, Any

from fastapi import APIRouter, Depends
from pymongo import ReturnDocument

from auth import utils as auth_utils
from database import get_db, serialize_doc, to_object_id
from errors import NotFound

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("")
def list_notifications(current_user: Dict[str, Any] = Depends(auth_utils.get_current_user), db=Depends(get_db)):
    cursor = db.notifications.find({"user_id": current_user["_id"]}).sort("created_at", -1).limit(50)
    return serialize_doc(list(cursor))


@router.get("/unread-count")
def unread_count(current_user: Dict[str, Any] = Depends(auth_utils.get_current_user), db=Depends(get_db)):
    count = db.notifications.count_documents({"user_id": current_user["_id"], "read": False})
    return {"count": count}


@router.put("/mark-all-read")
def mark_all_read(current_user: Dict[str, Any] = Depends(auth_utils.get_current_user), db=Depends(get_db)):
    result = db.notifications.update_many(
        {"user_id": current_user["_id"], "read": False},
        {"$set": {"read": True}},
    )
    return {"message": "All notifications marked as read", "updated": result.modified_count}


@router.put("/{notification_id}/read")
def mark_read(
    notification_id: str,
    current_user: Dict[str, Any] = Depends(auth_utils.get_current_user),
    db=Depends(get_db),
):
    notification = db.notifications.find_one_and_update(
        {"_id": to_object_id(notification_id, "Notification"), "user_id": current_user["_id"]},
        {"$set": {"read": True}},
        return_document=ReturnDocument.AFTER,
    )
    if not notification:
        raise NotFound("Notification not found")
    return serialize_doc(notification)


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: str,
    current_user: Dict[str, Any] = Depends(auth_utils.get_current_user),
    db=Depends(get_db),
):
    result = db.notifications.delete_one(
        {"_id": to_object_id(notification_id, "Notification"), "user_id": current_user["_id"]}
    )
    if result.deleted_count == 0:
        raise NotFound("Notification not found")
    return {"message": "Notification deleted"}
