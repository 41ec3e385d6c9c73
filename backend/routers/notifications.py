from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from config import NOTIFICATION_LIMIT
from database import get_db, get_documents, object_id, populate, serialize
from security import get_user_from_token

router = APIRouter(tags=["notifications"])


def own(notification_id: str, current_user: dict) -> dict:
    return {"_id": object_id(notification_id, "notification ID"), "user_id": str(current_user["_id"])}


@router.get("/")
async def list_notifications(current_user: dict = Depends(get_user_from_token)):
    docs = [
        serialize(d)
        for d in await get_documents("notification", {"user_id": str(current_user["_id"])}, limit=NOTIFICATION_LIMIT)
    ]
    await populate(docs, "action_by", projection={"name": 1, "avatar": 1})
    return docs


@router.put("/read-all")
async def read_all(current_user: dict = Depends(get_user_from_token)):
    db = await get_db()
    result = await db["notification"].update_many(
        {"user_id": str(current_user["_id"]), "is_read": False},
        {"$set": {"is_read": True, "updated_at": datetime.utcnow()}},
    )
    return {"updated": result.modified_count}


@router.put("/{notification_id}/read")
async def mark_read(notification_id: str, current_user: dict = Depends(get_user_from_token)):
    db = await get_db()
    query = own(notification_id, current_user)
    result = await db["notification"].update_one(query, {"$set": {"is_read": True, "updated_at": datetime.utcnow()}})
    if result.matched_count == 0:
        raise HTTPException(404, "Notification not found")
    return serialize(await db["notification"].find_one(query))


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, current_user: dict = Depends(get_user_from_token)):
    db = await get_db()
    result = await db["notification"].delete_one(own(notification_id, current_user))
    if result.deleted_count == 0:
        raise HTTPException(404, "Notification not found")
    return {"ok": True}
