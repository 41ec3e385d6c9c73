from fastapi import APIRouter, Depends, HTTPException

from database import get_db, object_id
from realtime import broadcast
from schemas import StatusIn
from security import get_user_from_token
from services import set_user_status

router = APIRouter(tags=["user-status"])


@router.get("/{user_id}")
async def get_status(user_id: str, current_user: dict = Depends(get_user_from_token)):
    db = await get_db()
    status = await db["userstatus"].find_one({"user_id": str(object_id(user_id, "user ID"))})
    if not status:
        raise HTTPException(404, "Status not found")
    return {"is_online": status.get("is_online", False), "last_seen": status.get("last_seen")}


@router.put("/")
async def update_status(body: StatusIn, current_user: dict = Depends(get_user_from_token)):
    status = await set_user_status(str(current_user["_id"]), body.is_online)
    await broadcast("userStatus", status)
    return status
