from fastapi import APIRouter, Depends, HTTPException

from database import get_db, find_by_id, touch
from routers.auth import apply_profile_update, auth_limiter, public_user
from schemas import ProfileUpdate
from security import get_user_from_token

router = APIRouter(tags=["users"])


@router.get("/")
async def list_users(current_user: dict = Depends(get_user_from_token)):
    db = await get_db()
    cursor = db["user"].find(
        {"is_deleted": {"$ne": True}},
        {"name": 1, "email": 1, "avatar": 1, "trust_score": 1},
        sort=[("name", 1)],
    )
    return [{"id": str(u["_id"]), **{k: v for k, v in u.items() if k != "_id"}} async for u in cursor]


@router.get("/profile")
async def get_profile(current_user: dict = Depends(get_user_from_token)):
    return public_user(current_user)


@router.put("/profile", dependencies=[Depends(auth_limiter)])
async def update_profile(body: ProfileUpdate, current_user: dict = Depends(get_user_from_token)):
    return public_user(await apply_profile_update(current_user, body))


@router.get("/{user_id}")
async def get_user(user_id: str, current_user: dict = Depends(get_user_from_token)):
    user = await find_by_id("user", user_id, "user ID")
    if not user:
        raise HTTPException(404, "User not found")
    return public_user(user)


@router.delete("/{user_id}")
async def delete_user(user_id: str, current_user: dict = Depends(get_user_from_token)):
    user = await find_by_id("user", user_id, "user ID")
    if not user:
        raise HTTPException(404, "User not found")
    if user["_id"] != current_user["_id"]:
        raise HTTPException(403, "You can only delete your own account")
    await touch("user", user["_id"], {"is_deleted": True})
    return {"ok": True}
