from datetime import datetime

from fastapi import APIRouter, Depends

from database import get_db, get_documents, serialize
from security import get_user_from_token

router = APIRouter(tags=["dashboard"])

RECENT_LIMIT = 10
VISIBLE = {"is_deleted": {"$ne": True}}

# collection -> activity type shown to the client
ACTIVITY_SOURCES = {
    "resource": "resource",
    "event": "event",
    "skillsharing": "skill",
    "helprequest": "help",
}


@router.get("/")
async def dashboard(current_user: dict = Depends(get_user_from_token)):
    db = await get_db()
    user_id = str(current_user["_id"])
    now = datetime.utcnow()

    stats = {
        "resources": await db["resource"].count_documents(VISIBLE),
        "upcoming_events": await db["event"].count_documents({"date": {"$gte": now}, **VISIBLE}),
        "open_help_requests": await db["helprequest"].count_documents(
            {"status": {"$in": ["pending", "in-progress"]}, **VISIBLE}
        ),
        "skills": await db["skillsharing"].count_documents(VISIBLE),
    }
    pending_actions = {
        "unread_messages": await db["message"].count_documents({"recipient_id": user_id, "read": False, **VISIBLE}),
        "borrow_requests": await db["borrowrequest"].count_documents({"owner_id": user_id, "status": "pending"}),
        "skill_requests": await db["skillrequest"].count_documents({"provider_id": user_id, "status": "pending"}),
        "help_offers": await db["helprequest"].count_documents(
            {"requester_id": user_id, "status": "in-progress", **VISIBLE}
        ),
    }

    activity = []
    for collection_name, kind in ACTIVITY_SOURCES.items():
        for doc in await get_documents(collection_name, VISIBLE, limit=RECENT_LIMIT):
            item = serialize(doc)
            activity.append({"type": kind, "id": item["id"], "title": item.get("title"), "created_at": item["created_at"]})
    activity.sort(key=lambda a: a["created_at"], reverse=True)

    return {"stats": stats, "pending_actions": pending_actions, "recent_activity": activity[:RECENT_LIMIT]}
