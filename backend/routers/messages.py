from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status

from database import find_by_id, get_db, get_documents, object_id, populate, serialize, touch
from schemas import MessageIn
from security import get_user_from_token
from services import send_message

router = APIRouter(tags=["messages"])

VISIBLE = {"is_deleted": {"$ne": True}}


@router.get("/conversations")
async def conversations(current_user: dict = Depends(get_user_from_token)):
    user_id = str(current_user["_id"])
    docs = await get_documents(
        "message", {"$or": [{"sender_id": user_id}, {"recipient_id": user_id}], **VISIBLE}
    )
    partners = {}
    for message in docs:
        partner_id = message["recipient_id"] if message["sender_id"] == user_id else message["sender_id"]
        convo = partners.setdefault(
            partner_id,
            {
                "partner_id": partner_id,
                "last_message": message["content"],
                "last_message_time": message["created_at"],
                "unread_count": 0,
            },
        )
        if message["recipient_id"] == user_id and not message.get("read"):
            convo["unread_count"] += 1
    out = sorted(partners.values(), key=lambda c: c["last_message_time"], reverse=True)
    await populate(out, "partner_id")
    return [c for c in out if c["partner"] is not None]


@router.get("/unread/count")
async def unread_count(current_user: dict = Depends(get_user_from_token)):
    db = await get_db()
    count = await db["message"].count_documents({"recipient_id": str(current_user["_id"]), "read": False, **VISIBLE})
    return {"count": count}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_message(body: MessageIn, current_user: dict = Depends(get_user_from_token)):
    return await send_message(current_user, body.recipient_id, body.content, body.resource_id)


@router.get("/{user_id}")
async def thread(user_id: str, current_user: dict = Depends(get_user_from_token)):
    other_id = str(object_id(user_id, "user ID"))
    me = str(current_user["_id"])
    docs = await get_documents(
        "message",
        {
            "$or": [
                {"sender_id": me, "recipient_id": other_id},
                {"sender_id": other_id, "recipient_id": me},
            ],
            **VISIBLE,
        },
        sort=[("created_at", 1)],
    )
    db = await get_db()
    await db["message"].update_many(
        {"sender_id": other_id, "recipient_id": me, "read": False},
        {"$set": {"read": True, "updated_at": datetime.utcnow()}},
    )
    out = [serialize(d) for d in docs]
    await populate(out, "sender_id")
    return out


@router.put("/{sender_id}/read")
async def mark_read(sender_id: str, current_user: dict = Depends(get_user_from_token)):
    db = await get_db()
    result = await db["message"].update_many(
        {"sender_id": str(object_id(sender_id, "sender ID")), "recipient_id": str(current_user["_id"]), "read": False},
        {"$set": {"read": True, "updated_at": datetime.utcnow()}},
    )
    return {"updated": result.modified_count}


@router.delete("/{message_id}")
async def delete_message(message_id: str, current_user: dict = Depends(get_user_from_token)):
    message = await find_by_id("message", message_id, "message ID")
    if not message:
        raise HTTPException(404, "Message not found")
    if message["sender_id"] != str(current_user["_id"]):
        raise HTTPException(403, "You can only delete your own messages")
    await touch("message", message["_id"], {"is_deleted": True})
    return {"ok": True}
