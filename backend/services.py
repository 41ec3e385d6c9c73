"""Notification and message delivery shared by the REST routes and sockets."""
import logging
from datetime import datetime

from fastapi import HTTPException

from database import create_document, get_db, object_id, serialize, populate
from realtime import emit_to_user
from schemas import Message, Notification, UserStatus

logger = logging.getLogger(__name__)


async def push_notification(
    user_id,
    message: str,
    notification_type: str,
    resource_id: str | None = None,
    action_by: str | None = None,
    link: str | None = None,
) -> dict:
    """Persist a notification, then emit it to the user's room."""
    doc = Notification(
        user_id=str(user_id),
        message=message,
        type=notification_type,
        resource_id=str(resource_id) if resource_id else None,
        action_by=str(action_by) if action_by else None,
        link=link,
    ).model_dump()
    doc = await create_document("notification", doc)
    payload = serialize(doc)
    await emit_to_user(user_id, "notification", payload)
    return payload


async def notify_many(user_ids, message: str, notification_type: str, **kwargs):
    for user_id in user_ids:
        await push_notification(user_id, message, notification_type, **kwargs)


async def send_message(sender: dict, recipient_id: str, content: str, resource_id: str | None = None) -> dict:
    content = (content or "").strip()
    if not content:
        raise HTTPException(400, "Recipient ID and content are required")
    db = await get_db()
    recipient = await db["user"].find_one({"_id": object_id(recipient_id, "recipient ID")})
    if not recipient or recipient.get("is_deleted"):
        raise HTTPException(400, "Recipient not found")
    doc = Message(
        sender_id=str(sender["_id"]),
        recipient_id=str(recipient["_id"]),
        content=content,
        resource_id=resource_id or None,
    ).model_dump()
    doc = await create_document("message", doc)
    logger.info("Message %s -> %s", doc["sender_id"], doc["recipient_id"])
    payload = serialize(doc)
    await populate([payload], "sender_id")
    await emit_to_user(payload["recipient_id"], "message", payload)
    await push_notification(
        payload["recipient_id"],
        f"New message from {sender.get('name', 'someone')}",
        "message",
        action_by=payload["sender_id"],
        link="/messages",
    )
    return payload


async def set_user_status(user_id: str, is_online: bool) -> dict:
    db = await get_db()
    now = datetime.utcnow()
    doc = UserStatus(user_id=str(user_id), is_online=is_online, last_seen=now).model_dump()
    await db["userstatus"].update_one(
        {"user_id": doc["user_id"]},
        {
            "$set": {**doc, "updated_at": now},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
    )
    return {"userId": str(user_id), "isOnline": is_online, "lastSeen": now}
