import logging

from bson import ObjectId
from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder
from socketio.exceptions import ConnectionRefusedError

from config import is_production
from database import get_db, serialize
from realtime import sio, broadcast
from security import decode_token
from services import send_message, set_user_status

logger = logging.getLogger(__name__)

# sid -> user id, and user id -> open sids
connected_users: dict[str, str] = {}
user_sockets: dict[str, set[str]] = {}


def _query_flag(environ: dict, name: str) -> bool:
    query = environ.get("QUERY_STRING", "") if environ else ""
    return f"{name}=true" in query.split("&")


@sio.event
async def connect(sid, environ, auth=None):
    token = (auth or {}).get("token")
    if not token:
        if not is_production() and _query_flag(environ, "dev"):
            logger.info("Development socket connection accepted: %s", sid)
            return True
        logger.info("Socket connection rejected, no token: %s", sid)
        raise ConnectionRefusedError("Authentication required")

    user_id = decode_token(token)
    if user_id is None:
        logger.info("Socket connection rejected, invalid token: %s", sid)
        raise ConnectionRefusedError("Invalid authentication")

    connected_users[sid] = user_id
    user_sockets.setdefault(user_id, set()).add(sid)
    await sio.enter_room(sid, user_id)
    logger.info("Authenticated socket %s for user %s", sid, user_id)
    return True


@sio.event
async def join(sid, data):
    user_id = (data or {}).get("userId")
    if user_id and connected_users.get(sid) in (None, user_id):
        await sio.enter_room(sid, str(user_id))


@sio.event
async def joinRoom(sid, data):
    room_id = str((data or {}).get("roomId") or "")
    if not room_id:
        return
    # user rooms carry private messages and notifications
    if len(room_id) == 24 and ObjectId.is_valid(room_id) and room_id != connected_users.get(sid):
        logger.warning("Socket %s refused user room %s", sid, room_id)
        return
    await sio.enter_room(sid, room_id)


@sio.event
async def leaveRoom(sid, data):
    room_id = (data or {}).get("roomId")
    if room_id:
        await sio.leave_room(sid, str(room_id))


@sio.event
async def userOnline(sid, data=None):
    user_id = connected_users.get(sid)
    if user_id is None:
        return
    status = await set_user_status(user_id, True)
    await broadcast("userStatus", status)

    db = await get_db()
    cursor = db["message"].find(
        {"recipient_id": user_id, "read": False, "is_deleted": {"$ne": True}},
        sort=[("created_at", 1)],
    )
    pending = [serialize(m) async for m in cursor]
    for message in pending:
        await sio.emit("message", jsonable_encoder(message), to=sid)
    if pending:
        logger.info("Delivered %d pending messages to %s", len(pending), user_id)


@sio.event
async def sendMessage(sid, data):
    user_id = connected_users.get(sid)
    if user_id is None:
        return {"ok": False, "error": "Authentication required"}
    data = data or {}
    db = await get_db()
    sender = await db["user"].find_one({"_id": ObjectId(user_id)})
    if sender is None:
        return {"ok": False, "error": "Sender not found"}
    try:
        message = await send_message(
            sender,
            data.get("recipientId") or data.get("to"),
            data.get("content") or data.get("message"),
            data.get("resourceId"),
        )
    except HTTPException as exc:
        return {"ok": False, "error": exc.detail}
    return {"ok": True, "id": message["id"]}


@sio.event
async def disconnect(sid, reason=None):
    user_id = connected_users.pop(sid, None)
    if user_id is None:
        return
    sockets = user_sockets.get(user_id, set())
    sockets.discard(sid)
    if sockets:
        return
    user_sockets.pop(user_id, None)
    status = await set_user_status(user_id, False)
    await broadcast("userStatus", status)
    logger.info("User %s is offline", user_id)
