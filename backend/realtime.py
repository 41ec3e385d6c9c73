import logging

import socketio
from fastapi.encoders import jsonable_encoder

from config import FRONTEND_URL

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=[FRONTEND_URL, "http://localhost:5050"],
)


async def emit_to_user(user_id, event: str, data):
    """Emit to the room named after a user id; every socket of that user joins it."""
    try:
        await sio.emit(event, jsonable_encoder(data), room=str(user_id))
    except Exception:
        # best effort, the document is already stored
        logger.exception("Failed to emit %s to user %s", event, user_id)


async def broadcast(event: str, data):
    try:
        await sio.emit(event, jsonable_encoder(data))
    except Exception:
        logger.exception("Failed to broadcast %s", event)
