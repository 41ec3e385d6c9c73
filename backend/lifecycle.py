"""
Status lifecycles for the request-like collections.

Every status change goes through :func:`transition`, which checks the move
against the collection's table and applies it as a compare-and-set update on
the current status, so two writers racing on the same document cannot both
win.
"""
from datetime import datetime

from fastapi import HTTPException

from database import get_db, session_kwargs

TRANSITIONS = {
    "skillrequest": {
        "pending": {"accepted", "rejected", "canceled"},
        "accepted": {"completed", "canceled"},
    },
    "borrowrequest": {
        "pending": {"approved", "declined"},
    },
    "helprequest": {
        "pending": {"in-progress", "canceled"},
        "in-progress": {"completed", "canceled"},
    },
    "transaction": {
        "ongoing": {"returned", "cancelled"},
    },
}


def can_transition(collection_name: str, current: str, new: str) -> bool:
    return new in TRANSITIONS[collection_name].get(current, set())


def check_transition(collection_name: str, current: str, new: str):
    if current == new or current not in TRANSITIONS[collection_name]:
        raise HTTPException(400, f"Cannot change status: request is already {current}")
    if not can_transition(collection_name, current, new):
        raise HTTPException(400, f"Cannot change status from {current} to {new}")


async def transition(collection_name: str, doc: dict, new_status: str, extra: dict | None = None, session=None) -> dict:
    """Move ``doc`` to ``new_status`` and return the updated document."""
    current = doc.get("status")
    check_transition(collection_name, current, new_status)
    db = await get_db()
    updates = {**(extra or {}), "status": new_status, "updated_at": datetime.utcnow()}
    result = await db[collection_name].update_one(
        {"_id": doc["_id"], "status": current},
        {"$set": updates},
        **session_kwargs(session),
    )
    if result.modified_count == 0:
        raise HTTPException(409, "Request was modified by someone else, please retry")
    return {**doc, **updates}
