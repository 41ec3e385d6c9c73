import logging
from datetime import datetime

from bson import ObjectId
from fastapi import HTTPException

from config import DEFAULT_TRUST_SCORE
from database import get_db, session_kwargs

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5


def updated_trust_score(current: float, total: int, rating: int) -> float:
    """Running average of ratings after adding one more."""
    return round((current * total + rating) / (total + 1), 2)


async def apply_rating(user_id: str, rating: int, session=None) -> dict | None:
    """Fold ``rating`` into the user's trust score.

    The write only lands if ``total_reviews`` is unchanged since the read, so
    concurrent reviews are retried instead of overwriting each other.
    """
    db = await get_db()
    for _ in range(MAX_ATTEMPTS):
        user = await db["user"].find_one({"_id": ObjectId(user_id)}, **session_kwargs(session))
        if user is None:
            logger.warning("Cannot update trust score, user %s not found", user_id)
            return None
        total = user.get("total_reviews") or 0
        current = user.get("trust_score")
        if current is None:
            current = DEFAULT_TRUST_SCORE
        score = updated_trust_score(current, total, rating)
        guard = {"_id": user["_id"], "total_reviews": total} if "total_reviews" in user else {
            "_id": user["_id"], "total_reviews": {"$exists": False}
        }
        result = await db["user"].update_one(
            guard,
            {"$set": {"trust_score": score, "total_reviews": total + 1, "updated_at": datetime.utcnow()}},
            **session_kwargs(session),
        )
        if result.modified_count:
            return {**user, "trust_score": score, "total_reviews": total + 1}
    raise HTTPException(409, "Could not update trust score, please retry")
