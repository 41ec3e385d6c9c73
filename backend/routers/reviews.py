import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pymongo.errors import DuplicateKeyError

from database import (
    create_document,
    find_by_id,
    get_db,
    get_documents,
    populate,
    serialize,
    session_kwargs,
    transaction,
)
from schemas import Review, ReviewIn
from security import get_user_from_token
from services import push_notification
from trust import apply_rating

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reviews"])


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_review(body: ReviewIn, current_user: dict = Depends(get_user_from_token)):
    txn = await find_by_id("transaction", body.transaction_id, "transaction ID")
    if not txn:
        raise HTTPException(404, "Transaction not found")
    if txn["status"] != "returned":
        raise HTTPException(400, "You can only review completed transactions")
    reviewer_id = str(current_user["_id"])
    if reviewer_id == txn["owner_id"]:
        flag, reviewed_user_id = "owner_reviewed", txn["borrower_id"]
    elif reviewer_id == txn["borrower_id"]:
        flag, reviewed_user_id = "borrower_reviewed", txn["owner_id"]
    else:
        raise HTTPException(403, "You were not part of this transaction")
    if txn.get(flag):
        raise HTTPException(400, "You have already reviewed this transaction")

    doc = Review(
        reviewer_id=reviewer_id,
        reviewed_user_id=reviewed_user_id,
        transaction_id=str(txn["_id"]),
        resource_id=txn["resource_id"],
        rating=body.rating,
        comment=body.comment,
    ).model_dump()
    db = await get_db()
    try:
        async with transaction() as session:
            marked = await db["transaction"].update_one(
                {"_id": txn["_id"], flag: {"$ne": True}},
                {"$set": {flag: True, "updated_at": datetime.utcnow()}},
                **session_kwargs(session),
            )
            if marked.modified_count == 0:
                raise HTTPException(400, "You have already reviewed this transaction")
            doc = await create_document("review", doc, session=session)
            await apply_rating(reviewed_user_id, body.rating, session=session)
    except DuplicateKeyError:
        raise HTTPException(400, "You have already reviewed this transaction")

    await push_notification(
        reviewed_user_id,
        f"{current_user['name']} left you a {body.rating}-star review",
        "review",
        resource_id=txn["resource_id"],
        action_by=reviewer_id,
    )
    logger.info("Review %s on transaction %s", doc["_id"], doc["transaction_id"])
    return serialize(doc)


@router.get("/pending")
async def pending_reviews(current_user: dict = Depends(get_user_from_token)):
    user_id = str(current_user["_id"])
    as_owner = [
        serialize(d)
        for d in await get_documents(
            "transaction", {"owner_id": user_id, "status": "returned", "owner_reviewed": {"$ne": True}}
        )
    ]
    as_borrower = [
        serialize(d)
        for d in await get_documents(
            "transaction", {"borrower_id": user_id, "status": "returned", "borrower_reviewed": {"$ne": True}}
        )
    ]
    for docs, other in ((as_owner, "borrower_id"), (as_borrower, "owner_id")):
        await populate(docs, "resource_id", "resource", {"title": 1, "image": 1})
        await populate(docs, other)
    return {"pending_as_owner": as_owner, "pending_as_borrower": as_borrower}


@router.get("/user/{user_id}")
async def user_reviews(user_id: str):
    user = await find_by_id("user", user_id, "user ID")
    if not user:
        raise HTTPException(404, "User not found")
    docs = [serialize(d) for d in await get_documents("review", {"reviewed_user_id": str(user["_id"])})]
    await populate(docs, "reviewer_id")
    await populate(docs, "resource_id", "resource", {"title": 1})
    return docs
