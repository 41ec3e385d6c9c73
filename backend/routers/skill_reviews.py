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
from schemas import SkillReview, SkillReviewIn
from security import get_user_from_token
from services import push_notification
from trust import apply_rating

router = APIRouter(tags=["skillreviews"])

ALREADY_REVIEWED = "You have already submitted a review for this skill exchange"


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_skill_review(body: SkillReviewIn, current_user: dict = Depends(get_user_from_token)):
    request = await find_by_id("skillrequest", body.request_id, "request ID")
    if not request:
        raise HTTPException(404, "Skill request not found")
    if request["status"] != "completed":
        raise HTTPException(
            400, f"Cannot review a request that is not completed. Current status: {request['status']}"
        )
    reviewer_id = str(current_user["_id"])
    if reviewer_id == request["requester_id"]:
        role, flag, reviewed_user_id = "requester", "requester_reviewed", request["provider_id"]
    elif reviewer_id == request["provider_id"]:
        role, flag, reviewed_user_id = "provider", "provider_reviewed", request["requester_id"]
    else:
        raise HTTPException(403, "You can only review skill exchanges you were involved in")
    if request.get(flag):
        raise HTTPException(400, ALREADY_REVIEWED)

    doc = SkillReview(
        request_id=str(request["_id"]),
        skill_id=request["skill_id"],
        reviewer_id=reviewer_id,
        reviewed_user_id=reviewed_user_id,
        rating=body.rating,
        comment=body.comment,
        reviewer_role=role,
    ).model_dump()
    db = await get_db()
    try:
        async with transaction() as session:
            marked = await db["skillrequest"].update_one(
                {"_id": request["_id"], flag: {"$ne": True}},
                {"$set": {flag: True, "updated_at": datetime.utcnow()}},
                **session_kwargs(session),
            )
            if marked.modified_count == 0:
                raise HTTPException(400, ALREADY_REVIEWED)
            doc = await create_document("skillreview", doc, session=session)
            await apply_rating(reviewed_user_id, body.rating, session=session)
    except DuplicateKeyError:
        raise HTTPException(400, ALREADY_REVIEWED)

    await push_notification(
        reviewed_user_id,
        f"{current_user['name']} reviewed your skill exchange ({body.rating} stars)",
        "skill_review",
        resource_id=request["skill_id"],
        action_by=reviewer_id,
    )
    return serialize(doc)


@router.get("/pending")
async def pending_skill_reviews(current_user: dict = Depends(get_user_from_token)):
    user_id = str(current_user["_id"])
    as_requester = await get_documents(
        "skillrequest", {"requester_id": user_id, "status": "completed", "requester_reviewed": {"$ne": True}}
    )
    as_provider = await get_documents(
        "skillrequest", {"provider_id": user_id, "status": "completed", "provider_reviewed": {"$ne": True}}
    )
    result = {}
    for key, docs, other in (
        ("pending_as_requester", as_requester, "provider_id"),
        ("pending_as_provider", as_provider, "requester_id"),
    ):
        out = [serialize(d) for d in docs]
        await populate(out, "skill_id", "skillsharing", {"title": 1, "is_deleted": 1})
        await populate(out, other)
        result[key] = [r for r in out if r["skill"] and not r["skill"].get("is_deleted")]
    return result


@router.get("/user/{user_id}")
async def user_skill_reviews(user_id: str):
    user = await find_by_id("user", user_id, "user ID")
    if not user:
        raise HTTPException(404, "User not found")
    docs = [serialize(d) for d in await get_documents("skillreview", {"reviewed_user_id": str(user["_id"])})]
    await populate(docs, "reviewer_id")
    await populate(docs, "skill_id", "skillsharing", {"title": 1})
    return docs


@router.get("/skill/{skill_id}")
async def skill_reviews(skill_id: str):
    skill = await find_by_id("skillsharing", skill_id, "skill ID")
    if not skill:
        raise HTTPException(404, "Skill not found or has been deleted")
    docs = [serialize(d) for d in await get_documents("skillreview", {"skill_id": str(skill["_id"])})]
    await populate(docs, "reviewer_id")
    return docs
