import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from database import (
    create_document,
    find_by_id,
    get_db,
    get_documents,
    object_id,
    populate,
    serialize,
    session_kwargs,
    transaction,
)
from lifecycle import transition
from schemas import BookedBy, SkillRequest, SkillRequestIn, SkillRequestResponse
from security import get_user_from_token
from services import push_notification

logger = logging.getLogger(__name__)

router = APIRouter(tags=["skillrequests"])

DELETED_SKILL = {
    "id": "deleted",
    "title": "Deleted Skill",
    "description": "This skill has been deleted by the provider.",
    "location": "N/A",
}


async def requests_out(docs: list[dict]) -> list[dict]:
    out = [serialize(d) for d in docs]
    await populate(out, "skill_id", "skillsharing")
    for request in out:
        if request["skill"] is None or request["skill"].get("is_deleted"):
            request["skill"] = dict(DELETED_SKILL)
    await populate(out, "requester_id")
    await populate(out, "provider_id")
    return out


async def get_skill_request(request_id: str) -> dict:
    request = await find_by_id("skillrequest", request_id, "request ID")
    if not request:
        raise HTTPException(404, "Skill request not found")
    return request


async def release_skill(request: dict, session=None):
    """Make the skill bookable again if this request holds the booking."""
    db = await get_db()
    await db["skillsharing"].update_one(
        {"_id": object_id(request["skill_id"], "skill ID"), "booked_by.request_id": str(request["_id"])},
        {"$set": {"availability": "available", "booked_by": None, "updated_at": datetime.utcnow()}},
        **session_kwargs(session),
    )


@router.get("/")
async def list_skill_requests(current_user: dict = Depends(get_user_from_token)):
    user_id = str(current_user["_id"])
    docs = await get_documents("skillrequest", {"$or": [{"provider_id": user_id}, {"requester_id": user_id}]})
    return await requests_out(docs)


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_skill_request(body: SkillRequestIn, current_user: dict = Depends(get_user_from_token)):
    skill = await find_by_id("skillsharing", body.skill_id, "skill ID")
    if not skill:
        raise HTTPException(404, "Skill not found")
    if skill.get("availability") != "available":
        raise HTTPException(400, "This skill is currently unavailable")
    requester_id = str(current_user["_id"])
    if skill["user_id"] == requester_id:
        raise HTTPException(400, "You cannot request your own skill")
    db = await get_db()
    active = await db["skillrequest"].find_one(
        {"skill_id": str(skill["_id"]), "requester_id": requester_id, "status": {"$in": ["pending", "accepted"]}}
    )
    if active:
        raise HTTPException(400, "You already have an active request for this skill")

    doc = SkillRequest(
        skill_id=str(skill["_id"]),
        requester_id=requester_id,
        provider_id=skill["user_id"],
        message=body.message or "I'm interested in your skill!",
    ).model_dump()
    doc = await create_document("skillrequest", doc)
    await push_notification(
        skill["user_id"],
        f"{current_user['name']} requested your skill: {skill['title']}",
        "skill_request",
        resource_id=skill["_id"],
        action_by=requester_id,
        link="/skills/requests",
    )
    return (await requests_out([doc]))[0]


async def respond(request_id: str, body: SkillRequestResponse, current_user: dict) -> dict:
    request = await get_skill_request(request_id)
    if request["provider_id"] != str(current_user["_id"]):
        raise HTTPException(403, "Only the skill provider can respond")
    skill = await find_by_id("skillsharing", request["skill_id"], include_deleted=True)
    if not skill:
        raise HTTPException(404, "Skill not found")
    if body.status == "accepted" and skill.get("is_deleted"):
        raise HTTPException(400, "Skill has been deleted")
    if body.status == "accepted" and skill.get("booked_by"):
        raise HTTPException(400, "This skill is already booked")

    extra = {"response_message": body.response_message, "responded_at": datetime.utcnow()}
    async with transaction() as session:
        request = await transition("skillrequest", request, body.status, extra, session=session)
        if body.status == "accepted":
            requester = await find_by_id("user", request["requester_id"], include_deleted=True)
            booked_by = BookedBy(
                user_id=request["requester_id"],
                request_id=str(request["_id"]),
                name=requester["name"] if requester else "",
            ).model_dump()
            db = await get_db()
            booked = await db["skillsharing"].update_one(
                {"_id": skill["_id"], "booked_by": None},
                {"$set": {"availability": "unavailable", "booked_by": booked_by, "updated_at": datetime.utcnow()}},
                **session_kwargs(session),
            )
            if booked.modified_count == 0:
                raise HTTPException(400, "This skill is already booked")

    await push_notification(
        request["requester_id"],
        f'Your request for "{skill["title"]}" has been {body.status}',
        "skill_request_response",
        resource_id=skill["_id"],
        action_by=current_user["_id"],
        link="/skills/requests",
    )
    logger.info("Skill request %s %s", request["_id"], body.status)
    return (await requests_out([request]))[0]


@router.put("/{request_id}/respond")
async def respond_to_request(request_id: str, body: SkillRequestResponse, current_user: dict = Depends(get_user_from_token)):
    return await respond(request_id, body, current_user)


@router.put("/{request_id}/accept")
async def accept_request(
    request_id: str,
    response_message: Optional[str] = Body(None, embed=True, alias="responseMessage"),
    current_user: dict = Depends(get_user_from_token),
):
    return await respond(request_id, SkillRequestResponse(status="accepted", response_message=response_message), current_user)


@router.put("/{request_id}/reject")
async def reject_request(
    request_id: str,
    response_message: Optional[str] = Body(None, embed=True, alias="responseMessage"),
    current_user: dict = Depends(get_user_from_token),
):
    return await respond(request_id, SkillRequestResponse(status="rejected", response_message=response_message), current_user)


@router.put("/{request_id}/complete")
async def complete_request(request_id: str, current_user: dict = Depends(get_user_from_token)):
    request = await get_skill_request(request_id)
    if request["requester_id"] != str(current_user["_id"]):
        raise HTTPException(403, "Not authorized to complete this request")
    async with transaction() as session:
        request = await transition(
            "skillrequest", request, "completed", {"completed_at": datetime.utcnow()}, session=session
        )
        await release_skill(request, session=session)

    skill = await find_by_id("skillsharing", request["skill_id"], include_deleted=True)
    title = skill["title"] if skill else DELETED_SKILL["title"]
    await push_notification(
        request["provider_id"],
        f'{current_user["name"]} has marked the skill exchange for "{title}" as completed!',
        "skill_request_completed",
        resource_id=request["skill_id"],
        action_by=current_user["_id"],
        link="/reviews/pending",
    )
    return (await requests_out([request]))[0]


@router.put("/{request_id}/cancel")
async def cancel_request(request_id: str, current_user: dict = Depends(get_user_from_token)):
    request = await get_skill_request(request_id)
    if request["requester_id"] != str(current_user["_id"]):
        raise HTTPException(403, "Not authorized to cancel this request")
    async with transaction() as session:
        was_accepted = request["status"] == "accepted"
        request = await transition("skillrequest", request, "canceled", session=session)
        if was_accepted:
            await release_skill(request, session=session)
    return (await requests_out([request]))[0]
