import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from database import create_document, find_by_id, get_documents, populate, serialize, touch
from schemas import SkillIn, SkillSettings, SkillSharing, SkillUpdate
from security import get_user_from_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["skillsharings"])


async def skills_out(docs: list[dict]) -> list[dict]:
    out = [serialize(d) for d in docs]
    await populate(out, "user_id")
    return out


async def get_own_skill(skill_id: str, current_user: dict) -> dict:
    skill = await find_by_id("skillsharing", skill_id, "skill ID")
    if not skill:
        raise HTTPException(404, "Skill not found")
    if skill["user_id"] != str(current_user["_id"]):
        raise HTTPException(403, "Not authorized to modify this skill")
    return skill


@router.get("/")
async def list_skills(category: Optional[str] = None, availability: Optional[str] = None):
    filter_q = {"is_deleted": {"$ne": True}}
    if category:
        filter_q["category"] = category
    if availability:
        filter_q["availability"] = availability
    return await skills_out(await get_documents("skillsharing", filter_q))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_skill(body: SkillIn, current_user: dict = Depends(get_user_from_token)):
    doc = SkillSharing(**body.model_dump(), user_id=str(current_user["_id"])).model_dump()
    doc = await create_document("skillsharing", doc)
    logger.info("Skill %s shared by %s", doc["_id"], doc["user_id"])
    return (await skills_out([doc]))[0]


@router.get("/{skill_id}")
async def get_skill(skill_id: str):
    skill = await find_by_id("skillsharing", skill_id, "skill ID")
    if not skill:
        raise HTTPException(404, "Skill not found")
    return (await skills_out([skill]))[0]


@router.put("/{skill_id}")
async def update_skill(skill_id: str, body: SkillUpdate, current_user: dict = Depends(get_user_from_token)):
    skill = await get_own_skill(skill_id, current_user)
    updates = body.model_dump(exclude_none=True)
    if updates:
        skill = await touch("skillsharing", skill["_id"], updates)
    return (await skills_out([skill]))[0]


@router.delete("/{skill_id}")
async def delete_skill(skill_id: str, current_user: dict = Depends(get_user_from_token)):
    skill = await get_own_skill(skill_id, current_user)
    await touch("skillsharing", skill["_id"], {"is_deleted": True})
    return {"ok": True}


@router.get("/{skill_id}/requests")
async def skill_requests(skill_id: str, current_user: dict = Depends(get_user_from_token)):
    skill = await get_own_skill(skill_id, current_user)
    docs = [serialize(d) for d in await get_documents("skillrequest", {"skill_id": str(skill["_id"])})]
    await populate(docs, "requester_id")
    return docs


@router.put("/{skill_id}/settings")
async def skill_settings(skill_id: str, body: SkillSettings, current_user: dict = Depends(get_user_from_token)):
    skill = await get_own_skill(skill_id, current_user)
    if body.availability == "available" and skill.get("booked_by"):
        raise HTTPException(400, "Skill is currently booked")
    skill = await touch("skillsharing", skill["_id"], {"availability": body.availability})
    return (await skills_out([skill]))[0]
