import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from database import create_document, find_by_id, get_db, get_documents, populate, serialize, touch
from lifecycle import transition
from schemas import HelpRequest, HelpRequestIn, HelpRequestUpdate
from security import get_user_from_token
from services import push_notification

logger = logging.getLogger(__name__)

router = APIRouter(tags=["helprequests"])


async def help_out(docs: list[dict]) -> list[dict]:
    out = [serialize(d) for d in docs]
    await populate(out, "requester_id")
    await populate(out, "helper_id")
    return out


async def get_help_request(request_id: str) -> dict:
    help_request = await find_by_id("helprequest", request_id, "help request ID")
    if not help_request:
        raise HTTPException(404, "Help request not found")
    return help_request


def require_requester(help_request: dict, current_user: dict):
    if help_request["requester_id"] != str(current_user["_id"]):
        raise HTTPException(403, "Not authorized to modify this help request")


@router.get("/")
async def list_help_requests(
    category: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    filter_q = {"is_deleted": {"$ne": True}}
    if category:
        filter_q["category"] = category
    if status_filter:
        filter_q["status"] = status_filter
    db = await get_db()
    total = await db["helprequest"].count_documents(filter_q)
    docs = await get_documents("helprequest", filter_q, limit=limit, skip=(page - 1) * limit)
    return {
        "items": await help_out(docs),
        "pagination": {"total": total, "page": page, "limit": limit, "pages": math.ceil(total / limit)},
    }


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_help_request(body: HelpRequestIn, current_user: dict = Depends(get_user_from_token)):
    doc = HelpRequest(**body.model_dump(), requester_id=str(current_user["_id"])).model_dump()
    doc = await create_document("helprequest", doc)
    logger.info("Help request %s created by %s", doc["_id"], doc["requester_id"])
    return (await help_out([doc]))[0]


@router.get("/user/my-requests")
async def my_requests(
    request_type: str = Query("all", alias="type", pattern="^(requested|helping|all)$"),
    current_user: dict = Depends(get_user_from_token),
):
    user_id = str(current_user["_id"])
    if request_type == "requested":
        filter_q = {"requester_id": user_id}
    elif request_type == "helping":
        filter_q = {"helper_id": user_id}
    else:
        filter_q = {"$or": [{"requester_id": user_id}, {"helper_id": user_id}]}
    filter_q["is_deleted"] = {"$ne": True}
    return await help_out(await get_documents("helprequest", filter_q))


@router.get("/{request_id}")
async def get_help_request_detail(request_id: str):
    return (await help_out([await get_help_request(request_id)]))[0]


@router.put("/{request_id}")
async def update_help_request(request_id: str, body: HelpRequestUpdate, current_user: dict = Depends(get_user_from_token)):
    help_request = await get_help_request(request_id)
    require_requester(help_request, current_user)
    updates = body.model_dump(exclude_none=True)
    new_status = updates.pop("status", None)
    if updates and help_request["status"] != "pending":
        raise HTTPException(400, "Only pending help requests can be edited")
    if updates:
        help_request = await touch("helprequest", help_request["_id"], updates)
    if new_status:
        help_request = await transition("helprequest", help_request, new_status)
    return (await help_out([help_request]))[0]


@router.delete("/{request_id}")
async def delete_help_request(request_id: str, current_user: dict = Depends(get_user_from_token)):
    help_request = await get_help_request(request_id)
    require_requester(help_request, current_user)
    await touch("helprequest", help_request["_id"], {"is_deleted": True})
    return {"ok": True}


@router.put("/{request_id}/offer-help")
async def offer_help(request_id: str, current_user: dict = Depends(get_user_from_token)):
    help_request = await get_help_request(request_id)
    helper_id = str(current_user["_id"])
    if help_request["requester_id"] == helper_id:
        raise HTTPException(400, "You cannot offer help on your own request")
    help_request = await transition("helprequest", help_request, "in-progress", {"helper_id": helper_id})
    await push_notification(
        help_request["requester_id"],
        f"{current_user['name']} offered to help with: {help_request['title']}",
        "help_offered",
        resource_id=help_request["_id"],
        action_by=helper_id,
        link=f"/help/{help_request['_id']}",
    )
    return (await help_out([help_request]))[0]


@router.put("/{request_id}/complete")
async def complete_help_request(request_id: str, current_user: dict = Depends(get_user_from_token)):
    help_request = await get_help_request(request_id)
    require_requester(help_request, current_user)
    help_request = await transition("helprequest", help_request, "completed")
    if help_request.get("helper_id"):
        await push_notification(
            help_request["helper_id"],
            f"{current_user['name']} marked the help request as completed: {help_request['title']}",
            "help_completed",
            resource_id=help_request["_id"],
            action_by=current_user["_id"],
        )
    return (await help_out([help_request]))[0]
