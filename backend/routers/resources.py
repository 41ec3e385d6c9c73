import logging
import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from database import (
    create_document,
    find_by_id,
    get_db,
    get_documents,
    populate,
    serialize,
    session_kwargs,
    touch,
    transaction,
)
from lifecycle import transition
from realtime import broadcast
from schemas import (
    BorrowAction,
    BorrowIn,
    BorrowRequest,
    Resource,
    ResourceIn,
    ResourceUpdate,
    Transaction,
)
from security import get_user_from_token
from services import push_notification

logger = logging.getLogger(__name__)

router = APIRouter(tags=["resources"])


async def resource_out(doc: dict) -> dict:
    out = serialize(doc)
    await populate([out], "owner_id")
    await populate([out], "borrowed_by")
    return out


async def get_owned_resource(resource_id: str, current_user: dict) -> dict:
    resource = await find_by_id("resource", resource_id, "resource ID")
    if not resource:
        raise HTTPException(404, "Resource not found")
    if resource["owner_id"] != str(current_user["_id"]):
        raise HTTPException(403, "Not owner")
    return resource


async def open_transaction(resource: dict, borrower_id: str, borrow_request_id: str | None = None, session=None):
    """Hand the resource to the borrower and record the ongoing transaction."""
    now = datetime.utcnow()
    db = await get_db()
    claimed = await db["resource"].update_one(
        {"_id": resource["_id"], "availability": "available"},
        {"$set": {"availability": "borrowed", "borrowed_by": borrower_id, "updated_at": now}},
        **session_kwargs(session),
    )
    if claimed.modified_count == 0:
        raise HTTPException(400, "Resource is already borrowed")
    doc = Transaction(
        resource_id=str(resource["_id"]),
        owner_id=resource["owner_id"],
        borrower_id=borrower_id,
        borrow_request_id=borrow_request_id,
        borrowed_at=now,
    ).model_dump()
    return await create_document("transaction", doc, session=session)


# Resources

@router.get("/")
async def list_resources(q: Optional[str] = None, category: Optional[str] = None, availability: Optional[str] = None):
    filter_q = {"is_deleted": {"$ne": True}}
    if q:
        filter_q["title"] = {"$regex": re.escape(q), "$options": "i"}
    if category:
        filter_q["category"] = category
    if availability:
        filter_q["availability"] = availability
    docs = [serialize(d) for d in await get_documents("resource", filter_q)]
    await populate(docs, "owner_id")
    return docs


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_resource(body: ResourceIn, current_user: dict = Depends(get_user_from_token)):
    if body.availability == "borrowed":
        raise HTTPException(400, "A new resource cannot start out borrowed")
    doc = Resource(**body.model_dump(), owner_id=str(current_user["_id"])).model_dump()
    doc = await create_document("resource", doc)
    logger.info("Resource %s created by %s", doc["_id"], doc["owner_id"])
    return await resource_out(doc)


@router.get("/borrow-requests")
async def list_received_borrow_requests(current_user: dict = Depends(get_user_from_token)):
    docs = [
        serialize(d)
        for d in await get_documents("borrowrequest", {"owner_id": str(current_user["_id"]), "status": "pending"})
    ]
    await populate(docs, "resource_id", "resource", {"title": 1, "image": 1, "availability": 1})
    await populate(docs, "borrower_id")
    return docs


@router.get("/borrow-requests/sent")
async def list_sent_borrow_requests(current_user: dict = Depends(get_user_from_token)):
    docs = [serialize(d) for d in await get_documents("borrowrequest", {"borrower_id": str(current_user["_id"])})]
    await populate(docs, "resource_id", "resource", {"title": 1, "image": 1, "availability": 1})
    await populate(docs, "owner_id")
    return docs


@router.get("/transactions")
async def list_transactions(current_user: dict = Depends(get_user_from_token)):
    user_id = str(current_user["_id"])
    docs = [
        serialize(d)
        for d in await get_documents("transaction", {"$or": [{"owner_id": user_id}, {"borrower_id": user_id}]})
    ]
    await populate(docs, "resource_id", "resource", {"title": 1, "image": 1})
    await populate(docs, "owner_id")
    await populate(docs, "borrower_id")
    return docs


@router.post("/borrow")
async def borrow_resource(body: BorrowIn, current_user: dict = Depends(get_user_from_token)):
    resource = await find_by_id("resource", body.resource_id, "resource ID")
    if not resource:
        raise HTTPException(404, "Resource not found")
    borrower_id = str(current_user["_id"])
    if resource["owner_id"] == borrower_id:
        raise HTTPException(400, "You cannot borrow your own resource")
    if resource.get("availability") == "borrowed":
        raise HTTPException(400, "Resource is already borrowed")
    if resource.get("availability") != "available":
        raise HTTPException(400, "Resource is not available for borrowing")

    async with transaction() as session:
        txn = await open_transaction(resource, borrower_id, session=session)

    out = await resource_out(await find_by_id("resource", resource["_id"]))
    await broadcast("resource-updated", out)
    await push_notification(
        resource["owner_id"],
        f"{current_user['name']} borrowed your resource: {resource['title']}",
        "resource_borrowed",
        resource_id=resource["_id"],
        action_by=borrower_id,
    )
    return {"resource": out, "transaction": serialize(txn)}


@router.post("/borrow-request", status_code=status.HTTP_201_CREATED)
async def create_borrow_request(body: BorrowIn, current_user: dict = Depends(get_user_from_token)):
    resource = await find_by_id("resource", body.resource_id, "resource ID")
    if not resource:
        raise HTTPException(404, "Resource not found")
    if resource.get("availability") != "available":
        raise HTTPException(400, "Resource is not available for borrowing")
    borrower_id = str(current_user["_id"])
    if resource["owner_id"] == borrower_id:
        raise HTTPException(400, "You cannot borrow your own resource")
    db = await get_db()
    existing = await db["borrowrequest"].find_one(
        {"resource_id": str(resource["_id"]), "borrower_id": borrower_id, "status": "pending"}
    )
    if existing:
        raise HTTPException(400, "You already have a pending request for this resource")

    doc = BorrowRequest(
        resource_id=str(resource["_id"]),
        borrower_id=borrower_id,
        owner_id=resource["owner_id"],
        message=body.message,
    ).model_dump()
    doc = await create_document("borrowrequest", doc)
    await push_notification(
        resource["owner_id"],
        f"{current_user['name']} wants to borrow your resource: {resource['title']}",
        "borrow_request",
        resource_id=resource["_id"],
        action_by=borrower_id,
    )
    return serialize(doc)


@router.put("/borrow-request/{request_id}")
async def update_borrow_request(request_id: str, body: BorrowAction, current_user: dict = Depends(get_user_from_token)):
    if body.action not in ("approve", "decline"):
        raise HTTPException(400, "Invalid action")
    borrow_request = await find_by_id("borrowrequest", request_id, "borrow request ID")
    if not borrow_request:
        raise HTTPException(404, "Borrow request not found")
    resource = await find_by_id("resource", borrow_request["resource_id"])
    if not resource:
        raise HTTPException(404, "Resource not found")
    if resource["owner_id"] != str(current_user["_id"]):
        raise HTTPException(403, "Only the resource owner can update this request")

    if body.action == "decline":
        borrow_request = await transition("borrowrequest", borrow_request, "declined")
        await push_notification(
            borrow_request["borrower_id"],
            f"Your request to borrow {resource['title']} has been declined",
            "request_declined",
            resource_id=resource["_id"],
            action_by=current_user["_id"],
        )
        return {"borrow_request": serialize(borrow_request)}

    if resource.get("availability") != "available":
        raise HTTPException(400, "Resource is not available for borrowing")
    async with transaction() as session:
        borrow_request = await transition("borrowrequest", borrow_request, "approved", session=session)
        txn = await open_transaction(resource, borrow_request["borrower_id"], str(borrow_request["_id"]), session=session)

    out = await resource_out(await find_by_id("resource", resource["_id"]))
    await broadcast("resource-updated", out)
    await push_notification(
        borrow_request["borrower_id"],
        f"Your request to borrow {resource['title']} has been approved",
        "request_approved",
        resource_id=resource["_id"],
        action_by=current_user["_id"],
    )
    return {"borrow_request": serialize(borrow_request), "resource": out, "transaction": serialize(txn)}


@router.get("/{resource_id}")
async def get_resource(resource_id: str):
    resource = await find_by_id("resource", resource_id, "resource ID")
    if not resource:
        raise HTTPException(404, "Resource not found")
    return await resource_out(resource)


@router.put("/{resource_id}")
async def update_resource(resource_id: str, body: ResourceUpdate, current_user: dict = Depends(get_user_from_token)):
    resource = await get_owned_resource(resource_id, current_user)
    updates = body.model_dump(exclude_none=True)
    if "availability" in updates and resource.get("availability") == "borrowed":
        raise HTTPException(400, "Resource is currently borrowed")
    if not updates:
        return await resource_out(resource)
    return await resource_out(await touch("resource", resource["_id"], updates))


@router.delete("/{resource_id}")
async def delete_resource(resource_id: str, current_user: dict = Depends(get_user_from_token)):
    resource = await get_owned_resource(resource_id, current_user)
    if resource.get("availability") == "borrowed":
        raise HTTPException(400, "Resource is currently borrowed")
    await touch("resource", resource["_id"], {"is_deleted": True})
    return {"ok": True}


@router.put("/{resource_id}/return")
async def return_resource(resource_id: str, current_user: dict = Depends(get_user_from_token)):
    resource = await find_by_id("resource", resource_id, "resource ID")
    if not resource:
        raise HTTPException(404, "Resource not found")
    user_id = str(current_user["_id"])
    if user_id not in (resource["owner_id"], resource.get("borrowed_by")):
        raise HTTPException(403, "Not participant")
    db = await get_db()
    txn = await db["transaction"].find_one({"resource_id": str(resource["_id"]), "status": "ongoing"})
    if not txn or resource.get("availability") != "borrowed":
        raise HTTPException(400, "Resource is not currently borrowed")

    async with transaction() as session:
        txn = await transition("transaction", txn, "returned", {"returned_at": datetime.utcnow()}, session=session)
        await touch("resource", resource["_id"], {"availability": "available"}, session=session, unset={"borrowed_by": ""})

    out = await resource_out(await find_by_id("resource", resource["_id"]))
    await broadcast("resource-updated", out)
    other = txn["borrower_id"] if user_id == txn["owner_id"] else txn["owner_id"]
    await push_notification(
        other,
        f"{resource['title']} has been returned",
        "resource_returned",
        resource_id=resource["_id"],
        action_by=user_id,
        link="/reviews/pending",
    )
    return {"resource": out, "transaction": serialize(txn)}
