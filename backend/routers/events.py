import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from database import create_document, find_by_id, get_db, get_documents, populate, serialize, touch
from schemas import Event, EventIn, EventUpdate, RsvpIn
from security import get_optional_user, get_user_from_token
from services import notify_many, push_notification

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


def utc_naive(value: datetime) -> datetime:
    # Mongo hands datetimes back as naive UTC
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


async def events_out(docs: list[dict]) -> list[dict]:
    out = [serialize(d) for d in docs]
    for event in out:
        event["attendee_count"] = len(event.get("attendees") or [])
    await populate(out, "host_id")
    return out


async def get_hosted_event(event_id: str, current_user: dict) -> dict:
    event = await find_by_id("event", event_id, "event ID")
    if not event:
        raise HTTPException(404, "Event not found")
    if event["host_id"] != str(current_user["_id"]):
        raise HTTPException(403, "Only the host can modify this event")
    return event


@router.get("/")
async def list_events(category: Optional[str] = None, timeframe: Optional[str] = None):
    filter_q = {"is_deleted": {"$ne": True}}
    if category and category != "All":
        filter_q["category"] = category
    now = datetime.utcnow()
    sort = [("date", 1)]
    if timeframe == "upcoming":
        filter_q["date"] = {"$gte": now}
    elif timeframe == "past":
        filter_q["date"] = {"$lt": now}
        sort = [("date", -1)]
    return await events_out(await get_documents("event", filter_q, sort=sort))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_event(body: EventIn, current_user: dict = Depends(get_user_from_token)):
    data = body.model_dump()
    data["date"] = utc_naive(data["date"])
    doc = Event(**data, host_id=str(current_user["_id"])).model_dump()
    doc = await create_document("event", doc)
    logger.info("Event %s created by %s", doc["_id"], doc["host_id"])
    return (await events_out([doc]))[0]


@router.get("/user/hosting")
async def hosting(current_user: dict = Depends(get_user_from_token)):
    docs = await get_documents(
        "event", {"host_id": str(current_user["_id"]), "is_deleted": {"$ne": True}}, sort=[("date", 1)]
    )
    return await events_out(docs)


@router.get("/user/attending")
async def attending(current_user: dict = Depends(get_user_from_token)):
    docs = await get_documents(
        "event",
        {"attendees": str(current_user["_id"]), "date": {"$gte": datetime.utcnow()}, "is_deleted": {"$ne": True}},
        sort=[("date", 1)],
    )
    return await events_out(docs)


async def add_attendee(event_id: str, current_user: dict) -> dict:
    event = await find_by_id("event", event_id, "event ID")
    if not event:
        raise HTTPException(404, "Event not found")
    if event["date"] < datetime.utcnow():
        raise HTTPException(400, "Cannot RSVP to past events")
    user_id = str(current_user["_id"])
    db = await get_db()
    result = await db["event"].update_one(
        {"_id": event["_id"], "attendees": {"$ne": user_id}},
        {"$push": {"attendees": user_id}, "$set": {"updated_at": datetime.utcnow()}},
    )
    if result.modified_count == 0:
        raise HTTPException(400, "You are already registered for this event")
    if event["host_id"] != user_id:
        await push_notification(
            event["host_id"],
            f"{current_user['name']} is attending your event: {event['title']}",
            "event_rsvp",
            resource_id=event["_id"],
            action_by=user_id,
            link=f"/events/{event['_id']}",
        )
    return (await events_out([await find_by_id("event", event["_id"])]))[0]


@router.post("/rsvp")
async def rsvp_legacy(body: RsvpIn, current_user: dict = Depends(get_user_from_token)):
    return await add_attendee(body.event_id, current_user)


@router.get("/{event_id}")
async def get_event(event_id: str, current_user: Optional[dict] = Depends(get_optional_user)):
    event = await find_by_id("event", event_id, "event ID")
    if not event:
        raise HTTPException(404, "Event not found")
    out = (await events_out([event]))[0]
    if current_user:
        user_id = str(current_user["_id"])
        out["is_host"] = event["host_id"] == user_id
        out["is_attending"] = user_id in event.get("attendees", [])
    return out


@router.put("/{event_id}")
async def update_event(event_id: str, body: EventUpdate, current_user: dict = Depends(get_user_from_token)):
    event = await get_hosted_event(event_id, current_user)
    updates = body.model_dump(exclude_none=True)
    if "date" in updates:
        updates["date"] = utc_naive(updates["date"])
    if not updates:
        return (await events_out([event]))[0]
    event = await touch("event", event["_id"], updates)
    await notify_many(
        [a for a in event.get("attendees", []) if a != event["host_id"]],
        f"The event {event['title']} has been updated",
        "event_update",
        resource_id=event["_id"],
        action_by=current_user["_id"],
        link=f"/events/{event['_id']}",
    )
    return (await events_out([event]))[0]


@router.delete("/{event_id}")
async def delete_event(event_id: str, current_user: dict = Depends(get_user_from_token)):
    event = await get_hosted_event(event_id, current_user)
    await touch("event", event["_id"], {"is_deleted": True})
    await notify_many(
        [a for a in event.get("attendees", []) if a != event["host_id"]],
        f"The event {event['title']} has been canceled",
        "event_canceled",
        resource_id=event["_id"],
        action_by=current_user["_id"],
    )
    return {"ok": True}


@router.post("/{event_id}/rsvp")
async def rsvp(event_id: str, current_user: dict = Depends(get_user_from_token)):
    return await add_attendee(event_id, current_user)


@router.delete("/{event_id}/rsvp")
async def cancel_rsvp(event_id: str, current_user: dict = Depends(get_user_from_token)):
    event = await find_by_id("event", event_id, "event ID")
    if not event:
        raise HTTPException(404, "Event not found")
    user_id = str(current_user["_id"])
    db = await get_db()
    result = await db["event"].update_one(
        {"_id": event["_id"], "attendees": user_id},
        {"$pull": {"attendees": user_id}, "$set": {"updated_at": datetime.utcnow()}},
    )
    if result.modified_count == 0:
        raise HTTPException(400, "You are not registered for this event")
    return (await events_out([await find_by_id("event", event["_id"])]))[0]
