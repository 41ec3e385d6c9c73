import logging
from contextlib import asynccontextmanager
from datetime import datetime

import pymongo
from bson import ObjectId
from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorClient

from config import DATABASE_URL, DATABASE_NAME, MONGO_TRANSACTIONS

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None
_db = None

USER_SUMMARY = {"name": 1, "email": 1, "trust_score": 1, "avatar": 1}


async def get_db():
    global _client, _db
    if _db is None:
        _client = AsyncIOMotorClient(DATABASE_URL)
        _db = _client[DATABASE_NAME]
        logger.info("Connected to MongoDB database %s", DATABASE_NAME)
    return _db


def set_db(db, client=None):
    """Point the module at an existing database handle (tests, scripts)."""
    global _client, _db
    _db = db
    _client = client


def close_db():
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


@asynccontextmanager
async def transaction():
    """Yield a session bound to a transaction, or None on standalone servers.

    Writes made with the yielded session are committed together when the
    block exits cleanly and aborted when it raises.
    """
    if not MONGO_TRANSACTIONS or _client is None:
        yield None
        return
    async with await _client.start_session() as session:
        async with session.start_transaction():
            yield session


def session_kwargs(session) -> dict:
    return {"session": session} if session is not None else {}


def object_id(value: str, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(str(value)):
        raise HTTPException(400, f"Invalid {label} format")
    return ObjectId(str(value))


def serialize(doc: dict | None) -> dict | None:
    if doc is None:
        return None
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    doc.pop("password", None)
    return doc


async def create_document(collection_name: str, data: dict, session=None):
    db = await get_db()
    now = datetime.utcnow()
    data["created_at"] = now
    data["updated_at"] = now
    res = await db[collection_name].insert_one(data, **session_kwargs(session))
    data["_id"] = res.inserted_id
    return data


async def get_documents(
    collection_name: str,
    filter_dict: dict | None = None,
    limit: int | None = None,
    skip: int = 0,
    sort: list | None = None,
):
    db = await get_db()
    cursor = db[collection_name].find(
        filter_dict or {}, sort=sort or [("created_at", -1)], skip=skip, limit=limit or 0
    )
    return [doc async for doc in cursor]


async def find_by_id(collection_name: str, doc_id: str, label: str = "id", include_deleted: bool = False):
    db = await get_db()
    doc = await db[collection_name].find_one({"_id": object_id(doc_id, label)})
    if doc is not None and doc.get("is_deleted") and not include_deleted:
        return None
    return doc


async def touch(collection_name: str, doc_id, updates: dict, session=None, unset: dict | None = None):
    """$set ``updates`` (plus updated_at) on one document and return it."""
    db = await get_db()
    change = {"$set": {**updates, "updated_at": datetime.utcnow()}}
    if unset:
        change["$unset"] = unset
    await db[collection_name].update_one({"_id": object_id(doc_id)}, change, **session_kwargs(session))
    return await db[collection_name].find_one({"_id": object_id(doc_id)}, **session_kwargs(session))


async def populate(docs: list[dict], field: str, collection_name: str = "user", projection: dict | None = None):
    """Resolve a string foreign key into an embedded summary document.

    ``owner_id`` is embedded as ``owner``; unresolved references become None.
    Documents are modified in place and returned.
    """
    ids = {d.get(field) for d in docs if d.get(field) and ObjectId.is_valid(str(d.get(field)))}
    found = {}
    if ids:
        db = await get_db()
        cursor = db[collection_name].find(
            {"_id": {"$in": [ObjectId(i) for i in ids]}},
            projection or (USER_SUMMARY if collection_name == "user" else None),
        )
        found = {str(d["_id"]): serialize(d) async for d in cursor}
    target = field[:-3] if field.endswith("_id") else field + "_doc"
    for d in docs:
        d[target] = found.get(str(d.get(field))) if d.get(field) else None
    return docs


async def ensure_indexes():
    db = await get_db()
    await db["user"].create_index("email", unique=True)
    await db["userstatus"].create_index("user_id", unique=True)
    await db["review"].create_index([("transaction_id", pymongo.ASCENDING), ("reviewer_id", pymongo.ASCENDING)], unique=True)
    await db["skillreview"].create_index([("request_id", pymongo.ASCENDING), ("reviewer_id", pymongo.ASCENDING)], unique=True)
    await db["helprequest"].create_index([("title", pymongo.ASCENDING), ("category", pymongo.ASCENDING)])
    await db["message"].create_index(
        [("sender_id", pymongo.ASCENDING), ("recipient_id", pymongo.ASCENDING), ("created_at", pymongo.ASCENDING)]
    )
    await db["notification"].create_index([("user_id", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)])
    logger.info("Database indexes ensured")
