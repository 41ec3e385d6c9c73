import logging

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pymongo.errors import DuplicateKeyError

from config import AUTH_RATE_LIMIT, AUTH_RATE_WINDOW
from database import get_db, create_document, touch
from ratelimit import RateLimiter
from schemas import User, RegisterIn, LoginIn, ProfileUpdate
from security import (
    REFRESH_COOKIE,
    create_access_token,
    get_user_from_token,
    hash_password,
    issue_tokens,
    refresh_user_id,
    verify_password,
)

logger = logging.getLogger(__name__)

auth_limiter = RateLimiter("auth", AUTH_RATE_LIMIT, AUTH_RATE_WINDOW)

router = APIRouter(tags=["auth"], dependencies=[Depends(auth_limiter)])


def public_user(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "avatar": user.get("avatar", ""),
        "role": user.get("role", "user"),
        "trust_score": user.get("trust_score"),
        "total_reviews": user.get("total_reviews", 0),
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterIn, response: Response):
    db = await get_db()
    email = body.email.lower()
    existing = await db["user"].find_one({"email": email})
    if existing:
        raise HTTPException(400, "Email already registered")
    user_doc = User(name=body.name, email=email, password=hash_password(body.password)).model_dump()
    try:
        user_doc = await create_document("user", user_doc)
    except DuplicateKeyError:
        raise HTTPException(400, "Email already registered")
    logger.info("Registered user %s", user_doc["_id"])
    return {**issue_tokens(response, user_doc), "user": public_user(user_doc)}


@router.post("/login")
async def login(body: LoginIn, response: Response):
    db = await get_db()
    user = await db["user"].find_one({"email": body.email.lower()})
    if not user or not verify_password(body.password, user.get("password", "")):
        raise HTTPException(401, "Invalid credentials")
    if user.get("is_deleted"):
        raise HTTPException(403, "User account is deactivated")
    return {**issue_tokens(response, user), "user": public_user(user)}


@router.post("/refresh-token")
async def refresh_token(request: Request):
    user_id = refresh_user_id(request)
    db = await get_db()
    user = await db["user"].find_one({"_id": ObjectId(user_id)})
    if not user or user.get("is_deleted"):
        raise HTTPException(403, "Invalid refresh token")
    return {"access_token": create_access_token({"sub": user_id}), "token_type": "bearer"}


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(REFRESH_COOKIE)
    return {"ok": True}


@router.get("/me")
async def me(current_user: dict = Depends(get_user_from_token)):
    return public_user(current_user)


async def apply_profile_update(current_user: dict, body: ProfileUpdate) -> dict:
    updates = {}
    if body.name:
        updates["name"] = body.name
    if body.avatar is not None:
        updates["avatar"] = body.avatar
    if body.email and body.email.lower() != current_user["email"]:
        db = await get_db()
        if await db["user"].find_one({"email": body.email.lower()}):
            raise HTTPException(400, "Email already registered")
        updates["email"] = body.email.lower()
    if body.password:
        updates["password"] = hash_password(body.password)
    if not updates:
        return current_user
    try:
        return await touch("user", current_user["_id"], updates)
    except DuplicateKeyError:
        raise HTTPException(400, "Email already registered")


@router.put("/profile")
async def update_profile(body: ProfileUpdate, current_user: dict = Depends(get_user_from_token)):
    user = await apply_profile_update(current_user, body)
    return public_user(user)