import logging
from datetime import datetime, timedelta
from typing import Optional

from bson import ObjectId
from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext

from config import (
    SECRET_KEY,
    REFRESH_SECRET_KEY,
    ALGORITHM,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    REFRESH_TOKEN_EXPIRE_DAYS,
    BCRYPT_ROUNDS,
    is_production,
)
from database import get_db

logger = logging.getLogger(__name__)

REFRESH_COOKIE = "refreshToken"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))
    to_encode.update({"exp": expire, "type": "refresh"})
    return jwt.encode(to_encode, REFRESH_SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str, refresh: bool = False) -> Optional[str]:
    """Return the user id carried by a valid token, or None."""
    try:
        payload = jwt.decode(token, REFRESH_SECRET_KEY if refresh else SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        logger.debug("Token verification failed: %s", exc)
        return None
    expected = "refresh" if refresh else "access"
    if payload.get("type") != expected:
        return None
    user_id = payload.get("sub")
    if not user_id or not ObjectId.is_valid(user_id):
        return None
    return user_id


def set_refresh_cookie(response: Response, user_id: str):
    response.set_cookie(
        REFRESH_COOKIE,
        create_refresh_token({"sub": user_id}),
        httponly=True,
        secure=is_production(),
        samesite="strict",
        max_age=REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


def issue_tokens(response: Response, user: dict) -> dict:
    user_id = str(user["_id"])
    set_refresh_cookie(response, user_id)
    return {
        "access_token": create_access_token({"sub": user_id}),
        "token_type": "bearer",
    }


async def get_user_from_token(token: str = Depends(oauth2_scheme)) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user_id = decode_token(token)
    if user_id is None:
        raise credentials_exception
    db = await get_db()
    user = await db["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise credentials_exception
    if user.get("is_deleted"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "User account is deactivated")
    return user


async def get_optional_user(token: Optional[str] = Depends(optional_oauth2_scheme)) -> Optional[dict]:
    if not token:
        return None
    try:
        return await get_user_from_token(token)
    except HTTPException:
        return None


def refresh_user_id(request: Request) -> str:
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Refresh token required")
    user_id = decode_token(token, refresh=True)
    if user_id is None:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Invalid refresh token")
    return user_id
