import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from config import API_PREFIX, FRONTEND_URL, LEGACY_ROUTES, UPLOAD_DIR
from database import close_db, ensure_indexes, get_db
from logging_config import configure_logging
from realtime import sio
from routers import (
    auth,
    dashboard,
    debug,
    events,
    help_requests,
    messages,
    notifications,
    resources,
    reviews,
    skill_requests,
    skill_reviews,
    skills,
    user_status,
    users,
)
import sockets  # noqa: F401  registers the Socket.IO handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await ensure_indexes()
    yield
    close_db()


app = FastAPI(title="Community Connect API", lifespan=lifespan)

# CORS
origins = [
    FRONTEND_URL,
    "http://localhost:5050",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    logger.info(
        "%s %s %s %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        (time.time() - start_time) * 1000,
    )
    return response


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# (prefix, router, also served under the unversioned legacy prefix)
ROUTES = [
    ("/auth", auth.router, True),
    ("/users", users.router, True),
    ("/events", events.router, True),
    ("/helprequests", help_requests.router, True),
    ("/resources", resources.router, True),
    ("/skillsharings", skills.router, True),
    ("/messages", messages.router, True),
    ("/skillrequests", skill_requests.router, False),
    ("/reviews", reviews.router, False),
    ("/skillreviews", skill_reviews.router, False),
    ("/notifications", notifications.router, False),
    ("/user-status", user_status.router, False),
    ("/dashboard", dashboard.router, False),
]

for prefix, router, legacy in ROUTES:
    app.include_router(router, prefix=API_PREFIX + prefix)
    if legacy and LEGACY_ROUTES:
        app.include_router(router, prefix=prefix, include_in_schema=False)

app.include_router(debug.router, prefix="/debug")


@app.get(API_PREFIX)
async def welcome():
    return {"message": "Welcome to the Community Connect API"}


@app.get(API_PREFIX + "/health")
async def health():
    return {"status": "ok", "timestamp": datetime.utcnow()}


@app.get(API_PREFIX + "/health/db")
async def health_db():
    db = await get_db()
    # A simple ping to ensure we can talk to the database
    await db.command("ping")
    return {"ok": True, "message": "Database connected"}


os.makedirs(UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")

# Socket.IO shares the port with the API: uvicorn main:asgi_app
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
