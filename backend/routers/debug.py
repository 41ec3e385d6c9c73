import logging
import os
import random
import time
from datetime import datetime

from fastapi import APIRouter, File, HTTPException, UploadFile

import config

logger = logging.getLogger(__name__)

router = APIRouter(tags=["debug"])


def upload_filename(content_type: str) -> str:
    ext = config.ALLOWED_UPLOAD_TYPES[content_type]
    return f"resource-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"


@router.post("/test-upload")
async def test_upload(image: UploadFile = File(...)):
    if image.content_type not in config.ALLOWED_UPLOAD_TYPES:
        raise HTTPException(400, "Only JPEG, PNG and GIF images are allowed")
    data = await image.read(config.MAX_UPLOAD_BYTES + 1)
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(413, "File is too large")

    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    filename = upload_filename(image.content_type)
    with open(os.path.join(config.UPLOAD_DIR, filename), "wb") as f:
        f.write(data)
    logger.info("Stored upload %s (%d bytes)", filename, len(data))
    return {"db_path": f"uploads/{filename}", "url": f"/uploads/{filename}"}


@router.get("/files-json")
async def files_json():
    if not os.path.isdir(config.UPLOAD_DIR):
        raise HTTPException(404, "Uploads directory not found")
    files = []
    for name in sorted(os.listdir(config.UPLOAD_DIR)):
        stat = os.stat(os.path.join(config.UPLOAD_DIR, name))
        files.append({
            "name": name,
            "size": stat.st_size,
            "created": datetime.utcfromtimestamp(stat.st_ctime),
            "url": f"/uploads/{name}",
        })
    return {"count": len(files), "directory_path": config.UPLOAD_DIR, "files": files}
