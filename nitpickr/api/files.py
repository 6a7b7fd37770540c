"""
File upload API routes.

Uploaded files are written to the storage backend, recorded as
StoredFile rows and counted against the ``storage`` usage of the user.
"""

import logging
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.database import get_db
from nitpickr.infrastructure.redis import RedisClient
from nitpickr.infrastructure.storage import FileStorageService
from nitpickr.middleware.auth import get_current_active_user
from nitpickr.middleware.usage import get_redis
from nitpickr.models import StoredFile, User
from nitpickr.services.usage import record_usage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@lru_cache()
def get_storage() -> FileStorageService:
    return FileStorageService()


@router.post("/upload")
async def upload_files(
    files: Optional[List[UploadFile]] = File(None),
    db: AsyncSession = Depends(get_db),
    redis_client: RedisClient = Depends(get_redis),
    storage: FileStorageService = Depends(get_storage),
    current_user: User = Depends(get_current_active_user),
):
    """
    Store the uploaded ``files``.

    Raises:
        HTTPException: 400 if no file was sent
    """
    if not files:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files uploaded")

    user_id = current_user.id
    uploaded = []
    for upload in files:
        data = await upload.read()
        content_type = upload.content_type or "application/octet-stream"
        stored = await storage.upload_file(upload.filename or "upload", data, content_type)

        db_file = StoredFile(
            name=upload.filename or stored.key,
            key=stored.key,
            size=stored.size,
            content_type=content_type,
            user_id=user_id,
        )
        db.add(db_file)
        await db.commit()
        await db.refresh(db_file)

        uploaded.append(
            {
                "id": str(db_file.id),
                "name": db_file.name,
                "url": stored.url,
                "size": stored.size,
                "contentType": content_type,
            }
        )

        await record_usage(redis_client, db, str(user_id), "user", "storage", stored.size)

    logger.info(f"User {user_id} uploaded {len(uploaded)} file(s)")
    return uploaded
