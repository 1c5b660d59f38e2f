"""
Image uploads to Cloudinary.

Files in one request are uploaded concurrently and joined before the route
responds; the returned URLs keep the order the files were sent in.
"""
import asyncio
import io
import logging
from functools import lru_cache
from typing import List, Optional, Sequence

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from config import (CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET, CLOUDINARY_CLOUD_NAME,
                    UPLOAD_MAX_BYTES, UPLOAD_MAX_FILES)
from errors import UpstreamError, ValidationError

logger = logging.getLogger("elanstore.uploads")


class ImageUploader:
    def __init__(self, cloud_name: Optional[str] = None, api_key: Optional[str] = None,
                 api_secret: Optional[str] = None):
        self.configured = bool(cloud_name and api_key and api_secret)
        if self.configured:
            cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def upload(self, data: bytes, folder: str) -> str:
        if not self.configured:
            raise UpstreamError("Image storage is not configured")
        try:
            result = cloudinary.uploader.upload(io.BytesIO(data), folder=folder)
        except Exception as e:
            logger.warning("Upstream upload to %s failed: %r", folder, e)
            raise UpstreamError("Image upload failed") from e
        return result["secure_url"]


@lru_cache(maxsize=1)
def get_uploader() -> ImageUploader:
    return ImageUploader(CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET)


async def read_uploads(files: Optional[Sequence[UploadFile]], max_files: int = UPLOAD_MAX_FILES) -> List[bytes]:
    files = [f for f in files or [] if f.filename]
    if len(files) > max_files:
        raise ValidationError(f"At most {max_files} files allowed")
    blobs = []
    for f in files:
        data = await f.read()
        if len(data) > UPLOAD_MAX_BYTES:
            raise ValidationError(f"{f.filename} exceeds the {UPLOAD_MAX_BYTES // (1024 * 1024)}MB limit")
        blobs.append(data)
    return blobs


async def upload_all(uploader: ImageUploader, blobs: Sequence[bytes], folder: str) -> List[str]:
    if not blobs:
        return []
    urls = await asyncio.gather(*(run_in_threadpool(uploader.upload, b, folder) for b in blobs))
    return list(urls)
