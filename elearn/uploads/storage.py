"""
Media storage on an S3 compatible object store (AWS S3 or MinIO)
"""

import io
import logging
import mimetypes
import os
import uuid
from typing import Optional

from minio import Minio
from minio.error import S3Error

from elearn.core import config

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm"}


class StorageError(Exception):
    pass


class MediaStorage:
    def __init__(self, endpoint: str = None, access_key: str = None, secret_key: str = None,
                 bucket: str = None, region: str = None, secure: Optional[bool] = None):
        self.endpoint = endpoint or config.STORAGE_ENDPOINT
        self.bucket = bucket or config.STORAGE_BUCKET
        self.region = region or config.STORAGE_REGION
        self.secure = config.STORAGE_SECURE if secure is None else secure
        self.client = Minio(
            endpoint=self.endpoint,
            access_key=access_key if access_key is not None else config.STORAGE_ACCESS_KEY,
            secret_key=secret_key if secret_key is not None else config.STORAGE_SECRET_KEY,
            secure=self.secure,
            region=self.region,
        )

    def object_url(self, object_name: str) -> str:
        if self.endpoint.endswith("amazonaws.com"):
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{object_name}"
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.endpoint}/{self.bucket}/{object_name}"

    def upload_bytes(self, data: bytes, filename: str, content_type: Optional[str] = None) -> dict:
        """Store the file under a unique object name and return its public url"""
        safe_name = os.path.basename(filename).replace(" ", "_") or "upload"
        object_name = f"{uuid.uuid4().hex[:12]}-{safe_name}"
        content_type = content_type or mimetypes.guess_type(safe_name)[0] or "application/octet-stream"

        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
            self.client.put_object(
                self.bucket,
                object_name,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as e:
            logger.error("Upload of %s failed: %s", safe_name, e)
            raise StorageError("Failed to upload to storage")

        logger.info("Uploaded %s (%d bytes)", object_name, len(data))
        return {"url": self.object_url(object_name), "object_name": object_name}


def is_video(filename: str) -> bool:
    return os.path.splitext(filename or "")[1].lower() in VIDEO_EXTENSIONS


_storage: Optional[MediaStorage] = None


def get_storage() -> MediaStorage:
    """FastAPI dependency; the client is created on first use"""
    global _storage
    if _storage is None:
        _storage = MediaStorage()
    return _storage
