"""
MinIO storage for employee profile images
"""
from minio import Minio
from minio.error import S3Error
from fastapi import HTTPException, UploadFile, status
from functools import lru_cache
from uuid import UUID, uuid4
import io
import json
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def extension_for(content_type: str) -> str:
    """File extension for an image MIME type, falling back to its subtype"""
    if content_type in EXTENSIONS:
        return EXTENSIONS[content_type]
    subtype = content_type.split("/", 1)[-1].split(";", 1)[0].strip()
    return subtype or "bin"


class ImageStorage:
    """Uploads images to a public-read MinIO bucket"""

    def __init__(self):
        self.client = Minio(
            settings.minio_endpoint,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_USE_SSL
        )
        self.bucket_name = settings.MINIO_BUCKET_NAME
        self._bucket_ready = False

    def _ensure_bucket_exists(self):
        """Create the bucket on first use and open it for anonymous reads"""
        if self._bucket_ready:
            return
        try:
            if not self.client.bucket_exists(self.bucket_name):
                self.client.make_bucket(self.bucket_name)
                logger.info(f"Created MinIO bucket: {self.bucket_name}")

            policy = {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"AWS": ["*"]},
                        "Action": ["s3:GetObject"],
                        "Resource": [f"arn:aws:s3:::{self.bucket_name}/*"]
                    }
                ]
            }
            self.client.set_bucket_policy(self.bucket_name, json.dumps(policy))
            self._bucket_ready = True

        except S3Error as e:
            logger.error(f"MinIO bucket setup error: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="File storage service unavailable"
            )

    def public_url(self, key: str) -> str:
        scheme = "https" if settings.MINIO_USE_SSL else "http"
        return f"{scheme}://{settings.minio_public_endpoint}/{self.bucket_name}/{key}"

    def upload_employee_image(self, employee_id: UUID, file: UploadFile) -> str:
        """
        Store a profile image and return its public URL.
        """
        if file.content_type not in settings.ALLOWED_IMAGE_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Image type {file.content_type} not allowed"
            )

        data = file.file.read()
        if len(data) > settings.MAX_IMAGE_SIZE:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Image exceeds the maximum size of {settings.MAX_IMAGE_SIZE // (1024 * 1024)}MB"
            )

        self._ensure_bucket_exists()
        key = f"employees/{employee_id}/{uuid4()}.{extension_for(file.content_type)}"
        try:
            self.client.put_object(
                bucket_name=self.bucket_name,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type=file.content_type
            )
        except S3Error as e:
            logger.error(f"MinIO upload error for {key}: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Could not upload image"
            )

        logger.info(f"Uploaded employee image {key}")
        return self.public_url(key)

    def delete_by_url(self, url: str) -> bool:
        prefix = f"/{self.bucket_name}/"
        if prefix not in url:
            return False
        key = url.split(prefix, 1)[1]
        try:
            self.client.remove_object(self.bucket_name, key)
            return True
        except S3Error as e:
            logger.error(f"MinIO file deletion error: {e}")
            return False


@lru_cache
def get_image_storage() -> ImageStorage:
    return ImageStorage()
