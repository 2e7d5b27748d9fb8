"""MinIO media store: client setup, uploads and the trusted URL prefix"""
import logging
import uuid
from typing import BinaryIO

from minio import Minio
from minio.error import S3Error

from config import settings

logger = logging.getLogger(__name__)

MEDIA_FOLDER = "media"
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic"}


def get_minio_client() -> Minio:
    """Create and return a MinIO client instance"""
    return Minio(
        settings.MINIO_ENDPOINT,
        access_key=settings.MINIO_ACCESS_KEY,
        secret_key=settings.MINIO_SECRET_KEY,
        secure=settings.MINIO_SECURE
    )


def ensure_bucket_exists(client: Minio, bucket_name: str):
    """Create bucket if it doesn't exist"""
    try:
        if not client.bucket_exists(bucket_name):
            client.make_bucket(bucket_name)
            logger.info(f"Created MinIO bucket: {bucket_name}")
        else:
            logger.info(f"MinIO bucket exists: {bucket_name}")
    except S3Error as e:
        logger.error(f"Error ensuring bucket exists: {e}")
        raise


def media_url_prefix() -> str:
    """Public URL prefix every accepted media_url must start with"""
    if settings.MEDIA_PUBLIC_URL_PREFIX:
        return settings.MEDIA_PUBLIC_URL_PREFIX
    return (
        f"{settings.MINIO_EXTERNAL_SCHEME}://{settings.MINIO_EXTERNAL_ENDPOINT}/"
        f"{settings.MINIO_BUCKET}/{MEDIA_FOLDER}/"
    )


def normalize_extension(filename: str) -> str:
    ext = ""
    if filename and "." in filename:
        ext = "." + filename.rsplit(".", 1)[1].lower()
    return ext if ext in ALLOWED_EXTENSIONS else ".jpg"


def upload_media(client: Minio, data: BinaryIO, length: int, content_type: str, filename: str) -> str:
    """Store one media object and return its public URL"""
    name = f"{uuid.uuid4().hex}{normalize_extension(filename)}"
    client.put_object(
        bucket_name=settings.MINIO_BUCKET,
        object_name=f"{MEDIA_FOLDER}/{name}",
        data=data,
        length=length,
        content_type=content_type,
    )
    logger.info(f"Stored media object {MEDIA_FOLDER}/{name} ({length} bytes)")
    return f"{media_url_prefix()}{name}"
