"""
Profile photo storage on an S3-compatible object store (MinIO, R2, S3).

Falls back to local disk if the object store is not configured. Only the
returned reference string is ever persisted on the user.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional

import aiofiles
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storefront_auth.core.config import Settings
from storefront_auth.core.errors import PhotoUploadFailed

logger = logging.getLogger(__name__)

PHOTO_PREFIX = "users"
MEDIA_ROUTE = "/api/media/users"


class StorageService:
    """
    Unified photo storage that supports both local and cloud storage.

    If S3 credentials are configured, photos go to the bucket.
    Otherwise, photos are written under ``upload_dir/users`` (for development).
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.use_cloud = self._is_cloud_configured()
        self.local_dir = Path(settings.upload_dir) / PHOTO_PREFIX

        if self.use_cloud:
            self._init_s3_client()
            logger.info("Storage: Using S3-compatible object storage")
        else:
            logger.info("Storage: Using local file storage (object store not configured)")

    def _is_cloud_configured(self) -> bool:
        """Check if object store credentials are configured."""
        return bool(
            self.settings.s3_endpoint_url and
            self.settings.s3_access_key_id and
            self.settings.s3_secret_access_key and
            self.settings.s3_bucket_name
        )

    def _init_s3_client(self):
        self.s3_client = boto3.client(
            's3',
            endpoint_url=self.settings.s3_endpoint_url,
            aws_access_key_id=self.settings.s3_access_key_id,
            aws_secret_access_key=self.settings.s3_secret_access_key,
            config=Config(
                signature_version='s3v4',
                retries={'max_attempts': 3, 'mode': 'standard'}
            ),
        )
        self.bucket_name = self.settings.s3_bucket_name

    async def ensure_bucket(self) -> None:
        """Create the bucket if missing. Called once at startup."""
        if not self.use_cloud:
            self.local_dir.mkdir(parents=True, exist_ok=True)
            return

        def _ensure():
            try:
                self.s3_client.head_bucket(Bucket=self.bucket_name)
            except ClientError:
                self.s3_client.create_bucket(Bucket=self.bucket_name)
                logger.info(f"Created bucket {self.bucket_name}")

        await asyncio.to_thread(_ensure)

    def photo_reference(self, key: str) -> str:
        if self.use_cloud and self.settings.s3_public_url:
            return f"{self.settings.s3_public_url.rstrip('/')}/{key}"
        filename = key.split('/')[-1]
        return f"{self.settings.api_base_url.rstrip('/')}{MEDIA_ROUTE}/{filename}"

    async def upload_photo(self, data: bytes, extension: str, content_type: str) -> str:
        """
        Store a validated photo under a random name.

        Returns:
            The reference to persist on the user.

        Raises:
            PhotoUploadFailed: storage backend error
        """
        filename = f"{uuid.uuid4()}{extension}"
        key = f"{PHOTO_PREFIX}/{filename}"

        if self.use_cloud:
            await self._upload_to_s3(key, data, content_type)
        else:
            await self._store_locally(filename, data)

        return self.photo_reference(key)

    async def _upload_to_s3(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=86400",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed: {e}")
            raise PhotoUploadFailed()
        logger.info(f"Uploaded photo: {key}")

    async def _store_locally(self, filename: str, data: bytes) -> None:
        try:
            self.local_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.local_dir / filename, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error(f"Local photo write failed: {e}")
            raise PhotoUploadFailed()

    async def delete_photo(self, reference: Optional[str]) -> bool:
        """Remove a stored photo by the reference ``upload_photo`` returned."""
        if not reference:
            return False

        filename = reference.rstrip('/').split('/')[-1]
        try:
            if self.use_cloud:
                await asyncio.to_thread(
                    self.s3_client.delete_object,
                    Bucket=self.bucket_name,
                    Key=f"{PHOTO_PREFIX}/{filename}",
                )
            else:
                path = self.local_dir / filename
                if not path.exists():
                    return False
                path.unlink()
        except (ClientError, BotoCoreError, OSError) as e:
            logger.error(f"Photo delete failed: {e}")
            return False

        logger.info(f"Deleted photo: {filename}")
        return True
