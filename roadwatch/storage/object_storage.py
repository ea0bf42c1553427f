"""
Object storage for report photos
Uploads image bytes and builds their public URL
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
import time
import uuid
from pathlib import Path
from typing import Optional

import httpx

from roadwatch.core.config import settings
from roadwatch.core.constants import (
    MAX_KEY_FILENAME_LENGTH,
    PUBLIC_OBJECT_PATH,
    UPLOAD_OBJECT_PATH,
)
from roadwatch.core.errors import UploadError

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def build_object_key(filename: str, now_ms: Optional[int] = None) -> str:
    """
    Build a collision-resistant storage key.

    Format: <epoch-ms>-<random>-<sanitised filename>

    Args:
        filename: Original filename
        now_ms: Timestamp override in milliseconds

    Returns:
        Storage key
    """
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    safe_name = _UNSAFE_KEY_CHARS.sub("-", filename or "").strip("-.")
    safe_name = safe_name[-MAX_KEY_FILENAME_LENGTH:] or "photo.jpg"
    return f"{timestamp}-{uuid.uuid4().hex[:8]}-{safe_name}"


class ObjectStorage(ABC):
    """
    Bucket of report photos.

    Keys are never overwritten; the public URL of a key is
    derived from the public base URL and the bucket name.
    """

    def __init__(self, public_base_url: str, bucket: str):
        self.public_base_url = public_base_url.rstrip("/")
        self.bucket = bucket

    def public_url(self, key: str) -> str:
        """Public URL of a stored object."""
        return f"{self.public_base_url}/{PUBLIC_OBJECT_PATH}/{self.bucket}/{key}"

    @abstractmethod
    async def upload(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        """
        Store bytes under key.

        Returns:
            Public URL of the stored object

        Raises:
            UploadError: if storage rejects or fails the upload
        """


class SupabaseObjectStorage(ObjectStorage):
    """Supabase-compatible storage over its REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize storage client.

        Args:
            base_url: Project URL
            service_key: API key sent as bearer token
            bucket: Bucket name
            client: Shared HTTP client
        """
        super().__init__(
            base_url or settings.storage_url,
            bucket or settings.storage_bucket,
        )
        self.service_key = service_key or settings.storage_service_key

        if not self.service_key:
            raise ValueError("Storage service key is required")

        self._client = client

    def _headers(self, content_type: str) -> dict:
        return {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Content-Type": content_type,
            "x-upsert": "false",
        }

    async def upload(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        url = f"{self.public_base_url}/{UPLOAD_OBJECT_PATH}/{self.bucket}/{key}"

        try:
            if self._client is not None:
                response = await self._client.post(url, content=data, headers=self._headers(content_type))
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(url, content=data, headers=self._headers(content_type))
        except httpx.HTTPError as e:
            logger.error(f"Image upload error: {e}")
            raise UploadError(str(e) or e.__class__.__name__) from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(f"Image upload error: {response.status_code} {message}")
            raise UploadError(message)

        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{key}")
        return self.public_url(key)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed bucket for development and tests."""

    def __init__(
        self,
        root_dir: Optional[str] = None,
        public_base_url: Optional[str] = None,
        bucket: Optional[str] = None
    ):
        super().__init__(
            public_base_url or settings.storage_url,
            bucket or settings.storage_bucket,
        )
        self.root = Path(root_dir or settings.local_storage_dir) / self.bucket

    def path_for(self, key: str) -> Path:
        return self.root / key

    def _write(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        if path.resolve().parent != self.root.resolve():
            raise UploadError(f"Invalid key: {key}")
        self.root.mkdir(parents=True, exist_ok=True)
        try:
            with open(path, "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise UploadError("The resource already exists") from e
        except OSError as e:
            raise UploadError(str(e)) from e

    async def upload(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        await asyncio.to_thread(self._write, key, data)
        logger.info(f"Stored {len(data)} bytes at {self.path_for(key)}")
        return self.public_url(key)


def create_storage() -> ObjectStorage:
    """Create the storage backend selected in settings."""
    if settings.storage_backend == "supabase":
        return SupabaseObjectStorage()
    return LocalObjectStorage()
