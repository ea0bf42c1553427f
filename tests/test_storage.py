"""
Tests for object storage
"""
import asyncio
import json
import re
import pytest

import httpx

from roadwatch.core.errors import UploadError
from roadwatch.storage.object_storage import (
    LocalObjectStorage,
    ObjectStorage,
    SupabaseObjectStorage,
    build_object_key,
)


class TestObjectKey:
    """Test suite for storage key generation."""

    def test_key_format(self):
        key = build_object_key("img1.jpg", now_ms=1714550400000)
        assert re.fullmatch(r"1714550400000-[0-9a-f]{8}-img1\.jpg", key)

    def test_keys_are_unique(self):
        """Test two uploads in the same millisecond do not collide."""
        keys = {build_object_key("img1.jpg", now_ms=1) for _ in range(50)}
        assert len(keys) == 50

    def test_unsafe_characters_replaced(self):
        key = build_object_key("../../My Road Photo (1).jpg", now_ms=1)
        assert "/" not in key
        assert " " not in key
        assert key.endswith("My-Road-Photo-1-.jpg")

    def test_empty_filename(self):
        assert build_object_key("", now_ms=1).endswith("-photo.jpg")


class TestObjectStorage:
    """Test suite for the storage interface."""

    def test_backend_must_implement_upload(self):
        class Incomplete(ObjectStorage):
            pass

        with pytest.raises(TypeError):
            Incomplete("https://roads.example.org", "pothole-images")

    def test_public_url_shared_by_backends(self, storage):
        assert storage.public_url("a.jpg") == (
            "https://roads.example.org/storage/v1/object/public/pothole-images/a.jpg"
        )


class TestLocalObjectStorage:
    """Test suite for the filesystem bucket."""

    def test_upload_writes_file(self, storage, jpeg_bytes):
        url = asyncio.run(storage.upload("k1-img1.jpg", jpeg_bytes))

        assert url == "https://roads.example.org/storage/v1/object/public/pothole-images/k1-img1.jpg"
        assert storage.path_for("k1-img1.jpg").read_bytes() == jpeg_bytes

    def test_existing_key_not_overwritten(self, storage):
        """Test keys are write-once."""
        asyncio.run(storage.upload("dup.jpg", b"first"))

        with pytest.raises(UploadError) as exc_info:
            asyncio.run(storage.upload("dup.jpg", b"second"))

        assert exc_info.value.message == "The resource already exists"
        assert storage.path_for("dup.jpg").read_bytes() == b"first"

    def test_key_cannot_escape_bucket(self, storage):
        with pytest.raises(UploadError):
            asyncio.run(storage.upload("../outside.jpg", b"data"))


class TestSupabaseObjectStorage:
    """Test suite for the REST storage client."""

    def _storage(self, handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return SupabaseObjectStorage(
            base_url="https://project.example.co",
            service_key="service-key",
            bucket="pothole-images",
            client=client,
        )

    def test_upload(self, jpeg_bytes):
        """Test the request and returned public URL."""
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = request.content
            return httpx.Response(200, json={"Key": "pothole-images/k1.jpg"})

        url = asyncio.run(self._storage(handler).upload("k1.jpg", jpeg_bytes, "image/jpeg"))

        assert url == "https://project.example.co/storage/v1/object/public/pothole-images/k1.jpg"
        assert seen["url"] == "https://project.example.co/storage/v1/object/pothole-images/k1.jpg"
        assert seen["headers"]["authorization"] == "Bearer service-key"
        assert seen["headers"]["content-type"] == "image/jpeg"
        assert seen["headers"]["x-upsert"] == "false"
        assert seen["body"] == jpeg_bytes

    def test_rejection_message_is_kept(self):
        """Test the storage error text reaches the caller."""
        def handler(request):
            return httpx.Response(400, content=json.dumps({"message": "Bucket not found"}))

        with pytest.raises(UploadError) as exc_info:
            asyncio.run(self._storage(handler).upload("k1.jpg", b"data"))

        assert exc_info.value.message == "Bucket not found"

    def test_plain_text_error(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(UploadError) as exc_info:
            asyncio.run(self._storage(handler).upload("k1.jpg", b"data"))

        assert exc_info.value.message == "Bad Gateway"

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UploadError):
            asyncio.run(self._storage(handler).upload("k1.jpg", b"data"))

    def test_service_key_required(self, monkeypatch):
        from roadwatch.core.config import settings
        monkeypatch.setattr(settings, "storage_service_key", None)

        with pytest.raises(ValueError):
            SupabaseObjectStorage(base_url="https://project.example.co", bucket="b")
