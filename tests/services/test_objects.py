"""Tests for ObjectService."""

from __future__ import annotations

import pytest

from objstore.app.services.objects import ObjectService
from objstore.infra.storage.client import BackendError, ObjectLocator


@pytest.fixture()
def objects(gateway, settings):
    return ObjectService(gateway, settings=settings)


class TestGetReadStream:
    @pytest.mark.asyncio
    async def test_streams_in_chunks(self, objects, gateway):
        gateway.put("bucket", "data/blob.bin", b"0123456789")

        stream = await objects.get_read_stream(ObjectLocator("bucket", "data/blob.bin"), 4)

        assert [chunk async for chunk in stream] == [b"0123", b"4567", b"89"]

    @pytest.mark.asyncio
    async def test_missing_object(self, objects):
        with pytest.raises(BackendError) as excinfo:
            await objects.get_read_stream(ObjectLocator("bucket", "missing"))

        assert excinfo.value.code == "NoSuchKey"

    @pytest.mark.asyncio
    async def test_read_object(self, objects, gateway):
        gateway.put("bucket", "a.txt", b"hello")

        assert await objects.read_object(ObjectLocator("bucket", "a.txt")) == b"hello"


class TestPutObjectFromString:
    @pytest.mark.asyncio
    async def test_encodes_text_and_guesses_content_type(self, objects, gateway):
        await objects.put_object_from_string(ObjectLocator("bucket", "notes/readme.txt"), "héllo")

        stored = gateway.objects[("bucket", "notes/readme.txt")]
        assert stored["body"] == "héllo".encode("utf-8")
        assert stored["content_type"] == "text/plain"

    @pytest.mark.asyncio
    async def test_defaults_to_empty_body(self, objects, gateway):
        await objects.put_object_from_string(ObjectLocator("bucket", "marker"))

        stored = gateway.objects[("bucket", "marker")]
        assert stored["body"] == b""
        assert stored["content_type"] == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_explicit_content_type(self, objects, gateway):
        await objects.put_object_from_string(
            ObjectLocator("bucket", "doc"), b"{}", content_type="application/json"
        )

        assert gateway.objects[("bucket", "doc")]["content_type"] == "application/json"
