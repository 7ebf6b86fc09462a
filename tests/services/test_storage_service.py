"""End-to-end tests of the ObjectStorageService façade over the mock gateway."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from objstore.app.services.storage_service import ObjectStorageService
from objstore.infra.storage.client import (
    ObjectLocator,
    PartRecord,
    SessionStateError,
)
from objstore.infra.storage.s3_client import S3Gateway


@pytest.fixture()
def service(gateway, settings):
    return ObjectStorageService(gateway, settings=settings)


class TestObjectStorageService:
    def test_from_settings_builds_s3_gateway(self, settings):
        with patch.object(S3Gateway, "_build_client", return_value=MagicMock()):
            service = ObjectStorageService.from_settings(settings)

        assert isinstance(service.gateway, S3Gateway)

    def test_components_share_gateway(self, service, gateway):
        for component in (
            service.presigner,
            service.multipart,
            service.streaming,
            service.lister,
            service.batch,
            service.objects,
        ):
            assert component.gateway is gateway

    @pytest.mark.asyncio
    async def test_write_list_copy_delete_round(self, service, gateway):
        for name in ("a.txt", "b.txt"):
            sink, completion = await service.open_upload_sink(
                ObjectLocator("bucket", f"in/{name}")
            )
            await sink.write(name.encode())
            await sink.close()
        indexed = []
        await service.exec_post_processors(completion, [lambda: indexed.append(1)])
        await service.put_object_from_string(ObjectLocator("bucket", "in/"))

        listed = await service.list_objects("bucket", "in/")
        assert [d.name for d in listed] == ["a.txt", "b.txt"]
        assert indexed == [1]

        copied = await service.copy_objects(
            "bucket", [d.locator.key for d in listed], "out", tagging="copied=1"
        )
        assert copied.files_copied_count == 2
        assert [d.name for d in await service.list_objects("bucket", "out/")] == [
            "a.txt",
            "b.txt",
        ]

        deleted = await service.delete_objects("bucket", ["in/a.txt", "in/b.txt", "in/"])
        assert deleted.deleted_count == 3
        assert await service.list_objects("bucket", "in/") == []

        stream = await service.get_read_stream(ObjectLocator("bucket", "out/a.txt"))
        assert b"".join([chunk async for chunk in stream]) == b"a.txt"

    @pytest.mark.asyncio
    async def test_external_multipart_lifecycle(self, service, gateway):
        locator = ObjectLocator("bucket", "big/file.bin")
        session = await service.create_multipart_upload(locator)
        grant = await service.sign_part(session, 1)
        assert "partNumber=1" in grant.url

        etag = gateway.upload_part_externally(session.upload_id, 1, b"bytes")
        parts = await service.list_parts(session)
        assert parts == [PartRecord(1, etag, 5)]

        await service.complete_multipart_upload(session, parts)
        with pytest.raises(SessionStateError):
            await service.abort_multipart_upload(session)

    @pytest.mark.asyncio
    async def test_presign_round(self, service, gateway):
        download = await service.presign_get(ObjectLocator("bucket", "a/b/My File!.txt"))
        upload = await service.presign_put(ObjectLocator("bucket", "a/up.bin"), "t=1")

        assert download.file_name == "My_File_.txt"
        assert upload.upload_url.startswith("https://mock-s3/bucket/a/up.bin")
