"""Object storage façade.

This module ties the transfer and batch services together around one
explicitly constructed gateway, exposing every storage operation from a
single entry point.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable, Iterable, Sequence

from objstore.app.services.batch import BatchService, CopyResult, DeleteResult
from objstore.app.services.listing import ObjectLister
from objstore.app.services.multipart import MultipartUploadController
from objstore.app.services.objects import ObjectService
from objstore.app.services.presign import DownloadGrant, PresignService, UploadGrant
from objstore.app.services.streaming_upload import (
    StreamingUploadService,
    UploadSink,
    exec_post_processors,
)
from objstore.common.config import Settings, get_settings
from objstore.infra.storage.client import (
    CompletedUpload,
    ObjectDescriptor,
    ObjectLocator,
    PartRecord,
    PresignedGrant,
    StorageGateway,
    UploadSession,
)
from objstore.infra.storage.s3_client import S3Gateway


class ObjectStorageService:
    """Application entry point for object storage operations.

    Every component shares the injected gateway; nothing holds a module-level
    client.
    """

    def __init__(
        self, gateway: StorageGateway, *, settings: Settings | None = None
    ) -> None:
        self._settings = settings or get_settings()
        self._gateway = gateway
        self.presigner = PresignService(gateway, settings=self._settings)
        self.multipart = MultipartUploadController(
            gateway, settings=self._settings, presigner=self.presigner
        )
        self.streaming = StreamingUploadService(
            gateway, settings=self._settings, controller=self.multipart
        )
        self.lister = ObjectLister(gateway, settings=self._settings)
        self.batch = BatchService(gateway, settings=self._settings)
        self.objects = ObjectService(gateway, settings=self._settings)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ObjectStorageService":
        """Build the service with an S3 gateway configured from ``settings``."""
        resolved = settings or get_settings()
        return cls(S3Gateway(settings=resolved), settings=resolved)

    @property
    def gateway(self) -> StorageGateway:
        return self._gateway

    async def get_read_stream(
        self, locator: ObjectLocator, chunk_size: int | None = None
    ) -> AsyncIterator[bytes]:
        return await self.objects.get_read_stream(locator, chunk_size)

    async def put_object_from_string(
        self,
        locator: ObjectLocator,
        body: str | bytes = "",
        content_type: str | None = None,
    ) -> None:
        await self.objects.put_object_from_string(locator, body, content_type)

    async def open_upload_sink(
        self,
        locator: ObjectLocator,
        content_type: str | None = None,
        tagging: str | None = None,
    ) -> tuple[UploadSink, asyncio.Future[CompletedUpload]]:
        return await self.streaming.open_upload_sink(locator, content_type, tagging)

    async def exec_post_processors(
        self,
        completion: asyncio.Future[Any],
        processors: Iterable[Callable[[], Any]],
    ) -> list[Any]:
        return await exec_post_processors(completion, processors)

    async def presign_get(self, locator: ObjectLocator) -> DownloadGrant:
        return await self.presigner.presign_get(locator)

    async def presign_put(
        self, locator: ObjectLocator, tagging: str | None = None
    ) -> UploadGrant:
        return await self.presigner.presign_put(locator, tagging)

    async def list_objects(
        self,
        bucket: str,
        prefix: str,
        search: str | None = None,
        limit: int | None = None,
    ) -> list[ObjectDescriptor]:
        return await self.lister.list(bucket, prefix, search, limit)

    async def delete_objects(self, bucket: str, keys: Sequence[str]) -> DeleteResult:
        return await self.batch.delete_objects(bucket, keys)

    async def copy_objects(
        self,
        bucket: str,
        source_keys: Sequence[str],
        destination_prefix: str,
        tagging: str | None = None,
    ) -> CopyResult:
        return await self.batch.copy_objects(
            bucket, source_keys, destination_prefix, tagging
        )

    async def create_multipart_upload(
        self,
        locator: ObjectLocator,
        content_type: str | None = None,
        tagging: str | None = None,
    ) -> UploadSession:
        return await self.multipart.create(
            locator, content_type=content_type, tagging=tagging
        )

    async def list_parts(self, session: UploadSession) -> list[PartRecord]:
        return await self.multipart.list_parts(session)

    async def sign_part(self, session: UploadSession, part_number: int) -> PresignedGrant:
        return await self.multipart.sign_part_upload(session, part_number)

    async def complete_multipart_upload(
        self, session: UploadSession, parts: Sequence[PartRecord]
    ) -> CompletedUpload:
        return await self.multipart.complete(session, parts)

    async def abort_multipart_upload(self, session: UploadSession) -> None:
        await self.multipart.abort(session)
