from __future__ import annotations

from typing import AsyncIterator

from objstore.app.services.base import BaseService, content_type_for
from objstore.infra.storage.client import GET_OBJECT, PUT_OBJECT, ObjectLocator


class ObjectService(BaseService):
    """Single-object reads and small writes."""

    async def get_read_stream(
        self, locator: ObjectLocator, chunk_size: int | None = None
    ) -> AsyncIterator[bytes]:
        """Stream the object body without loading it whole.

        The body is released once the stream is exhausted. Callers that
        stop early must ``await stream.aclose()``.

        Raises:
            BackendError: If the object cannot be fetched or the read fails.
        """
        self._log("get_read_stream", bucket=locator.bucket, key=locator.key)
        response = await self._send(GET_OBJECT, Bucket=locator.bucket, Key=locator.key)
        size = chunk_size or self._settings.STORAGE_READ_CHUNK_SIZE
        return self._gateway.read_body(response["Body"], size)

    async def read_object(self, locator: ObjectLocator) -> bytes:
        stream = await self.get_read_stream(locator)
        return b"".join([chunk async for chunk in stream])

    async def put_object_from_string(
        self,
        locator: ObjectLocator,
        body: str | bytes = "",
        content_type: str | None = None,
    ) -> None:
        payload = body.encode("utf-8") if isinstance(body, str) else bytes(body)
        self._log(
            "put_object_from_string",
            bucket=locator.bucket,
            key=locator.key,
            size=len(payload),
        )
        await self._send(
            PUT_OBJECT,
            Bucket=locator.bucket,
            Key=locator.key,
            ContentType=content_type or content_type_for(locator.key),
            Body=payload,
        )
