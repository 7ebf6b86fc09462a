"""Streaming upload bridge.

``open_upload_sink`` starts a multipart upload and hands back a writable sink
together with a completion future. Bytes written to the sink are cut into
parts of ``STORAGE_MULTIPART_PART_SIZE`` and uploaded in write order while the
caller keeps writing; the object only materializes once the sink is closed and
the session is completed.

A failed upload is never aborted here. The completion future carries the
first ``BackendError`` and the caller decides whether to abort the session.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Callable, Iterable

from objstore.app.services.base import BaseService
from objstore.app.services.multipart import MultipartUploadController
from objstore.common.config import Settings
from objstore.infra.storage.client import (
    UPLOAD_PART,
    BackendError,
    CompletedUpload,
    ObjectLocator,
    Operation,
    PartRecord,
    StorageError,
    StorageGateway,
    UploadSession,
)

logger = logging.getLogger("storage")


class UploadSink:
    """Writable end of a streaming multipart upload."""

    def __init__(
        self,
        gateway: StorageGateway,
        controller: MultipartUploadController,
        session: UploadSession,
        *,
        part_size: int,
        max_concurrency: int,
    ) -> None:
        self._gateway = gateway
        self._controller = controller
        self._session = session
        self._part_size = part_size
        self._max_concurrency = max_concurrency
        self._buffer = bytearray()
        self._next_part_number = 1
        self._bytes_written = 0
        self._in_flight: deque[asyncio.Task[PartRecord]] = deque()
        self._uploaded: list[PartRecord] = []
        self._closed = False
        self._error: StorageError | None = None
        self.completion: asyncio.Future[CompletedUpload] = (
            asyncio.get_running_loop().create_future()
        )

    @property
    def session(self) -> UploadSession:
        return self._session

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    async def write(self, data: bytes) -> None:
        """Buffer ``data`` and upload every full part it completes.

        Raises:
            ValueError: If the sink is already closed.
            BackendError: If a part upload of this session has failed.
        """
        if self._closed:
            raise ValueError("write to closed upload sink")
        self._raise_if_failed()
        self._buffer += data
        self._bytes_written += len(data)
        while len(self._buffer) >= self._part_size:
            part = bytes(self._buffer[: self._part_size])
            del self._buffer[: self._part_size]
            await self._dispatch(part)

    async def close(self) -> CompletedUpload:
        """Flush the tail, wait for every part and complete the session."""
        if self._closed:
            return await self.completion
        self._closed = True
        self._raise_if_failed()
        try:
            if self._buffer or self._next_part_number == 1:
                tail = bytes(self._buffer)
                self._buffer.clear()
                await self._dispatch(tail)
            while self._in_flight:
                await self._drain_oldest()
            parts = sorted(self._uploaded, key=lambda part: part.part_number)
            result = await self._controller.complete(self._session, parts)
        except StorageError as exc:
            self._fail(exc)
            raise

        logger.info(
            "upload_sink_completed bucket=%s key=%s parts=%s bytes=%s",
            self._session.locator.bucket,
            self._session.locator.key,
            result.part_count,
            self._bytes_written,
            extra={
                "extra": {
                    "event": "upload_sink_completed",
                    "bucket": self._session.locator.bucket,
                    "key": self._session.locator.key,
                    "upload_id": self._session.upload_id,
                    "parts": result.part_count,
                    "bytes": self._bytes_written,
                }
            },
        )
        self.completion.set_result(result)
        return result

    async def _dispatch(self, data: bytes) -> None:
        while len(self._in_flight) >= self._max_concurrency:
            await self._drain_oldest()
        part_number = self._next_part_number
        self._next_part_number += 1
        self._in_flight.append(asyncio.ensure_future(self._upload_part(part_number, data)))

    async def _drain_oldest(self) -> None:
        task = self._in_flight.popleft()
        try:
            self._uploaded.append(await task)
        except StorageError as exc:
            self._fail(exc)
            raise

    async def _upload_part(self, part_number: int, data: bytes) -> PartRecord:
        locator = self._session.locator
        response = await self._gateway.send(
            Operation(
                UPLOAD_PART,
                {
                    "Bucket": locator.bucket,
                    "Key": locator.key,
                    "UploadId": self._session.upload_id,
                    "PartNumber": part_number,
                    "Body": data,
                },
            )
        )
        logger.debug(
            "upload_part bucket=%s key=%s part_number=%s size=%s",
            locator.bucket,
            locator.key,
            part_number,
            len(data),
        )
        etag = response.get("ETag")
        if not etag:
            raise BackendError(
                "MissingETag",
                f"S3 response missing ETag for part {part_number}",
                operation=UPLOAD_PART,
                target=str(locator),
            )
        return PartRecord(
            part_number=part_number,
            etag=str(etag),
            size_bytes=len(data),
        )

    def _fail(self, exc: StorageError) -> None:
        if self._error is not None:
            return
        self._error = exc
        for task in self._in_flight:
            task.cancel()
        self._in_flight.clear()
        if not self.completion.done():
            self.completion.set_exception(exc)
        logger.warning(
            "upload_sink_failed bucket=%s key=%s upload_id=%s error=%s",
            self._session.locator.bucket,
            self._session.locator.key,
            self._session.upload_id,
            exc,
        )

    def _raise_if_failed(self) -> None:
        if self._error is not None:
            raise self._error


class StreamingUploadService(BaseService):
    """Bridges incremental writes into a multipart upload."""

    def __init__(
        self,
        gateway: StorageGateway,
        *,
        settings: Settings | None = None,
        controller: MultipartUploadController | None = None,
    ) -> None:
        super().__init__(gateway, settings=settings)
        self._controller = controller or MultipartUploadController(
            gateway, settings=self._settings
        )

    async def open_upload_sink(
        self,
        locator: ObjectLocator,
        content_type: str | None = None,
        tagging: str | None = None,
    ) -> tuple[UploadSink, asyncio.Future[CompletedUpload]]:
        """Start a multipart upload fed by the returned sink.

        Returns:
            The sink and a future resolved once the sink is closed, every part
            is acknowledged and the session is completed.

        Raises:
            BackendError: If the session cannot be created.
        """
        self._log(
            "open_upload_sink", bucket=locator.bucket, key=locator.key, tagging=tagging
        )
        session = await self._controller.create(
            locator, content_type=content_type, tagging=tagging
        )
        sink = UploadSink(
            self._gateway,
            self._controller,
            session,
            part_size=self._settings.STORAGE_MULTIPART_PART_SIZE,
            max_concurrency=self._settings.STORAGE_MULTIPART_CONCURRENCY,
        )
        return sink, sink.completion


async def exec_post_processors(
    completion: asyncio.Future[Any],
    processors: Iterable[Callable[[], Any]],
) -> list[Any]:
    """Run ``processors`` once ``completion`` has resolved.

    None of them starts before the upload is complete. Sync and async callables
    are both accepted; anything that is not callable is skipped.

    Raises:
        BackendError: If the upload failed; no processor runs.
    """
    await completion

    async def invoke(processor: Callable[[], Any]) -> Any:
        logger.debug("executing post processor %r", processor)
        result = processor()
        if inspect.isawaitable(result):
            return await result
        return result

    return list(
        await asyncio.gather(
            *(invoke(processor) for processor in processors if callable(processor))
        )
    )

