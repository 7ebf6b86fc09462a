"""Bounded batch delete and copy.

Both operations share one throttling engine: ``run_in_chunks`` walks fixed-size
chunks strictly one after another, ``run_windowed`` keeps at most ``window``
single-item operations pending and admits new ones in FIFO order.

Delete reports partial progress through ``BatchError`` while copy is
all-or-nothing. Delete chunks never overlap even though copy runs wide.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Iterator, Sequence, TypeVar

from objstore.app.services.base import BaseService
from objstore.infra.storage.client import (
    COPY_OBJECT,
    DELETE_OBJECTS,
    BackendError,
    BatchError,
    ObjectLocator,
    StorageError,
)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DeleteResult:
    deleted_count: int


@dataclass(frozen=True, slots=True)
class CopyResult:
    files_copied_count: int


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def run_in_chunks(
    items: Sequence[T],
    chunk_size: int,
    handler: Callable[[Sequence[T]], Awaitable[int]],
) -> int:
    """Run ``handler`` over each chunk in order, one chunk at a time.

    ``handler`` returns how many items of its chunk succeeded. A failure stops
    the remaining chunks and is raised as ``BatchError`` with the number of
    items completed so far.
    """
    completed = 0
    for chunk in chunked(items, chunk_size):
        try:
            completed += await handler(chunk)
        except BatchError as exc:
            raise BatchError(completed + exc.completed_count, exc.cause) from exc.cause
        except StorageError as exc:
            raise BatchError(completed, exc) from exc
    return completed


async def run_windowed(
    items: Iterable[T],
    window: int,
    handler: Callable[[T], Awaitable[object]],
) -> int:
    """Run ``handler`` per item with at most ``window`` operations pending.

    When the window is full the oldest operation is awaited before the next
    one is admitted. The first failure cancels what is still pending and
    propagates unchanged.
    """
    if window < 1:
        raise ValueError("window must be positive")
    pending: deque[asyncio.Task[object]] = deque()
    count = 0
    try:
        for item in items:
            while len(pending) >= window:
                await pending.popleft()
            pending.append(asyncio.ensure_future(handler(item)))
            count += 1
        while pending:
            await pending.popleft()
    except BaseException:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        raise
    return count


class BatchService(BaseService):
    """Bulk delete and copy within a bucket."""

    async def delete_objects(self, bucket: str, keys: Sequence[str]) -> DeleteResult:
        """Delete ``keys`` in sequential chunks of at most 1000 keys.

        Raises:
            BatchError: With the number of keys deleted before the failure.
        """
        self._log("delete_objects", bucket=bucket, count=len(keys))

        async def delete_chunk(chunk: Sequence[str]) -> int:
            response = await self._send(
                DELETE_OBJECTS,
                Bucket=bucket,
                Delete={"Objects": [{"Key": key} for key in chunk], "Quiet": True},
            )
            errors = response.get("Errors") or []
            if errors:
                first = errors[0]
                raise BatchError(
                    len(chunk) - len(errors),
                    BackendError(
                        str(first.get("Code") or "DeleteFailed"),
                        f"{len(errors)} of {len(chunk)} keys not deleted: "
                        f"{first.get('Message') or ''}".strip(),
                        operation=DELETE_OBJECTS,
                        target=f"{bucket}/{first.get('Key')}",
                    ),
                )
            return len(chunk)

        deleted = await run_in_chunks(
            list(keys), self._settings.STORAGE_DELETE_CHUNK_SIZE, delete_chunk
        )
        self._log("delete_objects_done", bucket=bucket, deleted=deleted)
        return DeleteResult(deleted_count=deleted)

    async def copy_objects(
        self,
        bucket: str,
        source_keys: Sequence[str],
        destination_prefix: str,
        tagging: str | None = None,
    ) -> CopyResult:
        """Copy each source key to ``destination_prefix/<basename>``.

        With ``tagging`` every copy replaces the destination tags, otherwise
        tags are copied from the source.

        Raises:
            MalformedKeyError: If a source key has no basename; nothing is copied.
            BackendError: On the first failed copy.
        """
        self._log(
            "copy_objects",
            bucket=bucket,
            count=len(source_keys),
            destination_prefix=destination_prefix,
        )
        pairs = [
            (key, f"{destination_prefix}/{ObjectLocator(bucket, key).basename}")
            for key in source_keys
        ]
        if tagging:
            tag_params = {"TaggingDirective": "REPLACE", "Tagging": tagging}
        else:
            tag_params = {"TaggingDirective": "COPY"}

        async def copy_one(pair: tuple[str, str]) -> object:
            source_key, destination_key = pair
            return await self._send(
                COPY_OBJECT,
                CopySource={"Bucket": bucket, "Key": source_key},
                Bucket=bucket,
                Key=destination_key,
                **tag_params,
            )

        await run_windowed(pairs, self._settings.STORAGE_COPY_WINDOW, copy_one)
        self._log("copy_objects_done", bucket=bucket, copied=len(source_keys))
        return CopyResult(files_copied_count=len(source_keys))
