"""Paginated object listing.

``ObjectLister.list`` materializes the whole matching listing before applying
``limit``, so its memory grows with the number of matching objects. Callers
that need bounded memory should consume ``iter_objects`` instead.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from objstore.app.services.base import BaseService
from objstore.infra.storage.client import (
    LIST_OBJECTS_V2,
    PATH_SEPARATOR,
    ObjectDescriptor,
    ObjectLocator,
)


def is_folder_marker(entry: dict[str, Any]) -> bool:
    """Zero-byte objects whose key ends with a separator stand for directories."""
    return str(entry["Key"]).endswith(PATH_SEPARATOR) and int(entry.get("Size") or 0) == 0


def to_descriptor(bucket: str, entry: dict[str, Any]) -> ObjectDescriptor:
    key = str(entry["Key"])
    return ObjectDescriptor(
        name=key.rsplit(PATH_SEPARATOR, 1)[-1],
        locator=ObjectLocator(bucket=bucket, key=key),
        last_modified=entry["LastModified"],
        size_bytes=int(entry.get("Size") or 0),
    )


class ObjectLister(BaseService):
    """Walks ListObjectsV2 continuation tokens and projects the entries."""

    async def iter_objects(
        self,
        bucket: str,
        prefix: str,
        search: str | None = None,
    ) -> AsyncIterator[ObjectDescriptor]:
        params: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix}
        page = 0
        while True:
            response = await self._send(LIST_OBJECTS_V2, **params)
            page += 1
            contents = response.get("Contents") or []
            self._log(
                "list_objects_page",
                logging.DEBUG,
                bucket=bucket,
                prefix=prefix,
                page=page,
                entries=len(contents),
            )
            for entry in contents:
                if is_folder_marker(entry):
                    continue
                if search and search not in str(entry["Key"]):
                    continue
                yield to_descriptor(bucket, entry)

            if not response.get("IsTruncated"):
                break
            params["ContinuationToken"] = response.get("NextContinuationToken")

    async def list(
        self,
        bucket: str,
        prefix: str,
        search: str | None = None,
        limit: int | None = None,
    ) -> list[ObjectDescriptor]:
        """List objects under ``prefix``.

        Args:
            bucket: Bucket to list.
            prefix: Key prefix to list under.
            search: Optional key substring filter; empty means no filtering.
            limit: Keep only the first ``limit`` entries of the full result;
                ``None`` or ``0`` keeps everything.

        Returns:
            Matching descriptors in backend order.

        Raises:
            ValueError: If ``limit`` is negative.
            BackendError: If any page fails; no partial result is returned.
        """
        if limit is not None and limit < 0:
            raise ValueError("limit must not be negative")

        self._log(
            "list_objects", bucket=bucket, prefix=prefix, search=search, limit=limit
        )
        result = [item async for item in self.iter_objects(bucket, prefix, search)]
        return result[:limit] if limit else result
