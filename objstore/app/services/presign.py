"""Presigned URL issuing for single objects and multipart parts."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from objstore.app.services.base import BaseService
from objstore.infra.storage.client import (
    GET_OBJECT,
    PUT_OBJECT,
    UPLOAD_PART,
    InvalidPartsError,
    ObjectLocator,
    Operation,
    PresignedGrant,
    UploadSession,
)

# Maximum part number allowed by S3
MAX_PART_NUMBER = 10000
# Sent by the uploader with a value that is unknown at signing time
TAGGING_HEADER = "x-amz-tagging"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")


@dataclass(frozen=True, slots=True)
class DownloadGrant:
    """Presigned GET URL plus a display-safe file name."""

    file_name: str
    download_url: str
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class UploadGrant:
    """Presigned PUT URL."""

    upload_url: str
    expires_at: datetime


def safe_file_name(locator: ObjectLocator) -> str:
    """Basename of the key with unsafe characters replaced by ``_``."""
    return _UNSAFE_FILENAME_CHARS.sub("_", locator.basename)


def _expiry(seconds: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


class PresignService(BaseService):
    """Issues time-boxed delegated URLs signed with the gateway's credentials."""

    async def presign_get(self, locator: ObjectLocator) -> DownloadGrant:
        """Generate a download URL.

        Raises:
            MalformedKeyError: If the key has no basename to name the file after.
            BackendError: If signing fails.
        """
        file_name = safe_file_name(locator)
        ttl = self._settings.STORAGE_GET_URL_EXPIRES_SECONDS
        self._log("presign_get", bucket=locator.bucket, key=locator.key)
        url = await self._gateway.presign(
            Operation(GET_OBJECT, {"Bucket": locator.bucket, "Key": locator.key}),
            expires_in=ttl,
        )
        return DownloadGrant(
            file_name=file_name, download_url=url, expires_at=_expiry(ttl)
        )

    async def presign_put(
        self, locator: ObjectLocator, tagging: str | None = None
    ) -> UploadGrant:
        """Generate an upload URL.

        When ``tagging`` is given, the tagging header is kept out of the signed
        header set so the uploader may send it with any value.
        """
        params = {"Bucket": locator.bucket, "Key": locator.key}
        unsigned_headers: frozenset[str] = frozenset()
        if tagging:
            params["Tagging"] = tagging
            unsigned_headers = frozenset({TAGGING_HEADER})

        ttl = self._settings.STORAGE_PUT_URL_EXPIRES_SECONDS
        self._log(
            "presign_put", bucket=locator.bucket, key=locator.key, tagging=tagging
        )
        url = await self._gateway.presign(
            Operation(PUT_OBJECT, params),
            expires_in=ttl,
            unsigned_headers=unsigned_headers,
        )
        return UploadGrant(upload_url=url, expires_at=_expiry(ttl))

    async def presign_part(
        self, session: UploadSession, part_number: int
    ) -> PresignedGrant:
        """Generate a URL an external agent uses to upload exactly one part."""
        if not 1 <= part_number <= MAX_PART_NUMBER:
            raise InvalidPartsError(
                f"part_number must be between 1 and {MAX_PART_NUMBER}, got {part_number}"
            )
        ttl = self._settings.STORAGE_PART_URL_EXPIRES_SECONDS
        self._log(
            "presign_part",
            bucket=session.locator.bucket,
            key=session.locator.key,
            upload_id=session.upload_id,
            part_number=part_number,
        )
        url = await self._gateway.presign(
            Operation(
                UPLOAD_PART,
                {
                    "Bucket": session.locator.bucket,
                    "Key": session.locator.key,
                    "UploadId": session.upload_id,
                    "PartNumber": int(part_number),
                },
            ),
            expires_in=ttl,
        )
        return PresignedGrant(url=url, expires_at=_expiry(ttl))
