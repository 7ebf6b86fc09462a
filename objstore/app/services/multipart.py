"""Multipart upload lifecycle for parts uploaded by an external agent.

A session moves ``Created -> PartsUploaded* -> Completed`` or ``-> Aborted``.
The backend holds that state: parts arrive through presigned URLs this
process never sees, so nothing about a session is cached here and calls
against a terminal session fail with ``SessionStateError`` from the backend.
"""

from __future__ import annotations

from typing import Any, Sequence

from objstore.app.services.base import BaseService, content_type_for
from objstore.app.services.presign import PresignService
from objstore.common.config import Settings
from objstore.infra.storage.client import (
    ABORT_MULTIPART_UPLOAD,
    COMPLETE_MULTIPART_UPLOAD,
    CREATE_MULTIPART_UPLOAD,
    LIST_PARTS,
    BackendError,
    CompletedUpload,
    InvalidPartsError,
    ObjectLocator,
    PartRecord,
    PresignedGrant,
    StorageGateway,
    UploadSession,
)


def validate_parts(parts: Sequence[PartRecord]) -> None:
    """Require a non-empty part list numbered 1..n in the given order."""
    if not parts:
        raise InvalidPartsError("parts list cannot be empty")
    for expected, part in enumerate(parts, start=1):
        if part.part_number != expected:
            raise InvalidPartsError(
                f"parts must be numbered contiguously from 1; "
                f"expected {expected}, got {part.part_number}"
            )


def part_payload(parts: Sequence[PartRecord]) -> dict[str, Any]:
    return {
        "Parts": [
            {"ETag": part.etag, "PartNumber": int(part.part_number)} for part in parts
        ]
    }


class MultipartUploadController(BaseService):
    """Orchestrates multipart sessions whose bytes another party uploads."""

    def __init__(
        self,
        gateway: StorageGateway,
        *,
        settings: Settings | None = None,
        presigner: PresignService | None = None,
    ) -> None:
        super().__init__(gateway, settings=settings)
        self._presigner = presigner or PresignService(gateway, settings=self._settings)

    async def create(
        self,
        locator: ObjectLocator,
        *,
        content_type: str | None = None,
        tagging: str | None = None,
    ) -> UploadSession:
        """Start a session.

        Returns:
            The session handle holding the backend's upload id.

        Raises:
            BackendError: If the backend refuses or returns no upload id.
        """
        self._log("multipart_create", bucket=locator.bucket, key=locator.key)
        params: dict[str, Any] = {
            "Bucket": locator.bucket,
            "Key": locator.key,
            "ContentType": content_type or content_type_for(locator.key),
        }
        if tagging:
            params["Tagging"] = tagging
        response = await self._send(CREATE_MULTIPART_UPLOAD, **params)
        upload_id = response.get("UploadId")
        if not upload_id:
            raise BackendError(
                "MissingUploadId",
                "S3 response missing UploadId",
                operation=CREATE_MULTIPART_UPLOAD,
                target=str(locator),
            )
        return UploadSession(upload_id=str(upload_id), locator=locator)

    async def list_parts(self, session: UploadSession) -> list[PartRecord]:
        """Parts the backend has acknowledged so far, across all result pages."""
        self._log(
            "multipart_list_parts",
            bucket=session.locator.bucket,
            key=session.locator.key,
            upload_id=session.upload_id,
        )
        params: dict[str, Any] = {
            "Bucket": session.locator.bucket,
            "Key": session.locator.key,
            "UploadId": session.upload_id,
        }
        parts: list[PartRecord] = []
        while True:
            response = await self._send(LIST_PARTS, **params)
            for entry in response.get("Parts") or []:
                size = entry.get("Size")
                parts.append(
                    PartRecord(
                        part_number=int(entry["PartNumber"]),
                        etag=str(entry["ETag"]),
                        size_bytes=int(size) if size is not None else None,
                    )
                )
            if not response.get("IsTruncated"):
                return parts
            params["PartNumberMarker"] = response.get("NextPartNumberMarker")

    async def sign_part_upload(
        self, session: UploadSession, part_number: int
    ) -> PresignedGrant:
        """Presigned URL for one part; which numbers were signed is not tracked."""
        return await self._presigner.presign_part(session, part_number)

    async def complete(
        self, session: UploadSession, parts: Sequence[PartRecord]
    ) -> CompletedUpload:
        """Finalize the session with ``parts`` exactly as ordered by the caller.

        Raises:
            InvalidPartsError: If ``parts`` is empty or not numbered 1..n;
                nothing is sent and the session stays open.
            BackendError: If the backend rejects the part list; the session
                stays open and may be completed again or aborted.
            SessionStateError: If the session is already terminal.
        """
        validate_parts(parts)
        self._log(
            "multipart_complete",
            bucket=session.locator.bucket,
            key=session.locator.key,
            upload_id=session.upload_id,
            parts=len(parts),
        )
        response = await self._send(
            COMPLETE_MULTIPART_UPLOAD,
            Bucket=session.locator.bucket,
            Key=session.locator.key,
            UploadId=session.upload_id,
            MultipartUpload=part_payload(parts),
        )
        return CompletedUpload(
            locator=session.locator,
            etag=response.get("ETag"),
            part_count=len(parts),
        )

    async def abort(self, session: UploadSession) -> None:
        """Abort the session and release its uploaded parts.

        Raises:
            SessionStateError: If the session was already completed or aborted.
        """
        self._log(
            "multipart_abort",
            bucket=session.locator.bucket,
            key=session.locator.key,
            upload_id=session.upload_id,
        )
        await self._send(
            ABORT_MULTIPART_UPLOAD,
            Bucket=session.locator.bucket,
            Key=session.locator.key,
            UploadId=session.upload_id,
        )
