"""In-memory storage gateway for testing the storage services."""

from __future__ import annotations

import asyncio
import hashlib
import io
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from objstore.infra.storage.client import (
    BackendError,
    Operation,
    SessionStateError,
)


@dataclass
class MockStorageGateway:
    """In-memory mock of StorageGateway for testing.

    Every call yields to the event loop so concurrent callers interleave,
    and the number of simultaneously running calls is recorded per operation.
    """

    objects: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    uploads: dict[str, dict[str, Any]] = field(default_factory=dict)
    calls: list[Operation] = field(default_factory=list)
    presigned: list[dict[str, Any]] = field(default_factory=list)
    list_page_size: int = 1000
    list_parts_page_size: int = 1000
    latency_ticks: int = 2
    in_flight: Counter = field(default_factory=Counter)
    peak_in_flight: Counter = field(default_factory=Counter)
    failing_delete_keys: set[str] = field(default_factory=set)
    _failures: dict[str, list[tuple[int, BackendError]]] = field(default_factory=dict)
    _call_counts: Counter = field(default_factory=Counter)
    _upload_counter: int = 0

    def inject_failure(
        self, operation: str, error: BackendError | None = None, *, on_call: int = 1
    ) -> BackendError:
        """Make the ``on_call``-th call of ``operation`` fail with ``error``."""
        error = error or BackendError(
            "InternalError", "injected failure", retryable=True, operation=operation
        )
        self._failures.setdefault(operation, []).append((on_call, error))
        return error

    def calls_to(self, name: str) -> list[Operation]:
        return [call for call in self.calls if call.name == name]

    def put(self, bucket: str, key: str, body: bytes = b"", **extra: Any) -> None:
        """Test helper to seed an object."""
        self.objects[(bucket, key)] = {
            "body": body,
            "last_modified": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "content_type": extra.get("content_type"),
            "tagging": extra.get("tagging"),
        }

    async def send(self, operation: Operation) -> dict[str, Any]:
        name = operation.name
        self.calls.append(operation)
        self._call_counts[name] += 1
        ordinal = self._call_counts[name]
        self.in_flight[name] += 1
        self.peak_in_flight[name] = max(self.peak_in_flight[name], self.in_flight[name])
        try:
            for _ in range(self.latency_ticks):
                await asyncio.sleep(0)
            for on_call, error in self._failures.get(name, []):
                if on_call == ordinal:
                    raise error
            handler = getattr(self, f"_op_{name}")
            return handler(dict(operation.params))
        finally:
            self.in_flight[name] -= 1

    async def presign(
        self,
        operation: Operation,
        *,
        expires_in: int,
        unsigned_headers: frozenset[str] = frozenset(),
    ) -> str:
        self.presigned.append(
            {
                "operation": operation,
                "expires_in": expires_in,
                "unsigned_headers": unsigned_headers,
            }
        )
        params = operation.params
        url = f"https://mock-s3/{params['Bucket']}/{params['Key']}?op={operation.name}"
        if "PartNumber" in params:
            url += f"&uploadId={params['UploadId']}&partNumber={params['PartNumber']}"
        return url

    async def read_body(self, body: Any, chunk_size: int) -> AsyncIterator[bytes]:
        while True:
            chunk = body.read(chunk_size)
            if not chunk:
                return
            await asyncio.sleep(0)
            yield chunk

    def _upload(self, params: dict[str, Any]) -> dict[str, Any]:
        upload = self.uploads.get(params["UploadId"])
        if upload is None:
            raise SessionStateError(
                "NoSuchUpload",
                "The specified upload does not exist.",
                operation="multipart",
                target=f"{params['Bucket']}/{params['Key']}",
            )
        return upload

    def _op_GetObject(self, params: dict[str, Any]) -> dict[str, Any]:
        obj = self.objects.get((params["Bucket"], params["Key"]))
        if obj is None:
            raise BackendError(
                "NoSuchKey",
                "The specified key does not exist.",
                operation="GetObject",
                target=f"{params['Bucket']}/{params['Key']}",
            )
        return {"Body": io.BytesIO(obj["body"]), "ContentLength": len(obj["body"])}

    def _op_PutObject(self, params: dict[str, Any]) -> dict[str, Any]:
        body = params.get("Body", b"")
        self.put(
            params["Bucket"],
            params["Key"],
            body,
            content_type=params.get("ContentType"),
            tagging=params.get("Tagging"),
        )
        return {"ETag": f'"{hashlib.md5(body).hexdigest()}"'}

    def _op_DeleteObjects(self, params: dict[str, Any]) -> dict[str, Any]:
        bucket = params["Bucket"]
        errors = []
        for entry in params["Delete"]["Objects"]:
            if entry["Key"] in self.failing_delete_keys:
                errors.append(
                    {"Key": entry["Key"], "Code": "AccessDenied", "Message": "Access Denied"}
                )
                continue
            self.objects.pop((bucket, entry["Key"]), None)
        return {"Errors": errors} if errors else {}

    def _op_ListObjectsV2(self, params: dict[str, Any]) -> dict[str, Any]:
        bucket, prefix = params["Bucket"], params.get("Prefix", "")
        keys = sorted(
            key for (b, key) in self.objects if b == bucket and key.startswith(prefix)
        )
        start = int(params.get("ContinuationToken") or 0)
        page = keys[start : start + self.list_page_size]
        response: dict[str, Any] = {
            "IsTruncated": start + self.list_page_size < len(keys),
            "KeyCount": len(page),
        }
        if page:
            response["Contents"] = [
                {
                    "Key": key,
                    "Size": len(self.objects[(bucket, key)]["body"]),
                    "LastModified": self.objects[(bucket, key)]["last_modified"],
                }
                for key in page
            ]
        if response["IsTruncated"]:
            response["NextContinuationToken"] = str(start + self.list_page_size)
        return response

    def _op_CopyObject(self, params: dict[str, Any]) -> dict[str, Any]:
        source = params["CopySource"]
        obj = self.objects.get((source["Bucket"], source["Key"]))
        if obj is None:
            raise BackendError("NoSuchKey", "The specified key does not exist.")
        tagging = (
            params.get("Tagging")
            if params.get("TaggingDirective") == "REPLACE"
            else obj["tagging"]
        )
        self.put(
            params["Bucket"],
            params["Key"],
            obj["body"],
            content_type=obj["content_type"],
            tagging=tagging,
        )
        return {"CopyObjectResult": {"ETag": '"copied"'}}

    def _op_CreateMultipartUpload(self, params: dict[str, Any]) -> dict[str, Any]:
        self._upload_counter += 1
        upload_id = f"mock-upload-{self._upload_counter}"
        self.uploads[upload_id] = {
            "bucket": params["Bucket"],
            "key": params["Key"],
            "content_type": params.get("ContentType"),
            "tagging": params.get("Tagging"),
            "parts": {},
        }
        return {"UploadId": upload_id, "Bucket": params["Bucket"], "Key": params["Key"]}

    def _op_UploadPart(self, params: dict[str, Any]) -> dict[str, Any]:
        upload = self._upload(params)
        body = bytes(params["Body"])
        etag = f'"{hashlib.md5(body).hexdigest()}"'
        upload["parts"][int(params["PartNumber"])] = {"etag": etag, "body": body}
        return {"ETag": etag}

    def _op_ListParts(self, params: dict[str, Any]) -> dict[str, Any]:
        upload = self._upload(params)
        numbers = sorted(
            n for n in upload["parts"] if n > int(params.get("PartNumberMarker") or 0)
        )
        page = numbers[: self.list_parts_page_size]
        response: dict[str, Any] = {
            "Parts": [
                {
                    "PartNumber": n,
                    "ETag": upload["parts"][n]["etag"],
                    "Size": len(upload["parts"][n]["body"]),
                }
                for n in page
            ],
            "IsTruncated": len(numbers) > len(page),
        }
        if response["IsTruncated"]:
            response["NextPartNumberMarker"] = page[-1]
        return response

    def _op_CompleteMultipartUpload(self, params: dict[str, Any]) -> dict[str, Any]:
        upload = self._upload(params)
        parts = params["MultipartUpload"]["Parts"]
        if not parts:
            raise BackendError("MalformedXML", "The XML you provided was not well-formed")
        body = b""
        for part in parts:
            stored = upload["parts"].get(part["PartNumber"])
            if stored is None or stored["etag"] != part["ETag"]:
                raise BackendError(
                    "InvalidPart", "One or more of the specified parts could not be found."
                )
            body += stored["body"]
        del self.uploads[params["UploadId"]]
        self.put(
            params["Bucket"],
            params["Key"],
            body,
            content_type=upload["content_type"],
            tagging=upload["tagging"],
        )
        return {"ETag": f'"{hashlib.md5(body).hexdigest()}-{len(parts)}"'}

    def _op_AbortMultipartUpload(self, params: dict[str, Any]) -> dict[str, Any]:
        self._upload(params)
        del self.uploads[params["UploadId"]]
        return {}

    def upload_part_externally(self, upload_id: str, part_number: int, body: bytes) -> str:
        """Test helper standing in for an agent uploading through a presigned URL."""
        return self._op_UploadPart(
            {
                "Bucket": "external",
                "Key": "external",
                "UploadId": upload_id,
                "PartNumber": part_number,
                "Body": body,
            }
        )["ETag"]
