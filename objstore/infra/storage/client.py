"""Storage gateway protocol, shared data types and error taxonomy.

Every service in this package reaches the object store through a
``StorageGateway``. The types below are the vocabulary those services
exchange with their callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Mapping, Protocol

PATH_SEPARATOR = "/"

GET_OBJECT = "GetObject"
PUT_OBJECT = "PutObject"
DELETE_OBJECTS = "DeleteObjects"
LIST_OBJECTS_V2 = "ListObjectsV2"
COPY_OBJECT = "CopyObject"
CREATE_MULTIPART_UPLOAD = "CreateMultipartUpload"
LIST_PARTS = "ListParts"
UPLOAD_PART = "UploadPart"
ABORT_MULTIPART_UPLOAD = "AbortMultipartUpload"
COMPLETE_MULTIPART_UPLOAD = "CompleteMultipartUpload"

BACKEND_OPERATIONS: frozenset[str] = frozenset(
    {
        GET_OBJECT,
        PUT_OBJECT,
        DELETE_OBJECTS,
        LIST_OBJECTS_V2,
        COPY_OBJECT,
        CREATE_MULTIPART_UPLOAD,
        LIST_PARTS,
        UPLOAD_PART,
        ABORT_MULTIPART_UPLOAD,
        COMPLETE_MULTIPART_UPLOAD,
    }
)


class StorageError(RuntimeError):
    """Base class for every error raised by the storage layer."""


class BackendError(StorageError):
    """Raised when a backend RPC fails (network, auth, not-found, conflict...)."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        retryable: bool = False,
        operation: str | None = None,
        target: str | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.retryable = retryable
        self.operation = operation
        self.target = target
        context = " ".join(
            part
            for part in (
                f"operation={operation}" if operation else "",
                f"target={target}" if target else "",
            )
            if part
        )
        text = f"{code}: {message}"
        super().__init__(f"{text} ({context})" if context else text)


class SessionStateError(BackendError):
    """Raised when an operation targets a multipart session that is already terminal."""


class BatchError(StorageError):
    """Raised when a chunked batch fails part way; carries the progress made."""

    def __init__(self, completed_count: int, cause: StorageError) -> None:
        self.completed_count = completed_count
        self.cause = cause
        super().__init__(f"Batch failed after {completed_count} items: {cause}")


class MalformedKeyError(StorageError, ValueError):
    """Raised when a key has no basename where one is required."""


class InvalidPartsError(StorageError, ValueError):
    """Raised when a multipart part list or part number is unusable."""


@dataclass(frozen=True, slots=True)
class ObjectLocator:
    """Bucket and key pair addressing one object."""

    bucket: str
    key: str

    @property
    def basename(self) -> str:
        """Last path segment of the key."""
        if not self.key or self.key.endswith(PATH_SEPARATOR):
            raise MalformedKeyError(f"Key has no basename: {self.key!r}")
        return self.key.rsplit(PATH_SEPARATOR, 1)[-1]

    def __str__(self) -> str:
        return f"{self.bucket}/{self.key}"


@dataclass(frozen=True, slots=True)
class ObjectDescriptor:
    """Listing entry projected from a ListObjectsV2 page."""

    name: str
    locator: ObjectLocator
    last_modified: datetime
    size_bytes: int


@dataclass(frozen=True, slots=True)
class PartRecord:
    """Part acknowledged by the backend for a multipart upload."""

    part_number: int
    etag: str
    size_bytes: int | None = None


@dataclass(frozen=True, slots=True)
class UploadSession:
    """Handle of a backend multipart upload session."""

    upload_id: str
    locator: ObjectLocator


@dataclass(frozen=True, slots=True)
class CompletedUpload:
    """Result of completing a multipart upload session."""

    locator: ObjectLocator
    etag: str | None
    part_count: int


@dataclass(frozen=True, slots=True)
class PresignedGrant:
    """Time-boxed delegated URL."""

    url: str
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class Operation:
    """Descriptor of a single backend RPC."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.name not in BACKEND_OPERATIONS:
            raise ValueError(f"Unsupported backend operation: {self.name}")

    @property
    def target(self) -> str | None:
        bucket = self.params.get("Bucket")
        if not bucket:
            return None
        key = self.params.get("Key")
        return f"{bucket}/{key}" if key else str(bucket)


class StorageGateway(Protocol):
    """Protocol of the single I/O boundary towards the object store.

    Implementations translate every transport or service failure into
    ``BackendError`` and never retry.
    """

    async def send(self, operation: Operation) -> dict[str, Any]:
        """Execute one backend RPC.

        Args:
            operation: The RPC name and its parameters.

        Returns:
            The backend response as a dict.

        Raises:
            BackendError: If the call fails.
        """
        ...

    async def presign(
        self,
        operation: Operation,
        *,
        expires_in: int,
        unsigned_headers: frozenset[str] = frozenset(),
    ) -> str:
        """Generate a presigned URL for ``operation``.

        Args:
            operation: The RPC the URL grants.
            expires_in: URL lifetime in seconds.
            unsigned_headers: Header names excluded from the signed header set.

        Returns:
            The presigned URL.

        Raises:
            BackendError: If signing fails.
        """
        ...

    def read_body(self, body: Any, chunk_size: int) -> AsyncIterator[bytes]:
        """Iterate over a streaming response body in chunks of ``chunk_size``.

        The returned iterator supports ``aclose()``; callers that stop early
        or never iterate must call it to release the body.

        Raises:
            BackendError: If reading fails.
        """
        ...
