"""S3-compatible storage gateway implementation.

This module provides the gateway that works with AWS S3, MinIO, and other
S3-compatible object storage services. boto3 calls are blocking, so each one
runs on a worker thread and the gateway itself is awaitable.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import asyncio
import contextvars
from typing import TYPE_CHECKING, Any

import boto3
from botocore import xform_name
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
)

from objstore.infra.storage.client import (
    GET_OBJECT,
    BackendError,
    Operation,
    SessionStateError,
)

if TYPE_CHECKING:
    from objstore.common.config import Settings

RETRYABLE_ERROR_CODES = frozenset(
    {
        "InternalError",
        "RequestTimeout",
        "RequestTimeTooSkewed",
        "ServiceUnavailable",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
    }
)
# Returned for any call against an upload that was completed or aborted
TERMINAL_SESSION_CODES = frozenset({"NoSuchUpload"})

_UNSIGNED_HEADERS: contextvars.ContextVar[frozenset[str]] = contextvars.ContextVar(
    "objstore_unsigned_headers", default=frozenset()
)


def _strip_unsigned_headers(request: Any, **kwargs: Any) -> None:
    """Drop the headers requested for exclusion before the signer sees them."""
    for name in _UNSIGNED_HEADERS.get():
        if name in request.headers:
            del request.headers[name]


def translate_client_error(operation: Operation, exc: ClientError) -> BackendError:
    """Map a botocore ``ClientError`` onto the storage error taxonomy."""
    error = exc.response.get("Error", {}) or {}
    metadata = exc.response.get("ResponseMetadata", {}) or {}
    code = str(error.get("Code") or "Unknown")
    message = str(error.get("Message") or exc)
    status = int(metadata.get("HTTPStatusCode") or 0)
    retryable = code in RETRYABLE_ERROR_CODES or status == 429 or status >= 500
    error_cls = SessionStateError if code in TERMINAL_SESSION_CODES else BackendError
    return error_cls(
        code,
        message,
        retryable=retryable,
        operation=operation.name,
        target=operation.target,
    )


def translate_botocore_error(operation: Operation, exc: BotoCoreError) -> BackendError:
    """Map a transport-level botocore failure onto ``BackendError``."""
    return BackendError(
        type(exc).__name__,
        str(exc),
        retryable=isinstance(exc, (BotoConnectionError, HTTPClientError)),
        operation=operation.name,
        target=operation.target,
    )


class S3Gateway:
    """S3-compatible request gateway.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations and performs no retries of its own.
    """

    def __init__(self, *, settings: "Settings", client: Any | None = None) -> None:
        """Initialize the gateway.

        Args:
            settings: Application settings containing S3 configuration.
            client: Pre-built boto3 S3 client; built from settings when omitted.
        """
        self._settings = settings
        self._client = client if client is not None else self._build_client(settings)
        self._client.meta.events.register_first(
            "before-sign.s3",
            _strip_unsigned_headers,
            unique_id="objstore-unsigned-headers",
        )

    @property
    def client(self) -> Any:
        return self._client

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        config = Config(
            signature_version="s3v4",
            s3={"addressing_style": settings.S3_ADDRESSING_STYLE},
        )
        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

    async def send(self, operation: Operation) -> dict[str, Any]:
        """Execute one backend RPC on a worker thread."""
        method = getattr(self._client, xform_name(operation.name))
        try:
            response = await asyncio.to_thread(method, **dict(operation.params))
        except ClientError as exc:
            raise translate_client_error(operation, exc) from exc
        except BotoCoreError as exc:
            raise translate_botocore_error(operation, exc) from exc
        return response

    async def presign(
        self,
        operation: Operation,
        *,
        expires_in: int,
        unsigned_headers: frozenset[str] = frozenset(),
    ) -> str:
        """Generate a presigned URL, leaving ``unsigned_headers`` out of the signature."""
        token = _UNSIGNED_HEADERS.set(
            frozenset(name.lower() for name in unsigned_headers)
        )
        try:
            url = await asyncio.to_thread(
                self._client.generate_presigned_url,
                xform_name(operation.name),
                Params=dict(operation.params),
                ExpiresIn=int(expires_in),
            )
        except ClientError as exc:
            raise translate_client_error(operation, exc) from exc
        except BotoCoreError as exc:
            raise translate_botocore_error(operation, exc) from exc
        finally:
            _UNSIGNED_HEADERS.reset(token)

        if not url:
            raise BackendError(
                "EmptyPresignedUrl",
                "Generated presigned URL is empty",
                operation=operation.name,
                target=operation.target,
            )
        return str(url)

    def read_body(self, body: Any, chunk_size: int) -> "BodyStream":
        """Wrap a ``StreamingBody`` so it is read chunk by chunk on worker threads."""
        return BodyStream(body, chunk_size)


class BodyStream:
    """Async iterator over a ``StreamingBody``.

    The body is closed once it is exhausted, when a read fails, or on
    ``aclose()``. A stream that is handed out but never iterated holds its
    HTTP connection until ``aclose()`` is called.
    """

    def __init__(self, body: Any, chunk_size: int):
        self._body = body
        self._chunk_size = chunk_size
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "BodyStream":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        try:
            chunk = await asyncio.to_thread(self._body.read, self._chunk_size)
        except BotoCoreError as exc:
            await self.aclose()
            raise translate_botocore_error(Operation(GET_OBJECT), exc) from exc
        except BaseException:
            await self.aclose()
            raise
        if not chunk:
            await self.aclose()
            raise StopAsyncIteration
        return chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._body.close()

    async def __aenter__(self) -> "BodyStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
