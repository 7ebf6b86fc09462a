"""Object storage abstraction layer.

This module provides the gateway protocol that isolates every backend RPC,
its S3-compatible implementation, and the data types and errors shared by
the storage services.
"""

from .client import (
    BackendError,
    BatchError,
    CompletedUpload,
    InvalidPartsError,
    MalformedKeyError,
    ObjectDescriptor,
    ObjectLocator,
    Operation,
    PartRecord,
    PresignedGrant,
    SessionStateError,
    StorageError,
    StorageGateway,
    UploadSession,
)
from .s3_client import BodyStream, S3Gateway

__all__ = [
    "BackendError",
    "BodyStream",
    "BatchError",
    "CompletedUpload",
    "InvalidPartsError",
    "MalformedKeyError",
    "ObjectDescriptor",
    "ObjectLocator",
    "Operation",
    "PartRecord",
    "PresignedGrant",
    "S3Gateway",
    "SessionStateError",
    "StorageError",
    "StorageGateway",
    "UploadSession",
]
