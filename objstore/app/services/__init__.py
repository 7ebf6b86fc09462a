from .base import BaseService, content_type_for
from .batch import BatchService, CopyResult, DeleteResult, run_in_chunks, run_windowed
from .listing import ObjectLister
from .multipart import MultipartUploadController
from .objects import ObjectService
from .presign import DownloadGrant, PresignService, UploadGrant
from .storage_service import ObjectStorageService
from .streaming_upload import StreamingUploadService, UploadSink, exec_post_processors

__all__ = [
    "BaseService",
    "BatchService",
    "CopyResult",
    "DeleteResult",
    "DownloadGrant",
    "MultipartUploadController",
    "ObjectLister",
    "ObjectService",
    "ObjectStorageService",
    "PresignService",
    "StreamingUploadService",
    "UploadGrant",
    "UploadSink",
    "content_type_for",
    "exec_post_processors",
    "run_in_chunks",
    "run_windowed",
]
