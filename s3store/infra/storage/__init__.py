"""Object storage abstraction layer.

This module provides a protocol-based abstraction for object storage backends
together with its S3 implementation, supporting AWS S3, MinIO, and other
S3-compatible services.
"""

from .cancel import CancelToken
from .client import (
    ListMode,
    ObjectMode,
    ObjectSystemMetadata,
    Part,
    Storage,
    StorageFeatures,
    StorageMeta,
    StorageObject,
)
from .errors import (
    CancelledError,
    InvalidEncryptionKeyError,
    InvalidListModeError,
    IterateDone,
    ObjectNotExistError,
    PermissionDeniedError,
    RestrictionViolatedError,
    StorageError,
    UnexpectedError,
    UnsupportedOptionError,
)
from .pagination import IteratorState, PageIterator
from .presign import PresignedRequest
from .s3_client import S3Storage

__all__ = [
    "CancelToken",
    "CancelledError",
    "InvalidEncryptionKeyError",
    "InvalidListModeError",
    "IterateDone",
    "IteratorState",
    "ListMode",
    "ObjectMode",
    "ObjectNotExistError",
    "ObjectSystemMetadata",
    "PageIterator",
    "Part",
    "PermissionDeniedError",
    "PresignedRequest",
    "RestrictionViolatedError",
    "S3Storage",
    "Storage",
    "StorageError",
    "StorageFeatures",
    "StorageMeta",
    "StorageObject",
    "UnexpectedError",
    "UnsupportedOptionError",
]
