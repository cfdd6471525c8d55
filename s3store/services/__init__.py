from .base import BaseService, ServiceError, StorageBackendNotConfiguredError
from .multipart_service import (
    InvalidMultipartStateError,
    MultipartService,
    MultipartSession,
    MultipartState,
)

__all__ = [
    "BaseService",
    "ServiceError",
    "StorageBackendNotConfiguredError",
    "MultipartService",
    "MultipartSession",
    "MultipartState",
    "InvalidMultipartStateError",
]
