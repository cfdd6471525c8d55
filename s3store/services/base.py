from __future__ import annotations

from s3store.common.config import Settings, get_settings
from s3store.infra.storage.client import Storage
from s3store.infra.storage.s3_client import S3Storage


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class StorageBackendNotConfiguredError(ServiceError):
    """Raised when the storage backend is not properly configured."""


class BaseService:
    """Provides the storage backend and settings shared by application services."""

    def __init__(
        self,
        *,
        storage: Storage | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._storage = storage or self._build_storage(self._settings)

    @property
    def storage(self) -> Storage:
        return self._storage

    @property
    def settings(self) -> Settings:
        return self._settings

    @staticmethod
    def _build_storage(settings: Settings) -> Storage:
        """Build the S3 storage backend from configuration."""
        if not settings.S3_BUCKET:
            raise StorageBackendNotConfiguredError("S3_BUCKET is required")
        if bool(settings.S3_ACCESS_KEY_ID) != bool(settings.S3_SECRET_ACCESS_KEY):
            raise StorageBackendNotConfiguredError(
                "S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY must be set together"
            )
        return S3Storage(settings=settings)
