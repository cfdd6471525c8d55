"""Storage protocol and data types.

This module defines the object and part descriptors handed to callers, the
storage restrictions, and the abstract interface every storage backend
implements: reads and writes, directory and link emulation, paginated
listing, multipart uploads and presigned requests.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, BinaryIO, Protocol, Sequence

if TYPE_CHECKING:
    from s3store.infra.storage.options import (
        CompleteMultipartOptions,
        CreateDirOptions,
        CreateLinkOptions,
        CreateMultipartOptions,
        CreateOptions,
        DeleteOptions,
        ListMultipartOptions,
        ListOptions,
        ReadOptions,
        StatOptions,
        WriteMultipartOptions,
        WriteOptions,
    )
    from s3store.infra.storage.pagination import PageIterator
    from s3store.infra.storage.presign import PresignedRequest


class ObjectMode(enum.Flag):
    """What an object can be used as. Several flags may be set at once."""

    NONE = 0
    READ = enum.auto()
    DIR = enum.auto()
    PART = enum.auto()
    LINK = enum.auto()


class ListMode(enum.Enum):
    """Closed set of listing strategies."""

    PREFIX = "prefix"
    DIR = "dir"
    PART = "part"


@dataclass(frozen=True, slots=True)
class StorageFeatures:
    """Emulations switched on by configuration."""

    virtual_dir: bool = False
    virtual_link: bool = False


@dataclass(slots=True)
class ObjectSystemMetadata:
    """S3 specific metadata reported alongside an object."""

    storage_class: str | None = None
    server_side_encryption: str | None = None
    sse_kms_key_id: str | None = None
    sse_context: str | None = None
    sse_customer_algorithm: str | None = None
    sse_customer_key_md5: str | None = None
    sse_bucket_key_enabled: bool | None = None


@dataclass(slots=True)
class StorageObject:
    """Transient view over a remote object.

    ``id`` is the backend key and ``path`` the path relative to the work dir.
    """

    id: str
    path: str
    mode: ObjectMode = ObjectMode.NONE
    multipart_id: str | None = None
    link_target: str | None = None
    content_length: int | None = None
    content_type: str | None = None
    last_modified: datetime | None = None
    etag: str | None = None
    system_metadata: ObjectSystemMetadata = field(default_factory=ObjectSystemMetadata)

    def must_get_multipart_id(self) -> str:
        if self.multipart_id is None:
            raise ValueError(f"object {self.path!r} has no multipart id")
        return self.multipart_id


@dataclass(frozen=True, slots=True)
class Part:
    """An uploaded part. ``index`` is zero-based."""

    index: int
    size: int
    etag: str


@dataclass(frozen=True, slots=True)
class StorageMeta:
    """Static description of a storage and its protocol restrictions."""

    name: str
    work_dir: str
    write_size_maximum: int
    multipart_number_maximum: int
    multipart_size_maximum: int
    multipart_size_minimum: int


class Storage(Protocol):
    """Protocol defining the interface for object storage backends.

    Implementations must provide all methods defined here.
    Currently supports S3-compatible storage services.
    """

    def metadata(self) -> StorageMeta:
        """Describe the storage and its size and part-count restrictions."""
        ...

    def create(self, path: str, opts: CreateOptions | None = None) -> StorageObject:
        """Build an object descriptor without calling the backend."""
        ...

    def read(
        self,
        path: str,
        writer: BinaryIO,
        opts: ReadOptions | None = None,
    ) -> int:
        """Stream an object, or a byte range of it, into ``writer``.

        Returns:
            Number of bytes written.

        Raises:
            ObjectNotExistError: If the object doesn't exist.
            StorageError: If the operation fails.
        """
        ...

    def write(
        self,
        path: str,
        reader: BinaryIO | None,
        size: int,
        opts: WriteOptions | None = None,
    ) -> int:
        """Upload ``size`` bytes from ``reader`` in a single request.

        Raises:
            RestrictionViolatedError: If ``size`` exceeds the single-put limit.
            StorageError: If the operation fails.
        """
        ...

    def stat(self, path: str, opts: StatOptions | None = None) -> StorageObject:
        """Get object metadata without downloading the content."""
        ...

    def delete(self, path: str, opts: DeleteOptions | None = None) -> None:
        """Delete an object, or abort a multipart upload. Idempotent."""
        ...

    def create_dir(
        self, path: str, opts: CreateDirOptions | None = None
    ) -> StorageObject:
        """Create a directory marker object."""
        ...

    def create_link(
        self, path: str, target: str, opts: CreateLinkOptions | None = None
    ) -> StorageObject:
        """Create an object pointing at ``target``."""
        ...

    def list(
        self, path: str, opts: ListOptions | None = None
    ) -> PageIterator[StorageObject]:
        """List objects, directories or in-progress uploads under ``path``."""
        ...

    def create_multipart(
        self, path: str, opts: CreateMultipartOptions | None = None
    ) -> StorageObject:
        """Initialize a multipart upload session.

        Returns:
            Object in ``PART`` mode carrying the upload id.
        """
        ...

    def write_multipart(
        self,
        obj: StorageObject,
        reader: BinaryIO,
        size: int,
        index: int,
        opts: WriteMultipartOptions | None = None,
    ) -> tuple[int, Part]:
        """Upload one part of a multipart upload.

        Args:
            obj: Object returned by ``create_multipart``.
            reader: Part content, need not be seekable.
            size: Part size in bytes.
            index: Zero-based part index, below 10000.

        Raises:
            RestrictionViolatedError: If size or index is out of range.
            StorageError: If the operation fails.
        """
        ...

    def complete_multipart(
        self,
        obj: StorageObject,
        parts: Sequence[Part],
        opts: CompleteMultipartOptions | None = None,
    ) -> None:
        """Complete a multipart upload by combining all parts."""
        ...

    def list_multipart(
        self, obj: StorageObject, opts: ListMultipartOptions | None = None
    ) -> PageIterator[Part]:
        """List the parts uploaded so far."""
        ...

    def query_sign_http_read(
        self,
        path: str,
        expires_in: int | None = None,
        opts: ReadOptions | None = None,
    ) -> PresignedRequest:
        ...

    def query_sign_http_write(
        self,
        path: str,
        size: int,
        expires_in: int | None = None,
        opts: WriteOptions | None = None,
    ) -> PresignedRequest:
        ...

    def query_sign_http_delete(
        self,
        path: str,
        expires_in: int | None = None,
        opts: DeleteOptions | None = None,
    ) -> PresignedRequest:
        ...

    def query_sign_http_create_multipart(
        self,
        path: str,
        expires_in: int | None = None,
        opts: CreateMultipartOptions | None = None,
    ) -> PresignedRequest:
        ...

    def query_sign_http_write_multipart(
        self,
        obj: StorageObject,
        size: int,
        index: int,
        expires_in: int | None = None,
        opts: WriteMultipartOptions | None = None,
    ) -> PresignedRequest:
        ...

    def query_sign_http_complete_multipart(
        self,
        obj: StorageObject,
        parts: Sequence[Part],
        expires_in: int | None = None,
        opts: CompleteMultipartOptions | None = None,
    ) -> PresignedRequest:
        ...

    def query_sign_http_list_multipart(
        self,
        obj: StorageObject,
        expires_in: int | None = None,
        opts: ListMultipartOptions | None = None,
    ) -> PresignedRequest:
        ...
