"""Per-operation option bags.

Each field left at ``None`` is not sent to the backend at all. ``False`` and
``0`` are real values and are sent. ``cancel`` is never sent; it aborts the
call when its token fires.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from s3store.infra.storage.cancel import CancelToken
from s3store.infra.storage.client import ListMode, ObjectMode

IoCallback = Callable[[int], None]


@dataclass(frozen=True, slots=True)
class ReadOptions:
    offset: int | None = None
    size: int | None = None
    expected_bucket_owner: str | None = None
    sse_customer_algorithm: str | None = None
    sse_customer_key: bytes | None = field(default=None, repr=False)
    io_callback: IoCallback | None = None
    cancel: CancelToken | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class WriteOptions:
    content_md5: str | None = None
    content_type: str | None = None
    storage_class: str | None = None
    expected_bucket_owner: str | None = None
    server_side_encryption: str | None = None
    sse_bucket_key_enabled: bool | None = None
    sse_kms_key_id: str | None = None
    sse_context: str | None = None
    sse_customer_algorithm: str | None = None
    sse_customer_key: bytes | None = field(default=None, repr=False)
    io_callback: IoCallback | None = None
    cancel: CancelToken | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class StatOptions:
    multipart_id: str | None = None
    object_mode: ObjectMode | None = None
    expected_bucket_owner: str | None = None
    sse_customer_algorithm: str | None = None
    sse_customer_key: bytes | None = field(default=None, repr=False)
    cancel: CancelToken | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class DeleteOptions:
    multipart_id: str | None = None
    object_mode: ObjectMode | None = None
    expected_bucket_owner: str | None = None
    cancel: CancelToken | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class CreateOptions:
    multipart_id: str | None = None
    object_mode: ObjectMode | None = None


@dataclass(frozen=True, slots=True)
class CreateDirOptions:
    storage_class: str | None = None
    expected_bucket_owner: str | None = None
    cancel: CancelToken | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class CreateLinkOptions:
    expected_bucket_owner: str | None = None
    cancel: CancelToken | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class ListOptions:
    list_mode: ListMode | None = None
    expected_bucket_owner: str | None = None
    cancel: CancelToken | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class CreateMultipartOptions:
    content_type: str | None = None
    expected_bucket_owner: str | None = None
    server_side_encryption: str | None = None
    sse_bucket_key_enabled: bool | None = None
    sse_kms_key_id: str | None = None
    sse_context: str | None = None
    sse_customer_algorithm: str | None = None
    sse_customer_key: bytes | None = field(default=None, repr=False)
    cancel: CancelToken | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class WriteMultipartOptions:
    expected_bucket_owner: str | None = None
    sse_customer_algorithm: str | None = None
    sse_customer_key: bytes | None = field(default=None, repr=False)
    io_callback: IoCallback | None = None
    cancel: CancelToken | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class CompleteMultipartOptions:
    expected_bucket_owner: str | None = None
    cancel: CancelToken | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class ListMultipartOptions:
    expected_bucket_owner: str | None = None
    cancel: CancelToken | None = field(default=None, compare=False)
