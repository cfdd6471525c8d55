"""S3-compatible storage implementation.

This module provides the S3 storage backend that works with AWS S3, MinIO
and other S3-compatible object storage services: object reads and writes,
directory and symlink emulation, paginated listing, multipart uploads and
presigned requests.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import replace
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, Iterator, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from s3store.infra.observability.metrics import record_operation
from s3store.infra.storage.cancel import (
    CancelToken,
    check_current_cancel,
    current_cancel,
    raise_if_cancelled,
)
from s3store.infra.storage.client import (
    ListMode,
    ObjectMode,
    ObjectSystemMetadata,
    Part,
    StorageFeatures,
    StorageMeta,
    StorageObject,
)
from s3store.infra.storage.errors import (
    InvalidListModeError,
    RestrictionViolatedError,
    StorageError,
    UnexpectedError,
    UnsupportedOptionError,
    is_not_found,
    translate_error,
)
from s3store.infra.storage.formatters import (
    LINK_TARGET_METADATA,
    MULTIPART_NUMBER_MAXIMUM,
    MULTIPART_SIZE_MAXIMUM,
    MULTIPART_SIZE_MINIMUM,
    WRITE_SIZE_MAXIMUM,
    RequestFormatter,
    from_wire_part_number,
)
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
from s3store.infra.storage.pagination import (
    ObjectPageStatus,
    PageIterator,
    PartPageStatus,
)
from s3store.infra.storage.paths import PathMapper
from s3store.infra.storage.presign import PresignedRequest, RequestPresigner

if TYPE_CHECKING:
    from s3store.common.config import Settings

logger = logging.getLogger("storage")

COPY_CHUNK_SIZE = 1024 * 1024

ObjectPageFetch = Callable[
    [ObjectPageStatus], "tuple[list[StorageObject], ObjectPageStatus | None]"
]


class LimitedReader:
    """Reads at most ``size`` bytes from a stream that need not be seekable.

    Reports every chunk to ``callback`` and checks ``cancel`` before each one.
    Has no ``seek``: the body is read exactly once.
    """

    def __init__(
        self,
        reader: BinaryIO,
        size: int,
        callback: Callable[[int], None] | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        self._reader = reader
        self._remaining = int(size)
        self._callback = callback
        self._cancel = cancel

    def readable(self) -> bool:
        return True

    def read(self, amt: int | None = -1) -> bytes:
        if self._remaining <= 0:
            return b""
        raise_if_cancelled(self._cancel)
        if amt is None or amt < 0 or amt > self._remaining:
            amt = self._remaining
        chunk = self._reader.read(amt)
        if not chunk:
            return b""
        self._remaining -= len(chunk)
        if self._callback is not None:
            self._callback(len(chunk))
        return chunk


def _copy_stream(
    reader: Any,
    writer: BinaryIO,
    callback: Callable[[int], None] | None,
    cancel: CancelToken | None = None,
) -> int:
    written = 0
    while True:
        raise_if_cancelled(cancel)
        chunk = reader.read(COPY_CHUNK_SIZE)
        if not chunk:
            return written
        writer.write(chunk)
        written += len(chunk)
        if callback is not None:
            callback(len(chunk))


def _non_empty(value: Any) -> Any:
    return value if value not in (None, "") else None


def _format_system_metadata(output: dict[str, Any]) -> ObjectSystemMetadata:
    return ObjectSystemMetadata(
        storage_class=_non_empty(output.get("StorageClass")),
        server_side_encryption=_non_empty(output.get("ServerSideEncryption")),
        sse_kms_key_id=_non_empty(output.get("SSEKMSKeyId")),
        sse_context=_non_empty(output.get("SSEKMSEncryptionContext")),
        sse_customer_algorithm=_non_empty(output.get("SSECustomerAlgorithm")),
        sse_customer_key_md5=_non_empty(output.get("SSECustomerKeyMD5")),
        sse_bucket_key_enabled=output.get("BucketKeyEnabled"),
    )


class S3Storage:
    """S3-compatible object storage for one bucket and work dir.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations. Every operation is a blocking
    request/response; nothing is retried and nothing runs in the background.
    """

    def __init__(self, *, settings: "Settings") -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Application settings containing S3 configuration.

        Raises:
            ValueError: If no bucket is configured.
        """
        if not settings.S3_BUCKET:
            raise ValueError("S3_BUCKET is required")

        self._settings = settings
        self._bucket = settings.S3_BUCKET
        self._paths = PathMapper(settings.S3_WORK_DIR)
        self._features = StorageFeatures(
            virtual_dir=bool(settings.S3_VIRTUAL_DIR),
            virtual_link=bool(settings.S3_VIRTUAL_LINK),
        )
        self._page_size = int(settings.S3_LIST_PAGE_SIZE)
        self._client = self._build_client(settings)
        self._formatter = RequestFormatter(self._bucket, self._paths, self._features)
        self._client.meta.events.register("before-send.s3", check_current_cancel)
        self._presigner = RequestPresigner(
            self._client, settings.S3_PRESIGN_EXPIRES_SECONDS
        )
        self._list_strategies: dict[ListMode, ObjectPageFetch] = {
            ListMode.PREFIX: self._next_object_page_by_prefix,
            ListMode.DIR: self._next_object_page_by_dir,
            ListMode.PART: self._next_part_object_page_by_prefix,
        }

    def __repr__(self) -> str:
        return f"S3Storage(name={self._bucket!r}, work_dir={self._paths.work_dir!r})"

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        addressing_style = (settings.S3_ADDRESSING_STYLE or "path").strip().lower()
        config = Config(
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT,
            signature_version=settings.S3_SIGNATURE_VERSION,
            # Single attempt: bodies may not be rewindable and are read once.
            retries={"total_max_attempts": 1, "mode": "standard"},
            # Content hashes are the caller's business (see content_md5).
            request_checksum_calculation="when_required",
            response_checksum_validation="when_required",
            s3={
                "addressing_style": addressing_style,
                "payload_signing_enabled": False,
                "use_accelerate_endpoint": bool(settings.S3_USE_ACCELERATE),
                "use_arn_region": bool(settings.S3_USE_ARN_REGION),
            },
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

    @property
    def name(self) -> str:
        return self._bucket

    @property
    def work_dir(self) -> str:
        return self._paths.work_dir

    @property
    def features(self) -> StorageFeatures:
        return self._features

    @contextmanager
    def _operation(
        self, op: str, *paths: str, cancel: CancelToken | None = None
    ) -> Iterator[None]:
        """Translate errors, log and time one storage operation.

        ``cancel`` is checked on entry and by the before-send hook while the
        block runs.
        """
        start = time.perf_counter()
        outcome = "cancelled"
        cancel_reset = current_cancel.set(cancel)
        try:
            raise_if_cancelled(cancel)
            yield
            outcome = "ok"
        except StorageError as exc:
            outcome = exc.bind(op, paths).code
            raise
        except Exception as exc:
            error = translate_error(exc, op=op, paths=paths)
            outcome = error.code
            raise error from exc
        finally:
            elapsed = time.perf_counter() - start
            if self._settings.ENABLE_METRICS:
                record_operation(op, outcome, elapsed)
            logger.log(
                logging.DEBUG if outcome == "ok" else logging.WARNING,
                "storage op=%s bucket=%s paths=%s outcome=%s duration_ms=%.3f",
                op,
                self._bucket,
                ",".join(paths) or "-",
                outcome,
                elapsed * 1000,
                extra={
                    "extra": {
                        "op": op,
                        "bucket": self._bucket,
                        "paths": list(paths),
                        "outcome": outcome,
                        "duration_ms": round(elapsed * 1000, 3),
                    }
                },
            )
            current_cancel.reset(cancel_reset)

    def metadata(self) -> StorageMeta:
        return StorageMeta(
            name=self._bucket,
            work_dir=self._paths.work_dir,
            write_size_maximum=WRITE_SIZE_MAXIMUM,
            multipart_number_maximum=MULTIPART_NUMBER_MAXIMUM,
            multipart_size_maximum=MULTIPART_SIZE_MAXIMUM,
            multipart_size_minimum=MULTIPART_SIZE_MINIMUM,
        )

    def create(self, path: str, opts: CreateOptions | None = None) -> StorageObject:
        """Build an object descriptor without calling S3."""
        opts = opts or CreateOptions()
        key = self._paths.to_absolute(path)

        if opts.multipart_id is not None:
            return StorageObject(
                id=key,
                path=path,
                mode=ObjectMode.PART,
                multipart_id=opts.multipart_id,
            )
        if opts.object_mode is not None and ObjectMode.DIR in opts.object_mode:
            if not self._features.virtual_dir:
                raise UnsupportedOptionError(
                    "object_mode=dir requires virtual dir support to be enabled",
                    op="create",
                    paths=(path,),
                )
            return StorageObject(id=key + "/", path=path, mode=ObjectMode.DIR)
        return StorageObject(id=key, path=path, mode=ObjectMode.READ)

    def read(
        self,
        path: str,
        writer: BinaryIO,
        opts: ReadOptions | None = None,
    ) -> int:
        """Stream an object, or a byte range of it, into ``writer``."""
        opts = opts or ReadOptions()
        with self._operation("read", path, cancel=opts.cancel):
            params = self._formatter.format_get_object(path, opts)
            output = self._client.get_object(**params)
            body = output["Body"]
            try:
                return _copy_stream(body, writer, opts.io_callback, opts.cancel)
            finally:
                body.close()

    def write(
        self,
        path: str,
        reader: BinaryIO | None,
        size: int,
        opts: WriteOptions | None = None,
    ) -> int:
        """Upload ``size`` bytes from ``reader`` with a single PUT."""
        opts = opts or WriteOptions()
        with self._operation("write", path, cancel=opts.cancel):
            if size > WRITE_SIZE_MAXIMUM:
                raise RestrictionViolatedError(
                    f"size limit exceeded: {size} > {WRITE_SIZE_MAXIMUM}"
                )
            # An empty object may be written without a reader.
            if reader is None and size != 0:
                raise ValueError("reader is None but size is not 0")

            params = self._formatter.format_put_object(path, size, opts)
            if size == 0:
                params["Body"] = b""
            else:
                params["Body"] = LimitedReader(
                    reader, size, opts.io_callback, opts.cancel
                )
            self._client.put_object(**params)
        return size

    def stat(self, path: str, opts: StatOptions | None = None) -> StorageObject:
        """Get object metadata without downloading the content.

        With a multipart id, checks that the upload still exists instead.
        """
        opts = opts or StatOptions()
        with self._operation("stat", path, cancel=opts.cancel):
            if opts.multipart_id is not None:
                key = self._paths.to_absolute(path)
                status = PartPageStatus(
                    key=key,
                    upload_id=opts.multipart_id,
                    max_parts=1,
                    expected_bucket_owner=opts.expected_bucket_owner,
                )
                self._client.list_parts(**self._formatter.format_list_parts(status))
                return StorageObject(
                    id=key,
                    path=path,
                    mode=ObjectMode.PART,
                    multipart_id=opts.multipart_id,
                )

            params = self._formatter.format_head_object(path, opts)
            output = self._client.head_object(**params)

        obj = StorageObject(id=params["Key"], path=path)
        target = (output.get("Metadata") or {}).get(LINK_TARGET_METADATA)
        if target is not None:
            if self._features.virtual_link:
                obj.mode |= ObjectMode.LINK
                # S3 keys carry no leading "/", user paths do.
                obj.link_target = "/" + target
            else:
                obj.mode |= ObjectMode.READ

        if not obj.mode & (ObjectMode.LINK | ObjectMode.READ):
            if opts.object_mode is not None and ObjectMode.DIR in opts.object_mode:
                obj.mode |= ObjectMode.DIR
            else:
                obj.mode |= ObjectMode.READ

        content_length = output.get("ContentLength")
        obj.content_length = int(content_length) if content_length is not None else 0
        obj.last_modified = output.get("LastModified")
        obj.content_type = output.get("ContentType")
        obj.etag = output.get("ETag")
        obj.system_metadata = _format_system_metadata(output)
        return obj

    def delete(self, path: str, opts: DeleteOptions | None = None) -> None:
        """Delete an object, or abort a multipart upload when a multipart id is given.

        A missing object or upload counts as deleted.
        """
        opts = opts or DeleteOptions()
        if opts.multipart_id is not None:
            with self._operation("abort_multipart", path, cancel=opts.cancel):
                params = self._formatter.format_abort_multipart_upload(path, opts)
                try:
                    self._client.abort_multipart_upload(**params)
                except ClientError as exc:
                    if not is_not_found(exc):
                        raise
                    logger.debug(
                        "abort_multipart upload already gone path=%s multipart_id=%s",
                        path,
                        opts.multipart_id,
                    )
            # Abort only; an object already stored at this key is left in place.
            return

        with self._operation("delete", path, cancel=opts.cancel):
            params = self._formatter.format_delete_object(path, opts)
            try:
                self._client.delete_object(**params)
            except ClientError as exc:
                if not is_not_found(exc):
                    raise
                logger.debug("delete object already gone path=%s", path)

    def create_dir(
        self, path: str, opts: CreateDirOptions | None = None
    ) -> StorageObject:
        """Create a directory marker object."""
        opts = opts or CreateDirOptions()
        with self._operation("create_dir", path, cancel=opts.cancel):
            if not self._features.virtual_dir:
                raise UnsupportedOptionError(
                    "create_dir requires virtual dir support to be enabled"
                )
            params = self._formatter.format_put_dir_marker(path, opts)
            output = self._client.put_object(**params)

        return StorageObject(
            id=params["Key"],
            path=path,
            mode=ObjectMode.DIR,
            etag=output.get("ETag"),
            system_metadata=_format_system_metadata(output),
        )

    def create_link(
        self, path: str, target: str, opts: CreateLinkOptions | None = None
    ) -> StorageObject:
        """Create an empty object whose user metadata names ``target``.

        S3 has no symlinks; the object is only reported as a link when
        virtual links are enabled.
        """
        opts = opts or CreateLinkOptions()
        with self._operation("create_link", path, target, cancel=opts.cancel):
            params = self._formatter.format_put_link(path, target, opts)
            output = self._client.put_object(**params)

        obj = StorageObject(
            id=params["Key"],
            path=path,
            etag=output.get("ETag"),
            system_metadata=_format_system_metadata(output),
        )
        if self._features.virtual_link:
            obj.mode |= ObjectMode.LINK
            obj.link_target = "/" + params["Metadata"][LINK_TARGET_METADATA]
        else:
            obj.mode |= ObjectMode.READ
        return obj

    def list(
        self, path: str, opts: ListOptions | None = None
    ) -> PageIterator[StorageObject]:
        """List objects under ``path``.

        ``ListMode.PREFIX`` (default) lists every key with the prefix,
        ``ListMode.DIR`` lists one level using ``/`` as delimiter and
        ``ListMode.PART`` lists in-progress multipart uploads.
        """
        opts = opts or ListOptions()
        list_mode = opts.list_mode if opts.list_mode is not None else ListMode.PREFIX

        fetch = self._list_strategies.get(list_mode)
        if fetch is None:
            raise InvalidListModeError(
                f"invalid list mode: {list_mode!r}", op="list", paths=(path,)
            )

        status = ObjectPageStatus(
            prefix=self._paths.to_absolute(path),
            max_keys=self._page_size,
            delimiter="/" if list_mode is ListMode.DIR else None,
            expected_bucket_owner=opts.expected_bucket_owner,
            cancel=opts.cancel,
        )
        return PageIterator(fetch, status)

    def _format_file_object(self, content: dict[str, Any]) -> StorageObject:
        # Listing cannot tell links from plain objects; use stat for that.
        key = content["Key"]
        size = content.get("Size")
        return StorageObject(
            id=key,
            path=self._paths.to_relative(key),
            mode=ObjectMode.READ,
            content_length=int(size) if size is not None else 0,
            last_modified=content.get("LastModified"),
            etag=content.get("ETag"),
            system_metadata=ObjectSystemMetadata(
                storage_class=_non_empty(content.get("StorageClass"))
            ),
        )

    def _next_object_page_by_prefix(
        self, status: ObjectPageStatus
    ) -> tuple[list[StorageObject], ObjectPageStatus | None]:
        with self._operation("list", status.prefix, cancel=status.cancel):
            output = self._client.list_objects_v2(
                **self._formatter.format_list_objects(status)
            )

        entries = [self._format_file_object(v) for v in output.get("Contents", [])]
        if not output.get("IsTruncated"):
            return entries, None
        return entries, replace(
            status, continuation_token=output.get("NextContinuationToken")
        )

    def _next_object_page_by_dir(
        self, status: ObjectPageStatus
    ) -> tuple[list[StorageObject], ObjectPageStatus | None]:
        with self._operation("list", status.prefix, cancel=status.cancel):
            output = self._client.list_objects_v2(
                **self._formatter.format_list_objects(status)
            )

        # Common prefixes first, then contents; not merged into one order.
        entries = [
            StorageObject(
                id=v["Prefix"],
                path=self._paths.to_relative(v["Prefix"]),
                mode=ObjectMode.DIR,
            )
            for v in output.get("CommonPrefixes", [])
        ]
        entries.extend(
            self._format_file_object(v) for v in output.get("Contents", [])
        )
        if not output.get("IsTruncated"):
            return entries, None
        return entries, replace(
            status, continuation_token=output.get("NextContinuationToken")
        )

    def _next_part_object_page_by_prefix(
        self, status: ObjectPageStatus
    ) -> tuple[list[StorageObject], ObjectPageStatus | None]:
        with self._operation("list", status.prefix, cancel=status.cancel):
            output = self._client.list_multipart_uploads(
                **self._formatter.format_list_multipart_uploads(status)
            )

        entries = [
            StorageObject(
                id=v["Key"],
                path=self._paths.to_relative(v["Key"]),
                mode=ObjectMode.PART,
                multipart_id=v["UploadId"],
            )
            for v in output.get("Uploads", [])
        ]
        if not output.get("IsTruncated"):
            return entries, None
        return entries, replace(
            status,
            key_marker=output.get("NextKeyMarker"),
            upload_id_marker=output.get("NextUploadIdMarker"),
        )

    def _next_part_page(
        self, status: PartPageStatus
    ) -> tuple[list[Part], PartPageStatus | None]:
        with self._operation("list_multipart", status.key, cancel=status.cancel):
            output = self._client.list_parts(
                **self._formatter.format_list_parts(status)
            )

        parts = [
            Part(
                index=from_wire_part_number(v["PartNumber"]),
                size=int(v.get("Size", 0)),
                etag=v.get("ETag", ""),
            )
            for v in output.get("Parts", [])
        ]
        if not output.get("IsTruncated"):
            return parts, None
        return parts, replace(
            status, part_number_marker=output.get("NextPartNumberMarker")
        )

    def create_multipart(
        self, path: str, opts: CreateMultipartOptions | None = None
    ) -> StorageObject:
        """Initialize a multipart upload session.

        Encryption options given here are bound to the upload by S3.
        """
        opts = opts or CreateMultipartOptions()
        with self._operation("create_multipart", path, cancel=opts.cancel):
            params = self._formatter.format_create_multipart_upload(path, opts)
            output = self._client.create_multipart_upload(**params)

            upload_id = output.get("UploadId")
            if not upload_id:
                raise UnexpectedError("S3 response missing UploadId")

        return StorageObject(
            id=params["Key"],
            path=path,
            mode=ObjectMode.PART,
            multipart_id=str(upload_id),
            system_metadata=_format_system_metadata(output),
        )

    def write_multipart(
        self,
        obj: StorageObject,
        reader: BinaryIO,
        size: int,
        index: int,
        opts: WriteMultipartOptions | None = None,
    ) -> tuple[int, Part]:
        """Upload part ``index`` (zero-based) of a multipart upload."""
        opts = opts or WriteMultipartOptions()
        with self._operation("write_multipart", obj.path, cancel=opts.cancel):
            if size > MULTIPART_SIZE_MAXIMUM:
                raise RestrictionViolatedError(
                    f"size limit exceeded: {size} > {MULTIPART_SIZE_MAXIMUM}"
                )
            if index < 0 or index >= MULTIPART_NUMBER_MAXIMUM:
                raise RestrictionViolatedError(
                    f"multipart number limit exceeded: index {index} "
                    f"not in [0, {MULTIPART_NUMBER_MAXIMUM})"
                )

            params = self._formatter.format_upload_part(obj, size, index, opts)
            params["Body"] = LimitedReader(reader, size, opts.io_callback, opts.cancel)
            output = self._client.upload_part(**params)

        return size, Part(index=index, size=size, etag=output.get("ETag", ""))

    def complete_multipart(
        self,
        obj: StorageObject,
        parts: Sequence[Part],
        opts: CompleteMultipartOptions | None = None,
    ) -> None:
        """Complete a multipart upload; ``obj`` becomes a readable object."""
        opts = opts or CompleteMultipartOptions()
        with self._operation("complete_multipart", obj.path, cancel=opts.cancel):
            params = self._formatter.format_complete_multipart_upload(obj, parts, opts)
            self._client.complete_multipart_upload(**params)

        obj.mode = (obj.mode & ~ObjectMode.PART) | ObjectMode.READ

    def list_multipart(
        self, obj: StorageObject, opts: ListMultipartOptions | None = None
    ) -> PageIterator[Part]:
        opts = opts or ListMultipartOptions()
        status = PartPageStatus(
            key=obj.id,
            upload_id=obj.must_get_multipart_id(),
            max_parts=self._page_size,
            expected_bucket_owner=opts.expected_bucket_owner,
            cancel=opts.cancel,
        )
        return PageIterator(self._next_part_page, status)

    def query_sign_http_read(
        self,
        path: str,
        expires_in: int | None = None,
        opts: ReadOptions | None = None,
    ) -> PresignedRequest:
        opts = opts or ReadOptions()
        with self._operation("query_sign_http_read", path):
            params = self._formatter.format_get_object(path, opts)
            return self._presigner.presign("get_object", "GET", params, expires_in)

    def query_sign_http_write(
        self,
        path: str,
        size: int,
        expires_in: int | None = None,
        opts: WriteOptions | None = None,
    ) -> PresignedRequest:
        opts = opts or WriteOptions()
        with self._operation("query_sign_http_write", path):
            params = self._formatter.format_put_object(path, size, opts)
            return self._presigner.presign("put_object", "PUT", params, expires_in)

    def query_sign_http_delete(
        self,
        path: str,
        expires_in: int | None = None,
        opts: DeleteOptions | None = None,
    ) -> PresignedRequest:
        opts = opts or DeleteOptions()
        with self._operation("query_sign_http_delete", path):
            if opts.multipart_id is not None:
                params = self._formatter.format_abort_multipart_upload(path, opts)
                return self._presigner.presign(
                    "abort_multipart_upload", "DELETE", params, expires_in
                )
            params = self._formatter.format_delete_object(path, opts)
            return self._presigner.presign(
                "delete_object", "DELETE", params, expires_in
            )

    def query_sign_http_create_multipart(
        self,
        path: str,
        expires_in: int | None = None,
        opts: CreateMultipartOptions | None = None,
    ) -> PresignedRequest:
        opts = opts or CreateMultipartOptions()
        with self._operation("query_sign_http_create_multipart", path):
            params = self._formatter.format_create_multipart_upload(path, opts)
            return self._presigner.presign(
                "create_multipart_upload", "POST", params, expires_in
            )

    def query_sign_http_write_multipart(
        self,
        obj: StorageObject,
        size: int,
        index: int,
        expires_in: int | None = None,
        opts: WriteMultipartOptions | None = None,
    ) -> PresignedRequest:
        opts = opts or WriteMultipartOptions()
        with self._operation("query_sign_http_write_multipart", obj.path):
            params = self._formatter.format_upload_part(obj, size, index, opts)
            return self._presigner.presign("upload_part", "PUT", params, expires_in)

    def query_sign_http_complete_multipart(
        self,
        obj: StorageObject,
        parts: Sequence[Part],
        expires_in: int | None = None,
        opts: CompleteMultipartOptions | None = None,
    ) -> PresignedRequest:
        opts = opts or CompleteMultipartOptions()
        with self._operation("query_sign_http_complete_multipart", obj.path):
            params = self._formatter.format_complete_multipart_upload(obj, parts, opts)
            return self._presigner.presign(
                "complete_multipart_upload",
                "POST",
                params,
                expires_in,
                include_body=True,
            )

    def query_sign_http_list_multipart(
        self,
        obj: StorageObject,
        expires_in: int | None = None,
        opts: ListMultipartOptions | None = None,
    ) -> PresignedRequest:
        opts = opts or ListMultipartOptions()
        with self._operation("query_sign_http_list_multipart", obj.path):
            status = PartPageStatus(
                key=obj.id,
                upload_id=obj.must_get_multipart_id(),
                max_parts=self._page_size,
                expected_bucket_owner=opts.expected_bucket_owner,
            )
            params = self._formatter.format_list_parts(status)
            return self._presigner.presign("list_parts", "GET", params, expires_in)
