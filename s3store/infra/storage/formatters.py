"""Builders for boto3 request parameters.

Every function here returns the keyword arguments of one S3 API call. Both
direct calls and presigned requests go through the same builders, so a
presigned request always carries exactly what the direct call would send.
"""

from __future__ import annotations

import base64
import hashlib
from typing import TYPE_CHECKING, Any, Sequence

from s3store.infra.storage.client import (
    ObjectMode,
    Part,
    StorageFeatures,
    StorageObject,
)
from s3store.infra.storage.errors import (
    InvalidEncryptionKeyError,
    UnsupportedOptionError,
)
from s3store.infra.storage.options import (
    CompleteMultipartOptions,
    CreateDirOptions,
    CreateLinkOptions,
    CreateMultipartOptions,
    DeleteOptions,
    ReadOptions,
    StatOptions,
    WriteMultipartOptions,
    WriteOptions,
)
from s3store.infra.storage.paths import PathMapper

if TYPE_CHECKING:
    from s3store.infra.storage.pagination import ObjectPageStatus, PartPageStatus

# S3 restrictions, see https://docs.aws.amazon.com/AmazonS3/latest/userguide/qfacts.html
MULTIPART_NUMBER_MAXIMUM = 10000
MULTIPART_SIZE_MAXIMUM = 5 * 1024 * 1024 * 1024
MULTIPART_SIZE_MINIMUM = 5 * 1024 * 1024
WRITE_SIZE_MAXIMUM = 5 * 1024 * 1024 * 1024

# User metadata key holding the target of an emulated symlink; boto3 strips
# the "x-amz-meta-" prefix on both ends.
LINK_TARGET_METADATA = "bs-link-target"

# AES-256 key length required by SSE-C.
SSE_CUSTOMER_KEY_LENGTH = 32


def to_wire_part_number(index: int) -> int:
    """Zero-based part index to S3's PartNumber in [1, 10000]."""
    return int(index) + 1


def from_wire_part_number(part_number: int) -> int:
    """S3's PartNumber back to the zero-based part index."""
    return int(part_number) - 1


def calculate_encryption_headers(algorithm: str, key: bytes) -> dict[str, str]:
    """Build the SSE-C parameters for a customer-provided key.

    Both the key and its MD5 digest are sent base64 encoded. botocore skips
    its own encoding when ``SSECustomerKeyMD5`` is already present.
    """
    if len(key) != SSE_CUSTOMER_KEY_LENGTH:
        raise InvalidEncryptionKeyError("invalid server-side encryption customer key")
    key_md5 = hashlib.md5(key, usedforsecurity=False).digest()
    return {
        "SSECustomerAlgorithm": algorithm,
        "SSECustomerKey": base64.b64encode(key).decode("ascii"),
        "SSECustomerKeyMD5": base64.b64encode(key_md5).decode("ascii"),
    }


def _apply_expected_owner(params: dict[str, Any], owner: str | None) -> None:
    if owner is not None:
        params["ExpectedBucketOwner"] = owner


def _apply_customer_key(
    params: dict[str, Any], algorithm: str | None, key: bytes | None
) -> None:
    if algorithm is not None:
        params.update(calculate_encryption_headers(algorithm, key or b""))


def _apply_server_side_encryption(
    params: dict[str, Any], opts: WriteOptions | CreateMultipartOptions
) -> None:
    if opts.sse_bucket_key_enabled is not None:
        params["BucketKeyEnabled"] = opts.sse_bucket_key_enabled
    _apply_customer_key(params, opts.sse_customer_algorithm, opts.sse_customer_key)
    if opts.sse_kms_key_id is not None:
        params["SSEKMSKeyId"] = opts.sse_kms_key_id
    if opts.sse_context is not None:
        params["SSEKMSEncryptionContext"] = base64.b64encode(
            opts.sse_context.encode("utf-8")
        ).decode("ascii")
    if opts.server_side_encryption is not None:
        params["ServerSideEncryption"] = opts.server_side_encryption


def format_range(offset: int | None, size: int | None) -> str | None:
    if offset is not None and size is not None:
        return f"bytes={offset}-{offset + size - 1}"
    if offset is not None:
        return f"bytes={offset}-"
    if size is not None:
        return f"bytes=0-{size - 1}"
    return None


class RequestFormatter:
    """Builds S3 request parameters for one bucket and work dir."""

    def __init__(
        self,
        bucket: str,
        paths: PathMapper,
        features: StorageFeatures | None = None,
    ) -> None:
        self._bucket = bucket
        self._paths = paths
        self._features = features or StorageFeatures()

    @property
    def bucket(self) -> str:
        return self._bucket

    def format_get_object(self, path: str, opts: ReadOptions) -> dict[str, Any]:
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": self._paths.to_absolute(path),
        }
        byte_range = format_range(opts.offset, opts.size)
        if byte_range is not None:
            params["Range"] = byte_range
        _apply_expected_owner(params, opts.expected_bucket_owner)
        _apply_customer_key(params, opts.sse_customer_algorithm, opts.sse_customer_key)
        return params

    def format_put_object(
        self, path: str, size: int, opts: WriteOptions
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": self._paths.to_absolute(path),
            "ContentLength": int(size),
        }
        if opts.content_md5 is not None:
            params["ContentMD5"] = opts.content_md5
        if opts.content_type is not None:
            params["ContentType"] = opts.content_type
        if opts.storage_class is not None:
            params["StorageClass"] = opts.storage_class
        _apply_expected_owner(params, opts.expected_bucket_owner)
        _apply_server_side_encryption(params, opts)
        return params

    def format_put_dir_marker(self, path: str, opts: CreateDirOptions) -> dict[str, Any]:
        # A trailing "/" on an empty object stands in for a directory.
        # ref: https://docs.aws.amazon.com/AmazonS3/latest/userguide/using-folders.html
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": self._paths.to_absolute(path) + "/",
            "ContentLength": 0,
            "Body": b"",
        }
        if opts.storage_class is not None:
            params["StorageClass"] = opts.storage_class
        _apply_expected_owner(params, opts.expected_bucket_owner)
        return params

    def format_put_link(
        self, path: str, target: str, opts: CreateLinkOptions
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": self._paths.to_absolute(path),
            "ContentLength": 0,
            "Body": b"",
            "Metadata": {LINK_TARGET_METADATA: self._paths.to_absolute(target)},
        }
        _apply_expected_owner(params, opts.expected_bucket_owner)
        return params

    def format_head_object(self, path: str, opts: StatOptions) -> dict[str, Any]:
        key = self._object_key(path, opts.object_mode)
        params: dict[str, Any] = {"Bucket": self._bucket, "Key": key}
        _apply_expected_owner(params, opts.expected_bucket_owner)
        _apply_customer_key(params, opts.sse_customer_algorithm, opts.sse_customer_key)
        return params

    def format_delete_object(self, path: str, opts: DeleteOptions) -> dict[str, Any]:
        key = self._object_key(path, opts.object_mode)
        params: dict[str, Any] = {"Bucket": self._bucket, "Key": key}
        _apply_expected_owner(params, opts.expected_bucket_owner)
        return params

    def _object_key(self, path: str, mode: ObjectMode | None) -> str:
        key = self._paths.to_absolute(path)
        if mode is not None and ObjectMode.DIR in mode:
            if not self._features.virtual_dir:
                raise UnsupportedOptionError(
                    "object_mode=dir requires virtual dir support to be enabled"
                )
            key += "/"
        return key

    def format_abort_multipart_upload(
        self, path: str, opts: DeleteOptions
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": self._paths.to_absolute(path),
            "UploadId": opts.multipart_id,
        }
        _apply_expected_owner(params, opts.expected_bucket_owner)
        return params

    def format_create_multipart_upload(
        self, path: str, opts: CreateMultipartOptions
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": self._paths.to_absolute(path),
        }
        if opts.content_type is not None:
            params["ContentType"] = opts.content_type
        _apply_expected_owner(params, opts.expected_bucket_owner)
        _apply_server_side_encryption(params, opts)
        return params

    def format_upload_part(
        self,
        obj: StorageObject,
        size: int,
        index: int,
        opts: WriteMultipartOptions,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": obj.id,
            "UploadId": obj.must_get_multipart_id(),
            "PartNumber": to_wire_part_number(index),
            "ContentLength": int(size),
        }
        _apply_expected_owner(params, opts.expected_bucket_owner)
        _apply_customer_key(params, opts.sse_customer_algorithm, opts.sse_customer_key)
        return params

    def format_complete_multipart_upload(
        self,
        obj: StorageObject,
        parts: Sequence[Part],
        opts: CompleteMultipartOptions,
    ) -> dict[str, Any]:
        # Parts go out in the order given; S3 decides whether they are valid.
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": to_wire_part_number(part.index)}
                for part in parts
            ]
        }
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": obj.id,
            "UploadId": obj.must_get_multipart_id(),
            "MultipartUpload": multipart_payload,
        }
        _apply_expected_owner(params, opts.expected_bucket_owner)
        return params

    def format_list_objects(self, status: ObjectPageStatus) -> dict[str, Any]:
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Prefix": status.prefix,
            "MaxKeys": status.max_keys,
        }
        if status.delimiter is not None:
            params["Delimiter"] = status.delimiter
        if status.continuation_token is not None:
            params["ContinuationToken"] = status.continuation_token
        _apply_expected_owner(params, status.expected_bucket_owner)
        return params

    def format_list_multipart_uploads(
        self, status: ObjectPageStatus
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Prefix": status.prefix,
            "MaxUploads": status.max_keys,
        }
        if status.key_marker is not None:
            params["KeyMarker"] = status.key_marker
        if status.upload_id_marker is not None:
            params["UploadIdMarker"] = status.upload_id_marker
        _apply_expected_owner(params, status.expected_bucket_owner)
        return params

    def format_list_parts(self, status: PartPageStatus) -> dict[str, Any]:
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": status.key,
            "UploadId": status.upload_id,
            "MaxParts": status.max_parts,
        }
        if status.part_number_marker is not None:
            params["PartNumberMarker"] = status.part_number_marker
        _apply_expected_owner(params, status.expected_bucket_owner)
        return params
