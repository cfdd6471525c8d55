"""Tests for S3 storage backend."""

import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, ReadTimeoutError
from prometheus_client import REGISTRY

from s3store.infra.storage.cancel import (
    CancelToken,
    check_current_cancel,
    current_cancel,
)
from s3store.infra.storage.client import ListMode, ObjectMode, Part, StorageObject
from s3store.infra.storage.errors import (
    CancelledError,
    InvalidListModeError,
    IterateDone,
    ObjectNotExistError,
    PermissionDeniedError,
    RestrictionViolatedError,
    UnexpectedError,
    UnsupportedOptionError,
)
from s3store.infra.storage.options import (
    CreateMultipartOptions,
    CreateOptions,
    DeleteOptions,
    ListOptions,
    ReadOptions,
    StatOptions,
    WriteMultipartOptions,
    WriteOptions,
)
from s3store.infra.storage.pagination import IteratorState
from s3store.infra.storage.s3_client import COPY_CHUNK_SIZE, LimitedReader, S3Storage

GIB = 1024 * 1024 * 1024


def client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestS3Storage:
    """Test S3Storage implementation."""

    @pytest.fixture
    def mock_s3(self):
        """Mock boto3 S3 client."""
        mock_client = MagicMock()
        with patch.object(S3Storage, "_build_client", return_value=mock_client):
            yield mock_client

    @pytest.fixture
    def storage(self, mock_s3, settings):
        """Create S3Storage with mocked boto3."""
        settings.S3_WORK_DIR = "/work/"
        return S3Storage(settings=settings)

    @pytest.fixture
    def virtual_storage(self, mock_s3, settings):
        settings.S3_WORK_DIR = "/work/"
        settings.S3_VIRTUAL_DIR = True
        settings.S3_VIRTUAL_LINK = True
        return S3Storage(settings=settings)

    def test_requires_bucket(self, mock_s3, settings):
        settings.S3_BUCKET = None
        with pytest.raises(ValueError, match="S3_BUCKET"):
            S3Storage(settings=settings)

    def test_client_signs_with_sigv4(self, settings):
        with patch("s3store.infra.storage.s3_client.boto3.client") as make_client:
            S3Storage._build_client(settings)

        config = make_client.call_args.kwargs["config"]
        assert config.signature_version == "s3v4"
        assert config.retries == {"total_max_attempts": 1, "mode": "standard"}

    def test_registers_cancel_hook(self, storage, mock_s3):
        mock_s3.meta.events.register.assert_called_once_with(
            "before-send.s3", check_current_cancel
        )

    def test_metadata(self, storage):
        meta = storage.metadata()

        assert meta.name == "test-bucket"
        assert meta.work_dir == "/work/"
        assert meta.write_size_maximum == 5 * GIB
        assert meta.multipart_number_maximum == 10000
        assert meta.multipart_size_minimum == 5 * 1024 * 1024

    def test_create_builds_descriptor_without_network(self, storage, mock_s3):
        mock_s3.reset_mock()

        obj = storage.create("a.txt")
        part = storage.create("a.txt", CreateOptions(multipart_id="up-1"))

        assert obj.id == "work/a.txt"
        assert obj.mode is ObjectMode.READ
        assert part.mode is ObjectMode.PART
        assert part.multipart_id == "up-1"
        assert mock_s3.method_calls == []

    def test_create_dir_mode_requires_virtual_dir(self, storage, virtual_storage):
        with pytest.raises(UnsupportedOptionError):
            storage.create("d", CreateOptions(object_mode=ObjectMode.DIR))

        obj = virtual_storage.create("d", CreateOptions(object_mode=ObjectMode.DIR))
        assert obj.id == "work/d/"
        assert obj.mode is ObjectMode.DIR

    def test_read_streams_body_with_range(self, storage, mock_s3):
        mock_s3.get_object.return_value = {"Body": io.BytesIO(b"hello")}
        callback = MagicMock()
        writer = io.BytesIO()

        n = storage.read(
            "a.txt", writer, ReadOptions(offset=10, size=5, io_callback=callback)
        )

        assert n == 5
        assert writer.getvalue() == b"hello"
        callback.assert_called_once_with(5)
        mock_s3.get_object.assert_called_once_with(
            Bucket="test-bucket", Key="work/a.txt", Range="bytes=10-14"
        )

    def test_read_missing_object_raises_not_found(self, storage, mock_s3):
        mock_s3.get_object.side_effect = client_error("NoSuchKey", "GetObject")

        with pytest.raises(ObjectNotExistError) as exc_info:
            storage.read("a.txt", io.BytesIO())

        assert exc_info.value.op == "read"
        assert exc_info.value.paths == ("a.txt",)
        assert isinstance(exc_info.value.__cause__, ClientError)

    def test_write_uploads_limited_body(self, storage, mock_s3):
        n = storage.write(
            "a.txt",
            io.BytesIO(b"hello world"),
            5,
            WriteOptions(content_type="text/plain", storage_class="STANDARD_IA"),
        )

        assert n == 5
        kwargs = mock_s3.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "test-bucket"
        assert kwargs["Key"] == "work/a.txt"
        assert kwargs["ContentLength"] == 5
        assert kwargs["ContentType"] == "text/plain"
        assert kwargs["StorageClass"] == "STANDARD_IA"
        assert isinstance(kwargs["Body"], LimitedReader)
        assert kwargs["Body"].read() == b"hello"

    def test_write_empty_object_without_reader(self, storage, mock_s3):
        assert storage.write("empty", None, 0) == 0
        assert mock_s3.put_object.call_args.kwargs["Body"] == b""

    def test_write_without_reader_and_nonzero_size_fails(self, storage, mock_s3):
        with pytest.raises(UnexpectedError, match="reader is None"):
            storage.write("a.txt", None, 3)
        mock_s3.put_object.assert_not_called()

    def test_write_over_size_limit_makes_no_request(self, storage, mock_s3):
        with pytest.raises(RestrictionViolatedError, match="size limit exceeded"):
            storage.write("a.txt", io.BytesIO(), 5 * GIB + 1)
        mock_s3.put_object.assert_not_called()

    def test_stat_plain_object(self, storage, mock_s3):
        mock_s3.head_object.return_value = {
            "ContentLength": 42,
            "ContentType": "text/plain",
            "ETag": '"abc"',
            "StorageClass": "STANDARD",
            "ServerSideEncryption": "aws:kms",
            "BucketKeyEnabled": True,
        }

        obj = storage.stat("a.txt")

        assert obj.id == "work/a.txt"
        assert obj.mode is ObjectMode.READ
        assert obj.content_length == 42
        assert obj.etag == '"abc"'
        assert obj.system_metadata.storage_class == "STANDARD"
        assert obj.system_metadata.server_side_encryption == "aws:kms"
        assert obj.system_metadata.sse_bucket_key_enabled is True
        assert obj.system_metadata.sse_kms_key_id is None

    def test_stat_detects_virtual_link(self, storage, virtual_storage, mock_s3):
        mock_s3.head_object.return_value = {
            "ContentLength": 0,
            "Metadata": {"bs-link-target": "work/target.txt"},
        }

        link = virtual_storage.stat("l")
        plain = storage.stat("l")

        assert link.mode is ObjectMode.LINK
        assert link.link_target == "/work/target.txt"
        assert plain.mode is ObjectMode.READ
        assert plain.link_target is None

    def test_stat_dir_object(self, virtual_storage, mock_s3):
        mock_s3.head_object.return_value = {"ContentLength": 0}

        obj = virtual_storage.stat("d", StatOptions(object_mode=ObjectMode.DIR))

        assert obj.mode is ObjectMode.DIR
        mock_s3.head_object.assert_called_once_with(Bucket="test-bucket", Key="work/d/")

    def test_stat_with_multipart_id_checks_upload(self, storage, mock_s3):
        mock_s3.list_parts.return_value = {"Parts": []}

        obj = storage.stat("a.bin", StatOptions(multipart_id="up-1"))

        assert obj.mode is ObjectMode.PART
        assert obj.multipart_id == "up-1"
        mock_s3.list_parts.assert_called_once_with(
            Bucket="test-bucket", Key="work/a.bin", UploadId="up-1", MaxParts=1
        )
        mock_s3.head_object.assert_not_called()

    def test_stat_permission_denied(self, storage, mock_s3):
        mock_s3.head_object.side_effect = client_error("403")

        with pytest.raises(PermissionDeniedError):
            storage.stat("a.txt")

    def test_delete_is_idempotent(self, storage, mock_s3):
        mock_s3.delete_object.side_effect = [None, client_error("NoSuchKey", "DeleteObject")]

        storage.delete("a.txt")
        storage.delete("a.txt")

        assert mock_s3.delete_object.call_count == 2

    def test_delete_with_multipart_id_aborts_only(self, storage, mock_s3):
        mock_s3.abort_multipart_upload.side_effect = client_error(
            "NoSuchUpload", "AbortMultipartUpload"
        )

        storage.delete("a.bin", DeleteOptions(multipart_id="up-1"))

        mock_s3.abort_multipart_upload.assert_called_once_with(
            Bucket="test-bucket", Key="work/a.bin", UploadId="up-1"
        )
        mock_s3.delete_object.assert_not_called()

    def test_delete_other_errors_propagate(self, storage, mock_s3):
        mock_s3.delete_object.side_effect = client_error("InternalError", "DeleteObject")

        with pytest.raises(UnexpectedError) as exc_info:
            storage.delete("a.txt")
        assert exc_info.value.op == "delete"

    def test_create_dir(self, virtual_storage, mock_s3):
        mock_s3.put_object.return_value = {"ETag": '"d41d8"'}

        obj = virtual_storage.create_dir("d")

        assert obj.id == "work/d/"
        assert obj.mode is ObjectMode.DIR
        mock_s3.put_object.assert_called_once_with(
            Bucket="test-bucket", Key="work/d/", ContentLength=0, Body=b""
        )

    def test_create_dir_requires_virtual_dir(self, storage, mock_s3):
        with pytest.raises(UnsupportedOptionError):
            storage.create_dir("d")
        mock_s3.put_object.assert_not_called()

    def test_create_link(self, storage, virtual_storage, mock_s3):
        mock_s3.put_object.return_value = {}

        link = virtual_storage.create_link("l", "target.txt")
        plain = storage.create_link("l", "target.txt")

        assert link.mode is ObjectMode.LINK
        assert link.link_target == "/work/target.txt"
        assert plain.mode is ObjectMode.READ
        assert mock_s3.put_object.call_args.kwargs["Metadata"] == {
            "bs-link-target": "work/target.txt"
        }

    def test_list_prefix_pages_until_not_truncated(self, storage, mock_s3):
        mock_s3.list_objects_v2.side_effect = [
            {
                "Contents": [{"Key": "work/a", "Size": 1}],
                "IsTruncated": True,
                "NextContinuationToken": "tok-1",
            },
            {"Contents": [{"Key": "work/b", "Size": 2}], "IsTruncated": False},
        ]

        objects = list(storage.list(""))

        assert [o.path for o in objects] == ["a", "b"]
        assert [o.content_length for o in objects] == [1, 2]
        first, second = mock_s3.list_objects_v2.call_args_list
        assert first.kwargs == {"Bucket": "test-bucket", "Prefix": "work/", "MaxKeys": 200}
        assert second.kwargs["ContinuationToken"] == "tok-1"

    def test_list_single_empty_page(self, storage, mock_s3):
        mock_s3.list_objects_v2.return_value = {"IsTruncated": False}

        it = storage.list("missing/")

        assert it.next_page() == []
        assert it.state is IteratorState.DONE
        with pytest.raises(IterateDone):
            it.next_page()
        assert mock_s3.list_objects_v2.call_count == 1

    def test_list_dir_puts_common_prefixes_first(self, storage, mock_s3):
        mock_s3.list_objects_v2.return_value = {
            "CommonPrefixes": [{"Prefix": "work/sub/"}],
            "Contents": [{"Key": "work/file", "Size": 3}],
            "IsTruncated": False,
        }

        entries = list(storage.list("", ListOptions(list_mode=ListMode.DIR)))

        assert [(e.path, e.mode) for e in entries] == [
            ("sub/", ObjectMode.DIR),
            ("file", ObjectMode.READ),
        ]
        assert mock_s3.list_objects_v2.call_args.kwargs["Delimiter"] == "/"

    def test_list_part_mode_uses_next_markers(self, storage, mock_s3):
        mock_s3.list_multipart_uploads.side_effect = [
            {
                "Uploads": [{"Key": "work/a", "UploadId": "u1"}],
                "IsTruncated": True,
                "NextKeyMarker": "work/a",
                "NextUploadIdMarker": "u1",
            },
            {"Uploads": [{"Key": "work/b", "UploadId": "u2"}], "IsTruncated": False},
        ]

        entries = list(storage.list("", ListOptions(list_mode=ListMode.PART)))

        assert [(e.path, e.multipart_id) for e in entries] == [("a", "u1"), ("b", "u2")]
        assert all(e.mode is ObjectMode.PART for e in entries)
        second = mock_s3.list_multipart_uploads.call_args_list[1]
        assert second.kwargs["KeyMarker"] == "work/a"
        assert second.kwargs["UploadIdMarker"] == "u1"

    def test_list_invalid_mode(self, storage):
        with pytest.raises(InvalidListModeError):
            storage.list("", ListOptions(list_mode="recursive"))

    def test_list_failure_keeps_cursor_and_resumes(self, storage, mock_s3):
        mock_s3.list_objects_v2.side_effect = [
            {
                "Contents": [{"Key": "work/a"}],
                "IsTruncated": True,
                "NextContinuationToken": "tok-1",
            },
            client_error("InternalError", "ListObjectsV2"),
            {"Contents": [{"Key": "work/b"}], "IsTruncated": False},
        ]
        it = storage.list("")

        assert [o.path for o in it.next_page()] == ["a"]
        with pytest.raises(UnexpectedError):
            it.next_page()
        assert it.state is IteratorState.HAS_PAGE
        assert it.status.continuation_token == "tok-1"

        assert [o.path for o in it.next_page()] == ["b"]
        assert mock_s3.list_objects_v2.call_args.kwargs["ContinuationToken"] == "tok-1"
        assert it.state is IteratorState.DONE

    def test_create_multipart(self, storage, mock_s3):
        mock_s3.create_multipart_upload.return_value = {"UploadId": "up-1"}
        key = bytes(range(32))

        obj = storage.create_multipart(
            "a.bin",
            CreateMultipartOptions(
                content_type="application/pdf",
                sse_customer_algorithm="AES256",
                sse_customer_key=key,
            ),
        )

        assert obj.mode is ObjectMode.PART
        assert obj.multipart_id == "up-1"
        kwargs = mock_s3.create_multipart_upload.call_args.kwargs
        assert kwargs["Key"] == "work/a.bin"
        assert kwargs["ContentType"] == "application/pdf"
        assert kwargs["SSECustomerAlgorithm"] == "AES256"
        assert "SSECustomerKeyMD5" in kwargs

    def test_create_multipart_missing_upload_id(self, storage, mock_s3):
        mock_s3.create_multipart_upload.return_value = {}

        with pytest.raises(UnexpectedError, match="UploadId"):
            storage.create_multipart("a.bin")

    def test_write_multipart_sends_one_based_part_number(self, storage, mock_s3):
        mock_s3.upload_part.return_value = {"ETag": '"etag-1"'}
        obj = StorageObject(
            id="work/a.bin", path="a.bin", mode=ObjectMode.PART, multipart_id="up-1"
        )
        callback = MagicMock()

        n, part = storage.write_multipart(
            obj, io.BytesIO(b"abcdef"), 4, 0, WriteMultipartOptions(io_callback=callback)
        )

        assert n == 4
        assert part == Part(index=0, size=4, etag='"etag-1"')
        kwargs = mock_s3.upload_part.call_args.kwargs
        assert kwargs["PartNumber"] == 1
        assert kwargs["UploadId"] == "up-1"
        assert kwargs["ContentLength"] == 4
        assert kwargs["Body"].read() == b"abcd"
        callback.assert_called_once_with(4)

    @pytest.mark.parametrize(
        ("size", "index"),
        [(5 * GIB + 1, 0), (1, -1), (1, 10000)],
    )
    def test_write_multipart_limits_checked_before_request(
        self, storage, mock_s3, size, index
    ):
        obj = StorageObject(id="work/a.bin", path="a.bin", multipart_id="up-1")

        with pytest.raises(RestrictionViolatedError):
            storage.write_multipart(obj, io.BytesIO(), size, index)
        mock_s3.upload_part.assert_not_called()

    def test_complete_multipart_keeps_caller_order(self, storage, mock_s3):
        obj = StorageObject(
            id="work/a.bin", path="a.bin", mode=ObjectMode.PART, multipart_id="up-1"
        )
        parts = [Part(index=2, size=1, etag="c"), Part(index=0, size=1, etag="a")]

        storage.complete_multipart(obj, parts)

        mock_s3.complete_multipart_upload.assert_called_once_with(
            Bucket="test-bucket",
            Key="work/a.bin",
            UploadId="up-1",
            MultipartUpload={
                "Parts": [
                    {"ETag": "c", "PartNumber": 3},
                    {"ETag": "a", "PartNumber": 1},
                ]
            },
        )
        assert obj.mode is ObjectMode.READ

    def test_list_multipart_translates_part_numbers(self, storage, mock_s3):
        mock_s3.list_parts.side_effect = [
            {
                "Parts": [{"PartNumber": 1, "Size": 5, "ETag": "a"}],
                "IsTruncated": True,
                "NextPartNumberMarker": 1,
            },
            {"Parts": [{"PartNumber": 2, "Size": 3, "ETag": "b"}], "IsTruncated": False},
        ]
        obj = StorageObject(id="work/a.bin", path="a.bin", multipart_id="up-1")

        parts = list(storage.list_multipart(obj))

        assert parts == [Part(0, 5, "a"), Part(1, 3, "b")]
        assert mock_s3.list_parts.call_args.kwargs["PartNumberMarker"] == 1

    def test_list_multipart_unknown_upload(self, storage, mock_s3):
        mock_s3.list_parts.side_effect = client_error("NoSuchUpload", "ListParts")
        obj = StorageObject(id="work/a.bin", path="a.bin", multipart_id="up-1")

        with pytest.raises(ObjectNotExistError):
            storage.list_multipart(obj).next_page()

    def test_empty_presigned_url_is_unexpected(self, storage, mock_s3):
        mock_s3.generate_presigned_url.return_value = ""

        with pytest.raises(UnexpectedError, match="presigned URL is empty"):
            storage.query_sign_http_read("a.txt", 900)

    def test_cancelled_token_makes_no_request(self, storage, mock_s3):
        token = CancelToken()
        token.cancel()

        with pytest.raises(CancelledError) as exc_info:
            storage.stat("a.txt", StatOptions(cancel=token))

        assert exc_info.value.op == "stat"
        assert exc_info.value.paths == ("a.txt",)
        mock_s3.head_object.assert_not_called()

    def test_expired_deadline_makes_no_request(self, storage, mock_s3):
        with pytest.raises(CancelledError, match="deadline exceeded"):
            storage.delete("a.txt", DeleteOptions(cancel=CancelToken(timeout=0)))

        mock_s3.delete_object.assert_not_called()

    def test_read_cancelled_mid_stream(self, storage, mock_s3):
        body = io.BytesIO(b"x" * (COPY_CHUNK_SIZE * 3))
        mock_s3.get_object.return_value = {"Body": body}
        token = CancelToken()
        writer = io.BytesIO()

        with pytest.raises(CancelledError) as exc_info:
            storage.read(
                "a.txt",
                writer,
                ReadOptions(io_callback=lambda n: token.cancel(), cancel=token),
            )

        assert exc_info.value.op == "read"
        assert len(writer.getvalue()) == COPY_CHUNK_SIZE
        assert body.closed

    def test_write_cancelled_mid_body(self, storage, mock_s3):
        token = CancelToken()
        sent = []

        def put_object(**kwargs):
            while chunk := kwargs["Body"].read(4):
                sent.append(chunk)

        mock_s3.put_object.side_effect = put_object

        with pytest.raises(CancelledError) as exc_info:
            storage.write(
                "a.txt",
                io.BytesIO(b"x" * 16),
                16,
                WriteOptions(io_callback=lambda n: token.cancel(), cancel=token),
            )

        assert exc_info.value.op == "write"
        assert sent == [b"xxxx"]

    def test_before_send_hook_sees_operation_token(self, storage, mock_s3):
        token = CancelToken()

        def head_object(**kwargs):
            token.cancel()
            check_current_cancel(request=None)

        mock_s3.head_object.side_effect = head_object

        with pytest.raises(CancelledError):
            storage.stat("a.txt", StatOptions(cancel=token))
        assert current_cancel.get() is None

    def test_read_timeout_is_cancellation(self, storage, mock_s3):
        mock_s3.get_object.side_effect = ReadTimeoutError(endpoint_url="https://s3")

        with pytest.raises(CancelledError, match="deadline exceeded"):
            storage.read("a.txt", io.BytesIO())

    def test_cancelled_list_keeps_cursor(self, storage, mock_s3):
        mock_s3.list_objects_v2.return_value = {
            "Contents": [{"Key": "work/a"}],
            "IsTruncated": True,
            "NextContinuationToken": "tok-1",
        }
        token = CancelToken()
        it = storage.list("", ListOptions(cancel=token))
        it.next_page()

        token.cancel()
        with pytest.raises(CancelledError):
            it.next_page()

        assert it.state is IteratorState.HAS_PAGE
        assert it.status.continuation_token == "tok-1"
        assert it.page_count == 1
        assert mock_s3.list_objects_v2.call_count == 1

    def test_operations_recorded_in_metrics(self, mock_s3, settings):
        settings.ENABLE_METRICS = True
        storage = S3Storage(settings=settings)
        mock_s3.head_object.side_effect = client_error("NoSuchKey")
        labels = {"operation": "stat", "outcome": "not_found"}
        before = REGISTRY.get_sample_value("storage_operations_total", labels) or 0.0

        with pytest.raises(ObjectNotExistError):
            storage.stat("a.txt")

        after = REGISTRY.get_sample_value("storage_operations_total", labels)
        assert after == before + 1


class TestLimitedReader:
    def test_stops_at_size(self):
        reader = LimitedReader(io.BytesIO(b"abcdef"), 4)

        assert reader.read(3) == b"abc"
        assert reader.read(3) == b"d"
        assert reader.read() == b""

    def test_reports_chunks(self):
        callback = MagicMock()
        reader = LimitedReader(io.BytesIO(b"abcdef"), 6, callback)

        reader.read(2)
        reader.read()

        assert [c.args[0] for c in callback.call_args_list] == [2, 4]

    def test_short_source(self):
        reader = LimitedReader(io.BytesIO(b"ab"), 10)

        assert reader.read() == b"ab"
        assert reader.read() == b""

    def test_not_seekable(self):
        assert not hasattr(LimitedReader(io.BytesIO(), 0), "seek")

    def test_stops_when_cancelled(self):
        token = CancelToken()
        reader = LimitedReader(io.BytesIO(b"abcdef"), 6, cancel=token)

        assert reader.read(2) == b"ab"
        token.cancel()
        with pytest.raises(CancelledError):
            reader.read(2)
