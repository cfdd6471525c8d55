"""Multipart upload coordination.

This module sequences the create, upload-part and complete/abort calls of a
multipart upload and tracks where each upload session stands. Part indices
are zero-based throughout; the storage layer maps them onto S3's one-based
part numbers.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, BinaryIO, Sequence

from s3store.infra.storage.cancel import CancelToken, raise_if_cancelled
from s3store.infra.storage.client import Part, StorageObject
from s3store.infra.storage.errors import RestrictionViolatedError, StorageError
from s3store.infra.storage.options import (
    CompleteMultipartOptions,
    CreateMultipartOptions,
    DeleteOptions,
    ListMultipartOptions,
    StatOptions,
    WriteMultipartOptions,
)
from s3store.infra.storage.pagination import PageIterator
from s3store.services.base import BaseService, ServiceError

logger = logging.getLogger("multipart")


def _with_cancel(opts: Any, default: Any, cancel: CancelToken | None) -> Any:
    if cancel is None:
        return opts
    return replace(opts or default, cancel=cancel)


class MultipartState(enum.Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


class InvalidMultipartStateError(ServiceError):
    """Raised when the session state does not allow the requested operation."""


@dataclass(slots=True)
class MultipartSession:
    """One multipart upload: its object descriptor and the parts sent so far."""

    object: StorageObject
    state: MultipartState = MultipartState.CREATED
    parts: list[Part] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.object.path

    @property
    def upload_id(self) -> str:
        return self.object.must_get_multipart_id()

    @property
    def closed(self) -> bool:
        return self.state in (MultipartState.COMPLETED, MultipartState.ABORTED)


class MultipartService(BaseService):
    """Application service for multipart upload sessions.

    Concurrent ``upload_part`` calls with different indices on one session
    are fine. ``complete`` and ``abort`` must not overlap an in-flight
    ``upload_part`` on the same session; no locking is done here.
    """

    def create(
        self, path: str, opts: CreateMultipartOptions | None = None
    ) -> MultipartSession:
        """Start a multipart upload for ``path``.

        Args:
            path: Object path relative to the work dir.
            opts: Encryption and content options bound to the upload.

        Returns:
            MultipartSession in the ``CREATED`` state.
        """
        obj = self._storage.create_multipart(path, opts)
        logger.info(
            "multipart_created path=%s upload_id=%s",
            path,
            obj.multipart_id,
            extra={"extra": {"path": path, "upload_id": obj.multipart_id}},
        )
        return MultipartSession(object=obj)

    def resume(
        self,
        path: str,
        multipart_id: str,
        opts: StatOptions | None = None,
    ) -> MultipartSession:
        """Pick up an upload started elsewhere, reloading its confirmed parts.

        Raises:
            ObjectNotExistError: If the upload no longer exists.
        """
        stat_opts = StatOptions(
            multipart_id=multipart_id,
            expected_bucket_owner=opts.expected_bucket_owner if opts else None,
        )
        obj = self._storage.stat(path, stat_opts)
        parts = list(self._storage.list_multipart(obj))
        state = MultipartState.IN_PROGRESS if parts else MultipartState.CREATED
        return MultipartSession(object=obj, state=state, parts=parts)

    def upload_part(
        self,
        session: MultipartSession,
        reader: BinaryIO,
        size: int,
        index: int,
        opts: WriteMultipartOptions | None = None,
    ) -> Part:
        """Upload part ``index`` and record it on the session.

        Raises:
            InvalidMultipartStateError: If the session is completed or aborted.
            RestrictionViolatedError: If size or index is out of range.
        """
        self._ensure_open(session, "upload_part")
        _, part = self._storage.write_multipart(session.object, reader, size, index, opts)
        session.parts.append(part)
        session.state = MultipartState.IN_PROGRESS
        return part

    def complete(
        self,
        session: MultipartSession,
        parts: Sequence[Part] | None = None,
        opts: CompleteMultipartOptions | None = None,
    ) -> StorageObject:
        """Complete the upload.

        Args:
            session: Session to complete.
            parts: Parts to submit, in this order. Defaults to the parts
                uploaded through this session, in the order their uploads
                finished. S3 rejects a list that is not in ascending index
                order, so callers uploading parts concurrently should pass
                ``parts`` sorted by index.
            opts: Completion options.

        Returns:
            The session's object, now readable.
        """
        self._ensure_open(session, "complete")
        submitted = list(parts) if parts is not None else list(session.parts)
        self._storage.complete_multipart(session.object, submitted, opts)
        session.state = MultipartState.COMPLETED
        logger.info(
            "multipart_completed path=%s upload_id=%s parts=%d",
            session.path,
            session.upload_id,
            len(submitted),
            extra={
                "extra": {
                    "path": session.path,
                    "upload_id": session.upload_id,
                    "parts": len(submitted),
                }
            },
        )
        return session.object

    def abort(self, session: MultipartSession) -> None:
        """Abort the upload. Aborting twice, or an upload S3 no longer knows, is fine.

        Raises:
            InvalidMultipartStateError: If the session was already completed.
        """
        if session.state is MultipartState.ABORTED:
            return
        if session.state is MultipartState.COMPLETED:
            raise InvalidMultipartStateError("cannot abort a completed multipart upload")

        self._storage.delete(session.path, DeleteOptions(multipart_id=session.upload_id))
        session.state = MultipartState.ABORTED
        logger.info(
            "multipart_aborted path=%s upload_id=%s",
            session.path,
            session.upload_id,
            extra={"extra": {"path": session.path, "upload_id": session.upload_id}},
        )

    def list_parts(
        self,
        session: MultipartSession,
        opts: ListMultipartOptions | None = None,
    ) -> PageIterator[Part]:
        """Iterate the parts S3 has confirmed for this upload."""
        return self._storage.list_multipart(session.object, opts)

    def upload(
        self,
        path: str,
        reader: BinaryIO,
        size: int,
        *,
        part_size: int | None = None,
        create_opts: CreateMultipartOptions | None = None,
        part_opts: WriteMultipartOptions | None = None,
        cancel: CancelToken | None = None,
    ) -> StorageObject:
        """Upload ``size`` bytes from a stream as consecutive parts.

        The stream is read front to back exactly once. If any step fails the
        upload is aborted and the original error propagates.

        ``cancel`` is checked before each part and handed to every storage
        call; the abort that follows a cancellation ignores it.

        Raises:
            CancelledError: If ``cancel`` fired before the upload completed.
            RestrictionViolatedError: If ``part_size`` is out of range or the
                upload would need too many parts.
        """
        meta = self._storage.metadata()
        part_size = int(part_size or self._settings.S3_PART_SIZE_BYTES)
        if not meta.multipart_size_minimum <= part_size <= meta.multipart_size_maximum:
            raise RestrictionViolatedError(
                f"part size {part_size} not in "
                f"[{meta.multipart_size_minimum}, {meta.multipart_size_maximum}]"
            )
        part_count = max(1, math.ceil(size / part_size))
        if part_count > meta.multipart_number_maximum:
            raise RestrictionViolatedError(
                f"multipart number limit exceeded: {part_count} parts "
                f"> {meta.multipart_number_maximum}"
            )

        raise_if_cancelled(cancel)
        create_opts = _with_cancel(create_opts, CreateMultipartOptions(), cancel)
        part_opts = _with_cancel(part_opts, WriteMultipartOptions(), cancel)
        complete_opts = _with_cancel(None, CompleteMultipartOptions(), cancel)

        session = self.create(path, create_opts)
        try:
            remaining = size
            for index in range(part_count):
                raise_if_cancelled(cancel)
                chunk_size = min(part_size, remaining)
                self.upload_part(session, reader, chunk_size, index, part_opts)
                remaining -= chunk_size
            return self.complete(session, opts=complete_opts)
        except Exception:
            logger.warning(
                "multipart_upload_failed path=%s upload_id=%s uploaded_parts=%d",
                session.path,
                session.upload_id,
                len(session.parts),
            )
            if not session.closed:
                try:
                    self.abort(session)
                except StorageError:
                    logger.exception(
                        "multipart_abort_failed path=%s upload_id=%s",
                        session.path,
                        session.upload_id,
                    )
            raise

    @staticmethod
    def _ensure_open(session: MultipartSession, op: str) -> None:
        if session.closed:
            raise InvalidMultipartStateError(
                f"{op} not allowed: multipart upload is {session.state.value}"
            )
