"""Storage error taxonomy.

Every failure leaving a storage operation is one of the classes below. Backend
errors are translated right after the boto3 call that raised them, with the
original exception kept as ``__cause__`` for diagnostics.
"""

from __future__ import annotations

from typing import Sequence

from botocore.exceptions import ClientError, ConnectTimeoutError, ReadTimeoutError


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""

    code = "storage_error"

    def __init__(
        self,
        message: str,
        *,
        op: str | None = None,
        paths: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.op = op
        self.paths = tuple(paths)

    def bind(self, op: str, paths: Sequence[str]) -> "StorageError":
        """Attach the failing operation, keeping the innermost one if already set."""
        if self.op is None:
            self.op = op
            self.paths = tuple(paths)
        return self

    def __str__(self) -> str:
        message = super().__str__()
        if self.op is None:
            return message
        if self.paths:
            return f"{self.op} {', '.join(self.paths)}: {message}"
        return f"{self.op}: {message}"


class ObjectNotExistError(StorageError):
    """The object, key or multipart upload does not exist."""

    code = "not_found"


class PermissionDeniedError(StorageError):
    """The backend refused access."""

    code = "permission_denied"


class RestrictionViolatedError(StorageError):
    """A size, index or part-count limit was exceeded; checked before any call."""

    code = "restriction_violated"


class UnsupportedOptionError(StorageError):
    """The caller asked for a feature disabled by configuration."""

    code = "unsupported_option"


class InvalidEncryptionKeyError(StorageError):
    """The server-side encryption customer key is not 32 bytes long."""

    code = "invalid_encryption_key"


class InvalidListModeError(StorageError):
    """The requested list mode has no page-fetch strategy."""

    code = "invalid_list_mode"


class CancelledError(StorageError):
    """The caller cancelled the operation or its deadline passed."""

    code = "cancelled"


class UnexpectedError(StorageError):
    """Anything else reported by the backend or raised while talking to it."""

    code = "unexpected"


class IterateDone(Exception):
    """Raised by a page iterator once the terminal page has been returned."""


NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "NoSuchUpload", "404"})
PERMISSION_DENIED_CODES = frozenset({"AccessDenied", "403"})


def client_error_code(exc: BaseException) -> str | None:
    if not isinstance(exc, ClientError):
        return None
    return exc.response.get("Error", {}).get("Code")


def is_not_found(exc: BaseException) -> bool:
    return client_error_code(exc) in NOT_FOUND_CODES


def translate_error(
    exc: Exception,
    *,
    op: str,
    paths: Sequence[str] = (),
) -> StorageError:
    """Map an exception raised by a storage call onto the taxonomy."""
    if isinstance(exc, StorageError):
        return exc.bind(op, paths)

    if isinstance(exc, (ConnectTimeoutError, ReadTimeoutError)):
        return CancelledError(f"deadline exceeded: {exc}", op=op, paths=paths)

    code = client_error_code(exc)
    if code in NOT_FOUND_CODES:
        error_cls: type[StorageError] = ObjectNotExistError
    elif code in PERMISSION_DENIED_CODES:
        error_cls = PermissionDeniedError
    else:
        error_cls = UnexpectedError
    return error_cls(str(exc), op=op, paths=paths)
