"""Cooperative cancellation for storage calls.

A :class:`CancelToken` is passed through an operation's options. It is checked
before a request is sent, right before botocore puts it on the wire, and on
every chunk of a streamed body, so cancelling it from another thread stops an
upload or download mid-transfer. A token may also carry a deadline.
"""

from __future__ import annotations

import threading
import time
from contextvars import ContextVar

from s3store.infra.storage.errors import CancelledError

# Token of the operation running in the current thread, read by the
# botocore "before-send" hook.
current_cancel: ContextVar["CancelToken | None"] = ContextVar(
    "current_cancel", default=None
)


class CancelToken:
    """Cancellation flag with an optional deadline, safe to share across threads."""

    def __init__(self, *, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.deadline_exceeded

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError("operation cancelled")
        if self.deadline_exceeded:
            raise CancelledError("deadline exceeded")


def raise_if_cancelled(token: CancelToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()


def check_current_cancel(**kwargs: object) -> None:
    """botocore ``before-send`` handler; aborts the request if its token fired."""
    raise_if_cancelled(current_cancel.get())
