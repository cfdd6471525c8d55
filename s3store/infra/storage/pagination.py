"""Pull-based page iteration over S3 listing endpoints.

A page iterator owns a frozen status value holding the cursor. Each call to
``next_page`` hands that status to a fetch function, which performs exactly
one listing call and returns the decoded entries together with the status for
the next page, or ``None`` once the backend reports the listing is not
truncated. The iterator swaps in the new status only after the fetch
succeeded, so a failed or interrupted fetch leaves the cursor where it was.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterator, TypeVar

from s3store.infra.storage.cancel import CancelToken
from s3store.infra.storage.errors import IterateDone

T = TypeVar("T")
S = TypeVar("S")

DEFAULT_PAGE_SIZE = 200


@dataclass(frozen=True, slots=True)
class ObjectPageStatus:
    """Cursor for object and multipart-upload listings."""

    prefix: str
    max_keys: int = DEFAULT_PAGE_SIZE
    delimiter: str | None = None
    continuation_token: str | None = None
    key_marker: str | None = None
    upload_id_marker: str | None = None
    expected_bucket_owner: str | None = None
    cancel: CancelToken | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class PartPageStatus:
    """Cursor for the part listing of one multipart upload."""

    key: str
    upload_id: str
    max_parts: int = DEFAULT_PAGE_SIZE
    part_number_marker: int | None = None
    expected_bucket_owner: str | None = None
    cancel: CancelToken | None = field(default=None, compare=False, repr=False)


class IteratorState(enum.Enum):
    READY = "ready"
    FETCHING = "fetching"
    HAS_PAGE = "has_page"
    DONE = "done"


class PageIterator(Generic[T]):
    """Iterates pages of ``T`` produced by a fetch function.

    ``next_page`` returns one page per call, including a possibly empty last
    page, and raises :class:`IterateDone` afterwards. Iterating the object
    itself yields the entries of every page in order.
    """

    def __init__(self, fetch: Callable[[S], tuple[list[T], S | None]], status: S) -> None:
        self._fetch = fetch
        self._status = status
        self._state = IteratorState.READY
        self._page_count = 0

    @property
    def state(self) -> IteratorState:
        return self._state

    @property
    def status(self) -> Any:
        return self._status

    @property
    def page_count(self) -> int:
        return self._page_count

    def next_page(self) -> list[T]:
        if self._state is IteratorState.DONE:
            raise IterateDone()
        if self._state is IteratorState.FETCHING:
            raise RuntimeError("page iterator is already fetching a page")

        previous = self._state
        self._state = IteratorState.FETCHING
        try:
            entries, next_status = self._fetch(self._status)
        except BaseException:
            self._state = previous
            raise

        self._page_count += 1
        if next_status is None:
            self._state = IteratorState.DONE
        else:
            self._status = next_status
            self._state = IteratorState.HAS_PAGE
        return entries

    def pages(self) -> Iterator[list[T]]:
        while True:
            try:
                yield self.next_page()
            except IterateDone:
                return

    def __iter__(self) -> Iterator[T]:
        for page in self.pages():
            yield from page
