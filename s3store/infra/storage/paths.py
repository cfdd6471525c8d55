from __future__ import annotations


class PathMapper:
    """Maps user paths under a work dir onto bucket keys and back.

    S3 keys have no leading separator, so the work dir loses its leading
    ``/``. Paths are joined as-is: ``..`` and repeated separators are the
    caller's business.
    """

    def __init__(self, work_dir: str = "/") -> None:
        self._work_dir = work_dir
        self._prefix = work_dir.removeprefix("/")

    @property
    def work_dir(self) -> str:
        return self._work_dir

    @property
    def prefix(self) -> str:
        return self._prefix

    def to_absolute(self, path: str) -> str:
        return self._prefix + path

    def to_relative(self, key: str) -> str:
        return key.removeprefix(self._prefix)
