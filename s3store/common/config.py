from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

ADDRESSING_STYLES: tuple[str, ...] = ("auto", "path", "virtual")
# "s3" is legacy SigV2, kept for old S3-compatible servers.
SIGNATURE_VERSIONS: tuple[str, ...] = ("s3v4", "s3")

MIB = 1024 * 1024
# S3 rejects list pages above 1000 entries.
MAX_LIST_PAGE_SIZE = 1000


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    S3_BUCKET: str | None = None
    S3_WORK_DIR: str = "/"
    S3_REGION: str | None = None
    S3_ENDPOINT_URL: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_USE_SSL: bool = True
    S3_ADDRESSING_STYLE: str = "path"
    S3_USE_ACCELERATE: bool = False
    S3_USE_ARN_REGION: bool = False
    S3_CONNECT_TIMEOUT: int = 60
    S3_READ_TIMEOUT: int = 60
    S3_SIGNATURE_VERSION: str = "s3v4"
    S3_VIRTUAL_DIR: bool = False
    S3_VIRTUAL_LINK: bool = False
    S3_LIST_PAGE_SIZE: int = 200
    S3_PART_SIZE_BYTES: int = 64 * MIB
    S3_PRESIGN_EXPIRES_SECONDS: int = 900
    ENABLE_METRICS: bool = True
    LOG_LEVEL: str = "INFO"

    def __post_init__(self) -> None:
        style = (self.S3_ADDRESSING_STYLE or "").strip().lower()
        if style not in ADDRESSING_STYLES:
            raise ValueError(
                f"S3_ADDRESSING_STYLE must be one of {', '.join(ADDRESSING_STYLES)}."
            )
        self.S3_ADDRESSING_STYLE = style
        if self.S3_SIGNATURE_VERSION not in SIGNATURE_VERSIONS:
            raise ValueError(
                f"S3_SIGNATURE_VERSION must be one of {', '.join(SIGNATURE_VERSIONS)}."
            )
        if not self.S3_WORK_DIR.startswith("/"):
            raise ValueError("S3_WORK_DIR must be an absolute path (start with '/').")
        if not 0 < self.S3_LIST_PAGE_SIZE <= MAX_LIST_PAGE_SIZE:
            raise ValueError(
                f"S3_LIST_PAGE_SIZE must be between 1 and {MAX_LIST_PAGE_SIZE}."
            )
        # Only the last part of an upload may be smaller than 5 MiB.
        if self.S3_PART_SIZE_BYTES < 5 * MIB:
            raise ValueError("S3_PART_SIZE_BYTES must be at least 5 MiB.")
        if self.S3_PRESIGN_EXPIRES_SECONDS <= 0:
            raise ValueError("S3_PRESIGN_EXPIRES_SECONDS must be positive.")

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            S3_BUCKET=_as_optional(os.environ.get("S3_BUCKET")),
            S3_WORK_DIR=os.environ.get("S3_WORK_DIR", cls.S3_WORK_DIR),
            S3_REGION=_as_optional(os.environ.get("S3_REGION")),
            S3_ENDPOINT_URL=_as_optional(os.environ.get("S3_ENDPOINT_URL")),
            S3_ACCESS_KEY_ID=_as_optional(os.environ.get("S3_ACCESS_KEY_ID")),
            S3_SECRET_ACCESS_KEY=_as_optional(os.environ.get("S3_SECRET_ACCESS_KEY")),
            S3_USE_SSL=_as_bool(os.environ.get("S3_USE_SSL"), cls.S3_USE_SSL),
            S3_ADDRESSING_STYLE=os.environ.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            S3_USE_ACCELERATE=_as_bool(
                os.environ.get("S3_USE_ACCELERATE"), cls.S3_USE_ACCELERATE
            ),
            S3_USE_ARN_REGION=_as_bool(
                os.environ.get("S3_USE_ARN_REGION"), cls.S3_USE_ARN_REGION
            ),
            S3_CONNECT_TIMEOUT=int(
                os.environ.get("S3_CONNECT_TIMEOUT", cls.S3_CONNECT_TIMEOUT)
            ),
            S3_READ_TIMEOUT=int(os.environ.get("S3_READ_TIMEOUT", cls.S3_READ_TIMEOUT)),
            S3_SIGNATURE_VERSION=os.environ.get(
                "S3_SIGNATURE_VERSION", cls.S3_SIGNATURE_VERSION
            ).strip(),
            S3_VIRTUAL_DIR=_as_bool(os.environ.get("S3_VIRTUAL_DIR"), cls.S3_VIRTUAL_DIR),
            S3_VIRTUAL_LINK=_as_bool(
                os.environ.get("S3_VIRTUAL_LINK"), cls.S3_VIRTUAL_LINK
            ),
            S3_LIST_PAGE_SIZE=int(
                os.environ.get("S3_LIST_PAGE_SIZE", cls.S3_LIST_PAGE_SIZE)
            ),
            S3_PART_SIZE_BYTES=int(
                os.environ.get("S3_PART_SIZE_BYTES", cls.S3_PART_SIZE_BYTES)
            ),
            S3_PRESIGN_EXPIRES_SECONDS=int(
                os.environ.get(
                    "S3_PRESIGN_EXPIRES_SECONDS", cls.S3_PRESIGN_EXPIRES_SECONDS
                )
            ),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL).upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
