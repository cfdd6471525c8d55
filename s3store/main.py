from __future__ import annotations

import logging

from s3store.common.config import Settings, get_settings
from s3store.common.logging import setup_logging
from s3store.services.base import StorageBackendNotConfiguredError
from s3store.services.multipart_service import MultipartService


def _collect_storage_metadata(settings: Settings) -> dict[str, object]:
    payload: dict[str, object] = {"s3_bucket": settings.S3_BUCKET or "<unset>"}
    payload["s3_work_dir"] = settings.S3_WORK_DIR
    if settings.S3_REGION:
        payload["s3_region"] = settings.S3_REGION
    if settings.S3_ENDPOINT_URL:
        payload["s3_endpoint"] = settings.S3_ENDPOINT_URL
    payload["s3_addressing_style"] = settings.S3_ADDRESSING_STYLE
    payload["s3_credentials"] = (
        "static" if settings.S3_ACCESS_KEY_ID else "default_chain"
    )
    return payload


def _describe_storage_target(settings: Settings) -> str:
    bucket = settings.S3_BUCKET or "?"
    endpoint = settings.S3_ENDPOINT_URL or "aws"
    return f"s3://{bucket}{settings.S3_WORK_DIR}@{endpoint}"


def _format_storage_context(settings: Settings) -> str:
    meta = _collect_storage_metadata(settings)
    parts = [f"{key}={value}" for key, value in meta.items()]
    parts.append(f"s3_target={_describe_storage_target(settings)}")
    return ", ".join(parts)


def create_multipart_service(settings: Settings | None = None) -> MultipartService:
    """Configure logging and build a multipart service on the configured bucket."""
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)
    startup_logger = logging.getLogger("s3store.startup")

    storage_context = _format_storage_context(settings)
    startup_logger.info(
        "Initializing S3 storage backend. [event=storage_init_begin] (%s)",
        storage_context,
    )
    try:
        service = MultipartService(settings=settings)
    except StorageBackendNotConfiguredError as exc:
        startup_logger.error(
            "S3 storage backend is not configured, check S3_BUCKET and credentials."
            " [event=storage_init_failed] (%s, error=%s)",
            storage_context,
            exc,
        )
        raise
    startup_logger.info(
        "S3 storage backend ready. [event=storage_init_succeeded] (%s)",
        storage_context,
    )
    return service
