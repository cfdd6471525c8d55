from __future__ import annotations

import pytest

from s3store.common.config import Settings, get_settings

ENV_KEYS = (
    "S3_BUCKET",
    "S3_WORK_DIR",
    "S3_REGION",
    "S3_ENDPOINT_URL",
    "S3_ACCESS_KEY_ID",
    "S3_SECRET_ACCESS_KEY",
    "S3_USE_SSL",
    "S3_ADDRESSING_STYLE",
    "S3_USE_ACCELERATE",
    "S3_USE_ARN_REGION",
    "S3_CONNECT_TIMEOUT",
    "S3_READ_TIMEOUT",
    "S3_SIGNATURE_VERSION",
    "S3_VIRTUAL_DIR",
    "S3_VIRTUAL_LINK",
    "S3_LIST_PAGE_SIZE",
    "S3_PART_SIZE_BYTES",
    "S3_PRESIGN_EXPIRES_SECONDS",
    "ENABLE_METRICS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Unset every setting and run from an empty directory (no .env file).

    Keys are set before being deleted so that values loaded from a .env file
    during the test are removed again on teardown.
    """
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "placeholder")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def settings() -> Settings:
    return Settings(
        S3_BUCKET="test-bucket",
        S3_REGION="us-east-1",
        S3_ACCESS_KEY_ID="test-key",
        S3_SECRET_ACCESS_KEY="test-secret",
        ENABLE_METRICS=False,
    )
