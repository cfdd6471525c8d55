import pytest

from s3store.common.config import Settings, get_settings


def test_defaults(clean_env):
    settings = Settings.from_environment()

    assert settings.S3_BUCKET is None
    assert settings.S3_WORK_DIR == "/"
    assert settings.S3_ADDRESSING_STYLE == "path"
    assert settings.S3_USE_SSL is True
    assert settings.S3_LIST_PAGE_SIZE == 200
    assert settings.S3_PART_SIZE_BYTES == 64 * 1024 * 1024
    assert settings.S3_PRESIGN_EXPIRES_SECONDS == 900
    assert settings.S3_SIGNATURE_VERSION == "s3v4"


def test_reads_environment(clean_env):
    clean_env.setenv("S3_BUCKET", "media")
    clean_env.setenv("S3_WORK_DIR", "/tenant/")
    clean_env.setenv("S3_USE_SSL", "false")
    clean_env.setenv("S3_VIRTUAL_DIR", "yes")
    clean_env.setenv("S3_ADDRESSING_STYLE", " Virtual ")
    clean_env.setenv("S3_LIST_PAGE_SIZE", "1000")
    clean_env.setenv("S3_ENDPOINT_URL", "  ")
    clean_env.setenv("LOG_LEVEL", "debug")
    clean_env.setenv("S3_SIGNATURE_VERSION", "s3")

    settings = Settings.from_environment()

    assert settings.S3_BUCKET == "media"
    assert settings.S3_WORK_DIR == "/tenant/"
    assert settings.S3_USE_SSL is False
    assert settings.S3_VIRTUAL_DIR is True
    assert settings.S3_ADDRESSING_STYLE == "virtual"
    assert settings.S3_LIST_PAGE_SIZE == 1000
    assert settings.S3_ENDPOINT_URL is None
    assert settings.LOG_LEVEL == "DEBUG"
    assert settings.S3_SIGNATURE_VERSION == "s3"


def test_env_file_does_not_override_environment(clean_env, tmp_path):
    (tmp_path / ".env").write_text(
        "# local\nS3_BUCKET='from-file'\nS3_REGION=eu-west-1\n", encoding="utf-8"
    )
    clean_env.setenv("S3_REGION", "us-east-2")

    settings = Settings.from_environment()

    assert settings.S3_BUCKET == "from-file"
    assert settings.S3_REGION == "us-east-2"


def test_get_settings_is_cached(clean_env):
    clean_env.setenv("S3_BUCKET", "first")
    first = get_settings()
    clean_env.setenv("S3_BUCKET", "second")

    assert get_settings() is first
    assert get_settings().S3_BUCKET == "first"


@pytest.mark.parametrize(
    ("field", "value", "message"),
    [
        ("S3_ADDRESSING_STYLE", "dns", "S3_ADDRESSING_STYLE"),
        ("S3_WORK_DIR", "tenant/", "absolute"),
        ("S3_LIST_PAGE_SIZE", 0, "S3_LIST_PAGE_SIZE"),
        ("S3_LIST_PAGE_SIZE", 1001, "S3_LIST_PAGE_SIZE"),
        ("S3_PART_SIZE_BYTES", 1024, "5 MiB"),
        ("S3_PRESIGN_EXPIRES_SECONDS", 0, "positive"),
        ("S3_SIGNATURE_VERSION", "v2", "S3_SIGNATURE_VERSION"),
    ],
)
def test_invalid_values_are_rejected(field, value, message):
    with pytest.raises(ValueError, match=message):
        Settings(**{field: value})
