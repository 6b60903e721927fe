from pathlib import Path

import pytest

from parcel_atlas.config import ConfigError, Settings


def test_defaults_describe_production_world():
    settings = Settings()
    assert settings.bounds.side == 351
    assert settings.directory_batch_pointers == 50_000
    assert settings.history_retention == 60
    assert settings.validate() is settings


def test_from_env_reads_prefixed_variables():
    settings = Settings.from_env(
        {
            "PARCEL_ATLAS_MIN_COORD": "-10",
            "PARCEL_ATLAS_MAX_COORD": "10",
            "PARCEL_ATLAS_RETRY_BACKOFF_CAP": "2.5",
            "PARCEL_ATLAS_LISTING_BUCKET": "assets",
            "PARCEL_ATLAS_OUTPUT_DIR": "/tmp/reports",
            "UNRELATED": "ignored",
        }
    )
    assert settings.bounds.total == 21 * 21
    assert settings.retry_backoff_cap == 2.5
    assert settings.listing_bucket == "assets"
    assert settings.output_dir == Path("/tmp/reports")
    assert settings.probe_batch_size == 10


def test_from_env_rejects_non_numeric_values():
    with pytest.raises(ConfigError):
        Settings.from_env({"PARCEL_ATLAS_PROBE_BATCH_SIZE": "many"})


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_coord": 5, "max_coord": 4},
        {"report_batch_size": 0},
        {"directory_retry_attempts": 0},
        {"retry_backoff_base": -1.0},
        {"worlds_batch_size": 0},
        {"log_level": "LOUD"},
    ],
)
def test_validate_rejects_bad_values(overrides):
    with pytest.raises(ConfigError):
        Settings(**overrides).validate()


def test_with_overrides_skips_none():
    settings = Settings().with_overrides(min_coord=None, max_coord=3, publish_bucket="r2")
    assert settings.min_coord == -175
    assert settings.max_coord == 3
    assert settings.publish_bucket == "r2"


def test_log_level_is_case_insensitive():
    assert Settings(log_level="debug").validate().log_level == "debug"


def test_from_env_reads_boolean_switch():
    assert Settings.from_env({"PARCEL_ATLAS_INCLUDE_WORLDS": "false"}).include_worlds is False
    assert Settings.from_env({"PARCEL_ATLAS_INCLUDE_WORLDS": "1"}).include_worlds is True
