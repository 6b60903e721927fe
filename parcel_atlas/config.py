"""Runtime configuration for the parcel atlas pipeline.

Values default to what the production deployment uses and can be overridden
through ``PARCEL_ATLAS_*`` environment variables (a ``.env`` file is honoured).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from dotenv import load_dotenv

from .io.models import GridBounds

ENV_PREFIX = "PARCEL_ATLAS_"

DEFAULT_CONTENT_DIRECTORY_URL = "https://peer.decentraland.org/content/entities/active"
DEFAULT_ASSET_BASE_URL = "https://optimized-assets.dclexplorer.com/v1"
DEFAULT_WORLDS_INDEX_URL = "https://worlds-content-server.decentraland.org/index"


class ConfigError(ValueError):
    """Raised when configuration values are inconsistent."""


@dataclass(frozen=True)
class Settings:
    """All recognised pipeline options."""

    # Grid shape
    min_coord: int = -175
    max_coord: int = 175

    # Upstream endpoints
    content_directory_url: str = DEFAULT_CONTENT_DIRECTORY_URL
    asset_base_url: str = DEFAULT_ASSET_BASE_URL

    # Batch sizes (performance only, never change output)
    directory_batch_pointers: int = 50_000
    probe_batch_size: int = 10
    report_batch_size: int = 20

    # Retry policy
    directory_retry_attempts: int = 3
    probe_retry_attempts: int = 2
    report_retry_attempts: int = 2
    retry_backoff_base: float = 1.0
    retry_backoff_cap: float = 10.0

    # Timeouts in seconds
    directory_timeout: float = 60.0
    probe_timeout: float = 5.0
    report_timeout: float = 5.0

    # Politeness delays between batches in seconds
    directory_delay: float = 0.1
    probe_delay: float = 0.1
    report_delay: float = 0.05

    # Named worlds
    include_worlds: bool = True
    worlds_index_url: str = DEFAULT_WORLDS_INDEX_URL
    worlds_batch_size: int = 20
    worlds_timeout: float = 30.0
    worlds_delay: float = 0.1

    # Bulk listing of optimized bundles (S3 compatible)
    listing_bucket: str | None = None
    listing_prefix: str = ""
    s3_endpoint_url: str | None = None
    s3_region: str = "auto"

    # Publishing
    output_dir: Path | None = Path("out")
    publish_bucket: str | None = None
    report_prefix: str = "optimization-pipeline/"
    history_retention: int = 60

    log_level: str = "INFO"

    @property
    def bounds(self) -> GridBounds:
        return GridBounds(self.min_coord, self.max_coord)

    def validate(self) -> "Settings":
        """Raise :class:`ConfigError` when values cannot produce a valid run."""
        if self.min_coord > self.max_coord:
            raise ConfigError(
                f"min_coord ({self.min_coord}) must not exceed max_coord ({self.max_coord})"
            )
        for name in (
            "directory_batch_pointers",
            "probe_batch_size",
            "report_batch_size",
            "worlds_batch_size",
            "directory_retry_attempts",
            "probe_retry_attempts",
            "report_retry_attempts",
            "history_retention",
        ):
            value = getattr(self, name)
            if value < 1:
                raise ConfigError(f"{name} must be at least 1, got {value}")
        if self.retry_backoff_base < 0 or self.retry_backoff_cap < 0:
            raise ConfigError("retry backoff values must not be negative")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"unknown log level: {self.log_level}")
        return self

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-``None`` override applied."""
        applied = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **applied)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``PARCEL_ATLAS_*`` variables over the defaults."""
        if environ is None:
            load_dotenv()
            environ = os.environ
        values: dict[str, Any] = {}
        for option in fields(cls):
            raw = environ.get(ENV_PREFIX + option.name.upper())
            if raw is None:
                continue
            values[option.name] = _coerce(option.name, raw, getattr(cls, option.name))
        return cls(**values)


def _coerce(name: str, raw: str, default: Any) -> Any:
    text = raw.strip()
    if isinstance(default, bool):
        return text.lower() in {"1", "true", "yes", "on"}
    if isinstance(default, int):
        try:
            return int(text)
        except ValueError as exc:
            raise ConfigError(f"{ENV_PREFIX}{name.upper()} must be an integer") from exc
    if isinstance(default, float):
        try:
            return float(text)
        except ValueError as exc:
            raise ConfigError(f"{ENV_PREFIX}{name.upper()} must be a number") from exc
    if isinstance(default, Path) or name == "output_dir":
        return Path(text) if text else None
    if default is None:
        return text or None
    return text
