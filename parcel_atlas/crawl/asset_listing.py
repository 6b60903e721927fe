"""Bulk listing of optimized bundles in the asset bucket."""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Iterable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings

logger = logging.getLogger(__name__)

_BUNDLE_SUFFIX = "-mobile.zip"


class AssetListingError(RuntimeError):
    """Raised when the bulk listing cannot be produced."""


def bundle_key_pattern(prefix: str) -> re.Pattern[str]:
    """Return the regex extracting a scene id from ``{prefix}{id}-mobile.zip``."""
    return re.compile(rf"^{re.escape(prefix)}(.+?){re.escape(_BUNDLE_SUFFIX)}$")


def scene_ids_from_keys(keys: Iterable[str], prefix: str) -> set[str]:
    """Return the scene ids encoded in bundle object *keys*."""
    pattern = bundle_key_pattern(prefix)
    found: set[str] = set()
    for key in keys:
        match = pattern.match(key)
        if match:
            found.add(match.group(1))
    return found


def make_s3_client(settings: Settings) -> Any:
    """Create an S3 client for the configured endpoint."""
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url,
        region_name=settings.s3_region,
    )


class BundleLister:
    """Lists optimized bundle keys page by page with ``list_objects_v2``."""

    def __init__(self, client: Any, bucket: str, prefix: str = "") -> None:
        self.client = client
        self.bucket = bucket
        self.prefix = prefix

    @classmethod
    def from_settings(cls, settings: Settings, client: Any | None = None) -> "BundleLister":
        if not settings.listing_bucket:
            raise AssetListingError("No listing bucket configured")
        return cls(client or make_s3_client(settings), settings.listing_bucket, settings.listing_prefix)

    def iter_keys(self) -> Iterable[str]:
        paginator = self.client.get_paginator("list_objects_v2")
        pages = paginator.paginate(
            Bucket=self.bucket,
            Prefix=self.prefix,
            PaginationConfig={"PageSize": 1000},
        )
        seen = 0
        for page in pages:
            contents = page.get("Contents") or []
            seen += len(contents)
            for item in contents:
                key = item.get("Key")
                if isinstance(key, str) and key.endswith(_BUNDLE_SUFFIX):
                    yield key
            logger.debug("Listed %d objects so far", seen)

    def optimized_scene_ids(self) -> set[str]:
        """Return the ids of every scene with an optimized bundle."""
        started = time.monotonic()
        try:
            found = scene_ids_from_keys(self.iter_keys(), self.prefix)
        except (BotoCoreError, ClientError) as exc:
            raise AssetListingError(f"Listing s3://{self.bucket}/{self.prefix} failed: {exc}") from exc
        logger.info(
            "Found %d optimized scenes in %.2fs", len(found), time.monotonic() - started
        )
        return found
