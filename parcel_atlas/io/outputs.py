"""Output helpers for publishing pipeline results."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import pandas as pd
from botocore.exceptions import BotoCoreError, ClientError

from .compress import decompress_report
from .models import DecompressedReport, WorldData
from .storage import ArtifactStore

logger = logging.getLogger(__name__)

REPORT_NAME = "report.json"
METADATA_NAME = "metadata.json"


def publish_report(store: ArtifactStore, report: Mapping[str, Any], prefix: str = "") -> str:
    """Write *report* and its metadata summary to *store*, returning the report location.

    The report object is written in a single call; metadata follows only once
    the report itself is in place.
    """
    report_key = f"{prefix}{REPORT_NAME}"
    location = store.write_json(report_key, report, cache_control="public, max-age=3600")
    generated = datetime.fromtimestamp(int(report["g"]) / 1000, tz=timezone.utc)
    metadata = {
        "lastUpdated": generated.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "stats": report["s"],
        "totalLands": len(report["l"]),
        "reportKey": report_key,
    }
    store.write_json(f"{prefix}{METADATA_NAME}", metadata, cache_control="public, max-age=300")
    return location


def load_published_report(store: ArtifactStore, prefix: str = "") -> DecompressedReport | None:
    """Return the currently published report, or ``None`` if none can be read.

    Damaged reports and store errors are logged and also come back as
    ``None``, so callers can show a placeholder instead of an error.
    """
    key = f"{prefix}{REPORT_NAME}"
    try:
        payload = store.read_json(key)
        if not isinstance(payload, dict):
            return None
        return decompress_report(payload)
    except (ValueError, TypeError, OSError, BotoCoreError, ClientError) as exc:
        logger.warning("Published report %s could not be loaded: %s", key, exc)
        return None


def write_scene_table(path: Path, world: WorldData) -> Path | None:
    """Write one row per scene to *path* as Parquet and return the path."""
    rows: list[dict[str, Any]] = []
    for scene in world.scenes.values():
        report = scene.optimization_report
        rows.append(
            {
                "scene_id": scene.id,
                "parcels": len(scene.pointers),
                "has_optimized_assets": scene.has_optimized_assets,
                "report_success": report.success if report else None,
                "report_error": report.error if report else None,
            }
        )
    if not rows:
        return None

    df = pd.DataFrame(rows)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_parquet(path, index=False, engine="pyarrow")
    return path
