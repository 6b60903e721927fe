"""End-to-end report generation: fetch, resolve, reconcile, summarise, publish."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List

from botocore.exceptions import BotoCoreError
from requests import Session

from .config import Settings
from .crawl.asset_listing import AssetListingError, BundleLister, make_s3_client
from .crawl.content_directory import ContentDirectory
from .crawl.optimization_status import OptimizationStatusResolver, OptimizedSceneLister
from .crawl.worlds import NamedWorldsChecker, NamedWorldsError
from .grid.reconcile import reconcile
from .grid.stats import compute_stats
from .hooks import PipelineHooks
from .io.compress import compress_report
from .io.history import HistoryStore
from .io.models import HistoryEntry, NamedWorld, Stats, WorldData, WorldsStats
from .io.outputs import publish_report
from .io.storage import ArtifactStore, LocalArtifactStore, S3ArtifactStore

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything a run produced."""

    world: WorldData
    stats: Stats
    report: Dict[str, Any]
    location: str | None = None
    history_entry: HistoryEntry | None = None
    worlds: List[NamedWorld] | None = None
    worlds_stats: WorldsStats | None = None


def make_lister(settings: Settings) -> OptimizedSceneLister | None:
    """Return a bulk bundle lister, or ``None`` when listing is unavailable."""
    if not settings.listing_bucket:
        return None
    try:
        return BundleLister.from_settings(settings)
    except (AssetListingError, BotoCoreError) as exc:
        logger.warning("Bulk listing unavailable: %s", exc)
        return None


def make_store(settings: Settings) -> ArtifactStore | None:
    """Return the configured publish target, or ``None`` for a dry run."""
    if settings.publish_bucket:
        return S3ArtifactStore(make_s3_client(settings), settings.publish_bucket)
    if settings.output_dir is not None:
        return LocalArtifactStore(settings.output_dir)
    return None


def build_world(
    settings: Settings,
    session: Session | None = None,
    lister: OptimizedSceneLister | None = None,
    hooks: PipelineHooks | None = None,
) -> WorldData:
    """Fetch and annotate every scene, then lay them out on the grid."""
    hooks = hooks or PipelineHooks()
    directory = ContentDirectory.from_settings(settings, session=session, hooks=hooks)
    scenes = directory.fetch_all()

    resolver = OptimizationStatusResolver.from_settings(
        settings, lister=lister, session=session, hooks=hooks
    )
    annotated = resolver.resolve(scenes)
    return reconcile(annotated, settings.bounds)


def check_worlds(
    settings: Settings,
    session: Session | None = None,
    hooks: PipelineHooks | None = None,
) -> tuple[List[NamedWorld], WorldsStats] | None:
    """Check the named worlds; a failed index fetch is logged and yields ``None``."""
    checker = NamedWorldsChecker.from_settings(settings, session=session, hooks=hooks)
    try:
        return checker.check_all()
    except NamedWorldsError as exc:
        logger.warning("Skipping named worlds: %s", exc)
        return None


def record_history(history: HistoryStore, stats: Stats, timestamp_ms: int) -> HistoryEntry | None:
    """Append a history snapshot; failures are logged and reported as ``None``."""
    try:
        return history.append(stats, timestamp_ms)
    except Exception:  # noqa: BLE001 - history is best-effort after publishing
        logger.exception("Failed to record history snapshot")
        return None


def run_pipeline(
    settings: Settings,
    store: ArtifactStore | None = None,
    history: HistoryStore | None = None,
    session: Session | None = None,
    lister: OptimizedSceneLister | None = None,
    hooks: PipelineHooks | None = None,
) -> PipelineResult:
    """Run the whole pipeline once.

    A failure to fetch any part of the world, or to publish the report,
    propagates and nothing further is written. The history snapshot is
    recorded only after a successful publish and never fails the run.
    Named worlds are optional: when their index cannot be fetched the report
    is published without them.
    """
    settings.validate()
    started = time.monotonic()

    world = build_world(settings, session=session, lister=lister, hooks=hooks)
    stats = compute_stats(world)
    worlds, worlds_stats = None, None
    if settings.include_worlds:
        checked = check_worlds(settings, session=session, hooks=hooks)
        if checked is not None:
            worlds, worlds_stats = checked
    report = compress_report(world, stats, worlds=worlds, worlds_stats=worlds_stats)
    result = PipelineResult(
        world=world, stats=stats, report=report, worlds=worlds, worlds_stats=worlds_stats
    )

    if store is not None:
        result.location = publish_report(store, report, prefix=settings.report_prefix)
        logger.info("Published report to %s", result.location)
        if history is not None:
            result.history_entry = record_history(history, stats, report["g"])

    logger.info("Pipeline finished in %.1fs", time.monotonic() - started)
    return result
