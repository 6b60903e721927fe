"""Command-line interface for the parcel_atlas project."""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from botocore.exceptions import BotoCoreError, ClientError
from tqdm import tqdm

from .config import ConfigError, Settings
from .crawl.content_directory import WorldSourceError
from .grid.stats import failing_scenes
from .hooks import PipelineHooks
from .io.history import HistoryStore
from .io.models import Stats, WorldsStats
from .io.outputs import load_published_report, write_scene_table
from .pipeline import make_lister, make_store, run_pipeline

logger = logging.getLogger(__name__)

_FAILING_PREVIEW = 10


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the parcel atlas pipeline."""
    parser = argparse.ArgumentParser(
        description="Report which scenes of the world have optimized assets."
    )
    parser.add_argument(
        "--out",
        default=None,
        help="Directory used as the local artifact store (default from settings).",
    )
    parser.add_argument(
        "--bucket",
        default=None,
        help="Publish to this S3 compatible bucket instead of a local directory.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Generate and publish a new report.")
    run.add_argument("--min-coord", type=int, default=None, help="Lowest grid coordinate.")
    run.add_argument("--max-coord", type=int, default=None, help="Highest grid coordinate.")
    run.add_argument(
        "--listing-bucket",
        default=None,
        help="Bucket holding optimized bundles for the bulk listing.",
    )
    run.add_argument(
        "--scenes-table",
        default=None,
        metavar="PATH",
        help="Also write a per-scene Parquet table to PATH.",
    )
    run.add_argument(
        "--no-worlds",
        action="store_true",
        help="Skip checking the named worlds.",
    )
    run.add_argument(
        "--no-history",
        action="store_true",
        help="Do not append a history snapshot.",
    )
    run.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress bars.",
    )

    sub.add_parser("show", help="Print the stats of the published report.")
    sub.add_parser("history", help="Print the stored history index.")
    return parser.parse_args(list(argv) if argv is not None else None)


def _progress_hooks() -> tuple[PipelineHooks, dict[str, tqdm]]:
    bars: dict[str, tqdm] = {}

    def on_progress(stage: str, percent: float) -> None:
        bar = bars.get(stage)
        if bar is None:
            bar = tqdm(total=100.0, desc=stage.capitalize(), unit="%", leave=False)
            bars[stage] = bar
        bar.update(percent - bar.n)

    return PipelineHooks(on_progress=on_progress), bars


def print_stats(stats: Stats) -> None:
    print(f"  - Total Lands: {stats.total_lands}")
    print(f"  - Occupied Lands: {stats.occupied_lands}")
    print(f"  - Empty Lands: {stats.empty_lands}")
    print(f"  - Total Scenes: {stats.total_scenes}")
    print(f"  - Average Lands per Scene: {stats.average_lands_per_scene:.2f}")
    print(f"  - Scenes with Optimized Assets: {stats.scenes_with_optimized_assets}")
    print(f"  - Scenes without Optimized Assets: {stats.scenes_without_optimized_assets}")
    print(f"  - Optimization Coverage: {stats.optimization_percentage:.1f}%")
    print(f"  - Scenes with Reports: {stats.scenes_with_reports}")
    print(f"  - Successful Optimizations: {stats.successful_optimizations}")
    print(f"  - Failed Optimizations: {stats.failed_optimizations}")


def print_worlds_stats(stats: WorldsStats) -> None:
    print(f"  - Total Worlds: {stats.total_worlds}")
    print(f"  - Optimized Worlds: {stats.optimized_worlds}")
    print(f"  - Not Optimized Worlds: {stats.not_optimized_worlds}")
    print(f"  - Worlds Coverage: {stats.optimization_percentage:.1f}%")


def _format_ms(timestamp_ms: int) -> str:
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M UTC")


def _run(settings: Settings, args: argparse.Namespace) -> int:
    store = make_store(settings)
    history = None
    if store is not None and not args.no_history:
        history = HistoryStore(
            store, prefix=settings.report_prefix, retention=settings.history_retention
        )

    hooks, bars = (PipelineHooks(), {}) if args.no_progress else _progress_hooks()
    try:
        result = run_pipeline(
            settings,
            store=store,
            history=history,
            lister=make_lister(settings),
            hooks=hooks,
        )
    finally:
        for bar in bars.values():
            bar.close()

    print("Statistics:")
    print_stats(result.stats)
    if result.worlds_stats is not None:
        print("Worlds:")
        print_worlds_stats(result.worlds_stats)

    failing = failing_scenes(result.world)
    if failing:
        print(f"Failing scenes ({len(failing)}):")
        for scene in failing[:_FAILING_PREVIEW]:
            error = scene.optimization_report.error if scene.optimization_report else None
            print(f"  {scene.id} ({len(scene.pointers)} parcels): {error or 'unknown error'}")

    if args.scenes_table:
        table = write_scene_table(Path(args.scenes_table), result.world)
        if table:
            print(f"[scenes] wrote {len(result.world.scenes)} rows to {table}")
        else:
            print("[scenes] no scene rows to write")

    if result.location:
        print(f"[report] published to {result.location}")
    else:
        print("[report] no publish target configured; report not saved")
    return 0


def _show(settings: Settings) -> int:
    store = make_store(settings)
    report = load_published_report(store, settings.report_prefix) if store else None
    if report is None:
        print("No report yet, check back later.")
        return 0
    print(f"Report generated {_format_ms(report.generated_at)}")
    print_stats(report.stats)
    if report.worlds_stats is not None:
        print("Worlds:")
        print_worlds_stats(report.worlds_stats)
    return 0


def _history(settings: Settings) -> int:
    store = make_store(settings)
    if store is None:
        print("No history yet.")
        return 0
    try:
        entries = HistoryStore(store, prefix=settings.report_prefix).entries()
    except (ValueError, TypeError, OSError, BotoCoreError, ClientError) as exc:
        logger.warning("History index could not be loaded: %s", exc)
        entries = []
    if not entries:
        print("No history yet.")
        return 0
    for entry in entries:
        summary = entry.summary
        percentage = float(summary.get("optimizationPercentage", 0.0))
        print(
            f"{_format_ms(entry.timestamp)}  scenes={summary.get('totalScenes', 0)}"
            f"  optimized={summary.get('scenesWithOptimizedAssets', 0)} ({percentage:.1f}%)"
            f"  failed={summary.get('failedOptimizations', 0)}"
        )
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    """Entry point for the CLI."""
    args = parse_args(argv)
    try:
        settings = Settings.from_env()
        settings = settings.with_overrides(
            output_dir=Path(args.out) if args.out else None,
            publish_bucket=args.bucket,
            min_coord=getattr(args, "min_coord", None),
            max_coord=getattr(args, "max_coord", None),
            listing_bucket=getattr(args, "listing_bucket", None),
            include_worlds=False if getattr(args, "no_worlds", False) else None,
        ).validate()
    except ConfigError as exc:
        print(f"[error] invalid configuration: {exc}")
        return 2

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "show":
        return _show(settings)
    if args.command == "history":
        return _history(settings)
    try:
        return _run(settings, args)
    except WorldSourceError as exc:
        logger.error("Report generation failed: %s", exc)
        return 1
    except (OSError, BotoCoreError, ClientError) as exc:
        logger.error("Publishing the report failed: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
