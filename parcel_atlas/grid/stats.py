"""Summary statistics over a reconciled world."""

from __future__ import annotations

from typing import List

from ..io.models import Scene, Stats, WorldData


def compute_stats(world: WorldData) -> Stats:
    """Return the summary counts for *world*.

    ``total_lands`` is the size of the addressable grid, not the number of
    parcels seen. Percentages are left unrounded.
    """
    total_lands = world.bounds.total
    occupied = sum(1 for land in world.lands.values() if land.scene_id is not None)

    optimized = 0
    with_reports = 0
    successful = 0
    for scene in world.scenes.values():
        if scene.has_optimized_assets:
            optimized += 1
        report = scene.optimization_report
        if report is not None:
            with_reports += 1
            if report.success:
                successful += 1

    total_scenes = len(world.scenes)
    return Stats(
        total_lands=total_lands,
        occupied_lands=occupied,
        empty_lands=total_lands - occupied,
        total_scenes=total_scenes,
        average_lands_per_scene=occupied / total_scenes if total_scenes else 0.0,
        scenes_with_optimized_assets=optimized,
        scenes_without_optimized_assets=total_scenes - optimized,
        optimization_percentage=optimized / total_scenes * 100.0 if total_scenes else 0.0,
        scenes_with_reports=with_reports,
        successful_optimizations=successful,
        failed_optimizations=with_reports - successful,
    )


def failing_scenes(world: WorldData) -> List[Scene]:
    """Return scenes whose report records a failed optimization, largest first."""
    failing = [
        scene
        for scene in world.scenes.values()
        if scene.optimization_report is not None and not scene.optimization_report.success
    ]
    failing.sort(key=lambda scene: (-len(scene.pointers), scene.id))
    return failing
