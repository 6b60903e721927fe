"""Merge scattered scene occupancy onto the dense world grid."""

from __future__ import annotations

import logging
from typing import Dict, Iterable

from ..io.models import Coordinate, GridBounds, Land, Scene, WorldData

logger = logging.getLogger(__name__)


def empty_grid(bounds: GridBounds) -> Dict[Coordinate, Land]:
    """Return one unoccupied :class:`Land` per coordinate in *bounds*."""
    return {coord: Land(coord.x, coord.y) for coord in bounds.coordinates()}


def reconcile(scenes: Iterable[Scene], bounds: GridBounds) -> WorldData:
    """Build the world grid and overlay every scene onto the parcels it covers.

    Scenes are deduplicated by id, the last occurrence winning. Pointers
    outside *bounds* are ignored. When two scenes claim the same parcel the
    scene processed later overwrites it; each such overlap is logged.
    """
    lands = empty_grid(bounds)

    scene_map: Dict[str, Scene] = {}
    for scene in scenes:
        scene_map[scene.id] = scene

    overlaps = 0
    ignored = 0
    for scene in scene_map.values():
        for coord in scene.pointers:
            land = lands.get(coord)
            if land is None:
                ignored += 1
                continue
            if land.scene_id is not None and land.scene_id != scene.id:
                overlaps += 1
                logger.debug(
                    "Parcel %s claimed by %s and %s", coord.to_pointer(), land.scene_id, scene.id
                )
            land.scene_id = scene.id
            land.has_optimized_assets = scene.has_optimized_assets
            land.optimization_report = scene.optimization_report

    if ignored:
        logger.info("Ignored %d pointers outside the grid", ignored)
    if overlaps:
        logger.warning("%d parcels were claimed by more than one scene", overlaps)
    return WorldData(bounds=bounds, lands=lands, scenes=scene_map)
