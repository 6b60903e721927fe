"""Compact wire format for the published world report.

The report is a JSON object with abbreviated keys::

    {"l": [[x, y, sceneId, optimized, reportSuccess?], ...],
     "s": {...stats...},
     "c": {sceneId: colorIndex},
     "g": generatedAtEpochMillis,
     "w": [[name, sceneId, title, thumbnail, parcels, optimized], ...],
     "ws": {...worlds stats...}}

Only occupied parcels are listed; a parcel missing from ``l`` is empty.
``optimized`` and ``reportSuccess`` are ``0``/``1``. The fifth element is
present only when the scene has a report, so "no report" and "report with
success false" stay distinguishable. ``w`` and ``ws`` are present only when the
named worlds were checked; an empty thumbnail means the world has none.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Mapping, Sequence

from .models import (
    DecompressedReport,
    Land,
    NamedWorld,
    OptimizationReport,
    Stats,
    WorldData,
    WorldsStats,
)

GOLDEN_ANGLE = 137.5


def encode_land(land: Land) -> List[Any]:
    """Return the tuple encoding of an occupied *land*."""
    encoded: List[Any] = [land.x, land.y, land.scene_id, 1 if land.has_optimized_assets else 0]
    if land.optimization_report is not None:
        encoded.append(1 if land.optimization_report.success else 0)
    return encoded


def color_indices(world: WorldData) -> Dict[str, int]:
    """Assign each scene a dense index in scene-map order."""
    indices: Dict[str, int] = {}
    for scene_id in world.scenes:
        if scene_id not in indices:
            indices[scene_id] = len(indices)
    return indices


def scene_color(index: int) -> str:
    """Return the CSS color for a scene color index."""
    hue = (index * GOLDEN_ANGLE) % 360
    return f"hsl({hue:g}, 70%, 50%)"


def encode_world(world: NamedWorld) -> List[Any]:
    return [
        world.name,
        world.scene_id,
        world.title,
        world.thumbnail or "",
        world.parcels,
        1 if world.has_optimized_assets else 0,
    ]


def decode_world(entry: Any) -> NamedWorld:
    if not isinstance(entry, (list, tuple)) or len(entry) < 6:
        raise ValueError(f"Malformed world entry: {entry!r}")
    name, scene_id, title, thumbnail, parcels, optimized = entry[:6]
    return NamedWorld(
        name=str(name),
        scene_id=str(scene_id),
        title=str(title),
        thumbnail=str(thumbnail) if thumbnail else None,
        parcels=int(parcels),
        has_optimized_assets=optimized == 1,
    )


def compress_report(
    world: WorldData,
    stats: Stats,
    generated_at: int | None = None,
    worlds: Sequence[NamedWorld] | None = None,
    worlds_stats: WorldsStats | None = None,
) -> Dict[str, Any]:
    """Return the compact report payload for *world*."""
    if generated_at is None:
        generated_at = int(time.time() * 1000)
    lands = [encode_land(land) for land in world.lands.values() if land.scene_id is not None]
    payload: Dict[str, Any] = {
        "l": lands,
        "s": stats.to_wire(),
        "c": color_indices(world),
        "g": generated_at,
    }
    if worlds is not None:
        payload["w"] = [encode_world(named) for named in worlds]
        payload["ws"] = worlds_stats.to_wire() if worlds_stats is not None else None
    return payload


def decompress_report(payload: Mapping[str, Any]) -> DecompressedReport:
    """Expand a compact report back into per-land records.

    Decoded reports carry only the ``success`` flag; other report details are
    not part of the wire format.
    """
    lands: List[Land] = []
    for entry in payload.get("l") or []:
        if not isinstance(entry, (list, tuple)) or len(entry) < 4:
            raise ValueError(f"Malformed land entry: {entry!r}")
        x, y, scene_id, optimized = entry[0], entry[1], entry[2], entry[3]
        report = None
        if len(entry) > 4:
            report = OptimizationReport(scene_id=str(scene_id), success=entry[4] == 1)
        lands.append(
            Land(
                x=int(x),
                y=int(y),
                scene_id=str(scene_id),
                has_optimized_assets=optimized == 1,
                optimization_report=report,
            )
        )
    worlds = None
    if payload.get("w") is not None:
        worlds = [decode_world(entry) for entry in payload["w"]]
    raw_stats = payload.get("ws")
    worlds_stats = WorldsStats.from_wire(raw_stats) if isinstance(raw_stats, Mapping) else None
    stats = payload.get("s") or {}
    colors = payload.get("c") or {}
    if not isinstance(stats, Mapping) or not isinstance(colors, Mapping):
        raise ValueError("Malformed report: stats and colors must be objects")
    return DecompressedReport(
        lands=lands,
        stats=Stats.from_wire(stats),
        scene_color_indices={str(k): int(v) for k, v in colors.items()},
        generated_at=int(payload.get("g") or 0),
        worlds=worlds,
        worlds_stats=worlds_stats,
    )
