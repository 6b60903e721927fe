"""Data models shared across the parcel atlas pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, NamedTuple


class Coordinate(NamedTuple):
    """A single parcel on the world grid."""

    x: int
    y: int

    def to_pointer(self) -> str:
        """Return the wire form ``"x,y"`` used by the content directory."""
        return f"{self.x},{self.y}"


def parse_pointer(value: Any) -> Coordinate | None:
    """Parse a ``"x,y"`` pointer string, returning ``None`` when malformed."""
    if not isinstance(value, str):
        return None
    parts = value.split(",")
    if len(parts) != 2:
        return None
    try:
        return Coordinate(int(parts[0].strip()), int(parts[1].strip()))
    except ValueError:
        return None


@dataclass(frozen=True, slots=True)
class GridBounds:
    """Closed coordinate range ``[min_coord, max_coord]`` on both axes."""

    min_coord: int = -175
    max_coord: int = 175

    def __post_init__(self) -> None:
        if self.min_coord > self.max_coord:
            raise ValueError(
                f"min_coord {self.min_coord} is greater than max_coord {self.max_coord}"
            )

    @property
    def side(self) -> int:
        return self.max_coord - self.min_coord + 1

    @property
    def total(self) -> int:
        return self.side * self.side

    def contains(self, coord: Coordinate) -> bool:
        return (
            self.min_coord <= coord.x <= self.max_coord
            and self.min_coord <= coord.y <= self.max_coord
        )

    def coordinates(self) -> Iterator[Coordinate]:
        """Yield every coordinate in the grid, column by column."""
        for x in range(self.min_coord, self.max_coord + 1):
            for y in range(self.min_coord, self.max_coord + 1):
                yield Coordinate(x, y)


@dataclass(frozen=True, slots=True)
class OptimizationReport:
    """Outcome of a past optimization attempt for a scene."""

    scene_id: str
    success: bool
    timestamp: str | None = None
    error: str | None = None
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Scene:
    """A content entity occupying one or more parcels.

    ``has_optimized_assets`` and ``optimization_report`` are filled in by the
    optimization status resolver, which returns annotated copies.
    """

    id: str
    pointers: tuple[Coordinate, ...]
    has_optimized_assets: bool = False
    optimization_report: OptimizationReport | None = None


@dataclass(slots=True)
class Land:
    """One grid cell. ``scene_id`` is ``None`` for unoccupied parcels."""

    x: int
    y: int
    scene_id: str | None = None
    has_optimized_assets: bool = False
    optimization_report: OptimizationReport | None = None


@dataclass(slots=True)
class WorldData:
    """The dense grid plus the deduplicated scene set of one pipeline run."""

    bounds: GridBounds
    lands: Dict[Coordinate, Land]
    scenes: Dict[str, Scene]


# Wire names used by the compressed report, the history index and the UI.
STATS_WIRE_FIELDS: Dict[str, str] = {
    "total_lands": "totalLands",
    "occupied_lands": "occupiedLands",
    "empty_lands": "emptyLands",
    "total_scenes": "totalScenes",
    "average_lands_per_scene": "averageLandsPerScene",
    "scenes_with_optimized_assets": "scenesWithOptimizedAssets",
    "scenes_without_optimized_assets": "scenesWithoutOptimizedAssets",
    "optimization_percentage": "optimizationPercentage",
    "scenes_with_reports": "scenesWithReports",
    "successful_optimizations": "successfulOptimizations",
    "failed_optimizations": "failedOptimizations",
}


@dataclass(frozen=True, slots=True)
class Stats:
    """Summary counts derived from a :class:`WorldData`."""

    total_lands: int
    occupied_lands: int
    empty_lands: int
    total_scenes: int
    average_lands_per_scene: float
    scenes_with_optimized_assets: int
    scenes_without_optimized_assets: int
    optimization_percentage: float
    scenes_with_reports: int
    successful_optimizations: int
    failed_optimizations: int

    def to_wire(self) -> Dict[str, Any]:
        """Return the camelCase mapping used in published artifacts."""
        return {
            wire: getattr(self, attr) for attr, wire in STATS_WIRE_FIELDS.items()
        }

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> "Stats":
        values = {attr: payload.get(wire, 0) for attr, wire in STATS_WIRE_FIELDS.items()}
        return cls(**values)


@dataclass(slots=True)
class HistoryEntry:
    """A periodic statistics snapshot kept in the history index."""

    timestamp: int
    key: str
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "key": self.key, "summary": self.summary}

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> "HistoryEntry":
        return cls(
            timestamp=int(payload.get("timestamp", 0)),
            key=str(payload.get("key", "")),
            summary=dict(payload.get("summary") or {}),
        )


@dataclass(frozen=True, slots=True)
class NamedWorld:
    """A named world and whether its primary scene has an optimized bundle."""

    name: str
    scene_id: str
    title: str = "Untitled"
    thumbnail: str | None = None
    parcels: int = 0
    has_optimized_assets: bool = False


WORLDS_STATS_WIRE_FIELDS: Dict[str, str] = {
    "total_worlds": "totalWorlds",
    "optimized_worlds": "optimizedWorlds",
    "not_optimized_worlds": "notOptimizedWorlds",
    "optimization_percentage": "optimizationPercentage",
}


@dataclass(frozen=True, slots=True)
class WorldsStats:
    total_worlds: int
    optimized_worlds: int
    not_optimized_worlds: int
    optimization_percentage: float

    def to_wire(self) -> Dict[str, Any]:
        return {
            wire: getattr(self, attr) for attr, wire in WORLDS_STATS_WIRE_FIELDS.items()
        }

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> "WorldsStats":
        values = {
            attr: payload.get(wire, 0) for attr, wire in WORLDS_STATS_WIRE_FIELDS.items()
        }
        return cls(**values)


@dataclass(slots=True)
class DecompressedReport:
    """A published report expanded back into per-land records."""

    lands: List[Land]
    stats: Stats
    scene_color_indices: Dict[str, int]
    generated_at: int
    worlds: List[NamedWorld] | None = None
    worlds_stats: WorldsStats | None = None
