"""Fetch every active scene of the world from the content directory."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator

import requests
from requests import Session

from ..config import Settings
from ..hooks import STAGE_DIRECTORY, PipelineHooks
from ..io.models import GridBounds, Scene, parse_pointer
from .fetch import RetryableHTTPStatusError, RetryPolicy, post_json

logger = logging.getLogger(__name__)


class WorldSourceError(RuntimeError):
    """Raised when no sub-region of the world could be fetched."""


@dataclass(frozen=True, slots=True)
class Region:
    """A rectangular block of parcels fetched with a single request."""

    start_x: int
    end_x: int
    start_y: int
    end_y: int

    @property
    def size(self) -> int:
        return (self.end_x - self.start_x + 1) * (self.end_y - self.start_y + 1)

    def pointers(self) -> list[str]:
        """Return every ``"x,y"`` pointer inside the region."""
        return [
            f"{x},{y}"
            for x in range(self.start_x, self.end_x + 1)
            for y in range(self.start_y, self.end_y + 1)
        ]

    def __str__(self) -> str:
        return f"({self.start_x},{self.start_y}) to ({self.end_x},{self.end_y})"


def partition_regions(bounds: GridBounds, max_pointers: int) -> list[Region]:
    """Split *bounds* into square regions holding at most *max_pointers* parcels."""
    if max_pointers < 1:
        raise ValueError("max_pointers must be positive")
    step = max(1, math.isqrt(max_pointers))
    regions: list[Region] = []
    for start_x in range(bounds.min_coord, bounds.max_coord + 1, step):
        end_x = min(start_x + step - 1, bounds.max_coord)
        for start_y in range(bounds.min_coord, bounds.max_coord + 1, step):
            end_y = min(start_y + step - 1, bounds.max_coord)
            regions.append(Region(start_x, end_x, start_y, end_y))
    return regions


def parse_scenes(payload: Any) -> list[Scene]:
    """Convert a content directory response into :class:`Scene` objects.

    Entries without an id or without any parseable pointer are skipped.
    Pointers outside the grid are kept; the reconciler ignores them.
    """
    if isinstance(payload, dict):
        payload = payload.get("scenes")
    if not isinstance(payload, list):
        raise ValueError("Content directory response is not a list of entities")
    scenes: list[Scene] = []
    for entry in _iter_entities(payload):
        scene_id = entry.get("id")
        if not isinstance(scene_id, str) or not scene_id:
            logger.debug("Skipping entity without id: %r", entry)
            continue
        raw_pointers = entry.get("pointers")
        if not isinstance(raw_pointers, list):
            logger.debug("Skipping entity %s without pointers", scene_id)
            continue
        coords = []
        for raw in raw_pointers:
            coord = parse_pointer(raw)
            if coord is None:
                logger.debug("Scene %s has malformed pointer %r", scene_id, raw)
                continue
            coords.append(coord)
        if not coords:
            continue
        scenes.append(Scene(id=scene_id, pointers=tuple(coords)))
    return scenes


def _iter_entities(items: list[Any]) -> Iterator[dict[str, Any]]:
    for item in items:
        if isinstance(item, dict):
            yield item


class ContentDirectory:
    """Client for the content directory's active-entities endpoint.

    The world is fetched region by region. A region that still fails after its
    retries is skipped so that a partial world can still be reported; if every
    region fails, :class:`WorldSourceError` is raised. Scenes straddling region
    borders come back once per region, so the output is not deduplicated.
    """

    def __init__(
        self,
        url: str,
        bounds: GridBounds,
        max_pointers: int = 50_000,
        policy: RetryPolicy | None = None,
        timeout: float = 60.0,
        delay: float = 0.1,
        session: Session | None = None,
        hooks: PipelineHooks | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.url = url
        self.bounds = bounds
        self.max_pointers = max_pointers
        self.policy = policy or RetryPolicy()
        self.timeout = timeout
        self.delay = delay
        self.session = session
        self.hooks = hooks or PipelineHooks()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session: Session | None = None,
        hooks: PipelineHooks | None = None,
    ) -> "ContentDirectory":
        return cls(
            url=settings.content_directory_url,
            bounds=settings.bounds,
            max_pointers=settings.directory_batch_pointers,
            policy=RetryPolicy(
                attempts=settings.directory_retry_attempts,
                backoff_base=settings.retry_backoff_base,
                backoff_cap=settings.retry_backoff_cap,
            ),
            timeout=settings.directory_timeout,
            delay=settings.directory_delay,
            session=session,
            hooks=hooks,
        )

    def fetch_region(self, region: Region) -> list[Scene]:
        """Return every scene intersecting *region*."""
        pointers = region.pointers()
        logger.debug("Fetching region %s (%d pointers)", region, len(pointers))
        payload = post_json(
            self.url,
            {"pointers": pointers},
            timeout=self.timeout,
            policy=self.policy,
            session=self.session,
        )
        return parse_scenes(payload)

    def fetch_all(self) -> list[Scene]:
        """Fetch all scenes in the configured bounds."""
        regions = partition_regions(self.bounds, self.max_pointers)
        logger.info(
            "Fetching %d parcels in %d regions", self.bounds.total, len(regions)
        )
        scenes: list[Scene] = []
        failed = 0
        for index, region in enumerate(regions):
            if index and self.delay > 0:
                self._sleep(self.delay)
            try:
                scenes.extend(self.fetch_region(region))
            except (requests.RequestException, RetryableHTTPStatusError, ValueError) as exc:
                failed += 1
                logger.warning("Skipping region %s after failure: %s", region, exc)
            self.hooks.progress(STAGE_DIRECTORY, (index + 1) / len(regions) * 100.0)

        if failed == len(regions):
            raise WorldSourceError(f"All {failed} content directory regions failed")
        if failed:
            logger.warning("%d of %d regions failed; report will be partial", failed, len(regions))
        logger.info("Fetched %d scene entries", len(scenes))
        return scenes
