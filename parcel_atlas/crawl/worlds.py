"""Optimization status of named worlds served by the worlds content server."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Sequence

import requests
from requests import Session

from ..config import Settings
from ..hooks import STAGE_WORLDS, PipelineHooks
from ..io.models import NamedWorld, WorldsStats
from .fetch import RetryableHTTPStatusError, RetryPolicy, get_json, head_status
from .optimization_status import run_batches

logger = logging.getLogger(__name__)


class NamedWorldsError(RuntimeError):
    """Raised when the worlds index cannot be fetched."""


def parse_worlds(payload: Any) -> list[dict[str, Any]]:
    """Return the world entries of an index body that have at least one scene."""
    entries = payload.get("data") if isinstance(payload, Mapping) else None
    if not isinstance(entries, list):
        raise ValueError("Unexpected worlds index payload")
    worlds = []
    for entry in entries:
        if not isinstance(entry, Mapping) or not isinstance(entry.get("name"), str):
            continue
        scenes = entry.get("scenes")
        if not isinstance(scenes, list) or not scenes or not isinstance(scenes[0], Mapping):
            continue
        if not isinstance(scenes[0].get("id"), str):
            continue
        worlds.append(dict(entry))
    return worlds


def count_parcels(entry: Mapping[str, Any]) -> int:
    total = 0
    for scene in entry.get("scenes") or []:
        pointers = scene.get("pointers") if isinstance(scene, Mapping) else None
        if isinstance(pointers, list):
            total += len(pointers)
    return total


def sort_worlds(worlds: Sequence[NamedWorld]) -> list[NamedWorld]:
    """Optimized worlds first, then alphabetically by name (case-insensitive)."""
    return sorted(
        worlds,
        key=lambda world: (not world.has_optimized_assets, world.name.casefold(), world.name),
    )


def compute_worlds_stats(worlds: Sequence[NamedWorld]) -> WorldsStats:
    total = len(worlds)
    optimized = sum(1 for world in worlds if world.has_optimized_assets)
    percentage = round(optimized / total * 100, 1) if total else 0.0
    return WorldsStats(
        total_worlds=total,
        optimized_worlds=optimized,
        not_optimized_worlds=total - optimized,
        optimization_percentage=percentage,
    )


class NamedWorldsChecker:
    """Checks each named world's primary scene for an optimized bundle."""

    def __init__(
        self,
        index_url: str,
        asset_base_url: str,
        batch_size: int = 20,
        index_policy: RetryPolicy | None = None,
        probe_policy: RetryPolicy | None = None,
        index_timeout: float = 30.0,
        probe_timeout: float = 5.0,
        delay: float = 0.1,
        session: Session | None = None,
        hooks: PipelineHooks | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.index_url = index_url
        self.asset_base_url = asset_base_url.rstrip("/")
        self.batch_size = batch_size
        self.index_policy = index_policy or RetryPolicy()
        self.probe_policy = probe_policy or RetryPolicy(attempts=2)
        self.index_timeout = index_timeout
        self.probe_timeout = probe_timeout
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
    ) -> "NamedWorldsChecker":
        def policy(attempts: int) -> RetryPolicy:
            return RetryPolicy(
                attempts=attempts,
                backoff_base=settings.retry_backoff_base,
                backoff_cap=settings.retry_backoff_cap,
            )

        return cls(
            index_url=settings.worlds_index_url,
            asset_base_url=settings.asset_base_url,
            batch_size=settings.worlds_batch_size,
            index_policy=policy(settings.directory_retry_attempts),
            probe_policy=policy(settings.probe_retry_attempts),
            index_timeout=settings.worlds_timeout,
            probe_timeout=settings.probe_timeout,
            delay=settings.worlds_delay,
            session=session,
            hooks=hooks,
        )

    def fetch_index(self) -> list[dict[str, Any]]:
        """Return every world entry that has scenes."""
        try:
            status, body = get_json(
                self.index_url,
                timeout=self.index_timeout,
                policy=self.index_policy,
                session=self.session,
            )
        except (requests.RequestException, RetryableHTTPStatusError) as exc:
            raise NamedWorldsError(f"Worlds index request failed: {exc}") from exc
        if status != 200 or body is None:
            raise NamedWorldsError(f"Worlds index returned status {status}")
        try:
            worlds = parse_worlds(body)
        except ValueError as exc:
            raise NamedWorldsError(str(exc)) from exc
        logger.info("Found %d worlds with scenes", len(worlds))
        return worlds

    def check(self, entry: Mapping[str, Any]) -> NamedWorld:
        primary = entry["scenes"][0]
        scene_id = primary["id"]
        started = time.monotonic()
        ok = True
        try:
            status = head_status(
                f"{self.asset_base_url}/{scene_id}-mobile.zip",
                timeout=self.probe_timeout,
                policy=self.probe_policy,
                session=self.session,
            )
        except (requests.RequestException, RetryableHTTPStatusError) as exc:
            logger.warning("Bundle probe for world %s failed: %s", entry["name"], exc)
            ok = False
            status = None
        self.hooks.scene_checked(scene_id, ok, time.monotonic() - started)
        title = primary.get("title")
        thumbnail = primary.get("thumbnail")
        return NamedWorld(
            name=entry["name"],
            scene_id=scene_id,
            title=title if isinstance(title, str) and title else "Untitled",
            thumbnail=thumbnail if isinstance(thumbnail, str) else None,
            parcels=count_parcels(entry),
            has_optimized_assets=status == 200,
        )

    def check_all(self) -> tuple[list[NamedWorld], WorldsStats]:
        """Fetch the index and return the sorted worlds with their summary."""
        entries = self.fetch_index()
        checked = run_batches(
            entries, self.batch_size, self.check, self.hooks, STAGE_WORLDS, self.delay, self._sleep
        )
        worlds = sort_worlds(checked)
        stats = compute_worlds_stats(worlds)
        logger.info(
            "Worlds with optimized assets: %d/%d (%.1f%%)",
            stats.optimized_worlds,
            stats.total_worlds,
            stats.optimization_percentage,
        )
        return worlds, stats
