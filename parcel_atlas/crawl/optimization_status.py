"""Resolve which scenes have optimized bundles and fetch their reports."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Callable, Dict, Mapping, Protocol, Sequence, TypeVar

import requests
from requests import Session

from ..config import Settings
from ..hooks import STAGE_PROBES, STAGE_REPORTS, PipelineHooks
from ..io.models import OptimizationReport, Scene
from .asset_listing import AssetListingError
from .fetch import RetryableHTTPStatusError, RetryPolicy, get_json, head_status

logger = logging.getLogger(__name__)

K = TypeVar("K")
T = TypeVar("T")


class OptimizedSceneLister(Protocol):
    def optimized_scene_ids(self) -> set[str]: ...


def parse_report(scene_id: str, body: Any) -> OptimizationReport | None:
    """Build a report from a decoded ``{id}-report.json`` body.

    Bodies that are not objects or lack a boolean ``success`` are treated as
    "no report".
    """
    if not isinstance(body, Mapping):
        return None
    success = body.get("success")
    if not isinstance(success, bool):
        logger.debug("Report for %s has no boolean success field", scene_id)
        return None
    timestamp = body.get("timestamp")
    error = body.get("error")
    return OptimizationReport(
        scene_id=scene_id,
        success=success,
        timestamp=timestamp if isinstance(timestamp, str) else None,
        error=str(error) if error is not None else None,
        details=dict(body),
    )


def run_batches(
    items: Sequence[K],
    batch_size: int,
    worker: Callable[[K], T],
    hooks: PipelineHooks,
    stage: str,
    delay: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> list[T]:
    """Apply *worker* to *items* in concurrent batches of *batch_size*.

    Each batch is joined before the next starts, with *delay* seconds in
    between. Results come back in input order.
    """
    results: list[T] = []
    if not items:
        return results
    with ThreadPoolExecutor(max_workers=batch_size) as pool:
        for start in range(0, len(items), batch_size):
            if start and delay > 0:
                sleep(delay)
            batch = items[start : start + batch_size]
            results.extend(pool.map(worker, batch))
            done = start + len(batch)
            hooks.progress(stage, done / len(items) * 100.0)
            logger.debug("%s progress: %d/%d", stage, done, len(items))
    return results


class OptimizationStatusResolver:
    """Annotates scenes with their optimization status.

    The fast path asks *lister* for every optimized scene id at once. When no
    lister is configured or the listing fails, each scene is probed with a
    HEAD request instead. Scenes without an optimized bundle then get their
    processing report fetched, if one exists.
    """

    def __init__(
        self,
        asset_base_url: str,
        lister: OptimizedSceneLister | None = None,
        probe_batch_size: int = 10,
        report_batch_size: int = 20,
        probe_policy: RetryPolicy | None = None,
        report_policy: RetryPolicy | None = None,
        probe_timeout: float = 5.0,
        report_timeout: float = 5.0,
        probe_delay: float = 0.1,
        report_delay: float = 0.05,
        session: Session | None = None,
        hooks: PipelineHooks | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.asset_base_url = asset_base_url.rstrip("/")
        self.lister = lister
        self.probe_batch_size = probe_batch_size
        self.report_batch_size = report_batch_size
        self.probe_policy = probe_policy or RetryPolicy(attempts=2)
        self.report_policy = report_policy or RetryPolicy(attempts=2)
        self.probe_timeout = probe_timeout
        self.report_timeout = report_timeout
        self.probe_delay = probe_delay
        self.report_delay = report_delay
        self.session = session
        self.hooks = hooks or PipelineHooks()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        lister: OptimizedSceneLister | None = None,
        session: Session | None = None,
        hooks: PipelineHooks | None = None,
    ) -> "OptimizationStatusResolver":
        def policy(attempts: int) -> RetryPolicy:
            return RetryPolicy(
                attempts=attempts,
                backoff_base=settings.retry_backoff_base,
                backoff_cap=settings.retry_backoff_cap,
            )

        return cls(
            asset_base_url=settings.asset_base_url,
            lister=lister,
            probe_batch_size=settings.probe_batch_size,
            report_batch_size=settings.report_batch_size,
            probe_policy=policy(settings.probe_retry_attempts),
            report_policy=policy(settings.report_retry_attempts),
            probe_timeout=settings.probe_timeout,
            report_timeout=settings.report_timeout,
            probe_delay=settings.probe_delay,
            report_delay=settings.report_delay,
            session=session,
            hooks=hooks,
        )

    def bundle_url(self, scene_id: str) -> str:
        return f"{self.asset_base_url}/{scene_id}-mobile.zip"

    def report_url(self, scene_id: str) -> str:
        return f"{self.asset_base_url}/{scene_id}-report.json"

    def resolve(self, scenes: Sequence[Scene]) -> list[Scene]:
        """Return annotated copies of *scenes*, one per input element."""
        unique: Dict[str, Scene] = {}
        for scene in scenes:
            unique[scene.id] = scene
        logger.info("Checking optimization status for %d scenes", len(unique))

        optimized = self._resolve_optimized(list(unique))
        logger.info(
            "Found %d scenes with optimized assets",
            sum(1 for flag in optimized.values() if flag),
        )

        pending = [scene_id for scene_id in unique if not optimized.get(scene_id)]
        reports = self._run_batches(
            pending, self.report_batch_size, self.fetch_report, STAGE_REPORTS, self.report_delay
        )
        found = {key: value for key, value in reports.items() if value is not None}
        logger.info("Found %d optimization reports for %d pending scenes", len(found), len(pending))

        return [
            replace(
                scene,
                has_optimized_assets=bool(optimized.get(scene.id)),
                optimization_report=found.get(scene.id),
            )
            for scene in scenes
        ]

    def _resolve_optimized(self, scene_ids: list[str]) -> Dict[str, bool]:
        if self.lister is not None:
            try:
                listed = self.lister.optimized_scene_ids()
            except AssetListingError as exc:
                logger.warning("Bulk listing failed, probing scenes individually: %s", exc)
            else:
                return {scene_id: scene_id in listed for scene_id in scene_ids}
        return self._run_batches(
            scene_ids, self.probe_batch_size, self.probe, STAGE_PROBES, self.probe_delay
        )

    def probe(self, scene_id: str) -> bool:
        """Return ``True`` when the optimized bundle for *scene_id* exists."""
        started = time.monotonic()
        ok = True
        try:
            status = head_status(
                self.bundle_url(scene_id),
                timeout=self.probe_timeout,
                policy=self.probe_policy,
                session=self.session,
            )
        except (requests.RequestException, RetryableHTTPStatusError) as exc:
            logger.warning("Bundle probe for %s failed: %s", scene_id, exc)
            ok = False
            status = None
        self.hooks.scene_checked(scene_id, ok, time.monotonic() - started)
        return status == 200

    def fetch_report(self, scene_id: str) -> OptimizationReport | None:
        """Fetch the processing report for *scene_id*, if one exists."""
        started = time.monotonic()
        report: OptimizationReport | None = None
        ok = True
        try:
            status, body = get_json(
                self.report_url(scene_id),
                timeout=self.report_timeout,
                policy=self.report_policy,
                session=self.session,
            )
        except (requests.RequestException, RetryableHTTPStatusError) as exc:
            logger.warning("Report fetch for %s failed: %s", scene_id, exc)
            ok = False
        else:
            if status == 200:
                report = parse_report(scene_id, body)
        self.hooks.scene_checked(scene_id, ok, time.monotonic() - started)
        return report

    def _run_batches(
        self,
        items: list[str],
        batch_size: int,
        worker: Callable[[str], T],
        stage: str,
        delay: float,
    ) -> Dict[str, T]:
        results = run_batches(items, batch_size, worker, self.hooks, stage, delay, self._sleep)
        return dict(zip(items, results))
