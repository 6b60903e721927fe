"""Extension points for attaching progress and monitoring tooling to a run."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]
SceneCheckedCallback = Callable[[str, bool, float], None]

STAGE_DIRECTORY = "directory"
STAGE_PROBES = "probes"
STAGE_REPORTS = "reports"
STAGE_WORLDS = "worlds"


def _ignore_progress(stage: str, percent: float) -> None:
    return None


def _ignore_scene(scene_id: str, ok: bool, seconds: float) -> None:
    return None


@dataclass
class PipelineHooks:
    """Callbacks invoked while a pipeline run makes progress.

    ``on_progress(stage, percent)`` fires after every directory sub-region and
    every probe, report or worlds batch. ``on_scene_checked(scene_id, ok, seconds)``
    fires after each per-scene network check; ``ok`` is ``False`` when the
    check gave up on transient errors.
    """

    on_progress: ProgressCallback = _ignore_progress
    on_scene_checked: SceneCheckedCallback = _ignore_scene

    def progress(self, stage: str, percent: float) -> None:
        try:
            self.on_progress(stage, percent)
        except Exception:  # noqa: BLE001 - observers must not break the run
            logger.debug("Progress hook failed for stage %s", stage, exc_info=True)

    def scene_checked(self, scene_id: str, ok: bool, seconds: float) -> None:
        try:
            self.on_scene_checked(scene_id, ok, seconds)
        except Exception:  # noqa: BLE001 - observers must not break the run
            logger.debug("Scene hook failed for %s", scene_id, exc_info=True)
