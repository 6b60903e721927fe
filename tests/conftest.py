from __future__ import annotations

from typing import Any, Callable

import pytest
import requests

from parcel_atlas.config import Settings
from parcel_atlas.io.models import Coordinate, OptimizationReport, Scene

INVALID_JSON = object()


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None) -> None:
        self.status_code = status_code
        self._body = body

    def json(self) -> Any:
        if self._body is INVALID_JSON:
            raise ValueError("Expecting value")
        return self._body

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


Handler = Callable[..., Any]


class FakeSession:
    """Minimal stand-in for ``requests.Session`` routing calls to handlers.

    A handler may return a :class:`FakeResponse` or raise an exception.
    """

    def __init__(
        self,
        post: Handler | None = None,
        head: Handler | None = None,
        get: Handler | None = None,
    ) -> None:
        self._post = post
        self._head = head
        self._get = get
        self.calls: list[tuple[str, str]] = []

    def post(self, url: str, json: Any = None, timeout: float | None = None) -> FakeResponse:
        self.calls.append(("POST", url))
        assert self._post is not None, "unexpected POST"
        return self._post(url, json)

    def head(self, url: str, timeout: float | None = None, allow_redirects: bool = True) -> FakeResponse:
        self.calls.append(("HEAD", url))
        assert self._head is not None, "unexpected HEAD"
        return self._head(url)

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        self.calls.append(("GET", url))
        assert self._get is not None, "unexpected GET"
        return self._get(url)

    def count(self, method: str, suffix: str = "") -> int:
        return sum(1 for m, url in self.calls if m == method and url.endswith(suffix))


def make_scene(
    scene_id: str,
    *pointers: tuple[int, int],
    optimized: bool = False,
    report: bool | None = None,
) -> Scene:
    optimization_report = None
    if report is not None:
        optimization_report = OptimizationReport(scene_id=scene_id, success=report)
    return Scene(
        id=scene_id,
        pointers=tuple(Coordinate(x, y) for x, y in pointers),
        has_optimized_assets=optimized,
        optimization_report=optimization_report,
    )


@pytest.fixture
def fast_settings(tmp_path) -> Settings:
    """Settings for a 3x3 world with no waiting between requests."""
    return Settings(
        min_coord=-1,
        max_coord=1,
        content_directory_url="https://directory.test/entities/active",
        asset_base_url="https://assets.test/v1",
        directory_batch_pointers=4,
        probe_batch_size=2,
        report_batch_size=2,
        retry_backoff_base=0.0,
        retry_backoff_cap=0.0,
        directory_delay=0.0,
        probe_delay=0.0,
        report_delay=0.0,
        worlds_index_url="https://worlds.test/index",
        worlds_batch_size=2,
        worlds_delay=0.0,
        output_dir=tmp_path / "out",
    )
