import pytest
from conftest import make_scene

from parcel_atlas.grid.reconcile import reconcile
from parcel_atlas.grid.stats import compute_stats, failing_scenes
from parcel_atlas.io.models import GridBounds

BOUNDS = GridBounds(-1, 1)


@pytest.fixture
def scenario_world():
    return reconcile(
        [
            make_scene("A", (-1, -1), (0, -1), optimized=True),
            make_scene("B", (1, 1), report=False),
        ],
        BOUNDS,
    )


def test_two_scene_scenario(scenario_world):
    stats = compute_stats(scenario_world)
    assert stats.total_lands == 9
    assert stats.occupied_lands == 3
    assert stats.empty_lands == 6
    assert stats.total_scenes == 2
    assert stats.average_lands_per_scene == 1.5
    assert stats.scenes_with_optimized_assets == 1
    assert stats.scenes_without_optimized_assets == 1
    assert stats.scenes_with_reports == 1
    assert stats.successful_optimizations == 0
    assert stats.failed_optimizations == 1
    assert stats.optimization_percentage == 50


def test_stats_invariants_hold():
    world = reconcile(
        [
            make_scene("a", (0, 0), optimized=True),
            make_scene("b", (0, 1), report=True),
            make_scene("c", (1, 0), report=False),
            make_scene("d", (1, 1)),
            make_scene("e", (-1, 0), (-1, 1), report=True),
        ],
        BOUNDS,
    )
    stats = compute_stats(world)
    assert stats.occupied_lands + stats.empty_lands == stats.total_lands
    assert (
        stats.scenes_with_optimized_assets + stats.scenes_without_optimized_assets
        == stats.total_scenes
    )
    assert (
        stats.successful_optimizations + stats.failed_optimizations
        == stats.scenes_with_reports
    )
    assert stats.scenes_with_reports <= stats.scenes_without_optimized_assets


def test_percentage_is_not_rounded():
    world = reconcile(
        [
            make_scene("a", (0, 0), optimized=True),
            make_scene("b", (0, 1)),
            make_scene("c", (1, 0)),
        ],
        BOUNDS,
    )
    assert compute_stats(world).optimization_percentage == pytest.approx(100 / 3)


def test_empty_world_has_zero_ratios():
    stats = compute_stats(reconcile([], BOUNDS))
    assert stats.total_lands == 9
    assert stats.total_scenes == 0
    assert stats.average_lands_per_scene == 0
    assert stats.optimization_percentage == 0


def test_total_lands_ignores_out_of_range_pointers():
    stats = compute_stats(reconcile([make_scene("x", (10, 10))], BOUNDS))
    assert stats.total_lands == 9
    assert stats.occupied_lands == 0
    assert stats.total_scenes == 1


def test_compute_stats_is_repeatable(scenario_world):
    assert compute_stats(scenario_world) == compute_stats(scenario_world)


def test_failing_scenes_sorted_by_size():
    world = reconcile(
        [
            make_scene("small", (0, 0), report=False),
            make_scene("ok", (0, 1), report=True),
            make_scene("big", (1, 0), (1, 1), report=False),
        ],
        BOUNDS,
    )
    assert [scene.id for scene in failing_scenes(world)] == ["big", "small"]
