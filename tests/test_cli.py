from unittest import mock

import pandas as pd
from conftest import make_scene

from parcel_atlas import cli
from parcel_atlas.grid.reconcile import reconcile
from parcel_atlas.grid.stats import compute_stats
from parcel_atlas.io.compress import compress_report
from parcel_atlas.io.history import HistoryStore
from parcel_atlas.io.models import GridBounds, NamedWorld, WorldsStats
from parcel_atlas.io.outputs import publish_report, write_scene_table
from parcel_atlas.io.storage import LocalArtifactStore
from parcel_atlas.pipeline import PipelineResult

PREFIX = "optimization-pipeline/"


def _world():
    return reconcile(
        [
            make_scene("A", (-1, -1), (0, -1), optimized=True),
            make_scene("B", (1, 1), report=False),
        ],
        GridBounds(-1, 1),
    )


def test_show_without_report_prints_placeholder(tmp_path, capsys):
    assert cli.main(["--out", str(tmp_path), "show"]) == 0
    assert "No report yet" in capsys.readouterr().out


def test_show_prints_published_stats(tmp_path, capsys):
    world = _world()
    stats = compute_stats(world)
    publish_report(LocalArtifactStore(tmp_path), compress_report(world, stats, 0), PREFIX)

    assert cli.main(["--out", str(tmp_path), "show"]) == 0
    out = capsys.readouterr().out
    assert "Occupied Lands: 3" in out
    assert "Optimization Coverage: 50.0%" in out


def test_history_lists_entries(tmp_path, capsys):
    HistoryStore(LocalArtifactStore(tmp_path), prefix=PREFIX).append(
        compute_stats(_world()), 86_400_000
    )
    assert cli.main(["--out", str(tmp_path), "history"]) == 0
    out = capsys.readouterr().out
    assert "1970-01-02" in out
    assert "optimized=1 (50.0%)" in out


def test_run_prints_summary_and_failing_scenes(tmp_path, capsys):
    world = _world()
    stats = compute_stats(world)
    result = PipelineResult(world=world, stats=stats, report=compress_report(world, stats, 0))
    table = tmp_path / "scenes.parquet"

    with mock.patch.object(cli, "run_pipeline", return_value=result) as run:
        code = cli.main(
            ["--out", str(tmp_path), "run", "--no-progress", "--scenes-table", str(table)]
        )

    assert code == 0
    assert run.call_args.kwargs["history"] is not None
    out = capsys.readouterr().out
    assert "Total Scenes: 2" in out
    assert "B (1 parcels)" in out
    assert table.exists()


def test_invalid_bounds_exit_with_error(tmp_path, capsys):
    code = cli.main(["--out", str(tmp_path), "run", "--min-coord", "3", "--max-coord", "1"])
    assert code == 2
    assert "invalid configuration" in capsys.readouterr().out


def test_scene_table_has_one_row_per_scene(tmp_path):
    path = write_scene_table(tmp_path / "t" / "scenes.parquet", _world())
    df = pd.read_parquet(path)
    assert sorted(df["scene_id"]) == ["A", "B"]
    row = df.set_index("scene_id").loc["B"]
    assert row["parcels"] == 1
    assert not row["report_success"]


def test_scene_table_skips_empty_world(tmp_path):
    assert write_scene_table(tmp_path / "scenes.parquet", reconcile([], GridBounds(0, 0))) is None


def test_show_with_damaged_report_prints_placeholder(tmp_path, capsys):
    target = tmp_path / PREFIX / "report.json"
    target.parent.mkdir(parents=True)
    target.write_text('{"l": [[1, 2', encoding="utf-8")

    assert cli.main(["--out", str(tmp_path), "show"]) == 0
    assert "No report yet" in capsys.readouterr().out

    LocalArtifactStore(tmp_path).write_json(
        f"{PREFIX}report.json", {"l": [[1, 2]], "s": {}, "c": {}, "g": 1}
    )
    assert cli.main(["--out", str(tmp_path), "show"]) == 0
    assert "No report yet" in capsys.readouterr().out


def test_history_with_damaged_index_prints_placeholder(tmp_path, capsys):
    target = tmp_path / PREFIX / "history-index.json"
    target.parent.mkdir(parents=True)
    target.write_text('{"entries": [', encoding="utf-8")

    assert cli.main(["--out", str(tmp_path), "history"]) == 0
    assert "No history yet." in capsys.readouterr().out


def test_show_prints_worlds_summary(tmp_path, capsys):
    world = _world()
    stats = compute_stats(world)
    report = compress_report(
        world,
        stats,
        0,
        worlds=[NamedWorld("shiny.dcl.eth", "A", has_optimized_assets=True)],
        worlds_stats=WorldsStats(1, 1, 0, 100.0),
    )
    publish_report(LocalArtifactStore(tmp_path), report, PREFIX)

    assert cli.main(["--out", str(tmp_path), "show"]) == 0
    out = capsys.readouterr().out
    assert "Total Worlds: 1" in out
    assert "Worlds Coverage: 100.0%" in out


def test_no_worlds_flag_switches_worlds_off(tmp_path):
    world = _world()
    stats = compute_stats(world)
    result = PipelineResult(world=world, stats=stats, report=compress_report(world, stats, 0))

    with mock.patch.object(cli, "run_pipeline", return_value=result) as run:
        cli.main(["--out", str(tmp_path), "run", "--no-progress", "--no-worlds"])

    assert run.call_args.args[0].include_worlds is False


def test_unknown_log_level_exits_with_error(tmp_path, capsys, monkeypatch):
    monkeypatch.setenv("PARCEL_ATLAS_LOG_LEVEL", "LOUD")
    assert cli.main(["--out", str(tmp_path), "show"]) == 2
    assert "unknown log level" in capsys.readouterr().out
