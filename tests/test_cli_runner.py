from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from hemirad.cli import main
from hemirad.config import RadiosityConfig
from hemirad.engine.radiosity.form_factors import FormFactorTable
from hemirad.engine.radiosity.hemicube import HemicubeConfig
from hemirad.parser.scene_parser import load_scene
from hemirad.runner import RunnerError, run_job


def _demo(tmp_path: Path) -> Path:
    out = tmp_path / "scene.dat"
    assert main(["demo", "--out", str(out)]) == 0
    return out


def test_cli_demo_writes_loadable_scene(tmp_path: Path) -> None:
    scene = load_scene(_demo(tmp_path))
    assert scene.num_patches == 7
    assert scene.num_elements == 6 * 16 + 1
    assert scene.emitting_patches() == [6]
    # Every wall faces the inside of the box.
    inward = np.array([5.0, 5.0, 5.0]) - scene.patch_centers
    assert np.all(np.einsum("ij,ij->i", inward, scene.patch_normals) > 0.0)


def test_cli_generate_then_refine(tmp_path: Path, capsys) -> None:
    scene_path = _demo(tmp_path)
    table_path = tmp_path / "ff.csv"
    rc = main(["generate", str(scene_path), "--out", str(table_path), "--resolution", "16", "--jobs", "2"])
    assert rc == 0
    assert "Saved" in capsys.readouterr().out
    table = FormFactorTable.deserialize(table_path.read_text(encoding="utf-8"))
    assert table.shape == (7, 97)
    assert np.all(table.values >= 0.0)

    out_dir = tmp_path / "out"
    rc = main(["refine", str(scene_path), "--table", str(table_path), "--steps", "5", "--out", str(out_dir)])
    assert rc == 0
    result_dirs = list(out_dir.iterdir())
    assert len(result_dirs) == 1
    rd = result_dirs[0]
    for name in (
        "result.json",
        "vertex_colors.csv",
        "element_radiosity.csv",
        "steps.csv",
        "form_factors.csv",
        "manifest.json",
    ):
        assert (rd / name).exists()

    meta = json.loads((rd / "result.json").read_text(encoding="utf-8"))
    assert meta["summary"]["steps"] == 5
    assert meta["counts"]["elements"] == 97
    manifest = json.loads((rd / "manifest.json").read_text(encoding="utf-8"))
    assert "result.json" in manifest
    steps = (rd / "steps.csv").read_text(encoding="utf-8").splitlines()
    assert len(steps) == 1 + 5
    assert steps[1].startswith("1,6,")
    assert FormFactorTable.deserialize((rd / "form_factors.csv").read_text(encoding="utf-8")) == table


def test_run_job_generates_table_and_lights_the_room(tmp_path: Path) -> None:
    scene_path = _demo(tmp_path)
    cfg = RadiosityConfig(hemicube=HemicubeConfig(resolution=16), steps=3)
    job = run_job(scene_path, tmp_path / "out", cfg)
    colors = job.engine.vertex_colors
    assert colors.shape == (load_scene(scene_path).num_vertices, 3)
    assert job.summary["last_shot_patch"] is not None
    assert float(np.max(colors)) > 0.0
    assert np.all(colors >= 0.0)
    assert (job.result_dir / "vertex_colors.csv").read_text(encoding="utf-8").startswith("x,y,z,r,g,b")


def test_run_job_missing_scene_raises(tmp_path: Path) -> None:
    with pytest.raises(RunnerError):
        run_job(tmp_path / "missing.dat", tmp_path / "out")


def test_run_job_missing_table_raises(tmp_path: Path) -> None:
    with pytest.raises(RunnerError, match="table not found"):
        run_job(_demo(tmp_path), tmp_path / "out", table_path=tmp_path / "nope.csv")


def test_cli_reports_errors(tmp_path: Path, capsys) -> None:
    scene_path = _demo(tmp_path)
    bad_table = tmp_path / "small.csv"
    bad_table.write_text(FormFactorTable(1, 1).serialize(), encoding="utf-8")

    rc = main(["refine", str(scene_path), "--table", str(bad_table), "--out", str(tmp_path / "out")])
    assert rc == 2
    assert "[ERROR]" in capsys.readouterr().out

    rc = main(["generate", str(tmp_path / "missing.dat")])
    assert rc == 2

    rc = main(["generate", str(scene_path), "--resolution", "15"])
    assert rc == 2


def test_cli_config_file(tmp_path: Path) -> None:
    scene_path = _demo(tmp_path)
    cfg_path = tmp_path / "cfg.json"
    cfg_path.write_text(json.dumps({"hemicube": {"resolution": 8}, "steps": 2}), encoding="utf-8")
    out_dir = tmp_path / "out"
    rc = main(["--config", str(cfg_path), "refine", str(scene_path), "--out", str(out_dir)])
    assert rc == 0
    rd = next(out_dir.iterdir())
    meta = json.loads((rd / "result.json").read_text(encoding="utf-8"))
    assert meta["config"]["hemicube"]["resolution"] == 8
    assert meta["summary"]["steps"] == 2

    cfg_path.write_text(json.dumps({"bogus": 1}), encoding="utf-8")
    assert main(["--config", str(cfg_path), "refine", str(scene_path), "--out", str(out_dir)]) == 2


def test_tables_with_equal_totals_get_separate_result_dirs(tmp_path: Path) -> None:
    scene_path = _demo(tmp_path)
    scene = load_scene(scene_path)
    first = FormFactorTable.for_scene(scene)
    first.set(6, 0, 0.5)
    second = FormFactorTable.for_scene(scene)
    second.set(6, 1, 0.5)
    assert first.total() == second.total()
    a = run_job(scene_path, tmp_path / "out", table_path=first.save(tmp_path / "a.csv"))
    b = run_job(scene_path, tmp_path / "out", table_path=second.save(tmp_path / "b.csv"))
    assert a.result_dir != b.result_dir


def test_cli_missing_config_reports_error(tmp_path: Path, capsys) -> None:
    scene_path = _demo(tmp_path)
    rc = main(["--config", str(tmp_path / "absent.json"), "refine", str(scene_path), "--out", str(tmp_path / "out")])
    assert rc == 2
    assert "[ERROR]" in capsys.readouterr().out
