from __future__ import annotations

import logging
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Dict, Optional

from hemirad.config import RadiosityConfig, config_to_dict
from hemirad.core.hashing import hash_job, hash_scene, sha256_bytes, sha256_file
from hemirad.engine.radiosity.form_factors import FormFactorTable, load_table
from hemirad.engine.radiosity_engine import RadiosityEngineResult, generate_form_factors, run_radiosity
from hemirad.geometry.mesh import SceneError
from hemirad.parser.scene_parser import SceneParseError, load_scene
from hemirad.results.store import (
    ensure_result_dir,
    write_element_radiosity_csv,
    write_manifest,
    write_result_json,
    write_steps_csv,
    write_vertex_colors_csv,
)

logger = logging.getLogger(__name__)

TABLE_FILENAME = "form_factors.csv"


class RunnerError(Exception):
    pass


@dataclass(frozen=True)
class JobResult:
    job_hash: str
    result_dir: Path
    engine: RadiosityEngineResult
    summary: Dict[str, Any] = field(default_factory=dict)


def _package_version() -> str:
    try:
        return version("hemirad")
    except PackageNotFoundError:
        return "unknown"


def _summary(result: RadiosityEngineResult) -> Dict[str, Any]:
    colors = result.vertex_colors
    return {
        "steps": result.steps,
        "last_shot_patch": result.state.last_shot_patch,
        "ambient": [float(c) for c in result.state.ambient],
        "unshot_flux": result.unshot_flux,
        "form_factor_total": result.table.total(),
        "max_vertex_color": [float(c) for c in colors.max(axis=0)] if colors.size else [0.0, 0.0, 0.0],
    }


def run_job(
    scene_path: str | Path,
    out_dir: str | Path,
    config: Optional[RadiosityConfig] = None,
    table_path: str | Path | None = None,
) -> JobResult:
    """
    Load a scene, obtain its form factor table, refine and write results.

    The table is read from ``table_path`` when given, generated otherwise;
    either way a copy is stored in the result directory so the run can be
    repeated without regenerating it.
    """
    cfg = config or RadiosityConfig()
    scene_path = Path(scene_path).expanduser()
    try:
        scene = load_scene(scene_path, weld=cfg.weld_vertices)
    except (SceneParseError, SceneError) as e:
        raise RunnerError(f"Invalid scene {scene_path}: {e}") from e
    if scene.num_patches == 0:
        raise RunnerError(f"Scene {scene_path} has no patches")

    table: FormFactorTable
    if table_path is not None:
        table_file = Path(table_path).expanduser()
        if not table_file.is_file():
            raise RunnerError(f"Form factor table not found: {table_file}")
        table = load_table(table_file, scene)
    else:
        table = generate_form_factors(scene, cfg)

    table_hash = sha256_bytes(table.serialize().encode("utf-8"))
    job_hash = hash_job(scene, {"config": config_to_dict(cfg), "table": table_hash})
    out = ensure_result_dir(Path(out_dir).expanduser(), job_hash)
    table.save(out / TABLE_FILENAME)

    result = run_radiosity(scene, cfg, table=table)

    result_meta = {
        "job_hash": job_hash,
        "scene": str(scene_path),
        "scene_hash": hash_scene(scene),
        "scene_file_sha256": sha256_file(str(scene_path)),
        "config": config_to_dict(cfg),
        "counts": {
            "vertices": scene.num_vertices,
            "patches": scene.num_patches,
            "elements": scene.num_elements,
        },
        "summary": _summary(result),
        "solver": {"package_version": _package_version()},
    }
    write_result_json(out, result_meta)
    write_vertex_colors_csv(out, scene.vertices, result.vertex_colors)
    write_element_radiosity_csv(out, scene.element_patch, result.state.element_radiosity)
    write_steps_csv(out, result.history)
    write_manifest(out)
    logger.info("Results written to %s", out)

    return JobResult(job_hash=job_hash, result_dir=out, engine=result, summary=result_meta["summary"])
