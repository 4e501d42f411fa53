from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Sequence

import numpy as np

from hemirad.engine.radiosity.solver import StepRecord


def ensure_result_dir(out_root: Path, job_hash: str) -> Path:
    out_root.mkdir(parents=True, exist_ok=True)
    out = out_root / job_hash[:16]
    out.mkdir(parents=True, exist_ok=True)
    return out


def write_result_json(out_dir: Path, result: Dict[str, Any]) -> Path:
    out_path = out_dir / "result.json"
    out_path.write_text(json.dumps(result, indent=2, sort_keys=True), encoding="utf-8")
    return out_path


def write_vertex_colors_csv(out_dir: Path, vertices: np.ndarray, colors: np.ndarray) -> Path:
    out_path = out_dir / "vertex_colors.csv"
    data = np.column_stack([vertices, colors])
    header = "x,y,z,r,g,b"
    np.savetxt(out_path, data, delimiter=",", header=header, comments="")
    return out_path


def write_element_radiosity_csv(out_dir: Path, element_patch: np.ndarray, radiosity: np.ndarray) -> Path:
    out_path = out_dir / "element_radiosity.csv"
    lines = ["element_id,patch_id,r,g,b"]
    for e, (p, c) in enumerate(zip(element_patch, radiosity)):
        lines.append(f"{e},{int(p)},{float(c[0])!r},{float(c[1])!r},{float(c[2])!r}")
    out_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return out_path


def write_steps_csv(out_dir: Path, history: Sequence[StepRecord]) -> Path:
    out_path = out_dir / "steps.csv"
    lines = ["step,patch,energy,ambient_r,ambient_g,ambient_b,unshot_flux"]
    for r in history:
        lines.append(
            f"{r.step},{r.patch},{r.energy!r},{r.ambient[0]!r},{r.ambient[1]!r},{r.ambient[2]!r},{r.unshot_flux!r}"
        )
    out_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return out_path


def write_manifest(out_dir: Path) -> Path:
    from hemirad.core.hashing import sha256_file

    entries = {}
    for path in sorted(out_dir.glob("*")):
        if path.name == "manifest.json":
            continue
        if path.is_file():
            entries[path.name] = sha256_file(str(path))

    manifest_path = out_dir / "manifest.json"
    manifest_path.write_text(json.dumps(entries, indent=2, sort_keys=True), encoding="utf-8")
    return manifest_path
