from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path

from hemirad.config import ConfigError, RadiosityConfig, load_config
from hemirad.engine.radiosity.form_factors import FormFactorCancelled, TableFormatError
from hemirad.engine.radiosity.solver import EmptyQueueError
from hemirad.engine.radiosity_engine import generate_form_factors
from hemirad.geometry.mesh import SceneError
from hemirad.parser.scene_parser import SceneParseError, load_scene
from hemirad.runner import RunnerError, run_job


# Closed 10 x 10 x 10 box, all walls facing inward, with a small light just
# below the ceiling.
_DEMO_SCENE_TEXT = """# hemirad demo: closed box with a ceiling light
12
0 0 0
10 0 0
10 10 0
0 10 0
0 0 10
10 0 10
10 10 10
0 10 10
4 4 9.9
4 6 9.9
6 6 9.9
6 4 9.9
7
# i0 i1 i2 i3   emissivity       reflectance      n
0 1 2 3        0 0 0            0.7 0.7 0.7      4
4 7 6 5        0 0 0            0.7 0.7 0.7      4
0 3 7 4        0 0 0            0.6 0.1 0.1      4
1 5 6 2        0 0 0            0.1 0.6 0.1      4
0 4 5 1        0 0 0            0.7 0.7 0.7      4
3 2 6 7        0 0 0            0.7 0.7 0.7      4
8 9 10 11      20 20 20         0 0 0            1
"""


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(args: argparse.Namespace) -> RadiosityConfig:
    if args.config:
        return load_config(args.config)
    return RadiosityConfig()


def _cmd_demo(args: argparse.Namespace) -> int:
    outpath = Path(args.out).expanduser().resolve()
    outpath.parent.mkdir(parents=True, exist_ok=True)
    outpath.write_text(_DEMO_SCENE_TEXT, encoding="utf-8")
    print(f"Saved demo scene to: {outpath}")
    return 0


def _cmd_generate(args: argparse.Namespace) -> int:
    scene_path = Path(args.scene).expanduser().resolve()
    if not scene_path.is_file():
        print(f"[ERROR] Scene file not found: {scene_path}")
        return 2

    cfg = _load_config(args)
    if args.resolution is not None:
        if args.resolution < 2 or args.resolution % 2:
            print(f"[ERROR] --resolution must be an even number >= 2, got {args.resolution}.")
            return 2
        cfg = replace(cfg, hemicube=replace(cfg.hemicube, resolution=args.resolution))
    if args.jobs is not None:
        if args.jobs == 0:
            print("[ERROR] --jobs must be non-zero (-1 for all cores).")
            return 2
        cfg = replace(cfg, n_jobs=args.jobs)

    scene = load_scene(scene_path, weld=cfg.weld_vertices)
    table = generate_form_factors(scene, cfg)
    out = table.save(Path(args.out).expanduser().resolve())

    print("Hemirad Form Factors")
    print(f"  Scene: {scene_path}")
    print(f"  Patches: {scene.num_patches}, elements: {scene.num_elements}")
    print(f"  Total form factor: {table.total():.6g}")
    print(f"  Saved: {out}")
    return 0


def _cmd_refine(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    if args.steps is not None:
        cfg = replace(cfg, steps=args.steps)
    if args.no_ambient:
        cfg = replace(cfg, include_ambient=False)

    job = run_job(args.scene, args.out, cfg, table_path=args.table)
    s = job.summary
    print("Hemirad Refinement")
    print(f"  Steps: {s['steps']}, last shot patch: {s['last_shot_patch']}")
    print(f"  Ambient: ({s['ambient'][0]:g}, {s['ambient'][1]:g}, {s['ambient'][2]:g})")
    print(f"  Unshot flux: {s['unshot_flux']:g}")
    print(f"  Results: {job.result_dir}")
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="hemirad")
    p.add_argument("--config", default=None, help="JSON configuration file")
    p.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    sub = p.add_subparsers(dest="cmd", required=True)

    demo = sub.add_parser("demo", help="Write a small demo scene file to disk.")
    demo.add_argument("--out", default="scene.dat", help="Output scene path")
    demo.set_defaults(func=_cmd_demo)

    g = sub.add_parser("generate", help="Compute the form factor table of a scene.")
    g.add_argument("scene", help="Path to scene file")
    g.add_argument("--out", default="form_factors.csv", help="Output table path")
    g.add_argument("--resolution", type=int, default=None, help="Hemicube resolution (even)")
    g.add_argument("--jobs", type=int, default=None, help="Parallel workers (-1 for all cores)")
    g.set_defaults(func=_cmd_generate)

    r = sub.add_parser("refine", help="Run progressive refinement and write vertex colors.")
    r.add_argument("scene", help="Path to scene file")
    r.add_argument("--table", default=None, help="Precomputed form factor table (generated if omitted)")
    r.add_argument("--steps", type=int, default=None, help="Number of refinement steps")
    r.add_argument("--no-ambient", action="store_true", help="Leave the ambient term out of vertex colors")
    r.add_argument("--out", default="out", help="Output directory (default: out)")
    r.set_defaults(func=_cmd_refine)

    args = p.parse_args(argv)
    setup_logging(args.log_level)
    try:
        return int(args.func(args))
    except (ConfigError, SceneParseError, SceneError, TableFormatError) as e:
        print(f"[ERROR] {e}")
        return 2
    except (RunnerError, EmptyQueueError, FormFactorCancelled) as e:
        print(f"[ERROR] {e}")
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
