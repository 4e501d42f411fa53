from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple

from hemirad.engine.radiosity.hemicube import HemicubeConfig


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class RadiosityConfig:
    hemicube: HemicubeConfig = field(default_factory=HemicubeConfig)
    steps: int = 1
    include_ambient: bool = True
    n_jobs: int = 1
    weld_vertices: bool = False


def _int(payload: Dict[str, Any], key: str, default: int, *, minimum: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer, got {value!r}.")
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}.")
    return value


def _bool(payload: Dict[str, Any], key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}.")
    return value


def _vec3(payload: Dict[str, Any], key: str, default: Tuple[float, float, float]) -> Tuple[float, float, float]:
    value = payload.get(key, default)
    if not isinstance(value, (list, tuple)) or len(value) != 3:
        raise ConfigError(f"{key} must be a list of 3 numbers, got {value!r}.")
    try:
        out = tuple(float(x) for x in value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a list of 3 numbers, got {value!r}.") from exc
    if not all(math.isfinite(x) for x in out) or not any(out):
        raise ConfigError(f"{key} must be a finite non-zero vector, got {value!r}.")
    return (out[0], out[1], out[2])


def hemicube_from_dict(payload: Dict[str, Any]) -> HemicubeConfig:
    d = HemicubeConfig()
    resolution = _int(payload, "resolution", d.resolution, minimum=2)
    if resolution % 2:
        raise ConfigError(f"resolution must be even, got {resolution}.")
    near = payload.get("near_plane", d.near_plane)
    if isinstance(near, bool) or not isinstance(near, (int, float)) or not math.isfinite(near) or near <= 0:
        raise ConfigError(f"near_plane must be a positive number, got {near!r}.")
    return HemicubeConfig(
        resolution=resolution,
        near_plane=float(near),
        up=_vec3(payload, "up", d.up),
        secondary_up=_vec3(payload, "secondary_up", d.secondary_up),
    )


def config_from_dict(payload: Dict[str, Any]) -> RadiosityConfig:
    if not isinstance(payload, dict):
        raise ConfigError("Configuration must be a JSON object.")
    known = {"hemicube", "steps", "include_ambient", "n_jobs", "weld_vertices"}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
    hemi = payload.get("hemicube", {})
    if not isinstance(hemi, dict):
        raise ConfigError("hemicube must be a JSON object.")
    n_jobs = payload.get("n_jobs", 1)
    if isinstance(n_jobs, bool) or not isinstance(n_jobs, int) or n_jobs == 0:
        raise ConfigError(f"n_jobs must be a non-zero integer (-1 for all cores), got {n_jobs!r}.")
    return RadiosityConfig(
        hemicube=hemicube_from_dict(hemi),
        steps=_int(payload, "steps", 1, minimum=0),
        include_ambient=_bool(payload, "include_ambient", True),
        n_jobs=n_jobs,
        weld_vertices=_bool(payload, "weld_vertices", False),
    )


def config_to_dict(config: RadiosityConfig) -> Dict[str, Any]:
    out = asdict(config)
    out["hemicube"]["up"] = list(config.hemicube.up)
    out["hemicube"]["secondary_up"] = list(config.hemicube.secondary_up)
    return out


def load_config(path: str | Path) -> RadiosityConfig:
    p = Path(path).expanduser()
    if not p.is_file():
        raise ConfigError(f"Config file not found: {p}")
    try:
        payload = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{p}: invalid JSON ({exc.msg} at line {exc.lineno}).") from exc
    return config_from_dict(payload)


def save_config(config: RadiosityConfig, path: str | Path) -> Path:
    p = Path(path).expanduser()
    p.write_text(json.dumps(config_to_dict(config), indent=2, sort_keys=True), encoding="utf-8")
    return p
