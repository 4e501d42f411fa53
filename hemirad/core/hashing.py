from __future__ import annotations

import json
import math
import hashlib
from dataclasses import is_dataclass, asdict
from typing import Any

import numpy as np


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _normalize(obj: Any) -> Any:
    if is_dataclass(obj):
        return _normalize(asdict(obj))
    if isinstance(obj, np.ndarray):
        return _normalize(obj.tolist())
    if isinstance(obj, dict):
        return {str(k): _normalize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_normalize(v) for v in obj]
    if isinstance(obj, (float, np.floating)):
        obj = float(obj)
        if math.isnan(obj) or math.isinf(obj):
            raise ValueError("NaN/Inf not allowed in stable JSON")
        return float(f"{obj:.12g}")
    if isinstance(obj, np.integer):
        return int(obj)
    return obj


def stable_json_dumps(obj: Any) -> str:
    normalized = _normalize(obj)
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_scene(scene: Any) -> str:
    """Fingerprint of scene geometry and materials; identifies which scene a table belongs to."""
    h = hashlib.sha256()
    h.update(np.ascontiguousarray(scene.vertices, dtype=np.float64).tobytes())
    h.update(stable_json_dumps(list(scene.patches)).encode("utf-8"))
    return h.hexdigest()[:16]


def hash_job(scene: Any, config: Any) -> str:
    payload = {"scene": hash_scene(scene), "config": config}
    return sha256_bytes(stable_json_dumps(payload).encode("utf-8"))
